"""
Creature Chorus Oscillator Bank
===============================
Kuramoto-style weakly coupled phase oscillators on a ring.

Each agent carries two phase channels:
- beat phase:   timing of note opportunities (≈1 Hz)
- phrase phase: slower phrase structure (≈0.25 Hz)

Update per channel (ring neighbours l, r):
    θ_i(t+1) = θ_i + (ω_i + K·(sin(θ_l − θ_i) + sin(θ_r − θ_i)))·dt·2π
All neighbour reads come from the frozen start-of-tick arrays.
"""

import logging
import numpy as np
from typing import Optional, Sequence

from .config import OscillatorConfig

logger = logging.getLogger(__name__)

TWO_PI = 2 * np.pi


def wrap_phase(phase):
    """Wrap phase values into [0, 2π)"""
    wrapped = np.mod(phase, TWO_PI)
    # np.mod can round up to exactly 2π for tiny negative inputs
    return np.where(wrapped >= TWO_PI, 0.0, wrapped)


def order_parameter(phases: Sequence[float]) -> float:
    """
    Kuramoto order parameter r = |Σ e^{iθ}| / N.

    Returns 0 for an empty population.
    """
    phases = np.asarray(phases, dtype=float)
    if phases.size == 0:
        return 0.0
    r = np.hypot(np.sum(np.sin(phases)), np.sum(np.cos(phases))) / phases.size
    return float(np.clip(r, 0.0, 1.0))


def circular_mean(phases: Sequence[float]) -> float:
    """Circular mean of phases in [0, 2π); 0 for an empty population"""
    phases = np.asarray(phases, dtype=float)
    if phases.size == 0:
        return 0.0
    mean = np.arctan2(np.mean(np.sin(phases)), np.mean(np.cos(phases)))
    return float(wrap_phase(mean))


def crossed_phase(last_phase: float, current_phase: float, threshold: float) -> bool:
    """
    Check whether a phase passed a threshold between two ticks.

    Normal progression crosses when last ≤ threshold < current. When the
    phase wrapped past 2π (last > current) the swept arc is
    (last, 2π) ∪ [0, current].
    """
    if last_phase > current_phase:
        return threshold > last_phase or threshold <= current_phase
    return last_phase <= threshold < current_phase


class OscillatorBank:
    """
    Owns per-agent phase state and advances it each tick.

    Uses a two-array scheme: the current arrays are frozen for the whole
    update while the next arrays are written, then the two are swapped.
    """

    def __init__(self, config: OscillatorConfig, n_agents: int,
                 rng: Optional[np.random.Generator] = None):
        self.config = config
        self.n_agents = n_agents
        self.rng = rng if rng is not None else np.random.default_rng()
        self.coupling = config.coupling

        self.beat_omega = config.beat_omega_mean + (self.rng.random(n_agents) - 0.5) * config.beat_omega_spread
        self.phrase_omega = config.phrase_omega_mean + (self.rng.random(n_agents) - 0.5) * config.phrase_omega_spread

        self.beat_phase = self.rng.random(n_agents) * TWO_PI
        self.phrase_phase = self.rng.random(n_agents) * TWO_PI
        self.last_beat_phase = np.zeros(n_agents)

        # Write buffers for the next tick
        self._next_beat = np.zeros(n_agents)
        self._next_phrase = np.zeros(n_agents)

        self.step_count = 0
        self.resets = 0

    def set_coupling(self, coupling: float) -> float:
        """Set coupling strength K, clamped to [0, max_coupling]"""
        clamped = float(np.clip(coupling, 0.0, self.config.max_coupling))
        if clamped != coupling:
            logger.warning("Coupling %.3f outside [0, %.2f]; clamped to %.3f",
                           coupling, self.config.max_coupling, clamped)
        self.coupling = clamped
        logger.info("Kuramoto coupling set to %.3f", self.coupling)
        return self.coupling

    def _coupling_term(self, phases: np.ndarray, strength: float) -> np.ndarray:
        """Sum of sine pulls from both ring neighbours, read from frozen phases"""
        if self.n_agents < 2:
            return np.zeros(self.n_agents)
        left = np.roll(phases, 1)
        right = np.roll(phases, -1)
        return strength * (np.sin(left - phases) + np.sin(right - phases))

    def step(self, dt: float):
        """
        Advance every agent one tick.

        Args:
            dt: Tick duration in seconds
        """
        if self.n_agents == 0:
            return

        frozen_beat = self.beat_phase
        frozen_phrase = self.phrase_phase

        beat_pull = self._coupling_term(frozen_beat, self.coupling)
        phrase_pull = self._coupling_term(frozen_phrase,
                                          self.coupling * self.config.phrase_coupling_scale)

        self._next_beat[:] = wrap_phase(frozen_beat + (self.beat_omega + beat_pull) * dt * TWO_PI)
        self._next_phrase[:] = wrap_phase(frozen_phrase + (self.phrase_omega + phrase_pull) * dt * TWO_PI)

        self.last_beat_phase[:] = frozen_beat

        # Swap buffers
        self.beat_phase, self._next_beat = self._next_beat, self.beat_phase
        self.phrase_phase, self._next_phrase = self._next_phrase, self.phrase_phase

        self._sanitize()
        self.step_count += 1

    def _sanitize(self):
        """Replace non-finite phases with the agent's previous beat phase or 0"""
        for arr in (self.beat_phase, self.phrase_phase):
            bad = ~np.isfinite(arr)
            if np.any(bad):
                fallback = np.where(np.isfinite(self.last_beat_phase), self.last_beat_phase, 0.0)
                arr[bad] = wrap_phase(fallback[bad])
                self.resets += int(np.sum(bad))
                logger.warning("Reset %d non-finite phase values", int(np.sum(bad)))

    def crossed_beat(self, agent_id: int) -> bool:
        """Did this agent's beat phase pass a major beat position this tick?"""
        last = self.last_beat_phase[agent_id]
        current = self.beat_phase[agent_id]
        return any(crossed_phase(last, current, pos) for pos in self.config.beat_positions)

    def coherence(self) -> float:
        """Global beat coherence"""
        return order_parameter(self.beat_phase)

    def global_beat_phase(self) -> float:
        return circular_mean(self.beat_phase)

    def phase_distance(self, i: int, j: int) -> float:
        """Circular beat-phase distance between two agents, in [0, π]"""
        diff = abs(self.beat_phase[i] - self.beat_phase[j])
        return float(min(diff, TWO_PI - diff))

    def neighbors(self, agent_id: int):
        """Ring neighbours (left, right)"""
        n = self.n_agents
        return (agent_id - 1) % n, (agent_id + 1) % n
