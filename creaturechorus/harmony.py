"""
Creature Chorus Harmonic Learner
================================
Pitch selection and emergent harmony for speaking agents.

Agents start with no preferred scale. Each note is drawn from learned
degree weights with a stepwise-motion bias, and afterwards the weights are
reinforced by consonant intervals heard from other agents within 300ms:
    consonant {0, 3, 4, 5, 7, 9}  →  w[d] += 0.02
    crowded minor second          →  w[d] -= 0.01
The weight vector is then renormalized to a fixed total with a floor.

Frequency:
    f = tonic · 2^(octave − base_octave) · 2^(shifted_degree / 12) · 2^(±1/96)
"""

import logging
import numpy as np
from dataclasses import dataclass
from typing import Dict, List, Optional

from .config import HarmonyConfig
from .agents import AgentState, RecentNote

logger = logging.getLogger(__name__)

NOTE_NAMES = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]


@dataclass
class NoteEvent:
    """A note scheduled for the audio renderer"""
    start_time: float  # Audio time in seconds
    frequency: float  # Hz
    duration: float  # Seconds
    amplitude: float  # 0-1
    timbre: float  # 0-1
    agent_id: int = -1
    degree: int = 0  # Stored (unshifted) degree

    def to_dict(self) -> Dict[str, float]:
        return {
            "startTime": self.start_time,
            "freq": self.frequency,
            "dur": self.duration,
            "amp": self.amplitude,
            "timbre": self.timbre,
        }


def renormalize_weights(weights: np.ndarray, total: float = 12.0,
                        floor: float = 0.1) -> np.ndarray:
    """
    Rescale weights to sum to `total` with every entry ≥ `floor`.

    Entries that would fall below the floor are pinned to it and the
    remaining budget is shared proportionally among the rest, repeating
    until no entry is below the floor.
    """
    weights = np.asarray(weights, dtype=float)
    n = weights.size
    if n == 0:
        return weights.copy()
    if not np.all(np.isfinite(weights)):
        logger.warning("Non-finite degree weights reset to uniform")
        return np.full(n, total / n)

    weights = np.maximum(weights, 0.0)
    result = np.full(n, floor)
    pinned = np.zeros(n, dtype=bool)

    for _ in range(n):
        free = ~pinned
        budget = total - floor * np.count_nonzero(pinned)
        free_sum = weights[free].sum()
        if free_sum <= 0:
            result[free] = budget / np.count_nonzero(free)
            break

        scaled = weights[free] / free_sum * budget
        below = scaled < floor
        if not np.any(below):
            result[free] = scaled
            break
        pinned[np.flatnonzero(free)[below]] = True

    return result


def interval_between(degree_a: int, degree_b: int) -> int:
    return abs(degree_a - degree_b) % 12


class HarmonicLearner:
    """
    Chooses scale degrees and note shapes for speaking agents and updates
    their learned degree preferences.
    """

    def __init__(self, config: HarmonyConfig, rng: Optional[np.random.Generator] = None):
        self.config = config
        self.rng = rng if rng is not None else np.random.default_rng()
        self.light_level = 0.5

        # Statistics
        self.notes_created = 0
        self.innovations = 0
        self.reinforcements = 0
        self.penalties = 0

    def update_light_level(self, light_level: float):
        self.light_level = float(np.clip(light_level, 0.0, 1.0))

    def tonic_shift(self) -> int:
        """Day keeps the tonic, night shifts it up a minor third"""
        cfg = self.config
        return cfg.day_shift if self.light_level > cfg.day_threshold else cfg.night_shift

    def octave_from_size(self, size: float) -> float:
        """Small creatures sing high, large ones low"""
        cfg = self.config
        jitter = (self.rng.random() - 0.5) * 2 * cfg.octave_jitter
        for upper, octave in cfg.octave_bands:
            if size < upper:
                return octave + jitter
        return cfg.octave_bands[-1][1] + jitter

    def selection_weights(self, agent: AgentState) -> np.ndarray:
        """Learned weights with the stepwise-motion bias applied, normalized"""
        cfg = self.config
        weights = np.array(agent.degree_weights, dtype=float)

        last = agent.last_note
        if last is not None:
            distance = np.abs(np.arange(cfg.n_degrees) - last.degree)
            weights = np.where((distance == 1) | (distance == 2), weights * cfg.step_boost, weights)
            weights = np.where(distance > 2, weights * cfg.leap_penalty, weights)

        total = weights.sum()
        if not np.isfinite(total) or total <= 0:
            return np.full(cfg.n_degrees, 1.0 / cfg.n_degrees)
        return weights / total

    def select_degree(self, agent: AgentState) -> int:
        """Pick a degree: rare innovation, otherwise biased learned choice"""
        if self.rng.random() < self.config.innovation_rate:
            self.innovations += 1
            return int(self.rng.integers(self.config.n_degrees))
        probabilities = self.selection_weights(agent)
        return int(self.rng.choice(self.config.n_degrees, p=probabilities))

    def frequency_for(self, degree: int, octave: float) -> float:
        cfg = self.config
        shifted = (degree + self.tonic_shift()) % cfg.n_degrees
        base = cfg.tonic * 2 ** (octave - cfg.base_octave) * 2 ** (shifted / 12)
        micro = (self.rng.random() - 0.5) * 2 * cfg.microtonal_jitter
        return float(base * 2 ** micro)

    def create_note(self, agent: AgentState, agents: List[AgentState],
                    now: float, look_ahead: float) -> NoteEvent:
        """
        Synthesize a note for a speaking agent and learn from it.

        Args:
            agent: Speaking agent
            agents: Whole population (for listening)
            now: Requested audio time
            look_ahead: Scheduling slack added to the start time

        Returns:
            NoteEvent scheduled at now + look_ahead
        """
        cfg = self.config
        degree = self.select_degree(agent)
        octave = self.octave_from_size(agent.size)
        frequency = self.frequency_for(degree, octave)

        duration = float(np.clip(self.rng.uniform(*cfg.duration_range), *cfg.duration_range))
        amplitude = float(np.clip(agent.energy * cfg.amplitude_scale, 0.0, cfg.max_amplitude))
        timbre = float(np.clip(self.rng.uniform(*cfg.timbre_range), *cfg.timbre_range))

        self.update_learning(agent, RecentNote(degree, now, agent.agent_id), agents, now)
        self.notes_created += 1

        if logger.isEnabledFor(logging.DEBUG):
            shifted = (degree + self.tonic_shift()) % cfg.n_degrees
            mode = "day" if self.tonic_shift() == cfg.day_shift else "night"
            logger.debug("Generated note %.2fHz (%s%d, degree=%d, %s) from agent %d at %.3f, amp=%.3f",
                         frequency, NOTE_NAMES[shifted], int(octave), shifted, mode,
                         agent.agent_id, now, amplitude)

        return NoteEvent(
            start_time=now + look_ahead,
            frequency=frequency,
            duration=duration,
            amplitude=amplitude,
            timbre=timbre,
            agent_id=agent.agent_id,
            degree=degree,
        )

    def neighbor_notes(self, agent: AgentState, agents: List[AgentState],
                       now: float) -> List[RecentNote]:
        """Notes by other agents within the listening window"""
        window = self.config.listen_window
        heard = []
        for other in agents:
            if other.agent_id == agent.agent_id:
                continue
            heard.extend(n for n in other.recent_notes if abs(n.time - now) <= window)
        return heard

    def update_learning(self, agent: AgentState, note: RecentNote,
                        agents: List[AgentState], now: float):
        """Remember the note, reinforce from heard intervals, renormalize"""
        cfg = self.config
        agent.recent_notes.append(note)

        heard = self.neighbor_notes(agent, agents, now)
        weights = np.array(agent.degree_weights, dtype=float)
        for other in heard:
            interval = interval_between(note.degree, other.degree)
            if interval in cfg.consonant_intervals:
                weights[note.degree] += cfg.reinforcement
                self.reinforcements += 1
            if interval == 1 and len(heard) >= cfg.dissonance_min_neighbors:
                weights[note.degree] -= cfg.dissonance_penalty
                self.penalties += 1

        agent.degree_weights = renormalize_weights(weights, cfg.weight_total, cfg.min_weight)

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Agent %d weights: [%s], recent notes: %d", agent.agent_id,
                         ", ".join(f"{w:.2f}" for w in agent.degree_weights),
                         len(agent.recent_notes))

    def get_statistics(self):
        return {
            "notes": self.notes_created,
            "innovations": self.innovations,
            "reinforcements": self.reinforcements,
            "penalties": self.penalties,
        }
