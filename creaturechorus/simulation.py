"""
Creature Chorus Simulation
==========================
Per-tick orchestration of the chorus engine.

Tick order:
1. Economy maintenance (recharge, foraging, status decay)
2. Oscillator bank phase update (frozen reads, swap)
3. Conversation scheduler: beat crossings in ascending agent order
4. Harmonic learner: note + learning for each granted speaker
5. Economy: speaking cost and social benefits
6. Snapshot packaging
"""

import copy
import logging
import numpy as np
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Tuple

from .config import SimulationConfig
from .agents import AgentState, create_population
from .oscillator import OscillatorBank, order_parameter, circular_mean
from .conversation import ConversationScheduler
from .economy import EnergyEconomy
from .harmony import HarmonicLearner, NoteEvent
from .environment import EnvironmentField

logger = logging.getLogger(__name__)


@dataclass
class AgentPhase:
    id: int
    beat_phase: float
    phrase_phase: float

    def to_dict(self) -> Dict[str, float]:
        return {"id": self.id, "beatPhase": self.beat_phase, "phrasePhase": self.phrase_phase}


@dataclass
class PhaseSnapshot:
    """Phase state of the whole population at one tick"""
    t_audio: float
    agents: List[AgentPhase] = field(default_factory=list)
    global_beat_phase: float = 0.0
    coherence: float = 0.0

    def beat_phases(self) -> np.ndarray:
        return np.array([a.beat_phase for a in self.agents])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tAudio": self.t_audio,
            "agents": [a.to_dict() for a in self.agents],
            "globalBeatPhase": self.global_beat_phase,
            "coherence": self.coherence,
        }


@dataclass
class AgentVisualization:
    id: int
    x: float
    y: float
    size: float
    energy: float
    social_status: float
    speaking_energy: float
    timbre: float
    hue: float
    is_playing: bool
    playing_until: float
    note_start_time: float
    note_duration: float


@dataclass
class VisualizationSnapshot:
    """Lossy projection of engine state for renderers"""
    timestamp: float
    agents: List[AgentVisualization]
    environment: Dict[str, float]
    beat: Dict[str, float]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TickResult:
    snapshot: PhaseSnapshot
    notes: List[NoteEvent]
    environment_changed: bool = False


# Tunables adjustable at runtime: name -> (bounds)
PARAMETER_BOUNDS: Dict[str, Tuple[float, float]] = {
    "coupling": (0.0, 0.5),
    "couplingStrength": (0.0, 0.5),
    "innovationRate": (0.0, 1.0),
    "baseRate": (0.0, 1.0),
    "responseRate": (0.0, 1.0),
    "conversationCooldown": (0.0, 600.0),
    "lookAhead": (0.0, 2.0),
}


class ChorusSimulation:
    """
    The agent simulation engine.

    All randomness flows from a single generator seeded from the config,
    so a given seed and clock sequence always reproduces the same run.
    """

    def __init__(self, config: Optional[SimulationConfig] = None,
                 start_time: float = 0.0, seed: Optional[int] = None):
        # Runtime parameters write into this copy, never the caller's config
        self.config = copy.deepcopy(config) if config is not None else SimulationConfig()
        self.config.validate()

        self.seed = self.config.seed if seed is None else seed
        self.rng = np.random.default_rng(self.seed)
        self.start_time = start_time

        n = self.config.n_agents
        self.agents: List[AgentState] = create_population(self.config, self.rng, start_time)
        self.bank = OscillatorBank(self.config.oscillator, n, self.rng)
        self.scheduler = ConversationScheduler(self.config.conversation, n, self.rng, start_time)
        self.economy = EnergyEconomy(self.config.economy)
        self.learner = HarmonicLearner(self.config.harmony, self.rng)
        self.environment = EnvironmentField(self.config.environment, self.rng)

        self.external_light: Optional[float] = None
        self.look_ahead = self.config.output.look_ahead

        # Visualization bookkeeping
        self.currently_playing = set()
        self.current_notes: Dict[int, Tuple[float, float]] = {}

        self.tick_count = 0
        self.current_time = start_time
        self._last_sync_log = start_time

    @property
    def n_agents(self) -> int:
        return len(self.agents)

    @property
    def light_level(self) -> float:
        """External light if supplied, otherwise the environment's own"""
        if self.external_light is not None:
            return self.external_light
        return self.environment.state.light

    def set_light_level(self, light_level: float):
        self.external_light = float(np.clip(light_level, 0.0, 1.0))

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def update(self, now: float) -> TickResult:
        """
        Run one tick at audio time `now`.

        Returns:
            TickResult with the phase snapshot and any notes
        """
        dt = self.config.dt
        self.current_time = now
        self.tick_count += 1

        environment_changed = self.environment.advance(dt)

        if self.n_agents == 0:
            return TickResult(PhaseSnapshot(t_audio=now), [], environment_changed)

        self.economy.update(self.agents, now, dt)

        self.currently_playing.clear()
        for agent_id, (start, duration) in list(self.current_notes.items()):
            if now > start + duration:
                del self.current_notes[agent_id]

        self.learner.update_light_level(self.light_level)
        self.bank.step(dt)
        self.scheduler.begin_tick(now)

        notes = self._emit_notes(now)

        snapshot = self.phase_snapshot(now)
        if now - self._last_sync_log >= self.config.output.synchrony_log_interval:
            self._last_sync_log = now
            logger.info("Kuramoto: coherence=%.3f, globalPhase=%.1f°, notes=%d",
                        snapshot.coherence, np.degrees(snapshot.global_beat_phase),
                        self.learner.notes_created)

        return TickResult(snapshot, notes, environment_changed)

    def _emit_notes(self, now: float) -> List[NoteEvent]:
        notes = []
        for agent in self.agents:
            agent_id = agent.agent_id
            if not self.bank.crossed_beat(agent_id):
                continue
            if not self.economy.can_speak(agent):
                continue
            if not self.scheduler.should_emit(agent_id, agent.energy, now):
                continue

            self.scheduler.record(agent_id, now)
            note = self.learner.create_note(agent, self.agents, now, self.look_ahead)
            self.economy.apply_speaking_cost(agent, now)

            validated = self.scheduler.validated_speaker(
                agent_id, now, self.config.economy.validation_window)
            self.economy.apply_social_benefits(agent, self.agents, self.bank.beat_phase,
                                               now, validated)

            self.currently_playing.add(agent_id)
            self.current_notes[agent_id] = (note.start_time, note.duration)
            notes.append(note)
        return notes

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def phase_snapshot(self, now: float) -> PhaseSnapshot:
        beat = self.bank.beat_phase
        phrase = self.bank.phrase_phase
        return PhaseSnapshot(
            t_audio=now,
            agents=[AgentPhase(i, float(beat[i]), float(phrase[i])) for i in range(self.n_agents)],
            global_beat_phase=circular_mean(beat),
            coherence=order_parameter(beat),
        )

    def visualization_snapshot(self, now: float,
                               snapshot: Optional[PhaseSnapshot] = None) -> VisualizationSnapshot:
        snapshot = snapshot or self.phase_snapshot(now)
        out = self.config.output
        n = max(self.n_agents, 1)

        agents = []
        for i, agent in enumerate(self.agents):
            angle = i / n * 2 * np.pi
            last = agent.last_note
            is_playing = agent.agent_id in self.currently_playing
            note_start, note_duration = self.current_notes.get(agent.agent_id, (0.0, 0.0))
            agents.append(AgentVisualization(
                id=agent.agent_id,
                x=0.5 + float(np.cos(angle)) * out.ring_radius,
                y=0.5 + float(np.sin(angle)) * out.ring_radius,
                size=agent.size,
                energy=agent.energy,
                social_status=agent.social_status,
                speaking_energy=agent.speaking_energy,
                timbre=last.degree / 12 if last else 0.5,
                hue=(last.degree / 12 if last else agent.energy) * 360,
                is_playing=is_playing,
                playing_until=now + out.playing_flash if is_playing else 0.0,
                note_start_time=note_start,
                note_duration=note_duration,
            ))

        coherence = snapshot.coherence
        return VisualizationSnapshot(
            timestamp=now,
            agents=agents,
            environment=self.environment.state.to_dict(),
            beat={
                "global_phase": snapshot.global_beat_phase,
                "coherence": coherence,
                "intensity": coherence * (0.5 + np.sin(snapshot.global_beat_phase) * 0.5),
            },
        )

    # ------------------------------------------------------------------
    # Parameters
    # ------------------------------------------------------------------

    def set_parameter(self, name: str, value: float) -> bool:
        """
        Adjust a runtime tunable.

        Returns:
            True if applied; unknown names and out-of-range values are ignored
        """
        bounds = PARAMETER_BOUNDS.get(name)
        if bounds is None:
            logger.warning("Ignoring unknown parameter %r", name)
            return False
        try:
            value = float(value)
        except (TypeError, ValueError):
            logger.warning("Ignoring non-numeric value %r for %s", value, name)
            return False
        if not np.isfinite(value) or not bounds[0] <= value <= bounds[1]:
            logger.warning("Ignoring %s=%r outside [%s, %s]", name, value, *bounds)
            return False

        if name in ("coupling", "couplingStrength"):
            self.bank.set_coupling(value)
        elif name == "innovationRate":
            self.learner.config.innovation_rate = value
        elif name == "baseRate":
            self.scheduler.config.base_rate = value
        elif name == "responseRate":
            self.scheduler.config.response_rate = value
        elif name == "conversationCooldown":
            self.scheduler.config.cooldown = value
        elif name == "lookAhead":
            self.look_ahead = value

        logger.info("Parameter %s changed to %s", name, value)
        return True

    def get_statistics(self) -> Dict[str, Any]:
        return {
            "ticks": self.tick_count,
            "coherence": self.bank.coherence(),
            "conversation": self.scheduler.get_statistics(),
            "economy": self.economy.get_statistics(),
            "harmony": self.learner.get_statistics(),
        }
