"""
Creature Chorus Agent Population
================================
Per-agent state records for the chorus.

Each creature carries fixed physical traits, a speaking-energy economy,
a social standing and a small learned preference over the 12 chromatic
degrees. Phase state lives in the OscillatorBank, indexed by agent_id.
"""

import logging
import numpy as np
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, List, Tuple

from .config import SimulationConfig, ForagingState

logger = logging.getLogger(__name__)


@dataclass
class RecentNote:
    """A note an agent played, kept for stepwise motion and listening"""
    degree: int  # Scale degree 0-11, before any tonal shift
    time: float  # Audio time it was played
    agent_id: int


@dataclass
class AgentState:
    """State of a single creature"""
    agent_id: int

    # Physical traits (fixed at creation)
    size: float  # 0-1, maps to octave band
    energy: float  # 0-1, baseline expressiveness

    # Speaking energy economy
    speaking_energy: float
    max_speaking_energy: float
    speaking_cost: float
    recharge_rate: float  # Per second

    # Territory & foraging
    territory_phase: float
    forage_efficiency: float
    last_forage_time: float = 0.0
    foraging_state: ForagingState = ForagingState.IDLE

    # Social standing
    social_status: float = 0.5
    status_decay_rate: float = 0.05
    last_social_time: float = 0.0

    # Emergent learning
    recent_notes: Deque[RecentNote] = field(default_factory=lambda: deque(maxlen=3))
    degree_weights: np.ndarray = field(default_factory=lambda: np.ones(12))

    @property
    def is_foraging(self) -> bool:
        return self.foraging_state is ForagingState.FORAGING

    @property
    def last_note(self):
        return self.recent_notes[-1] if self.recent_notes else None

    def can_afford_speaking(self) -> bool:
        return self.speaking_energy >= self.speaking_cost

    def sanitize(self) -> bool:
        """
        Reset non-finite or out-of-range values to safe defaults.

        Returns:
            True if anything had to be repaired
        """
        repaired = False

        if not np.isfinite(self.max_speaking_energy) or self.max_speaking_energy <= 0:
            self.max_speaking_energy = 1.0
            repaired = True
        if not np.isfinite(self.speaking_energy):
            self.speaking_energy = self.max_speaking_energy
            repaired = True
        if not np.isfinite(self.social_status):
            self.social_status = 0.5
            repaired = True
        if not np.isfinite(self.territory_phase):
            self.territory_phase = 0.0
            repaired = True

        self.speaking_energy = float(np.clip(self.speaking_energy, 0.0, self.max_speaking_energy))
        self.social_status = float(np.clip(self.social_status, 0.0, 1.0))
        self.energy = float(np.clip(self.energy, 0.0, 1.0)) if np.isfinite(self.energy) else 0.25
        self.territory_phase = float(self.territory_phase % (2 * np.pi))

        weights = self.degree_weights
        if not np.all(np.isfinite(weights)) or np.any(weights <= 0):
            n = len(weights)
            self.degree_weights = np.ones(n)
            repaired = True

        if repaired:
            logger.warning("Agent %d had non-finite state; reset to defaults", self.agent_id)
        return repaired


def _uniform(rng: np.random.Generator, bounds: Tuple[float, float]) -> float:
    return float(rng.uniform(bounds[0], bounds[1]))


def create_population(config: SimulationConfig, rng: np.random.Generator,
                      start_time: float = 0.0) -> List[AgentState]:
    """
    Create a fresh population from the seeded generator.

    Args:
        config: Simulation configuration
        rng: Shared random generator
        start_time: Audio time the population is born at

    Returns:
        Agents ordered by agent_id
    """
    econ = config.economy
    harmony = config.harmony

    agents = []
    for i in range(config.n_agents):
        agent = AgentState(
            agent_id=i,
            size=float(rng.random()),
            energy=_uniform(rng, econ.energy_range),
            speaking_energy=_uniform(rng, econ.initial_speaking_energy_range),
            max_speaking_energy=_uniform(rng, econ.max_speaking_energy_range),
            speaking_cost=_uniform(rng, econ.speaking_cost_range),
            recharge_rate=_uniform(rng, econ.recharge_rate_range),
            territory_phase=float(rng.random() * 2 * np.pi),
            forage_efficiency=_uniform(rng, econ.forage_efficiency_range),
            last_forage_time=start_time,
            social_status=_uniform(rng, econ.initial_status_range),
            status_decay_rate=_uniform(rng, econ.status_decay_range),
            last_social_time=start_time,
            recent_notes=deque(maxlen=harmony.recent_notes_capacity),
            degree_weights=np.ones(harmony.n_degrees),
        )
        # Initial energy may exceed an individual's capacity
        agent.speaking_energy = min(agent.speaking_energy, agent.max_speaking_energy)
        agents.append(agent)

    logger.info("Initialized %d agents with energy, territory, social and learning state",
                len(agents))
    return agents
