"""
Creature Chorus Energy & Social Economy
=======================================
Speaking energy, foraging and social standing.

Every tick (before any notes):
1. Recharge:  E ← min(E_max, E + r·dt)
2. Foraging:  territory availability a = 0.5 + 0.5·sin(φ_territory)
3. Decay:     status fades after a quiet second

When an agent speaks:
- Speaking cost is debited immediately
- Social feeding, validation and listener benefits flow afterwards
"""

import logging
import numpy as np
from typing import List, Optional, Sequence

from .config import EconomyConfig, ForagingState
from .agents import AgentState

logger = logging.getLogger(__name__)


class EnergyEconomy:
    """
    Runs the per-tick energy and social bookkeeping for a population.

    All values are clamped into their closed ranges after every change.
    """

    def __init__(self, config: EconomyConfig):
        self.config = config

        # Statistics
        self.forage_events = 0
        self.validation_events = 0
        self.energy_spent = 0.0
        self.energy_gained_social = 0.0

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def update(self, agents: List[AgentState], now: float, dt: float):
        """Recharge, forage and decay every agent"""
        for agent in agents:
            agent.speaking_energy = min(agent.max_speaking_energy,
                                        agent.speaking_energy + agent.recharge_rate * dt)

            self.attempt_foraging(agent, now, dt)

            if now - agent.last_social_time > self.config.status_decay_delay:
                agent.social_status = max(0.0, agent.social_status - agent.status_decay_rate * dt)

            agent.sanitize()

    def attempt_foraging(self, agent: AgentState, now: float, dt: float) -> bool:
        """
        Attempt foraging for an agent.

        Returns:
            True if the agent started foraging and gained energy
        """
        cfg = self.config

        # Nothing to gain when nearly full
        if agent.speaking_energy >= agent.max_speaking_energy * cfg.forage_satiation_fraction:
            agent.foraging_state = ForagingState.IDLE
            return False

        if now - agent.last_forage_time < cfg.forage_cooldown:
            return False

        agent.territory_phase = (agent.territory_phase + cfg.territory_rate * dt * 2 * np.pi) % (2 * np.pi)
        availability = self.food_availability(agent.territory_phase)

        if availability > cfg.forage_start_threshold and agent.foraging_state is ForagingState.IDLE:
            agent.foraging_state = ForagingState.FORAGING

            gain = agent.forage_efficiency * availability * cfg.forage_gain_scale
            agent.speaking_energy = min(agent.max_speaking_energy, agent.speaking_energy + gain)
            agent.social_status = min(1.0, agent.social_status + gain * cfg.forage_status_scale)
            agent.last_forage_time = now
            agent.last_social_time = now
            self.forage_events += 1
            return True

        if availability <= cfg.forage_stop_threshold:
            agent.foraging_state = ForagingState.IDLE
        return False

    @staticmethod
    def food_availability(territory_phase: float) -> float:
        return 0.5 + 0.5 * float(np.sin(territory_phase))

    # ------------------------------------------------------------------
    # Speaking
    # ------------------------------------------------------------------

    def can_speak(self, agent: AgentState) -> bool:
        if not self.config.require_speaking_energy:
            return True
        return agent.can_afford_speaking()

    def apply_speaking_cost(self, agent: AgentState, now: float):
        spent = min(agent.speaking_cost, agent.speaking_energy)
        agent.speaking_energy = max(0.0, agent.speaking_energy - agent.speaking_cost)
        agent.last_social_time = now
        self.energy_spent += spent

    def nearby_agents(self, speaker_id: int, agents: List[AgentState],
                      beat_phases: Sequence[float]) -> List[AgentState]:
        """Agents within the nearby phase distance of the speaker"""
        speaker_phase = beat_phases[speaker_id]
        nearby = []
        for other in agents:
            if other.agent_id == speaker_id:
                continue
            diff = abs(speaker_phase - beat_phases[other.agent_id])
            if min(diff, 2 * np.pi - diff) < self.config.nearby_phase_distance:
                nearby.append(other)
        return nearby

    def apply_social_benefits(self, speaker: AgentState, agents: List[AgentState],
                              beat_phases: Sequence[float], now: float,
                              validated_id: Optional[int] = None) -> List[AgentState]:
        """
        Apply feeding, validation and listener benefits after a note.

        Args:
            speaker: Agent that just spoke
            agents: Whole population, indexed by agent_id
            beat_phases: Current beat phases, indexed by agent_id
            now: Audio time
            validated_id: Earlier speaker this note answers, if any

        Returns:
            The nearby agents that heard the speaker
        """
        cfg = self.config
        nearby = self.nearby_agents(speaker.agent_id, agents, beat_phases)

        # 1. Social feeding
        if nearby:
            bonus = min(cfg.feeding_cap, len(nearby) * cfg.feeding_per_neighbor)
            self._credit(speaker, bonus)

        # 2. Validation of the speaker being answered
        if validated_id is not None and validated_id != speaker.agent_id:
            validated = agents[validated_id]
            bonus = cfg.validation_scale * speaker.social_status
            self._credit(validated, bonus)
            validated.social_status = min(1.0, validated.social_status + bonus * cfg.validation_status_scale)
            self.validation_events += 1

        # 3. Listener trickle
        listener_bonus = cfg.listener_scale * speaker.social_status
        for listener in nearby:
            if not listener.is_foraging:
                self._credit(listener, listener_bonus)
                listener.last_social_time = now

        speaker.last_social_time = now

        touched = [speaker] + nearby
        if validated_id is not None:
            touched.append(agents[validated_id])
        for agent in touched:
            agent.sanitize()
        return nearby

    def _credit(self, agent: AgentState, amount: float):
        before = agent.speaking_energy
        agent.speaking_energy = min(agent.max_speaking_energy, agent.speaking_energy + amount)
        self.energy_gained_social += agent.speaking_energy - before

    def get_statistics(self):
        return {
            "forage_events": self.forage_events,
            "validation_events": self.validation_events,
            "energy_spent": self.energy_spent,
            "energy_gained_social": self.energy_gained_social,
        }
