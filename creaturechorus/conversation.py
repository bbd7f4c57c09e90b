"""
Creature Chorus Conversation Scheduler
======================================
Turn-taking over a shared, time-pruned conversation log.

Conversations are bounded clusters of notes separated by cooldown silence:
- COOLDOWN: nobody may speak until the silence exceeds the cooldown
- OPEN, position 0: a first speaker starts with a small base probability
- OPEN, position p: responders must answer within a shrinking window,
  with ring neighbours of the last speaker more likely to answer

The ConversationHistory is owned here. Other components only see the
answers to read-only queries.
"""

import logging
import math
import numpy as np
from dataclasses import dataclass
from typing import List, Optional

from .config import ConversationConfig, ConversationPhase

logger = logging.getLogger(__name__)


@dataclass
class ConversationEntry:
    """One note emission in the shared conversation"""
    time: float
    agent_id: int


class ConversationHistory:
    """Append-only, time-ordered log pruned to a retention window"""

    def __init__(self, retention: float):
        self.retention = retention
        self._entries: List[ConversationEntry] = []

    def append(self, time: float, agent_id: int):
        self._entries.append(ConversationEntry(time, agent_id))

    def prune(self, now: float) -> int:
        """Drop entries older than the retention window. Returns the number dropped."""
        before = len(self._entries)
        self._entries = [e for e in self._entries if now - e.time <= self.retention]
        return before - len(self._entries)

    def recent(self, now: float, window: float) -> List[ConversationEntry]:
        return [e for e in self._entries if now - e.time <= window]

    @property
    def newest(self) -> Optional[ConversationEntry]:
        return self._entries[-1] if self._entries else None

    def __len__(self):
        return len(self._entries)

    def __iter__(self):
        return iter(list(self._entries))


@dataclass
class ConversationState:
    """Derived view of the conversation at one instant"""
    phase: ConversationPhase
    position: int  # 0 = first speaker, 1 = second, ...
    time_since_last: float
    last_speaker: Optional[int]

    @property
    def in_cooldown(self) -> bool:
        return self.phase is ConversationPhase.COOLDOWN


class ConversationScheduler:
    """
    Decides which beat-crossing agents may speak this tick.

    Agents must be evaluated in ascending id order; each granted emission is
    recorded before the next agent is evaluated, so it counts as the most
    recent speaker for the rest of the tick.
    """

    def __init__(self, config: ConversationConfig, n_agents: int,
                 rng: Optional[np.random.Generator] = None,
                 start_time: float = 0.0):
        self.config = config
        self.n_agents = n_agents
        self.rng = rng if rng is not None else np.random.default_rng()

        self.history = ConversationHistory(config.retention)
        # Runs open in cooldown, as if a conversation just ended
        self.conversation_end = start_time
        self.phase = ConversationPhase.COOLDOWN

        # Statistics
        self.total_granted = 0
        self.total_denied = 0
        self.conversations_started = 0

    def begin_tick(self, now: float):
        """Prune old entries and update the conversation end marker"""
        self.history.prune(now)

        newest = self.history.newest
        if newest is not None and now - newest.time > self.config.end_gap:
            self.conversation_end = newest.time

        previous = self.phase
        self.phase = (ConversationPhase.COOLDOWN
                      if now - self.conversation_end < self.config.cooldown
                      else ConversationPhase.OPEN)
        if previous is not self.phase:
            logger.debug("Conversation %s -> %s at %.2f", previous.value, self.phase.value, now)

    def state(self, now: float) -> ConversationState:
        recent = self.history.recent(now, self.config.position_window)
        last = recent[-1] if recent else None
        return ConversationState(
            phase=self.phase,
            position=len(recent),
            time_since_last=now - last.time if last else math.inf,
            last_speaker=last.agent_id if last else None,
        )

    def is_ring_neighbor(self, agent_id: int, other_id: int) -> bool:
        if self.n_agents < 2:
            return False
        return agent_id in ((other_id - 1) % self.n_agents, (other_id + 1) % self.n_agents)

    def emission_probability(self, agent_id: int, energy: float, now: float) -> float:
        """Probability that an agent crossing a beat now speaks"""
        state = self.state(now)
        cfg = self.config

        if state.in_cooldown:
            return 0.0

        if state.position == 0:
            return energy * cfg.base_rate

        if state.position < len(cfg.response_windows):
            window = cfg.response_windows[state.position - 1]
            if state.time_since_last <= window:
                probability = energy * cfg.response_rate
                if state.last_speaker is not None and self.is_ring_neighbor(agent_id, state.last_speaker):
                    probability *= cfg.neighbor_boost
                return min(probability, cfg.max_response_probability)

        return 0.0

    def should_emit(self, agent_id: int, energy: float, now: float) -> bool:
        """Draw the emission decision (does not record it)"""
        probability = self.emission_probability(agent_id, energy, now)
        granted = probability > 0 and self.rng.random() < probability
        if granted:
            self.total_granted += 1
        else:
            self.total_denied += 1
        return granted

    def record(self, agent_id: int, now: float):
        """Append a granted emission to the conversation"""
        if len(self.history.recent(now, self.config.position_window)) == 0:
            self.conversations_started += 1
            logger.debug("Agent %d opens a conversation at %.2f", agent_id, now)
        self.history.append(now, agent_id)

    def most_recent_speaker(self) -> Optional[int]:
        newest = self.history.newest
        return newest.agent_id if newest else None

    def validated_speaker(self, responder_id: int, now: float,
                          window=(0.1, 3.0)) -> Optional[int]:
        """
        The most recent other agent the responder is answering.

        Returns the id of the latest entry by another agent whose age lies
        in [window[0], window[1]], or None.
        """
        low, high = window
        for entry in reversed(list(self.history)):
            age = now - entry.time
            if entry.agent_id != responder_id and low <= age <= high:
                return entry.agent_id
        return None

    def get_statistics(self):
        return {
            "granted": self.total_granted,
            "denied": self.total_denied,
            "conversations": self.conversations_started,
            "history_length": len(self.history),
            "phase": self.phase.value,
        }
