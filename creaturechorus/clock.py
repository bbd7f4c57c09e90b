"""
Creature Chorus Audio Clock
===========================
Aligns ticks with the host's audio clock.

The host supplies its audio time once per tick. The clock never hands out
the same value twice and never goes backwards: regressions are bumped
forward by a minimum step, and missing replies are replaced by a local
estimate (last accepted time + dt) once enough have been missed.
"""

import logging
import math
from typing import Optional

from .config import ClockConfig

logger = logging.getLogger(__name__)


class AudioClock:
    """Monotonic guard around host-supplied audio times"""

    def __init__(self, config: ClockConfig, dt: float):
        self.config = config
        self.dt = dt

        self.last_time: Optional[float] = None
        self.consecutive_misses = 0
        self.fallback_active = False

        # Statistics
        self.host_ticks = 0
        self.estimated_ticks = 0
        self.corrections = 0

    def _advance_to(self, t: float) -> float:
        if self.last_time is not None and t <= self.last_time:
            self.corrections += 1
            t = self.last_time + self.config.min_step
        self.last_time = t
        return t

    def accept(self, host_time: float) -> float:
        """
        Accept a host audio time for this tick.

        Returns:
            Strictly increasing tick time
        """
        if host_time is None or not math.isfinite(host_time):
            logger.warning("Ignoring non-finite audio time %r; using local estimate", host_time)
            return self.estimate()

        if self.last_time is not None and host_time <= self.last_time:
            logger.warning("Audio time %.6f does not advance past %.6f; bumping forward",
                           host_time, self.last_time)

        if self.fallback_active:
            logger.info("Host audio clock restored after %d estimated ticks", self.consecutive_misses)
        self.fallback_active = False
        self.consecutive_misses = 0
        self.host_ticks += 1
        return self._advance_to(float(host_time))

    def missed(self) -> Optional[float]:
        """
        Record a tick whose audio time never arrived.

        Returns:
            An estimated time once the miss budget is exhausted,
            otherwise None (the tick should stall)
        """
        self.consecutive_misses += 1
        if self.consecutive_misses < self.config.fallback_after_misses:
            return None
        return self.estimate()

    def estimate(self) -> float:
        """Local estimate one tick after the last accepted time"""
        if not self.fallback_active:
            logger.warning("Host audio clock unavailable; falling back to local estimate")
            self.fallback_active = True
        self.estimated_ticks += 1
        base = self.last_time if self.last_time is not None else 0.0
        return self._advance_to(base + self.dt)
