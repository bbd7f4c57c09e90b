"""
Creature Chorus Environment Field
=================================
Slowly evolving ambience parameters: light, wind, humidity, temperature.

Each parameter is a bounded random walk around its base value plus a very
slow sinusoidal LFO (periods of two minutes or so):
    x(t) = clip(base(t) + A·sin(2π·f·t), 0, 1)
Light drives the day/night tonal shift of the chorus.
"""

import numpy as np
from dataclasses import dataclass, asdict
from typing import Dict, Optional

from .config import EnvironmentConfig

PARAMETERS = ("light", "wind", "humidity", "temperature")


@dataclass
class EnvironmentState:
    """Current ambience, every value in [0, 1]"""
    light: float = 0.5
    wind: float = 0.3
    humidity: float = 0.6
    temperature: float = 0.4

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


class EnvironmentField:
    """Advances the ambience on its own slow update interval"""

    def __init__(self, config: EnvironmentConfig, rng: Optional[np.random.Generator] = None):
        self.config = config
        self.rng = rng if rng is not None else np.random.default_rng()

        self.time = 0.0
        self.base_values = dict(config.base_values)
        self.state = EnvironmentState(**{k: self.base_values[k] for k in PARAMETERS})
        self._accumulated = 0.0

    def update(self) -> EnvironmentState:
        """Advance one update interval"""
        cfg = self.config
        self.time += cfg.update_interval
        low, high = cfg.base_bounds

        for key in PARAMETERS:
            lfo = np.sin(self.time * cfg.lfo_frequencies[key] * 2 * np.pi) * cfg.lfo_amplitudes[key]

            walk = (self.rng.random() - 0.5) * cfg.walk_amounts[key]
            self.base_values[key] = float(np.clip(self.base_values[key] + walk, low, high))

            setattr(self.state, key, float(np.clip(self.base_values[key] + lfo, 0.0, 1.0)))

        return self.state

    def advance(self, dt: float) -> bool:
        """
        Accumulate tick time and update when an interval has elapsed.

        Returns:
            True if the state changed
        """
        self._accumulated += dt
        changed = False
        # Small epsilon so that 4 ticks of 0.05s count as 0.2s
        while self._accumulated >= self.config.update_interval - 1e-9:
            self._accumulated -= self.config.update_interval
            self.update()
            changed = True
        return changed
