"""
Creature Chorus Metrics
=======================
Per-tick metrics for offline runs and experiments.

Collects:
- Beat coherence (order parameter)
- Note counts and conversation activity
- Population means of speaking energy and social status
- Learned harmony: entropy of the mean degree-weight distribution
"""

import numpy as np
from scipy.stats import entropy
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List

from .simulation import ChorusSimulation, TickResult


@dataclass
class StepMetrics:
    """Metrics collected at each tick"""
    tick: int
    time: float
    coherence: float
    n_notes: int
    mean_speaking_energy: float
    mean_social_status: float
    n_foraging: int


def weight_entropy(weights: np.ndarray) -> float:
    """Shannon entropy (bits) of a weight vector treated as a distribution"""
    weights = np.asarray(weights, dtype=float)
    total = weights.sum()
    if weights.size == 0 or total <= 0:
        return 0.0
    return float(entropy(weights, base=2))


@dataclass
class MetricsCollector:
    """Accumulates StepMetrics over a run"""
    steps: List[StepMetrics] = field(default_factory=list)

    def record(self, sim: ChorusSimulation, result: TickResult):
        agents = sim.agents
        self.steps.append(StepMetrics(
            tick=sim.tick_count,
            time=result.snapshot.t_audio,
            coherence=result.snapshot.coherence,
            n_notes=len(result.notes),
            mean_speaking_energy=float(np.mean([a.speaking_energy for a in agents])) if agents else 0.0,
            mean_social_status=float(np.mean([a.social_status for a in agents])) if agents else 0.0,
            n_foraging=sum(1 for a in agents if a.is_foraging),
        ))

    @property
    def coherence(self) -> np.ndarray:
        return np.array([s.coherence for s in self.steps])

    def summarize(self, sim: ChorusSimulation, tail_fraction: float = 0.25) -> Dict[str, Any]:
        """Summary over the run; `tail_*` values average the last part"""
        coherence = self.coherence
        tail = max(1, int(len(coherence) * tail_fraction)) if len(coherence) else 0
        mean_weights = (np.mean([a.degree_weights for a in sim.agents], axis=0)
                        if sim.agents else np.zeros(0))
        return {
            "ticks": len(self.steps),
            "total_notes": int(sum(s.n_notes for s in self.steps)),
            "initial_coherence": float(coherence[0]) if len(coherence) else 0.0,
            "mean_coherence": float(coherence.mean()) if len(coherence) else 0.0,
            "tail_coherence": float(coherence[-tail:].mean()) if tail else 0.0,
            "final_mean_energy": self.steps[-1].mean_speaking_energy if self.steps else 0.0,
            "final_mean_status": self.steps[-1].mean_social_status if self.steps else 0.0,
            "weight_entropy": weight_entropy(mean_weights),
            "mean_degree_weights": mean_weights.tolist(),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {"steps": [asdict(s) for s in self.steps]}
