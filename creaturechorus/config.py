"""
Creature Chorus Configuration
=============================
Complete configuration system for the chorus engine.
All tuned constants for oscillators, economy, conversation and harmony.
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Tuple
from enum import Enum


class ConversationPhase(Enum):
    """Macro-state of the shared conversation"""
    COOLDOWN = "cooldown"
    OPEN = "open"


class ForagingState(Enum):
    """Per-agent foraging state"""
    IDLE = "idle"
    FORAGING = "foraging"


class MessageType(Enum):
    """Inbound and outbound message types"""
    # Inbound control
    START = "start"
    STOP = "stop"
    AUDIO_TIME = "audioTime"
    SET_PARAMETER = "setParameter"
    LIGHT_LEVEL = "lightLevel"

    # Outbound data
    REQUEST_AUDIO_TIME = "requestAudioTime"
    PHASES = "phases"
    NOTES = "notes"
    VISUALIZATION = "visualization"
    ENV_UPDATE = "envUpdate"


@dataclass
class OscillatorConfig:
    """Coupled phase oscillator configuration"""
    # Coupling
    coupling: float = 0.15  # K
    max_coupling: float = 0.5
    phrase_coupling_scale: float = 0.5  # Phrase channel couples at half strength

    # Natural frequencies (Hz)
    beat_omega_mean: float = 1.0
    beat_omega_spread: float = 0.1  # ±5%
    phrase_omega_mean: float = 0.25
    phrase_omega_spread: float = 0.02  # ±1%

    # Major beat positions checked for crossings
    beat_positions: Tuple[float, ...] = (0.0, 3.141592653589793)


@dataclass
class EconomyConfig:
    """Energy and social economy configuration"""
    # Expressiveness (fixed per agent)
    energy_range: Tuple[float, float] = (0.1, 0.4)

    # Speaking energy
    initial_speaking_energy_range: Tuple[float, float] = (0.7, 1.0)
    max_speaking_energy_range: Tuple[float, float] = (0.7, 1.0)
    speaking_cost_range: Tuple[float, float] = (0.15, 0.25)
    recharge_rate_range: Tuple[float, float] = (0.08, 0.12)  # Per second

    # Foraging
    forage_efficiency_range: Tuple[float, float] = (0.5, 1.0)
    forage_satiation_fraction: float = 0.95  # No foraging above this fraction of max
    forage_cooldown: float = 2.0  # Seconds between forage attempts
    territory_rate: float = 0.5  # Territory cycles per second
    forage_start_threshold: float = 0.7
    forage_stop_threshold: float = 0.3
    forage_gain_scale: float = 0.3
    forage_status_scale: float = 0.2

    # Social status
    initial_status_range: Tuple[float, float] = (0.3, 0.7)
    status_decay_range: Tuple[float, float] = (0.05, 0.08)  # Per second
    status_decay_delay: float = 1.0  # Seconds of quiet before decay starts

    # Social benefits
    nearby_phase_distance: float = 3.141592653589793 / 3  # 60 degrees
    feeding_per_neighbor: float = 0.02
    feeding_cap: float = 0.1
    validation_window: Tuple[float, float] = (0.1, 3.0)
    validation_scale: float = 0.08
    validation_status_scale: float = 0.5
    listener_scale: float = 0.02

    # Emission gating on speaking energy
    require_speaking_energy: bool = True


@dataclass
class ConversationConfig:
    """Conversation turn-taking configuration"""
    cooldown: float = 15.0  # Seconds of silence between conversations
    end_gap: float = 3.0  # Silence that closes a conversation
    position_window: float = 8.0  # Entries counted toward position
    retention: float = 10.0  # History kept
    response_windows: List[float] = field(default_factory=lambda: [2.0, 1.5, 1.0, 0.8])

    base_rate: float = 0.02  # First speaker probability per unit energy
    response_rate: float = 0.15  # Responder probability per unit energy
    neighbor_boost: float = 2.5
    max_response_probability: float = 0.6


@dataclass
class HarmonyConfig:
    """Pitch selection and harmonic learning configuration"""
    n_degrees: int = 12
    tonic: float = 220.0  # A3
    base_octave: float = 4.0

    # Degree selection
    innovation_rate: float = 0.01
    step_boost: float = 1.7  # Distance 1-2 from previous note
    leap_penalty: float = 0.3  # Distance > 2

    # Day/night tonal shift (semitones)
    day_threshold: float = 0.5
    day_shift: int = 0
    night_shift: int = 3

    # Octave bands by size: (upper size bound, octave)
    octave_bands: List[Tuple[float, float]] = field(
        default_factory=lambda: [(0.33, 5.5), (0.67, 4.5), (1.01, 3.5)]
    )
    octave_jitter: float = 0.1
    microtonal_jitter: float = 1.0 / 96.0  # ±1/8 semitone in octaves

    # Note shape bounds
    duration_range: Tuple[float, float] = (1.5, 6.0)
    amplitude_scale: float = 0.06
    max_amplitude: float = 0.06
    timbre_range: Tuple[float, float] = (0.1, 0.4)

    # Learning
    recent_notes_capacity: int = 3
    listen_window: float = 0.3  # Seconds
    consonant_intervals: Tuple[int, ...] = (0, 3, 4, 5, 7, 9)
    reinforcement: float = 0.02
    dissonance_penalty: float = 0.01
    dissonance_min_neighbors: int = 2
    min_weight: float = 0.1
    weight_total: float = 12.0


@dataclass
class EnvironmentConfig:
    """Slow environment LFO and random walk configuration"""
    update_interval: float = 0.2  # Seconds
    base_values: Dict[str, float] = field(default_factory=lambda: {
        "light": 0.5, "wind": 0.3, "humidity": 0.6, "temperature": 0.4,
    })
    lfo_frequencies: Dict[str, float] = field(default_factory=lambda: {
        "light": 0.0081, "wind": 0.0127, "humidity": 0.0095, "temperature": 0.0073,
    })
    lfo_amplitudes: Dict[str, float] = field(default_factory=lambda: {
        "light": 0.15, "wind": 0.2, "humidity": 0.18, "temperature": 0.12,
    })
    walk_amounts: Dict[str, float] = field(default_factory=lambda: {
        "light": 0.001, "wind": 0.0015, "humidity": 0.0012, "temperature": 0.0008,
    })
    base_bounds: Tuple[float, float] = (0.1, 0.9)


@dataclass
class ClockConfig:
    """Host audio clock alignment configuration"""
    response_timeout: float = 0.25  # Seconds to wait for an audioTime reply
    fallback_after_misses: int = 1  # Missed replies before local estimation
    min_step: float = 1e-6  # Smallest permitted clock advance


@dataclass
class OutputConfig:
    """Outbound message configuration"""
    look_ahead: float = 0.1  # Scheduling slack for renderers
    visualization_interval: float = 1.0 / 30.0
    playing_flash: float = 0.5
    emit_visualization: bool = True
    emit_environment: bool = True
    synchrony_log_interval: float = 2.0
    ring_radius: float = 0.3


@dataclass
class SimulationConfig:
    """Master configuration combining all subsystems"""
    n_agents: int = 16
    dt: float = 0.05  # 50ms tick
    seed: int = 42

    oscillator: OscillatorConfig = field(default_factory=OscillatorConfig)
    economy: EconomyConfig = field(default_factory=EconomyConfig)
    conversation: ConversationConfig = field(default_factory=ConversationConfig)
    harmony: HarmonyConfig = field(default_factory=HarmonyConfig)
    environment: EnvironmentConfig = field(default_factory=EnvironmentConfig)
    clock: ClockConfig = field(default_factory=ClockConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    scenario_name: str = "default"

    def validate(self):
        """Validate configuration consistency"""
        if self.n_agents < 0:
            raise ValueError("Agent count cannot be negative")
        if self.dt <= 0:
            raise ValueError("Tick duration must be positive")
        if not 0 <= self.oscillator.coupling <= self.oscillator.max_coupling:
            raise ValueError(
                f"Coupling {self.oscillator.coupling} outside [0, {self.oscillator.max_coupling}]"
            )
        if not self.conversation.response_windows:
            raise ValueError("At least one response window is required")
        if self.harmony.min_weight * self.harmony.n_degrees >= self.harmony.weight_total:
            raise ValueError("Weight floor leaves no room for learning")

        for name, bounds in [
            ("energy_range", self.economy.energy_range),
            ("max_speaking_energy_range", self.economy.max_speaking_energy_range),
            ("duration_range", self.harmony.duration_range),
            ("timbre_range", self.harmony.timbre_range),
            ("validation_window", self.economy.validation_window),
        ]:
            if bounds[0] > bounds[1]:
                raise ValueError(f"Invalid bounds for {name}: {bounds}")

        return True

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def create_default_config() -> SimulationConfig:
    """Create default configuration"""
    return SimulationConfig()


def create_small_test_config() -> SimulationConfig:
    """Create small configuration for testing"""
    config = SimulationConfig()
    config.n_agents = 4
    config.output.emit_visualization = False
    config.output.emit_environment = False
    return config


def create_benchmark_config(scenario: str = "standard") -> SimulationConfig:
    """
    Create configuration for benchmark scenarios.

    Args:
        scenario: One of "standard", "small", "synchrony", "free"

    Returns:
        SimulationConfig for the scenario
    """
    config = create_default_config()
    config.scenario_name = scenario

    if scenario == "small":
        config.n_agents = 6

    elif scenario == "synchrony":
        # Strong coupling pulls the ring into lockstep
        config.oscillator.coupling = 0.4

    elif scenario == "free":
        # Uncoupled oscillators drift at their natural rates
        config.oscillator.coupling = 0.0

    elif scenario != "standard":
        raise ValueError(f"Unknown scenario: {scenario}")

    return config
