"""
Creature Chorus
===============
A population of phase-coupled creatures that talk in turns, manage an
energy economy and invent a shared harmony by listening to each other.

Inspired by:
- Kuramoto weakly coupled oscillators
- Animal chorusing and turn-taking
- Foraging and social grooming economies
- Local reinforcement learning of consonance

The engine produces structured note events and phase snapshots only;
audio synthesis and rendering live with the host.

Modules:
--------
- config: Configuration dataclasses and defaults
- agents: Per-agent state and population creation
- oscillator: Coupled phase oscillator bank on a ring
- economy: Speaking energy, foraging and social benefits
- conversation: Turn-taking scheduler over the shared conversation
- harmony: Pitch selection and harmonic learning
- environment: Slow light/wind/humidity/temperature field
- clock: Monotonic host audio clock guard
- simulation: Per-tick orchestration and snapshots
- messages: Inbound/outbound message dicts
- driver: Message-driven fixed-period tick driver
- metrics: Run metrics
- main: CLI and simulation runner

Example Usage:
--------------
>>> from creaturechorus import create_default_config, ChorusSimulation
>>> sim = ChorusSimulation(create_default_config())
>>> result = sim.update(0.05)
>>> result.snapshot.coherence
"""

__version__ = "1.0.0"

# Configuration
from .config import (
    SimulationConfig,
    OscillatorConfig,
    EconomyConfig,
    ConversationConfig,
    HarmonyConfig,
    EnvironmentConfig,
    ClockConfig,
    OutputConfig,
    create_default_config,
    create_small_test_config,
    create_benchmark_config,
    ConversationPhase,
    ForagingState,
    MessageType,
)

# Agents
from .agents import (
    AgentState,
    RecentNote,
    create_population,
)

# Subsystems
from .oscillator import (
    OscillatorBank,
    order_parameter,
    circular_mean,
    crossed_phase,
    wrap_phase,
)

from .economy import (
    EnergyEconomy,
)

from .conversation import (
    ConversationScheduler,
    ConversationHistory,
    ConversationState,
)

from .harmony import (
    HarmonicLearner,
    NoteEvent,
    renormalize_weights,
)

from .environment import (
    EnvironmentField,
    EnvironmentState,
)

from .clock import (
    AudioClock,
)

# Engine
from .simulation import (
    ChorusSimulation,
    PhaseSnapshot,
    VisualizationSnapshot,
    TickResult,
)

from .messages import (
    MessageError,
    parse_inbound,
)

from .driver import (
    TickDriver,
)

# Main runner utilities
from .main import (
    run_simulation,
    compare_coupling,
    coupling_effect,
    visualize_simulation,
    print_config_summary,
)

__all__ = [
    # Version
    "__version__",

    # Configuration
    "SimulationConfig",
    "OscillatorConfig",
    "EconomyConfig",
    "ConversationConfig",
    "HarmonyConfig",
    "EnvironmentConfig",
    "ClockConfig",
    "OutputConfig",
    "create_default_config",
    "create_small_test_config",
    "create_benchmark_config",
    "ConversationPhase",
    "ForagingState",
    "MessageType",

    # Agents
    "AgentState",
    "RecentNote",
    "create_population",

    # Oscillators
    "OscillatorBank",
    "order_parameter",
    "circular_mean",
    "crossed_phase",
    "wrap_phase",

    # Economy
    "EnergyEconomy",

    # Conversation
    "ConversationScheduler",
    "ConversationHistory",
    "ConversationState",

    # Harmony
    "HarmonicLearner",
    "NoteEvent",
    "renormalize_weights",

    # Environment
    "EnvironmentField",
    "EnvironmentState",

    # Clock
    "AudioClock",

    # Engine
    "ChorusSimulation",
    "PhaseSnapshot",
    "VisualizationSnapshot",
    "TickResult",
    "MessageError",
    "parse_inbound",
    "TickDriver",

    # Main
    "run_simulation",
    "compare_coupling",
    "coupling_effect",
    "visualize_simulation",
    "print_config_summary",
]
