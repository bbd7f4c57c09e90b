"""
Pytest configuration and shared fixtures for Creature Chorus tests.
"""

import pytest
import numpy as np
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


@pytest.fixture
def rng():
    """Seeded random number generator for reproducible tests"""
    return np.random.default_rng(42)


@pytest.fixture
def simulation_config():
    """Default simulation configuration"""
    from creaturechorus.config import SimulationConfig
    return SimulationConfig()


@pytest.fixture
def small_config():
    """Small configuration for fast tests"""
    from creaturechorus.config import create_small_test_config
    return create_small_test_config()


@pytest.fixture
def oscillator_config():
    from creaturechorus.config import OscillatorConfig
    return OscillatorConfig()


@pytest.fixture
def economy_config():
    from creaturechorus.config import EconomyConfig
    return EconomyConfig()


@pytest.fixture
def conversation_config():
    from creaturechorus.config import ConversationConfig
    return ConversationConfig()


@pytest.fixture
def harmony_config():
    from creaturechorus.config import HarmonyConfig
    return HarmonyConfig()


@pytest.fixture
def population(simulation_config, rng):
    """Sixteen freshly created agents"""
    from creaturechorus.agents import create_population
    return create_population(simulation_config, rng)


@pytest.fixture
def make_agent():
    """Factory for a single agent with controllable fields"""
    from creaturechorus.agents import AgentState

    def _make(agent_id=0, **overrides):
        fields = dict(
            agent_id=agent_id,
            size=0.5,
            energy=1.0,
            speaking_energy=0.5,
            max_speaking_energy=1.0,
            speaking_cost=0.2,
            recharge_rate=0.1,
            territory_phase=0.0,
            forage_efficiency=1.0,
            social_status=0.5,
            status_decay_rate=0.05,
        )
        fields.update(overrides)
        return AgentState(**fields)

    return _make
