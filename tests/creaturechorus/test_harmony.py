"""
Unit tests for creaturechorus/harmony.py

Tests degree selection, frequency mapping and harmonic learning.
"""

import logging
import pytest
import numpy as np
from creaturechorus.harmony import (
    HarmonicLearner, NoteEvent, renormalize_weights, interval_between
)
from creaturechorus.agents import RecentNote
from creaturechorus.config import HarmonyConfig


class TestRenormalize:
    """Tests for the weight renormalization"""

    def test_uniform_unchanged(self):
        result = renormalize_weights(np.ones(12))
        assert np.allclose(result, 1.0)

    def test_sum_and_floor(self):
        weights = np.array([50.0] + [0.001] * 11)
        result = renormalize_weights(weights, 12.0, 0.1)
        assert result.sum() == pytest.approx(12.0)
        assert result.min() >= 0.1 - 1e-12
        assert result[0] == pytest.approx(12.0 - 1.1)

    def test_random_update_sequences(self, rng):
        """Any sequence of reinforcements and penalties keeps the invariants"""
        weights = np.ones(12)
        for _ in range(2000):
            degree = rng.integers(12)
            weights[degree] += rng.choice([0.02, -0.01, 0.5, -0.3])
            weights = renormalize_weights(weights, 12.0, 0.1)
            assert weights.sum() == pytest.approx(12.0)
            assert weights.min() >= 0.1 - 1e-12

    def test_non_finite_reset(self):
        weights = np.ones(12)
        weights[3] = np.nan
        result = renormalize_weights(weights)
        assert np.allclose(result, 1.0)

    def test_all_zero(self):
        result = renormalize_weights(np.zeros(12))
        assert np.allclose(result, 1.0)

    def test_interval_between(self):
        assert interval_between(0, 7) == 7
        assert interval_between(11, 0) == 11
        assert interval_between(5, 5) == 0


class TestDegreeSelection:
    """Tests for choosing scale degrees"""

    def test_selection_weights_normalized(self, harmony_config, make_agent, rng):
        learner = HarmonicLearner(harmony_config, rng)
        probabilities = learner.selection_weights(make_agent())
        assert probabilities.sum() == pytest.approx(1.0)

    def test_stepwise_bias(self, harmony_config, make_agent, rng):
        learner = HarmonicLearner(harmony_config, rng)
        agent = make_agent()
        agent.recent_notes.append(RecentNote(degree=5, time=0.0, agent_id=0))
        p = learner.selection_weights(agent)
        assert p[6] == pytest.approx(p[5] * 1.7)
        assert p[3] == pytest.approx(p[5] * 1.7)
        assert p[9] == pytest.approx(p[5] * 0.3)

    def test_steps_dominate_choices(self, harmony_config, make_agent):
        config = HarmonyConfig(innovation_rate=0.0)
        learner = HarmonicLearner(config, np.random.default_rng(5))
        agent = make_agent()
        agent.recent_notes.append(RecentNote(degree=5, time=0.0, agent_id=0))
        picks = [learner.select_degree(agent) for _ in range(3000)]
        steps = sum(1 for d in picks if 1 <= abs(d - 5) <= 2)
        # Four stepwise degrees carry 6.8 of 9.9 total weight
        assert steps / len(picks) == pytest.approx(6.8 / 9.9, abs=0.04)

    def test_innovation_rate(self, make_agent):
        learner = HarmonicLearner(HarmonyConfig(innovation_rate=1.0), np.random.default_rng(1))
        agent = make_agent()
        for _ in range(200):
            assert 0 <= learner.select_degree(agent) < 12
        assert learner.innovations == 200


class TestFrequency:
    """Tests for pitch mapping"""

    def test_tonic_shift_day_and_night(self, harmony_config, rng):
        learner = HarmonicLearner(harmony_config, rng)
        learner.update_light_level(0.8)
        assert learner.tonic_shift() == 0
        learner.update_light_level(0.2)
        assert learner.tonic_shift() == 3

    def test_octave_bands(self, harmony_config, rng):
        learner = HarmonicLearner(harmony_config, rng)
        assert learner.octave_from_size(0.1) == pytest.approx(5.5, abs=0.1)
        assert learner.octave_from_size(0.5) == pytest.approx(4.5, abs=0.1)
        assert learner.octave_from_size(0.9) == pytest.approx(3.5, abs=0.1)

    def test_frequency_formula(self, harmony_config, rng):
        learner = HarmonicLearner(harmony_config, rng)
        learner.update_light_level(1.0)
        # Microtonal detune stays within an eighth of a semitone
        freq = learner.frequency_for(0, 4.0)
        assert 220.0 * 2 ** (-1 / 96) <= freq <= 220.0 * 2 ** (1 / 96)
        freq = learner.frequency_for(7, 5.0)
        expected = 440.0 * 2 ** (7 / 12)
        assert freq == pytest.approx(expected, rel=0.008)

    def test_night_shift_raises_pitch(self, harmony_config, rng):
        learner = HarmonicLearner(harmony_config, rng)
        learner.update_light_level(0.0)
        freq = learner.frequency_for(0, 4.0)
        assert freq == pytest.approx(220.0 * 2 ** (3 / 12), rel=0.008)


class TestCreateNote:
    """Tests for note synthesis"""

    def test_note_bounds(self, harmony_config, make_agent, rng):
        learner = HarmonicLearner(harmony_config, rng)
        agents = [make_agent(i, energy=1.0, size=i / 10) for i in range(10)]
        for agent in agents:
            note = learner.create_note(agent, agents, now=2.0, look_ahead=0.1)
            assert isinstance(note, NoteEvent)
            assert note.start_time == pytest.approx(2.1)
            assert 1.5 <= note.duration <= 6.0
            assert 0.0 <= note.amplitude <= 0.06
            assert 0.1 <= note.timbre <= 0.4
            assert note.frequency > 0
            assert note.agent_id == agent.agent_id

    def test_amplitude_from_energy(self, harmony_config, make_agent, rng):
        learner = HarmonicLearner(harmony_config, rng)
        agent = make_agent(energy=0.25)
        note = learner.create_note(agent, [agent], now=0.0, look_ahead=0.0)
        assert note.amplitude == pytest.approx(0.015)

    def test_to_dict_wire_names(self):
        note = NoteEvent(1.0, 440.0, 2.0, 0.05, 0.2)
        assert note.to_dict() == {"startTime": 1.0, "freq": 440.0, "dur": 2.0,
                                  "amp": 0.05, "timbre": 0.2}

    def test_recent_notes_capacity(self, harmony_config, make_agent, rng):
        learner = HarmonicLearner(harmony_config, rng)
        agent = make_agent()
        for i in range(5):
            learner.create_note(agent, [agent], now=float(i), look_ahead=0.1)
        assert len(agent.recent_notes) == 3
        assert agent.recent_notes[-1].time == 4.0


class TestLearning:
    """Tests for consonance reinforcement"""

    def test_consonant_reinforcement(self, harmony_config, make_agent, rng):
        learner = HarmonicLearner(harmony_config, rng)
        agent, other = make_agent(0), make_agent(1)
        other.recent_notes.append(RecentNote(degree=7, time=1.0, agent_id=1))
        learner.update_learning(agent, RecentNote(0, 1.1, 0), [agent, other], now=1.1)
        assert agent.degree_weights[0] == pytest.approx(1.02 * 12 / 12.02)
        assert agent.degree_weights.sum() == pytest.approx(12.0)
        assert learner.reinforcements == 1

    def test_crowded_minor_second_penalized(self, harmony_config, make_agent, rng):
        learner = HarmonicLearner(harmony_config, rng)
        agents = [make_agent(i) for i in range(3)]
        agents[1].recent_notes.append(RecentNote(degree=1, time=1.0, agent_id=1))
        agents[2].recent_notes.append(RecentNote(degree=1, time=1.0, agent_id=2))
        learner.update_learning(agents[0], RecentNote(0, 1.0, 0), agents, now=1.0)
        assert agents[0].degree_weights[0] == pytest.approx(0.98 * 12 / 11.98)
        assert learner.penalties == 2

    def test_lone_minor_second_not_penalized(self, harmony_config, make_agent, rng):
        learner = HarmonicLearner(harmony_config, rng)
        agent, other = make_agent(0), make_agent(1)
        other.recent_notes.append(RecentNote(degree=1, time=1.0, agent_id=1))
        learner.update_learning(agent, RecentNote(0, 1.0, 0), [agent, other], now=1.0)
        assert np.allclose(agent.degree_weights, 1.0)

    def test_distant_notes_not_heard(self, harmony_config, make_agent, rng):
        learner = HarmonicLearner(harmony_config, rng)
        agent, other = make_agent(0), make_agent(1)
        other.recent_notes.append(RecentNote(degree=7, time=0.0, agent_id=1))
        learner.update_learning(agent, RecentNote(0, 1.0, 0), [agent, other], now=1.0)
        assert learner.reinforcements == 0

    def test_debug_logging_leaves_random_stream_alone(self, harmony_config, make_agent, caplog):
        learner = HarmonicLearner(harmony_config, np.random.default_rng(3))
        agent, other = make_agent(0), make_agent(1)
        other.recent_notes.append(RecentNote(degree=7, time=1.0, agent_id=1))
        with caplog.at_level(logging.DEBUG, logger="creaturechorus.harmony"):
            for _ in range(50):
                learner.update_learning(agent, RecentNote(0, 1.1, 0), [agent, other], now=1.1)
        assert "Agent 0 weights" in caplog.text
        assert learner.rng.random() == np.random.default_rng(3).random()
