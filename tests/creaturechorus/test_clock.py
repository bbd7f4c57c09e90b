"""
Unit tests for creaturechorus/clock.py
"""

import pytest
from creaturechorus.clock import AudioClock
from creaturechorus.config import ClockConfig


class TestAudioClock:
    """Tests for monotonic audio time alignment"""

    def test_accepts_advancing_times(self):
        clock = AudioClock(ClockConfig(), dt=0.05)
        assert clock.accept(1.0) == 1.0
        assert clock.accept(1.05) == 1.05
        assert clock.host_ticks == 2
        assert clock.corrections == 0

    def test_repeated_time_bumped(self):
        clock = AudioClock(ClockConfig(min_step=1e-6), dt=0.05)
        clock.accept(1.0)
        assert clock.accept(1.0) == pytest.approx(1.0 + 1e-6)
        assert clock.corrections == 1

    def test_regression_bumped(self):
        clock = AudioClock(ClockConfig(), dt=0.05)
        clock.accept(2.0)
        assert clock.accept(1.0) > 2.0

    def test_non_finite_uses_estimate(self):
        clock = AudioClock(ClockConfig(), dt=0.05)
        clock.accept(1.0)
        assert clock.accept(float("nan")) == pytest.approx(1.05)
        assert clock.estimated_ticks == 1

    def test_missed_falls_back(self):
        clock = AudioClock(ClockConfig(fallback_after_misses=1), dt=0.05)
        clock.accept(3.0)
        assert clock.missed() == pytest.approx(3.05)
        assert clock.missed() == pytest.approx(3.10)
        assert clock.fallback_active

    def test_missed_stalls_within_budget(self):
        clock = AudioClock(ClockConfig(fallback_after_misses=2), dt=0.05)
        clock.accept(3.0)
        assert clock.missed() is None
        assert clock.missed() == pytest.approx(3.05)

    def test_host_restores_after_fallback(self):
        clock = AudioClock(ClockConfig(), dt=0.05)
        clock.accept(1.0)
        clock.missed()
        assert clock.accept(1.2) == 1.2
        assert not clock.fallback_active
        assert clock.consecutive_misses == 0

    def test_estimate_without_history(self):
        clock = AudioClock(ClockConfig(), dt=0.05)
        assert clock.estimate() == pytest.approx(0.05)
