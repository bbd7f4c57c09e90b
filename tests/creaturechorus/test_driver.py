"""
Unit tests for creaturechorus/driver.py

Tests the message-driven tick driver and its lifecycle.
"""

import pytest
import numpy as np
from creaturechorus.driver import TickDriver
from creaturechorus.config import create_small_test_config


def collect(driver):
    out = []
    while not driver.outbox.empty():
        out.append(driver.outbox.get_nowait())
    return out


def types(messages):
    return [m["type"] for m in messages]


@pytest.fixture
def driver():
    return TickDriver(create_small_test_config())


class TestLifecycle:
    """Tests for start/stop"""

    def test_idle_until_started(self, driver):
        assert not driver.handle_message({"type": "audioTime", "audioTime": 1.0})
        assert collect(driver) == []
        assert driver.simulation is None

    def test_start_then_audio_time_sends_phases(self, driver):
        driver.handle_message({"type": "start"})
        driver.handle_message({"type": "audioTime", "audioTime": 1.0})
        sent = collect(driver)
        assert types(sent) == ["phases"]
        assert sent[0]["phases"]["tAudio"] == 1.0
        assert len(sent[0]["phases"]["agents"]) == 4

    def test_population_born_at_first_audio_time(self, driver):
        driver.handle_message({"type": "start"})
        driver.handle_message({"type": "audioTime", "audioTime": 42.0})
        assert driver.simulation.start_time == 42.0
        assert driver.simulation.scheduler.conversation_end == 42.0

    def test_stop_silences_output(self, driver):
        driver.handle_message({"type": "start"})
        driver.handle_message({"type": "audioTime", "audioTime": 1.0})
        collect(driver)
        driver.handle_message({"type": "stop"})
        driver.handle_message({"type": "audioTime", "audioTime": 1.05})
        driver.request_audio_time()
        assert collect(driver) == []

    def test_restart_reinitializes(self, driver):
        driver.handle_message({"type": "start"})
        driver.handle_message({"type": "audioTime", "audioTime": 1.0})
        first = driver.simulation
        phases = first.bank.beat_phase.copy()

        driver.handle_message({"type": "stop"})
        driver.handle_message({"type": "start"})
        driver.handle_message({"type": "audioTime", "audioTime": 5.0})
        assert driver.simulation is not first
        assert driver.simulation.start_time == 5.0
        assert not np.allclose(driver.simulation.bank.beat_phase, phases)


class TestMessages:
    """Tests for inbound message handling"""

    def test_unknown_type_ignored(self, driver):
        assert not driver.handle_message({"type": "teleport"})
        assert not driver.handle_message({"no": "type"})
        assert driver.ignored_messages == 2

    def test_unknown_parameter_ignored(self, driver):
        driver.handle_message({"type": "start"})
        driver.handle_message({"type": "audioTime", "audioTime": 1.0})
        assert not driver.handle_message(
            {"type": "setParameter", "parameterName": "gravity", "parameterValue": 1.0})

    def test_parameter_before_start_persists(self, driver):
        assert driver.handle_message(
            {"type": "setParameter", "parameterName": "coupling", "parameterValue": 0.4})
        driver.handle_message({"type": "start"})
        driver.handle_message({"type": "audioTime", "audioTime": 1.0})
        assert driver.simulation.bank.coupling == pytest.approx(0.4)

    def test_parameter_leaves_driver_config_alone(self):
        config = create_small_test_config()
        driver = TickDriver(config)
        driver.handle_message({"type": "start"})
        driver.handle_message({"type": "audioTime", "audioTime": 1.0})
        assert driver.handle_message(
            {"type": "setParameter", "parameterName": "baseRate", "parameterValue": 0.5})
        assert driver.simulation.scheduler.config.base_rate == 0.5
        assert config.conversation.base_rate == create_small_test_config().conversation.base_rate

    def test_out_of_range_parameter_before_start(self, driver):
        assert not driver.handle_message(
            {"type": "setParameter", "parameterName": "coupling", "parameterValue": 3.0})

    def test_light_level_applied(self, driver):
        driver.handle_message({"type": "lightLevel", "lightLevel": 0.1})
        driver.handle_message({"type": "start"})
        driver.handle_message({"type": "audioTime", "audioTime": 1.0})
        assert driver.simulation.light_level == 0.1

    def test_invalid_light_level_ignored(self, driver):
        assert not driver.handle_message({"type": "lightLevel", "lightLevel": 4.0})


class TestClockHandling:
    """Tests for audio time alignment"""

    def test_repeated_time_bumped_forward(self, driver):
        driver.handle_message({"type": "start"})
        driver.handle_message({"type": "audioTime", "audioTime": 1.0})
        driver.handle_message({"type": "audioTime", "audioTime": 1.0})
        driver.handle_message({"type": "audioTime", "audioTime": 0.5})
        times = [m["phases"]["tAudio"] for m in collect(driver) if m["type"] == "phases"]
        assert len(times) == 3
        assert all(b > a for a, b in zip(times, times[1:]))

    def test_run_once_requests_audio_time(self, driver):
        driver.handle_message({"type": "start"})
        driver.config.clock.response_timeout = 0.01
        driver.post({"type": "audioTime", "audioTime": 2.0})
        driver.run_once()
        sent = collect(driver)
        # The pre-queued reply is unsolicited and dropped; the tick falls back
        assert types(sent)[0] == "requestAudioTime"
        assert "phases" in types(sent)

    def test_run_once_without_reply_estimates(self, driver):
        driver.handle_message({"type": "start"})
        driver.config.clock.response_timeout = 0.01
        driver.run_once()
        driver.run_once()
        times = [m["phases"]["tAudio"] for m in collect(driver) if m["type"] == "phases"]
        assert times == pytest.approx([0.05, 0.10])
        assert driver.clock.estimated_ticks == 2

    def test_stall_until_reply(self, driver):
        driver.handle_message({"type": "start"})
        driver.config.clock.response_timeout = 0.01
        driver.config.clock.fallback_after_misses = 3
        driver.run_once()
        assert driver.stalled_ticks == 1
        assert "phases" not in types(collect(driver))


class TestErrors:
    """Tests for tick fault tolerance"""

    def test_tick_error_not_fatal(self, driver, monkeypatch):
        driver.handle_message({"type": "start"})
        driver.handle_message({"type": "audioTime", "audioTime": 1.0})
        collect(driver)

        def boom(now):
            raise RuntimeError("boom")

        monkeypatch.setattr(driver.simulation, "update", boom)
        assert driver.tick(1.05) == []
        assert driver.tick_errors == 1
        assert driver.running

        monkeypatch.undo()
        driver.handle_message({"type": "audioTime", "audioTime": 1.1})
        assert types(collect(driver)) == ["phases"]


class TestOutputs:
    """Tests for optional outbound streams"""

    def test_visualization_and_environment(self):
        config = create_small_test_config()
        config.output.emit_visualization = True
        config.output.emit_environment = True
        driver = TickDriver(config)
        driver.handle_message({"type": "start"})
        for i in range(8):
            driver.handle_message({"type": "audioTime", "audioTime": 1.0 + i * 0.05})
        sent = types(collect(driver))
        assert "visualization" in sent
        assert "envUpdate" in sent

    def test_send_callback(self):
        received = []
        driver = TickDriver(create_small_test_config(), send=received.append)
        driver.handle_message({"type": "start"})
        driver.handle_message({"type": "audioTime", "audioTime": 1.0})
        assert types(received) == ["phases"]
        assert driver.outbox.empty()
