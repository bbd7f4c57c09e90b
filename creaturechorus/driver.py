"""
Creature Chorus Tick Driver
===========================
Message-driven driver that advances the simulation on a fixed period.

Each tick the driver asks the host for its audio time, waits a bounded
time for the reply and then runs one simulation tick at that time. All
state is mutated on a single thread: inbound messages are queued by any
thread and drained by the loop thread.

The same code path runs synchronously through handle_message(), which is
what tests and offline runs use.
"""

import logging
import queue
import threading
import time
import numpy as np
from typing import Any, Callable, Dict, List, Optional

from .config import SimulationConfig, MessageType
from .clock import AudioClock
from .simulation import ChorusSimulation, PARAMETER_BOUNDS
from .messages import (
    MessageError, parse_inbound,
    request_audio_time_message, phases_message, notes_message,
    visualization_message, environment_message,
)

logger = logging.getLogger(__name__)


class TickDriver:
    """
    Owns the simulation lifecycle and the outbound channel.

    Args:
        config: Simulation configuration
        send: Callback receiving each outbound message dict. When omitted,
            messages are collected on `outbox`.
    """

    def __init__(self, config: Optional[SimulationConfig] = None,
                 send: Optional[Callable[[Dict[str, Any]], None]] = None):
        self.config = config or SimulationConfig()
        self.config.validate()

        self.outbox: "queue.Queue[Dict[str, Any]]" = queue.Queue()
        self.send = send or self.outbox.put
        self.inbox: "queue.Queue[Dict[str, Any]]" = queue.Queue()

        self.clock = AudioClock(self.config.clock, self.config.dt)
        self.simulation: Optional[ChorusSimulation] = None
        self.running = False

        self._seeds = np.random.SeedSequence(self.config.seed)
        self._light_level: Optional[float] = None
        self._parameters: Dict[str, float] = {}
        self._last_visualization: Optional[float] = None

        self._thread: Optional[threading.Thread] = None
        self._shutdown = threading.Event()
        self._awaiting_audio_time = False

        # Statistics
        self.ticks = 0
        self.stalled_ticks = 0
        self.tick_errors = 0
        self.ignored_messages = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self):
        """(Re)initialize the population and begin ticking"""
        self.running = True
        # The population is born at the first accepted audio time
        self.simulation = None
        self._last_visualization = None
        logger.info("Chorus simulation started")

    def stop(self):
        """Halt ticking; nothing further is sent"""
        if self.running:
            logger.info("Chorus simulation stopped after %d ticks", self.ticks)
        self.running = False
        self._awaiting_audio_time = False

    def _new_simulation(self, start_time: float) -> ChorusSimulation:
        seed = int(self._seeds.spawn(1)[0].generate_state(1)[0])
        sim = ChorusSimulation(self.config, start_time=start_time, seed=seed)
        if self._light_level is not None:
            sim.set_light_level(self._light_level)
        for name, value in self._parameters.items():
            sim.set_parameter(name, value)
        return sim

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def post(self, message: Dict[str, Any]):
        """Thread-safe: queue an inbound message for the loop thread"""
        self.inbox.put(message)

    def handle_message(self, message: Dict[str, Any]) -> bool:
        """
        Process one inbound message immediately.

        Returns:
            True if the message was applied, False if it was ignored
        """
        try:
            inbound = parse_inbound(message)
        except MessageError as e:
            self.ignored_messages += 1
            logger.warning("Ignoring message: %s", e)
            return False

        msg_type = inbound.msg_type
        if msg_type is MessageType.START:
            self.start()
        elif msg_type is MessageType.STOP:
            self.stop()
        elif msg_type is MessageType.AUDIO_TIME:
            if not self.running:
                return False
            self._awaiting_audio_time = False
            self.tick(self.clock.accept(inbound.audio_time))
        elif msg_type is MessageType.SET_PARAMETER:
            return self.set_parameter(inbound.parameter_name, inbound.parameter_value)
        elif msg_type is MessageType.LIGHT_LEVEL:
            self._light_level = inbound.light_level
            if self.simulation is not None:
                self.simulation.set_light_level(inbound.light_level)
        return True

    def set_parameter(self, name: str, value: float) -> bool:
        if self.simulation is not None:
            applied = self.simulation.set_parameter(name, value)
        else:
            # Remembered and applied once the population exists
            bounds = PARAMETER_BOUNDS.get(name)
            applied = bounds is not None and bounds[0] <= value <= bounds[1]
            if not applied:
                logger.warning("Ignoring parameter %s=%r", name, value)
        if applied:
            self._parameters[name] = value
        else:
            self.ignored_messages += 1
        return applied

    def _emit(self, message: Optional[Dict[str, Any]]):
        if message is None or not self.running:
            return
        self.send(message)

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def request_audio_time(self):
        self._awaiting_audio_time = True
        self._emit(request_audio_time_message())

    def tick(self, audio_time: float) -> List[Dict[str, Any]]:
        """
        Run one simulation tick at an accepted audio time and send results.

        Errors inside a tick are logged and never propagate.

        Returns:
            The messages sent for this tick
        """
        if not self.running:
            return []

        sent = []
        try:
            if self.simulation is None:
                self.simulation = self._new_simulation(audio_time)

            result = self.simulation.update(audio_time)
            out = self.config.output

            sent.append(phases_message(result.snapshot))
            notes = notes_message(result.notes)
            if notes is not None:
                sent.append(notes)

            if out.emit_visualization and (
                    self._last_visualization is None
                    or audio_time - self._last_visualization >= out.visualization_interval):
                self._last_visualization = audio_time
                viz = self.simulation.visualization_snapshot(audio_time, result.snapshot)
                sent.append(visualization_message(viz))

            if out.emit_environment and result.environment_changed:
                sent.append(environment_message(self.simulation.environment.state))

            self.ticks += 1
        except Exception:
            self.tick_errors += 1
            logger.exception("Tick at audio time %.3f failed; continuing", audio_time)
            return []

        for message in sent:
            self._emit(message)
        return sent

    # ------------------------------------------------------------------
    # Threaded loop
    # ------------------------------------------------------------------

    def _drain(self, timeout: Optional[float] = None) -> bool:
        """
        Process queued messages, blocking up to `timeout` for the first one.

        Returns:
            True if an awaited audio time arrived and ticked
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            try:
                if remaining is None:
                    message = self.inbox.get_nowait()
                else:
                    message = self.inbox.get(timeout=remaining)
            except queue.Empty:
                return False

            is_audio_time = isinstance(message, dict) and message.get("type") == MessageType.AUDIO_TIME.value
            if is_audio_time and not self._awaiting_audio_time:
                logger.debug("Dropping unsolicited audio time %r", message.get("audioTime"))
                continue

            self.handle_message(message)
            if is_audio_time and not self._awaiting_audio_time:
                return True

    def run_once(self):
        """One period of the loop: drain control, request time, tick"""
        self._drain()
        if not self.running:
            return

        self.request_audio_time()
        if self._drain(timeout=self.config.clock.response_timeout):
            return

        # No reply within the timeout
        self._awaiting_audio_time = False
        if not self.running:
            return
        estimate = self.clock.missed()
        if estimate is None:
            self.stalled_ticks += 1
            return
        self.tick(estimate)

    def _loop(self):
        period = self.config.dt
        next_tick = time.monotonic()
        while not self._shutdown.is_set():
            self.run_once()
            next_tick += period
            delay = next_tick - time.monotonic()
            if delay < 0:
                # Fell behind; resynchronise rather than bursting
                next_tick = time.monotonic()
                delay = 0.0
            self._shutdown.wait(delay)

    def start_thread(self) -> threading.Thread:
        """Run the loop on a daemon thread"""
        if self._thread is not None and self._thread.is_alive():
            return self._thread
        self._shutdown.clear()
        self._thread = threading.Thread(target=self._loop, name="chorus-tick-driver", daemon=True)
        self._thread.start()
        return self._thread

    def shutdown(self, timeout: float = 1.0):
        """Stop ticking and join the loop thread"""
        self.stop()
        self._shutdown.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
