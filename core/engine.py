"""PollingEngine - Pure-Python field-bus polling state machine.

The engine owns the transport, the per-device health flags, the recording
switch and the series store. It has no timer of its own: the owner calls
:meth:`PollingEngine.tick` at the poll cadence. Replies complete on the
owner's event loop (or from :meth:`PollingEngine.service` for transports that
need pumping). All callbacks run on the caller's thread, so nothing here is
locked.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Callable, Deque, Dict, List, Optional

from daq.modbus import ModbusRequest
from daq.register_map import (
    GeneratorReading,
    SensorReading,
    decode_generator_block,
    decode_sensor_block,
    generator_read_request,
    sensor_read_request,
    stop_request,
    sweep_arm_requests,
)
from daq.simulation import ResonanceSimulator
from daq.transport import ModbusReply, ModbusTransport, TransportError
from shared.models import (
    SENSOR_ROLES,
    DeviceAddresses,
    DeviceRole,
    Parameter,
    SerialSettings,
    SweepConfig,
)
from shared.series import SeriesStore

logger = logging.getLogger(__name__)


class EngineState(Enum):
    IDLE = auto()
    CONNECTING = auto()
    POLLING = auto()


class EngineEventType(Enum):
    """Event types emitted by PollingEngine."""
    STATE_CHANGED = auto()
    DATA_READY = auto()
    ERROR = auto()
    HEALTH_CHANGED = auto()
    RECORDING_CHANGED = auto()
    SWEEP_ARMED = auto()
    SWEEP_FINISHED = auto()


@dataclass
class EngineEvent:
    """Event payload from PollingEngine."""
    event_type: EngineEventType
    data: Any = None


EngineListener = Callable[[EngineEvent], None]
TransportFactory = Callable[[SerialSettings], ModbusTransport]
ReplyHandler = Callable[[DeviceRole, ModbusReply], None]


def qt_rtu_transport(settings: SerialSettings) -> ModbusTransport:
    """Default transport: the Qt serial bus RTU client, imported on first use."""
    from daq.rtu_client import QtModbusRtuTransport

    return QtModbusRtuTransport(settings)


def sweep_progress(freq: float, start_freq: float, end_freq: float, finished: bool = False) -> float:
    """Percent of the sweep covered at ``freq``; 0 outside the range, 100 once finished."""
    if finished:
        return 100.0
    span = end_freq - start_freq
    if span == 0:
        return 0.0
    lo, hi = min(start_freq, end_freq), max(start_freq, end_freq)
    if freq < lo or freq > hi:
        return 0.0
    return 100.0 * (freq - start_freq) / span


class PollingEngine:
    """Sequential, non-blocking poller for two sensors and an optional generator.

    Each tick issues one read per device role. A role whose previous request
    has not completed is skipped for that tick. Sensor samples are appended to
    the series store only while recording is on and that sensor reports ready;
    the last-value table is updated on every decoded reply.

    In simulation mode no transport is opened and each tick feeds readings
    from a :class:`ResonanceSimulator` through the same decode paths.
    """

    def __init__(
        self,
        *,
        simulation: bool = False,
        transport_factory: Optional[TransportFactory] = None,
        simulator: Optional[ResonanceSimulator] = None,
        store: Optional[SeriesStore] = None,
    ) -> None:
        self._simulation = bool(simulation)
        self._transport_factory: TransportFactory = transport_factory or qt_rtu_transport
        self._simulator = simulator or (ResonanceSimulator() if simulation else None)
        self._store = store or SeriesStore()

        self._listeners: Dict[int, EngineListener] = {}
        self._next_token: int = 0

        self._state = EngineState.IDLE
        self._transport: Optional[ModbusTransport] = None
        self._addresses: Optional[DeviceAddresses] = None
        self._inflight: Dict[DeviceRole, ModbusReply] = {}
        self._health: Dict[DeviceRole, bool] = {role: False for role in DeviceRole}
        self._ready: Dict[DeviceRole, bool] = {role: False for role in SENSOR_ROLES}

        self._recording = False
        self._finished = False
        self._sweep: Optional[SweepConfig] = None
        self._generator_writes: Optional[Deque[ModbusRequest]] = None
        self._generator_done: Optional[Callable[[], None]] = None
        self._write_sequence = 0
        self._generator_freq = 0.0
        self._generator_cycles = 0

        self._ticks = 0
        self._requests = 0
        self._failures = 0
        self._skipped = 0

    # -------------------------------------------------------------------------
    # Listener Management
    # -------------------------------------------------------------------------

    def add_listener(self, callback: EngineListener) -> int:
        """Register a listener for engine events and return its removal token."""
        token = self._next_token
        self._next_token += 1
        self._listeners[token] = callback
        return token

    def remove_listener(self, token: int) -> None:
        self._listeners.pop(token, None)

    def _emit(self, event_type: EngineEventType, data: Any = None) -> None:
        event = EngineEvent(event_type=event_type, data=data)
        for listener in list(self._listeners.values()):
            try:
                listener(event)
            except Exception as exc:
                logger.debug("Engine listener error: %s", exc)

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def simulation(self) -> bool:
        return self._simulation

    @property
    def simulator(self) -> Optional[ResonanceSimulator]:
        return self._simulator

    @property
    def store(self) -> SeriesStore:
        return self._store

    @property
    def addresses(self) -> Optional[DeviceAddresses]:
        return self._addresses

    @property
    def recording(self) -> bool:
        return self._recording

    @property
    def generation_finished(self) -> bool:
        return self._finished

    @property
    def sweep(self) -> Optional[SweepConfig]:
        return self._sweep

    @property
    def generator_frequency(self) -> float:
        return self._generator_freq

    @property
    def generator_cycles(self) -> int:
        return self._generator_cycles

    @property
    def arming(self) -> bool:
        return self._generator_writes is not None

    def is_working(self) -> bool:
        return self._state == EngineState.POLLING

    def is_healthy(self, role: DeviceRole) -> bool:
        return self._health.get(DeviceRole(role), False)

    def ready(self, role: DeviceRole) -> bool:
        return self._ready.get(DeviceRole(role), False)

    def series(self, role: DeviceRole, parameter: Parameter):
        return self._store.series(role, parameter)

    def last_value(self, device_index: int, param_index: int) -> float:
        return self._store.last_value(device_index, param_index)

    def progress(self) -> float:
        if self._finished:
            return 100.0
        if self._sweep is None:
            return 0.0
        return sweep_progress(self._generator_freq, self._sweep.start_freq, self._sweep.end_freq)

    def stats(self) -> Dict[str, Any]:
        return {
            "state": self._state.name,
            "ticks": self._ticks,
            "requests": self._requests,
            "failures": self._failures,
            "skipped": self._skipped,
            "in_flight": sorted(role.name for role in self._inflight),
            "recording": self._recording,
            "series": self._store.lengths(),
        }

    # -------------------------------------------------------------------------
    # Connection Lifecycle
    # -------------------------------------------------------------------------

    def start(self, serial_settings: SerialSettings, addresses: DeviceAddresses) -> bool:
        """Open the link and begin polling. Returns False if the link cannot be opened."""
        if self._state != EngineState.IDLE:
            self.stop()
        self._addresses = addresses
        self._set_state(EngineState.CONNECTING)

        if self._simulation:
            self._simulator.restart()
            logger.info("Simulation started")
            self._set_state(EngineState.POLLING)
            return True

        transport = self._transport_factory(serial_settings)
        try:
            transport.open()
        except TransportError as exc:
            logger.warning("Connection failed: %s", exc)
            self._emit(EngineEventType.ERROR, str(exc))
            self._set_state(EngineState.IDLE)
            return False
        self._transport = transport
        logger.info(
            "Connected on %s (sensors %d/%d, generator %s)",
            serial_settings.port,
            addresses.sensor_a,
            addresses.sensor_b,
            addresses.generator if addresses.generator is not None else "none",
        )
        self._set_state(EngineState.POLLING)
        return True

    def stop(self) -> None:
        """Close the link and return to IDLE. Safe to call repeatedly."""
        if self._state == EngineState.IDLE:
            return
        if self._transport is not None:
            self._transport.close()
            self._transport = None
        self._inflight.clear()
        self._generator_writes = None
        self._generator_done = None
        for role in DeviceRole:
            self._set_health(role, False)
        logger.info("Disconnected")
        self._set_state(EngineState.IDLE)

    def _set_state(self, state: EngineState) -> None:
        if state == self._state:
            return
        self._state = state
        self._emit(EngineEventType.STATE_CHANGED, state)

    # -------------------------------------------------------------------------
    # Polling Cycle
    # -------------------------------------------------------------------------

    def tick(self) -> None:
        """Issue one read per device role (one polling cycle)."""
        if self._state != EngineState.POLLING:
            return
        self._ticks += 1

        if self._simulation:
            frame = self._simulator.sample()
            # Synthetic readings share one instant, so the frequency goes first.
            self._handle_generator(frame.generator)
            self._handle_sensor(DeviceRole.SENSOR_A, frame.sensor_a)
            self._handle_sensor(DeviceRole.SENSOR_B, frame.sensor_b)
            return

        for role in self._addresses.roles():
            if role == DeviceRole.GENERATOR and self._generator_writes is not None:
                continue
            if role in self._inflight:
                self._skipped += 1
                logger.debug("Skipping %s: previous request still in flight", role.name)
                continue
            unit = self._addresses.address_of(role)
            if role.is_sensor:
                request = sensor_read_request(unit)
            else:
                request = generator_read_request(unit)
            self._submit(role, request, self._on_read_reply)
            if self._state != EngineState.POLLING:
                return

    def service(self) -> None:
        """Pump transport I/O; completion callbacks run from here."""
        if self._transport is not None:
            self._transport.service()

    def _submit(self, role: DeviceRole, request: ModbusRequest, handler: ReplyHandler) -> bool:
        try:
            reply = self._transport.submit(request)
        except TransportError as exc:
            self._report_failure(role, str(exc))
            return False
        self._requests += 1
        self._inflight[role] = reply
        reply.add_done_callback(lambda r, role=role: handler(role, r))
        return True

    def _take_reply(self, role: DeviceRole, reply: ModbusReply) -> bool:
        # Replies from before a stop() or restart are dropped.
        if self._inflight.get(role) is not reply:
            return False
        del self._inflight[role]
        return self._state == EngineState.POLLING

    def _on_read_reply(self, role: DeviceRole, reply: ModbusReply) -> None:
        if not self._take_reply(role, reply):
            return
        if not reply.ok:
            self._report_failure(role, reply.error or "request failed")
        else:
            try:
                if role.is_sensor:
                    self._handle_sensor(role, decode_sensor_block(reply.registers))
                else:
                    self._handle_generator(decode_generator_block(reply.registers))
            except ValueError as exc:
                self._report_failure(role, f"bad register block: {exc}")
        if role == DeviceRole.GENERATOR and self._generator_writes is not None:
            self._next_generator_write()

    def _handle_sensor(self, role: DeviceRole, reading: SensorReading) -> None:
        self._set_health(role, True)
        self._ready[role] = reading.ready
        self._store.set_last(role, Parameter.AMPLITUDE, reading.amplitude)
        self._store.set_last(role, Parameter.DISTANCE, reading.gap)
        self._emit(EngineEventType.DATA_READY, (role, Parameter.AMPLITUDE, reading.amplitude))
        self._emit(EngineEventType.DATA_READY, (role, Parameter.DISTANCE, reading.gap))

        if self._recording and reading.ready:
            self._store.append(role, Parameter.AMPLITUDE, reading.amplitude)
            self._store.append(role, Parameter.FREQUENCY, self._generator_freq)
            self._store.append(role, Parameter.DISTANCE, reading.gap)

        if reading.finished and not self._finished:
            self._finished = True
            logger.info("Generation finished (reported by %s)", role.name)
            self._emit(EngineEventType.SWEEP_FINISHED, role)

    def _handle_generator(self, reading: GeneratorReading) -> None:
        self._set_health(DeviceRole.GENERATOR, True)
        self._generator_freq = float(reading.frequency)
        self._generator_cycles = int(reading.cycles)
        # One generator drives both sensors.
        for role in SENSOR_ROLES:
            self._store.set_last(role, Parameter.FREQUENCY, self._generator_freq)
        self._emit(EngineEventType.DATA_READY, (DeviceRole.GENERATOR, Parameter.FREQUENCY, self._generator_freq))

    def _report_failure(self, role: DeviceRole, message: str) -> None:
        self._failures += 1
        text = f"{role.name}: {message}"
        logger.warning("Request failed, %s", text)
        self._set_health(role, False)
        self._emit(EngineEventType.ERROR, text)

    def _set_health(self, role: DeviceRole, ok: bool) -> None:
        if self._health.get(role) == ok:
            return
        self._health[role] = ok
        self._emit(EngineEventType.HEALTH_CHANGED, (role, ok))

    # -------------------------------------------------------------------------
    # Recording
    # -------------------------------------------------------------------------

    def start_recording(self) -> None:
        if self._simulation and self._simulator is not None:
            self._simulator.restart()
        if self._recording:
            return
        self._recording = True
        logger.info("Recording started")
        self._emit(EngineEventType.RECORDING_CHANGED, True)

    def stop_recording(self) -> None:
        if not self._recording:
            return
        self._recording = False
        logger.info("Recording stopped")
        self._emit(EngineEventType.RECORDING_CHANGED, False)

    def clear_data(self) -> None:
        self._store.clear()
        self._finished = False

    # -------------------------------------------------------------------------
    # Sweep Control
    # -------------------------------------------------------------------------

    def arm_sweep(self, config: SweepConfig) -> bool:
        """Write ``config`` to the generator. SWEEP_ARMED follows once every write landed."""
        if self._state != EngineState.POLLING:
            logger.warning("Cannot arm sweep: engine is not polling")
            return False
        self._sweep = config
        self._finished = False

        if self._simulation:
            self._simulator.apply_sweep(config)
            self._log_armed(config)
            self._emit(EngineEventType.SWEEP_ARMED, config)
            return True

        if self._addresses.generator is None:
            message = "No generator configured"
            logger.warning("Cannot arm sweep: %s", message)
            self._emit(EngineEventType.ERROR, message)
            return False

        def armed() -> None:
            self._log_armed(config)
            self._emit(EngineEventType.SWEEP_ARMED, config)

        self._run_generator_writes(sweep_arm_requests(self._addresses.generator, config), armed)
        return True

    def stop_sweep(self) -> bool:
        """Write mode = stop to the generator."""
        if self._state != EngineState.POLLING:
            return False
        if self._simulation:
            self._simulator.end_freq = self._simulator.frequency()
            logger.info("Sweep stopped")
            return True
        if self._addresses.generator is None:
            return False
        self._run_generator_writes([stop_request(self._addresses.generator)], lambda: logger.info("Sweep stopped"))
        return True

    def _log_armed(self, config: SweepConfig) -> None:
        logger.info(
            "Sweep armed: %.2f -> %.2f Hz at %.2f Hz/min, %d cycle(s), amplitude %.1f%%",
            config.start_freq,
            config.end_freq,
            config.sweep_speed,
            config.cycles,
            config.amplitude_percent,
        )

    def _run_generator_writes(self, requests: List[ModbusRequest], on_done: Callable[[], None]) -> None:
        # The sequence owns the generator slot; polling resumes when it ends.
        # A newer sequence supersedes whatever an older one still has in flight.
        self._write_sequence += 1
        self._generator_writes = deque(requests)
        self._generator_done = on_done
        if DeviceRole.GENERATOR not in self._inflight:
            self._next_generator_write()

    def _next_generator_write(self) -> None:
        if self._generator_writes is None:
            return
        if not self._generator_writes:
            done = self._generator_done
            self._generator_writes = None
            self._generator_done = None
            if done is not None:
                done()
            return
        request = self._generator_writes.popleft()
        sequence = self._write_sequence
        handler = lambda role, reply: self._on_write_reply(role, reply, sequence)
        if not self._submit(DeviceRole.GENERATOR, request, handler):
            self._generator_writes = None
            self._generator_done = None

    def _on_write_reply(self, role: DeviceRole, reply: ModbusReply, sequence: int) -> None:
        if not self._take_reply(role, reply):
            return
        if sequence != self._write_sequence:
            if not reply.ok:
                logger.debug("Ignoring failure of superseded write (%s): %s", reply.request.describe(), reply.error)
            self._next_generator_write()
            return
        if not reply.ok:
            self._generator_writes = None
            self._generator_done = None
            self._report_failure(role, f"generator write failed ({reply.request.describe()}): {reply.error}")
            return
        self._set_health(role, True)
        self._next_generator_write()


__all__ = [
    "EngineState",
    "EngineEventType",
    "EngineEvent",
    "PollingEngine",
    "sweep_progress",
]
