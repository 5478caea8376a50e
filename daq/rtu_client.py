"""Modbus RTU master built on Qt's serial bus client.

QModbusRtuSerialClient owns framing, CRC, the reply timeout, retries and the
one-frame-on-the-wire queue. This adapter maps :class:`ModbusRequest` onto
QModbusDataUnit and finishes :class:`ModbusReply` handles from
``QModbusReply.finished``, which Qt delivers on the event loop of the thread
that owns the client.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Tuple

from PySide6.QtSerialBus import QModbusDataUnit, QModbusDevice, QModbusReply, QModbusRtuSerialClient
from PySide6.QtSerialPort import QSerialPort

from shared.models import SerialSettings

from .modbus import ModbusExceptionResponse, ModbusRequest
from .transport import DEFAULT_RETRIES, DEFAULT_TIMEOUT_MS, ModbusReply, ModbusTransport, TransportError

_LOGGER = logging.getLogger(__name__)

_PARITY = {
    "None": QSerialPort.Parity.NoParity,
    "Even": QSerialPort.Parity.EvenParity,
    "Odd": QSerialPort.Parity.OddParity,
}
_STOP_BITS = {
    1.0: QSerialPort.StopBits.OneStop,
    1.5: QSerialPort.StopBits.OneAndHalfStop,
    2.0: QSerialPort.StopBits.TwoStop,
}
_FLOW_CONTROL = {
    "None": QSerialPort.FlowControl.NoFlowControl,
    "RTS/CTS": QSerialPort.FlowControl.HardwareControl,
    "XON/XOFF": QSerialPort.FlowControl.SoftwareControl,
}


def _as_int(value: Any) -> int:
    return int(getattr(value, "value", value))


def connection_parameters(settings: SerialSettings) -> List[Tuple[QModbusDevice.ConnectionParameter, Any]]:
    """Map SerialSettings onto QModbusDevice connection parameters."""
    P = QModbusDevice.ConnectionParameter
    return [
        (P.SerialPortNameParameter, settings.port),
        (P.SerialBaudRateParameter, int(settings.baud_rate)),
        (P.SerialDataBitsParameter, int(settings.data_bits)),
        (P.SerialParityParameter, _as_int(_PARITY[settings.parity])),
        (P.SerialStopBitsParameter, _as_int(_STOP_BITS[settings.stop_bits])),
    ]


def complete_reply(reply: ModbusReply, qreply: QModbusReply) -> None:
    """Finish ``reply`` from a finished QModbusReply."""
    request = reply.request
    error = qreply.error()
    if error == QModbusDevice.Error.NoError:
        reply.set_result(list(qreply.result().values()) if request.is_read else [])
    elif error == QModbusDevice.Error.ProtocolError:
        code = _as_int(qreply.rawResult().exceptionCode())
        exc = ModbusExceptionResponse(request.unit, request.function, code)
        reply.set_error(str(exc), exc)
    else:
        reply.set_error(f"{qreply.errorString()} ({request.describe()})")


class QtModbusRtuTransport(ModbusTransport):
    """ModbusTransport over QModbusRtuSerialClient (250 ms timeout, one retry)."""

    def __init__(
        self,
        settings: SerialSettings,
        *,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        retries: int = DEFAULT_RETRIES,
    ) -> None:
        self._settings = settings
        self._client = QModbusRtuSerialClient()
        self._client.setTimeout(int(timeout_ms))
        self._client.setNumberOfRetries(max(0, int(retries)))
        # Keeps QModbusReply wrappers alive until ``finished`` fires.
        self._pending: Dict[int, Tuple[QModbusReply, ModbusReply]] = {}

    @property
    def client(self) -> QModbusRtuSerialClient:
        return self._client

    # ---- lifecycle ----

    def open(self) -> None:
        if not self._settings.port:
            raise TransportError("No serial port configured.")
        if self._client.state() != QModbusDevice.State.UnconnectedState:
            self.close()
        for parameter, value in connection_parameters(self._settings):
            self._client.setConnectionParameter(parameter, value)
        self._apply_flow_control()
        if not self._client.connectDevice():
            raise TransportError(f"Failed to open serial port {self._settings.port}: {self._client.errorString()}")
        _LOGGER.info(
            "Opened %s at %d baud (%d%s%s)",
            self._settings.port,
            self._settings.baud_rate,
            self._settings.data_bits,
            self._settings.parity[0],
            self._settings.stop_bits,
        )

    def _apply_flow_control(self) -> None:
        # The client has no flow-control parameter; set it on its serial port.
        port = self._client.device()
        flow = _FLOW_CONTROL[self._settings.flow_control]
        if hasattr(port, "setFlowControl"):
            port.setFlowControl(flow)
        elif flow != QSerialPort.FlowControl.NoFlowControl:
            _LOGGER.warning("Flow control %s not applied: serial port not reachable", self._settings.flow_control)

    def close(self) -> None:
        if self._pending:
            _LOGGER.debug("Dropping %d pending request(s) on close", len(self._pending))
        self._pending.clear()
        if self._client.state() != QModbusDevice.State.UnconnectedState:
            self._client.disconnectDevice()

    @property
    def is_open(self) -> bool:
        return self._client.state() == QModbusDevice.State.ConnectedState

    @property
    def pending(self) -> int:
        return len(self._pending)

    # ---- requests ----

    @staticmethod
    def data_unit(request: ModbusRequest) -> QModbusDataUnit:
        if request.is_read:
            return QModbusDataUnit(QModbusDataUnit.RegisterType.InputRegisters, request.address, request.count)
        return QModbusDataUnit(QModbusDataUnit.RegisterType.HoldingRegisters, request.address, list(request.values))

    def submit(self, request: ModbusRequest) -> ModbusReply:
        if not self.is_open:
            raise TransportError("Failed to send Modbus request: port is not open.")
        unit = self.data_unit(request)
        if request.is_read:
            qreply = self._client.sendReadRequest(unit, request.unit)
        else:
            qreply = self._client.sendWriteRequest(unit, request.unit)
        if qreply is None:
            raise TransportError(f"Failed to send Modbus request: {self._client.errorString()}")

        reply = ModbusReply(request)
        if qreply.isFinished():
            complete_reply(reply, qreply)
            qreply.deleteLater()
            return reply
        key = id(qreply)
        self._pending[key] = (qreply, reply)
        qreply.finished.connect(lambda key=key: self._on_finished(key))
        return reply

    def _on_finished(self, key: int) -> None:
        entry = self._pending.pop(key, None)
        if entry is None:
            return
        qreply, reply = entry
        complete_reply(reply, qreply)
        qreply.deleteLater()


__all__ = ["QtModbusRtuTransport", "complete_reply", "connection_parameters"]
