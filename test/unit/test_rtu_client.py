"""
Unit tests for the Qt RTU adapter.

Framing and timing belong to QModbusRtuSerialClient, so these tests cover the
seams around it: connection parameters, data-unit mapping, how finished
QModbusReply objects become ModbusReply results, and open/submit failures.
"""
from __future__ import annotations

import pytest

QtCore = pytest.importorskip("PySide6.QtCore")
QtSerialBus = pytest.importorskip("PySide6.QtSerialBus")
QtSerialPort = pytest.importorskip("PySide6.QtSerialPort")

from daq.modbus import ModbusExceptionResponse, read_input_registers, write_register, write_registers
from daq.rtu_client import QtModbusRtuTransport, complete_reply, connection_parameters
from daq.transport import ModbusReply, TransportError
from shared.models import SerialSettings

QModbusDataUnit = QtSerialBus.QModbusDataUnit
QModbusDevice = QtSerialBus.QModbusDevice
QSerialPort = QtSerialPort.QSerialPort


@pytest.fixture(scope="module")
def qt_app():
    app = QtCore.QCoreApplication.instance()
    if app is None:
        app = QtCore.QCoreApplication([])
    return app


class _RawResult:
    def __init__(self, code: int) -> None:
        self._code = code

    def exceptionCode(self) -> int:
        return self._code


class StubReply:
    """Finished QModbusReply stand-in."""

    def __init__(self, error, *, values=(), exception_code: int = 0, message: str = "") -> None:
        self._error = error
        self._unit = QModbusDataUnit(QModbusDataUnit.RegisterType.InputRegisters, 0, list(values))
        self._raw = _RawResult(exception_code)
        self._message = message
        self.deleted = False

    def error(self):
        return self._error

    def result(self):
        return self._unit

    def rawResult(self):
        return self._raw

    def errorString(self) -> str:
        return self._message

    def deleteLater(self) -> None:
        self.deleted = True


def _value(enum_value) -> int:
    return int(getattr(enum_value, "value", enum_value))


def test_connection_parameters_mapping():
    settings = SerialSettings(port="COM9", baud_rate=9600, data_bits=7, parity="Even", stop_bits=2)
    params = dict(connection_parameters(settings))
    P = QModbusDevice.ConnectionParameter
    assert params[P.SerialPortNameParameter] == "COM9"
    assert params[P.SerialBaudRateParameter] == 9600
    assert params[P.SerialDataBitsParameter] == 7
    assert params[P.SerialParityParameter] == _value(QSerialPort.Parity.EvenParity)
    assert params[P.SerialStopBitsParameter] == _value(QSerialPort.StopBits.TwoStop)


def test_data_unit_for_reads_and_writes():
    read = QtModbusRtuTransport.data_unit(read_input_registers(246, 0x00C8, 8))
    assert read.registerType() == QModbusDataUnit.RegisterType.InputRegisters
    assert read.startAddress() == 0x00C8
    assert read.valueCount() == 8

    write = QtModbusRtuTransport.data_unit(write_registers(1, 0x0103, (0x0000, 0x4120)))
    assert write.registerType() == QModbusDataUnit.RegisterType.HoldingRegisters
    assert write.startAddress() == 0x0103
    assert list(write.values()) == [0x0000, 0x4120]


def test_complete_read_reply():
    reply = ModbusReply(read_input_registers(246, 0x00C8, 2))
    complete_reply(reply, StubReply(QModbusDevice.Error.NoError, values=(7, 8)))
    assert reply.ok
    assert reply.registers == [7, 8]


def test_complete_write_reply_has_no_registers():
    reply = ModbusReply(write_register(1, 0x0100, 1))
    complete_reply(reply, StubReply(QModbusDevice.Error.NoError, values=(1,)))
    assert reply.ok
    assert reply.registers == []


def test_protocol_error_becomes_exception_response():
    reply = ModbusReply(read_input_registers(5, 0x0000, 1))
    complete_reply(reply, StubReply(QModbusDevice.Error.ProtocolError, exception_code=0x02))
    assert reply.finished and not reply.ok
    assert isinstance(reply.exception, ModbusExceptionResponse)
    assert reply.exception.code == 0x02
    assert "Illegal data address" in reply.error


def test_timeout_error_names_the_request():
    reply = ModbusReply(read_input_registers(247, 0x00C8, 8))
    complete_reply(reply, StubReply(QModbusDevice.Error.TimeoutError, message="Response timeout."))
    assert not reply.ok
    assert "Response timeout." in reply.error
    assert "unit 247" in reply.error


def test_client_timeout_and_retries(qt_app):
    transport = QtModbusRtuTransport(SerialSettings(port="COM9"))
    assert transport.client.timeout() == 250
    assert transport.client.numberOfRetries() == 1
    custom = QtModbusRtuTransport(SerialSettings(port="COM9"), timeout_ms=500, retries=3)
    assert custom.client.timeout() == 500
    assert custom.client.numberOfRetries() == 3


def test_open_requires_port(qt_app):
    with pytest.raises(TransportError):
        QtModbusRtuTransport(SerialSettings(port="")).open()


def test_open_missing_port_is_transport_error(qt_app):
    transport = QtModbusRtuTransport(SerialSettings(port="/nonexistent/ttyLOSS0"))
    with pytest.raises(TransportError, match="ttyLOSS0"):
        transport.open()
    assert not transport.is_open


def test_submit_requires_open_port(qt_app):
    transport = QtModbusRtuTransport(SerialSettings(port="COM9"))
    with pytest.raises(TransportError):
        transport.submit(read_input_registers(1, 0, 1))


def test_finished_signal_completes_pending_reply(qt_app):
    transport = QtModbusRtuTransport(SerialSettings(port="COM9"))
    reply = ModbusReply(read_input_registers(1, 0, 1))
    qreply = StubReply(QModbusDevice.Error.NoError, values=(42,))
    transport._pending[7] = (qreply, reply)
    assert transport.pending == 1

    transport._on_finished(7)
    assert reply.registers == [42]
    assert qreply.deleted
    assert transport.pending == 0
    transport._on_finished(7)


def test_close_drops_pending(qt_app):
    transport = QtModbusRtuTransport(SerialSettings(port="COM9"))
    transport._pending[1] = (StubReply(QModbusDevice.Error.NoError), ModbusReply(read_input_registers(1, 0, 1)))
    transport.close()
    assert transport.pending == 0
    assert not transport.is_open
