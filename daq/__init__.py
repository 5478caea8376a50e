"""Field-bus side: requests, register map, transports and the simulator.

The Qt RTU client lives in :mod:`daq.rtu_client` and is imported on demand so
the rest of the package stays usable without PySide6.
"""

from .modbus import ModbusError, ModbusExceptionResponse, ModbusRequest
from .simulation import ResonanceSimulator
from .transport import ModbusReply, ModbusTransport, TransportError, list_serial_ports

__all__ = [
    "ModbusError",
    "ModbusExceptionResponse",
    "ModbusRequest",
    "ModbusReply",
    "ModbusTransport",
    "TransportError",
    "ResonanceSimulator",
    "list_serial_ports",
]
