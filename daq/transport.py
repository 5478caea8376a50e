"""
Request/reply transports for the field bus.

The polling engine never blocks on the wire. It submits a request, gets a
:class:`ModbusReply` handle back immediately, and registers a completion
callback. Replies finish on the same event loop that issued the request, so
callbacks never run concurrently with the code that submitted them.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

try:
    import serial
    import serial.tools.list_ports
except ImportError:
    serial = None

from .modbus import ModbusRequest

_LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 250
DEFAULT_RETRIES = 1


class TransportError(RuntimeError):
    """Link could not be opened or a request could not be sent."""


ReplyCallback = Callable[["ModbusReply"], None]


class ModbusReply:
    """Handle for an in-flight request; finished exactly once."""

    def __init__(self, request: ModbusRequest) -> None:
        self.request = request
        self._finished = False
        self._registers: List[int] = []
        self._error: Optional[str] = None
        self._exception: Optional[BaseException] = None
        self._callbacks: List[ReplyCallback] = []

    @property
    def finished(self) -> bool:
        return self._finished

    @property
    def ok(self) -> bool:
        return self._finished and self._error is None

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def exception(self) -> Optional[BaseException]:
        return self._exception

    @property
    def registers(self) -> List[int]:
        return list(self._registers)

    def add_done_callback(self, callback: ReplyCallback) -> None:
        """Run ``callback`` on completion, or right away if already finished."""
        if self._finished:
            callback(self)
        else:
            self._callbacks.append(callback)

    def set_result(self, registers: List[int]) -> None:
        if self._finished:
            return
        self._registers = [int(r) for r in registers]
        self._finish()

    def set_error(self, message: str, exc: Optional[BaseException] = None) -> None:
        if self._finished:
            return
        self._error = message
        self._exception = exc
        self._finish()

    def _finish(self) -> None:
        self._finished = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback(self)


class ModbusTransport(ABC):
    """Abstract master side of the bus."""

    @abstractmethod
    def open(self) -> None:
        """Acquire the link. Raises TransportError on failure."""
        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        raise NotImplementedError

    @property
    @abstractmethod
    def is_open(self) -> bool:
        raise NotImplementedError

    @abstractmethod
    def submit(self, request: ModbusRequest) -> ModbusReply:
        """Queue ``request``. Raises TransportError if it cannot be sent."""
        raise NotImplementedError

    def service(self) -> None:
        """Deliver finished replies. Transports driven by an event loop have nothing to do."""
        return None

    @property
    def pending(self) -> int:
        return 0


def list_serial_ports() -> List[dict]:
    """Describe serial ports visible to pyserial, for a port picker."""
    if serial is None:
        raise RuntimeError("pyserial is not installed; serial ports cannot be enumerated.")
    ports = []
    try:
        for p in serial.tools.list_ports.comports():
            ports.append(
                {
                    "device": p.device,
                    "description": p.description,
                    "hwid": p.hwid,
                    "vid": p.vid,
                    "pid": p.pid,
                }
            )
    except OSError as e:
        _LOGGER.error("Failed to scan serial ports: %s", e)
    return sorted(ports, key=lambda item: str(item["device"]))


__all__ = [
    "TransportError",
    "ModbusReply",
    "ModbusTransport",
    "list_serial_ports",
    "DEFAULT_TIMEOUT_MS",
    "DEFAULT_RETRIES",
]
