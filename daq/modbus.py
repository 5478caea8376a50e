"""Modbus requests and register-pair codecs for the field devices.

Framing, CRC and retries belong to the RTU client; this module only describes
what to ask for. 32-bit quantities occupy two consecutive registers, low word
first.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Sequence, Tuple

import numpy as np


class FunctionCode(IntEnum):
    READ_INPUT_REGISTERS = 0x04
    WRITE_SINGLE_REGISTER = 0x06
    WRITE_MULTIPLE_REGISTERS = 0x10


_MAX_READ_COUNT = 125
_MAX_WRITE_COUNT = 123

EXCEPTION_MESSAGES = {
    0x01: "Illegal function",
    0x02: "Illegal data address",
    0x03: "Illegal data value",
    0x04: "Server device failure",
    0x05: "Acknowledge",
    0x06: "Server device busy",
    0x08: "Memory parity error",
    0x0A: "Gateway path unavailable",
    0x0B: "Gateway target device failed to respond",
}


class ModbusError(RuntimeError):
    """Base class for protocol-level failures."""


class ModbusExceptionResponse(ModbusError):
    """Device answered with an exception code."""

    def __init__(self, unit: int, function: int, code: int) -> None:
        self.unit = unit
        self.function = function
        self.code = code
        message = EXCEPTION_MESSAGES.get(code, "Unknown exception")
        super().__init__(f"Device {unit} rejected function 0x{function:02X}: {message} (code {code})")


# ----------------------------
# 32-bit register pairs
# ----------------------------

def registers_to_uint32(low: int, high: int) -> int:
    return ((int(high) & 0xFFFF) << 16) | (int(low) & 0xFFFF)


def uint32_to_registers(value: int) -> Tuple[int, int]:
    value = int(value)
    if not 0 <= value <= 0xFFFFFFFF:
        raise ValueError(f"value {value} does not fit in 32 bits")
    return value & 0xFFFF, (value >> 16) & 0xFFFF


def registers_to_float(low: int, high: int) -> np.float32:
    """Reinterpret a (low, high) register pair as an IEEE-754 single.

    The result stays a ``np.float32`` so NaN payloads survive a trip back
    through :func:`float_to_registers`.
    """
    bits = np.array([registers_to_uint32(low, high)], dtype=np.uint32)
    return bits.view(np.float32)[0]


def float_to_registers(value: float) -> Tuple[int, int]:
    single = value if isinstance(value, np.float32) else np.float32(value)
    (bits,) = np.frombuffer(single.tobytes(), dtype=np.uint32)
    return uint32_to_registers(int(bits))


# ----------------------------
# Requests
# ----------------------------

@dataclass(frozen=True)
class ModbusRequest:
    """One master request. ``count`` applies to reads, ``values`` to writes."""

    unit: int
    function: FunctionCode
    address: int
    count: int = 0
    values: Tuple[int, ...] = ()

    def __post_init__(self) -> None:
        if not 0 <= self.unit <= 247:
            raise ValueError(f"unit must be 0..247, got {self.unit}")
        if not 0 <= self.address <= 0xFFFF:
            raise ValueError(f"address must be 0..0xFFFF, got {self.address}")
        object.__setattr__(self, "function", FunctionCode(self.function))
        object.__setattr__(self, "values", tuple(int(v) & 0xFFFF for v in self.values))
        if self.function == FunctionCode.READ_INPUT_REGISTERS:
            if not 1 <= self.count <= _MAX_READ_COUNT:
                raise ValueError(f"read count must be 1..{_MAX_READ_COUNT}, got {self.count}")
        elif self.function == FunctionCode.WRITE_SINGLE_REGISTER:
            if len(self.values) != 1:
                raise ValueError("write single register takes exactly one value")
        elif not 1 <= len(self.values) <= _MAX_WRITE_COUNT:
            raise ValueError(f"write multiple takes 1..{_MAX_WRITE_COUNT} values")

    @property
    def is_read(self) -> bool:
        return self.function == FunctionCode.READ_INPUT_REGISTERS

    def describe(self) -> str:
        if self.is_read:
            return f"read {self.count} @0x{self.address:04X} from unit {self.unit}"
        return f"write {len(self.values)} @0x{self.address:04X} to unit {self.unit}"


def read_input_registers(unit: int, address: int, count: int) -> ModbusRequest:
    return ModbusRequest(unit, FunctionCode.READ_INPUT_REGISTERS, address, count=count)


def write_register(unit: int, address: int, value: int) -> ModbusRequest:
    return ModbusRequest(unit, FunctionCode.WRITE_SINGLE_REGISTER, address, values=(value,))


def write_registers(unit: int, address: int, values: Sequence[int]) -> ModbusRequest:
    return ModbusRequest(unit, FunctionCode.WRITE_MULTIPLE_REGISTERS, address, values=tuple(values))


__all__ = [
    "FunctionCode",
    "ModbusError",
    "ModbusExceptionResponse",
    "ModbusRequest",
    "registers_to_uint32",
    "uint32_to_registers",
    "registers_to_float",
    "float_to_registers",
    "read_input_registers",
    "write_register",
    "write_registers",
]
