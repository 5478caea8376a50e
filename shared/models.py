from __future__ import annotations

import math
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional, Tuple


# ----------------------------
# Device / parameter indices
# ----------------------------

class DeviceRole(IntEnum):
    """Field devices on the bus. Sensors double as indices into the value tables."""

    SENSOR_A = 0
    SENSOR_B = 1
    GENERATOR = 2

    @property
    def is_sensor(self) -> bool:
        return self in (DeviceRole.SENSOR_A, DeviceRole.SENSOR_B)


SENSOR_ROLES: Tuple[DeviceRole, ...] = (DeviceRole.SENSOR_A, DeviceRole.SENSOR_B)


class Parameter(IntEnum):
    AMPLITUDE = 0
    FREQUENCY = 1
    DISTANCE = 2


class SweepDirection(IntEnum):
    UP = 0
    DOWN = 1
    UP_DOWN = 2


PARITY_CHOICES = ("None", "Even", "Odd")
STOP_BITS_CHOICES = (1.0, 1.5, 2.0)
FLOW_CONTROL_CHOICES = ("None", "RTS/CTS", "XON/XOFF")
MIN_ADDRESS = 1
MAX_ADDRESS = 247


def _check_address(name: str, value: int) -> None:
    if not MIN_ADDRESS <= int(value) <= MAX_ADDRESS:
        raise ValueError(f"{name} must be between {MIN_ADDRESS} and {MAX_ADDRESS}, got {value}")


# ----------------------------
# Connection configuration
# ----------------------------

@dataclass(frozen=True)
class SerialSettings:
    """Serial line parameters for the half-duplex field bus."""

    port: str = ""
    baud_rate: int = 19200
    data_bits: int = 8
    parity: str = "None"
    stop_bits: float = 1.0
    flow_control: str = "None"

    def __post_init__(self) -> None:
        if int(self.baud_rate) <= 0:
            raise ValueError("baud_rate must be positive")
        if int(self.data_bits) not in (5, 6, 7, 8):
            raise ValueError(f"data_bits must be 5..8, got {self.data_bits}")
        if self.parity not in PARITY_CHOICES:
            raise ValueError(f"parity must be one of {PARITY_CHOICES}, got {self.parity!r}")
        if float(self.stop_bits) not in STOP_BITS_CHOICES:
            raise ValueError(f"stop_bits must be one of {STOP_BITS_CHOICES}, got {self.stop_bits}")
        if self.flow_control not in FLOW_CONTROL_CHOICES:
            raise ValueError(f"flow_control must be one of {FLOW_CONTROL_CHOICES}, got {self.flow_control!r}")
        object.__setattr__(self, "baud_rate", int(self.baud_rate))
        object.__setattr__(self, "data_bits", int(self.data_bits))
        object.__setattr__(self, "stop_bits", float(self.stop_bits))


@dataclass(frozen=True)
class DeviceAddresses:
    """Bus address per device role, fixed for a session."""

    sensor_a: int = 246
    sensor_b: int = 247
    generator: Optional[int] = 1

    def __post_init__(self) -> None:
        _check_address("sensor_a", self.sensor_a)
        _check_address("sensor_b", self.sensor_b)
        if self.generator is not None:
            _check_address("generator", self.generator)
        units = [self.sensor_a, self.sensor_b] + ([self.generator] if self.generator is not None else [])
        if len(set(units)) != len(units):
            raise ValueError(f"device addresses must be distinct, got {units}")

    def address_of(self, role: DeviceRole) -> Optional[int]:
        if role == DeviceRole.SENSOR_A:
            return self.sensor_a
        if role == DeviceRole.SENSOR_B:
            return self.sensor_b
        return self.generator

    def roles(self) -> Tuple[DeviceRole, ...]:
        """Roles polled each cycle, in request order."""
        if self.generator is None:
            return SENSOR_ROLES
        return SENSOR_ROLES + (DeviceRole.GENERATOR,)


# ----------------------------
# Sweep configuration
# ----------------------------

@dataclass(frozen=True)
class SweepConfig:
    """Generator sweep parameters written when a sweep is armed."""

    amplitude_percent: float
    start_freq: float
    end_freq: float
    sweep_speed: float  # Hz per minute
    cycles: int = 1
    direction: SweepDirection = SweepDirection.UP

    def __post_init__(self) -> None:
        for name in ("amplitude_percent", "start_freq", "end_freq", "sweep_speed"):
            if not math.isfinite(float(getattr(self, name))):
                raise ValueError(f"{name} must be finite")
        if not 0.0 <= float(self.amplitude_percent) <= 100.0:
            raise ValueError("amplitude_percent must be within 0..100")
        if self.start_freq < 0 or self.end_freq < 0:
            raise ValueError("sweep frequencies must be non-negative")
        if self.start_freq == self.end_freq:
            raise ValueError("start_freq and end_freq must differ")
        if self.sweep_speed <= 0:
            raise ValueError("sweep_speed must be positive")
        if int(self.cycles) < 0:
            raise ValueError("cycles must be non-negative")
        object.__setattr__(self, "cycles", int(self.cycles))
        object.__setattr__(self, "direction", SweepDirection(self.direction))

    @property
    def duration_s(self) -> float:
        """Time for one pass across the frequency span."""
        return abs(self.end_freq - self.start_freq) / (self.sweep_speed / 60.0)


__all__ = [
    "DeviceRole",
    "SENSOR_ROLES",
    "Parameter",
    "SweepDirection",
    "SerialSettings",
    "DeviceAddresses",
    "SweepConfig",
    "PARITY_CHOICES",
    "STOP_BITS_CHOICES",
    "FLOW_CONTROL_CHOICES",
]
