"""Register layout of the vibration sensors and the sweep generator."""
from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum, IntFlag
from typing import List, Sequence

from shared.models import SweepConfig

from .modbus import (
    ModbusRequest,
    float_to_registers,
    read_input_registers,
    registers_to_float,
    registers_to_uint32,
    uint32_to_registers,
    write_register,
    write_registers,
)

# Sensor block: status, amplitude (2), gap (2), reserved (3)
SENSOR_BLOCK_ADDRESS = 0x00C8
SENSOR_BLOCK_COUNT = 8
_STATUS_OFFSET = 0
_AMPLITUDE_OFFSET = 1
_GAP_OFFSET = 3

# Generator status: cycle count (2), current frequency (2)
GENERATOR_STATUS_ADDRESS = 0x0000
GENERATOR_STATUS_COUNT = 4
_CYCLES_OFFSET = 0
_FREQUENCY_OFFSET = 2


class StatusFlag(IntFlag):
    READY_TO_RECORD = 0x0001
    GENERATION_FINISHED = 0x0002


class GeneratorRegister(IntEnum):
    MODE = 0x0100
    AMPLITUDE = 0x0101
    START_FREQUENCY = 0x0103
    END_FREQUENCY = 0x0105
    SWEEP_SPEED = 0x0107
    CYCLE_COUNT = 0x0109
    DIRECTION = 0x010B


class GeneratorMode(IntEnum):
    STOP = 0
    SWEEP = 1


@dataclass(frozen=True)
class SensorReading:
    flags: int
    amplitude: float
    gap: float

    @property
    def ready(self) -> bool:
        return bool(self.flags & StatusFlag.READY_TO_RECORD)

    @property
    def finished(self) -> bool:
        return bool(self.flags & StatusFlag.GENERATION_FINISHED)


@dataclass(frozen=True)
class GeneratorReading:
    cycles: int
    frequency: float


def sensor_read_request(unit: int) -> ModbusRequest:
    return read_input_registers(unit, SENSOR_BLOCK_ADDRESS, SENSOR_BLOCK_COUNT)


def generator_read_request(unit: int) -> ModbusRequest:
    return read_input_registers(unit, GENERATOR_STATUS_ADDRESS, GENERATOR_STATUS_COUNT)


def decode_sensor_block(registers: Sequence[int]) -> SensorReading:
    if len(registers) < _GAP_OFFSET + 2:
        raise ValueError(f"sensor block needs {_GAP_OFFSET + 2} registers, got {len(registers)}")
    return SensorReading(
        flags=int(registers[_STATUS_OFFSET]),
        amplitude=float(registers_to_float(registers[_AMPLITUDE_OFFSET], registers[_AMPLITUDE_OFFSET + 1])),
        gap=float(registers_to_float(registers[_GAP_OFFSET], registers[_GAP_OFFSET + 1])),
    )


def encode_sensor_block(flags: int, amplitude: float, gap: float) -> List[int]:
    regs = [0] * SENSOR_BLOCK_COUNT
    regs[_STATUS_OFFSET] = int(flags) & 0xFFFF
    regs[_AMPLITUDE_OFFSET : _AMPLITUDE_OFFSET + 2] = float_to_registers(amplitude)
    regs[_GAP_OFFSET : _GAP_OFFSET + 2] = float_to_registers(gap)
    return regs


def decode_generator_block(registers: Sequence[int]) -> GeneratorReading:
    if len(registers) < GENERATOR_STATUS_COUNT:
        raise ValueError(f"generator block needs {GENERATOR_STATUS_COUNT} registers, got {len(registers)}")
    return GeneratorReading(
        cycles=registers_to_uint32(registers[_CYCLES_OFFSET], registers[_CYCLES_OFFSET + 1]),
        frequency=float(registers_to_float(registers[_FREQUENCY_OFFSET], registers[_FREQUENCY_OFFSET + 1])),
    )


def encode_generator_block(cycles: int, frequency: float) -> List[int]:
    return list(uint32_to_registers(cycles)) + list(float_to_registers(frequency))


def stop_request(unit: int) -> ModbusRequest:
    return write_register(unit, GeneratorRegister.MODE, GeneratorMode.STOP)


def sweep_arm_requests(unit: int, config: SweepConfig) -> List[ModbusRequest]:
    """
    Writes that arm a sweep, in the order they must be sent.

    Mode is forced to STOP first so the generator never runs on a half-written
    parameter set, and switched to SWEEP only after everything else landed.
    """
    return [
        stop_request(unit),
        write_registers(unit, GeneratorRegister.AMPLITUDE, float_to_registers(config.amplitude_percent)),
        write_registers(unit, GeneratorRegister.START_FREQUENCY, float_to_registers(config.start_freq)),
        write_registers(unit, GeneratorRegister.END_FREQUENCY, float_to_registers(config.end_freq)),
        write_registers(unit, GeneratorRegister.SWEEP_SPEED, float_to_registers(config.sweep_speed)),
        write_registers(unit, GeneratorRegister.CYCLE_COUNT, uint32_to_registers(config.cycles)),
        write_register(unit, GeneratorRegister.DIRECTION, int(config.direction)),
        write_register(unit, GeneratorRegister.MODE, GeneratorMode.SWEEP),
    ]


__all__ = [
    "SENSOR_BLOCK_ADDRESS",
    "SENSOR_BLOCK_COUNT",
    "GENERATOR_STATUS_ADDRESS",
    "GENERATOR_STATUS_COUNT",
    "StatusFlag",
    "GeneratorRegister",
    "GeneratorMode",
    "SensorReading",
    "GeneratorReading",
    "sensor_read_request",
    "generator_read_request",
    "decode_sensor_block",
    "encode_sensor_block",
    "decode_generator_block",
    "encode_generator_block",
    "stop_request",
    "sweep_arm_requests",
]
