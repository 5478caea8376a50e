from __future__ import annotations

import pytest

from daq.modbus import FunctionCode, registers_to_float, registers_to_uint32
from daq.register_map import (
    GENERATOR_STATUS_COUNT,
    SENSOR_BLOCK_ADDRESS,
    SENSOR_BLOCK_COUNT,
    GeneratorMode,
    GeneratorRegister,
    StatusFlag,
    decode_generator_block,
    decode_sensor_block,
    encode_generator_block,
    encode_sensor_block,
    generator_read_request,
    sensor_read_request,
    sweep_arm_requests,
)
from shared.models import SweepConfig, SweepDirection


def test_sensor_request_reads_eight_input_registers():
    req = sensor_read_request(246)
    assert req.function == FunctionCode.READ_INPUT_REGISTERS
    assert req.address == SENSOR_BLOCK_ADDRESS
    assert req.count == SENSOR_BLOCK_COUNT == 8


def test_generator_request_reads_four_registers():
    req = generator_read_request(1)
    assert req.count == GENERATOR_STATUS_COUNT == 4


def test_sensor_block_decodes_flags_amplitude_gap():
    regs = encode_sensor_block(StatusFlag.READY_TO_RECORD | StatusFlag.GENERATION_FINISHED, 12.5, 2900.0)
    assert len(regs) == SENSOR_BLOCK_COUNT
    reading = decode_sensor_block(regs)
    assert reading.ready
    assert reading.finished
    assert reading.amplitude == 12.5
    assert reading.gap == 2900.0


def test_sensor_flags_independent():
    assert decode_sensor_block(encode_sensor_block(0, 1.0, 1.0)).ready is False
    only_ready = decode_sensor_block(encode_sensor_block(StatusFlag.READY_TO_RECORD, 1.0, 1.0))
    assert only_ready.ready and not only_ready.finished


def test_sensor_block_too_short():
    with pytest.raises(ValueError):
        decode_sensor_block([0, 0, 0])


def test_generator_block_round_trip():
    reading = decode_generator_block(encode_generator_block(70000, 17.25))
    assert reading.cycles == 70000
    assert reading.frequency == 17.25


def test_sweep_arm_order_and_values():
    config = SweepConfig(
        amplitude_percent=40.0,
        start_freq=10.0,
        end_freq=30.0,
        sweep_speed=120.0,
        cycles=3,
        direction=SweepDirection.UP_DOWN,
    )
    requests = sweep_arm_requests(1, config)
    addresses = [r.address for r in requests]
    assert addresses == [
        GeneratorRegister.MODE,
        GeneratorRegister.AMPLITUDE,
        GeneratorRegister.START_FREQUENCY,
        GeneratorRegister.END_FREQUENCY,
        GeneratorRegister.SWEEP_SPEED,
        GeneratorRegister.CYCLE_COUNT,
        GeneratorRegister.DIRECTION,
        GeneratorRegister.MODE,
    ]
    assert requests[0].values == (GeneratorMode.STOP,)
    assert requests[-1].values == (GeneratorMode.SWEEP,)
    assert registers_to_float(*requests[1].values) == 40.0
    assert registers_to_float(*requests[2].values) == 10.0
    assert registers_to_float(*requests[3].values) == 30.0
    assert registers_to_float(*requests[4].values) == 120.0
    assert registers_to_uint32(*requests[5].values) == 3
    assert requests[6].values == (int(SweepDirection.UP_DOWN),)
    assert all(r.unit == 1 and not r.is_read for r in requests)
