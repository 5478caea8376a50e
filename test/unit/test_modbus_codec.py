"""
Unit tests for Modbus requests and the 32-bit register-pair codecs.

Covers low-word-first packing, exact float bit patterns (NaN payloads
included), request validation and device exception messages.
"""
from __future__ import annotations

import numpy as np
import pytest

from daq.modbus import (
    FunctionCode,
    ModbusExceptionResponse,
    ModbusRequest,
    float_to_registers,
    read_input_registers,
    registers_to_float,
    registers_to_uint32,
    uint32_to_registers,
    write_register,
    write_registers,
)


def _bits(value: np.float32) -> int:
    return int(np.frombuffer(value.tobytes(), dtype=np.uint32)[0])


class TestRegisterPairs:
    def test_float_low_word_first(self):
        assert float_to_registers(1.0) == (0x0000, 0x3F80)
        assert registers_to_float(0x0000, 0x3F80) == 1.0

    def test_decoded_float_is_single_precision(self):
        value = registers_to_float(0xCCCD, 0x3DCC)
        assert isinstance(value, np.float32)
        assert value == np.float32(0.1)

    def test_signalling_nan_keeps_its_payload(self):
        value = registers_to_float(0x0001, 0x7F80)
        assert np.isnan(value)
        assert _bits(value) == 0x7F800001
        assert float_to_registers(value) == (0x0001, 0x7F80)

    def test_negative_zero_and_infinity(self):
        assert float_to_registers(registers_to_float(0x0000, 0x8000)) == (0x0000, 0x8000)
        assert registers_to_float(0x0000, 0x7F80) == np.inf

    def test_uint32_low_word_first(self):
        assert uint32_to_registers(0x12345678) == (0x5678, 0x1234)
        assert registers_to_uint32(0x5678, 0x1234) == 0x12345678

    def test_uint32_out_of_range(self):
        with pytest.raises(ValueError):
            uint32_to_registers(-1)
        with pytest.raises(ValueError):
            uint32_to_registers(1 << 32)


class TestRequests:
    def test_read_input_request(self):
        req = read_input_registers(246, 0x00C8, 8)
        assert req.function == FunctionCode.READ_INPUT_REGISTERS
        assert req.is_read
        assert (req.unit, req.address, req.count) == (246, 0x00C8, 8)

    def test_write_requests_mask_values(self):
        single = write_register(1, 0x0100, 1)
        assert single.function == FunctionCode.WRITE_SINGLE_REGISTER
        assert not single.is_read
        multi = write_registers(7, 0x0103, (0x0000, 0x14120))
        assert multi.function == FunctionCode.WRITE_MULTIPLE_REGISTERS
        assert multi.values == (0x0000, 0x4120)

    def test_invalid_requests_rejected(self):
        with pytest.raises(ValueError):
            read_input_registers(1, 0, 0)
        with pytest.raises(ValueError):
            read_input_registers(1, 0, 126)
        with pytest.raises(ValueError):
            ModbusRequest(1, FunctionCode.WRITE_SINGLE_REGISTER, 0, values=(1, 2))
        with pytest.raises(ValueError):
            write_registers(1, 0, ())
        with pytest.raises(ValueError):
            read_input_registers(248, 0, 1)
        with pytest.raises(ValueError):
            read_input_registers(1, 0x10000, 1)

    def test_describe(self):
        assert "unit 246" in read_input_registers(246, 0xC8, 8).describe()
        assert "write 2 @0x0103" in write_registers(7, 0x0103, (0, 1)).describe()


class TestExceptionResponse:
    def test_known_code_message(self):
        exc = ModbusExceptionResponse(5, FunctionCode.READ_INPUT_REGISTERS, 0x02)
        assert exc.code == 0x02
        assert "Illegal data address" in str(exc)
        assert "0x04" in str(exc)

    def test_unknown_code(self):
        assert "Unknown exception" in str(ModbusExceptionResponse(1, 0x06, 0x7F))
