"""Tests for integer literal parsing and dump argument resolution."""

import pytest

from rpc_service_dev.core.errors import InvalidArgument, UsageError
from rpc_service_dev.core.parsing import parse_int_literal, resolve_dump_args


class TestParseIntLiteral:
    """Test C-style integer literal parsing."""

    def test_decimal(self):
        """Decimal strings are parsed correctly."""
        assert parse_int_literal("0") == 0
        assert parse_int_literal("1024") == 1024

    def test_hex(self):
        """Hex with 0x prefix, either case."""
        assert parse_int_literal("0x1000") == 0x1000
        assert parse_int_literal("0X1000") == 0x1000
        assert parse_int_literal("0xffff") == 0xFFFF

    def test_leading_zero_is_octal(self):
        """A leading zero selects base 8."""
        assert parse_int_literal("010") == 8
        assert parse_int_literal("0777") == 0o777
        assert parse_int_literal("0o17") == 0o17

    def test_binary(self):
        assert parse_int_literal("0b1010") == 10

    def test_sign(self):
        assert parse_int_literal("-16") == -16
        assert parse_int_literal("+0x10") == 16

    def test_underscores_between_digits(self):
        """Underscores may separate digits or follow a base prefix."""
        assert parse_int_literal("1_000") == 1000
        assert parse_int_literal("0x_ff") == 255
        assert parse_int_literal("0_10") == 8
        assert parse_int_literal("0b_1_0") == 2

    @pytest.mark.parametrize("value", ["_1", "1_", "1__0", "0x_", "0_", "0x__ff", "_0x10"])
    def test_misplaced_underscore_rejected(self, value):
        with pytest.raises(ValueError):
            parse_int_literal(value)

    @pytest.mark.parametrize("value", [" 10", "10 ", " 10 ", "\t0x10", "10\n", "- 1"])
    def test_whitespace_rejected(self, value):
        """Surrounding or embedded whitespace is a syntax error."""
        with pytest.raises(ValueError):
            parse_int_literal(value)

    def test_invalid_raises_valueerror(self):
        """Junk, floats and bad digits raise ValueError."""
        for value in ["", "abc", "12.34", "0xZZ", "08", "0o19", "0b2", "0x", "1h", "-", "+-1"]:
            with pytest.raises(ValueError):
                parse_int_literal(value)


class TestResolveDumpArgs:
    """Test arity-dependent argument resolution."""

    def test_two_args_auto_size(self):
        """name + output means offset 0 and auto-detected length."""
        req = resolve_dump_args(["sfl0", "dump.bin"])
        assert req.device == "sfl0"
        assert req.output == "dump.bin"
        assert req.offset == 0
        assert req.length == 0
        assert req.auto_size
        assert not req.to_stdout

    def test_four_args_range(self):
        """Offset and length accept hex and octal."""
        req = resolve_dump_args(["sfl0", "0x1000", "010", "-"])
        assert req.offset == 0x1000
        assert req.length == 8
        assert req.to_stdout

    @pytest.mark.parametrize("count", [0, 1, 3, 5, 6])
    def test_wrong_arity_is_usage_error(self, count):
        with pytest.raises(UsageError):
            resolve_dump_args(["x"] * count)

    def test_none_is_usage_error(self):
        with pytest.raises(UsageError):
            resolve_dump_args(None)

    def test_bad_offset_names_field(self):
        with pytest.raises(InvalidArgument) as exc_info:
            resolve_dump_args(["sfl0", "nope", "16", "out.bin"])
        assert exc_info.value.field == "offset"
        assert "invalid address" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, ValueError)

    def test_bad_length_names_field(self):
        with pytest.raises(InvalidArgument) as exc_info:
            resolve_dump_args(["sfl0", "0", "1k", "out.bin"])
        assert exc_info.value.field == "length"
        assert "invalid length" in str(exc_info.value)

    def test_negative_rejected(self):
        with pytest.raises(InvalidArgument):
            resolve_dump_args(["sfl0", "-1", "16", "out.bin"])

    def test_padded_length_rejected(self):
        """A length with surrounding spaces is invalid, not silently trimmed."""
        with pytest.raises(InvalidArgument) as exc_info:
            resolve_dump_args(["sfl0", "0", " 16 ", "out.bin"])
        assert exc_info.value.field == "length"
