"""
Centralized parsing helpers for integer literals and dump arguments.

The CLI must import these helpers rather than re-implement.
"""

import re
from dataclasses import dataclass
from typing import Optional, Sequence

from .errors import InvalidArgument, UsageError

STDOUT_TOKEN = "-"

USAGE = "usage: dump-device name [offset length] output_file"

_LITERALS = (
    (re.compile(r"0[xX]((?:_?[0-9a-fA-F])+)"), 16),
    (re.compile(r"0[oO]((?:_?[0-7])+)"), 8),
    (re.compile(r"0[bB]((?:_?[01])+)"), 2),
    (re.compile(r"0((?:_?[0-7])+)"), 8),
    (re.compile(r"([1-9](?:_?[0-9])*|0)"), 10),
)


def parse_int_literal(value: Optional[str]) -> int:
    """
    Parse an integer written as a C-style literal.

    This is the single source of truth for offset/length parsing.

    Accepts:
        - Decimal: "4096"
        - Hex with 0x prefix: "0x1000" or "0X1000"
        - Octal with leading zero: "010" (== 8), or "0o10"
        - Binary with 0b prefix: "0b1010"
        - An optional leading sign
        - Single underscores between digits, or between the base prefix
          and the first digit: "1_000", "0x_ff", "0_10"

    Surrounding whitespace is not accepted.

    Returns:
        Parsed integer.

    Raises:
        ValueError: If value cannot be parsed.
    """
    if value is None:
        raise ValueError("empty value")

    text = value
    sign = 1
    if text[:1] in ("+", "-"):
        if text[0] == "-":
            sign = -1
        text = text[1:]

    for pattern, base in _LITERALS:
        match = pattern.fullmatch(text)
        if match:
            return sign * int(match.group(1).replace("_", ""), base)
    raise ValueError(f"invalid syntax: {value!r}")


@dataclass
class DumpRequest:
    """
    Resolved dump arguments.

    Attributes:
        device: Name of the device on the target
        offset: First byte to read
        length: Number of bytes to read; 0 means "query the device size"
        output: Output file path, or "-" for standard output
    """
    device: str
    output: str
    offset: int = 0
    length: int = 0

    @property
    def to_stdout(self) -> bool:
        return self.output == STDOUT_TOKEN

    @property
    def auto_size(self) -> bool:
        return self.length == 0


def _parse_field(value: str, label: str, field: str) -> int:
    try:
        parsed = parse_int_literal(value)
    except ValueError as e:
        raise InvalidArgument(f"{label}: {e}", field=field, value=value) from e
    if parsed < 0:
        raise InvalidArgument(
            f"{label}: must not be negative, got {value!r}", field=field, value=value
        )
    return parsed


def resolve_dump_args(args: Sequence[str]) -> DumpRequest:
    """
    Resolve positional dump arguments by arity.

    Forms:
        name output_file
        name offset length output_file

    Raises:
        UsageError: On any other argument count
        InvalidArgument: If offset or length cannot be parsed
    """
    args = list(args or [])
    if len(args) == 2:
        return DumpRequest(device=args[0], output=args[1])
    if len(args) == 4:
        offset = _parse_field(args[1], "invalid address", "offset")
        length = _parse_field(args[2], "invalid length", "length")
        return DumpRequest(device=args[0], offset=offset, length=length, output=args[3])
    if len(args) < 2:
        raise UsageError(USAGE)
    raise UsageError(f"invalid arguments ({len(args)} given); {USAGE}")
