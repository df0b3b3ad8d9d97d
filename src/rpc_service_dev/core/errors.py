"""
Error taxonomy for device operations.

Every error is fatal for the operation that raised it. Errors carry the
context they were raised in (device, offset, length) and chain the
underlying cause with ``raise ... from err`` so the CLI can print the
whole annotated chain.
"""

from typing import Any, Dict, List, Optional


class DeviceToolError(Exception):
    """
    Base class for all device tool errors.

    Attributes:
        message: Human-readable annotation for this link of the chain
        context: Structured context (device, offset, length, ...)
    """

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.context: Dict[str, Any] = context
        super().__init__(message)


class UsageError(DeviceToolError):
    """Malformed command line (wrong number of positional arguments)."""
    pass


class InvalidArgument(DeviceToolError):
    """An offset or length argument could not be parsed."""

    def __init__(self, message: str, field: str = "", value: str = ""):
        super().__init__(message, field=field, value=value)
        self.field = field
        self.value = value


class InfoQueryFailed(DeviceToolError):
    """Dev.GetInfo failed, device size is unknown."""
    pass


class OutputOpenFailed(DeviceToolError):
    """The output file could not be opened."""
    pass


class ReadFailed(DeviceToolError):
    """
    A Dev.Read call failed, or its decoded data length differs from the
    requested length (a short or long reply).
    """
    pass


class DecodeFailed(DeviceToolError):
    """A Dev.Read reply did not carry valid base64 data."""
    pass


class WriteFailed(DeviceToolError):
    """Writing decoded data to the output sink failed."""
    pass


class OperationCancelled(DeviceToolError):
    """The call context was cancelled or its deadline passed."""
    pass


class DeviceWriteFailed(DeviceToolError):
    """A mutating Dev.* call (write, erase, create, remove) failed."""
    pass


def _chain(exc: BaseException) -> List[BaseException]:
    chain = []
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        chain.append(current)
        seen.add(id(current))
        if current.__cause__ is not None:
            current = current.__cause__
        elif not current.__suppress_context__:
            current = current.__context__
        else:
            current = None
    return chain


def format_error_chain(exc: BaseException) -> str:
    """
    Render an exception and all of its causes, outermost first.

    Example:
        failed to read 'sfl0' 512 @ 1024: RPC error 500: read error: -1
    """
    parts = []
    for err in _chain(exc):
        text = str(err) or type(err).__name__
        if not parts or parts[-1] != text:
            parts.append(text)
    return ": ".join(parts)


def error_chain_lines(exc: BaseException) -> List[str]:
    """Same as format_error_chain, one line per link with the exception type."""
    return [f"{type(err).__name__}: {err}" for err in _chain(exc)]
