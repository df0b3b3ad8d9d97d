"""
Core module for rpc-service-dev.

This module provides the single source of truth for:
- Argument and integer literal parsing (parsing.py)
- The error taxonomy and error chain rendering (errors.py)
- The chunked device reader (dump.py)
- Write gating / confirmation (safety.py)
- Result objects (results.py)
- Unified dump/info/write workflows (actions.py)

The CLI calls into this module rather than implementing its own logic.
"""

from .config import ConnectionConfig, DEFAULT_CHUNK_SIZE
from .context import CallContext
from .errors import (
    DeviceToolError,
    UsageError,
    InvalidArgument,
    InfoQueryFailed,
    OutputOpenFailed,
    ReadFailed,
    DecodeFailed,
    WriteFailed,
    OperationCancelled,
    DeviceWriteFailed,
    format_error_chain,
)
from .parsing import DumpRequest, parse_int_literal, resolve_dump_args
from .dump import DeviceDumper, DumpStats, open_output
from .safety import SafetyContext, require_write_permission, WritePermissionError
from .results import OperationResult
from .actions import (
    open_service,
    dump_device,
    device_info,
    write_device,
    erase_device,
    create_device,
    remove_device,
)

__all__ = [
    # Config
    "ConnectionConfig",
    "DEFAULT_CHUNK_SIZE",
    "CallContext",
    # Errors
    "DeviceToolError",
    "UsageError",
    "InvalidArgument",
    "InfoQueryFailed",
    "OutputOpenFailed",
    "ReadFailed",
    "DecodeFailed",
    "WriteFailed",
    "OperationCancelled",
    "DeviceWriteFailed",
    "format_error_chain",
    # Parsing
    "DumpRequest",
    "parse_int_literal",
    "resolve_dump_args",
    # Dump
    "DeviceDumper",
    "DumpStats",
    "open_output",
    # Safety
    "SafetyContext",
    "require_write_permission",
    "WritePermissionError",
    # Results
    "OperationResult",
    # Actions
    "open_service",
    "dump_device",
    "device_info",
    "write_device",
    "erase_device",
    "create_device",
    "remove_device",
]
