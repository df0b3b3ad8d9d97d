"""
Core workflow actions for rpc-service-dev.

This module exposes functions the CLI calls. Each returns an
OperationResult; failures carry the rendered error chain. All operations
that modify the target go through the safety context for gating.
"""

import hashlib
import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional

from .config import ConnectionConfig, DEFAULT_CHUNK_SIZE
from .context import CallContext, background
from .dump import DeviceDumper, ProgressCallback
from .errors import DeviceToolError, DeviceWriteFailed, format_error_chain
from .parsing import DumpRequest
from .results import OperationResult, format_region
from .safety import SafetyContext, require_write_permission, WritePermissionError

logger = logging.getLogger(__name__)


class _ListLogHandler(logging.Handler):
    """Capture log records into a list of formatted strings."""

    def __init__(self, level: int = logging.INFO) -> None:
        super().__init__(level)
        self.records: List[str] = []
        self.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(self.format(record))


@contextmanager
def _capture_logs(logger_name: str = "rpc_service_dev"):
    """Capture logs for core operations into a list."""
    target_logger = logging.getLogger(logger_name)
    handler = _ListLogHandler()
    previous_level = target_logger.level
    if previous_level in (logging.NOTSET, logging.WARNING, logging.ERROR, logging.CRITICAL):
        target_logger.setLevel(logging.INFO)
    target_logger.addHandler(handler)
    try:
        yield handler.records
    finally:
        target_logger.removeHandler(handler)
        target_logger.setLevel(previous_level)


def _failure(operation: str, exc: BaseException, device: str = "", **kwargs) -> OperationResult:
    result = OperationResult.failure(
        operation=operation,
        error=format_error_chain(exc),
        device=device,
        **kwargs,
    )
    result.exception = exc
    return result


@contextmanager
def open_service(config: ConnectionConfig) -> Iterator["DevService"]:
    """
    Open the transport described by config and yield a DevService.

    The port is closed on exit.

    Raises:
        RPCTransportError: If the port cannot be opened
    """
    from rpc_service_dev.protocol import RPCTransport, DevService

    transport = RPCTransport(config.port, baudrate=config.baudrate, timeout=config.timeout)
    transport.open()
    try:
        yield DevService(transport)
    finally:
        transport.close()


def dump_device(
    service,
    request: DumpRequest,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    ctx: Optional[CallContext] = None,
    progress_cb: Optional[ProgressCallback] = None,
) -> OperationResult:
    """
    Dump a device range to a file or stdout.

    Returns:
        OperationResult with:
            - bytes_len: bytes written to the sink
            - hashes["sha256"]: hash of the dumped data
            - metadata["chunks"]: number of Dev.Read calls
            - region: dumped range
    """
    with _capture_logs() as logs:
        dumper = DeviceDumper(service, chunk_size=chunk_size, ctx=ctx, progress_cb=progress_cb)
        try:
            stats = dumper.dump(request)
        except DeviceToolError as e:
            logger.debug("dump_device failed", exc_info=True)
            result = _failure("dump_device", e, device=request.device)
            result.logs = logs
            return result

        result = OperationResult.success(
            operation="dump_device",
            device=stats.device,
            region=format_region(stats.offset, stats.length),
            bytes_len=stats.length,
        )
        result.hashes["sha256"] = stats.sha256
        result.metadata["chunks"] = stats.chunks
        result.metadata["output"] = request.output
        if stats.length == 0:
            result.add_warning("Device range is empty, nothing was read")
        result.logs = logs
        return result


def device_info(service, name: str, ctx: Optional[CallContext] = None) -> OperationResult:
    """
    Query Dev.GetInfo.

    Returns:
        OperationResult with metadata["size"] and metadata["erase_sizes"]
    """
    try:
        info = service.get_info(name, ctx=ctx or background())
    except Exception as e:
        logger.debug("device_info failed", exc_info=True)
        return _failure("device_info", e, device=name)

    result = OperationResult.success(operation="device_info", device=name, bytes_len=info.size)
    result.metadata["size"] = info.size
    result.metadata["erase_sizes"] = list(info.erase_sizes)
    return result


def _gate(
    safety: SafetyContext,
    operation: str,
    region: str = "",
    bytes_length: int = 0,
) -> Optional[OperationResult]:
    """Run the safety check; returns a failed result if denied."""
    try:
        require_write_permission(
            safety,
            operation=operation,
            target_region=region,
            bytes_length=bytes_length,
        )
    except WritePermissionError as e:
        result = _failure(operation, e, device=safety.device, region=region)
        result.metadata["permission_denied"] = True
        return result
    return None


def write_device(
    service,
    name: str,
    offset: int,
    data: bytes,
    safety: SafetyContext,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    erase: bool = False,
    ctx: Optional[CallContext] = None,
    progress_cb: Optional[ProgressCallback] = None,
) -> OperationResult:
    """
    Write data to a device range in chunk_size pieces.

    With erase=True the whole target range is erased with one Dev.Erase
    call before the first write.

    Returns:
        OperationResult with hashes["sha256"] of the written data and
        metadata["chunks"]
    """
    operation = "write_device"
    region = format_region(offset, len(data))
    denied = _gate(safety, operation, region, len(data))
    if denied:
        return denied

    sha256 = hashlib.sha256(data).hexdigest()
    if safety.simulate:
        result = OperationResult.success(operation, device=name, region=region, bytes_len=len(data))
        result.hashes["sha256"] = sha256
        result.add_warning("Dry run: nothing was written to the device")
        return result

    ctx = ctx or background()
    with _capture_logs() as logs:
        written = 0
        chunks = 0
        try:
            if erase and data:
                try:
                    service.erase(name, offset, len(data), ctx=ctx)
                except Exception as e:
                    raise DeviceWriteFailed(
                        f"failed to erase {name!r} {len(data)} @ {offset}",
                        device=name, offset=offset, length=len(data),
                    ) from e
                logger.info(f"Erased {region} on {name}")

            while written < len(data):
                ctx.check()
                piece = data[written:written + chunk_size]
                try:
                    service.write(name, offset + written, piece, ctx=ctx)
                except Exception as e:
                    raise DeviceWriteFailed(
                        f"failed to write {name!r} {len(piece)} @ {offset + written}",
                        device=name, offset=offset + written, length=len(piece),
                    ) from e
                written += len(piece)
                chunks += 1
                if progress_cb:
                    progress_cb(written, len(data))
            logger.info(f"Wrote {written} bytes to {name}")
        except DeviceToolError as e:
            result = _failure(operation, e, device=name, region=region, bytes_len=written)
            result.logs = logs
            return result

    result = OperationResult.success(operation, device=name, region=region, bytes_len=written)
    result.hashes["sha256"] = sha256
    result.metadata["chunks"] = chunks
    result.logs = logs
    return result


def erase_device(
    service,
    name: str,
    offset: int,
    length: int,
    safety: SafetyContext,
    ctx: Optional[CallContext] = None,
) -> OperationResult:
    """Erase a device range with Dev.Erase."""
    operation = "erase_device"
    region = format_region(offset, length)
    denied = _gate(safety, operation, region, length)
    if denied:
        return denied

    if safety.simulate:
        result = OperationResult.success(operation, device=name, region=region, bytes_len=length)
        result.add_warning("Dry run: nothing was erased")
        return result

    try:
        service.erase(name, offset, length, ctx=ctx or background())
    except Exception as e:
        err = DeviceWriteFailed(f"failed to erase {name!r} {length} @ {offset}", device=name)
        err.__cause__ = e
        return _failure(operation, err, device=name, region=region)
    return OperationResult.success(operation, device=name, region=region, bytes_len=length)


def create_device(
    service,
    name: str,
    dev_type: str,
    opts: str,
    safety: SafetyContext,
    ctx: Optional[CallContext] = None,
) -> OperationResult:
    """Create and register a device on the target with Dev.Create."""
    operation = "create_device"
    denied = _gate(safety, operation)
    if denied:
        return denied

    result = OperationResult.success(operation, device=name)
    result.metadata["type"] = dev_type
    if opts:
        result.metadata["opts"] = opts
    if safety.simulate:
        result.add_warning("Dry run: device was not created")
        return result

    try:
        service.create(name, dev_type, opts, ctx=ctx or background())
    except Exception as e:
        err = DeviceWriteFailed(f"failed to create {name!r} of type {dev_type!r}", device=name)
        err.__cause__ = e
        return _failure(operation, err, device=name)
    return result


def remove_device(
    service,
    name: str,
    safety: SafetyContext,
    ctx: Optional[CallContext] = None,
) -> OperationResult:
    """Unregister a device on the target with Dev.Remove."""
    operation = "remove_device"
    denied = _gate(safety, operation)
    if denied:
        return denied

    if safety.simulate:
        result = OperationResult.success(operation, device=name)
        result.add_warning("Dry run: device was not removed")
        return result

    try:
        service.remove(name, ctx=ctx or background())
    except Exception as e:
        err = DeviceWriteFailed(f"failed to remove {name!r}", device=name)
        err.__cause__ = e
        return _failure(operation, err, device=name)
    return OperationResult.success(operation, device=name)
