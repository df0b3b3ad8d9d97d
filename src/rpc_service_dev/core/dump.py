"""
Chunked device reader.

Copies a byte range of a device on the target into a local file or
standard output, one Dev.Read call at a time.
"""

import base64
import binascii
import hashlib
import logging
import sys
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import BinaryIO, Callable, Iterator, Optional

from .config import DEFAULT_CHUNK_SIZE, PROGRESS_BOUNDARY, PROGRESS_INTERVAL
from .context import CallContext, background
from .errors import (
    DecodeFailed,
    InfoQueryFailed,
    OutputOpenFailed,
    ReadFailed,
    WriteFailed,
)
from .parsing import STDOUT_TOKEN, DumpRequest

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


@dataclass
class DumpStats:
    """Outcome of a completed dump."""
    device: str
    offset: int
    length: int
    chunks: int
    sha256: str


@contextmanager
def open_output(path: str) -> Iterator[BinaryIO]:
    """
    Open the output sink.

    "-" yields the binary stdout stream (flushed, never closed); anything
    else is created or truncated and opened read-write.

    Raises:
        OutputOpenFailed: If the file cannot be opened
    """
    if path == STDOUT_TOKEN:
        stream = sys.stdout.buffer
        try:
            yield stream
        finally:
            stream.flush()
        return

    try:
        stream = open(path, "w+b")
    except OSError as e:
        raise OutputOpenFailed(f"failed to open output file {path!r}", path=path) from e
    with stream:
        yield stream


class ProgressReporter:
    """Logs progress on every 64K boundary or every few seconds."""

    def __init__(
        self,
        total: int,
        interval: float = PROGRESS_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
        callback: Optional[ProgressCallback] = None,
    ):
        self.total = total
        self.interval = interval
        self.clock = clock
        self.callback = callback
        self.last_report = clock()

    def update(self, num_read: int) -> bool:
        """Record progress; returns True if a report line was logged."""
        if self.callback:
            self.callback(num_read, self.total)

        now = self.clock()
        if num_read % PROGRESS_BOUNDARY == 0 or now - self.last_report >= self.interval:
            logger.info(
                f"{num_read} of {self.total} ({num_read * 100.0 / self.total:.2f}%)"
            )
            self.last_report = now
            return True
        return False


class DeviceDumper:
    """
    Reads a device range chunk by chunk through a DevService.

    Example:
        dumper = DeviceDumper(DevService(transport), chunk_size=1024)
        with open_output("dump.bin") as out:
            dumper.copy("sfl0", 0, 4096, out)
    """

    def __init__(
        self,
        service,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        ctx: Optional[CallContext] = None,
        progress_cb: Optional[ProgressCallback] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if chunk_size < 1:
            raise ValueError(f"Chunk size must be positive, got {chunk_size}")
        self.service = service
        self.chunk_size = chunk_size
        self.ctx = ctx or background()
        self.progress_cb = progress_cb
        self.clock = clock

    def device_size(self, device: str) -> int:
        """
        Query the device size.

        Raises:
            InfoQueryFailed: If Dev.GetInfo fails
        """
        try:
            info = self.service.get_info(device, ctx=self.ctx)
        except Exception as e:
            raise InfoQueryFailed(
                f"unable to get size of the device {device!r}", device=device
            ) from e
        return info.size

    def read_chunk(self, device: str, offset: int, length: int) -> bytes:
        """
        Read and decode one chunk.

        Raises:
            ReadFailed: If the remote call fails or the decoded chunk is not
                exactly `length` bytes
            DecodeFailed: If the reply is not valid base64
        """
        where = dict(device=device, length=length, offset=offset)
        try:
            self.ctx.check()
            encoded = self.service.read(device, offset, length, ctx=self.ctx)
        except Exception as e:
            raise ReadFailed(f"failed to read {device!r} {length} @ {offset}", **where) from e

        try:
            data = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError, TypeError) as e:
            raise DecodeFailed(f"failed to decode {device!r} {length} @ {offset}", **where) from e

        if len(data) != length:
            raise ReadFailed(
                f"wrong read size {device!r} {length} @ {offset}: got {len(data)} bytes",
                **where,
            )
        return data

    def copy(self, device: str, offset: int, length: int, out: BinaryIO) -> DumpStats:
        """
        Copy [offset, offset + length) of device into out.

        Aborts on the first failure; whatever was already written stays in
        the sink.

        Raises:
            ReadFailed, DecodeFailed, WriteFailed
        """
        digest = hashlib.sha256()
        reporter = ProgressReporter(length, clock=self.clock, callback=self.progress_cb)
        start = offset
        chunks = 0
        num_read = 0
        while num_read < length:
            read_len = min(length - num_read, self.chunk_size)
            data = self.read_chunk(device, offset, read_len)
            try:
                out.write(data)
            except (OSError, ValueError) as e:
                raise WriteFailed(
                    f"failed to write {len(data)} bytes of {device!r} @ {offset}",
                    device=device, offset=offset, length=read_len,
                ) from e
            digest.update(data)
            offset += read_len
            num_read += read_len
            chunks += 1
            reporter.update(num_read)

        logger.info("Done")
        return DumpStats(
            device=device,
            offset=start,
            length=length,
            chunks=chunks,
            sha256=digest.hexdigest(),
        )

    def dump(self, request: DumpRequest) -> DumpStats:
        """
        Resolve the size if needed, open the sink and copy.

        Raises:
            InfoQueryFailed, OutputOpenFailed, ReadFailed, DecodeFailed,
            WriteFailed
        """
        length = request.length
        if request.auto_size:
            length = self.device_size(request.device)

        logger.info(f"{request.device} {request.offset} {length} {request.output}")

        with open_output(request.output) as out:
            return self.copy(request.device, request.offset, length, out)


def dump_device(
    service,
    device: str,
    offset: int,
    length: int,
    output: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    ctx: Optional[CallContext] = None,
    progress_cb: Optional[ProgressCallback] = None,
) -> DumpStats:
    """Dump a device range; length 0 dumps the whole device."""
    dumper = DeviceDumper(service, chunk_size=chunk_size, ctx=ctx, progress_cb=progress_cb)
    return dumper.dump(DumpRequest(device=device, offset=offset, length=length, output=output))


__all__ = [
    "DeviceDumper",
    "DumpStats",
    "ProgressReporter",
    "dump_device",
    "open_output",
]
