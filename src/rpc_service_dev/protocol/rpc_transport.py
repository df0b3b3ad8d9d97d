"""
Device RPC Transport Layer

Handles the serial side of talking to a Mongoose OS style RPC endpoint.

This module provides:
- Port opening (serial device path or any pyserial URL)
- JSON frame encoding with \"\"\" delimiters and optional CRC32
- Request/response matching by frame id
- Timeout, cancellation and error-reply handling
"""

import binascii
import itertools
import json
import logging
import random
import time
from typing import Any, Dict, Optional

try:
    import serial
except ImportError:
    raise ImportError("PySerial required: pip install pyserial")

from rpc_service_dev.core.context import CallContext, background

logger = logging.getLogger(__name__)

FRAME_DELIMITER = b'"""'
DEFAULT_SRC = "rpc_service_dev"

# Serial reads are sliced so cancellation is noticed while waiting
POLL_INTERVAL = 0.1
MAX_BUFFER = 1 << 20


class RPCTransportError(Exception):
    """Base exception for transport layer errors"""
    pass


class RPCTimeout(RPCTransportError):
    """Device did not reply in time"""
    pass


class RPCFrameError(RPCTransportError):
    """Malformed frame received"""
    pass


class RPCCallError(RPCTransportError):
    """
    Device replied with an error object.

    Attributes:
        code: RPC error code (400 bad request, 404 no handler, 500 failure)
        error_message: Message from the device
    """

    def __init__(self, code: int, message: str, method: str = ""):
        self.code = code
        self.error_message = message
        self.method = method
        super().__init__(f"RPC error {code}: {message}")


def encode_frame(frame: Dict[str, Any], crc: bool = False) -> bytes:
    """
    Encode one JSON frame for the wire.

    Layout:
        \"\"\" | JSON | [CRC32 as 8 lowercase hex digits] | \"\"\"
    """
    body = json.dumps(frame, separators=(",", ":")).encode("utf-8")
    if crc:
        body += b"%08x" % (binascii.crc32(body) & 0xFFFFFFFF)
    return FRAME_DELIMITER + body + FRAME_DELIMITER


def decode_frame(payload: bytes) -> Dict[str, Any]:
    """
    Decode the bytes found between two delimiters.

    A trailing 8 hex digit CRC32 after the closing brace is verified and
    stripped.

    Raises:
        RPCFrameError: If the payload is not a JSON object or CRC mismatches
    """
    payload = payload.strip()
    end = payload.rfind(b"}")
    if end < 0:
        raise RPCFrameError(f"Not a JSON frame: {payload[:64]!r}")

    body, tail = payload[:end + 1], payload[end + 1:].strip()
    if tail:
        try:
            expected = int(tail, 16)
        except ValueError:
            raise RPCFrameError(f"Junk after frame: {tail[:16]!r}")
        if len(tail) != 8:
            raise RPCFrameError(f"Bad CRC field: {tail!r}")
        actual = binascii.crc32(body) & 0xFFFFFFFF
        if actual != expected:
            raise RPCFrameError(
                f"CRC mismatch: expected {expected:08x}, got {actual:08x}"
            )

    try:
        frame = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise RPCFrameError(f"Invalid JSON frame: {e}")
    if not isinstance(frame, dict):
        raise RPCFrameError(f"Frame is not an object: {body[:64]!r}")
    return frame


class RPCTransport:
    """
    JSON-RPC over a serial stream.

    Handles:
    - Port management
    - Frame encode/decode
    - Request ids and reply matching
    - Timeout and error handling

    Example:
        transport = RPCTransport(port="/dev/ttyUSB0")
        transport.open()
        info = transport.call("Dev.GetInfo", {"name": "sfl0"})
        transport.close()
    """

    def __init__(
        self,
        port: str,
        baudrate: int = 115200,
        timeout: float = 10.0,
        crc: bool = False,
        src: str = DEFAULT_SRC,
    ):
        """
        Initialize transport layer.

        Args:
            port: Serial port ("/dev/ttyUSB0", "COM3") or pyserial URL
                  ("socket://192.168.1.4:8910", "rfc2217://...")
            baudrate: Serial baud rate (default 115200)
            timeout: Per-call reply timeout in seconds (default 10)
            crc: Append CRC32 to outgoing frames
            src: Source address put into request frames
        """
        self.port = port
        self.baudrate = baudrate
        self.timeout = timeout
        self.crc = crc
        self.src = src
        self.ser: Optional[serial.SerialBase] = None
        self._buf = bytearray()
        self._ids = itertools.count(random.randint(1, 1 << 20))
        self._clock = time.monotonic

    @property
    def url(self) -> str:
        """Port as understood by pyserial (mos-style serial:// is stripped)."""
        if self.port.startswith("serial://"):
            return self.port[len("serial://"):]
        return self.port

    @property
    def is_open(self) -> bool:
        return self.ser is not None and self.ser.is_open

    def open(self) -> None:
        """
        Open port.

        Raises:
            RPCTransportError: If port cannot be opened
        """
        try:
            self.ser = serial.serial_for_url(
                self.url,
                baudrate=self.baudrate,
                timeout=POLL_INTERVAL,
                write_timeout=self.timeout,
            )
            self.ser.reset_input_buffer()
            self._buf.clear()
            logger.debug(f"Opened {self.url} at {self.baudrate} bps (timeout={self.timeout}s)")
        except (serial.SerialException, ValueError) as e:
            raise RPCTransportError(f"Cannot open port {self.port}: {e}")

    def close(self) -> None:
        """Close port."""
        if self.ser and self.ser.is_open:
            self.ser.close()
            logger.debug(f"Closed {self.url}")

    def send_frame(self, frame: Dict[str, Any]) -> None:
        """
        Send one frame.

        Raises:
            RPCTransportError: If write fails
        """
        if not self.is_open:
            raise RPCTransportError("Port not open")

        data = encode_frame(frame, crc=self.crc)
        try:
            written = self.ser.write(data)
            if written is not None and written != len(data):
                raise RPCTransportError(
                    f"Incomplete write: sent {written}/{len(data)} bytes"
                )
            self.ser.flush()
            logger.debug(f">>> {data.decode('utf-8', errors='replace')}")
        except serial.SerialException as e:
            raise RPCTransportError(f"Write error: {e}")

    def _next_payload(self) -> Optional[bytes]:
        """Pop the next delimited payload from the buffer, if complete."""
        while True:
            start = self._buf.find(FRAME_DELIMITER)
            if start < 0:
                # Keep a possible partial delimiter
                keep = len(FRAME_DELIMITER) - 1
                if len(self._buf) > keep:
                    self._log_console(bytes(self._buf[:-keep]))
                    del self._buf[:-keep]
                return None
            if start > 0:
                self._log_console(bytes(self._buf[:start]))
                del self._buf[:start]

            end = self._buf.find(FRAME_DELIMITER, len(FRAME_DELIMITER))
            if end < 0:
                return None
            payload = bytes(self._buf[len(FRAME_DELIMITER):end])
            if not payload.strip():
                # Back-to-back delimiters, the second one opens the next frame
                del self._buf[:end]
                continue
            del self._buf[:end + len(FRAME_DELIMITER)]
            return payload

    @staticmethod
    def _log_console(text: bytes) -> None:
        text = text.strip()
        if text:
            logger.debug(f"device: {text.decode('utf-8', errors='replace')}")

    def recv_frame(self, ctx: Optional[CallContext] = None, timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Receive the next complete frame.

        Args:
            ctx: Cancellation context, checked between reads
            timeout: Seconds to wait (default: transport timeout)

        Raises:
            RPCTimeout: If no frame arrives in time
            RPCFrameError: If the frame cannot be decoded
            OperationCancelled: If ctx is cancelled while waiting
        """
        if not self.is_open:
            raise RPCTransportError("Port not open")

        ctx = ctx or background()
        wait = self.timeout if timeout is None else timeout
        remaining = ctx.remaining()
        if remaining is not None:
            wait = min(wait, remaining)

        give_up = self._clock() + wait
        while self._clock() < give_up:
            payload = self._next_payload()
            if payload is not None:
                logger.debug(f"<<< {payload.decode('utf-8', errors='replace')}")
                return decode_frame(payload)

            ctx.check()
            try:
                chunk = self.ser.read(max(1, self.ser.in_waiting))
            except serial.SerialException as e:
                raise RPCTransportError(f"Read error: {e}")
            if chunk:
                self._buf.extend(chunk)
                if len(self._buf) > MAX_BUFFER:
                    self._buf.clear()
                    raise RPCFrameError("Frame too large, buffer overflow")

        payload = self._next_payload()
        if payload is not None:
            return decode_frame(payload)
        ctx.check()
        raise RPCTimeout(f"No reply within {wait:.1f}s")

    def call(
        self,
        method: str,
        args: Optional[Dict[str, Any]] = None,
        ctx: Optional[CallContext] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """
        Perform one RPC call and return its result.

        Frames whose id does not match the request are skipped.

        Args:
            method: RPC method name, e.g. "Dev.Read"
            args: Method arguments (JSON object)
            ctx: Cancellation context
            timeout: Reply timeout override in seconds

        Returns:
            The "result" member of the reply (None if absent)

        Raises:
            RPCCallError: Device replied with an error
            RPCTimeout: No matching reply in time
            OperationCancelled: Context cancelled
        """
        ctx = ctx or background()
        ctx.check()

        request_id = next(self._ids)
        frame: Dict[str, Any] = {"id": request_id, "src": self.src, "method": method}
        if args is not None:
            frame["args"] = args
        self.send_frame(frame)

        while True:
            reply = self.recv_frame(ctx=ctx, timeout=timeout)
            if reply.get("id") != request_id:
                logger.debug(f"Skipping frame with id {reply.get('id')!r}")
                continue

            error = reply.get("error")
            if error is not None:
                if isinstance(error, dict):
                    raise RPCCallError(
                        int(error.get("code", -1)),
                        str(error.get("message", "")),
                        method=method,
                    )
                raise RPCCallError(-1, str(error), method=method)
            return reply.get("result")
