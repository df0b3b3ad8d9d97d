"""
Connection and transfer settings.

Values are normally filled in from CLI options (with environment variable
fallbacks); the defaults here match the mos tool defaults.
"""

from dataclasses import dataclass
from typing import Optional

DEFAULT_BAUDRATE = 115200
DEFAULT_TIMEOUT = 10.0
DEFAULT_CHUNK_SIZE = 512

# Progress is logged on every 64K boundary or after this many seconds
PROGRESS_BOUNDARY = 65536
PROGRESS_INTERVAL = 5.0

PORT_ENVVAR = "MOS_PORT"
CHUNK_SIZE_ENVVAR = "MOS_CHUNK_SIZE"


@dataclass
class ConnectionConfig:
    """
    Settings for one device session.

    Attributes:
        port: Serial device path or pyserial URL (socket://, rfc2217://, loop://)
        baudrate: Serial baud rate (ignored by socket URLs)
        timeout: Per-call RPC timeout in seconds
        chunk_size: Upper bound on the length of each Dev.Read / Dev.Write
        deadline: Optional overall limit for the whole operation, in seconds
    """
    port: str
    baudrate: int = DEFAULT_BAUDRATE
    timeout: float = DEFAULT_TIMEOUT
    chunk_size: int = DEFAULT_CHUNK_SIZE
    deadline: Optional[float] = None

    def __post_init__(self) -> None:
        if self.chunk_size < 1:
            raise ValueError(f"Chunk size must be positive, got {self.chunk_size}")
        if self.timeout <= 0:
            raise ValueError(f"Timeout must be positive, got {self.timeout}")
