"""Device protocol layer - RPC transport and the Dev service client."""

from .rpc_transport import (
    RPCTransport,
    RPCTransportError,
    RPCTimeout,
    RPCFrameError,
    RPCCallError,
    encode_frame,
    decode_frame,
)
from .dev_service import DevService, DeviceInfo

__all__ = [
    # Transport
    "RPCTransport",
    "RPCTransportError",
    "RPCTimeout",
    "RPCFrameError",
    "RPCCallError",
    "encode_frame",
    "decode_frame",
    # Dev service
    "DevService",
    "DeviceInfo",
]
