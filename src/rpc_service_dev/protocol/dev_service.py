"""
Client for the device-side "Dev" RPC service.

Methods map one-to-one onto the firmware handlers:

    Dev.GetInfo  {name}                          -> {size, erase_sizes?}
    Dev.Read     {name, offset, len}             -> {data: base64}
    Dev.Write    {name, offset, data, erase_len} -> null
    Dev.Erase    {name, offset, len}             -> null
    Dev.Create   {name, type, opts}              -> null
    Dev.Remove   {name}                          -> null
"""

import base64
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from rpc_service_dev.core.context import CallContext
from .rpc_transport import RPCTransport, RPCFrameError

logger = logging.getLogger(__name__)


@dataclass
class DeviceInfo:
    """Reply of Dev.GetInfo."""
    name: str
    size: int
    erase_sizes: List[int] = field(default_factory=list)

    @classmethod
    def from_reply(cls, name: str, reply: Optional[Dict[str, Any]]) -> "DeviceInfo":
        if not isinstance(reply, dict) or "size" not in reply:
            raise RPCFrameError(f"Dev.GetInfo reply has no size: {reply!r}")
        try:
            size = int(reply["size"])
            erase_sizes = [int(s) for s in reply.get("erase_sizes") or []]
        except (TypeError, ValueError) as e:
            raise RPCFrameError(f"Bad Dev.GetInfo reply {reply!r}: {e}")
        return cls(name=name, size=size, erase_sizes=erase_sizes)


class DevService:
    """
    Thin typed wrapper over RPCTransport.call for Dev.* methods.

    Example:
        service = DevService(transport)
        info = service.get_info("sfl0")
        encoded = service.read("sfl0", 0, 512)
    """

    def __init__(self, transport: RPCTransport):
        self.transport = transport

    def _call(self, method: str, args: Dict[str, Any], ctx: Optional[CallContext]) -> Any:
        logger.debug(f"{method} {args if 'data' not in args else {**args, 'data': '...'}}")
        return self.transport.call(method, args, ctx=ctx)

    def get_info(self, name: str, ctx: Optional[CallContext] = None) -> DeviceInfo:
        """Query device size and erase sizes."""
        reply = self._call("Dev.GetInfo", {"name": name}, ctx)
        return DeviceInfo.from_reply(name, reply)

    def read(self, name: str, offset: int, length: int, ctx: Optional[CallContext] = None) -> str:
        """
        Read a range and return the data still base64-encoded.

        Decoding is left to the caller so decode failures can be reported
        separately from transport failures.

        Raises:
            RPCFrameError: If the reply carries no data member
        """
        reply = self._call("Dev.Read", {"name": name, "offset": offset, "len": length}, ctx)
        if not isinstance(reply, dict) or not isinstance(reply.get("data"), str):
            raise RPCFrameError(f"Dev.Read reply has no data: {reply!r}")
        return reply["data"]

    def write(
        self,
        name: str,
        offset: int,
        data: bytes,
        erase_len: int = 0,
        ctx: Optional[CallContext] = None,
    ) -> None:
        """Write data at offset, erasing erase_len bytes first if non-zero."""
        args: Dict[str, Any] = {
            "name": name,
            "offset": offset,
            "data": base64.b64encode(data).decode("ascii"),
        }
        if erase_len:
            args["erase_len"] = erase_len
        self._call("Dev.Write", args, ctx)

    def erase(self, name: str, offset: int, length: int, ctx: Optional[CallContext] = None) -> None:
        self._call("Dev.Erase", {"name": name, "offset": offset, "len": length}, ctx)

    def create(
        self,
        name: str,
        dev_type: str,
        opts: str = "",
        ctx: Optional[CallContext] = None,
    ) -> None:
        """Create and register a device; opts is the JSON options string."""
        args = {"name": name, "type": dev_type}
        if opts:
            args["opts"] = opts
        self._call("Dev.Create", args, ctx)

    def remove(self, name: str, ctx: Optional[CallContext] = None) -> None:
        self._call("Dev.Remove", {"name": name}, ctx)
