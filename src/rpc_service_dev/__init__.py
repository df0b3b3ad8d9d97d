"""
rpc-service-dev - Raw device access for Mongoose OS style RPC targets

Dump, inspect and rewrite storage devices (flash partitions and the like)
on a remote target through its Dev.* RPC service.
"""

__version__ = "0.1.0"

from rpc_service_dev.protocol import RPCTransport, DevService
from rpc_service_dev.core.dump import DeviceDumper, dump_device

__all__ = [
    "RPCTransport",
    "DevService",
    "DeviceDumper",
    "dump_device",
    "__version__",
]
