"""
Shim access.

Provides:
- Socket address resolution for a sandbox's shim
- A minimal ttrpc client
- ShimConnector / ShimConnection exposing Task.Connect
"""

from teardown_harness.shim.address import dial_path, socket_address
from teardown_harness.shim.connector import ShimConnection, ShimConnector
from teardown_harness.shim.types import ConnectResponse

__all__ = [
    "ConnectResponse",
    "ShimConnection",
    "ShimConnector",
    "dial_path",
    "socket_address",
]
