"""
Shim socket address resolution.

containerd places each shim's ttrpc socket under <root>/s/ and names it
after the sha256 of "<containerd address>/<namespace>/<id>".
"""

import hashlib
import os
from pathlib import Path

from teardown_harness.errors import AddressResolutionError

UNIX_SCHEME = "unix://"


def socket_address(
    namespace: str,
    endpoint: str,
    sandbox_id: str,
    socket_root: Path | str = "/run/containerd",
) -> str:
    """
    Compute the shim socket address for a sandbox.

    Args:
        namespace: containerd namespace (e.g. "k8s.io")
        endpoint: containerd GRPC address
        sandbox_id: Sandbox identity returned by RunPodSandbox
        socket_root: containerd state directory

    Returns:
        Address with a unix:// scheme

    Raises:
        AddressResolutionError: namespace or id missing
    """
    if not namespace:
        raise AddressResolutionError("namespace is required to resolve a shim address")
    if not sandbox_id:
        raise AddressResolutionError("sandbox id is required to resolve a shim address")

    digest = hashlib.sha256(os.path.join(endpoint, namespace, sandbox_id).encode()).hexdigest()
    return f"{UNIX_SCHEME}{os.path.join(str(socket_root), 's', digest)}"


def dial_path(address: str) -> str:
    """
    Strip the unix:// scheme so the address can be dialed.

    Raises:
        AddressResolutionError: address uses a transport we cannot dial
    """
    if address.startswith(UNIX_SCHEME):
        address = address[len(UNIX_SCHEME):]
    elif "://" in address:
        scheme = address.split("://", 1)[0]
        raise AddressResolutionError(
            f"unsupported shim address scheme: {scheme}", address=address
        )
    if not address:
        raise AddressResolutionError("empty shim address")
    return address
