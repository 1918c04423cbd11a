"""
Shim connector.

Resolves a sandbox's shim socket, dials it and exposes the task service
Connect call, which reports the shim's OS process id.
"""

import asyncio
from types import TracebackType

from google.protobuf.message import DecodeError

from teardown_harness.config import HarnessSettings
from teardown_harness.errors import RPCError, RPCTransportError, ShimConnectionError
from teardown_harness.logging import get_logger
from teardown_harness.shim.address import dial_path, socket_address
from teardown_harness.shim.ttrpc import TTRPCClient
from teardown_harness.shim.types import (
    METHOD_CONNECT,
    NAMESPACE_METADATA_KEY,
    TASK_SERVICE,
    ConnectRequest,
    ConnectResponse,
    KeyValue,
    Request,
)

logger = get_logger(__name__)


class ShimConnection:
    """
    An open ttrpc channel to one shim.

    Read-only calls may be issued concurrently. After the shim exits every
    call fails with RPCTransportError, which callers treat as a signal.
    """

    def __init__(
        self,
        sandbox_id: str,
        address: str,
        client: TTRPCClient,
        namespace: str,
        rpc_timeout: float,
    ) -> None:
        self.sandbox_id = sandbox_id
        self.address = address
        self._client = client
        self._namespace = namespace
        self._rpc_timeout = rpc_timeout
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def connect_info(self) -> ConnectResponse:
        """
        Call Task.Connect.

        Raises:
            RPCTransportError: transport broken (shim likely dead) or the
                reply payload is not a ConnectResponse
            RPCRejectedError: shim rejected the call
        """
        request = Request(
            service=TASK_SERVICE,
            method=METHOD_CONNECT,
            payload=ConnectRequest().SerializeToString(),
            timeout_nano=int(self._rpc_timeout * 1_000_000_000),
            metadata=[KeyValue(key=NAMESPACE_METADATA_KEY, value=self._namespace)],
        )
        payload = await self._client.call(request, timeout=self._rpc_timeout)
        try:
            return ConnectResponse.FromString(payload)
        except DecodeError as e:
            raise RPCTransportError(
                f"{TASK_SERVICE}/{METHOD_CONNECT} returned a malformed payload: {e}",
                sandbox_id=self.sandbox_id,
                payload_size=len(payload),
            ) from e

    async def get_process_id(self) -> int:
        """Return the shim's process id."""
        response = await self.connect_info()
        if response.shim_pid <= 0:
            raise RPCError(
                "shim reported no process id",
                sandbox_id=self.sandbox_id,
                version=response.version,
            )
        return response.shim_pid

    async def close(self) -> None:
        """Release the connection. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        await self._client.close()

    async def __aenter__(self) -> "ShimConnection":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()


class ShimConnector:
    """Opens ShimConnections for sandbox identities."""

    def __init__(self, settings: HarnessSettings) -> None:
        self._namespace = settings.namespace
        self._endpoint = settings.containerd_endpoint
        self._socket_root = settings.socket_root
        self._rpc_timeout = settings.rpc_timeout_s

    def resolve_address(self, sandbox_id: str) -> str:
        """Shim socket address (with unix:// scheme) for a sandbox."""
        return socket_address(self._namespace, self._endpoint, sandbox_id, self._socket_root)

    async def connect(self, sandbox_id: str) -> ShimConnection:
        """
        Dial the sandbox's shim.

        Raises:
            AddressResolutionError: no address could be derived
            ShimConnectionError: socket could not be dialed
        """
        address = self.resolve_address(sandbox_id)
        path = dial_path(address)

        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_unix_connection(path), self._rpc_timeout
            )
        except TimeoutError:
            raise ShimConnectionError(
                f"timed out dialing shim socket {path}", sandbox_id=sandbox_id
            ) from None
        except OSError as e:
            raise ShimConnectionError(
                f"failed to dial shim socket {path}: {e}", sandbox_id=sandbox_id
            ) from e

        logger.debug("Connected to shim of %s at %s", sandbox_id, path)
        return ShimConnection(
            sandbox_id=sandbox_id,
            address=address,
            client=TTRPCClient(reader, writer),
            namespace=self._namespace,
            rpc_timeout=self._rpc_timeout,
        )

    async def get_process_id(self, connection: ShimConnection) -> int:
        """Issue the liveness/identity RPC on a connection."""
        return await connection.get_process_id()
