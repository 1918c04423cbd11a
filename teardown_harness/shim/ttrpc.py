"""
Minimal async ttrpc client.

ttrpc is containerd's lightweight RPC protocol used between containerd and
its shims. Only unary calls are supported, which is all the harness needs.

Frame layout (big endian):
    uint32 length | uint32 stream id | uint8 type | uint8 flags | payload

The payload is a protobuf ttrpc.Request or ttrpc.Response, see
teardown_harness.shim.types.
"""

import asyncio
import struct

from google.protobuf.message import DecodeError

from teardown_harness.errors import RPCRejectedError, RPCTransportError
from teardown_harness.logging import get_logger
from teardown_harness.shim.types import Request, Response

logger = get_logger(__name__)

HEADER = struct.Struct(">IIBB")
MESSAGE_TYPE_REQUEST = 1
MESSAGE_TYPE_RESPONSE = 2
MAX_MESSAGE_SIZE = 4 << 20


# =============================================================================
# Framing
# =============================================================================


def encode_frame(stream_id: int, message_type: int, payload: bytes) -> bytes:
    """Prefix payload with a ttrpc message header."""
    if len(payload) > MAX_MESSAGE_SIZE:
        raise ValueError(f"message of {len(payload)} bytes exceeds ttrpc limit")
    return HEADER.pack(len(payload), stream_id, message_type, 0) + payload


async def read_frame(reader: asyncio.StreamReader) -> tuple[int, int, bytes]:
    """
    Read one frame.

    Returns:
        (stream id, message type, payload)

    Raises:
        asyncio.IncompleteReadError: peer closed mid-frame or before one
    """
    header = await reader.readexactly(HEADER.size)
    length, stream_id, message_type, _flags = HEADER.unpack(header)
    if length > MAX_MESSAGE_SIZE:
        raise ValueError(f"ttrpc frame of {length} bytes exceeds limit")
    payload = await reader.readexactly(length)
    return stream_id, message_type, payload


class TTRPCClient:
    """
    Unary ttrpc client over an established stream.

    Calls are serialized, so one connection can be shared by concurrent
    callers. Once the transport fails the client stays broken.
    """

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._reader = reader
        self._writer = writer
        self._lock = asyncio.Lock()
        self._next_stream_id = 1
        self._broken: str | None = None

    @property
    def is_broken(self) -> bool:
        return self._broken is not None

    async def call(self, request: Request, timeout: float | None = None) -> bytes:
        """
        Issue a unary call.

        Returns:
            Response payload

        Raises:
            RPCTransportError: connection closed, reset or timed out
            RPCRejectedError: server answered with a non-OK status
        """
        if self._broken is not None:
            raise RPCTransportError(
                f"ttrpc connection unusable: {self._broken}",
                service=request.service,
                method=request.method,
            )

        async with self._lock:
            stream_id = self._next_stream_id
            self._next_stream_id += 2
            try:
                response = await asyncio.wait_for(self._exchange(stream_id, request), timeout)
            except TimeoutError:
                self._mark_broken(f"{request.method} timed out after {timeout}s")
                raise RPCTransportError(
                    f"{request.service}/{request.method} timed out",
                    timeout_s=timeout,
                ) from None
            except (asyncio.IncompleteReadError, OSError, ValueError, DecodeError) as e:
                self._mark_broken(repr(e))
                raise RPCTransportError(
                    f"{request.service}/{request.method} transport failed: {e!r}",
                ) from e

        if response.status.code != 0:
            raise RPCRejectedError(
                f"{request.service}/{request.method} rejected: {response.status.message}",
                code=response.status.code,
            )
        return response.payload

    async def _exchange(self, stream_id: int, request: Request) -> Response:
        frame = encode_frame(stream_id, MESSAGE_TYPE_REQUEST, request.SerializeToString())
        self._writer.write(frame)
        await self._writer.drain()

        while True:
            got_stream, message_type, payload = await read_frame(self._reader)
            if got_stream != stream_id or message_type != MESSAGE_TYPE_RESPONSE:
                logger.debug(
                    "Dropping ttrpc frame stream=%d type=%d (waiting for %d)",
                    got_stream,
                    message_type,
                    stream_id,
                )
                continue
            return Response.FromString(payload)

    def _mark_broken(self, reason: str) -> None:
        self._broken = reason

    async def close(self) -> None:
        """Close the underlying stream."""
        if self._writer.is_closing():
            return
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except OSError as e:
            logger.debug("ttrpc close: %r", e)
