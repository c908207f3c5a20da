"""
Stream Backend.

Runs compiled calls over a StreamTransport using the structured or the
legacy BSON envelope. See engine.rpc for the gRPC backend; both satisfy
the Backend protocol the dispatcher talks to.
"""

from typing import Literal, Protocol

from rbshell.core.exceptions import ConfigurationError
from rbshell.engine.compiler import ParsedCall
from rbshell.engine.protocol import (
    ServerResponse,
    decode_legacy_response,
    decode_response,
    encode_legacy_request,
    encode_ping,
    encode_request,
)
from rbshell.engine.transport import StreamTransport


class Backend(Protocol):
    """What a session needs from its one live connection."""

    @property
    def kind(self) -> str: ...

    async def execute(self, call: ParsedCall, database: str) -> ServerResponse: ...

    async def ping(self) -> ServerResponse: ...

    async def close(self) -> None: ...


class StreamBackend:
    """BSON envelopes over a plain or TLS stream."""

    def __init__(
        self,
        transport: StreamTransport,
        envelope: Literal["structured", "legacy"] = "structured",
        auth_token: str | None = None,
    ) -> None:
        self.transport = transport
        self.envelope = envelope
        self._auth_token = auth_token

    @property
    def kind(self) -> str:
        return "tls" if self.transport.encrypted else "plain"

    async def execute(self, call: ParsedCall, database: str) -> ServerResponse:
        if self.envelope == "legacy":
            reply = await self.transport.exchange(encode_legacy_request(call, database))
            return decode_legacy_response(reply)

        reply = await self.transport.exchange(encode_request(call, database, self._auth_token))
        return decode_response(reply)

    async def ping(self) -> ServerResponse:
        if self.envelope == "legacy":
            raise ConfigurationError("ping needs the structured envelope")
        reply = await self.transport.exchange(encode_ping(self._auth_token))
        return decode_response(reply)

    async def close(self) -> None:
        await self.transport.close()
