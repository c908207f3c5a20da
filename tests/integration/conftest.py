"""
Integration Test Fixtures.

Fixtures for integration tests - real sockets on 127.0.0.1 against an
in-process server speaking the structured BSON envelope, with optional
SCRAM-SHA-256 authentication.
"""

import asyncio
from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Any

import bson
import pytest
from scramp import ScramException, ScramMechanism

from rbshell.core.exceptions import ConnectionClosedError
from rbshell.engine.framing import Framing, HeuristicFraming


# =============================================================================
# Fake Server
# =============================================================================


def _header(status: str, messages: list[str] | None = None) -> dict[str, Any]:
    header: dict[str, Any] = {"status": status, "is_error": status not in ("Ok", "Inserted", "Updated")}
    if messages:
        header["messages"] = messages
    return header


class FakeRustbaseServer:
    """
    Minimal document server holding databases in memory.

    Set ``drop_after`` to close each connection without answering once
    that many requests have been received on it.
    """

    def __init__(
        self,
        framing: Framing | None = None,
        credentials: tuple[str, str] | None = None,
        drop_after: int | None = None,
    ) -> None:
        self.framing = framing or HeuristicFraming()
        self.credentials = credentials
        self.drop_after = drop_after
        self.databases: dict[str, dict[str, Any]] = {}
        self.requests: list[dict[str, Any]] = []
        self.port = 0
        self._server: asyncio.AbstractServer | None = None
        self._writers: set[asyncio.StreamWriter] = set()

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self._server.sockets[0].getsockname()[1]

    async def stop(self) -> None:
        for writer in list(self._writers):
            writer.close()
        self._server.close()
        await self._server.wait_closed()

    async def _send(self, writer: asyncio.StreamWriter, payload: bytes) -> None:
        writer.write(self.framing.encode(payload))
        await writer.drain()

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._writers.add(writer)
        try:
            if self.credentials is not None and not await self._authenticate(reader, writer):
                return
            received = 0
            while True:
                try:
                    data = await self.framing.read_message(reader)
                except ConnectionClosedError:
                    return
                request = bson.decode(data)
                self.requests.append(request)
                received += 1
                if self.drop_after is not None and received > self.drop_after:
                    return
                await self._send(writer, bson.encode(self._answer(request)))
        finally:
            self._writers.discard(writer)
            writer.close()

    async def _authenticate(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> bool:
        username, password = self.credentials
        mechanism = ScramMechanism("SCRAM-SHA-256")
        auth_info = mechanism.make_auth_info(password, iteration_count=4096)

        def auth_fn(name: str):
            if name != username:
                raise ScramException("Unknown user")
            return auth_info

        server = mechanism.make_server(auth_fn)
        try:
            server.set_client_first((await self.framing.read_message(reader)).decode())
            await self._send(writer, server.get_server_first().encode())
            server.set_client_final((await self.framing.read_message(reader)).decode())
        except ScramException:
            await self._send(writer, b"e=invalid-proof")
            return False
        await self._send(writer, server.get_server_final().encode())
        return True

    def _answer(self, request: dict[str, Any]) -> dict[str, Any]:
        if request["header"]["type"] == "Ping":
            return {"header": _header("Ok")}

        body = request["body"]
        store = self.databases.setdefault(body["database"], {})
        verb, key = body["verb"], body["key"]

        if verb == "get":
            if key not in store:
                return {"header": _header("NotFound", [f"Key {key!r} not found"])}
            return {"header": _header("Ok"), "body": store[key]}
        if verb == "insert":
            if key in store:
                return {"header": _header("AlreadyExists", [f"Key {key!r} already exists"])}
            store[key] = body["document"]
            return {"header": _header("Inserted")}
        if verb == "update":
            if key not in store:
                return {"header": _header("NotFound", [f"Key {key!r} not found"])}
            store[key] = body["document"]
            return {"header": _header("Updated")}
        if verb == "delete":
            if store.pop(key, None) is None:
                return {"header": _header("NotFound", [f"Key {key!r} not found"])}
            return {"header": _header("Ok")}
        return {"header": _header("InvalidQuery", [f"Unknown verb {verb!r}"])}


# =============================================================================
# Server Fixtures
# =============================================================================


@pytest.fixture
async def start_server() -> AsyncGenerator[Callable[..., Awaitable[FakeRustbaseServer]], None]:
    """
    Factory starting fake servers on free ports; all are stopped after the test.

    Usage:
        async def test_get(start_server, connection_options):
            server = await start_server()
            options = connection_options.model_copy(update={"port": server.port})
    """
    servers: list[FakeRustbaseServer] = []

    async def start(**kwargs: Any) -> FakeRustbaseServer:
        server = FakeRustbaseServer(**kwargs)
        await server.start()
        servers.append(server)
        return server

    yield start

    for server in servers:
        await server.stop()
