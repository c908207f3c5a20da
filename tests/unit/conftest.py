"""
Unit Test Fixtures.

Fixtures for unit tests - the network is never touched.
Readers, channels and backends are scripted stand-ins.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from rbshell.core.exceptions import ConnectionClosedError


# =============================================================================
# Stream Fakes
# =============================================================================


class ScriptedReader:
    """
    Stand-in for asyncio.StreamReader.read returning scripted chunks.

    Once the script is exhausted every read returns b"" (peer closed).
    """

    def __init__(self, chunks: list[bytes]) -> None:
        self.chunks = list(chunks)
        self.reads = 0

    async def read(self, n: int = -1) -> bytes:
        self.reads += 1
        if not self.chunks:
            return b""
        chunk = self.chunks.pop(0)
        assert n < 0 or len(chunk) <= n, "scripted chunk larger than the read buffer"
        return chunk

    async def readexactly(self, n: int) -> bytes:
        raise NotImplementedError


class ScriptedChannel:
    """
    Message channel replaying scripted replies and recording what was sent.

    A reply that is an exception instance is raised instead of returned.
    """

    def __init__(self, replies: list) -> None:
        self.replies = list(replies)
        self.sent: list[bytes] = []

    async def send(self, data: bytes) -> None:
        self.sent.append(data)

    async def receive(self) -> bytes:
        if not self.replies:
            raise ConnectionClosedError()
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def make_reader():
    """
    Factory for scripted readers.

    Usage:
        def test_read(make_reader):
            reader = make_reader([b"abc", b""])
    """
    return ScriptedReader


@pytest.fixture
def make_channel():
    """
    Factory for scripted message channels.

    Usage:
        def test_handshake(make_channel):
            channel = make_channel([b"r=...,s=...,i=4096", b"v=..."])
    """
    return ScriptedChannel


@pytest.fixture
def mock_writer() -> MagicMock:
    """Mock asyncio.StreamWriter."""
    writer = MagicMock()
    writer.write = MagicMock()
    writer.drain = AsyncMock()
    writer.close = MagicMock()
    writer.wait_closed = AsyncMock()
    return writer


# =============================================================================
# Backend Mock Fixtures
# =============================================================================


@pytest.fixture
def mock_backend() -> MagicMock:
    """
    Mock backend for session and dispatcher tests.

    Usage:
        def test_dispatch(mock_backend):
            mock_backend.execute.return_value = ServerResponse(Status.OK)
    """
    backend = MagicMock()
    backend.kind = "plain"
    backend.execute = AsyncMock()
    backend.ping = AsyncMock()
    backend.close = AsyncMock()
    return backend
