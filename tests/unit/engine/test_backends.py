"""
Unit Tests for the Stream Backend.
"""

from unittest.mock import AsyncMock, MagicMock

import bson
import pytest

from rbshell.core.exceptions import ConfigurationError, ConnectionClosedError
from rbshell.engine.backends import StreamBackend
from rbshell.engine.compiler import ParsedCall, Verb
from rbshell.engine.status import Status


@pytest.fixture
def transport():
    """Mock StreamTransport with a scriptable exchange."""
    transport = MagicMock()
    transport.encrypted = False
    transport.exchange = AsyncMock()
    transport.close = AsyncMock()
    return transport


class TestStructuredEnvelope:
    @pytest.mark.asyncio
    async def test_execute(self, transport):
        """Should send a structured request and decode the reply."""
        transport.exchange.return_value = bson.encode({
            "header": {"status": "Ok", "is_error": False},
            "body": {"a": "b"},
        })
        backend = StreamBackend(transport)

        response = await backend.execute(ParsedCall(Verb.GET, "k"), "app")

        assert response.status is Status.OK
        assert response.document == {"a": "b"}
        sent = bson.decode(transport.exchange.await_args.args[0])
        assert sent["body"] == {"database": "app", "verb": "get", "key": "k"}

    @pytest.mark.asyncio
    async def test_auth_token_is_sent(self, transport):
        """Should put the auth token in the request header."""
        transport.exchange.return_value = bson.encode({"header": {"status": "Ok"}})
        backend = StreamBackend(transport, auth_token="t0ken")

        await backend.execute(ParsedCall(Verb.DELETE, "k"), "app")

        sent = bson.decode(transport.exchange.await_args.args[0])
        assert sent["header"]["auth"] == "t0ken"

    @pytest.mark.asyncio
    async def test_ping(self, transport):
        """Should send a Ping request."""
        transport.exchange.return_value = bson.encode({"header": {"status": "Ok"}})
        response = await StreamBackend(transport).ping()
        assert response.status is Status.OK
        assert bson.decode(transport.exchange.await_args.args[0])["header"]["type"] == "Ping"

    @pytest.mark.asyncio
    async def test_transport_errors_propagate(self, transport):
        """Should let transport errors propagate unchanged."""
        transport.exchange.side_effect = ConnectionClosedError()
        with pytest.raises(ConnectionClosedError):
            await StreamBackend(transport).execute(ParsedCall(Verb.GET, "k"), "app")


class TestLegacyEnvelope:
    @pytest.mark.asyncio
    async def test_execute_sends_query_text(self, transport):
        """Should send the call as query text."""
        transport.exchange.return_value = bson.encode({"status": "KeyAlreadyExists", "message": "exists"})
        backend = StreamBackend(transport, envelope="legacy")

        response = await backend.execute(ParsedCall(Verb.INSERT, "k", {"n": 1}), "app")

        assert response.status is Status.ALREADY_EXISTS
        assert response.messages == ["exists"]
        sent = bson.decode(transport.exchange.await_args.args[0])
        assert sent == {"body": {"query": 'insert("k", {"n": 1})', "database": "app"}}

    @pytest.mark.asyncio
    async def test_ping_needs_structured_envelope(self, transport):
        """Should refuse ping under the legacy envelope."""
        with pytest.raises(ConfigurationError):
            await StreamBackend(transport, envelope="legacy").ping()
        transport.exchange.assert_not_awaited()


class TestKind:
    def test_plain_and_tls(self, transport):
        """Should report plain or tls from the transport."""
        assert StreamBackend(transport).kind == "plain"
        transport.encrypted = True
        assert StreamBackend(transport).kind == "tls"

    @pytest.mark.asyncio
    async def test_close(self, transport):
        """Should close the transport."""
        await StreamBackend(transport).close()
        transport.close.assert_awaited_once()
