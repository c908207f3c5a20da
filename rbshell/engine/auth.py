"""
SCRAM Authentication Handshake.

Client side of the salted challenge-response exchange (RFC 5802, RFC 7677)
run once per connection, before any query:

    client-first   n,,n=<user>,r=<client nonce>
    server-first   r=<client nonce + server nonce>,s=<salt>,i=<iterations>
    client-final   c=biws,r=<combined nonce>,p=<proof>
    server-final   v=<server signature>

Messages are UTF-8 text carried by the session's own transport and
framing. Any deviation fails the handshake; there is no fallback to an
unauthenticated session.
"""

from enum import Enum
from typing import Protocol

from scramp import ScramClient, ScramException

from rbshell.core.exceptions import AuthenticationError, ClientError
from rbshell.core.logging import get_logger, log_with_source

logger = get_logger(__name__)


class AuthState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


class MessageChannel(Protocol):
    async def send(self, data: bytes) -> None: ...

    async def receive(self) -> bytes: ...


class ScramHandshake:
    """
    One SCRAM exchange over an already connected channel.

    The handshake object is single-use. ``client_nonce`` exists for
    reproducible exchanges in tests; leave it unset otherwise.
    """

    def __init__(
        self,
        username: str,
        password: str,
        mechanism: str = "SCRAM-SHA-256",
        client_nonce: str | None = None,
    ) -> None:
        self.username = username
        self.mechanism = mechanism
        self._client = ScramClient([mechanism], username, password, c_nonce=client_nonce)
        self.state = AuthState.UNAUTHENTICATED

    async def _receive_text(self, channel: MessageChannel, step: str) -> str:
        data = await channel.receive()
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise AuthenticationError(f"{step} message is not UTF-8 text") from e

    async def run(self, channel: MessageChannel) -> None:
        """
        Perform the three-message exchange.

        Raises:
            AuthenticationError: On a malformed server message, a nonce or
                signature mismatch, or a connection failure mid-handshake.
        """
        if self.state is not AuthState.UNAUTHENTICATED:
            raise AuthenticationError(f"Handshake already {self.state.value}")

        self.state = AuthState.AUTHENTICATING
        log_with_source(
            logger, "engine", "debug", "SCRAM handshake started",
            username=self.username, mechanism=self.mechanism,
        )
        try:
            await channel.send(self._client.get_client_first().encode("utf-8"))

            server_first = await self._receive_text(channel, "server-first")
            self._client.set_server_first(server_first)
            log_with_source(logger, "engine", "debug", "SCRAM server-first accepted")

            await channel.send(self._client.get_client_final().encode("utf-8"))

            server_final = await self._receive_text(channel, "server-final")
            self._client.set_server_final(server_final)
        except (ScramException, ValueError) as e:
            self.state = AuthState.FAILED
            log_with_source(logger, "engine", "warning", "SCRAM handshake rejected", reason=str(e))
            raise AuthenticationError(f"Authentication failed: {e}") from e
        except ClientError as e:
            self.state = AuthState.FAILED
            log_with_source(logger, "engine", "warning", "SCRAM handshake interrupted", reason=e.message)
            raise AuthenticationError(f"Authentication failed: {e.message}") from e
        except AuthenticationError:
            self.state = AuthState.FAILED
            raise

        self.state = AuthState.AUTHENTICATED
        log_with_source(logger, "engine", "info", "SCRAM handshake completed", username=self.username)
