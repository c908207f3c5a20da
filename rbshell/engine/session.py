"""
Session.

One live connection to the server: exactly one backend (plain stream,
TLS stream or gRPC), the selected database, and the authentication state.
The backend is fixed for the lifetime of the session; the database name
changes only through Dispatcher.switch_database.
"""

from rbshell.core.config import ConnectionOptions
from rbshell.core.exceptions import AuthenticationError, ConfigurationError, SessionUnavailableError
from rbshell.core.logging import get_logger, log_with_source
from rbshell.engine.auth import AuthState, MessageChannel, ScramHandshake
from rbshell.engine.backends import Backend, StreamBackend
from rbshell.engine.framing import make_framing
from rbshell.engine.rpc import open_rpc_backend
from rbshell.engine.transport import open_stream_transport

logger = get_logger(__name__)


class Session:
    """
    State of one connection.

    Lifecycle of ``auth_state``:
        UNAUTHENTICATED → AUTHENTICATING → AUTHENTICATED
                                         ↘ FAILED (terminal)

    A session without credentials stays UNAUTHENTICATED and may carry
    queries. A session that needs authentication carries queries only once
    AUTHENTICATED. Transport failures invalidate the session for good.
    """

    def __init__(self, backend: Backend, database: str, auth_required: bool = False) -> None:
        self._backend = backend
        self._database = ""
        self.auth_required = auth_required
        self.auth_state = AuthState.UNAUTHENTICATED
        self.failure: str | None = None
        self.closed = False
        self.select_database(database)

    @property
    def backend(self) -> Backend:
        return self._backend

    @property
    def database(self) -> str:
        return self._database

    def select_database(self, name: str) -> None:
        name = name.strip()
        if not name:
            raise ConfigurationError("Database name must not be empty")
        self._database = name

    @property
    def usable(self) -> bool:
        return self.unusable_reason() is None

    def unusable_reason(self) -> str | None:
        if self.closed:
            return "session is closed"
        if self.failure is not None:
            return f"connection failed: {self.failure}"
        if self.auth_state is AuthState.AUTHENTICATING:
            return "authentication in progress"
        if self.auth_state is AuthState.FAILED:
            return "authentication failed"
        if self.auth_required and self.auth_state is not AuthState.AUTHENTICATED:
            return "not authenticated"
        return None

    def ensure_usable(self) -> None:
        reason = self.unusable_reason()
        if reason is not None:
            raise SessionUnavailableError(f"Session unavailable: {reason}; reconnect to continue")

    def invalidate(self, reason: str) -> None:
        """Mark the connection as broken after a transport-level failure."""
        if self.failure is None:
            self.failure = reason
            log_with_source(logger, "engine", "warning", "Session invalidated", reason=reason)

    async def authenticate(self, handshake: ScramHandshake, channel: MessageChannel) -> None:
        """
        Run the handshake and record its outcome.

        On failure the backend is closed and the session is left FAILED.
        """
        self.auth_state = AuthState.AUTHENTICATING
        try:
            await handshake.run(channel)
        except AuthenticationError:
            self.auth_state = AuthState.FAILED
            await self.close()
            raise
        self.auth_state = AuthState.AUTHENTICATED

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        await self._backend.close()
        log_with_source(logger, "engine", "debug", "Session closed", backend=self._backend.kind)


async def connect(options: ConnectionOptions) -> Session:
    """
    Open a session as described by the options.

    Stream sessions with credentials authenticate before returning.

    Raises:
        TlsConfigurationError: If TLS is enabled and the CA file is unusable.
        TransportError: If the server cannot be reached.
        AuthenticationError: If the handshake fails.
        ConfigurationError: If the database name is blank.
    """
    ca_file = options.ca_file if options.tls_enabled else None
    auth_token = options.auth_token.get_secret_value() if options.auth_token else None

    if options.transport == "rpc":
        backend = open_rpc_backend(
            options.host, options.port, ca_file=ca_file, legacy_query=options.rpc_legacy_query,
        )
        try:
            return Session(backend, options.database)
        except ConfigurationError:
            await backend.close()
            raise

    framing = make_framing(options.framing, options.buffer_size, options.max_frame_size)
    transport = await open_stream_transport(options.host, options.port, framing, ca_file=ca_file)
    backend = StreamBackend(transport, envelope=options.envelope, auth_token=auth_token)
    try:
        session = Session(backend, options.database, auth_required=options.credentials_configured)
    except ConfigurationError:
        await backend.close()
        raise

    if session.auth_required:
        try:
            handshake = ScramHandshake(
                options.username,
                options.password.get_secret_value(),
                mechanism=options.mechanism,
            )
            await session.authenticate(handshake, transport)
        except Exception:
            # no-op when authenticate already closed it
            await session.close()
            raise

    return session
