"""
Custom Exceptions.

Client-specific exception classes for consistent error handling.

Three classes of failure reach the shell:
    QuerySyntaxError          - local, the session stays usable
    AuthenticationError,
    ClientError subclasses    - fatal to the connection, reconnect required
    (server-reported errors)  - not exceptions, see engine.dispatcher
"""


class ApplicationError(Exception):
    """Base exception for all client errors."""

    def __init__(self, message: str, code: str = "SYS_INTERNAL_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


class QuerySyntaxError(ApplicationError):
    """Raised when a query line does not match the grammar."""

    def __init__(
        self,
        message: str = "Invalid query syntax",
        line: int | None = None,
        column: int | None = None,
        context: str | None = None,
        expected: list[str] | None = None,
    ) -> None:
        self.line = line
        self.column = column
        self.context = context
        self.expected = expected or []
        super().__init__(message, code="QRY_SYNTAX_ERROR")

    def __str__(self) -> str:
        if self.line is None:
            return self.message
        text = f"{self.message} at line {self.line}, column {self.column}"
        if self.context:
            text = f"{text}\n{self.context}"
        return text


class CompilerContractError(ApplicationError):
    """Raised when the compiler meets a grammar node it has no rule for."""

    def __init__(self, message: str = "Unhandled grammar node") -> None:
        super().__init__(message, code="SYS_COMPILER_CONTRACT")


class ConfigurationError(ApplicationError):
    """Raised when connection options are inconsistent."""

    def __init__(self, message: str = "Invalid configuration", code: str = "CFG_INVALID") -> None:
        super().__init__(message, code=code)


class TlsConfigurationError(ConfigurationError):
    """Raised when the TLS trust store cannot be loaded."""

    def __init__(self, message: str = "CA file could not be loaded") -> None:
        super().__init__(message, code="CFG_TLS")


class AuthenticationError(ApplicationError):
    """Raised when the SCRAM handshake fails."""

    def __init__(self, message: str = "Authentication failed") -> None:
        super().__init__(message, code="AUTH_HANDSHAKE_FAILED")


class ClientError(ApplicationError):
    """Raised when the exchange with the server fails below the status level."""

    def __init__(self, message: str = "Client error", code: str = "NET_CLIENT_ERROR") -> None:
        super().__init__(message, code=code)


class TransportError(ClientError):
    """Raised when the underlying connection fails."""

    def __init__(self, message: str = "Transport error") -> None:
        super().__init__(message, code="NET_TRANSPORT_ERROR")


class ConnectionClosedError(ClientError):
    """Raised when the peer closes the connection during a read."""

    def __init__(self, message: str = "Connection closed by peer", partial: bytes = b"") -> None:
        self.partial = partial
        super().__init__(message, code="NET_CONNECTION_CLOSED")


class ProtocolError(ClientError):
    """Raised when a server message cannot be decoded."""

    def __init__(self, message: str = "Malformed server message") -> None:
        super().__init__(message, code="NET_PROTOCOL_ERROR")


class SessionUnavailableError(ApplicationError):
    """Raised when a query is dispatched on a session that cannot carry it."""

    def __init__(self, message: str = "Session is not available") -> None:
        super().__init__(message, code="SES_UNAVAILABLE")
