"""
Dispatcher.

Sends compiled calls through the session's backend and turns responses
into renderable lines. Server-reported errors come back as a
RenderedResponse with is_error set; transport and decode failures raise
ClientError and invalidate the session. Nothing is retried.
"""

from dataclasses import dataclass, field

from rbshell.core.exceptions import ClientError
from rbshell.core.logging import get_logger, log_with_source
from rbshell.engine.compiler import ParsedCall
from rbshell.engine.protocol import ServerResponse
from rbshell.engine.session import Session
from rbshell.engine.status import Status
from rbshell.engine.value import Value, to_query_text

logger = get_logger(__name__)

SUCCESS_INDICATOR = "Ok"


@dataclass
class RenderedResponse:
    """What the shell prints for one call."""

    status: Status
    lines: list[str] = field(default_factory=list)
    document: Value = None
    is_error: bool = False


def render_response(response: ServerResponse) -> RenderedResponse:
    """
    Map a decoded response onto output lines.

    Success with a document renders the document, success without one a
    plain indicator. Errors render one line per server message, or the
    status name when the server sent none.
    """
    status = response.status
    if status in (Status.OK, Status.INSERTED, Status.UPDATED):
        if response.has_document:
            return RenderedResponse(status, [to_query_text(response.document)], document=response.document)
        return RenderedResponse(status, [SUCCESS_INDICATOR])

    if status in (
        Status.INVALID_QUERY,
        Status.NOT_FOUND,
        Status.ALREADY_EXISTS,
        Status.BAD_BSON,
        Status.BAD_AUTH,
        Status.BAD_BODY,
        Status.NOT_AUTHORIZED,
        Status.RESERVED,
        Status.SYNTAX_ERROR,
        Status.INTERNAL_ERROR,
    ):
        lines = [message for message in response.messages if message] or [status.value]
        return RenderedResponse(status, lines, is_error=True)

    raise AssertionError(f"Unhandled status: {status!r}")


class Dispatcher:
    """
    The only owner of a session after connect.

    Usage:
        dispatcher = Dispatcher(await connect(options))
        rendered = await dispatcher.dispatch(compile_query('get("k")'))
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    @property
    def database(self) -> str:
        return self._session.database

    @property
    def backend_kind(self) -> str:
        return self._session.backend.kind

    @property
    def auth_state(self) -> str:
        return self._session.auth_state.value

    @property
    def usable(self) -> bool:
        return self._session.usable

    def switch_database(self, name: str) -> None:
        """Select the database subsequent calls run against."""
        previous = self._session.database
        self._session.select_database(name)
        log_with_source(
            logger, "engine", "info", "Database switched",
            previous=previous, database=self._session.database,
        )

    async def dispatch(self, call: ParsedCall) -> RenderedResponse:
        """
        Run one call and render the outcome.

        Raises:
            SessionUnavailableError: If the session cannot carry queries.
            ClientError: On transport or decode failure. The session is
                invalidated before the error propagates.
        """
        self._session.ensure_usable()
        log_with_source(
            logger, "engine", "debug", "Dispatching",
            verb=call.verb.value, key=call.key, database=self._session.database,
        )
        try:
            response = await self._session.backend.execute(call, self._session.database)
        except ClientError as e:
            self._session.invalidate(e.message)
            raise

        rendered = render_response(response)
        log_with_source(
            logger, "engine", "debug", "Response",
            verb=call.verb.value, status=rendered.status.value, is_error=rendered.is_error,
        )
        return rendered

    async def ping(self) -> RenderedResponse:
        self._session.ensure_usable()
        try:
            response = await self._session.backend.ping()
        except ClientError as e:
            self._session.invalidate(e.message)
            raise
        return render_response(response)

    async def close(self) -> None:
        await self._session.close()
