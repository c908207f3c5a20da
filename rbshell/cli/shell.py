"""
Interactive Shell Mode.

REPL for the query language. Lines starting with a shell command word are
handled locally, everything else is compiled and dispatched.
Uses Rich for output formatting and basic input handling.
"""

from typing import Awaitable, Callable

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from rbshell.core.config import ConnectionOptions
from rbshell.core.exceptions import (
    ApplicationError,
    ClientError,
    CompilerContractError,
    QuerySyntaxError,
    SessionUnavailableError,
)
from rbshell.core.logging import get_logger, log_with_source
from rbshell.engine.compiler import compile_all
from rbshell.engine.dispatcher import Dispatcher, RenderedResponse
from rbshell.engine.session import Session, connect

logger = get_logger(__name__)

Connector = Callable[[ConnectionOptions], Awaitable[Session]]


class InteractiveShell:
    """
    Interactive shell for query lines.

    Usage:
        shell = InteractiveShell(options)
        await shell.run()
    """

    def __init__(
        self,
        options: ConnectionOptions,
        dispatcher: Dispatcher | None = None,
        console: Console | None = None,
        prompt: str = "RUSTBASE> ",
        connector: Connector | None = None,
    ) -> None:
        self.options = options
        self.dispatcher = dispatcher
        self.console = console or Console()
        self.prompt = prompt
        self._connector = connector or connect
        self.running = False
        self.commands: dict[str, Callable[[list[str]], Awaitable[bool]]] = {
            "help": self._cmd_help,
            "use": self._cmd_use,
            "ping": self._cmd_ping,
            "status": self._cmd_status,
            "reconnect": self._cmd_reconnect,
            "clear": self._cmd_clear,
            "quit": self._cmd_quit,
            "exit": self._cmd_quit,
        }

    async def connect(self) -> bool:
        """Open a new session, replacing any previous one."""
        if self.dispatcher is not None:
            await self.dispatcher.close()
            self.dispatcher = None
        try:
            session = await self._connector(self.options)
        except ApplicationError as e:
            self._print_error(f"Could not connect to rustbase://{self.options.address}: {e}")
            return False
        self.dispatcher = Dispatcher(session)
        return True

    async def run(self) -> None:
        """Run the interactive shell."""
        self.running = True

        self.console.print(Panel(
            "[bold]Welcome to Rustbase Shell![/bold]\n"
            "Type [cyan]help[/cyan] for shell commands, [cyan]exit[/cyan] or Ctrl+C to quit.",
            title=f"rustbase://{escape(self.options.address)}",
        ))

        if self.dispatcher is None:
            await self.connect()

        while self.running:
            try:
                line = self.console.input(f"[bold cyan]{escape(self.prompt)}[/bold cyan]")
            except (KeyboardInterrupt, EOFError):
                break

            try:
                await self.handle_line(line)
            except Exception as e:
                log_with_source(logger, "shell", "error", "Unhandled shell error", error=str(e))
                self._print_error(f"{type(e).__name__}: {e}")

        if self.dispatcher is not None:
            await self.dispatcher.close()
        self.console.print("bye")

    async def handle_line(self, line: str) -> bool:
        """
        Run one input line.

        Returns:
            True if every part of the line succeeded.
        """
        line = line.strip()
        if not line:
            return True

        parts = line.split()
        command = parts[0].lower()
        if command in self.commands and "(" not in parts[0]:
            return await self.commands[command](parts[1:])

        return await self.run_query(line)

    async def run_query(self, line: str) -> bool:
        """Compile a line and dispatch its calls in order."""
        try:
            calls = compile_all(line)
        except QuerySyntaxError as e:
            self._print_error(str(e))
            return False
        except CompilerContractError as e:
            log_with_source(logger, "shell", "error", "Compiler contract violated", error=e.message)
            self._print_error(f"Internal compiler error: {e.message}")
            return False

        if self.dispatcher is None:
            self._print_error("Not connected. Use [cyan]reconnect[/cyan] to try again.", markup=True)
            return False

        ok = True
        for call in calls:
            try:
                rendered = await self.dispatcher.dispatch(call)
            except SessionUnavailableError as e:
                self._print_error(e.message)
                return False
            except ClientError as e:
                self._print_error(e.message)
                self.console.print("[dim]Connection lost. Use 'reconnect' to open a new session.[/dim]")
                return False
            self.print_response(rendered)
            ok = ok and not rendered.is_error
        return ok

    def print_response(self, rendered: RenderedResponse) -> None:
        if rendered.is_error:
            for line in rendered.lines:
                self._print_error(line)
        elif rendered.document is not None:
            for line in rendered.lines:
                self.console.print(escape(line))
        else:
            for line in rendered.lines:
                self.console.print(f"[green][Success][/green] {escape(line)}")

    def _print_error(self, message: str, markup: bool = False) -> None:
        body = message if markup else escape(message)
        self.console.print(f"[red]\\[Error][/red] {body}")

    async def _cmd_help(self, args: list[str]) -> bool:
        """Display help information."""
        table = Table(title="Shell Commands", show_header=True)
        table.add_column("Command", style="cyan")
        table.add_column("Description")

        table.add_row('get("key")', "Fetch a document")
        table.add_row('insert("key", {...})', "Insert a new document")
        table.add_row('update("key", {...})', "Replace an existing document")
        table.add_row('delete("key")', "Delete a document")
        table.add_row("use <database>", "Switch the active database")
        table.add_row("ping", "Check the server answers")
        table.add_row("status", "Show connection state")
        table.add_row("reconnect", "Open a new session")
        table.add_row("clear", "Clear the screen")
        table.add_row("exit / quit", "Exit the shell")

        self.console.print(table)
        return True

    async def _cmd_use(self, args: list[str]) -> bool:
        """Switch database."""
        if len(args) != 1:
            self._print_error("usage: use <database>")
            return False
        if self.dispatcher is None:
            self._print_error("Not connected")
            return False
        self.dispatcher.switch_database(args[0])
        self.console.print(f"[green][Success][/green] using {escape(self.dispatcher.database)}")
        return True

    async def _cmd_ping(self, args: list[str]) -> bool:
        """Ping the server."""
        if self.dispatcher is None:
            self._print_error("Not connected")
            return False
        try:
            rendered = await self.dispatcher.ping()
        except ApplicationError as e:
            self._print_error(e.message)
            return False
        self.print_response(rendered)
        return not rendered.is_error

    async def _cmd_status(self, args: list[str]) -> bool:
        """Show connection state."""
        table = Table(title="Connection", show_header=False)
        table.add_column("Field", style="cyan")
        table.add_column("Value")

        table.add_row("address", self.options.address)
        if self.dispatcher is None:
            table.add_row("state", "disconnected")
        else:
            table.add_row("backend", self.dispatcher.backend_kind)
            table.add_row("database", self.dispatcher.database)
            table.add_row("auth", self.dispatcher.auth_state)
            table.add_row("state", "ready" if self.dispatcher.usable else "unusable")

        self.console.print(table)
        return True

    async def _cmd_reconnect(self, args: list[str]) -> bool:
        """Open a new session."""
        if await self.connect():
            self.console.print(f"[green][Success][/green] connected to {escape(self.options.address)}")
            return True
        return False

    async def _cmd_clear(self, args: list[str]) -> bool:
        """Clear the screen."""
        self.console.clear()
        return True

    async def _cmd_quit(self, args: list[str]) -> bool:
        """Exit the shell."""
        self.running = False
        return True


async def run_shell(options: ConnectionOptions, prompt: str = "RUSTBASE> ") -> None:
    """Run the interactive shell."""
    shell = InteractiveShell(options, prompt=prompt)
    await shell.run()


async def run_once(options: ConnectionOptions, line: str, console: Console | None = None) -> int:
    """Connect, run a single line, and return a process exit code."""
    shell = InteractiveShell(options, console=console or Console())
    if not await shell.connect():
        return 1
    try:
        ok = await shell.handle_line(line)
    finally:
        # a failed reconnect leaves no dispatcher
        if shell.dispatcher is not None:
            await shell.dispatcher.close()
    return 0 if ok else 1
