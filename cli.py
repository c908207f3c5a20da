#!/usr/bin/env python3
"""
Rustbase Shell CLI.

Primary entry point. Connects to a Rustbase server and starts the
interactive shell, or runs a single query line with --execute.

Usage:
    python cli.py --help
    python cli.py
    python cli.py --host db.internal --port 23561 --database app
    python cli.py --tls --ca-file certs/ca.pem
    python cli.py --transport rpc --port 50051
    python cli.py --execute 'get("user:1")'
    python cli.py --username admin --debug
"""

import asyncio
import sys
from pathlib import Path

import click
import structlog

PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from rbshell.core.logging import get_logger, setup_logging


def validate_project_root() -> Path:
    """Validate that we're running from the project root."""
    if not (PROJECT_ROOT / ".project_root").exists():
        click.echo(
            click.style("Error: .project_root not found. Run from project root.", fg="red"),
            err=True,
        )
        sys.exit(1)
    return PROJECT_ROOT


@click.command()
@click.option("--host", "-h", default=None, help="Server host (client.yaml: connection.host).")
@click.option("--port", "-p", default=None, type=int, help="Server port (client.yaml: connection.port).")
@click.option("--database", "-D", default=None, help="Database to run queries against.")
@click.option(
    "--transport", "-t",
    type=click.Choice(["stream", "rpc"]),
    default=None,
    help="Wire transport: BSON over TCP/TLS, or gRPC.",
)
@click.option(
    "--framing",
    type=click.Choice(["heuristic", "length_prefixed"]),
    default=None,
    help="Message framing on the stream transport.",
)
@click.option("--tls/--no-tls", default=None, help="Encrypt the connection with TLS.")
@click.option("--ca-file", default=None, help="CA bundle used to verify the server certificate.")
@click.option("--username", "-u", default=None, help="SCRAM username (or RUSTBASE_USERNAME).")
@click.option(
    "--password",
    default=None,
    envvar="RUSTBASE_PASSWORD",
    help="SCRAM password (or RUSTBASE_PASSWORD).",
)
@click.option("--execute", "-e", "execute", default=None, help="Run one query line and exit.")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output (INFO level logging).")
@click.option("--debug", "-d", is_flag=True, help="Enable debug output (DEBUG level logging).")
@click.version_option(package_name="rustbase-shell")
def main(
    host: str | None,
    port: int | None,
    database: str | None,
    transport: str | None,
    framing: str | None,
    tls: bool | None,
    ca_file: str | None,
    username: str | None,
    password: str | None,
    execute: str | None,
    verbose: bool,
    debug: bool,
) -> None:
    """
    Rustbase Shell.

    Query a Rustbase server with get/insert/update/delete.

    \b
    Examples:
        python cli.py
        python cli.py --host 10.0.0.5 --database app
        python cli.py --tls --ca-file certs/ca.pem
        python cli.py -e 'insert("user:1", {"name": "Ada"})'
    """
    validate_project_root()

    if debug:
        log_level = "DEBUG"
    elif verbose:
        log_level = "INFO"
    else:
        log_level = None

    try:
        setup_logging(level=log_level)
    except (ValueError, FileNotFoundError) as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        sys.exit(1)

    structlog.contextvars.bind_contextvars(source="cli")

    logger = get_logger(__name__)

    from rbshell.core.config import build_connection_options, get_app_config
    from rbshell.core.exceptions import ApplicationError

    try:
        options = build_connection_options(
            host=host,
            port=port,
            database=database,
            transport=transport,
            framing=framing,
            tls_enabled=tls,
            ca_file=ca_file,
            username=username,
            password=password,
        )
        prompt = get_app_config().client.shell.prompt
    except (ApplicationError, ValueError, FileNotFoundError) as e:
        logger.error("Failed to load configuration", error=str(e))
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        sys.exit(1)

    logger.debug(
        "CLI invoked",
        address=options.address,
        transport=options.transport,
        tls=options.tls_enabled,
        auth=options.credentials_configured,
    )

    if execute is not None:
        from rbshell.cli.shell import run_once

        sys.exit(asyncio.run(run_once(options, execute)))

    from rbshell.cli.shell import run_shell

    asyncio.run(run_shell(options, prompt=prompt))


if __name__ == "__main__":
    main()
