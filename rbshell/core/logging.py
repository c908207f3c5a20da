"""
Shell Logging.

Every module logs through structlog loggers from get_logger(). Handlers are
attached to the stdlib root logger by setup_logging(), driven by the
validated LoggingSchema from config/settings/logging.yaml.

Console records go to stderr so they never interleave with query results
on stdout. The optional JSONL file holds every record; filter it by the
'source' field (cli, shell, engine, internal).

Passwords, proofs and auth tokens are never logged.

Usage:
    from rbshell.core.logging import get_logger, log_with_source, setup_logging

    setup_logging(level="DEBUG")

    logger = get_logger(__name__)
    log_with_source(logger, "engine", "info", "Connected", address="localhost:23561")
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Any

import structlog
from structlog.typing import Processor

from rbshell.core.config import find_project_root, get_app_config
from rbshell.core.config_schema import FileHandlerSchema, LoggingSchema

VALID_SOURCES = frozenset({
    "cli",
    "shell",
    "engine",
    "internal",
})
"""Recognized values of the 'source' field. Always set by the caller."""

# chatty at DEBUG, and never about the shell's own work
QUIET_LIBRARIES = ("grpc", "asyncio")

_SHARED_PROCESSORS: list[Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.UnicodeDecoder(),
    structlog.processors.CallsiteParameterAdder(
        parameters=[
            structlog.processors.CallsiteParameter.FUNC_NAME,
            structlog.processors.CallsiteParameter.LINENO,
        ],
    ),
]


def _formatter(renderer: Processor) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=_SHARED_PROCESSORS,
    )


def _console_handler(format_type: str) -> logging.Handler:
    if format_type == "console":
        renderer: Processor = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    else:
        renderer = structlog.processors.JSONRenderer()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_formatter(renderer))
    return handler


def _file_handler(config: FileHandlerSchema) -> logging.Handler:
    """Rotating JSONL handler; the path is relative to the project root."""
    path = find_project_root() / config.path
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        filename=str(path),
        maxBytes=config.max_bytes,
        backupCount=config.backup_count,
        encoding="utf-8",
    )
    handler.setFormatter(_formatter(structlog.processors.JSONRenderer()))
    return handler


def setup_logging(
    level: str | None = None,
    format_type: str | None = None,
    enable_console: bool | None = None,
    enable_file_logging: bool | None = None,
    config: LoggingSchema | None = None,
) -> None:
    """
    Configure structlog and replace the root logger's handlers.

    Keyword arguments left as None fall back to ``config``, which defaults
    to the cached ``get_app_config().logging``.

    Raises:
        ValueError: If logging.yaml is invalid or ``level`` is not a level name.
        FileNotFoundError: If logging.yaml is missing.
    """
    config = config or get_app_config().logging
    console_enabled = config.handlers.console.enabled if enable_console is None else enable_console
    file_enabled = config.handlers.file.enabled if enable_file_logging is None else enable_file_logging

    structlog.configure(
        processors=_SHARED_PROCESSORS + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handlers: list[logging.Handler] = []
    if console_enabled:
        handlers.append(_console_handler(format_type or config.format))
    if file_enabled:
        handlers.append(_file_handler(config.handlers.file))

    root_logger = logging.getLogger()
    root_logger.setLevel((level or config.level).upper())
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    for handler in handlers:
        root_logger.addHandler(handler)

    for name in QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> Any:
    """Get a structlog logger, typically for ``__name__``."""
    return structlog.get_logger(name)


def log_with_source(logger: Any, source: str, level: str, message: str, **kwargs: Any) -> None:
    """
    Log a message with an explicit source.

    Raises:
        AttributeError: If level is not a valid log level

    Example:
        log_with_source(logger, "engine", "debug", "Frame received", size=42)
    """
    log_method = getattr(logger, level.lower())
    log_method(message, source=source, **kwargs)
