"""
Configuration Management.

Loads secrets from config/.env and settings from config/settings/*.yaml.
No hardcoded values in code: all configuration comes from these sources,
optionally overridden by command-line flags.

Secrets (.env or environment):
    RUSTBASE_USERNAME, RUSTBASE_PASSWORD, RUSTBASE_AUTH_TOKEN

Settings (YAML):
    client.yaml   - Connection target, transport, framing, TLS, protocol, shell
    logging.yaml  - Logging configuration
"""

from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from rbshell.core.config_schema import ClientSchema, LoggingSchema
from rbshell.core.exceptions import ConfigurationError


def find_project_root() -> Path:
    """Find project root by looking for .project_root marker file."""
    current = Path.cwd()
    while current != current.parent:
        if (current / ".project_root").exists():
            return current
        current = current.parent
    raise RuntimeError("Project root not found. Ensure .project_root file exists.")


def validate_project_root() -> Path:
    """
    Validate that the project root can be found.

    Raises SystemExit with a clear message if .project_root is not found.
    Use this in entry scripts before any configuration loading.
    """
    try:
        return find_project_root()
    except RuntimeError as e:
        raise SystemExit(f"Error: {e}") from e


def load_yaml_config(filename: str) -> dict[str, Any]:
    """Load a YAML configuration file from config/settings/."""
    project_root = find_project_root()
    config_path = project_root / "config" / "settings" / filename

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path) as f:
        return yaml.safe_load(f) or {}


class Settings(BaseSettings):
    """Secrets loaded from config/.env. Every field is optional."""

    rustbase_username: str | None = None
    rustbase_password: SecretStr | None = None
    rustbase_auth_token: SecretStr | None = None

    model_config = SettingsConfigDict(
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


def _load_validated(schema_cls: type, filename: str) -> Any:
    """Load YAML and validate against schema. Returns typed model instance."""
    raw = load_yaml_config(filename)
    try:
        return schema_cls(**raw)
    except ValidationError as e:
        raise ValueError(
            f"Invalid configuration in {filename}:\n{e}"
        ) from e


class AppConfig:
    """
    Client configuration loaded from YAML files.

    Each YAML file is validated against its Pydantic schema at load time.
    Properties return typed Pydantic model instances with attribute access.
    """

    def __init__(self) -> None:
        self._client = _load_validated(ClientSchema, "client.yaml")
        self._logging = _load_validated(LoggingSchema, "logging.yaml")

    @property
    def client(self) -> ClientSchema:
        """Connection, protocol and shell settings."""
        return self._client

    @property
    def logging(self) -> LoggingSchema:
        """Logging settings."""
        return self._logging


@lru_cache
def get_settings() -> Settings:
    """Get cached secrets instance. Resolves .env path from project root."""
    env_path = find_project_root() / "config" / ".env"
    return Settings(_env_file=str(env_path))


@lru_cache
def get_app_config() -> AppConfig:
    """Get cached application configuration."""
    return AppConfig()


class ConnectionOptions(BaseModel):
    """Everything needed to open one session, after overrides are applied."""

    host: str
    port: int
    database: str
    transport: Literal["stream", "rpc"] = "stream"
    framing: Literal["heuristic", "length_prefixed"] = "heuristic"
    buffer_size: int = 8192
    max_frame_size: int = 16 * 1024 * 1024
    tls_enabled: bool = False
    ca_file: str | None = None
    envelope: Literal["structured", "legacy"] = "structured"
    rpc_legacy_query: bool = False
    mechanism: str = "SCRAM-SHA-256"
    username: str | None = None
    password: SecretStr | None = None
    auth_token: SecretStr | None = None

    @field_validator("database")
    @classmethod
    def _database_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("database name must not be empty")
        return value

    @property
    def credentials_configured(self) -> bool:
        """True when both halves of the SCRAM credentials are present."""
        return bool(self.username) and self.password is not None

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


def build_connection_options(**overrides: Any) -> ConnectionOptions:
    """
    Merge client.yaml, secrets and explicit overrides.

    Overrides whose value is None are ignored, so command-line flags that
    were not given fall through to the YAML value.

    Raises:
        ConfigurationError: If the merged options are inconsistent.
    """
    client = get_app_config().client
    settings = get_settings()

    merged: dict[str, Any] = {
        "host": client.connection.host,
        "port": client.connection.port,
        "database": client.connection.database,
        "transport": client.connection.transport,
        "framing": client.connection.framing,
        "buffer_size": client.connection.buffer_size,
        "max_frame_size": client.connection.max_frame_size,
        "tls_enabled": client.tls.enabled,
        "ca_file": client.tls.ca_file,
        "envelope": client.protocol.envelope,
        "rpc_legacy_query": client.protocol.rpc_legacy_query,
        "mechanism": client.auth.mechanism,
        "username": settings.rustbase_username,
        "password": settings.rustbase_password,
        "auth_token": settings.rustbase_auth_token,
    }
    merged.update({k: v for k, v in overrides.items() if v is not None})

    try:
        options = ConnectionOptions(**merged)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid connection options:\n{e}") from e

    if options.tls_enabled and not options.ca_file:
        raise ConfigurationError("TLS is enabled but no CA file is configured (use --ca-file)")
    if options.transport == "rpc" and options.credentials_configured:
        raise ConfigurationError("SCRAM authentication is only available on the stream transport")
    return options
