"""
Configuration Schemas.

Pydantic models defining the expected structure of each YAML config file.
Used by AppConfig to validate configuration at load time. If a YAML file
has missing keys, wrong types, or unknown fields, a clear ValidationError
is raised at startup instead of a cryptic KeyError deep in the engine.

Each top-level class corresponds to one file in config/settings/:
    ClientSchema   → client.yaml
    LoggingSchema  → logging.yaml
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class _StrictBase(BaseModel):
    """Base with extra='forbid' so unknown YAML keys are caught immediately."""

    model_config = ConfigDict(extra="forbid")


# =============================================================================
# client.yaml
# =============================================================================


class ConnectionSchema(_StrictBase):
    host: str
    port: int = Field(ge=1, le=65535)
    database: str
    transport: Literal["stream", "rpc"]
    framing: Literal["heuristic", "length_prefixed"]
    buffer_size: int = Field(ge=512)
    max_frame_size: int = Field(ge=1024)


class TlsSchema(_StrictBase):
    enabled: bool
    ca_file: str | None = None


class ProtocolSchema(_StrictBase):
    envelope: Literal["structured", "legacy"]
    rpc_legacy_query: bool


class AuthSchema(_StrictBase):
    mechanism: Literal["SCRAM-SHA-1", "SCRAM-SHA-256", "SCRAM-SHA-512"]


class ShellSchema(_StrictBase):
    prompt: str


class ClientSchema(_StrictBase):
    connection: ConnectionSchema
    tls: TlsSchema
    protocol: ProtocolSchema
    auth: AuthSchema
    shell: ShellSchema


# =============================================================================
# logging.yaml
# =============================================================================


class ConsoleHandlerSchema(_StrictBase):
    enabled: bool


class FileHandlerSchema(_StrictBase):
    enabled: bool
    path: str
    max_bytes: int
    backup_count: int


class HandlersSchema(_StrictBase):
    console: ConsoleHandlerSchema
    file: FileHandlerSchema


class LoggingSchema(_StrictBase):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    format: Literal["console", "json"]
    handlers: HandlersSchema
