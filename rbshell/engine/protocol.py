"""
Wire Envelopes.

Every message on the stream transport is one BSON document.

Structured protocol:
    request   {header: {type, auth?}, body: {database, verb, key, document?}}
    response  {header: {status, messages?, is_error}, body?}

Legacy protocol (servers that parse query text themselves):
    request   {body: {query, database}}
    response  {status, message?, body?}

Responses are validated with pydantic; anything that does not fit is a
ProtocolError, never a server-reported status.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import bson
from bson.errors import BSONError
from pydantic import BaseModel, ConfigDict, ValidationError

from rbshell.core.exceptions import ProtocolError
from rbshell.engine.compiler import ParsedCall
from rbshell.engine.status import Status, legacy_status
from rbshell.engine.value import Value, from_bson_value, to_bson_value


class RequestType(str, Enum):
    QUERY = "Query"
    PING = "Ping"
    PRE_REQUEST = "PreRequest"
    CLUSTER = "Cluster"


@dataclass
class ServerResponse:
    """A decoded response, independent of the backend that produced it."""

    status: Status
    messages: list[str] = field(default_factory=list)
    document: Value = None
    has_document: bool = False


class _ResponseHeader(BaseModel):
    model_config = ConfigDict(extra="ignore")

    status: Status
    messages: list[str] | None = None
    is_error: bool = False


class _ResponseEnvelope(BaseModel):
    model_config = ConfigDict(extra="ignore")

    header: _ResponseHeader
    body: Any = None


class _LegacyResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    status: str
    message: str | None = None
    body: Any = None


def _header(request_type: RequestType, auth_token: str | None) -> dict[str, Any]:
    header: dict[str, Any] = {"type": request_type.value}
    if auth_token:
        header["auth"] = auth_token
    return header


def encode_request(call: ParsedCall, database: str, auth_token: str | None = None) -> bytes:
    """Encode a compiled call as a structured Query envelope."""
    body: dict[str, Any] = {
        "database": database,
        "verb": call.verb.value,
        "key": call.key,
    }
    if call.document is not None:
        body["document"] = to_bson_value(call.document)
    return bson.encode({"header": _header(RequestType.QUERY, auth_token), "body": body})


def encode_ping(auth_token: str | None = None) -> bytes:
    return bson.encode({"header": _header(RequestType.PING, auth_token), "body": {}})


def encode_legacy_request(call: ParsedCall, database: str) -> bytes:
    """Encode a call as query text, for servers that compile it themselves."""
    return bson.encode({"body": {"query": call.to_query_text(), "database": database}})


def _decode_bson(data: bytes) -> dict[str, Any]:
    try:
        return bson.decode(data)
    except (BSONError, ValueError, TypeError) as e:
        raise ProtocolError(f"Response is not a valid BSON document: {e}") from e


def decode_document(data: bytes) -> Value:
    """Decode a bare BSON document payload, as carried by the gRPC backend."""
    return from_bson_value(_decode_bson(data))


def decode_response(data: bytes) -> ServerResponse:
    """
    Decode a structured response envelope.

    Raises:
        ProtocolError: If the bytes are not BSON or the envelope is malformed.
    """
    raw = _decode_bson(data)
    try:
        envelope = _ResponseEnvelope(**raw)
    except ValidationError as e:
        raise ProtocolError(f"Malformed response envelope:\n{e}") from e

    # status is authoritative, is_error is informational
    header = envelope.header
    return ServerResponse(
        status=header.status,
        messages=list(header.messages or []),
        document=from_bson_value(envelope.body),
        has_document=envelope.body is not None,
    )


def decode_legacy_response(data: bytes) -> ServerResponse:
    """Decode a legacy {status, message, body} response."""
    raw = _decode_bson(data)
    try:
        response = _LegacyResponse(**raw)
    except ValidationError as e:
        raise ProtocolError(f"Malformed legacy response:\n{e}") from e

    return ServerResponse(
        status=legacy_status(response.status),
        messages=[response.message] if response.message else [],
        document=from_bson_value(response.body),
        has_document=response.body is not None,
    )
