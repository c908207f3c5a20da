"""
Response Status Taxonomy.

One closed set of statuses for every backend. The legacy stream protocol
and the gRPC backend report their own codes; both are mapped onto Status
here and nowhere else.
"""

from enum import Enum

import grpc

from rbshell.core.exceptions import ProtocolError


class Status(str, Enum):
    OK = "Ok"
    INSERTED = "Inserted"
    UPDATED = "Updated"

    INVALID_QUERY = "InvalidQuery"
    NOT_FOUND = "NotFound"
    ALREADY_EXISTS = "AlreadyExists"
    BAD_BSON = "BadBson"
    BAD_AUTH = "BadAuth"
    BAD_BODY = "BadBody"
    NOT_AUTHORIZED = "NotAuthorized"
    RESERVED = "Reserved"
    SYNTAX_ERROR = "SyntaxError"

    INTERNAL_ERROR = "InternalError"

    @property
    def is_success(self) -> bool:
        return self in SUCCESS_STATUSES

    @property
    def is_server_fault(self) -> bool:
        return self is Status.INTERNAL_ERROR


SUCCESS_STATUSES = frozenset({Status.OK, Status.INSERTED, Status.UPDATED})

LEGACY_STATUS_MAP: dict[str, Status] = {
    "Ok": Status.OK,
    "Error": Status.INTERNAL_ERROR,
    "DatabaseNotFound": Status.NOT_FOUND,
    "KeyNotExists": Status.NOT_FOUND,
    "KeyAlreadyExists": Status.ALREADY_EXISTS,
    "SyntaxError": Status.SYNTAX_ERROR,
    "InvalidQuery": Status.INVALID_QUERY,
    "InvalidBody": Status.BAD_BODY,
    "InvalidBson": Status.BAD_BSON,
    "InvalidAuth": Status.BAD_AUTH,
}
"""Reduced status set spoken by servers using the legacy envelope."""

RPC_RESULT_MAP: dict[int, Status] = {
    0: Status.OK,
    1: Status.NOT_FOUND,
    2: Status.INTERNAL_ERROR,
    3: Status.SYNTAX_ERROR,
}
"""QueryReply.result_type of the legacy gRPC Query call."""

GRPC_STATUS_MAP: dict[grpc.StatusCode, Status] = {
    grpc.StatusCode.NOT_FOUND: Status.NOT_FOUND,
    grpc.StatusCode.ALREADY_EXISTS: Status.ALREADY_EXISTS,
    grpc.StatusCode.INVALID_ARGUMENT: Status.INVALID_QUERY,
    grpc.StatusCode.FAILED_PRECONDITION: Status.INVALID_QUERY,
    grpc.StatusCode.OUT_OF_RANGE: Status.INVALID_QUERY,
    grpc.StatusCode.UNAUTHENTICATED: Status.BAD_AUTH,
    grpc.StatusCode.PERMISSION_DENIED: Status.NOT_AUTHORIZED,
    grpc.StatusCode.UNIMPLEMENTED: Status.RESERVED,
    grpc.StatusCode.RESOURCE_EXHAUSTED: Status.INTERNAL_ERROR,
    grpc.StatusCode.ABORTED: Status.INTERNAL_ERROR,
    grpc.StatusCode.DATA_LOSS: Status.INTERNAL_ERROR,
    grpc.StatusCode.INTERNAL: Status.INTERNAL_ERROR,
}
"""
gRPC codes the server uses to report query outcomes. Codes missing here
(UNAVAILABLE, CANCELLED, DEADLINE_EXCEEDED, UNKNOWN, OK) are transport
failures, not statuses.
"""


def legacy_status(name: str) -> Status:
    """Map a legacy status name onto the canonical taxonomy."""
    try:
        return LEGACY_STATUS_MAP[name]
    except KeyError:
        raise ProtocolError(f"Unknown legacy status: {name!r}") from None


def rpc_result_status(result_type: int) -> Status:
    try:
        return RPC_RESULT_MAP[result_type]
    except KeyError:
        raise ProtocolError(f"Unknown query result type: {result_type}") from None
