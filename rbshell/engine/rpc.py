"""
gRPC Backend.

Each verb is its own call on the rustbase.Rustbase service; framing and
connection management belong to gRPC. Documents travel as BSON bytes.

    service Rustbase {
      rpc Get(KeyRequest) returns (DocumentReply);
      rpc Insert(DocumentRequest) returns (Ack);
      rpc Update(DocumentRequest) returns (Ack);
      rpc Delete(KeyRequest) returns (Ack);
      rpc Query(QueryRequest) returns (QueryReply);   // legacy, text queries
    }

Message classes are built from a descriptor at import time, so no
generated _pb2 modules are needed.
"""

from pathlib import Path

import bson
import grpc
from google.protobuf import descriptor_pb2, descriptor_pool, message_factory

from rbshell.core.exceptions import TlsConfigurationError, TransportError
from rbshell.core.logging import get_logger, log_with_source
from rbshell.engine.compiler import ParsedCall, Verb
from rbshell.engine.protocol import ServerResponse, decode_document
from rbshell.engine.status import GRPC_STATUS_MAP, Status, rpc_result_status
from rbshell.engine.value import to_bson_value

logger = get_logger(__name__)

PACKAGE = "rustbase"
SERVICE = f"{PACKAGE}.Rustbase"

_Field = descriptor_pb2.FieldDescriptorProto


def _build_messages() -> dict[str, type]:
    file_proto = descriptor_pb2.FileDescriptorProto(
        name="rustbase.proto", package=PACKAGE, syntax="proto3",
    )

    result_type = file_proto.enum_type.add(name="ResultType")
    for number, name in enumerate(["OK", "NOT_FOUND", "ERROR", "SYNTAX_ERROR"]):
        result_type.value.add(name=name, number=number)

    def message(name: str, *fields: tuple[str, int]) -> None:
        proto = file_proto.message_type.add(name=name)
        for number, (field_name, field_type) in enumerate(fields, start=1):
            field = proto.field.add(
                name=field_name, number=number, type=field_type, label=_Field.LABEL_OPTIONAL,
            )
            if field_type == _Field.TYPE_ENUM:
                field.type_name = f".{PACKAGE}.ResultType"

    message("KeyRequest", ("database", _Field.TYPE_STRING), ("key", _Field.TYPE_STRING))
    message(
        "DocumentRequest",
        ("database", _Field.TYPE_STRING),
        ("key", _Field.TYPE_STRING),
        ("document", _Field.TYPE_BYTES),
    )
    message("DocumentReply", ("document", _Field.TYPE_BYTES))
    message("Ack")
    message("QueryRequest", ("query", _Field.TYPE_STRING), ("database", _Field.TYPE_STRING))
    message(
        "QueryReply",
        ("result_type", _Field.TYPE_ENUM),
        ("document", _Field.TYPE_BYTES),
        ("error_message", _Field.TYPE_STRING),
    )

    pool = descriptor_pool.DescriptorPool()
    pool.AddSerializedFile(file_proto.SerializeToString())
    return {
        proto.name: message_factory.GetMessageClass(
            pool.FindMessageTypeByName(f"{PACKAGE}.{proto.name}")
        )
        for proto in file_proto.message_type
    }


MESSAGES = _build_messages()
KeyRequest = MESSAGES["KeyRequest"]
DocumentRequest = MESSAGES["DocumentRequest"]
DocumentReply = MESSAGES["DocumentReply"]
Ack = MESSAGES["Ack"]
QueryRequest = MESSAGES["QueryRequest"]
QueryReply = MESSAGES["QueryReply"]


class RpcBackend:
    """Runs compiled calls as gRPC service calls."""

    def __init__(self, channel: grpc.aio.Channel, legacy_query: bool = False, encrypted: bool = False) -> None:
        self._channel = channel
        self.legacy_query = legacy_query
        self.encrypted = encrypted

        def method(name: str, request: type, response: type):
            return channel.unary_unary(
                f"/{SERVICE}/{name}",
                request_serializer=request.SerializeToString,
                response_deserializer=response.FromString,
            )

        self._get = method("Get", KeyRequest, DocumentReply)
        self._insert = method("Insert", DocumentRequest, Ack)
        self._update = method("Update", DocumentRequest, Ack)
        self._delete = method("Delete", KeyRequest, Ack)
        self._query = method("Query", QueryRequest, QueryReply)

    @property
    def kind(self) -> str:
        return "rpc+tls" if self.encrypted else "rpc"

    async def execute(self, call: ParsedCall, database: str) -> ServerResponse:
        try:
            if self.legacy_query:
                return await self._execute_text(call, database)
            return await self._execute_call(call, database)
        except grpc.aio.AioRpcError as e:
            return self._error_response(e)

    async def _execute_call(self, call: ParsedCall, database: str) -> ServerResponse:
        if call.verb is Verb.GET:
            reply = await self._get(KeyRequest(database=database, key=call.key))
            if not reply.document:
                return ServerResponse(Status.OK)
            return ServerResponse(Status.OK, document=decode_document(reply.document), has_document=True)

        if call.verb is Verb.DELETE:
            await self._delete(KeyRequest(database=database, key=call.key))
            return ServerResponse(Status.OK)

        request = DocumentRequest(
            database=database,
            key=call.key,
            document=bson.encode(to_bson_value(call.document)),
        )
        if call.verb is Verb.INSERT:
            await self._insert(request)
            return ServerResponse(Status.INSERTED)
        await self._update(request)
        return ServerResponse(Status.UPDATED)

    async def _execute_text(self, call: ParsedCall, database: str) -> ServerResponse:
        reply = await self._query(QueryRequest(query=call.to_query_text(), database=database))
        response = ServerResponse(rpc_result_status(reply.result_type))
        if reply.error_message:
            response.messages.append(reply.error_message)
        if reply.document:
            response.document = decode_document(reply.document)
            response.has_document = True
        return response

    def _error_response(self, error: grpc.aio.AioRpcError) -> ServerResponse:
        code = error.code()
        status = GRPC_STATUS_MAP.get(code)
        if status is None:
            raise TransportError(f"RPC failed ({code.name}): {error.details()}") from error
        log_with_source(logger, "engine", "debug", "RPC status", code=code.name, status=status.value)
        details = error.details()
        return ServerResponse(status, messages=[details] if details else [])

    async def ping(self) -> ServerResponse:
        """
        Wait until the channel is READY.

        gRPC keeps retrying the connection in the background, so against an
        unreachable server this blocks until the caller cancels it.
        """
        await self._channel.channel_ready()
        return ServerResponse(Status.OK)

    async def close(self) -> None:
        await self._channel.close()


def open_rpc_backend(
    host: str,
    port: int,
    ca_file: str | None = None,
    legacy_query: bool = False,
) -> RpcBackend:
    """
    Create a gRPC channel. gRPC connects lazily, so an unreachable server
    surfaces as a TransportError on the first call.

    Raises:
        TlsConfigurationError: If the CA bundle is missing or unreadable.
    """
    target = f"{host}:{port}"
    if ca_file is None:
        channel = grpc.aio.insecure_channel(target)
    else:
        path = Path(ca_file)
        if not path.is_file():
            raise TlsConfigurationError(f"CA file not found: {ca_file} (use --ca-file=<path>)")
        try:
            root_certificates = path.read_bytes()
        except OSError as e:
            raise TlsConfigurationError(f"Could not read CA file {ca_file}: {e}") from e
        credentials = grpc.ssl_channel_credentials(root_certificates=root_certificates)
        channel = grpc.aio.secure_channel(target, credentials)

    log_with_source(logger, "engine", "info", "RPC channel created", address=target, tls=ca_file is not None)
    return RpcBackend(channel, legacy_query=legacy_query, encrypted=ca_file is not None)
