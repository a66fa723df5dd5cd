"""Protobuf messages and gRPC bindings for `todo.TodoService`.

Mirrors `grpc_app/protos/todo/todo.proto`. The file descriptor is assembled
with `descriptor_pb2` and added to the default descriptor pool, which is what
protoc output does with a serialized blob; being in the default pool is what
makes the messages visible to server reflection.
"""

from __future__ import annotations

import grpc
from google.protobuf import descriptor_pb2, descriptor_pool, message_factory


PACKAGE = "todo"
SERVICE_NAME = f"{PACKAGE}.TodoService"
LOGIN_METHOD = f"/{SERVICE_NAME}/Login"

_F = descriptor_pb2.FieldDescriptorProto


def _field(
    message: descriptor_pb2.DescriptorProto,
    name: str,
    number: int,
    *,
    type_name: str | None = None,
    oneof_index: int | None = None,
) -> None:
    field = message.field.add()
    field.name = name
    field.number = number
    field.label = _F.LABEL_OPTIONAL
    if type_name:
        field.type = _F.TYPE_MESSAGE
        field.type_name = f".{PACKAGE}.{type_name}"
    else:
        field.type = _F.TYPE_STRING
    if oneof_index is not None:
        field.oneof_index = oneof_index


def _build_file() -> descriptor_pb2.FileDescriptorProto:
    fdp = descriptor_pb2.FileDescriptorProto()
    fdp.name = "todo/todo.proto"
    fdp.package = PACKAGE
    fdp.syntax = "proto3"

    req = fdp.message_type.add()
    req.name = "LoginRequest"
    _field(req, "username", 1)
    _field(req, "password", 2)

    err = fdp.message_type.add()
    err.name = "LoginError"
    _field(err, "message", 1)

    resp = fdp.message_type.add()
    resp.name = "LoginResponse"
    resp.oneof_decl.add().name = "response"
    _field(resp, "token", 1, oneof_index=0)
    _field(resp, "error", 2, type_name="LoginError", oneof_index=0)

    svc = fdp.service.add()
    svc.name = "TodoService"
    login = svc.method.add()
    login.name = "Login"
    login.input_type = f".{PACKAGE}.LoginRequest"
    login.output_type = f".{PACKAGE}.LoginResponse"
    return fdp


DESCRIPTOR = descriptor_pool.Default().AddSerializedFile(_build_file().SerializeToString())

LoginRequest = message_factory.GetMessageClass(DESCRIPTOR.message_types_by_name["LoginRequest"])
LoginError = message_factory.GetMessageClass(DESCRIPTOR.message_types_by_name["LoginError"])
LoginResponse = message_factory.GetMessageClass(DESCRIPTOR.message_types_by_name["LoginResponse"])


def token_response(token: str) -> LoginResponse:
    return LoginResponse(token=token)


def error_response(message: str) -> LoginResponse:
    return LoginResponse(error=LoginError(message=message))


def response_token(response: LoginResponse) -> str:
    """Return the token variant of a LoginResponse.

    Raises:
        ValueError: the response carries the error variant or nothing at all.
    """
    variant = response.WhichOneof("response")
    if variant == "token":
        return response.token
    if variant == "error":
        raise ValueError(response.error.message or "login rejected")
    raise ValueError("empty login response")


class TodoServiceStub:
    """Client stub for todo.TodoService."""

    def __init__(self, channel: grpc.aio.Channel) -> None:
        self.Login = channel.unary_unary(
            LOGIN_METHOD,
            request_serializer=LoginRequest.SerializeToString,
            response_deserializer=LoginResponse.FromString,
        )


class TodoServiceServicer:
    """Base servicer; every method answers UNIMPLEMENTED until overridden."""

    async def Login(self, request: LoginRequest, context: grpc.aio.ServicerContext) -> LoginResponse:
        await context.abort(grpc.StatusCode.UNIMPLEMENTED, "Method not implemented!")


def add_TodoServiceServicer_to_server(servicer: TodoServiceServicer, server: grpc.aio.Server) -> None:
    rpc_method_handlers = {
        "Login": grpc.unary_unary_rpc_method_handler(
            servicer.Login,
            request_deserializer=LoginRequest.FromString,
            response_serializer=LoginResponse.SerializeToString,
        ),
    }
    generic_handler = grpc.method_handlers_generic_handler(SERVICE_NAME, rpc_method_handlers)
    server.add_generic_rpc_handlers((generic_handler,))


