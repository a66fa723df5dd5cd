import grpc
import pytest
from google.protobuf import descriptor_pb2
from grpc_health.v1 import health_pb2, health_pb2_grpc
from grpc_reflection.v1alpha import reflection_pb2, reflection_pb2_grpc

from grpc_app.contracts.todo import SERVICE_NAME


pytestmark = pytest.mark.asyncio


async def _reflect(channel, **request):
    stub = reflection_pb2_grpc.ServerReflectionStub(channel)
    responses = [r async for r in stub.ServerReflectionInfo(iter([reflection_pb2.ServerReflectionRequest(**request)]))]
    assert len(responses) == 1
    return responses[0]


async def test_reflection_is_off_by_default(backend_factory):
    target, server = await backend_factory()

    assert not server.reflection_enabled
    async with grpc.aio.insecure_channel(target) as channel:
        with pytest.raises(grpc.aio.AioRpcError) as ei:
            await _reflect(channel, list_services="")

    assert ei.value.code() == grpc.StatusCode.UNIMPLEMENTED


async def test_reflection_lists_every_mounted_service(backend_factory):
    target, _ = await backend_factory(reflection=True)

    async with grpc.aio.insecure_channel(target) as channel:
        resp = await _reflect(channel, list_services="")

    names = {s.name for s in resp.list_services_response.service}
    assert {
        SERVICE_NAME,
        "grpc.health.v1.Health",
        "grpc.reflection.v1alpha.ServerReflection",
    } <= names


async def test_reflection_serves_login_descriptor(backend_factory):
    target, _ = await backend_factory(reflection=True)

    async with grpc.aio.insecure_channel(target) as channel:
        resp = await _reflect(channel, file_containing_symbol=SERVICE_NAME)

    files = [
        descriptor_pb2.FileDescriptorProto.FromString(raw)
        for raw in resp.file_descriptor_response.file_descriptor_proto
    ]
    todo = next(f for f in files if f.name == "todo/todo.proto")
    assert todo.package == "todo"
    assert [m.name for m in todo.service[0].method] == ["Login"]
    login_response = next(m for m in todo.message_type if m.name == "LoginResponse")
    assert [d.name for d in login_response.oneof_decl] == ["response"]


async def test_health_reports_serving(backend_factory):
    target, _ = await backend_factory()

    async with grpc.aio.insecure_channel(target) as channel:
        stub = health_pb2_grpc.HealthStub(channel)
        overall = await stub.Check(health_pb2.HealthCheckRequest(service=""))
        login = await stub.Check(health_pb2.HealthCheckRequest(service=SERVICE_NAME))

    assert overall.status == health_pb2.HealthCheckResponse.SERVING
    assert login.status == health_pb2.HealthCheckResponse.SERVING


async def test_health_rejects_unknown_service(backend_factory):
    target, _ = await backend_factory()

    async with grpc.aio.insecure_channel(target) as channel:
        stub = health_pb2_grpc.HealthStub(channel)
        with pytest.raises(grpc.aio.AioRpcError) as ei:
            await stub.Check(health_pb2.HealthCheckRequest(service="unknown.Service"))
    assert ei.value.code() == grpc.StatusCode.NOT_FOUND
