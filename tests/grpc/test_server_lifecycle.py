import asyncio
import os
import signal

import grpc
import pytest
from structlog.testing import capture_logs

import grpc_main
from core.config import settings
from grpc_app.builder import GrpcServerBuilder, channel_option
from grpc_app.contracts.todo import LoginRequest, TodoServiceServicer, TodoServiceStub, token_response
from grpc_app.exceptions import BindError, ServerStateError
from grpc_app.server import ServerState


pytestmark = pytest.mark.asyncio

UNROUTABLE_HOST = "203.0.113.1"  # TEST-NET-3, never assigned to a local interface


class _SlowLogin(TodoServiceServicer):
    def __init__(self, delay: float):
        self.delay = delay
        self.started = asyncio.Event()

    async def Login(self, request, context):
        self.started.set()
        await asyncio.sleep(self.delay)
        return token_response("late token")


async def test_start_twice_is_rejected(backend_factory):
    _, server = await backend_factory()

    assert server.state is ServerState.SERVING
    with pytest.raises(ServerStateError) as ei:
        await server.start("127.0.0.1", 0)
    assert "serving" in str(ei.value)


async def test_bind_failure_raises_bind_error():
    server = GrpcServerBuilder().build()

    with pytest.raises(BindError) as ei:
        await server.start(UNROUTABLE_HOST, 0)

    assert ei.value.address == f"{UNROUTABLE_HOST}:0"
    assert str(ei.value).startswith(f"Failed to listen on {UNROUTABLE_HOST}:0")
    assert server.state is ServerState.FAILED

    await server.stop()
    assert server.state is ServerState.STOPPED


async def test_busy_port_raises_bind_error(backend_factory):
    _, running = await backend_factory()
    second = GrpcServerBuilder().build()

    with pytest.raises(BindError) as ei:
        await second.start("127.0.0.1", running.port)

    assert ei.value.address == f"127.0.0.1:{running.port}"
    assert second.state is ServerState.FAILED
    assert running.state is ServerState.SERVING


async def test_port_sharing_is_opt_in():
    # SO_REUSEPORT only applies when every socket on the port asks for it
    first, second = (
        GrpcServerBuilder().add_option(channel_option("grpc.so_reuseport", 1)).build() for _ in range(2)
    )

    try:
        port = await first.start("127.0.0.1", 0)
        assert await second.start("127.0.0.1", port) == port
    finally:
        await asyncio.gather(first.stop(grace=0), second.stop(grace=0))


async def test_register_after_start_is_rejected(backend_factory):
    _, server = await backend_factory()

    with pytest.raises(ServerStateError):
        server.register_service(lambda s: None, "late.Service")


async def test_await_termination_requires_a_started_server():
    server = GrpcServerBuilder().build()

    with pytest.raises(ServerStateError):
        await server.await_termination()


async def test_stop_without_start_just_marks_stopped():
    server = GrpcServerBuilder().build()

    await server.stop()

    assert server.state is ServerState.STOPPED


async def test_sigterm_drains_in_flight_call_and_runs_hook_once(backend_factory):
    servicer = _SlowLogin(delay=0.5)
    target, server = await backend_factory(servicer)
    hook_states = []

    waiter = asyncio.create_task(
        server.await_termination(lambda: hook_states.append(server.state), signals=(signal.SIGTERM,))
    )
    # Let await_termination install its handler
    await asyncio.sleep(0.05)

    async with grpc.aio.insecure_channel(target) as channel:
        call = asyncio.ensure_future(TodoServiceStub(channel).Login(LoginRequest(username="alice")))
        await asyncio.wait_for(servicer.started.wait(), timeout=2)

        with capture_logs() as logs:
            os.kill(os.getpid(), signal.SIGTERM)
            await asyncio.sleep(0.05)
            os.kill(os.getpid(), signal.SIGTERM)

            resp = await asyncio.wait_for(call, timeout=5)
            await asyncio.wait_for(waiter, timeout=5)

    assert resp.token == "late token"
    assert hook_states == [ServerState.STOPPED]
    assert server.state is ServerState.STOPPED

    events = [e["event"] for e in logs]
    assert events.count("grpc_signal_received") == 1
    assert "grpc_signal_ignored" in events
    assert "grpc_listener_closed" in events


async def test_builder_shutdown_hook_is_the_default(backend_factory):
    calls = []
    builder = GrpcServerBuilder().set_shutdown_hook(lambda: calls.append("hook")).set_shutdown_grace(0)
    server = builder.build()
    await server.start("127.0.0.1", 0)

    waiter = asyncio.create_task(server.await_termination(signals=()))
    await asyncio.sleep(0)
    await server.stop()
    await asyncio.wait_for(waiter, timeout=5)

    assert calls == ["hook"]


async def test_async_shutdown_hook_is_awaited(backend_factory):
    _, server = await backend_factory(grace=0)
    done = []

    async def hook():
        await asyncio.sleep(0)
        done.append(True)

    waiter = asyncio.create_task(server.await_termination(hook, signals=()))
    await asyncio.sleep(0)
    await server.stop()
    await asyncio.wait_for(waiter, timeout=5)

    assert done == [True]


async def test_concurrent_stops_share_one_cleanup(backend_factory):
    _, server = await backend_factory(grace=0)

    with capture_logs() as logs:
        await asyncio.gather(server.stop(), server.stop(), server.stop())
        await server.stop()

    assert server.state is ServerState.STOPPED
    assert [e["event"] for e in logs].count("grpc_server_stopped") == 1


async def test_stopped_server_refuses_new_calls(backend_factory):
    target, server = await backend_factory(grace=0)
    await server.stop()

    async with grpc.aio.insecure_channel(target) as channel:
        with pytest.raises(grpc.aio.AioRpcError) as ei:
            await TodoServiceStub(channel).Login(LoginRequest(), timeout=1)

    assert ei.value.code() == grpc.StatusCode.UNAVAILABLE


async def test_entrypoint_exits_nonzero_when_bind_fails(monkeypatch):
    monkeypatch.setattr(settings.grpc, "host", UNROUTABLE_HOST)
    monkeypatch.setattr(settings.grpc, "port", 0)

    with capture_logs() as logs:
        code = await grpc_main.main()

    assert code == 1
    failed = [e for e in logs if e["event"] == "grpc_bind_failed"]
    assert failed and failed[0]["log_level"] == "error"
