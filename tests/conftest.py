"""Pytest bootstrap configuration.

Shared fixtures start real in-process gRPC backends on ephemeral ports
(127.0.0.1:0) through the same builder the production entrypoint uses.
"""
import os

import pytest

# Keep test runs independent from a developer's .env / shell
os.environ.pop("PORT", None)

from grpc_app.builder import GrpcServerBuilder  # noqa: E402
from grpc_app.contracts.todo import SERVICE_NAME, add_TodoServiceServicer_to_server  # noqa: E402
from grpc_app.interceptors import (  # noqa: E402
    default_stream_server_interceptors,
    default_unary_server_interceptors,
)
from grpc_app.services.login_service import LoginService  # noqa: E402


@pytest.fixture
async def backend_factory():
    """Start Login backends; every server started through the factory is stopped on teardown."""
    servers = []

    async def _start(
        servicer=None,
        *,
        reflection=False,
        unary=None,
        stream=None,
        grace=5.0,
        extra_registrations=(),
    ):
        builder = GrpcServerBuilder()
        builder.set_unary_interceptors(default_unary_server_interceptors() if unary is None else unary)
        builder.set_stream_interceptors(default_stream_server_interceptors() if stream is None else stream)
        builder.enable_reflection(reflection)
        builder.set_shutdown_grace(grace)
        server = builder.build()

        svc = servicer or LoginService()
        server.register_service(lambda s: add_TodoServiceServicer_to_server(svc, s), SERVICE_NAME)
        for register, name in extra_registrations:
            server.register_service(register, name)

        port = await server.start("127.0.0.1", 0)
        servers.append(server)
        return f"127.0.0.1:{port}", server

    yield _start

    for server in servers:
        await server.stop(grace=0)
