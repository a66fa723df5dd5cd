import pytest
from grpc_health.v1 import health
from grpc_reflection.v1alpha import reflection

from core.config import GrpcKeepaliveSettings, GrpcSettings
from grpc_app.builder import (
    GrpcServerBuilder,
    KeepaliveParameters,
    ServerOption,
    channel_option,
    from_settings,
    max_concurrent_rpcs,
)
from grpc_app.exceptions import ServerStateError
from grpc_app.interceptors import ChainedServerInterceptor
from grpc_app.server import ServerState


@pytest.mark.asyncio
async def test_build_always_mounts_health_and_reflection_only_when_enabled():
    plain = GrpcServerBuilder().build()
    assert plain.state is ServerState.CONFIGURED
    assert plain.service_names == (health.SERVICE_NAME,)

    reflective = GrpcServerBuilder().enable_reflection(True).build()
    assert reflective.service_names == (health.SERVICE_NAME, reflection.SERVICE_NAME)


@pytest.mark.asyncio
async def test_reflection_toggle_last_call_wins():
    server = GrpcServerBuilder().enable_reflection(True).enable_reflection(False).build()
    assert reflection.SERVICE_NAME not in server.service_names


@pytest.mark.asyncio
async def test_options_keep_insertion_order():
    builder = GrpcServerBuilder()
    builder.add_option(channel_option("grpc.so_reuseport", 0))
    builder.set_unary_interceptors([])
    builder.set_server_parameters(KeepaliveParameters(time_ms=1000))
    builder.set_stream_interceptors([])

    opts = builder.options
    assert len(opts) == 4
    assert opts[0].channel_args == (("grpc.so_reuseport", 0),)
    assert isinstance(opts[1].interceptors[0], ChainedServerInterceptor)
    assert opts[2].channel_args == (("grpc.keepalive_time_ms", 1000),)
    assert isinstance(opts[3].interceptors[0], ChainedServerInterceptor)


@pytest.mark.asyncio
async def test_builder_is_consumed_by_build():
    builder = GrpcServerBuilder()
    builder.build()

    with pytest.raises(ServerStateError):
        builder.build()
    with pytest.raises(ServerStateError):
        builder.add_option(ServerOption())
    with pytest.raises(ServerStateError):
        builder.enable_reflection(True)


def test_keepalive_parameters_map_to_channel_args_and_skip_unset():
    params = KeepaliveParameters(
        time_ms=30_000,
        permit_without_calls=True,
        max_connection_age_ms=600_000,
    )
    assert params.to_channel_args() == (
        ("grpc.keepalive_time_ms", 30_000),
        ("grpc.keepalive_permit_without_calls", 1),
        ("grpc.max_connection_age_ms", 600_000),
    )
    assert KeepaliveParameters().to_channel_args() == ()


def test_negative_shutdown_grace_is_rejected():
    with pytest.raises(ValueError):
        GrpcServerBuilder().set_shutdown_grace(-1)


def test_from_settings_installs_default_chains_and_config():
    cfg = GrpcSettings(
        reflection=True,
        max_concurrent_rpcs=8,
        shutdown_grace=2.5,
        keepalive=GrpcKeepaliveSettings(time_ms=10_000, timeout_ms=2_000),
    )
    builder = from_settings(cfg)
    opts = builder.options

    # recovery chains first, so they end up outermost
    assert all(isinstance(o.interceptors[0], ChainedServerInterceptor) for o in opts[:2])
    assert opts[2].channel_args == (
        ("grpc.keepalive_time_ms", 10_000),
        ("grpc.keepalive_timeout_ms", 2_000),
    )
    assert opts[3] == max_concurrent_rpcs(8)


@pytest.mark.asyncio
async def test_from_settings_without_keepalive_adds_no_channel_args():
    builder = from_settings(GrpcSettings())
    assert all(not o.channel_args for o in builder.options)
    server = builder.build()
    assert server.reflection_enabled is False
