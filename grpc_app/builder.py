"""Builder for the gRPC server scaffold.

Configuration is accumulated as an ordered list of `ServerOption` records and
consumed once by `GrpcServerBuilder.build()`. Order matters: channel args are
applied left to right and interceptors run in the order they were added,
first added outermost.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Union

import grpc
from grpc_health.v1 import health, health_pb2_grpc

from core.config import GrpcSettings, settings
from core.logging_config import get_logger
from grpc_app.exceptions import ServerStateError
from grpc_app.interceptors import (
    ChainedServerInterceptor,
    StreamServerInterceptor,
    UnaryServerInterceptor,
    chain_stream_server,
    chain_unary_server,
    default_stream_server_interceptors,
    default_unary_server_interceptors,
)
from grpc_app.server import GrpcServer


logger = get_logger(__name__)

ShutdownHook = Callable[[], Union[None, Awaitable[None]]]

# grpcio enables SO_REUSEPORT on Linux, which lets a second server share a busy port
DEFAULT_CHANNEL_ARGS: Tuple[Tuple[str, Any], ...] = (("grpc.so_reuseport", 0),)


@dataclass(frozen=True, slots=True)
class ServerOption:
    channel_args: Tuple[Tuple[str, Any], ...] = ()
    interceptors: Tuple[grpc.aio.ServerInterceptor, ...] = ()
    maximum_concurrent_rpcs: Optional[int] = None


@dataclass(frozen=True, slots=True)
class KeepaliveParameters:
    """Server-side keepalive and connection age limits (milliseconds)."""

    time_ms: Optional[int] = None
    timeout_ms: Optional[int] = None
    permit_without_calls: Optional[bool] = None
    max_connection_idle_ms: Optional[int] = None
    max_connection_age_ms: Optional[int] = None
    max_connection_age_grace_ms: Optional[int] = None

    def to_channel_args(self) -> Tuple[Tuple[str, Any], ...]:
        mapping = (
            ("grpc.keepalive_time_ms", self.time_ms),
            ("grpc.keepalive_timeout_ms", self.timeout_ms),
            ("grpc.keepalive_permit_without_calls", None if self.permit_without_calls is None else int(self.permit_without_calls)),
            ("grpc.max_connection_idle_ms", self.max_connection_idle_ms),
            ("grpc.max_connection_age_ms", self.max_connection_age_ms),
            ("grpc.max_connection_age_grace_ms", self.max_connection_age_grace_ms),
        )
        return tuple((key, value) for key, value in mapping if value is not None)


def channel_option(key: str, value: Any) -> ServerOption:
    return ServerOption(channel_args=((key, value),))


def keepalive_params(params: KeepaliveParameters) -> ServerOption:
    return ServerOption(channel_args=params.to_channel_args())


def max_concurrent_rpcs(limit: int) -> ServerOption:
    return ServerOption(maximum_concurrent_rpcs=limit)


def server_interceptor(*interceptors: grpc.aio.ServerInterceptor) -> ServerOption:
    """Mount plain grpc.aio interceptors (they see every method type)."""
    return ServerOption(interceptors=tuple(interceptors))


def unary_interceptor(interceptor: UnaryServerInterceptor) -> ServerOption:
    return ServerOption(interceptors=(ChainedServerInterceptor(unary=interceptor),))


def stream_interceptor(interceptor: StreamServerInterceptor) -> ServerOption:
    return ServerOption(interceptors=(ChainedServerInterceptor(stream=interceptor),))


class GrpcServerBuilder:
    """Accumulates server configuration; `build()` may be called exactly once."""

    def __init__(self) -> None:
        self._options: List[ServerOption] = []
        self._reflection = False
        self._shutdown_hook: Optional[ShutdownHook] = None
        self._shutdown_grace: float = settings.grpc.shutdown_grace
        self._built = False

    def _ensure_open(self, operation: str) -> None:
        if self._built:
            raise ServerStateError(operation, "built")

    @property
    def options(self) -> Tuple[ServerOption, ...]:
        return tuple(self._options)

    def add_option(self, option: ServerOption) -> "GrpcServerBuilder":
        self._ensure_open("add option")
        self._options.append(option)
        return self

    def enable_reflection(self, enabled: bool) -> "GrpcServerBuilder":
        """Register server reflection at build time.

        Reflection lets tools such as grpcurl enumerate services and message
        shapes at runtime. Do not enable it on servers exposed in production.
        """
        self._ensure_open("enable reflection")
        self._reflection = bool(enabled)
        return self

    def set_server_parameters(self, params: KeepaliveParameters) -> "GrpcServerBuilder":
        return self.add_option(keepalive_params(params))

    def set_unary_interceptors(self, interceptors: Sequence[UnaryServerInterceptor]) -> "GrpcServerBuilder":
        # grpc.aio accepts several interceptors, but chaining keeps the unary list a single, ordered unit
        return self.add_option(unary_interceptor(chain_unary_server(*interceptors)))

    def set_stream_interceptors(self, interceptors: Sequence[StreamServerInterceptor]) -> "GrpcServerBuilder":
        return self.add_option(stream_interceptor(chain_stream_server(*interceptors)))

    def set_shutdown_hook(self, hook: Optional[ShutdownHook]) -> "GrpcServerBuilder":
        self._ensure_open("set shutdown hook")
        self._shutdown_hook = hook
        return self

    def set_shutdown_grace(self, seconds: float) -> "GrpcServerBuilder":
        self._ensure_open("set shutdown grace")
        if seconds < 0:
            raise ValueError("shutdown grace must be >= 0")
        self._shutdown_grace = seconds
        return self

    def build(self) -> GrpcServer:
        """Create the grpc.aio server, mount health (and reflection if enabled).

        Must run inside the event loop that will serve the server.
        """
        self._ensure_open("build")
        self._built = True

        channel_args: Dict[str, Any] = dict(DEFAULT_CHANNEL_ARGS)
        interceptors: List[grpc.aio.ServerInterceptor] = []
        concurrency: Optional[int] = None
        for option in self._options:
            # Later options override earlier ones (and the defaults)
            channel_args.update(option.channel_args)
            interceptors.extend(option.interceptors)
            if option.maximum_concurrent_rpcs is not None:
                concurrency = option.maximum_concurrent_rpcs

        server = grpc.aio.server(
            interceptors=interceptors or None,
            options=list(channel_args.items()),
            maximum_concurrent_rpcs=concurrency,
        )

        # Health is mounted unconditionally
        health_servicer = health.aio.HealthServicer()
        health_pb2_grpc.add_HealthServicer_to_server(health_servicer, server)

        logger.debug(
            "grpc_server_built",
            options=len(self._options),
            interceptors=len(interceptors),
            reflection=self._reflection,
        )
        return GrpcServer(
            server,
            health_servicer=health_servicer,
            reflection=self._reflection,
            shutdown_hook=self._shutdown_hook,
            shutdown_grace=self._shutdown_grace,
        )


def from_settings(cfg: Optional[GrpcSettings] = None) -> GrpcServerBuilder:
    """Builder preloaded from `settings.grpc` plus the default server interceptor bundles."""
    cfg = cfg or settings.grpc
    builder = GrpcServerBuilder()
    builder.set_unary_interceptors(default_unary_server_interceptors())
    builder.set_stream_interceptors(default_stream_server_interceptors())
    params = KeepaliveParameters(**cfg.keepalive.model_dump())
    if params.to_channel_args():
        builder.set_server_parameters(params)
    if cfg.max_concurrent_rpcs:
        builder.add_option(max_concurrent_rpcs(cfg.max_concurrent_rpcs))
    builder.enable_reflection(cfg.reflection)
    builder.set_shutdown_grace(cfg.shutdown_grace)
    return builder
