"""Server and client interceptors plus the default bundles the scaffold installs."""

from __future__ import annotations

from typing import List, Union

import grpc

from grpc_app.interceptors.chain import (
    ChainedServerInterceptor,
    StreamServerInfo,
    StreamServerInterceptor,
    UnaryServerInfo,
    UnaryServerInterceptor,
    chain_stream_server,
    chain_unary_server,
)
from grpc_app.interceptors.client import (
    StreamTimeoutInterceptor,
    StreamTracingInterceptor,
    UnaryTimeoutInterceptor,
    UnaryTracingInterceptor,
)
from grpc_app.interceptors.logging import LoggingInterceptor
from grpc_app.interceptors.recovery import (
    RECOVERED_ERROR_MESSAGE,
    RpcStatus,
    default_recovery_handler,
    stream_recovery_interceptor,
    unary_recovery_interceptor,
)
from grpc_app.interceptors.request_id import RequestIdInterceptor, get_request_id


StreamClientInterceptor = Union[
    grpc.aio.UnaryStreamClientInterceptor,
    grpc.aio.StreamUnaryClientInterceptor,
    grpc.aio.StreamStreamClientInterceptor,
]


def default_unary_server_interceptors() -> List[UnaryServerInterceptor]:
    # Recovery goes first (outermost) so everything after it sees a status, not the raw exception
    return [unary_recovery_interceptor(default_recovery_handler)]


def default_stream_server_interceptors() -> List[StreamServerInterceptor]:
    return [stream_recovery_interceptor(default_recovery_handler)]


def default_unary_client_interceptors(timeout: float | None = None) -> List[grpc.aio.UnaryUnaryClientInterceptor]:
    return [UnaryTimeoutInterceptor(timeout), UnaryTracingInterceptor()]


def default_stream_client_interceptors(timeout: float | None = None) -> List[StreamClientInterceptor]:
    return [StreamTimeoutInterceptor(timeout), StreamTracingInterceptor()]


__all__ = [
    "ChainedServerInterceptor",
    "LoggingInterceptor",
    "RECOVERED_ERROR_MESSAGE",
    "RequestIdInterceptor",
    "RpcStatus",
    "StreamServerInfo",
    "StreamServerInterceptor",
    "StreamTimeoutInterceptor",
    "StreamTracingInterceptor",
    "UnaryServerInfo",
    "UnaryServerInterceptor",
    "UnaryTimeoutInterceptor",
    "UnaryTracingInterceptor",
    "chain_stream_server",
    "chain_unary_server",
    "default_recovery_handler",
    "default_stream_client_interceptors",
    "default_stream_server_interceptors",
    "default_unary_client_interceptors",
    "default_unary_server_interceptors",
    "get_request_id",
    "stream_recovery_interceptor",
    "unary_recovery_interceptor",
]
