from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

import grpc

from core.logging_config import get_logger
from grpc_app.interceptors.chain import StreamServerInterceptor, UnaryServerInterceptor


logger = get_logger(__name__)

RECOVERED_ERROR_MESSAGE = "Something went wrong :( "


@dataclass(frozen=True, slots=True)
class RpcStatus:
    code: grpc.StatusCode
    details: str


RecoveryHandler = Callable[[Exception], RpcStatus]

# Already a status: context.abort() and errors bubbling up from nested client calls
_PASSTHROUGH = (grpc.aio.AbortError, grpc.RpcError)


def default_recovery_handler(exc: Exception) -> RpcStatus:
    logger.error(
        "grpc_handler_panic",
        panic=str(exc),
        error_type=type(exc).__name__,
        exc_info=exc,
    )
    return RpcStatus(grpc.StatusCode.INTERNAL, RECOVERED_ERROR_MESSAGE)


def unary_recovery_interceptor(recovery_handler: RecoveryHandler = default_recovery_handler) -> UnaryServerInterceptor:
    """Turn an unexpected exception from the wrapped handler into a gRPC status."""

    async def recovery(request, context: grpc.aio.ServicerContext, info, handler):
        try:
            return await handler(request, context)
        except _PASSTHROUGH:
            raise
        except Exception as exc:
            status = recovery_handler(exc)
            await context.abort(status.code, status.details)

    return recovery


def stream_recovery_interceptor(recovery_handler: RecoveryHandler = default_recovery_handler) -> StreamServerInterceptor:
    async def recovery(request_or_iterator, context: grpc.aio.ServicerContext, info, handler):
        try:
            async for response in handler(request_or_iterator, context):
                yield response
        except _PASSTHROUGH:
            raise
        except Exception as exc:
            status = recovery_handler(exc)
            await context.abort(status.code, status.details)

    return recovery
