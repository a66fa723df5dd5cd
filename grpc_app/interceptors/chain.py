"""Composable server interceptors.

grpc.aio only knows one interceptor shape (`intercept_service`) that sees
every method type. The scaffold works with two narrower shapes modelled on
go-grpc-middleware:

- unary:  ``async def fn(request, context, info, handler) -> response``
- stream: ``async def fn(request_or_iterator, context, info, handler)`` as an
  async generator yielding responses

`chain_unary_server` / `chain_stream_server` fold an ordered list into one
function (first element outermost), and `ChainedServerInterceptor` mounts the
result on a grpc.aio server.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

import grpc


@dataclass(frozen=True, slots=True)
class UnaryServerInfo:
    full_method: str


@dataclass(frozen=True, slots=True)
class StreamServerInfo:
    full_method: str
    is_client_stream: bool
    is_server_stream: bool


UnaryHandler = Callable[[Any, grpc.aio.ServicerContext], Awaitable[Any]]
StreamHandler = Callable[[Any, grpc.aio.ServicerContext], AsyncIterator[Any]]
UnaryServerInterceptor = Callable[[Any, grpc.aio.ServicerContext, UnaryServerInfo, UnaryHandler], Awaitable[Any]]
StreamServerInterceptor = Callable[
    [Any, grpc.aio.ServicerContext, StreamServerInfo, StreamHandler], AsyncIterator[Any]
]


def _bind_unary(interceptor: UnaryServerInterceptor, info: UnaryServerInfo, handler: UnaryHandler) -> UnaryHandler:
    async def bound(request, context):
        return await interceptor(request, context, info, handler)

    return bound


def _bind_stream(interceptor: StreamServerInterceptor, info: StreamServerInfo, handler: StreamHandler) -> StreamHandler:
    def bound(request_or_iterator, context):
        return interceptor(request_or_iterator, context, info, handler)

    return bound


def chain_unary_server(*interceptors: UnaryServerInterceptor) -> UnaryServerInterceptor:
    """Compose unary interceptors; ``interceptors[0]`` runs first and the last one sees the handler."""
    chain = tuple(interceptors)

    async def chained(request, context, info, handler):
        call = handler
        for interceptor in reversed(chain):
            call = _bind_unary(interceptor, info, call)
        return await call(request, context)

    return chained


def chain_stream_server(*interceptors: StreamServerInterceptor) -> StreamServerInterceptor:
    """Stream counterpart of `chain_unary_server`."""
    chain = tuple(interceptors)

    async def chained(request_or_iterator, context, info, handler):
        call = handler
        for interceptor in reversed(chain):
            call = _bind_stream(interceptor, info, call)
        async for response in call(request_or_iterator, context):
            yield response

    return chained


async def _call_unary(behavior, request, context):
    result = behavior(request, context)
    if inspect.isawaitable(result):
        result = await result
    return result


async def _iterate(result):
    # Handlers may stream with context.write() and return nothing
    if inspect.isawaitable(result):
        await result
        return
    if hasattr(result, "__aiter__"):
        async for response in result:
            yield response
        return
    for response in result or ():
        yield response


class ChainedServerInterceptor(grpc.aio.ServerInterceptor):
    """Runs a unary chain around unary-unary methods and a stream chain around the rest."""

    def __init__(
        self,
        unary: Optional[UnaryServerInterceptor] = None,
        stream: Optional[StreamServerInterceptor] = None,
    ) -> None:
        self._unary = unary
        self._stream = stream

    async def intercept_service(
        self,
        continuation: Callable[[grpc.HandlerCallDetails], Awaitable[grpc.RpcMethodHandler]],
        handler_call_details: grpc.HandlerCallDetails,
    ) -> grpc.RpcMethodHandler:
        handler = await continuation(handler_call_details)
        if handler is None:
            return handler

        method = handler_call_details.method

        if handler.unary_unary:
            if self._unary is None:
                return handler
            unary = self._unary
            info = UnaryServerInfo(full_method=method)
            inner_unary = handler.unary_unary

            async def _inner_unary(request, context):
                return await _call_unary(inner_unary, request, context)

            async def _unary_unary(request, context: grpc.aio.ServicerContext):
                return await unary(request, context, info, _inner_unary)

            return grpc.unary_unary_rpc_method_handler(
                _unary_unary,
                request_deserializer=handler.request_deserializer,
                response_serializer=handler.response_serializer,
            )

        if self._stream is None:
            return handler
        stream = self._stream

        if handler.unary_stream:
            info = StreamServerInfo(full_method=method, is_client_stream=False, is_server_stream=True)
            inner_us = handler.unary_stream

            def _inner_us(request, context):
                return _iterate(inner_us(request, context))

            async def _unary_stream(request, context: grpc.aio.ServicerContext):
                async for response in stream(request, context, info, _inner_us):
                    await context.write(response)

            return grpc.unary_stream_rpc_method_handler(
                _unary_stream,
                request_deserializer=handler.request_deserializer,
                response_serializer=handler.response_serializer,
            )

        if handler.stream_unary:
            info = StreamServerInfo(full_method=method, is_client_stream=True, is_server_stream=False)
            inner_su = handler.stream_unary

            async def _inner_su(request_iterator, context):
                yield await _call_unary(inner_su, request_iterator, context)

            async def _stream_unary(request_iterator, context: grpc.aio.ServicerContext):
                response = None
                async for response in stream(request_iterator, context, info, _inner_su):
                    pass
                return response

            return grpc.stream_unary_rpc_method_handler(
                _stream_unary,
                request_deserializer=handler.request_deserializer,
                response_serializer=handler.response_serializer,
            )

        if handler.stream_stream:
            info = StreamServerInfo(full_method=method, is_client_stream=True, is_server_stream=True)
            inner_ss = handler.stream_stream

            def _inner_ss(request_iterator, context):
                return _iterate(inner_ss(request_iterator, context))

            async def _stream_stream(request_iterator, context: grpc.aio.ServicerContext):
                async for response in stream(request_iterator, context, info, _inner_ss):
                    await context.write(response)

            return grpc.stream_stream_rpc_method_handler(
                _stream_stream,
                request_deserializer=handler.request_deserializer,
                response_serializer=handler.response_serializer,
            )

        return handler
