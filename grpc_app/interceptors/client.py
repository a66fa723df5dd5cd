"""Client-side interceptors applied to outbound gRPC channels.

- Timeout: gives every call a deadline when the caller did not set one.
- Tracing: one OpenTelemetry CLIENT span per call, with the span context
  propagated to the server through call metadata.
"""

from __future__ import annotations

import asyncio
from typing import Optional, Set

import grpc
from opentelemetry import propagate, trace
from opentelemetry.trace import Span, SpanKind, Status, StatusCode, Tracer

from core.config import settings


def _replace_details(
    details: grpc.aio.ClientCallDetails,
    *,
    timeout: Optional[float] = None,
    metadata: Optional[grpc.aio.Metadata] = None,
) -> grpc.aio.ClientCallDetails:
    return grpc.aio.ClientCallDetails(
        method=details.method,
        timeout=details.timeout if timeout is None else timeout,
        metadata=details.metadata if metadata is None else metadata,
        credentials=details.credentials,
        wait_for_ready=details.wait_for_ready,
    )


def _method_name(details: grpc.aio.ClientCallDetails) -> str:
    method = details.method
    return method.decode() if isinstance(method, bytes) else method


class _TimeoutMixin:
    def __init__(self, timeout: Optional[float] = None) -> None:
        self.timeout = settings.gateway.call_timeout if timeout is None else timeout

    def _with_deadline(self, details: grpc.aio.ClientCallDetails) -> grpc.aio.ClientCallDetails:
        if details.timeout is not None:
            return details
        return _replace_details(details, timeout=self.timeout)


class UnaryTimeoutInterceptor(_TimeoutMixin, grpc.aio.UnaryUnaryClientInterceptor):
    async def intercept_unary_unary(self, continuation, client_call_details, request):
        return await continuation(self._with_deadline(client_call_details), request)


class StreamTimeoutInterceptor(
    _TimeoutMixin,
    grpc.aio.UnaryStreamClientInterceptor,
    grpc.aio.StreamUnaryClientInterceptor,
    grpc.aio.StreamStreamClientInterceptor,
):
    async def intercept_unary_stream(self, continuation, client_call_details, request):
        return await continuation(self._with_deadline(client_call_details), request)

    async def intercept_stream_unary(self, continuation, client_call_details, request_iterator):
        return await continuation(self._with_deadline(client_call_details), request_iterator)

    async def intercept_stream_stream(self, continuation, client_call_details, request_iterator):
        return await continuation(self._with_deadline(client_call_details), request_iterator)


class _TracingMixin:
    def __init__(self, tracer: Optional[Tracer] = None) -> None:
        self._tracer = tracer or trace.get_tracer(__name__)
        # The loop only keeps weak references to tasks
        self._pending: Set[asyncio.Task] = set()

    def _start_span(self, details: grpc.aio.ClientCallDetails) -> tuple[Span, grpc.aio.ClientCallDetails]:
        method = _method_name(details)
        service, _, rpc = method.lstrip("/").partition("/")
        span = self._tracer.start_span(
            method,
            kind=SpanKind.CLIENT,
            attributes={"rpc.system": "grpc", "rpc.service": service, "rpc.method": rpc},
        )
        carrier: dict[str, str] = {}
        propagate.inject(carrier, context=trace.set_span_in_context(span))
        metadata = grpc.aio.Metadata(*(details.metadata or ()))
        for key, value in carrier.items():
            metadata.add(key, value)
        return span, _replace_details(details, metadata=metadata)

    @staticmethod
    def _end_span(span: Span, code: grpc.StatusCode, message: Optional[str] = None) -> None:
        span.set_attribute("rpc.grpc.status_code", code.value[0])
        if code is not grpc.StatusCode.OK:
            span.set_status(Status(StatusCode.ERROR, message or code.name))
        span.end()

    async def _finish(self, span: Span, call) -> None:
        code = await call.code()
        details = await call.details()
        self._end_span(span, code, details)

    def _finish_when_done(self, span: Span, call) -> None:
        def _schedule(done_call) -> None:
            task = asyncio.ensure_future(self._finish(span, done_call))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

        call.add_done_callback(_schedule)

    def _fail(self, span: Span, exc: Exception) -> None:
        span.record_exception(exc)
        self._end_span(span, grpc.StatusCode.UNKNOWN, str(exc))


class UnaryTracingInterceptor(_TracingMixin, grpc.aio.UnaryUnaryClientInterceptor):
    async def intercept_unary_unary(self, continuation, client_call_details, request):
        span, details = self._start_span(client_call_details)
        try:
            call = await continuation(details, request)
        except Exception as exc:
            self._fail(span, exc)
            raise
        # code() resolves once the call completes and never raises
        try:
            await self._finish(span, call)
        except asyncio.CancelledError:
            self._end_span(span, grpc.StatusCode.CANCELLED)
            raise
        return call


class StreamTracingInterceptor(
    _TracingMixin,
    grpc.aio.UnaryStreamClientInterceptor,
    grpc.aio.StreamUnaryClientInterceptor,
    grpc.aio.StreamStreamClientInterceptor,
):
    async def _intercept(self, continuation, client_call_details, request_or_iterator):
        span, details = self._start_span(client_call_details)
        try:
            call = await continuation(details, request_or_iterator)
        except Exception as exc:
            self._fail(span, exc)
            raise
        self._finish_when_done(span, call)
        return call

    async def intercept_unary_stream(self, continuation, client_call_details, request):
        return await self._intercept(continuation, client_call_details, request)

    async def intercept_stream_unary(self, continuation, client_call_details, request_iterator):
        return await self._intercept(continuation, client_call_details, request_iterator)

    async def intercept_stream_stream(self, continuation, client_call_details, request_iterator):
        return await self._intercept(continuation, client_call_details, request_iterator)
