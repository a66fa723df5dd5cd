"""
Login RPC client.

Holds one long-lived channel to the backend and translates gRPC failures
into gateway errors instead of letting them escape as transport exceptions:

- channel not READY within `dial_timeout`  -> TransportError
- DEADLINE_EXCEEDED                        -> DeadlineExceededError
- UNAVAILABLE                              -> TransportError
- any other non-OK status / error payload  -> UpstreamError
"""
from __future__ import annotations

import asyncio
from typing import Optional, Sequence

import grpc

from core.config import settings
from core.logging_config import get_logger
from domain.common.exceptions import (
    DeadlineExceededError,
    GatewayError,
    TransportError,
    UpstreamError,
)
from grpc_app.contracts.todo import LOGIN_METHOD, LoginRequest, TodoServiceStub, response_token
from grpc_app.interceptors import default_stream_client_interceptors, default_unary_client_interceptors


logger = get_logger(__name__)


class LoginClient:
    """Async client for `todo.TodoService/Login`."""

    def __init__(
        self,
        target: Optional[str] = None,
        *,
        call_timeout: Optional[float] = None,
        dial_timeout: Optional[float] = None,
        interceptors: Optional[Sequence[grpc.aio.ClientInterceptor]] = None,
    ) -> None:
        self.target = target or settings.gateway.backend_target
        self.call_timeout = settings.gateway.call_timeout if call_timeout is None else call_timeout
        self.dial_timeout = settings.gateway.dial_timeout if dial_timeout is None else dial_timeout
        if interceptors is None:
            interceptors = [
                *default_unary_client_interceptors(self.call_timeout),
                *default_stream_client_interceptors(self.call_timeout),
            ]
        self._interceptors = list(interceptors)
        self._channel: Optional[grpc.aio.Channel] = None
        self._stub: Optional[TodoServiceStub] = None
        self._dial: Optional[asyncio.Future] = None

    @property
    def connected(self) -> bool:
        return self._stub is not None

    async def connect(self) -> None:
        """Open the channel and block until it is READY (plaintext).

        Concurrent callers share one in-flight dial; a failed dial is not
        retried on their behalf, the next call after it starts a fresh one.
        """
        if self._stub is not None:
            return
        if self._dial is None:
            self._dial = asyncio.ensure_future(self._open_channel())
        dial = self._dial
        try:
            # A cancelled caller must not cancel the dial other callers wait on
            await asyncio.shield(dial)
        except asyncio.CancelledError:
            if dial.cancelled():
                # close() abandoned the dial
                raise TransportError("login client is closed", target=self.target) from None
            raise
        finally:
            if dial.done() and self._dial is dial:
                self._dial = None

    async def _open_channel(self) -> None:
        channel = grpc.aio.insecure_channel(self.target, interceptors=self._interceptors)
        try:
            await asyncio.wait_for(channel.channel_ready(), timeout=self.dial_timeout)
        except asyncio.TimeoutError:
            await channel.close()
            logger.warning("rpc_dial_failed", target=self.target, timeout=self.dial_timeout)
            raise TransportError(
                f"backend {self.target} not reachable within {self.dial_timeout:g}s",
                target=self.target,
            ) from None
        except BaseException:
            await channel.close()
            raise
        self._channel = channel
        self._stub = TodoServiceStub(channel)
        logger.info("rpc_channel_ready", target=self.target)

    async def close(self) -> None:
        dial, self._dial = self._dial, None
        if dial is not None and not dial.done():
            dial.cancel()
        channel, self._channel, self._stub = self._channel, None, None
        if channel is not None:
            await channel.close()
            logger.info("rpc_channel_closed", target=self.target)

    async def login(self, username: str, password: str) -> str:
        """Forward credentials to the backend and return the issued token."""
        if self._stub is None:
            await self.connect()
        stub = self._stub
        if stub is None:
            raise TransportError("login client is closed", target=self.target)

        try:
            response = await stub.Login(
                LoginRequest(username=username, password=password),
                timeout=self.call_timeout,
            )
        except grpc.aio.AioRpcError as exc:
            raise self._translate(exc) from exc

        try:
            return response_token(response)
        except ValueError as exc:
            raise UpstreamError(str(exc)) from exc

    def _translate(self, exc: grpc.aio.AioRpcError) -> GatewayError:
        code = exc.code()
        logger.warning("rpc_call_failed", method=LOGIN_METHOD, status=code.name, details=exc.details())
        if code is grpc.StatusCode.DEADLINE_EXCEEDED:
            return DeadlineExceededError(LOGIN_METHOD, self.call_timeout)
        if code is grpc.StatusCode.UNAVAILABLE:
            return TransportError(exc.details() or "backend unavailable", target=self.target)
        return UpstreamError(exc.details() or code.name, status=code.name)

    async def __aenter__(self) -> "LoginClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
