"""Lifecycle of a built gRPC server: register, start, await signal, graceful stop.

State machine::

    CONFIGURED --start()--> SERVING --signal/stop()--> STOPPING --> STOPPED
         \\--start() bind failure--> FAILED
"""

from __future__ import annotations

import asyncio
import enum
import inspect
import signal
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple, Union

import grpc
from grpc_health.v1 import health, health_pb2
from grpc_reflection.v1alpha import reflection

from core.logging_config import get_logger
from grpc_app.exceptions import BindError, ServerStateError


logger = get_logger(__name__)

ServiceRegistration = Callable[[grpc.aio.Server], None]
ShutdownHook = Callable[[], Union[None, Awaitable[None]]]

TERMINATION_SIGNALS: Tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM)


class ServerState(str, enum.Enum):
    CONFIGURED = "configured"
    SERVING = "serving"
    STOPPING = "stopping"
    STOPPED = "stopped"
    FAILED = "failed"


def _format_address(address: str, port: int) -> str:
    if ":" in address and not address.startswith("["):
        address = f"[{address}]"
    return f"{address}:{port}"


class GrpcServer:
    """Handle on a built grpc.aio server. Create it with `GrpcServerBuilder.build()`."""

    def __init__(
        self,
        server: grpc.aio.Server,
        *,
        health_servicer: health.aio.HealthServicer,
        reflection: bool = False,
        shutdown_hook: Optional[ShutdownHook] = None,
        shutdown_grace: float = 30.0,
    ) -> None:
        self._server = server
        self._health = health_servicer
        self._reflection = reflection
        self._shutdown_hook = shutdown_hook
        self._shutdown_grace = shutdown_grace
        self._services: List[str] = []
        self._state = ServerState.CONFIGURED
        self._address: Optional[str] = None
        self._port: Optional[int] = None
        self._serve_task: Optional[asyncio.Task] = None
        self._cleanup_task: Optional[asyncio.Task] = None
        self._terminate: Optional[asyncio.Event] = None
        self._hook_called = False

    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def address(self) -> Optional[str]:
        return self._address

    @property
    def port(self) -> Optional[int]:
        return self._port

    @property
    def reflection_enabled(self) -> bool:
        return self._reflection

    @property
    def service_names(self) -> Tuple[str, ...]:
        names = [health.SERVICE_NAME]
        if self._reflection:
            names.append(reflection.SERVICE_NAME)
        names.extend(self._services)
        return tuple(names)

    def register_service(self, register: ServiceRegistration, *service_names: str) -> None:
        """Mount services on the underlying server before `start()`.

        `service_names` are the fully-qualified names the callback registers;
        they are reported by health and listed by reflection.
        """
        if self._state is not ServerState.CONFIGURED:
            raise ServerStateError("register service", self._state.value)
        register(self._server)
        for name in service_names:
            if name not in self._services:
                self._services.append(name)

    async def start(self, address: str, port: int) -> int:
        """Bind `address:port` and serve in the background. Returns the bound port."""
        if self._state is not ServerState.CONFIGURED:
            raise ServerStateError("start", self._state.value)

        target = _format_address(address, port)
        try:
            bound = self._server.add_insecure_port(target)
        except RuntimeError as exc:
            self._state = ServerState.FAILED
            raise BindError(target, str(exc)) from exc
        if not bound:
            self._state = ServerState.FAILED
            raise BindError(target, "address unavailable")

        if self._reflection:
            reflection.enable_server_reflection(self.service_names, self._server)

        await self._health.set(health.OVERALL_HEALTH, health_pb2.HealthCheckResponse.SERVING)
        for name in self._services:
            await self._health.set(name, health_pb2.HealthCheckResponse.SERVING)

        await self._server.start()
        self._address = address
        self._port = bound
        self._terminate = asyncio.Event()
        self._serve_task = asyncio.create_task(self._serve(), name=f"grpc-serve-{bound}")
        self._state = ServerState.SERVING
        logger.info("grpc_server_started", address=address, port=bound, services=list(self.service_names))
        return bound

    async def _serve(self) -> None:
        try:
            await self._server.wait_for_termination()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("grpc_serve_failed", error=str(exc), exc_info=True)

    async def await_termination(
        self,
        shutdown_hook: Optional[ShutdownHook] = None,
        *,
        signals: Sequence[signal.Signals] = TERMINATION_SIGNALS,
    ) -> None:
        """Block until SIGINT/SIGTERM (or `stop()`), clean up, then run the shutdown hook once.

        The hook defaults to the one configured on the builder.
        """
        if self._terminate is None:
            raise ServerStateError("await termination", self._state.value)

        loop = asyncio.get_running_loop()
        terminate = self._terminate
        installed: List[signal.Signals] = []

        def _on_signal(sig: signal.Signals) -> None:
            if terminate.is_set():
                logger.warning("grpc_signal_ignored", signal=sig.name, reason="shutdown in progress")
                return
            logger.info("grpc_signal_received", signal=sig.name)
            terminate.set()

        for sig in signals:
            try:
                loop.add_signal_handler(sig, _on_signal, sig)
                installed.append(sig)
            except (NotImplementedError, RuntimeError, ValueError):
                # Windows, or not the main thread
                logger.warning("grpc_signal_handler_unavailable", signal=sig.name)

        # Handlers stay installed through cleanup so a second signal cannot kill the process mid-drain
        try:
            await terminate.wait()
            await self.stop()
            await self._run_shutdown_hook(shutdown_hook or self._shutdown_hook)
        finally:
            for sig in installed:
                loop.remove_signal_handler(sig)

    async def _run_shutdown_hook(self, hook: Optional[ShutdownHook]) -> None:
        if hook is None or self._hook_called:
            return
        self._hook_called = True
        result = hook()
        if inspect.isawaitable(result):
            await result

    async def stop(self, grace: Optional[float] = None) -> None:
        """Graceful stop: drain in-flight RPCs (up to the grace window), then release the listener.

        Safe to call repeatedly and concurrently; every caller waits for the same cleanup.
        """
        if self._state is ServerState.CONFIGURED or self._state is ServerState.FAILED:
            self._state = ServerState.STOPPED
            return
        if self._cleanup_task is None:
            if self._terminate is not None:
                self._terminate.set()
            self._cleanup_task = asyncio.create_task(
                self._cleanup(self._shutdown_grace if grace is None else grace)
            )
        await asyncio.shield(self._cleanup_task)

    async def _cleanup(self, grace: float) -> None:
        self._state = ServerState.STOPPING
        logger.info("grpc_server_stopping", grace=grace)
        await self._health.enter_graceful_shutdown()
        # grpc.aio stops accepting immediately and closes the listening socket once in-flight calls finish
        await self._server.stop(grace)
        logger.info("grpc_listener_closed", address=self._address, port=self._port)
        if self._serve_task is not None:
            await self._serve_task
        self._state = ServerState.STOPPED
        logger.info("grpc_server_stopped")
