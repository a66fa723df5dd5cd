import asyncio
import sys

from core.config import settings
from core.logging_config import configure_logging, get_logger
from grpc_app.builder import from_settings, server_interceptor
from grpc_app.exceptions import BindError
from grpc_app.interceptors import LoggingInterceptor, RequestIdInterceptor
from grpc_app.services.login_service import SERVICE_NAME, register_login_service


logger = get_logger(__name__)


async def main() -> int:
    builder = from_settings(settings.grpc)
    # After the recovery chain, so a crashed handler is still logged with its request id
    builder.add_option(server_interceptor(RequestIdInterceptor(), LoggingInterceptor()))

    server = builder.build()
    server.register_service(register_login_service, SERVICE_NAME)

    address = f"{settings.grpc.host}:{settings.grpc.port}"
    logger.info("grpc_starting", address=address, reflection=settings.grpc.reflection)
    try:
        await server.start(settings.grpc.host, settings.grpc.port)
    except BindError as exc:
        logger.error("grpc_bind_failed", address=exc.address, reason=exc.reason)
        return 1

    await server.await_termination(lambda: logger.info("grpc_shutdown", message="Shutting down the server"))
    return 0


def run() -> None:
    configure_logging(service="grpc")
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
