from __future__ import annotations

import grpc

from core.logging_config import get_logger
from grpc_app.contracts.todo import (
    LoginRequest,
    LoginResponse,
    SERVICE_NAME,
    TodoServiceServicer,
    add_TodoServiceServicer_to_server,
    token_response,
)


logger = get_logger(__name__)

SUCCESS_TOKEN = "Success token"


class LoginService(TodoServiceServicer):
    """Stub login: every request succeeds with a fixed token.

    Credentials are neither validated nor logged.
    """

    async def Login(self, request: LoginRequest, context: grpc.aio.ServicerContext) -> LoginResponse:  # type: ignore[override]
        logger.debug("login_issued_stub_token")
        return token_response(SUCCESS_TOKEN)


def register_login_service(server: grpc.aio.Server) -> None:
    add_TodoServiceServicer_to_server(LoginService(), server)


__all__ = ["LoginService", "SERVICE_NAME", "SUCCESS_TOKEN", "register_login_service"]
