"""
GraphQL 网关主入口

通过 HTTP 提供 Login 查询并转发到 gRPC 后端：
    POST/GET /query   GraphQL 端点
    GET /             GraphQL Playground（未知 GET 路径同样返回）
    GET /health       存活检查
"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware import RequestIDMiddleware, LoggingMiddleware
from api.routes import graphql as graphql_routes
from core.config import settings
from core.exceptions import register_exception_handlers
from core.logging_config import get_logger, configure_logging
from core.response import success_response
from domain.common.exceptions import TransportError
from infrastructure.external.rpc import LoginClient


logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理：启动时拨号 RPC 后端，关闭时释放连接"""
    client: LoginClient = app.state.login_client
    try:
        await client.connect()
    except TransportError as exc:
        # Keep serving; the client dials again on the first Login
        logger.error("rpc_backend_unreachable", target=client.target, error=exc.message)

    yield

    await client.close()
    logger.info("application_shutdown", message="Application shutdown")


def create_app(login_client: Optional[LoginClient] = None) -> FastAPI:
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
        description="GraphQL gateway forwarding Login to the gRPC backend",
    )
    app.state.login_client = login_client or LoginClient()

    # 添加中间件（注意顺序：后添加的先执行）
    # RequestID 在 Logging 外层，为日志提供 request_id
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    @app.get("/health", tags=["Health"])
    async def health_check():
        """健康检查端点"""
        client: LoginClient = app.state.login_client
        return success_response(data={"status": "healthy", "backend_connected": client.connected})

    # 路由最后注册：其中包含 Playground 的兜底 GET 路由
    app.include_router(graphql_routes.router)
    return app


app = create_app()


def run() -> None:
    import uvicorn

    # 初始化日志：在入口处显式配置，避免模块导入时的副作用
    configure_logging(service="gateway")
    logger.info("gateway_starting", port=settings.PORT, playground=f"http://localhost:{settings.PORT}/")
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=settings.PORT,
        timeout_graceful_shutdown=settings.gateway.shutdown_grace,
        log_config=None,
    )
    logger.info("gateway_stopped")


if __name__ == "__main__":
    run()
