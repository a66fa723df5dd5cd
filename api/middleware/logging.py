"""
请求/响应日志中间件
记录所有HTTP请求和响应，包括耗时统计；请求体中的凭据字段会被脱敏
"""
import json
import re
import time
from typing import Any

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from core.logging_config import get_logger
from core.config import settings


logger = get_logger(__name__)

# GraphQL queries inline credentials as `password: "..."` inside the query string;
# in raw JSON text the quotes arrive escaped as `password: \"...\"`, and JSON keys read `"password": "..."`
_INLINE_SECRET = re.compile(
    r'(\b(?:password|token)(?:\\?")?\s*:\s*)(?:"(?:[^"\\]|\\.)*"|\\"(?:[^"\\]|\\[^"])*\\")',
    re.IGNORECASE,
)


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    日志记录中间件

    功能：
    1. 记录请求信息（方法、路径、请求体摘要）
    2. 记录响应信息（状态码、耗时）
    3. 记录异常信息
    """

    # 跳过日志的路径
    SKIP_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}

    # 敏感字段，日志中需要脱敏
    SENSITIVE_FIELDS = {"password", "token", "secret", "access_token"}

    def __init__(self, app: ASGIApp):
        super().__init__(app)
        self.enable_body_log_default: bool = settings.LOG_REQUEST_BODY_ENABLE_BY_DEFAULT
        self.max_body_log_bytes: int = settings.LOG_REQUEST_BODY_MAX_BYTES

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.SKIP_PATHS:
            return await call_next(request)

        start_time = time.time()
        request_info = await self._get_request_info(request)
        logger.info("request_started", **request_info)

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "request_failed",
                duration=time.time() - start_time,
                error=str(exc),
                error_type=type(exc).__name__,
                **request_info,
                exc_info=True
            )
            # 重新抛出异常，让异常处理器处理
            raise

        duration = time.time() - start_time
        self._log_response(response, duration, request_info)
        response.headers["X-Process-Time"] = f"{duration:.3f}"
        return response

    async def _get_request_info(self, request: Request) -> dict:
        info: dict = {
            "method": request.method,
            "path": request.url.path,
        }
        if request.method == "POST" and self._should_log_body(request):
            body_snippet = await self._extract_and_sanitize_body(request)
            if body_snippet is not None:
                info["body"] = body_snippet
        user_agent = request.headers.get("User-Agent")
        if user_agent:
            info["user_agent"] = user_agent
        return info

    def _should_log_body(self, request: Request) -> bool:
        # X-Log-Body: true/false 覆盖默认值
        header = (request.headers.get("X-Log-Body") or "").lower()
        if header in {"true", "1", "yes"}:
            return True
        if header in {"false", "0", "no"}:
            return False
        return bool(self.enable_body_log_default and settings.DEBUG)

    async def _extract_and_sanitize_body(self, request: Request) -> Any:
        body = await request.body()
        if not body:
            return None

        snippet = body[: self.max_body_log_bytes].decode("utf-8", errors="ignore")
        if "application/json" in request.headers.get("content-type", "").lower():
            try:
                return self._sanitize_data(json.loads(snippet))
            except ValueError:
                pass
        return self._sanitize_text(snippet)

    def _sanitize_data(self, data: Any) -> Any:
        if isinstance(data, dict):
            return {k: ("***" if k.lower() in self.SENSITIVE_FIELDS else self._sanitize_data(v)) for k, v in data.items()}
        if isinstance(data, list):
            return [self._sanitize_data(v) for v in data]
        if isinstance(data, str):
            return self._sanitize_text(data)
        return data

    @staticmethod
    def _sanitize_text(text: str) -> str:
        return _INLINE_SECRET.sub(r'\1"***"', text)

    def _log_response(self, response: Response, duration: float, request_info: dict):
        status_code = response.status_code
        log_data = {"status_code": status_code, "duration": duration, **request_info}

        if status_code < 400:
            logger.info("request_completed", **log_data)
        elif status_code < 500:
            logger.warning("request_client_error", **log_data)
        else:
            logger.error("request_server_error", **log_data)
