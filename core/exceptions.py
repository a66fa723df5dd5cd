"""
全局异常处理器（HTTP 层）

GraphQL execution errors never reach these handlers: they are rendered in
the GraphQL error envelope by `api.graphql.executor`. These handlers cover
everything else the gateway serves (bad request bodies, unknown failures).
"""
import traceback
import uuid

from fastapi import FastAPI, Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status as http_status

from .response import error_response
from shared.codes import BusinessCode
from core.logging_config import get_logger
from domain.common.exceptions import BusinessException


def _business_code_to_http_status(code: int) -> int:
    """根据业务码映射HTTP状态码（默认400）。"""
    mapping = {
        BusinessCode.PARAM_ERROR: http_status.HTTP_400_BAD_REQUEST,
        BusinessCode.PARAM_MISSING: http_status.HTTP_400_BAD_REQUEST,
        BusinessCode.PARAM_TYPE_ERROR: http_status.HTTP_400_BAD_REQUEST,
        BusinessCode.PARAM_VALIDATION_ERROR: http_status.HTTP_422_UNPROCESSABLE_ENTITY,

        BusinessCode.BUSINESS_ERROR: http_status.HTTP_400_BAD_REQUEST,
        BusinessCode.NOT_FOUND: http_status.HTTP_404_NOT_FOUND,

        BusinessCode.SYSTEM_ERROR: http_status.HTTP_500_INTERNAL_SERVER_ERROR,
        BusinessCode.NETWORK_ERROR: http_status.HTTP_502_BAD_GATEWAY,
        BusinessCode.UPSTREAM_ERROR: http_status.HTTP_502_BAD_GATEWAY,
        BusinessCode.SERVICE_UNAVAILABLE: http_status.HTTP_503_SERVICE_UNAVAILABLE,
        BusinessCode.SERVICE_TIMEOUT: http_status.HTTP_504_GATEWAY_TIMEOUT,
    }
    try:
        return mapping.get(BusinessCode(code), http_status.HTTP_400_BAD_REQUEST)
    except ValueError:
        return http_status.HTTP_400_BAD_REQUEST


def _request_id(request: Request) -> str:
    return getattr(getattr(request, "state", object()), "request_id", None) or str(uuid.uuid4())


def register_exception_handlers(app: FastAPI):
    """
    注册全局异常处理器

    Args:
        app: FastAPI应用实例
    """

    logger = get_logger(__name__)

    @app.exception_handler(BusinessException)
    async def business_exception_handler(request: Request, exc: BusinessException):
        """处理业务异常"""
        response = error_response(
            code=exc.code,
            message=exc.message,
            error_type=exc.error_type,
            details=exc.details,
            field=exc.field,
            request_id=_request_id(request),
        )
        return JSONResponse(
            status_code=_business_code_to_http_status(exc.code),
            content=response.model_dump(mode='json'),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """处理参数验证异常"""
        errors = exc.errors()

        # 提取第一个错误的详细信息
        first_error = errors[0] if errors else {}
        field = ".".join(str(loc) for loc in first_error.get("loc", [])[1:])

        response = error_response(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=f"Validation failed: {first_error.get('msg', 'unknown')}",
            error_type="ValidationError",
            details={"errors": errors},
            field=field,
            request_id=_request_id(request),
        )
        return JSONResponse(
            status_code=http_status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=response.model_dump(mode='json')
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """处理HTTP异常"""
        code_mapping = {
            404: BusinessCode.NOT_FOUND,
            500: BusinessCode.SYSTEM_ERROR,
            503: BusinessCode.SERVICE_UNAVAILABLE,
        }
        code = code_mapping.get(exc.status_code, BusinessCode.BUSINESS_ERROR)

        response = error_response(
            code=code,
            message=str(exc.detail),
            error_type="HTTPError",
            details={"status_code": exc.status_code},
            request_id=_request_id(request),
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=response.model_dump(mode='json'),
            headers=getattr(exc, "headers", None)
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """处理所有未捕获的异常"""
        request_id = _request_id(request)

        details = None
        if app.debug:
            details = {
                "exception": str(exc),
                "traceback": traceback.format_exc()
            }

        response = error_response(
            code=BusinessCode.SYSTEM_ERROR,
            message="Internal server error",
            error_type="SystemError",
            details=details,
            request_id=request_id,
        )

        logger.error(
            "unhandled_exception",
            request_id=request_id,
            error=str(exc),
            exc_info=True,
        )

        return JSONResponse(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=response.model_dump(mode='json')
        )
