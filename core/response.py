"""
统一响应格式定义
"""
from typing import Any, Optional, Generic, TypeVar
from pydantic import BaseModel, Field, field_serializer
from datetime import datetime, timezone
from shared.codes import BusinessCode


T = TypeVar("T")


class ErrorDetail(BaseModel):
    """错误详情"""
    type: str
    details: Optional[dict] = None
    field: Optional[str] = None
    request_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_serializer('timestamp')
    def serialize_timestamp(self, timestamp: datetime) -> str:
        """序列化时间戳为 UTC ISO8601，统一使用 Z 结尾"""
        ts = timestamp
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        else:
            ts = ts.astimezone(timezone.utc)
        return ts.isoformat().replace("+00:00", "Z")


class Response(BaseModel, Generic[T]):
    """统一响应模型"""
    code: int
    message: str
    data: Optional[T] = None
    error: Optional[ErrorDetail] = None


def success_response(
    data: Any = None,
    message: str = "Success",
    code: int = BusinessCode.SUCCESS
) -> Response:
    return Response(code=code, message=message, data=data, error=None)


def error_response(
    code: int,
    message: str,
    error_type: str = "BusinessError",
    details: Optional[dict] = None,
    field: Optional[str] = None,
    request_id: Optional[str] = None
) -> Response:
    """
    创建错误响应

    Args:
        code: 业务状态码
        message: 错误消息
        error_type: 错误类型
        details: 错误详情
        field: 错误字段
        request_id: 请求ID
    """
    return Response(
        code=code,
        message=message,
        data=None,
        error=ErrorDetail(
            type=error_type,
            details=details,
            field=field,
            request_id=request_id
        )
    )
