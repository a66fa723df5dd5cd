"""领域层业务异常定义，供领域与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class GatewayError(BusinessException):
    """Failure while forwarding a call from the query gateway to the RPC backend."""

    def __init__(
        self,
        message: str,
        *,
        code: int = BusinessCode.SYSTEM_ERROR,
        error_type: str = "GatewayError",
        details: Optional[dict] = None,
    ) -> None:
        super().__init__(code=code, message=message, error_type=error_type, details=details)


class TransportError(GatewayError):
    """Dial failure or a transport-level failure of a single call."""

    def __init__(self, message: str, *, target: Optional[str] = None):
        super().__init__(
            message,
            code=BusinessCode.NETWORK_ERROR,
            error_type="TransportError",
            details={"target": target} if target else None,
        )


class DeadlineExceededError(GatewayError):
    def __init__(self, method: str, timeout: float):
        super().__init__(
            f"{method} did not complete within {timeout:g}s",
            code=BusinessCode.SERVICE_TIMEOUT,
            error_type="DeadlineExceeded",
            details={"method": method, "timeout": timeout},
        )


class UpstreamError(GatewayError):
    """The backend answered with a non-OK status (or an error payload)."""

    def __init__(self, message: str, *, status: Optional[str] = None):
        super().__init__(
            message,
            code=BusinessCode.UPSTREAM_ERROR,
            error_type="UpstreamError",
            details={"status": status} if status else None,
        )
        self.status = status
