"""
Shared business codes used across layers (Domain/Core/API/gRPC).

Single source of truth for the numeric codes surfaced in HTTP error
envelopes and GraphQL error extensions.
"""
from enum import IntEnum


class BusinessCode(IntEnum):
    """业务状态码定义（单一来源）"""

    # 成功
    SUCCESS = 0

    # 参数错误 (1xxxx)
    PARAM_ERROR = 10000
    PARAM_MISSING = 10001
    PARAM_TYPE_ERROR = 10002
    PARAM_VALIDATION_ERROR = 10003

    # 业务错误 (2xxxx)
    BUSINESS_ERROR = 20000
    NOT_FOUND = 20006  # 资源未找到（通用）

    # 系统错误 (4xxxx)
    SYSTEM_ERROR = 40000
    NETWORK_ERROR = 40002
    SERVICE_UNAVAILABLE = 40003
    SERVICE_TIMEOUT = 40004
    UPSTREAM_ERROR = 40005


__all__ = ["BusinessCode"]
