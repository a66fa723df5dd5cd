"""
配置文件 - 项目配置管理
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field, field_validator
from typing import Optional


class GrpcKeepaliveSettings(BaseModel):
    # Maps to grpc.keepalive_* / grpc.max_connection_* channel args; None leaves gRPC defaults
    time_ms: Optional[int] = None
    timeout_ms: Optional[int] = None
    permit_without_calls: Optional[bool] = None
    max_connection_idle_ms: Optional[int] = None
    max_connection_age_ms: Optional[int] = None
    max_connection_age_grace_ms: Optional[int] = None


class GrpcSettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = 9090
    # Reflection exposes service descriptors; keep it off in production
    reflection: bool = False
    max_concurrent_rpcs: Optional[int] = None
    # Seconds GracefulStop waits for in-flight RPCs
    shutdown_grace: float = 30.0
    keepalive: GrpcKeepaliveSettings = Field(default_factory=GrpcKeepaliveSettings)


class GatewaySettings(BaseModel):
    backend_target: str = "localhost:9090"
    # Per-call deadline for forwarded Login calls
    call_timeout: float = 1.0
    # How long to wait for the backend channel to become READY
    dial_timeout: float = 5.0
    shutdown_grace: int = 60


class Settings(BaseSettings):
    """项目配置"""

    # 基础配置
    PROJECT_NAME: str = Field(default="Todo Login Gateway")
    VERSION: str = Field(default="1.0.0")
    DEBUG: bool = Field(default=False)
    LOG_LEVEL: Optional[str] = Field(default=None, description="覆盖默认日志级别（DEBUG/INFO/...）")

    # Query gateway HTTP port
    PORT: int = Field(default=8080)

    grpc: GrpcSettings = Field(default_factory=GrpcSettings)
    gateway: GatewaySettings = Field(default_factory=GatewaySettings)

    # 日志/请求体记录配置
    LOG_REQUEST_BODY_ENABLE_BY_DEFAULT: bool = Field(default=True)
    LOG_REQUEST_BODY_MAX_BYTES: int = Field(default=2048)

    # pydantic-settings v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
        env_ignore_empty=True,
    )

    @field_validator("PORT")
    @classmethod
    def _validate_port(cls, v: int) -> int:
        if not 0 < v < 65536:
            raise ValueError(f"PORT out of range: {v}")
        return v


settings = Settings()
