"""
Structlog 日志配置模块
"""
import logging
import json
import structlog
from structlog.processors import TimeStamper, add_log_level, JSONRenderer
from structlog.dev import ConsoleRenderer
from structlog.contextvars import merge_contextvars
from structlog.stdlib import ProcessorFormatter
from typing import Any, List

from core.config import settings


def get_renderer() -> Any:
    """根据环境选择渲染器 (Console in DEBUG, JSON otherwise).
    注意：structlog 会向 serializer 传入 default/sort_keys 等参数，需要适配。
    """
    if settings.DEBUG:
        return ConsoleRenderer(colors=True)

    def _dumps(obj, default=None, **kwargs):
        return json.dumps(obj, ensure_ascii=False, default=default, **kwargs)
    return JSONRenderer(serializer=_dumps)


def _resolve_level() -> int:
    if settings.LOG_LEVEL:
        level = logging.getLevelName(settings.LOG_LEVEL.upper())
        if isinstance(level, int):
            return level
    return logging.DEBUG if settings.DEBUG else logging.INFO


def configure_logging(service: str | None = None) -> None:
    """配置 structlog 并桥接标准库 logging 到同一处理链。

    `service` is bound into every event so the backend and the gateway can
    share one log sink.
    """
    timestamper = TimeStamper(fmt="iso")

    shared_pre_chain: List[Any] = [
        merge_contextvars,
        add_log_level,
        timestamper,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[
            *shared_pre_chain,
            ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    renderer = get_renderer()
    formatter = ProcessorFormatter(
        foreign_pre_chain=shared_pre_chain,
        processors=[
            ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(_resolve_level())

    if service:
        structlog.contextvars.bind_contextvars(service=service)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    """获取 structlog logger 实例。"""
    return structlog.get_logger(name)
