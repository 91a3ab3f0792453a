"""structlog 配置模块

NUTRITASK_LOG_FORMAT=dev（默认）输出可读日志，json 输出结构化日志；
标准库 logging（uvicorn、aiosqlite 等）经 ProcessorFormatter 统一渲染。
Logfire APM 由 LOGFIRE_SEND_TO_LOGFIRE 控制，关闭或初始化失败时只保留本地日志。
"""

import logging
import os

import structlog

# 第三方库 logger 的最低级别
_QUIET_LOGGERS: dict[str, int] = {
    "aiosqlite": logging.WARNING,
    "sse_starlette": logging.INFO,
    "uvicorn.access": logging.WARNING,
}


def _build_renderer(log_format: str) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer(ensure_ascii=False)
    return structlog.dev.ConsoleRenderer()


def setup_logging() -> None:
    """初始化 structlog + 标准库 logging

    环境变量：
    - NUTRITASK_LOG_FORMAT: "dev" | "json"
    - NUTRITASK_LOG_LEVEL: 根 logger 级别，默认 INFO
    """
    log_format = os.environ.get("NUTRITASK_LOG_FORMAT", "dev").lower()
    log_level = os.environ.get("NUTRITASK_LOG_LEVEL", "INFO").upper()

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if log_format == "json":
        # JSON 模式下异常栈以字符串字段输出
        shared_processors.append(structlog.processors.format_exc_info)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=_build_renderer(log_format),
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level, logging.INFO))

    for name, level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(max(level, root_logger.level))


def setup_logfire(app=None) -> bool:
    """按需启用 Logfire，传入 app 时同时埋点 FastAPI 请求

    Returns:
        True 如果 Logfire 已启用
    """
    if os.environ.get("LOGFIRE_SEND_TO_LOGFIRE", "false").lower() != "true":
        return False

    log = structlog.get_logger()
    try:
        import logfire
    except ImportError:
        log.warning("logfire_not_installed", hint="pip install nutritask[logfire]")
        return False

    try:
        logfire.configure(service_name="nutritask-gateway")
        if app is not None:
            logfire.instrument_fastapi(app)
    except Exception as e:
        log.warning("logfire_init_failed", error_type=type(e).__name__, error=str(e))
        return False
    return True
