"""structlog 配置

dev 模式输出可读文本，json 模式输出结构化 JSON（异常展开为 dict）。
LiteLLM / httpx 自带的 stdlib logger 在非 DEBUG 级别下压到 WARNING，
避免每次模型调用都输出请求日志。
"""

import logging
import os

import structlog

# 第三方库的 stdlib logger 名称
NOISY_LOGGERS = ("LiteLLM", "LiteLLM Router", "LiteLLM Proxy", "httpx", "httpcore")


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _render_processors(log_format: str) -> list[structlog.types.Processor]:
    if log_format == "json":
        return [
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ]
    return [structlog.dev.ConsoleRenderer()]


def setup_logging(log_format: str | None = None, log_level: str | None = None) -> None:
    """初始化 structlog，并接管标准库 logging 的输出

    参数为 None 时读取环境变量:
        MODELRELAY_LOG_FORMAT: "dev"（默认）/ "json"
        MODELRELAY_LOG_LEVEL: 根 logger 级别（默认 INFO，无法识别时退回 INFO）

    重复调用会替换之前安装的 handler。
    """
    log_format = (log_format or os.environ.get("MODELRELAY_LOG_FORMAT", "dev")).lower()
    level_name = (log_level or os.environ.get("MODELRELAY_LOG_LEVEL", "INFO")).upper()
    level = logging.getLevelNamesMapping().get(level_name, logging.INFO)

    shared_processors = _shared_processors()

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
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *_render_processors(log_format),
        ],
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    noisy_level = logging.NOTSET if level <= logging.DEBUG else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(noisy_level)
