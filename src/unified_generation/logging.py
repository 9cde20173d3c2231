"""structlog setup for the generation core."""

from __future__ import annotations

import logging
from logging.config import dictConfig

import structlog
import structlog.types
from structlog.contextvars import bind_contextvars, merge_contextvars
from structlog.stdlib import BoundLogger
from structlog.stdlib import get_logger as get_structlog_logger

from .config import GenerationSettings

__all__ = ["COMPONENT_NAME", "configure_logging", "get_logger", "resolve_level"]

COMPONENT_NAME = "unified-generation"

# Held at WARNING unless DEBUG is requested.
_TRANSPORT_LOGGERS = ("httpx", "httpcore")

_configured = False


def resolve_level(level: str) -> int:
    resolved = logging.getLevelName(level.upper())
    if isinstance(resolved, str):
        return logging.INFO
    return int(resolved)


def _renderer(settings: GenerationSettings) -> structlog.types.Processor:
    if settings.log_json:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=False)


def configure_logging(
    settings: GenerationSettings | None = None, *, force: bool = False
) -> None:
    """Route structlog through stdlib logging using *settings*.

    Runs once per process unless *force* is given; later calls are no-ops so
    every orchestrator built from settings can call it safely.
    """

    global _configured
    if _configured and not force:
        return

    settings = settings or GenerationSettings()
    level = resolve_level(settings.log_level)
    transport_level = level if level <= logging.DEBUG else logging.WARNING
    shared: list[structlog.types.Processor] = [
        merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
    ]

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structlog": {
                    "()": structlog.stdlib.ProcessorFormatter,
                    "foreign_pre_chain": shared,
                    "processors": [
                        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                        structlog.processors.EventRenamer("message"),
                        _renderer(settings),
                    ],
                }
            },
            "handlers": {
                "default": {
                    "level": level,
                    "class": "logging.StreamHandler",
                    "formatter": "structlog",
                }
            },
            "loggers": {
                "": {"handlers": ["default"], "level": level},
                **{
                    name: {
                        "handlers": ["default"],
                        "level": transport_level,
                        "propagate": False,
                    }
                    for name in _TRANSPORT_LOGGERS
                },
            },
        }
    )

    structlog.configure(
        processors=[
            *shared,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    bind_contextvars(component=COMPONENT_NAME)
    _configured = True


def get_logger(name: str | None = None) -> BoundLogger:
    return get_structlog_logger(name)
