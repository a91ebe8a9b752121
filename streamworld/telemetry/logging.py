"""
StreamWorld — Structured Logging

All logging goes through structlog, rendered by a single stdlib handler so
that third-party loggers (uvicorn, asyncio) share the same format. The
instance id is bound as a context variable and appears on every entry.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from streamworld.config import LoggingConfig


def build_processors() -> list[Any]:
    """Processors applied to structlog and foreign (stdlib) entries alike."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _render_chain(config: LoggingConfig) -> list[Any]:
    if config.format == "json":
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    # ConsoleRenderer formats exceptions itself
    colors = config.colors if config.colors is not None else sys.stdout.isatty()
    return [structlog.dev.ConsoleRenderer(colors=colors)]


def setup_logging(config: LoggingConfig, instance_id: str = "") -> logging.Handler:
    """
    Configure structured logging for the whole process and return the
    installed root handler. Calling it again replaces the previous setup.
    """
    structlog.contextvars.clear_contextvars()
    if instance_id:
        structlog.contextvars.bind_contextvars(instance_id=instance_id)

    shared = build_processors()
    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *_render_chain(config),
        ],
    ))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, config.level.upper(), logging.INFO))

    for name in config.quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)

    return handler
