"""
Structlog setup for the warmup client.

structlog and the stdlib loggers of httpx and grpc share one processor chain,
so every line a run emits has the same shape. Level and renderer come from
``settings.log``; ``DEBUG=true`` forces the DEBUG level.
"""
import json
import logging
from typing import Any, List, Optional

import structlog
from structlog.contextvars import merge_contextvars
from structlog.dev import ConsoleRenderer
from structlog.processors import JSONRenderer, TimeStamper, add_log_level
from structlog.stdlib import ProcessorFormatter

from core.config import LogSettings, settings


def resolve_level(log_settings: LogSettings, debug: bool = False) -> int:
    if debug:
        return logging.DEBUG
    level = logging.getLevelName(log_settings.level)
    # getLevelName returns a "Level X" string for unknown names
    return level if isinstance(level, int) else logging.INFO


def get_renderer(log_settings: LogSettings, debug: bool = False) -> Any:
    fmt = log_settings.format
    if fmt == "console" or (fmt == "auto" and debug):
        return ConsoleRenderer(colors=True)

    # structlog passes default/sort_keys through to the serializer
    def _dumps(obj, default=None, **kwargs):
        return json.dumps(obj, ensure_ascii=False, default=default, **kwargs)
    return JSONRenderer(serializer=_dumps)


def configure_logging(log_settings: Optional[LogSettings] = None, debug: Optional[bool] = None) -> None:
    """Configure structlog and route stdlib logging through the same chain."""
    log_settings = log_settings or settings.log
    debug = settings.DEBUG if debug is None else debug

    shared_pre_chain: List[Any] = [
        merge_contextvars,
        add_log_level,
        TimeStamper(fmt="iso"),
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

    formatter = ProcessorFormatter(
        foreign_pre_chain=shared_pre_chain,
        processors=[
            ProcessorFormatter.remove_processors_meta,
            get_renderer(log_settings, debug),
        ],
    )
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(resolve_level(log_settings, debug))

    # one log line per request from httpx/grpc would drown a warmup burst
    for name in log_settings.quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


configure_logging()
