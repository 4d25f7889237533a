"""structlog configuration.

Learn: structlog and the stdlib logging module share one processor chain,
so uvicorn's access/error logs and our own `structlog.get_logger()` calls
come out in the same format. `merge_contextvars` pulls in the request id
bound by RequestIdMiddleware.
"""

import json
import logging
from typing import Any

import structlog
from structlog.contextvars import merge_contextvars
from structlog.dev import ConsoleRenderer
from structlog.processors import JSONRenderer, TimeStamper, add_log_level
from structlog.stdlib import ProcessorFormatter

from tagrelay.config import settings


def get_renderer(json_output: bool) -> Any:
    """Console output for local development, JSON lines otherwise."""
    if not json_output:
        return ConsoleRenderer(colors=settings.debug)

    def _dumps(obj, default=None, **kwargs):
        return json.dumps(obj, ensure_ascii=False, default=default, **kwargs)

    return JSONRenderer(serializer=_dumps)


def configure_logging(level: str | None = None, json_output: bool | None = None) -> None:
    """Configure structlog and bridge stdlib logging into the same chain."""
    level = (level or settings.log_level).upper()
    json_output = settings.log_json if json_output is None else json_output

    shared_pre_chain: list[Any] = [
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
            get_renderer(json_output),
        ],
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if settings.debug else level)
