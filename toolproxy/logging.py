"""Structured logging for toolproxy.

Events carry snake_case names (``tool_call_completed``, ``service_registered``).
Request-scoped fields such as ``request_id`` and ``rpc_method`` live in
contextvars and are merged into every event logged while a request is served.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog

# RequestTracingMiddleware already logs one event per request
QUIET_LOGGERS = ("uvicorn.access",)


def _processors(json_format: bool, add_timestamp: bool) -> list[Any]:
    chain: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    if add_timestamp:
        chain.insert(0, structlog.processors.TimeStamper(fmt="iso", utc=True))
    if json_format:
        chain.append(structlog.processors.JSONRenderer())
    else:
        chain.append(
            structlog.dev.ConsoleRenderer(colors=True, exception_formatter=structlog.dev.plain_traceback)
        )
    return chain


def configure_logging(
    json_format: bool = True,
    level: str = "INFO",
    add_timestamp: bool = True,
) -> None:
    """Route structlog through the stdlib root logger at ``level``.

    ``json_format=False`` switches to the colored console renderer used with
    ``TOOLPROXY_DEBUG``.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level '{level}'")

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level, force=True)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    structlog.configure(
        processors=_processors(json_format, add_timestamp),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


@contextmanager
def log_context(**kwargs: Any) -> Iterator[None]:
    """Bind fields for one block and restore the previous values afterwards.

    Each entry of a JSON-RPC batch runs in its own task, so each logs its own
    ``rpc_id`` and ``rpc_method``.
    """
    with structlog.contextvars.bound_contextvars(**kwargs):
        yield
