from __future__ import annotations

"""
Structured logging setup for pathkv.

This module configures **structlog** + the stdlib ``logging`` package so that:
- Events are emitted as structured JSON by default (or through the console
  renderer for interactive use).
- Context variables bound with ``bind_context`` are merged into each event.
- Exceptions include a structured stack trace.

The library never configures logging on import; applications (and the CLI)
call ``setup_logging`` once. Until then structlog's defaults apply.

Quick start
-----------
    from pathkv.logging import setup_logging, get_logger

    setup_logging(level="DEBUG", log_format="console")
    log = get_logger(__name__)
    log.info("client_opened", uri="sqlite:///kv.db")
"""

import logging
import os
from typing import Any, Dict, Iterable, Optional

import structlog
from structlog.contextvars import merge_contextvars
from structlog.processors import JSONRenderer


def _hex_bytes(_: logging.Logger, __: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Render raw key/value bytes as hex so JSON output stays valid."""
    for k, v in list(event_dict.items()):
        if isinstance(v, (bytes, bytearray, memoryview)):
            event_dict[k] = bytes(v).hex()
    return event_dict


def _base_processors(include_stacktrace: bool) -> Iterable:
    yield structlog.stdlib.add_log_level
    yield structlog.processors.TimeStamper(fmt="iso", utc=True)
    yield merge_contextvars
    yield structlog.processors.StackInfoRenderer()
    if include_stacktrace:
        yield structlog.processors.format_exc_info
    yield _hex_bytes
    yield structlog.processors.UnicodeDecoder()


def setup_logging(
    *,
    level: Optional[str | int] = None,
    log_format: Optional[str] = None,
    include_stacktrace: Optional[bool] = None,
) -> None:
    """
    Configure structlog + stdlib logging. Safe to call more than once.

    Parameters
    ----------
    level: str|int
        Log level. Defaults to $PATHKV_LOG_LEVEL or INFO.
    log_format: str
        "json" (default) or "console". Defaults to $PATHKV_LOG_FORMAT.
    include_stacktrace: bool
        Render exc_info into the event. Defaults to True for JSON only.
    """
    level = level or os.getenv("PATHKV_LOG_LEVEL", "").upper() or "INFO"
    log_format = (log_format or os.getenv("PATHKV_LOG_FORMAT", "") or "json").lower()
    if include_stacktrace is None:
        include_stacktrace = log_format == "json"

    processors = list(_base_processors(include_stacktrace))

    if log_format == "console":
        renderer = structlog.dev.ConsoleRenderer(colors=False, sort_keys=False)
    else:
        renderer = JSONRenderer(sort_keys=True)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            *processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=renderer,
            foreign_pre_chain=[
                structlog.stdlib.add_log_level,
                structlog.stdlib.add_logger_name,
                *processors,
            ],
        )
    )

    root = logging.getLogger()
    root.setLevel(level)
    for h in list(root.handlers):
        root.removeHandler(h)
    root.addHandler(handler)


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound to `name`."""
    return structlog.get_logger(name or "pathkv")


def bind_context(**kv: Any) -> None:
    """Bind key/value pairs into the structlog contextvars store."""
    structlog.contextvars.bind_contextvars(**kv)


def clear_context(*keys: str) -> None:
    """Clear specific keys from contextvars, or all of them if none given."""
    if keys:
        structlog.contextvars.unbind_contextvars(*keys)
    else:
        structlog.contextvars.clear_contextvars()


__all__ = ["setup_logging", "get_logger", "bind_context", "clear_context"]
