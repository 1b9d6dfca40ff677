from __future__ import annotations

"""
pathkv.db
=========

SQLite backend for the pathkv store.

URIs
----
- "sqlite:///path/to/store.db"   → SQLite file
- "sqlite:///:memory:"           → in-memory SQLite (tests, one connection)
- "memory://"                    → alias of "sqlite:///:memory:"
- bare path                      → treated as an SQLite file path

API
---
- open_client(uri=None, *, settings=None, monitor=None, **overrides) -> Client
    Build a pool and client from `Settings` (env `PATHKV_*`), with the URI and
    any keyword overrides taking precedence.

Example
-------
>>> from pathkv.db import open_client
>>> with open_client("memory://") as kv:
...     kv.put(b"a/b", b"hello")
...     kv.get(b"a/b")
b'hello'
"""

from typing import Any, Optional, Tuple

from ..config import Settings, get_settings
from ..errors import ConfigError
from ..logging import get_logger
from ..monitor import Monitor, NullMonitor, PrometheusMonitor
from .client import Client
from .iterator import OrderedIterator
from .pool import MEMORY, ConnectionPool, migrate
from .txn import RetryPolicy, execute_tx

log = get_logger(__name__)


def _parse_uri(uri: str) -> Tuple[str, str]:
    """
    Parse a DB URI into (backend, path).

    Returns:
        ("sqlite", path) or ("memory", ":memory:")
    """
    u = uri.strip()
    if u.startswith("memory://"):
        return ("memory", MEMORY)
    if u.startswith("sqlite:///"):
        path = u[len("sqlite:///") :]
        if not path or path == MEMORY:
            return ("memory", MEMORY)
        return ("sqlite", path)
    if "://" in u:
        raise ConfigError(f"unsupported database URI {uri!r}", uri=uri)
    if not u or u == MEMORY:
        return ("memory", MEMORY)
    return ("sqlite", u)


def open_client(
    uri: Optional[str] = None,
    *,
    settings: Optional[Settings] = None,
    monitor: Optional[Monitor] = None,
    **overrides: Any,
) -> Client:
    """
    Open a client by URI. See module docstring for supported forms.

    Args:
        uri: database spec / path; defaults to `settings.db_uri`.
        settings: base settings; defaults to the cached environment settings.
        monitor: metrics sink; a PrometheusMonitor when `metrics_enabled`.
        overrides: any `Settings` field, e.g. pool_size=4, batch_size=100.

    Raises:
        ConfigError for an unsupported URI or invalid overrides.
        TransportError if the database cannot be opened.
    """
    base = settings or get_settings()
    if overrides:
        try:
            base = Settings(**{**base.model_dump(), **overrides})
        except ValueError as exc:
            raise ConfigError(f"invalid settings: {exc}") from exc
    s = base

    _, path = _parse_uri(uri if uri is not None else s.db_uri)

    pool = ConnectionPool(
        path,
        size=s.pool_size,
        busy_timeout_ms=s.busy_timeout_ms,
        journal_mode=s.journal_mode,
        synchronous=s.synchronous,
        create_schema=s.create_schema,
    )
    if monitor is None:
        monitor = PrometheusMonitor() if s.metrics_enabled else NullMonitor()

    log.debug("client_opened", path=path, pool_size=pool.size, batch_size=s.batch_size)
    return Client(
        pool,
        batch_size=s.batch_size,
        retry=RetryPolicy(
            max_attempts=s.tx_max_attempts,
            backoff_base=s.tx_backoff_base_ms / 1000.0,
            backoff_max=s.tx_backoff_max_ms / 1000.0,
        ),
        tx_begin=s.tx_begin,
        monitor=monitor,
    )


__all__ = [
    "Client",
    "ConnectionPool",
    "OrderedIterator",
    "RetryPolicy",
    "execute_tx",
    "migrate",
    "open_client",
]
