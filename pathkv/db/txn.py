"""
Serializable transactions with automatic conflict retry.

`execute_tx(pool, fn)` runs `fn(conn)` between BEGIN and COMMIT on a leased
connection. SQLite transactions are serializable; when the database aborts one
because a concurrent writer interfered (SQLITE_BUSY / BUSY_SNAPSHOT / LOCKED),
the whole body is run again from scratch on a fresh transaction.

The body must therefore be idempotent and have no side effects outside the
transaction. It may raise any pathkv error to abort: errors whose `retryable`
flag is False (KeyNotFound, ValueChanged, ...) roll back and propagate
unchanged on the first attempt.

    def body(conn):
        row = conn.execute("SELECT ...").fetchone()
        ...

    execute_tx(pool, body, ctx=ctx, policy=RetryPolicy(max_attempts=8))
"""

from __future__ import annotations

import random
import sqlite3
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from ..context import Context, ensure
from ..errors import KVError, TransportError
from ..logging import get_logger
from ..monitor import Monitor, NullMonitor
from .errors import translate
from .pool import ConnectionPool

log = get_logger(__name__)

T = TypeVar("T")

BEGIN_MODES = ("DEFERRED", "IMMEDIATE")


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry budget with jittered exponential backoff (seconds)."""

    max_attempts: int = 16
    backoff_base: float = 0.001
    backoff_max: float = 0.1

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    def delay(self, attempt: int) -> float:
        # Full jitter: uniform in [0, min(max, base * 2^(attempt-1))]
        cap = min(self.backoff_max, self.backoff_base * (2 ** max(0, attempt - 1)))
        return random.uniform(0, cap) if cap > 0 else 0.0


def _rollback(conn: sqlite3.Connection) -> None:
    if not conn.in_transaction:
        # SQLite already rolled back (e.g. after an interrupt or a busy abort).
        return
    try:
        conn.execute("ROLLBACK")
    except sqlite3.Error:
        # The pool discards connections left inside a transaction.
        log.warning("tx_rollback_failed", exc_info=True)


def _run_once(
    pool: ConnectionPool,
    fn: Callable[[sqlite3.Connection], T],
    ctx: Context,
    begin: str,
) -> T:
    with pool.connection(ctx) as conn:
        try:
            conn.execute(f"BEGIN {begin}")
            result = fn(conn)
            conn.execute("COMMIT")
            return result
        except sqlite3.Error as exc:
            _rollback(conn)
            raise translate(exc, ctx) from exc
        except BaseException:
            _rollback(conn)
            raise


def execute_tx(
    pool: ConnectionPool,
    fn: Callable[[sqlite3.Connection], T],
    *,
    ctx: Optional[Context] = None,
    policy: RetryPolicy = RetryPolicy(),
    begin: str = "DEFERRED",
    monitor: Optional[Monitor] = None,
    op: str = "tx",
) -> T:
    """
    Run `fn` inside a transaction, re-running it on serialization conflicts.

    Raises
    ------
    KVError
        Whatever non-retryable error `fn` raised (after rollback).
    Cancelled
        If `ctx` is cancelled before or during an attempt.
    TransportError
        Driver failures, or a conflict that persisted for
        `policy.max_attempts` attempts.
    """
    if begin not in BEGIN_MODES:
        raise ValueError(f"begin must be one of {BEGIN_MODES}, got {begin!r}")
    ctx = ensure(ctx)
    monitor = monitor or NullMonitor()

    attempt = 0
    while True:
        attempt += 1
        try:
            return _run_once(pool, fn, ctx, begin)
        except KVError as err:
            if not err.retryable or ctx.cancelled:
                raise
            if attempt >= policy.max_attempts:
                log.warning("tx_retry_exhausted", op=op, attempts=attempt, error=str(err))
                raise TransportError(
                    "transaction conflict persisted",
                    cause=err.cause or err,
                    op=op,
                    attempts=attempt,
                ) from err
            monitor.retry(op)
            delay = policy.delay(attempt)
            log.debug("tx_conflict_retry", op=op, attempt=attempt, delay=round(delay, 6))
            if delay:
                ctx.wait(delay)
            ctx.check()


__all__ = ["RetryPolicy", "execute_tx", "BEGIN_MODES"]
