"""
Classification of sqlite3 driver errors.

`translate` turns a driver exception into a pathkv error by *category*:

- lock contention / stale snapshot  -> SerializationConflict (retryable)
- interrupted while ctx is done     -> the context's Cancelled error
- anything else                     -> TransportError (permanent)

The transaction combinator only looks at `KVError.retryable`; it never tests
for specific driver exception classes.
"""

from __future__ import annotations

import sqlite3
from typing import Optional

from ..context import Context
from ..errors import Cancelled, KVError, SerializationConflict, TransportError

SQLITE_BUSY = 5
SQLITE_LOCKED = 6
SQLITE_INTERRUPT = 9
SQLITE_SCHEMA = 17

_CONFLICT_CODES = {SQLITE_BUSY, SQLITE_LOCKED, SQLITE_SCHEMA}

_CONFLICT_MESSAGES = (
    "database is locked",
    "database table is locked",
    "database schema is locked",
    "database schema has changed",
)


def _primary_code(exc: BaseException) -> Optional[int]:
    # Extended result codes carry the primary code in the low byte.
    code = getattr(exc, "sqlite_errorcode", None)
    if code is None:
        return None
    return int(code) & 0xFF


def is_conflict(exc: BaseException) -> bool:
    if not isinstance(exc, sqlite3.OperationalError):
        return False
    code = _primary_code(exc)
    if code is not None:
        return code in _CONFLICT_CODES
    msg = str(exc).lower()
    return any(m in msg for m in _CONFLICT_MESSAGES)


def is_interrupt(exc: BaseException) -> bool:
    if not isinstance(exc, sqlite3.OperationalError):
        return False
    code = _primary_code(exc)
    if code is not None:
        return code == SQLITE_INTERRUPT
    return "interrupted" in str(exc).lower()


def translate(exc: BaseException, ctx: Optional[Context] = None) -> KVError:
    """Map a driver exception onto the pathkv error taxonomy."""
    if isinstance(exc, KVError):
        return exc
    if ctx is not None and ctx.cancelled:
        reason = ctx.err() or Cancelled()
        return reason.with_cause(exc)  # type: ignore[return-value]
    if is_interrupt(exc):
        return Cancelled("statement interrupted").with_cause(exc)  # type: ignore[return-value]
    if is_conflict(exc):
        return SerializationConflict(str(exc), cause=exc)
    return TransportError(str(exc) or type(exc).__name__, cause=exc)


__all__ = ["translate", "is_conflict", "is_interrupt"]
