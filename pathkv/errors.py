"""
pathkv.errors
-------------

A small, consistent error system for the key-value layer.

Design goals
------------
- One root `KVError` with a machine-friendly `code` and optional `data`.
- Concrete subclasses for the outcomes callers branch on (empty key, missing
  key, CAS precondition, lookup limit, transport, cancellation).
- Clear separation of *retryable* (serialization conflicts) vs *permanent*
  failures. Only the transaction combinator in `pathkv.db.txn` looks at
  `retryable`; everything else propagates as-is.
- Safe JSON representation (`to_dict`) suitable for logs and the CLI.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Type, TypeVar


class KVErrorCode(str, Enum):
    INTERNAL = "KV/INTERNAL"
    CONFIG = "KV/CONFIG"

    # Preconditions (checked before touching the database)
    EMPTY_KEY = "KV/EMPTY_KEY"
    LIMIT_EXCEEDED = "KV/LIMIT_EXCEEDED"

    # Logical outcomes derived from query results
    KEY_NOT_FOUND = "KV/KEY_NOT_FOUND"
    VALUE_CHANGED = "KV/VALUE_CHANGED"

    # Database / driver
    TRANSPORT = "KV/TRANSPORT"
    CONFLICT = "KV/CONFLICT"

    CANCELLED = "KV/CANCELLED"
    DEADLINE_EXCEEDED = "KV/DEADLINE_EXCEEDED"

    COMBINED = "KV/COMBINED"


@dataclass(eq=False)
class KVError(Exception):
    """
    Root error for pathkv.

    Attributes
    ----------
    code: str
        Machine-stable error code (see KVErrorCode).
    message: str
        Human hint suitable for logs.
    data: dict
        Optional machine data (keys as hex, limits). JSON-serializable.
    retryable: bool
        Whether re-running the same transaction may succeed.
    cause: Optional[BaseException]
        Wrapped original exception.
    """

    code: str
    message: str
    data: Dict[str, Any] = field(default_factory=dict)
    retryable: bool = False
    cause: Optional[BaseException] = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        super().__init__(f"{self.code}: {self.message}")
        if self.cause is not None:
            self.__cause__ = self.cause

    def with_context(self, **ctx: Any) -> "KVError":
        """Return a copy with extra context merged into `data`."""
        err = _clone(self)
        err.data = {**self.data, **_jsonmap(ctx)}
        return err

    def with_cause(self, exc: BaseException) -> "KVError":
        """Return a copy carrying `exc` as its cause."""
        err = _clone(self)
        err.cause = exc
        err.__cause__ = exc
        return err

    def to_dict(self, include_cause: bool = False) -> Dict[str, Any]:
        out = {
            "code": str(self.code.value if isinstance(self.code, Enum) else self.code),
            "message": self.message,
            "data": _coerce_json(self.data),
            "retryable": self.retryable,
        }
        if include_cause and self.cause is not None:
            out["cause"] = {
                "type": type(self.cause).__name__,
                "message": str(self.cause),
            }
        return out

    def __str__(self) -> str:
        code = self.code.value if isinstance(self.code, Enum) else self.code
        parts = [f"{code}: {self.message}"]
        if self.data:
            preview = ", ".join(f"{k}={_preview(v)}" for k, v in self.data.items())
            parts.append(f"[{preview}]")
        return " ".join(parts)


class EmptyKey(KVError):
    def __init__(self, **data: Any) -> None:
        super().__init__(
            code=KVErrorCode.EMPTY_KEY, message="empty key", data=_jsonmap(data)
        )


class KeyNotFound(KVError):
    def __init__(self, key: bytes = b"", **data: Any) -> None:
        super().__init__(
            code=KVErrorCode.KEY_NOT_FOUND,
            message=f"key not found: {key!r}",
            data=_jsonmap({"key": key, **data}),
        )
        self.key = key


class ValueChanged(KVError):
    def __init__(self, key: bytes = b"", **data: Any) -> None:
        super().__init__(
            code=KVErrorCode.VALUE_CHANGED,
            message=f"value changed: {key!r}",
            data=_jsonmap({"key": key, **data}),
        )
        self.key = key


class LimitExceeded(KVError):
    def __init__(self, limit: int, got: int) -> None:
        super().__init__(
            code=KVErrorCode.LIMIT_EXCEEDED,
            message="limit exceeded",
            data={"limit": limit, "got": got},
        )


class TransportError(KVError):
    """Connectivity, driver or transaction failure. Always wraps a cause."""

    def __init__(
        self,
        message: str = "database error",
        *,
        cause: Optional[BaseException] = None,
        retryable: bool = False,
        **data: Any,
    ) -> None:
        super().__init__(
            code=KVErrorCode.TRANSPORT,
            message=message,
            data=_jsonmap(data),
            retryable=retryable,
            cause=cause,
        )


class SerializationConflict(TransportError):
    """The database aborted a transaction because a concurrent one interfered."""

    def __init__(
        self,
        message: str = "serialization conflict",
        *,
        cause: Optional[BaseException] = None,
        **data: Any,
    ) -> None:
        super().__init__(message, cause=cause, retryable=True, **data)
        self.code = KVErrorCode.CONFLICT


class Cancelled(KVError):
    def __init__(self, message: str = "operation cancelled", **data: Any) -> None:
        super().__init__(
            code=KVErrorCode.CANCELLED, message=message, data=_jsonmap(data)
        )


class DeadlineExceeded(Cancelled):
    def __init__(self, **data: Any) -> None:
        super().__init__(message="deadline exceeded", **data)
        self.code = KVErrorCode.DEADLINE_EXCEEDED


class ConfigError(KVError):
    def __init__(self, message: str = "invalid configuration", **data: Any) -> None:
        super().__init__(
            code=KVErrorCode.CONFIG, message=message, data=_jsonmap(data)
        )


class CombinedError(KVError):
    """Several failures reported as one; `errors` keeps every cause in order."""

    def __init__(self, errors: Sequence[BaseException]) -> None:
        self.errors: List[BaseException] = list(errors)
        super().__init__(
            code=KVErrorCode.COMBINED,
            message="; ".join(f"{type(e).__name__}: {e}" for e in self.errors),
            data={"count": len(self.errors)},
            cause=self.errors[0] if self.errors else None,
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

T = TypeVar("T", bound=KVError)


def wrap(
    exc: BaseException, *, as_: Type[T] = TransportError, **ctx: Any  # type: ignore[assignment]
) -> KVError:
    """
    Wrap any exception into a KVError subclass, attaching context.
    If `exc` is already a KVError, returns a context-enriched copy.
    """
    if isinstance(exc, KVError):
        return exc.with_context(**ctx) if ctx else exc
    return as_(str(exc) or type(exc).__name__, cause=exc, **ctx)  # type: ignore[call-arg]


def combine(*errors: Optional[BaseException]) -> Optional[BaseException]:
    """
    Fold several optional errors into one.

    Returns None when all are None, the error itself when only one is set, and a
    CombinedError preserving every cause otherwise.
    """
    present = [e for e in errors if e is not None]
    if not present:
        return None
    if len(present) == 1:
        return present[0]
    return CombinedError(present)


def _clone(err: KVError) -> KVError:
    new = type(err).__new__(type(err))
    new.__dict__.update(err.__dict__)
    Exception.__init__(new, *err.args)
    return new


def _jsonmap(data: Mapping[str, Any]) -> Dict[str, Any]:
    return {k: _coerce_json(v) for k, v in data.items()}


def _coerce_json(v: Any) -> Any:
    # Keep JSON primitives; hex-encode bytes; stringify the rest.
    if v is None or isinstance(v, (bool, int, float, str)):
        return v
    if isinstance(v, (bytes, bytearray, memoryview)):
        return bytes(v).hex()
    if isinstance(v, (list, tuple)):
        return [_coerce_json(i) for i in v]
    if isinstance(v, dict):
        return {str(k): _coerce_json(i) for k, i in v.items()}
    return str(v)


def _preview(v: Any, limit: int = 96) -> str:
    s = str(_coerce_json(v))
    return s if len(s) <= limit else s[:limit] + "…"


__all__ = [
    "KVErrorCode",
    "KVError",
    "EmptyKey",
    "KeyNotFound",
    "ValueChanged",
    "LimitExceeded",
    "TransportError",
    "SerializationConflict",
    "Cancelled",
    "DeadlineExceeded",
    "ConfigError",
    "CombinedError",
    "wrap",
    "combine",
]
