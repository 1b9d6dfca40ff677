from __future__ import annotations

"""
Key / value / bucket model
==========================

Keys, values and buckets are raw bytes. Ordering is byte-lexicographic, which is
exactly how both Python `bytes` and SQLite BLOBs (memcmp) compare.

Rules
-----
- A zero-length key is reserved: it never names a stored record.
- A value may be empty (`b""`). `None` is *not* a value; it is the absence
  sentinel used by compare-and-swap ("must not exist" / "remove").
- The default bucket is `b""`. `(bucket, key)` is the identity of a record.

Callers may pass `str` for keys, values and buckets; strings are UTF-8 encoded.
Everything returned from the store is plain `bytes`.

Iteration
---------
`IterateOptions` describes a walk over one bucket; `ListItem` is what the walk
produces. With `recurse=False`, keys containing DELIMITER after the prefix are
collapsed into a single `is_prefix` item per sub-namespace.
"""

from dataclasses import dataclass
from typing import Optional, Union

BytesLike = Union[bytes, bytearray, memoryview]
KeyLike = Union[BytesLike, str]

# Maximum number of keys a single lookup (get_all / list) may address.
LOOKUP_LIMIT = 1000

# Separator between path components for non-recursive iteration.
DELIMITER = b"/"

DEFAULT_BUCKET = b""


def as_bytes(x: KeyLike, *, name: str = "key") -> bytes:
    """Normalize bytes-like or str input to bytes."""
    if isinstance(x, bytes):
        return x
    if isinstance(x, (bytearray, memoryview)):
        return bytes(x)
    if isinstance(x, str):
        return x.encode("utf-8")
    raise TypeError(f"{name} must be bytes-like or str, got {type(x).__name__}")


def as_key(x: KeyLike) -> bytes:
    return as_bytes(x, name="key")


def as_value(x: Optional[KeyLike]) -> Optional[bytes]:
    """Normalize a value, keeping None (the absence sentinel) as None."""
    if x is None:
        return None
    return as_bytes(x, name="value")


def is_zero(key: Optional[BytesLike]) -> bool:
    """True for the reserved empty key (and for None)."""
    return key is None or len(key) == 0


def after_prefix(prefix: bytes) -> Optional[bytes]:
    """
    Return the smallest byte string strictly greater than every key that starts
    with `prefix`, or None if no such string exists (empty prefix or all 0xFF).

    Example: b"ab\\x01" -> b"ab\\x02"; b"a/" -> b"a0"; b"\\xff\\xff" -> None
    """
    if not prefix:
        return None
    p = bytearray(prefix)
    for i in range(len(p) - 1, -1, -1):
        if p[i] != 0xFF:
            p[i] += 1
            del p[i + 1 :]
            return bytes(p)
    return None


@dataclass(frozen=True)
class ListItem:
    """One step of an iteration."""

    key: bytes
    value: bytes = b""
    is_prefix: bool = False


@dataclass(frozen=True)
class IterateOptions:
    """
    Options for `iterate`.

    prefix:  only keys starting with this are visited.
    first:   inclusive starting key. Forward walks start at max(first, prefix);
             reverse walks start at first (or the end of the prefix range).
    recurse: when False, collapse `prefix + "x/..."` into one `is_prefix` item.
    reverse: walk in descending key order.
    limit:   stop after this many items (0 = no limit).
    """

    prefix: bytes = b""
    first: bytes = b""
    recurse: bool = False
    reverse: bool = False
    limit: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "prefix", as_bytes(self.prefix, name="prefix"))
        object.__setattr__(self, "first", as_bytes(self.first, name="first"))
        if self.limit < 0:
            raise ValueError("limit must be non-negative")


__all__ = [
    "BytesLike",
    "KeyLike",
    "LOOKUP_LIMIT",
    "DELIMITER",
    "DEFAULT_BUCKET",
    "as_bytes",
    "as_key",
    "as_value",
    "is_zero",
    "after_prefix",
    "ListItem",
    "IterateOptions",
]
