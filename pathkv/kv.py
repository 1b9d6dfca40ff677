from __future__ import annotations

"""
KV interface
============

The backend-agnostic key-value contract implemented by `pathkv.db.Client`
(and by anything else that wants to stand in for it, e.g. test doubles).

Every method takes an optional keyword `ctx` (see `pathkv.context`).
The `*_path` methods address an explicit bucket; the short forms use the
default bucket (`b""`).

Portable helpers built atop the interface live here too and contain no I/O of
their own.
"""

from typing import (Any, Callable, List, Optional, Protocol, Sequence, TypeVar,
                    runtime_checkable)

from .context import Context
from .types import (LOOKUP_LIMIT, IterateOptions, KeyLike, ListItem, as_key)

R = TypeVar("R")


@runtime_checkable
class Iterator(Protocol):
    def __iter__(self) -> "Iterator": ...
    def __next__(self) -> ListItem: ...


@runtime_checkable
class KeyValueStore(Protocol):
    def put(self, key: KeyLike, value: KeyLike, *, ctx: Optional[Context] = None) -> None: ...
    def get(self, key: KeyLike, *, ctx: Optional[Context] = None) -> bytes: ...
    def get_all(
        self, keys: Sequence[KeyLike], *, ctx: Optional[Context] = None
    ) -> List[Optional[bytes]]: ...
    def delete(self, key: KeyLike, *, ctx: Optional[Context] = None) -> None: ...
    def list(
        self, first: KeyLike = b"", limit: int = 0, *, ctx: Optional[Context] = None
    ) -> List[bytes]: ...
    def iterate(
        self, opts: IterateOptions, fn: Callable[[Any], R], *, ctx: Optional[Context] = None
    ) -> R: ...
    def compare_and_swap(
        self,
        key: KeyLike,
        old_value: Optional[KeyLike],
        new_value: Optional[KeyLike],
        *,
        ctx: Optional[Context] = None,
    ) -> None: ...
    def close(self) -> None: ...


def clamp_limit(limit: int) -> int:
    """Non-positive or oversized limits mean LOOKUP_LIMIT."""
    if limit <= 0 or limit > LOOKUP_LIMIT:
        return LOOKUP_LIMIT
    return limit


def keys_collector(limit: int) -> Callable[[Iterator], List[bytes]]:
    """An iterate consumer gathering at most `limit` keys."""
    limit = clamp_limit(limit)

    def collect(it: Iterator) -> List[bytes]:
        return [bytes(item.key) for item in collect_items(it, limit)]

    return collect


def list_keys(
    store: KeyValueStore,
    first: KeyLike = b"",
    limit: int = 0,
    *,
    ctx: Optional[Context] = None,
) -> List[bytes]:
    """
    Return up to `limit` keys in ascending order, starting at `first`
    (inclusive), by walking `store.iterate` recursively.
    """
    opts = IterateOptions(first=as_key(first), recurse=True)
    return store.iterate(opts, keys_collector(limit), ctx=ctx)


def collect_items(it: Iterator, limit: int = 0) -> List[ListItem]:
    """Drain an iterator into a list (at most `limit` items when limit > 0)."""
    out: List[ListItem] = []
    for item in it:
        out.append(item)
        if limit and len(out) >= limit:
            break
    return out


__all__ = [
    "Iterator",
    "KeyValueStore",
    "clamp_limit",
    "keys_collector",
    "list_keys",
    "collect_items",
]
