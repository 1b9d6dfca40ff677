from __future__ import annotations

"""
SQLite-backed key-value client
==============================

`Client` implements `pathkv.kv.KeyValueStore` on a single relational table:

    pathdata(bucket BLOB, fullpath BLOB, metadata BLOB, PRIMARY KEY (bucket, fullpath))

- Keys/values are raw bytes; ordering is lexicographic (memcmp).
- Point operations are single autocommit statements.
- `compare_and_swap_path` with an expected value runs read-compare-mutate in
  one serializable transaction, re-executed on serialization conflicts
  (see `pathkv.db.txn`).
- `iterate_path` hands the consumer an `OrderedIterator` and closes it when the
  consumer returns, whether it returned normally or raised.

Threading:
- A client is safe to share between threads; each call leases its own
  connection from the pool. Conflicts are arbitrated by SQLite, not by locks
  in this process.
"""

import sqlite3
from typing import Any, Callable, List, Optional, Sequence, TypeVar

from ..config import DEFAULT_BATCH_SIZE
from ..context import Context, ensure
from ..errors import EmptyKey, KeyNotFound, LimitExceeded, ValueChanged, combine
from ..kv import keys_collector
from ..logging import get_logger
from ..monitor import Monitor, NullMonitor
from ..types import (DEFAULT_BUCKET, LOOKUP_LIMIT, IterateOptions, KeyLike,
                     as_bytes, as_key, as_value, is_zero)
from .errors import translate
from .iterator import OrderedIterator
from .pool import ConnectionPool
from .txn import RetryPolicy, execute_tx

log = get_logger(__name__)

R = TypeVar("R")

_SELECT = "SELECT metadata FROM pathdata WHERE bucket = ? AND fullpath = ?"

_UPSERT = """
    INSERT INTO pathdata (bucket, fullpath, metadata) VALUES (?, ?, ?)
        ON CONFLICT (bucket, fullpath) DO UPDATE SET metadata = excluded.metadata
"""

_INSERT_IF_ABSENT = """
    INSERT INTO pathdata (bucket, fullpath, metadata) VALUES (?, ?, ?)
        ON CONFLICT (bucket, fullpath) DO NOTHING
"""

_DELETE = "DELETE FROM pathdata WHERE bucket = ? AND fullpath = ?"

_DELETE_IF = """
    DELETE FROM pathdata
        WHERE bucket = ? AND fullpath = ? AND metadata = ?
"""

_UPDATE_IF = """
    UPDATE pathdata SET metadata = ?
        WHERE bucket = ? AND fullpath = ? AND metadata = ?
"""


def _get_all_sql(n: int) -> str:
    # Ordinal join: the VALUES list fixes output order regardless of how the
    # matching rows are stored.
    values = ", ".join(f"({i}, ?)" for i in range(n))
    return (
        f"WITH req(ord, k) AS (VALUES {values}) "
        "SELECT pd.metadata FROM req "
        "LEFT JOIN pathdata pd ON pd.bucket = ? AND pd.fullpath = req.k "
        "ORDER BY req.ord"
    )


class Client:
    """
    Entry point into a pathkv store.

    Use `pathkv.db.open_client(uri)` to construct one from a URI, or pass a
    ready `ConnectionPool`.
    """

    def __init__(
        self,
        pool: ConnectionPool,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        retry: RetryPolicy = RetryPolicy(),
        tx_begin: str = "DEFERRED",
        monitor: Optional[Monitor] = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self._pool = pool
        self.batch_size = batch_size
        self.retry = retry
        self.tx_begin = tx_begin
        self.monitor: Monitor = monitor or NullMonitor()

    @property
    def pool(self) -> ConnectionPool:
        return self._pool

    def close(self) -> None:
        """Close the client and its connections."""
        self._pool.close()

    def __enter__(self) -> "Client":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # --- statement helpers ---

    def _exec(self, ctx: Context, sql: str, args: Sequence[Any]) -> int:
        with self._pool.connection(ctx) as conn:
            try:
                return conn.execute(sql, args).rowcount
            except sqlite3.Error as exc:
                raise translate(exc, ctx) from exc

    def _query_one(self, ctx: Context, sql: str, args: Sequence[Any]) -> Optional[tuple]:
        with self._pool.connection(ctx) as conn:
            try:
                cur = conn.execute(sql, args)
                try:
                    return cur.fetchone()
                finally:
                    cur.close()
            except sqlite3.Error as exc:
                raise translate(exc, ctx) from exc

    # --- put ---

    def put(self, key: KeyLike, value: KeyLike, *, ctx: Optional[Context] = None) -> None:
        """Set the value for `key` in the default bucket."""
        self.put_path(DEFAULT_BUCKET, key, value, ctx=ctx)

    def put_path(
        self, bucket: KeyLike, key: KeyLike, value: KeyLike, *, ctx: Optional[Context] = None
    ) -> None:
        """Set the value for `key` in `bucket`, creating or overwriting it."""
        with self.monitor.span("put_path"):
            bucket, key = as_bytes(bucket, name="bucket"), as_key(key)
            if is_zero(key):
                raise EmptyKey(bucket=bucket)
            value = as_bytes(value, name="value")
            self._exec(ensure(ctx), _UPSERT, (bucket, key, value))

    # --- get ---

    def get(self, key: KeyLike, *, ctx: Optional[Context] = None) -> bytes:
        """Look up `key` in the default bucket."""
        return self.get_path(DEFAULT_BUCKET, key, ctx=ctx)

    def get_path(self, bucket: KeyLike, key: KeyLike, *, ctx: Optional[Context] = None) -> bytes:
        """Return the value stored at (`bucket`, `key`); KeyNotFound if absent."""
        with self.monitor.span("get_path"):
            bucket, key = as_bytes(bucket, name="bucket"), as_key(key)
            if is_zero(key):
                raise EmptyKey(bucket=bucket)
            row = self._query_one(ensure(ctx), _SELECT, (bucket, key))
            if row is None:
                raise KeyNotFound(key)
            return bytes(row[0])

    def get_all(
        self, keys: Sequence[KeyLike], *, ctx: Optional[Context] = None
    ) -> List[Optional[bytes]]:
        return self.get_all_path(DEFAULT_BUCKET, keys, ctx=ctx)

    def get_all_path(
        self, bucket: KeyLike, keys: Sequence[KeyLike], *, ctx: Optional[Context] = None
    ) -> List[Optional[bytes]]:
        """
        Look up every key in `keys` (at most LOOKUP_LIMIT).

        The result has one slot per requested key, in request order; slots for
        keys that are not stored are None.
        """
        with self.monitor.span("get_all_path"):
            if len(keys) > LOOKUP_LIMIT:
                raise LimitExceeded(LOOKUP_LIMIT, len(keys))
            bucket = as_bytes(bucket, name="bucket")
            if not keys:
                return []
            args: List[Any] = [as_key(k) for k in keys]
            args.append(bucket)

            ctx = ensure(ctx)
            with self._pool.connection(ctx) as conn:
                try:
                    cur = conn.execute(_get_all_sql(len(keys)), args)
                    try:
                        rows = cur.fetchall()
                    finally:
                        cur.close()
                except sqlite3.Error as exc:
                    raise translate(exc, ctx) from exc
            return [bytes(r[0]) if r[0] is not None else None for r in rows]

    # --- delete ---

    def delete(self, key: KeyLike, *, ctx: Optional[Context] = None) -> None:
        self.delete_path(DEFAULT_BUCKET, key, ctx=ctx)

    def delete_path(self, bucket: KeyLike, key: KeyLike, *, ctx: Optional[Context] = None) -> None:
        """Remove (`bucket`, `key`); KeyNotFound if nothing was stored there."""
        with self.monitor.span("delete_path"):
            bucket, key = as_bytes(bucket, name="bucket"), as_key(key)
            if is_zero(key):
                raise EmptyKey(bucket=bucket)
            if self._exec(ensure(ctx), _DELETE, (bucket, key)) == 0:
                raise KeyNotFound(key)

    # --- list / iterate ---

    def list(
        self, first: KeyLike = b"", limit: int = 0, *, ctx: Optional[Context] = None
    ) -> List[bytes]:
        """Return up to `limit` keys of the default bucket, from `first` on."""
        return self.list_path(DEFAULT_BUCKET, first, limit, ctx=ctx)

    def list_path(
        self,
        bucket: KeyLike,
        first: KeyLike = b"",
        limit: int = 0,
        *,
        ctx: Optional[Context] = None,
    ) -> List[bytes]:
        with self.monitor.span("list_path"):
            opts = IterateOptions(first=as_key(first), recurse=True)
            return self.iterate_path(bucket, opts, keys_collector(limit), ctx=ctx)

    def iterate(
        self,
        opts: IterateOptions,
        fn: Callable[[OrderedIterator], R],
        *,
        ctx: Optional[Context] = None,
    ) -> R:
        return self.iterate_path(DEFAULT_BUCKET, opts, fn, ctx=ctx)

    def iterate_path(
        self,
        bucket: KeyLike,
        opts: IterateOptions,
        fn: Callable[[OrderedIterator], R],
        *,
        ctx: Optional[Context] = None,
    ) -> R:
        """
        Call `fn` with an ordered iterator over `bucket` and return its result.

        The iterator is closed when `fn` returns or raises. If closing fails
        after `fn` raised, both errors are reported together.
        """
        with self.monitor.span("iterate_path"):
            it = OrderedIterator(
                self._pool,
                as_bytes(bucket, name="bucket"),
                opts,
                self.batch_size,
                ctx=ctx,
            )
            try:
                result = fn(it)
            except Exception as exc:
                close_exc = _close(it)
                if close_exc is not None:
                    raise combine(exc, close_exc) from exc
                raise
            it.close()
            return result

    # --- compare and swap ---

    def compare_and_swap(
        self,
        key: KeyLike,
        old_value: Optional[KeyLike],
        new_value: Optional[KeyLike],
        *,
        ctx: Optional[Context] = None,
    ) -> None:
        self.compare_and_swap_path(DEFAULT_BUCKET, key, old_value, new_value, ctx=ctx)

    def compare_and_swap_path(
        self,
        bucket: KeyLike,
        key: KeyLike,
        old_value: Optional[KeyLike],
        new_value: Optional[KeyLike],
        *,
        ctx: Optional[Context] = None,
    ) -> None:
        """
        Atomically replace `old_value` with `new_value` at (`bucket`, `key`).

        None is the absence sentinel:
          old_value=None -> the key must not exist
          new_value=None -> the key is removed

        Raises ValueChanged when the stored state does not match `old_value`,
        KeyNotFound when a value was expected but the key is gone.
        """
        with self.monitor.span("compare_and_swap_path"):
            bucket, key = as_bytes(bucket, name="bucket"), as_key(key)
            if is_zero(key):
                raise EmptyKey(bucket=bucket)
            old, new = as_value(old_value), as_value(new_value)
            ctx = ensure(ctx)

            if old is None and new is None:
                if self._query_one(ctx, _SELECT, (bucket, key)) is not None:
                    raise ValueChanged(key)
                return

            if old is None:
                if self._exec(ctx, _INSERT_IF_ABSENT, (bucket, key, new)) == 0:
                    raise ValueChanged(key)
                return

            def swap(conn: sqlite3.Connection) -> None:
                row = conn.execute(_SELECT, (bucket, key)).fetchone()
                if row is None:
                    # deleted by a concurrent writer
                    raise KeyNotFound(key)
                if bytes(row[0]) != old:
                    raise ValueChanged(key)

                if new is None:
                    cur = conn.execute(_DELETE_IF, (bucket, key, old))
                else:
                    cur = conn.execute(_UPDATE_IF, (new, bucket, key, old))
                if cur.rowcount != 1:
                    raise ValueChanged(key)

            execute_tx(
                self._pool,
                swap,
                ctx=ctx,
                policy=self.retry,
                begin=self.tx_begin,
                monitor=self.monitor,
                op="compare_and_swap_path",
            )


def _close(it: OrderedIterator) -> Optional[BaseException]:
    try:
        it.close()
    except Exception as exc:
        log.warning("iterator_close_failed", exc_info=True)
        return exc
    return None


__all__ = ["Client"]
