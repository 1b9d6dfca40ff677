from __future__ import annotations

"""
Ordered batch iterator over one bucket.

`OrderedIterator` walks the keys of a bucket in byte order (ascending, or
descending with `reverse=True`), restricted to `opts.prefix`, starting at
`opts.first` (inclusive). Rows are fetched `batch_size` at a time; each new
batch starts strictly after the last key handed out, so keys are never repeated
or skipped however the batches fall.

A connection is leased only while a batch is being fetched, never while the
consumer holds an item, so the consumer may call back into the store.

Non-recursive walks (`recurse=False`) collapse every key that has DELIMITER
after the prefix into a single `is_prefix` item (`prefix + component + "/"`)
and move the bound past that whole sub-namespace.
"""

import sqlite3
from collections import deque
from typing import Deque, Iterator, List, Optional, Tuple

from ..context import Context, ensure
from ..types import DELIMITER, IterateOptions, ListItem, after_prefix
from .errors import translate
from .pool import ConnectionPool

Row = Tuple[bytes, bytes]


class OrderedIterator(Iterator[ListItem]):
    """
    Forward-only, single-pass cursor. Use as a Python iterator; `close()`
    releases buffered rows and is safe to call more than once.
    """

    def __init__(
        self,
        pool: ConnectionPool,
        bucket: bytes,
        opts: IterateOptions,
        batch_size: int,
        *,
        ctx: Optional[Context] = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self._pool = pool
        self._bucket = bucket
        self._opts = opts
        self._batch_size = batch_size
        self._ctx = ensure(ctx)

        self._buf: Deque[Row] = deque()
        self._exhausted = False
        self._closed = False
        self._emitted = 0

        prefix = opts.prefix
        self._prefix_hi = after_prefix(prefix)

        # _bound is the next key position: a lower bound going forward, an
        # upper bound in reverse; None means unbounded.
        self._bound: Optional[bytes]
        self._inclusive = True
        if not opts.reverse:
            self._bound = max(opts.first, prefix)
        elif not opts.first:
            self._bound, self._inclusive = self._prefix_hi, False
        elif opts.first < prefix:
            self._bound = None
            self._exhausted = True
        elif self._prefix_hi is not None and opts.first >= self._prefix_hi:
            self._bound, self._inclusive = self._prefix_hi, False
        else:
            self._bound = opts.first

    # --- query building ---

    def _query(self) -> Tuple[str, List[object]]:
        prefix = self._opts.prefix
        where = ["bucket = ?"]
        args: List[object] = [self._bucket]

        if not self._opts.reverse:
            where.append("fullpath >= ?" if self._inclusive else "fullpath > ?")
            args.append(self._bound)
            if self._prefix_hi is not None:
                where.append("fullpath < ?")
                args.append(self._prefix_hi)
            elif prefix:
                where.append("substr(fullpath, 1, ?) = ?")
                args.extend([len(prefix), prefix])
            order = "ASC"
        else:
            if self._bound is not None:
                where.append("fullpath <= ?" if self._inclusive else "fullpath < ?")
                args.append(self._bound)
            if prefix:
                where.append("fullpath >= ?")
                args.append(prefix)
            order = "DESC"

        sql = (
            "SELECT fullpath, metadata FROM pathdata "
            f"WHERE {' AND '.join(where)} "
            f"ORDER BY fullpath {order} LIMIT ?"
        )
        args.append(self._batch_size)
        return sql, args

    def _fetch(self) -> None:
        sql, args = self._query()
        with self._pool.connection(self._ctx) as conn:
            try:
                cur = conn.execute(sql, args)
                try:
                    rows = cur.fetchall()
                finally:
                    cur.close()
            except sqlite3.Error as exc:
                raise translate(exc, self._ctx) from exc
        self._buf.extend((bytes(k), bytes(v)) for k, v in rows)
        if len(rows) < self._batch_size:
            self._exhausted = True

    # --- cursor state ---

    def _within(self, key: bytes) -> bool:
        if self._bound is None:
            return True
        if not self._opts.reverse:
            return key > self._bound or (self._inclusive and key == self._bound)
        return key < self._bound or (self._inclusive and key == self._bound)

    def _item(self, key: bytes, value: bytes) -> ListItem:
        if not self._opts.recurse:
            plen = len(self._opts.prefix)
            idx = key.find(DELIMITER, plen)
            if idx >= 0:
                return ListItem(key=key[: idx + 1], value=b"", is_prefix=True)
        return ListItem(key=key, value=value)

    def _advance(self, item: ListItem) -> None:
        if item.is_prefix and not self._opts.reverse:
            # skip everything under the collapsed prefix
            hi = after_prefix(item.key)
            if hi is None:
                self._exhausted = True
                self._buf.clear()
                return
            self._bound, self._inclusive = hi, True
        else:
            self._bound, self._inclusive = item.key, False

    # --- iterator protocol ---

    def __iter__(self) -> "OrderedIterator":
        return self

    def __next__(self) -> ListItem:
        if self._closed:
            raise StopIteration
        if self._opts.limit and self._emitted >= self._opts.limit:
            raise StopIteration
        while True:
            if not self._buf:
                if self._exhausted:
                    raise StopIteration
                self._fetch()
                if not self._buf:
                    raise StopIteration
            key, value = self._buf.popleft()
            if not self._within(key):
                continue
            item = self._item(key, value)
            self._advance(item)
            self._emitted += 1
            return item

    def close(self) -> None:
        self._closed = True
        self._buf.clear()

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> "OrderedIterator":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = ["OrderedIterator"]
