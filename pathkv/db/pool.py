from __future__ import annotations

"""
SQLite connection pool
======================

A bounded pool of `sqlite3` connections shared by every caller of a client.

- Connections are opened lazily, up to `size`, in autocommit mode
  (`isolation_level=None`); transactions are started explicitly with BEGIN.
- An in-memory database cannot be shared between connections, so `:memory:`
  pools are pinned to a single connection.
- `connection(ctx)` leases a connection for one statement or one transaction.
  While leased, cancelling `ctx` interrupts the running statement
  (`Connection.interrupt` plus a progress handler).

Pragmas tuned for concurrent writers:
- WAL journal, NORMAL sync, busy_timeout so lock waits happen inside SQLite.

Schema
------
    CREATE TABLE IF NOT EXISTS pathdata (
        bucket   BLOB NOT NULL,
        fullpath BLOB NOT NULL,
        metadata BLOB NOT NULL,
        PRIMARY KEY (bucket, fullpath)
    ) WITHOUT ROWID
"""

import queue
import sqlite3
import threading
from contextlib import contextmanager
from typing import Iterator, List, Optional

from ..context import Context, ensure
from ..errors import TransportError
from ..logging import get_logger
from .errors import translate

log = get_logger(__name__)

MEMORY = ":memory:"

# VM instructions between progress-handler callbacks
_PROGRESS_STEPS = 1000

SCHEMA = """
CREATE TABLE IF NOT EXISTS pathdata (
    bucket   BLOB NOT NULL,
    fullpath BLOB NOT NULL,
    metadata BLOB NOT NULL,
    PRIMARY KEY (bucket, fullpath)
) WITHOUT ROWID
"""


def _apply_pragmas(
    conn: sqlite3.Connection, *, journal_mode: str, synchronous: str, busy_timeout_ms: int
) -> None:
    cur = conn.cursor()
    cur.execute("PRAGMA busy_timeout=%d" % int(busy_timeout_ms))
    cur.execute("PRAGMA journal_mode=%s" % journal_mode)
    cur.execute("PRAGMA synchronous=%s" % synchronous)
    cur.execute("PRAGMA temp_store=MEMORY")
    cur.close()


def migrate(conn: sqlite3.Connection) -> None:
    """Create the pathdata table if it does not exist (idempotent)."""
    conn.execute(SCHEMA)


class ConnectionPool:
    """
    Bounded, thread-safe pool of SQLite connections.

    Parameters
    ----------
    path : str
        SQLite database file path, or ':memory:'.
    size : int
        Maximum number of open connections (forced to 1 for ':memory:').
    """

    def __init__(
        self,
        path: str,
        *,
        size: int = 8,
        busy_timeout_ms: int = 5000,
        journal_mode: str = "WAL",
        synchronous: str = "NORMAL",
        create_schema: bool = True,
    ) -> None:
        if size < 1:
            raise ValueError("pool size must be >= 1")
        self.path = path
        self.size = 1 if path == MEMORY else size
        self._busy_timeout_ms = busy_timeout_ms
        self._journal_mode = "MEMORY" if path == MEMORY else journal_mode
        self._synchronous = synchronous
        self._idle: "queue.LifoQueue[sqlite3.Connection]" = queue.LifoQueue()
        self._all: List[sqlite3.Connection] = []
        self._lock = threading.Lock()
        self._closed = False

        if create_schema:
            with self.connection() as conn:
                try:
                    migrate(conn)
                except sqlite3.Error as exc:
                    raise translate(exc) from exc
            log.debug("schema_ready", path=path)

    # --- connections ---

    def _open(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(
                self.path,
                detect_types=0,
                isolation_level=None,  # autocommit; we explicitly BEGIN for transactions
                check_same_thread=False,  # leased to one thread at a time by the pool
            )
            _apply_pragmas(
                conn,
                journal_mode=self._journal_mode,
                synchronous=self._synchronous,
                busy_timeout_ms=self._busy_timeout_ms,
            )
        except sqlite3.Error as exc:
            raise TransportError("cannot open database", cause=exc, path=self.path) from exc
        log.debug("pool_connection_opened", path=self.path, open=len(self._all) + 1)
        return conn

    def _acquire(self, ctx: Context) -> sqlite3.Connection:
        while True:
            ctx.check()
            try:
                return self._idle.get_nowait()
            except queue.Empty:
                pass
            with self._lock:
                if self._closed:
                    raise TransportError("connection pool is closed", path=self.path)
                if len(self._all) < self.size:
                    conn = self._open()
                    self._all.append(conn)
                    return conn
            wait = 0.05
            remaining = ctx.remaining()
            if remaining is not None:
                wait = min(wait, remaining)
            try:
                return self._idle.get(timeout=max(wait, 0.001))
            except queue.Empty:
                continue

    def _release(self, conn: sqlite3.Connection) -> None:
        if conn.in_transaction:
            # A failed COMMIT/ROLLBACK must not leak an open transaction to the next lease.
            try:
                conn.execute("ROLLBACK")
            except sqlite3.Error:
                self._discard(conn)
                return
        with self._lock:
            if self._closed:
                if conn in self._all:
                    self._all.remove(conn)
                conn.close()
                return
            self._idle.put(conn)

    def _discard(self, conn: sqlite3.Connection) -> None:
        with self._lock:
            if conn in self._all:
                self._all.remove(conn)
        try:
            conn.close()
        except sqlite3.Error:
            log.warning("pool_close_failed", path=self.path, exc_info=True)

    @contextmanager
    def connection(self, ctx: Optional[Context] = None) -> Iterator[sqlite3.Connection]:
        """
        Lease a connection for the duration of the block.

        Cancelling `ctx` while the block runs interrupts the current statement;
        the resulting sqlite3.OperationalError is left for the caller to
        translate (see `pathkv.db.errors.translate`).
        """
        ctx = ensure(ctx)
        conn = self._acquire(ctx)
        conn.set_progress_handler(lambda: 1 if ctx.cancelled else 0, _PROGRESS_STEPS)
        unregister = ctx.on_cancel(conn.interrupt)
        try:
            yield conn
        finally:
            unregister()
            conn.set_progress_handler(None, 0)
            self._release(conn)

    # --- lifecycle ---

    def close(self) -> None:
        """Close every idle connection; leased ones close when released."""
        with self._lock:
            self._closed = True
        idle: List[sqlite3.Connection] = []
        while True:
            try:
                idle.append(self._idle.get_nowait())
            except queue.Empty:
                break
        with self._lock:
            self._all = [c for c in self._all if c not in idle]
        errors: List[sqlite3.Error] = []
        for conn in idle:
            try:
                conn.close()
            except sqlite3.Error as exc:
                errors.append(exc)
        if errors:
            raise TransportError("closing connections failed", cause=errors[0], failed=len(errors))

    @property
    def closed(self) -> bool:
        return self._closed


__all__ = ["ConnectionPool", "MEMORY", "SCHEMA", "migrate"]
