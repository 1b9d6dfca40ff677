"""
Cancellation and deadlines for blocking calls.

Every public operation takes an optional ``ctx``. A Context is cancelled either
explicitly (``cancel()``) or when its deadline passes; cancellation runs the
callbacks registered with ``on_cancel``. The connection pool registers
``sqlite3.Connection.interrupt`` there, so an in-flight statement aborts
promptly instead of running to completion.

Deadlines are checked lazily: reading ``cancelled`` (or ``err``/``check``/
``wait``) past the deadline cancels the context. No thread is started per
context. A leased connection polls ``cancelled`` from its progress handler, so
long statements still stop near the deadline.

Contexts form a tree: cancelling a parent cancels every child derived from it
with ``with_timeout`` / ``with_cancel``. A child stays registered with its
parent until it is cancelled or closed; use it as a context manager when the
parent outlives it.

    with Context.background().with_timeout(2.0) as ctx:
        client.get(b"k", ctx=ctx)
"""

from __future__ import annotations

import threading
import time
from typing import Callable, List, Optional

from .errors import Cancelled, DeadlineExceeded


class Context:
    __slots__ = ("_deadline", "_event", "_lock", "_callbacks", "_reason", "_detach")

    def __init__(self, *, deadline: Optional[float] = None) -> None:
        # deadline is a time.monotonic() timestamp
        self._deadline = deadline
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []
        self._reason: Optional[Cancelled] = None
        self._detach: Optional[Callable[[], None]] = None
        if deadline is not None and deadline <= time.monotonic():
            self._cancel(DeadlineExceeded())

    @classmethod
    def background(cls) -> "Context":
        """A context that is never cancelled unless `cancel()` is called."""
        return cls()

    # --- derivation ---

    def with_timeout(self, seconds: float) -> "Context":
        deadline = time.monotonic() + float(seconds)
        if self._deadline is not None:
            deadline = min(deadline, self._deadline)
        return self._child(deadline)

    def with_cancel(self) -> "Context":
        return self._child(self._deadline)

    def _child(self, deadline: Optional[float]) -> "Context":
        child = Context(deadline=deadline)
        detach = self.on_cancel(lambda: child._cancel(self._reason or Cancelled()))
        with child._lock:
            if not child._event.is_set():
                child._detach = detach
                detach = None
        if detach is not None:
            detach()
        return child

    def close(self) -> None:
        """Detach from the parent without cancelling; idempotent."""
        with self._lock:
            detach, self._detach = self._detach, None
        if detach is not None:
            detach()

    def __enter__(self) -> "Context":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # --- state ---

    @property
    def deadline(self) -> Optional[float]:
        return self._deadline

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self._cancel(DeadlineExceeded())
            return True
        return False

    def remaining(self) -> Optional[float]:
        """Seconds until the deadline (never negative), or None without one."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def err(self) -> Optional[Cancelled]:
        """The cancellation error, or None while the context is live."""
        if not self.cancelled:
            return None
        return self._reason

    def check(self) -> None:
        """Raise the cancellation error if the context is done."""
        err = self.err()
        if err is not None:
            raise err

    def wait(self, seconds: float) -> bool:
        """Sleep up to `seconds`; returns True if cancelled meanwhile."""
        end = time.monotonic() + seconds
        while not self.cancelled:
            left = end - time.monotonic()
            if left <= 0:
                return False
            remaining = self.remaining()
            if remaining is not None:
                left = min(left, remaining)
            self._event.wait(left)
        return True

    # --- cancellation ---

    def cancel(self) -> None:
        self._cancel(Cancelled())

    def on_cancel(self, fn: Callable[[], None]) -> Callable[[], None]:
        """
        Run `fn` when the context is cancelled (immediately if it already is).
        Returns a function that unregisters `fn`.
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(fn)

                def _unregister() -> None:
                    with self._lock:
                        try:
                            self._callbacks.remove(fn)
                        except ValueError:
                            pass

                return _unregister
        fn()
        return lambda: None

    def _cancel(self, reason: Cancelled) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._reason = reason
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
            detach, self._detach = self._detach, None
        if detach is not None:
            detach()
        for fn in callbacks:
            fn()

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else "live"
        return f"Context({state}, remaining={self.remaining()})"


def ensure(ctx: Optional[Context]) -> Context:
    return ctx if ctx is not None else _BACKGROUND


_BACKGROUND = Context.background()


__all__ = ["Context", "ensure"]
