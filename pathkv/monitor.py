from __future__ import annotations

"""
Operation monitoring for pathkv.

A `Monitor` is handed to the client at construction time; there is no
module-level registry. Every public operation runs inside ``monitor.span(op)``
and the CAS transaction combinator reports each conflict retry through
``monitor.retry(op)``.

- `NullMonitor`       : default, records nothing.
- `PrometheusMonitor` : prometheus_client metrics on a private registry
                        (pass `registry=` to share one with an exporter).

Metrics
-------
    pathkv_op_duration_seconds{op}        histogram
    pathkv_op_errors_total{op,code}       counter
    pathkv_tx_retries_total{op}           counter
"""

import time
from contextlib import contextmanager
from typing import ContextManager, Iterator, Optional, Protocol, runtime_checkable

from prometheus_client import CollectorRegistry, Counter, Histogram

from .errors import KVError


@runtime_checkable
class Monitor(Protocol):
    def span(self, op: str) -> ContextManager[None]: ...
    def retry(self, op: str) -> None: ...


class NullMonitor:
    @contextmanager
    def span(self, op: str) -> Iterator[None]:
        yield

    def retry(self, op: str) -> None:
        return None


def _error_code(exc: BaseException) -> str:
    if isinstance(exc, KVError):
        code = exc.code
        return str(getattr(code, "value", code))
    return type(exc).__name__


class PrometheusMonitor:
    """
    Holder for registry and metric objects.
    """

    def __init__(
        self,
        registry: Optional[CollectorRegistry] = None,
        *,
        namespace: str = "pathkv",
    ) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()
        self.duration = Histogram(
            "op_duration_seconds",
            "Duration of key-value operations",
            ["op"],
            namespace=namespace,
            registry=self.registry,
            buckets=(0.0005, 0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
        )
        self.errors = Counter(
            "op_errors_total",
            "Key-value operations that raised, by error code",
            ["op", "code"],
            namespace=namespace,
            registry=self.registry,
        )
        self.retries = Counter(
            "tx_retries_total",
            "Transactions re-executed after a serialization conflict",
            ["op"],
            namespace=namespace,
            registry=self.registry,
        )

    @contextmanager
    def span(self, op: str) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        except BaseException as exc:
            self.errors.labels(op=op, code=_error_code(exc)).inc()
            raise
        finally:
            self.duration.labels(op=op).observe(time.perf_counter() - start)

    def retry(self, op: str) -> None:
        self.retries.labels(op=op).inc()


__all__ = ["Monitor", "NullMonitor", "PrometheusMonitor"]
