"""Prometheus metrics for index maintenance runs."""
from __future__ import annotations

from typing import Protocol

from prometheus_client import CollectorRegistry, Counter, Summary, generate_latest

RUN_OK = "ok"
RUN_FAILED = "failed"


class MetricsSink(Protocol):
    """Outcome reporting capability handed to the sweeper.

    Implementations must tolerate concurrent calls: the health server reads
    while the sweep loop writes.
    """

    def record_deleted(self, count: int = 1) -> None: ...

    def record_run(self, status: str) -> None: ...

    def observe_duration(self, operation: str, seconds: float) -> None: ...


class PrometheusMetrics:
    """MetricsSink backed by prometheus_client collectors on a private registry."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry or CollectorRegistry()
        self._runs = Counter(
            "elasticsearch_index_maint_runs",
            "Number of elasticsearch index maintenance runs",
            ["status"],
            registry=self.registry,
        )
        self._deleted = Counter(
            "elasticsearch_indices_deleted",
            "Number of elasticsearch indices deleted",
            registry=self.registry,
        )
        self._duration = Summary(
            "elasticsearch_index_maint_duration",
            "Duration of elasticsearch index maintenance runs in seconds",
            ["operation"],
            registry=self.registry,
        )

    def record_deleted(self, count: int = 1) -> None:
        self._deleted.inc(count)

    def record_run(self, status: str) -> None:
        self._runs.labels(status=status).inc()

    def observe_duration(self, operation: str, seconds: float) -> None:
        self._duration.labels(operation=operation).observe(seconds)

    def export(self) -> bytes:
        """Render the registry in the Prometheus text exposition format."""

        return generate_latest(self.registry)


__all__ = ["MetricsSink", "PrometheusMetrics", "RUN_OK", "RUN_FAILED"]
