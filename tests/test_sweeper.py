from __future__ import annotations

import threading
import time

import pytest
from conftest import DummyMetrics, FakeStore, UnreachableStore

from esmaint.common.errors import EnumerationError, StoreConnectionError
from esmaint.retention.sweeper import BackoffPolicy, RetentionSweeper, select_victims, sweep


@pytest.mark.parametrize(
    "count,retention,expected",
    [
        (0, 0, 0),
        (1, 0, 0),
        (2, 0, 1),
        (4, 1, 2),
        (3, 5, 0),
        (7, 5, 1),
        (10, 3, 6),
    ],
)
def test_victim_count_keeps_retention_plus_one(count: int, retention: int, expected: int) -> None:
    names = [f"logs-2024.01.{day:02d}" for day in range(1, count + 1)]
    victims = select_victims(names, "logs-", retention)
    assert len(victims) == expected
    assert victims == sorted(names)[:expected]


def test_victims_are_oldest_first_regardless_of_listing_order() -> None:
    names = ["a-3", "a-1", "a-4", "a-2"]
    assert select_victims(names, "a-", 1) == ["a-1", "a-2"]


def test_prefix_match_is_literal_and_case_sensitive() -> None:
    names = ["Logs-1", "logs-1", "logs-2", "logs-3", "xlogs-0", "logs"]
    assert select_victims(names, "logs-", 0) == ["logs-1", "logs-2"]


def test_negative_retention_rejected() -> None:
    with pytest.raises(ValueError):
        select_victims(["a-1"], "a-", -1)


def test_sweep_deletes_in_ascending_order(metrics: DummyMetrics) -> None:
    store = FakeStore(["a-4", "a-2", "a-1", "a-3"])
    result = RetentionSweeper(store, metrics, retention=1).sweep(["a-"])

    assert store.deleted == ["a-1", "a-2"]
    assert store.indices == {"a-3", "a-4"}
    assert result.deleted == ["a-1", "a-2"]
    assert result.ok
    assert metrics.deleted == 2


def test_no_deletions_when_within_retention(metrics: DummyMetrics) -> None:
    store = FakeStore(["a-1", "a-2", "a-3"])
    result = RetentionSweeper(store, metrics, retention=5).sweep(["a-"])
    assert store.deleted == []
    assert result.deleted_count == 0
    assert metrics.deleted == 0


def test_deletion_failure_does_not_stop_batch(metrics: DummyMetrics) -> None:
    store = FakeStore([f"a-{i}" for i in range(1, 7)], broken=["a-2"])
    result = RetentionSweeper(store, metrics, retention=1).sweep(["a-"])

    assert store.deleted == ["a-1", "a-3", "a-4"]
    assert result.failed == ["a-2"]
    assert result.ok
    assert metrics.deleted == 3


def test_prefixes_are_independent(metrics: DummyMetrics) -> None:
    logstash = [f"logstash-2024.01.{d:02d}" for d in range(1, 5)]
    metric_indices = [f"metrics-2024.01.{d:02d}" for d in range(1, 31)]
    store = FakeStore(logstash + metric_indices)

    RetentionSweeper(store, metrics, retention=1).sweep(["logstash-", "metrics-"])

    deleted_logstash = [name for name in store.deleted if name.startswith("logstash-")]
    deleted_metrics = [name for name in store.deleted if name.startswith("metrics-")]
    assert deleted_logstash == logstash[:2]
    assert deleted_metrics == metric_indices[:28]
    assert store.list_calls == 2


def test_inter_delete_pacing_skips_last(metrics: DummyMetrics) -> None:
    waits: list[float] = []
    store = FakeStore(["a-1", "a-2", "a-3", "a-4", "a-5"])
    RetentionSweeper(store, metrics, retention=0, delete_delay=30, sleep=waits.append).sweep(["a-"])
    assert store.deleted == ["a-1", "a-2", "a-3", "a-4"]
    assert waits == [30.0, 30.0, 30.0]


class FlakyListingStore(FakeStore):
    def index_names(self) -> list[str]:
        self.list_calls += 1
        if self.list_calls > 1:
            raise EnumerationError("Failed to list indices: 500")
        return list(self.indices)


def test_enumeration_failure_aborts_remaining_prefixes(metrics: DummyMetrics) -> None:
    store = FlakyListingStore(["a-1", "a-2", "a-3", "b-1", "b-2", "b-3"])
    with pytest.raises(EnumerationError):
        RetentionSweeper(store, metrics, retention=0).sweep(["a-", "b-"])
    assert store.deleted == ["a-1", "a-2"]


def test_sweep_reports_ok_run(metrics: DummyMetrics, factory_for) -> None:
    store = FakeStore(["a-1", "a-2", "a-3", "a-4"])
    factory = factory_for(store)

    result = sweep("es:9200", ["a-"], 1, metrics, client_factory=factory)

    assert result.ok
    assert result.deleted == ["a-1", "a-2"]
    assert factory.endpoints == ["es:9200"]
    assert store.connected and store.closed
    assert metrics.runs == ["ok"]
    assert [op for op, _ in metrics.durations] == ["delete"]


def test_sweep_enumeration_error_is_failed_run_without_retry(metrics: DummyMetrics, factory_for) -> None:
    store = FlakyListingStore(["a-1", "a-2", "a-3", "b-1"])
    store.list_calls = 1
    result = sweep("es:9200", ["a-", "b-"], 0, metrics, client_factory=factory_for(store))

    assert result.status == "failed"
    assert "Failed to list indices" in (result.error or "")
    assert store.deleted == []
    assert metrics.runs == ["failed"]
    assert metrics.durations == []


def test_connection_failures_back_off_then_fail(metrics: DummyMetrics, factory_for) -> None:
    store = UnreachableStore()
    waits: list[float] = []

    def recording_sleep(seconds: float) -> None:
        waits.append(seconds)
        time.sleep(seconds)

    backoff = BackoffPolicy(initial=0.01, maximum=0.04, budget=0.3)
    result = sweep(
        "es:9200",
        ["a-"],
        1,
        metrics,
        backoff=backoff,
        client_factory=factory_for(store),
        sleep=recording_sleep,
    )

    assert result.status == "failed"
    assert "connection refused" in (result.error or "")
    assert store.attempts >= 3
    assert len(waits) == store.attempts - 1
    assert waits == sorted(waits)
    assert waits[0] == pytest.approx(0.01)
    assert max(waits) <= 0.04
    assert metrics.runs == ["failed"]


def test_connection_recovers_within_budget(metrics: DummyMetrics, factory_for) -> None:
    class RecoveringStore(FakeStore):
        attempts = 0

        def connect(self) -> None:
            self.attempts += 1
            if self.attempts < 3:
                raise StoreConnectionError("connection refused")

    store = RecoveringStore(["a-1", "a-2", "a-3"])
    result = sweep(
        "es:9200",
        ["a-"],
        0,
        metrics,
        backoff=BackoffPolicy(initial=0.001, maximum=0.002, budget=5),
        client_factory=factory_for(store),
        sleep=lambda seconds: None,
    )
    assert result.ok
    assert store.attempts == 3
    assert store.deleted == ["a-1", "a-2"]
    assert metrics.runs == ["ok"]


def test_sweep_requires_prefix(metrics: DummyMetrics) -> None:
    with pytest.raises(ValueError):
        sweep("es:9200", [], 1, metrics)


def test_failed_run_keeps_deletions_made_before_enumeration_error(metrics: DummyMetrics, factory_for) -> None:
    store = FlakyListingStore(["a-1", "a-2", "a-3", "b-1", "b-2", "b-3"])

    result = sweep("es:9200", ["a-", "b-"], 0, metrics, client_factory=factory_for(store))

    assert result.status == "failed"
    assert result.deleted == ["a-1", "a-2"]
    assert result.deleted_count == metrics.deleted == 2
    assert metrics.runs == ["failed"]


class StoppingStore(FakeStore):
    """Requests a stop once ``limit`` indices have been deleted."""

    def __init__(self, indices, stop: threading.Event, limit: int) -> None:
        super().__init__(indices)
        self._stop = stop
        self._limit = limit

    def delete_index(self, name: str) -> None:
        super().delete_index(name)
        if len(self.deleted) >= self._limit:
            self._stop.set()


def test_stop_between_deletions_reports_interrupted_run(metrics: DummyMetrics, factory_for) -> None:
    stop = threading.Event()
    store = StoppingStore(["a-1", "a-2", "a-3", "a-4", "b-1", "b-2", "b-3"], stop, limit=1)

    result = sweep("es:9200", ["a-", "b-"], 0, metrics, client_factory=factory_for(store), stop=stop)

    assert store.deleted == ["a-1"]
    assert store.list_calls == 1
    assert result.interrupted
    assert result.status == "failed"
    assert result.deleted == ["a-1"]
    assert metrics.runs == ["failed"]
    assert metrics.durations == []


def test_stop_between_prefixes_reports_interrupted_run(metrics: DummyMetrics) -> None:
    stop = threading.Event()
    store = StoppingStore(["a-1", "a-2", "b-1", "b-2"], stop, limit=1)

    result = RetentionSweeper(store, metrics, retention=0, stop=stop).sweep(["a-", "b-"])

    assert store.deleted == ["a-1"]
    assert store.list_calls == 1
    assert result.interrupted
