from __future__ import annotations

from typing import Any, Iterable

import pytest

from esmaint.common.errors import DeletionError, StoreConnectionError


class DummyMetrics:
    def __init__(self) -> None:
        self.deleted = 0
        self.runs: list[str] = []
        self.durations: list[tuple[str, float]] = []

    def record_deleted(self, count: int = 1) -> None:
        self.deleted += count

    def record_run(self, status: str) -> None:
        self.runs.append(status)

    def observe_duration(self, operation: str, seconds: float) -> None:
        self.durations.append((operation, seconds))


class FakeStore:
    """In-memory cluster; indices listed in ``broken`` refuse deletion."""

    def __init__(self, indices: Iterable[str], broken: Iterable[str] = ()) -> None:
        self.indices = set(indices)
        self.broken = set(broken)
        self.deleted: list[str] = []
        self.list_calls = 0
        self.connected = False
        self.closed = False

    def connect(self) -> None:
        self.connected = True

    def index_names(self) -> list[str]:
        self.list_calls += 1
        return list(self.indices)

    def delete_index(self, name: str) -> None:
        if name in self.broken:
            raise DeletionError(name, "500 index locked")
        self.indices.discard(name)
        self.deleted.append(name)

    def close(self) -> None:
        self.closed = True


class UnreachableStore(FakeStore):
    def __init__(self) -> None:
        super().__init__([])
        self.attempts = 0

    def connect(self) -> None:
        self.attempts += 1
        raise StoreConnectionError("connection refused")


@pytest.fixture()
def metrics() -> DummyMetrics:
    return DummyMetrics()


@pytest.fixture()
def factory_for() -> Any:
    def _build(store: FakeStore):
        endpoints: list[str] = []

        def factory(endpoint: str) -> FakeStore:
            endpoints.append(endpoint)
            return store

        factory.endpoints = endpoints  # type: ignore[attr-defined]
        return factory

    return _build
