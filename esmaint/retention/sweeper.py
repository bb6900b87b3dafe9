"""Index retention: pick the oldest indices per prefix and delete them."""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Protocol, Sequence

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_delay,
    stop_when_event_set,
    wait_exponential,
)

from esmaint.common.errors import DeletionError, MaintenanceError, StoreConnectionError
from esmaint.common.es_client import IndexStoreClient
from esmaint.common.logger import logger
from esmaint.common.metrics import RUN_FAILED, RUN_OK, MetricsSink


class IndexStore(Protocol):
    def connect(self) -> None: ...

    def index_names(self) -> List[str]: ...

    def delete_index(self, name: str) -> None: ...

    def close(self) -> None: ...


StoreFactory = Callable[[str], IndexStore]


@dataclass(slots=True)
class RunResult:
    """Outcome of a single sweep across every prefix."""

    status: str
    duration: float = 0.0
    deleted: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    error: str | None = None
    interrupted: bool = False

    @property
    def ok(self) -> bool:
        return self.status == RUN_OK

    @property
    def deleted_count(self) -> int:
        return len(self.deleted)


@dataclass(slots=True)
class BackoffPolicy:
    """Exponential backoff around connect + sweep.

    ``initial`` seconds before the first retry, doubling each time, each wait
    capped at ``maximum``, giving up once ``budget`` seconds have elapsed.
    """

    initial: float = 1.0
    maximum: float = 60.0
    budget: float = 15 * 60.0


def select_victims(index_names: Iterable[str], prefix: str, retention: int) -> List[str]:
    """Return the indices to delete for ``prefix``, oldest first.

    Names are ordered by plain string comparison, which tracks age only for
    date-suffixed names. The newest ``retention + 1`` matches are kept: the
    extra one is long-standing behaviour of this tool and is intentionally not
    corrected here.
    """

    if retention < 0:
        raise ValueError("retention must be >= 0")
    matches = sorted(name for name in index_names if name.startswith(prefix))
    cutoff = len(matches) - (retention + 1)
    if cutoff <= 0:
        return []
    return matches[:cutoff]


class RetentionSweeper:
    """Applies the retention policy to each prefix, one deletion at a time."""

    def __init__(
        self,
        client: IndexStore,
        metrics: MetricsSink,
        retention: int,
        delete_delay: float = 0.0,
        sleep: Callable[[float], object] = time.sleep,
        stop: threading.Event | None = None,
    ) -> None:
        if retention < 0:
            raise ValueError("retention must be >= 0")
        self._client = client
        self._metrics = metrics
        self._retention = retention
        self._delete_delay = max(float(delete_delay), 0.0)
        self._sleep = sleep
        self._stop = stop or threading.Event()

    def sweep(self, prefixes: Sequence[str], result: RunResult | None = None) -> RunResult:
        """Delete expired indices for every prefix.

        Progress accumulates into ``result`` so a caller still knows what was
        deleted when an enumeration error propagates and aborts the remaining
        prefixes. A failed deletion is logged and recorded in
        ``RunResult.failed`` without stopping the batch. A stop request ends
        the sweep early and sets ``RunResult.interrupted``.
        """

        if result is None:
            result = RunResult(status=RUN_OK)
        for prefix in prefixes:
            if self._stop.is_set():
                logger.warning("Stop requested; skipping prefix {}", prefix)
                result.interrupted = True
                break
            index_names = self._client.index_names()
            victims = select_victims(index_names, prefix, self._retention)
            logger.debug(
                "Prefix status prefix={} num_victims={} retention={} victims={}",
                prefix,
                len(victims),
                self._retention,
                ",".join(victims),
            )
            self._delete_all(victims, result)
        return result

    def _delete_all(self, victims: List[str], result: RunResult) -> None:
        for position, name in enumerate(victims):
            if self._stop.is_set():
                logger.warning("Stop requested; leaving {} indices for the next run", len(victims) - position)
                result.interrupted = True
                return
            try:
                self._client.delete_index(name)
            except DeletionError as exc:
                logger.error("Failed to delete index {}: {}", name, exc.reason)
                result.failed.append(name)
                continue
            logger.info("Deleted index {}", name)
            self._metrics.record_deleted()
            result.deleted.append(name)
            if self._delete_delay and position < len(victims) - 1:
                self._sleep(self._delete_delay)


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    wait = retry_state.next_action.sleep if retry_state.next_action else 0.0
    logger.warning(
        "Cluster unreachable (attempt {}), retrying in {:.1f}s: {}",
        retry_state.attempt_number,
        wait,
        exc,
    )


def sweep(
    endpoint: str,
    prefixes: Sequence[str],
    retention: int,
    metrics: MetricsSink,
    delete_delay: float = 0.0,
    backoff: BackoffPolicy | None = None,
    client_factory: StoreFactory = IndexStoreClient,
    stop: threading.Event | None = None,
    sleep: Callable[[float], object] | None = None,
) -> RunResult:
    """Connect to ``endpoint`` and run one retention sweep.

    Connection failures are retried with exponential backoff; once the budget
    is spent, or on any other maintenance error, a failed RunResult is
    returned and recorded rather than raised. Deletions made before the
    failure stay in the result. A run cut short by ``stop`` is reported as
    failed with ``interrupted`` set, since victims were left in place.
    """

    if not prefixes:
        raise ValueError("at least one prefix is required")
    backoff = backoff or BackoffPolicy()
    stop = stop or threading.Event()
    if sleep is None:
        sleep = stop.wait
    started = time.monotonic()
    result = RunResult(status=RUN_OK)

    def attempt() -> RunResult:
        client = client_factory(endpoint)
        try:
            client.connect()
            sweeper = RetentionSweeper(client, metrics, retention, delete_delay, sleep, stop)
            return sweeper.sweep(prefixes, result)
        finally:
            client.close()

    retrying = Retrying(
        retry=retry_if_exception_type(StoreConnectionError),
        wait=wait_exponential(multiplier=backoff.initial, min=backoff.initial, max=backoff.maximum),
        stop=stop_after_delay(backoff.budget) | stop_when_event_set(stop),
        sleep=sleep,
        before_sleep=_log_retry,
        reraise=True,
    )
    try:
        retrying(attempt)
    except MaintenanceError as exc:
        result.status = RUN_FAILED
        result.error = str(exc)
        result.duration = time.monotonic() - started
        metrics.record_run(RUN_FAILED)
        logger.error(
            "Failed to delete indices after deleting {}: {}", result.deleted_count, exc
        )
        return result

    result.duration = time.monotonic() - started
    if result.interrupted:
        result.status = RUN_FAILED
        result.error = "stopped before completion"
        metrics.record_run(RUN_FAILED)
        logger.warning(
            "Sweep interrupted deleted={} failed={} duration={:.2f}s",
            result.deleted_count,
            len(result.failed),
            result.duration,
        )
        return result

    metrics.record_run(RUN_OK)
    metrics.observe_duration("delete", result.duration)
    logger.info(
        "Sweep finished deleted={} failed={} duration={:.2f}s",
        result.deleted_count,
        len(result.failed),
        result.duration,
    )
    return result


__all__ = [
    "BackoffPolicy",
    "IndexStore",
    "RetentionSweeper",
    "RunResult",
    "select_victims",
    "sweep",
]
