from __future__ import annotations

import random
import threading

from esmaint.common.config import Settings
from esmaint.common.es_client import IndexStoreClient
from esmaint.common.logger import logger
from esmaint.common.metrics import RUN_FAILED, MetricsSink
from esmaint.retention.sweeper import BackoffPolicy, RunResult, StoreFactory, sweep


class SweepScheduler:
    """Runs a retention sweep every ``interval_hours`` until stopped.

    With an interval below one second a single sweep is performed and
    ``run`` returns, which lets cron-style schedulers invoke the daemon.
    """

    def __init__(
        self,
        settings: Settings,
        metrics: MetricsSink,
        client_factory: StoreFactory = IndexStoreClient,
        backoff: BackoffPolicy | None = None,
        stop: threading.Event | None = None,
    ) -> None:
        self._settings = settings
        self._metrics = metrics
        self._client_factory = client_factory
        self._backoff = backoff or BackoffPolicy()
        self._stop = stop or threading.Event()
        self.runs = 0

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        self._stop.set()

    def run(self) -> int:
        """Sweep until stopped; returns the process exit code."""

        jitter = random.uniform(0, self._settings.startup_jitter) if self._settings.startup_jitter else 0.0
        if jitter:
            logger.info("Delaying first run by {:.1f}s", jitter)
            if self._stop.wait(jitter):
                return 0

        while not self._stop.is_set():
            self.run_once()
            if self._settings.run_once:
                break
            logger.info("Waiting until next run interval={}h", self._settings.interval_hours)
            self._stop.wait(self._settings.interval_seconds)
        return 0

    def run_once(self) -> RunResult:
        self.runs += 1
        try:
            return sweep(
                self._settings.host,
                self._settings.prefixes,
                self._settings.retention,
                self._metrics,
                delete_delay=self._settings.delete_delay,
                backoff=self._backoff,
                client_factory=self._client_factory,
                stop=self._stop,
            )
        except Exception as exc:
            logger.exception("Unexpected error during sweep")
            self._metrics.record_run(RUN_FAILED)
            return RunResult(status=RUN_FAILED, error=str(exc))


__all__ = ["SweepScheduler"]
