"""Entry point for the index retention daemon."""

from __future__ import annotations

import argparse
import signal
import sys
from typing import Any, Dict, List

from esmaint.common.config import load_settings
from esmaint.common.errors import ConfigurationError
from esmaint.common.es_client import IndexStoreClient
from esmaint.common.logger import (
    SERVICE_NAME,
    SERVICE_VERSION,
    configure_logging,
    get_log_level_from_env,
    logger,
    wants_json_logs,
)
from esmaint.common.metrics import PrometheusMetrics
from esmaint.health.server import HealthServer
from esmaint.retention.scheduler import SweepScheduler


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Delete old Elasticsearch indices on a schedule")
    parser.add_argument("--config", default=None, help="Optional YAML configuration file")
    parser.add_argument("--host", default=None, help="Cluster host:port or URL (env HOST)")
    parser.add_argument("--keep", dest="retention", type=int, default=None, help="Indices to keep per prefix (env KEEP)")
    parser.add_argument("--prefix", dest="prefixes", default=None, help="Comma-separated index prefixes (env PREFIX)")
    parser.add_argument(
        "--interval",
        dest="interval_hours",
        type=int,
        default=None,
        help="Hours between runs; 0 runs once and exits (env INTERVAL)",
    )
    parser.add_argument("--listen", default=None, help="Health/metrics listen address (env LISTEN)")
    parser.add_argument("--delete-delay", dest="delete_delay", type=float, default=None)
    parser.add_argument("--startup-jitter", dest="startup_jitter", type=float, default=None)
    parser.add_argument("--log-level", dest="log_level", default=None)
    return parser


def main(argv: List[str] | None = None) -> int:
    """Load settings, start the health server and run the sweep loop."""

    args = build_parser().parse_args(argv)
    overrides: Dict[str, Any] = {key: value for key, value in vars(args).items() if key != "config"}

    configure_logging(SERVICE_NAME, get_log_level_from_env("INFO"))
    logger.info("Starting version={}", SERVICE_VERSION)
    try:
        settings = load_settings(args.config, overrides)
    except ConfigurationError as exc:
        logger.error("Failed to parse config: {}", exc)
        return 1
    configure_logging(SERVICE_NAME, settings.log_level, json_logs=wants_json_logs(settings.environment))

    metrics = PrometheusMetrics()
    try:
        HealthServer(metrics, settings.listen).start()
    except ValueError as exc:
        logger.error("Failed to parse config: {}", exc)
        return 1

    scheduler = SweepScheduler(settings, metrics, client_factory=IndexStoreClient)

    def _handle_signal(signum: int, frame: Any) -> None:
        logger.info("Received signal {}; stopping", signum)
        scheduler.stop()

    signal.signal(signal.SIGTERM, _handle_signal)
    signal.signal(signal.SIGINT, _handle_signal)

    return scheduler.run()


if __name__ == "__main__":
    sys.exit(main())
