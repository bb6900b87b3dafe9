"""Logging utilities centralised for es-maint-index services."""
from __future__ import annotations

import os
import sys

from loguru import logger

SERVICE_NAME = "es-maint-index"
SERVICE_VERSION = "0.3.0"

JSON_ENVIRONMENTS = frozenset({"prod", "stage"})


def configure_logging(service_name: str, level: str = "INFO", json_logs: bool = False) -> None:
    """Configure loguru logging for a service.

    Development runs get a single readable line per record on stdout. With
    ``json_logs`` every record is serialised as one JSON object, which is what
    the log shippers in prod and stage expect.
    """

    logger.remove()
    logger.configure(extra={"name": service_name, "version": SERVICE_VERSION})
    if json_logs:
        logger.add(sys.stdout, level=level.upper(), serialize=True, backtrace=False, diagnose=False)
        return
    logger.add(
        sink=lambda msg: print(msg, end=""),
        level=level.upper(),
        format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
        "{extra[name]} | {name}:{line} | {message}",
        colorize=False,
        backtrace=False,
        diagnose=False,
    )


def get_log_level_from_env(default: str = "INFO") -> str:
    return os.getenv("ESMAINT_LOG_LEVEL", default)


def wants_json_logs(environment: str | None) -> bool:
    return (environment or "").lower() in JSON_ENVIRONMENTS


__all__ = [
    "logger",
    "configure_logging",
    "get_log_level_from_env",
    "wants_json_logs",
    "SERVICE_NAME",
    "SERVICE_VERSION",
]
