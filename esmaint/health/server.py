"""Health and metrics HTTP endpoints served beside the sweep loop."""
from __future__ import annotations

import threading
from typing import Tuple

import uvicorn
from fastapi import FastAPI
from fastapi.responses import PlainTextResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST

from esmaint.common.logger import logger
from esmaint.common.metrics import PrometheusMetrics


def parse_listen(listen: str) -> Tuple[str, int]:
    """Split ``host:port`` (or ``:port``) into its parts."""

    host, sep, port = listen.strip().rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"listen address must look like host:port, got {listen!r}")
    return host or "0.0.0.0", int(port)


class HealthServer:
    """HTTP runtime exposing /healthz and /metrics for the sweeper."""

    def __init__(self, metrics: PrometheusMetrics, listen: str = ":8080") -> None:
        self._metrics = metrics
        self._listen = listen
        self._host, self._port = parse_listen(listen)
        self._thread: threading.Thread | None = None
        self.app = FastAPI(title="es-maint-index", docs_url=None, redoc_url=None, openapi_url=None)
        self._setup_routes()

    # FastAPI wiring ------------------------------------------------------------

    def _setup_routes(self) -> None:
        app = self.app

        @app.get("/healthz", response_class=PlainTextResponse)
        async def healthz() -> str:
            return "OK"

        @app.get("/metrics")
        async def metrics() -> Response:
            return Response(content=self._metrics.export(), media_type=CONTENT_TYPE_LATEST)

    # Lifecycle -----------------------------------------------------------------

    def start(self) -> threading.Thread:
        """Serve on a daemon thread; the thread lives as long as the process."""

        self._thread = threading.Thread(target=self._serve, name="health-server", daemon=True)
        self._thread.start()
        return self._thread

    def _serve(self) -> None:
        logger.info("Listening listen={}", self._listen)
        config = uvicorn.Config(self.app, host=self._host, port=self._port, log_level="warning")
        server = uvicorn.Server(config)
        try:
            server.run()
        except (OSError, SystemExit) as exc:
            logger.error("Failed to listen listen={} err={}", self._listen, exc)


__all__ = ["HealthServer", "parse_listen"]
