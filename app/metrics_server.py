"""
Dedicated metrics server for Prometheus metrics endpoint.

Serves only the /metrics endpoint, on its own port, so the render API and
the metrics can be exposed to different networks.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from typing import Annotated

import uvicorn
from fastapi import Depends, FastAPI, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from app.chromium_manager import ChromiumManager, get_chromium_manager
from app.content_cache import ContentCache, get_content_cache
from app.prometheus_metrics import update_gauges

logger = logging.getLogger(__name__)

# Port constants
MIN_VALID_PORT = 1024
MAX_VALID_PORT = 65535
DEFAULT_METRICS_PORT = 9180
STARTUP_TIMEOUT_SECONDS = 10.0

# Minimal FastAPI app for metrics only
metrics_app = FastAPI(
    title="Render Gateway Metrics",
    version="1.0.0",
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
)


@metrics_app.get("/metrics")
async def metrics(
    chromium_manager: Annotated[ChromiumManager, Depends(get_chromium_manager)],
    content_cache: Annotated[ContentCache, Depends(get_content_cache)],
) -> Response:
    """
    Expose Prometheus metrics endpoint.

    Returns render counters and durations per render type, two-pass PDF merge
    counters, browser health, queue and content cache gauges in Prometheus text
    format. Gauges are refreshed on every scrape.
    """
    update_gauges(chromium_manager, content_cache)
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


def get_metrics_port() -> int:
    """
    Get metrics server port from environment variable.

    Returns:
        Port number from METRICS_PORT env var (default: 9180).
        Falls back to default if invalid value provided.
    """
    port_str = os.environ.get("METRICS_PORT", str(DEFAULT_METRICS_PORT))
    try:
        port = int(port_str)
        if not (MIN_VALID_PORT <= port <= MAX_VALID_PORT):
            logger.warning("METRICS_PORT must be between %d and %d, using default: %d", MIN_VALID_PORT, MAX_VALID_PORT, DEFAULT_METRICS_PORT)
            return DEFAULT_METRICS_PORT
        return port
    except ValueError:
        logger.warning("Invalid METRICS_PORT value '%s', using default: %d", port_str, DEFAULT_METRICS_PORT)
        return DEFAULT_METRICS_PORT


def is_metrics_server_enabled() -> bool:
    """
    Check if metrics server is enabled.

    Returns:
        True if METRICS_SERVER_ENABLED is not set or set to a truthy value.
    """
    env_value = os.environ.get("METRICS_SERVER_ENABLED", "true")
    return env_value.lower() in ("true", "1", "yes", "on")


class MetricsServer:
    """
    Runs the metrics app with uvicorn as a background task of the main
    event loop, next to the render API.
    """

    def __init__(self, port: int = DEFAULT_METRICS_PORT) -> None:
        self.port = port
        self._server: uvicorn.Server | None = None
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        """Start serving /metrics and wait until the socket is bound."""
        if self._task is not None:
            logger.warning("Metrics server already started")
            return

        self._server = uvicorn.Server(uvicorn.Config(app=metrics_app, host="", port=self.port, log_level="warning"))
        self._task = asyncio.create_task(self._server.serve())

        loop = asyncio.get_running_loop()
        deadline = loop.time() + STARTUP_TIMEOUT_SECONDS
        while not self._server.started:
            if self._task.done() or loop.time() > deadline:
                logger.error("Metrics server failed to start on port %d", self.port)
                await self.stop()
                raise TimeoutError(f"Metrics server failed to start within {STARTUP_TIMEOUT_SECONDS} seconds")
            await asyncio.sleep(0.01)

        logger.info("Metrics server started on port %d", self.port)

    async def stop(self) -> None:
        """Ask uvicorn to exit and wait for the serve task to finish."""
        if self._task is None:
            return

        if self._server:
            self._server.should_exit = True

        try:
            await asyncio.wait_for(self._task, timeout=5.0)
        except TimeoutError:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        except (Exception, SystemExit) as e:  # noqa: BLE001
            # uvicorn exits the serve task with SystemExit when the port cannot be bound
            logger.warning("Metrics server stopped with error: %s", e)
        finally:
            self._task = None
            self._server = None
        logger.info("Metrics server stopped")

    @property
    def is_running(self) -> bool:
        return self._task is not None and self._server is not None and self._server.started
