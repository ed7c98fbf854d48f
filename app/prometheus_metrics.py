"""
Prometheus metrics collectors for render-gateway.

Counters are incremented when events occur. Gauges are refreshed from the
ChromiumManager and ContentCache state right before metrics are served.
"""

import logging
from typing import TYPE_CHECKING

from prometheus_client import Counter, Gauge, Histogram, Info

if TYPE_CHECKING:
    from app.chromium_manager import ChromiumManager
    from app.content_cache import ContentCache


logger = logging.getLogger(__name__)


renders_total = Counter(
    "renders_total",
    "Total number of successful renders",
    ["type"],
)

render_failures_total = Counter(
    "render_failures_total",
    "Total number of failed renders",
    ["type"],
)

render_duration_seconds = Histogram(
    "render_duration_seconds",
    "Render duration in seconds, from request to response body",
    ["type"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

pdf_merges_total = Counter(
    "pdf_merges_total",
    "Two-pass PDF renders merged into a single document",
)

pdf_merge_fallbacks_total = Counter(
    "pdf_merge_fallbacks_total",
    "Two-pass PDF renders returned with the first page only",
)

uptime_seconds = Gauge(
    "uptime_seconds",
    "Browser uptime in seconds",
)

chromium_restarts = Gauge(
    "chromium_restarts",
    "Number of Chromium browser restarts since startup",
)

chromium_memory_bytes = Gauge(
    "chromium_memory_bytes",
    "Current Chromium memory usage in bytes",
)

system_memory_available_bytes = Gauge(
    "system_memory_available_bytes",
    "Available system memory in bytes",
)

queue_size = Gauge(
    "queue_size",
    "Current number of requests waiting for a page session",
)

active_pages = Gauge(
    "active_pages",
    "Current number of open page sessions",
)

content_cache_entries = Gauge(
    "content_cache_entries",
    "Current number of submitted HTML bodies held in the content cache",
)

chromium_info = Info(
    "chromium",
    "Chromium browser information",
)


def increment_render_success(render_type: str, duration_seconds: float) -> None:
    """Increment the successful render counter and record its duration."""
    renders_total.labels(type=render_type).inc()
    render_duration_seconds.labels(type=render_type).observe(duration_seconds)


def increment_render_failure(render_type: str) -> None:
    render_failures_total.labels(type=render_type).inc()


def increment_pdf_merge(fallback: bool) -> None:
    if fallback:
        pdf_merge_fallbacks_total.inc()
    else:
        pdf_merges_total.inc()


def update_gauges(chromium_manager: "ChromiumManager", content_cache: "ContentCache") -> None:
    """
    Update Prometheus gauges from current ChromiumManager and ContentCache state.

    Only gauges are touched here, counters are incremented as events occur.
    """
    try:
        metrics = chromium_manager.get_metrics()

        uptime_seconds.set(float(metrics["uptime_seconds"]))
        chromium_restarts.set(float(metrics["total_chromium_restarts"]))
        chromium_memory_bytes.set(float(metrics["current_chromium_memory_mb"]) * 1024 * 1024)
        system_memory_available_bytes.set(float(metrics["available_memory_mb"]) * 1024 * 1024)
        queue_size.set(float(metrics["queue_size"]))
        active_pages.set(float(metrics["active_pages"]))
        content_cache_entries.set(len(content_cache))

        chromium_version = chromium_manager.get_version()
        if chromium_version:
            chromium_info.info({"version": chromium_version})

        logger.debug("Prometheus gauges updated")

    except Exception as e:
        logger.error("Failed to update Prometheus gauges: %s", e, exc_info=True)
