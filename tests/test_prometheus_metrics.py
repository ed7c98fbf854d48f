"""Tests for Prometheus collectors and gauge refresh."""

from unittest.mock import MagicMock

from prometheus_client import REGISTRY

from app import prometheus_metrics
from app.content_cache import ContentCache


def sample(name: str, labels: dict | None = None) -> float:
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


def test_render_success_counts_and_observes_duration():
    before_count = sample("renders_total", {"type": "pdf"})
    before_observations = sample("render_duration_seconds_count", {"type": "pdf"})

    prometheus_metrics.increment_render_success("pdf", 1.25)

    assert sample("renders_total", {"type": "pdf"}) == before_count + 1
    assert sample("render_duration_seconds_count", {"type": "pdf"}) == before_observations + 1


def test_render_failure_counted_per_type():
    before_screenshot = sample("render_failures_total", {"type": "screenshot"})
    before_html = sample("render_failures_total", {"type": "html"})

    prometheus_metrics.increment_render_failure("screenshot")

    assert sample("render_failures_total", {"type": "screenshot"}) == before_screenshot + 1
    assert sample("render_failures_total", {"type": "html"}) == before_html


def test_pdf_merge_counters():
    before_merges = sample("pdf_merges_total")
    before_fallbacks = sample("pdf_merge_fallbacks_total")

    prometheus_metrics.increment_pdf_merge(fallback=False)
    prometheus_metrics.increment_pdf_merge(fallback=True)
    prometheus_metrics.increment_pdf_merge(fallback=True)

    assert sample("pdf_merges_total") == before_merges + 1
    assert sample("pdf_merge_fallbacks_total") == before_fallbacks + 2


def test_update_gauges_from_manager_and_cache():
    manager = MagicMock()
    manager.get_metrics.return_value = {
        "uptime_seconds": 42.0,
        "total_chromium_restarts": 1,
        "current_chromium_memory_mb": 2.0,
        "available_memory_mb": 4.0,
        "queue_size": 5,
        "active_pages": 6,
    }
    manager.get_version.return_value = "131.0.6778.33"
    cache = ContentCache()
    cache.put("a")
    cache.put("b")

    prometheus_metrics.update_gauges(manager, cache)

    assert sample("uptime_seconds") == 42.0
    assert sample("chromium_restarts") == 1
    assert sample("chromium_memory_bytes") == 2 * 1024 * 1024
    assert sample("system_memory_available_bytes") == 4 * 1024 * 1024
    assert sample("queue_size") == 5
    assert sample("active_pages") == 6
    assert sample("content_cache_entries") == 2
    assert REGISTRY.get_sample_value("chromium_info", {"version": "131.0.6778.33"}) == 1.0


def test_update_gauges_logs_instead_of_raising():
    manager = MagicMock()
    manager.get_metrics.side_effect = RuntimeError("browser gone")

    prometheus_metrics.update_gauges(manager, ContentCache())
