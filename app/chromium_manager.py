"""
Chromium browser management via Playwright.

This module provides a singleton ChromiumManager that owns the process-wide
headless Chromium instance. Every render request borrows one page session
(browser context + page) from it and gives it back when done.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

import psutil
from playwright.async_api import ViewportSize, async_playwright

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from playwright.async_api import Browser, BrowserContext, HttpCredentials, Page, Playwright

RENDER_TYPES = ("html", "pdf", "screenshot")

DEFAULT_VIEWPORT_WIDTH = 800
DEFAULT_VIEWPORT_HEIGHT = 600


@dataclass
class ChromiumConfig:
    """
    Configuration settings for ChromiumManager.

    Attributes:
        max_concurrent_pages: Maximum number of page sessions open at the same time (1-100, default 10).
        health_check_interval: Interval in seconds for background health checks (10-300, default 30).
        health_check_enabled: Enable background health monitoring (default True).
    """

    max_concurrent_pages: int | None = None
    health_check_interval: int | None = None
    health_check_enabled: bool | None = None


@dataclass
class RenderStats:
    """Success/failure counters and timing for a single render type."""

    successes: int = 0
    failures: int = 0
    total_time_ms: float = 0.0

    @property
    def avg_time_ms(self) -> float:
        return self.total_time_ms / self.successes if self.successes else 0.0

    @property
    def error_rate_percent(self) -> float:
        attempts = self.successes + self.failures
        return (self.failures / attempts) * 100.0 if attempts else 0.0


@dataclass
class ChromiumMetrics:
    """
    Metrics for browser health and render performance monitoring.

    Attributes:
        renders: Per render type (html, pdf, screenshot) success/failure statistics.
        pdf_merges: Number of two-pass PDFs that were merged into one document.
        pdf_merge_fallbacks: Number of two-pass PDFs returned as cover page only.
        total_chromium_restarts: Total number of browser restarts since start.
        last_health_check: Timestamp of last health check.
        last_health_status: Result of last health check (True=healthy, False=unhealthy).
        consecutive_failures: Number of consecutive render failures.
        uptime_seconds: Time since browser was started (in seconds).
        queue_size: Current number of requests waiting for a page slot.
        max_queue_size: Maximum queue size observed.
        active_pages: Current number of open page sessions.
    """

    renders: dict[str, RenderStats] = field(default_factory=lambda: {name: RenderStats() for name in RENDER_TYPES})
    pdf_merges: int = 0
    pdf_merge_fallbacks: int = 0

    # Browser health metrics
    total_chromium_restarts: int = 0
    last_health_check: float = 0.0
    last_health_status: bool = False
    consecutive_failures: int = 0
    uptime_seconds: float = 0.0
    start_time: float = field(default_factory=time.time)

    # Resource usage metrics
    current_cpu_percent: float = 0.0
    current_chromium_memory_mb: float = 0.0

    # Queue metrics
    queue_size: int = 0
    max_queue_size: int = 0
    active_pages: int = 0
    total_queue_time_ms: float = 0.0
    total_queued: int = 0

    def record_success(self, render_type: str, duration_ms: float) -> None:
        """Record a successful render of the given type."""
        stats = self.renders[render_type]
        stats.successes += 1
        stats.total_time_ms += duration_ms
        self.consecutive_failures = 0

    def record_failure(self, render_type: str) -> None:
        """Record a failed render of the given type."""
        self.renders[render_type].failures += 1
        self.consecutive_failures += 1

    def record_merge(self, fallback: bool) -> None:
        if fallback:
            self.pdf_merge_fallbacks += 1
        else:
            self.pdf_merges += 1

    def record_restart(self) -> None:
        self.total_chromium_restarts += 1

    def record_health_check(self, is_healthy: bool) -> None:
        self.last_health_check = time.time()
        self.last_health_status = is_healthy

    def update_uptime(self) -> None:
        self.uptime_seconds = time.time() - self.start_time

    def reset_start_time(self) -> None:
        self.start_time = time.time()
        self.uptime_seconds = 0.0

    def record_resource_usage(self, browser_process: psutil.Process | None) -> None:
        """Sample CPU and memory usage of the browser process, if known."""
        if browser_process is None:
            return

        try:
            self.current_cpu_percent = browser_process.cpu_percent()
            self.current_chromium_memory_mb = browser_process.memory_info().rss / (1024 * 1024)
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            # Process no longer exists or we don't have access
            pass

    def record_queue_time(self, queue_time_ms: float) -> None:
        self.total_queue_time_ms += queue_time_ms
        self.total_queued += 1

    @property
    def avg_queue_time_ms(self) -> float:
        return self.total_queue_time_ms / self.total_queued if self.total_queued else 0.0

    def update_queue_metrics(self, queue_size: int, active_pages: int) -> None:
        self.queue_size = queue_size
        self.active_pages = active_pages
        self.max_queue_size = max(self.max_queue_size, queue_size)


class ChromiumManager:
    """
    Singleton manager for the persistent Chromium browser process.

    The browser is shared by all requests; each request gets its own browser
    context and page through :meth:`page`.
    """

    def __init__(
        self,
        config: ChromiumConfig | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """
        Initialize ChromiumManager.

        Args:
            config: Configuration settings. If None, creates default config from environment variables.
            logger: Optional logger; if None, a module-level logger is used.
        """
        self.log = logger or logging.getLogger(__name__)

        if config is None:
            config = ChromiumConfig()

        self.max_concurrent_pages = self._validate_int_config(config.max_concurrent_pages, "MAX_CONCURRENT_PAGES", default=10, min_value=1, max_value=100)
        self.health_check_interval = self._validate_int_config(config.health_check_interval, "CHROMIUM_HEALTH_CHECK_INTERVAL", default=30, min_value=10, max_value=300)
        self.health_check_enabled = self._validate_health_check_enabled(config.health_check_enabled)

        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._browser_process: psutil.Process | None = None
        self._lock = asyncio.Lock()
        self._semaphore = asyncio.Semaphore(self.max_concurrent_pages)
        self._started = False

        self._metrics = ChromiumMetrics()
        self._health_monitor_task: asyncio.Task | None = None
        self._shutdown_event = asyncio.Event()

        self._waiting_in_queue = 0
        self._active_pages = 0

    @property
    def metrics(self) -> ChromiumMetrics:
        return self._metrics

    async def start(self) -> None:
        """Start the persistent Chromium browser process."""
        async with self._lock:
            await self._start_internal()

    async def _start_internal(self) -> None:
        if self._started:
            self.log.warning("Chromium already started")
            return

        try:
            self.log.info("Starting Chromium browser process via Playwright...")
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=True,
                args=[
                    "--no-sandbox",
                    "--disable-gpu",
                    "--disable-dev-shm-usage",
                ],
            )

            self._started = True
            self._metrics.reset_start_time()
            self._browser_process = await self._find_browser_process()

            self.log.info("Chromium browser started successfully")

            if self.health_check_enabled and self._health_monitor_task is None:
                self._shutdown_event.clear()
                self._health_monitor_task = asyncio.create_task(self._health_monitor_loop())
                self.log.info("Background health monitoring started (interval: %ds)", self.health_check_interval)

        except Exception as e:
            self.log.error("Failed to start Chromium: %s", e)
            self._started = False
            raise

    async def _find_browser_process(self) -> psutil.Process | None:
        # Playwright doesn't expose the browser PID, look it up by command line
        try:
            process = await asyncio.create_subprocess_exec(
                "pgrep",
                "-f",
                "chrom.*--headless",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout, _ = await process.communicate()
            if process.returncode == 0 and stdout.strip():
                pid = int(stdout.decode().strip().split("\n")[0])
                self.log.debug("Found Chromium process PID: %d", pid)
                return psutil.Process(pid)
        except Exception as e:  # noqa: BLE001
            self.log.warning("Could not attach to Chromium process for resource monitoring: %s", e)
        return None

    async def stop(self) -> None:
        """Stop the persistent Chromium browser process."""
        async with self._lock:
            await self._stop_internal()

    async def _stop_internal(self) -> None:
        if not self._started:
            return

        try:
            # A restart triggered by the health monitor keeps the monitor running
            if self._health_monitor_task is not None and self._health_monitor_task is not asyncio.current_task():
                self.log.info("Stopping background health monitoring...")
                self._shutdown_event.set()
                try:
                    await asyncio.wait_for(self._health_monitor_task, timeout=5.0)
                except TimeoutError:
                    self.log.warning("Health monitor task did not stop within timeout, cancelling...")
                    self._health_monitor_task.cancel()
                    with contextlib.suppress(asyncio.CancelledError):
                        await self._health_monitor_task
                except Exception as e:  # noqa: BLE001
                    self.log.error("Error stopping health monitor: %s", e)
                finally:
                    self._health_monitor_task = None

            if self._browser:
                try:
                    await self._browser.close()
                except Exception as e:  # noqa: BLE001
                    self.log.error("Error closing browser: %s", e)

            if self._playwright:
                try:
                    await self._playwright.stop()
                except Exception as e:  # noqa: BLE001
                    self.log.error("Error stopping Playwright: %s", e)

            self.log.info("Chromium browser stopped successfully")
        finally:
            # Always mark as stopped, even if cleanup fails
            self._started = False
            self._browser = None
            self._playwright = None
            self._browser_process = None

    def is_running(self) -> bool:
        """Check if the Chromium browser is running."""
        return self._started and self._browser is not None

    def health_check(self) -> bool:
        """
        Perform a health check on the Chromium browser.

        Returns:
            True if the browser is running and connected, False otherwise.
        """
        try:
            is_healthy = self.is_running() and self._browser is not None and self._browser.is_connected()
            self._metrics.record_health_check(is_healthy)
            return is_healthy
        except Exception as e:  # noqa: BLE001
            self.log.error("Health check failed: %s", e)
            self._metrics.record_health_check(False)
            return False

    def get_version(self) -> str | None:
        """
        Get the Chromium browser version.

        Returns:
            Chromium version string (e.g., "131.0.6778.69") or None if browser is not running.
        """
        try:
            if not self.is_running() or not self._browser:
                return None

            version_string = self._browser.version
            # "HeadlessChrome/131.0.6778.69"
            if "/" in version_string:
                return version_string.split("/")[1]
            return version_string
        except Exception as e:  # noqa: BLE001
            self.log.error("Failed to get Chromium version: %s", e)
            return None

    async def restart(self) -> None:
        """
        Restart the Chromium browser.

        Waits for all open page sessions to finish by acquiring every
        semaphore permit, so no request loses its page mid-render.
        """
        self.log.info("Restarting Chromium browser...")

        async with self._lock:
            permits_acquired = 0
            try:
                for _ in range(self.max_concurrent_pages):
                    await self._semaphore.acquire()
                    permits_acquired += 1

                await self._stop_internal()
                await self._start_internal()
                self._metrics.record_restart()
            finally:
                for _ in range(permits_acquired):
                    self._semaphore.release()

    async def _close_page_resources(self, page: Page | None, context: BrowserContext | None) -> None:
        """
        Close a page and its context, logging (never raising) close failures.
        """
        if page is not None:
            try:
                if not page.is_closed():
                    await page.close()
            except Exception as e:  # noqa: BLE001
                self.log.warning("Error closing page: %s", e)

        if context is not None:
            try:
                await context.close()
            except Exception as e:  # noqa: BLE001
                self.log.warning("Error closing browser context: %s", e)

    @asynccontextmanager
    async def page(
        self,
        http_credentials: HttpCredentials | None = None,
        viewport: ViewportSize | None = None,
    ) -> AsyncGenerator[Page]:
        """
        Context manager handing out a fresh page session.

        Args:
            http_credentials: Optional HTTP basic auth credentials for the context.
            viewport: Initial viewport, defaults to 800x600.

        Yields:
            A Playwright Page object.

        Note:
            The page and its context are closed on every exit path. A semaphore
            bounds the number of simultaneously open pages.
        """
        if not self._browser:
            raise RuntimeError("Chromium browser is not started")

        queue_entry_time = time.time()
        self._waiting_in_queue += 1
        self._metrics.update_queue_metrics(self._waiting_in_queue, self._active_pages)

        try:
            await self._semaphore.acquire()
        finally:
            # Leave the queue whether the slot was acquired or the wait was cancelled
            self._waiting_in_queue -= 1

        self._metrics.record_queue_time((time.time() - queue_entry_time) * 1000)
        self._active_pages += 1
        self._metrics.update_queue_metrics(self._waiting_in_queue, self._active_pages)

        context: BrowserContext | None = None
        page: Page | None = None
        try:
            context = await self._browser.new_context(
                ignore_https_errors=True,
                http_credentials=http_credentials,
                viewport=viewport or ViewportSize(width=DEFAULT_VIEWPORT_WIDTH, height=DEFAULT_VIEWPORT_HEIGHT),
            )
            page = await context.new_page()
            yield page
        finally:
            await self._close_page_resources(page, context)
            self._active_pages -= 1
            self._metrics.update_queue_metrics(self._waiting_in_queue, self._active_pages)
            self._semaphore.release()

    async def _health_monitor_loop(self) -> None:
        """
        Background task that periodically checks Chromium health.

        Restarts the browser after 3 consecutive failed checks. The loop exits
        when _shutdown_event is set.
        """
        self.log.info("Health monitor loop started")
        consecutive_failures = 0
        max_consecutive_failures = 3

        try:
            while not self._shutdown_event.is_set():
                try:
                    await asyncio.wait_for(self._shutdown_event.wait(), timeout=self.health_check_interval)
                    break
                except TimeoutError:
                    pass

                self._metrics.update_uptime()
                self._metrics.record_resource_usage(self._browser_process)

                if self.health_check():
                    consecutive_failures = 0
                    self.log.debug("Health check passed (uptime: %.1fs, active pages: %d)", self._metrics.uptime_seconds, self._active_pages)
                    continue

                consecutive_failures += 1
                self.log.warning("Health check failed (%d/%d consecutive failures)", consecutive_failures, max_consecutive_failures)
                if consecutive_failures >= max_consecutive_failures:
                    self.log.error("Chromium health degraded after %d consecutive failures, restarting...", consecutive_failures)
                    try:
                        await self.restart()
                        consecutive_failures = 0
                    except Exception as e:  # noqa: BLE001
                        self.log.error("Failed to restart Chromium after health check failure: %s", e)

        except asyncio.CancelledError:
            self.log.info("Health monitor loop cancelled")
            raise
        except Exception as e:  # noqa: BLE001
            self.log.error("Unexpected error in health monitor loop: %s", e)
        finally:
            self.log.info("Health monitor loop stopped")

    def get_metrics(self) -> dict[str, float | int | bool | str]:
        """
        Get current metrics for monitoring and observability.

        Returns:
            Flat dictionary with per render type counters (``<type>_renders``,
            ``failed_<type>_renders``, ``avg_<type>_render_time_ms``), merge
            counters, health, resource usage and queue metrics.
        """
        self._metrics.update_uptime()
        system_memory = psutil.virtual_memory()

        last_health_check_str = ""
        if self._metrics.last_health_check > 0:
            last_health_check_str = datetime.fromtimestamp(self._metrics.last_health_check).strftime("%H:%M:%S %d.%m.%Y")

        result: dict[str, float | int | bool | str] = {}
        for render_type, stats in self._metrics.renders.items():
            result[f"{render_type}_renders"] = stats.successes
            result[f"failed_{render_type}_renders"] = stats.failures
            result[f"avg_{render_type}_render_time_ms"] = round(stats.avg_time_ms, 2)
            result[f"error_{render_type}_render_rate_percent"] = round(stats.error_rate_percent, 2)

        result.update(
            {
                "pdf_merges": self._metrics.pdf_merges,
                "pdf_merge_fallbacks": self._metrics.pdf_merge_fallbacks,
                "total_chromium_restarts": self._metrics.total_chromium_restarts,
                "last_health_check": last_health_check_str,
                "last_health_status": self._metrics.last_health_status,
                "consecutive_failures": self._metrics.consecutive_failures,
                "uptime_seconds": round(self._metrics.uptime_seconds, 2),
                "current_cpu_percent": round(self._metrics.current_cpu_percent, 2),
                "total_memory_mb": round(system_memory.total / (1024 * 1024), 2),
                "available_memory_mb": round(system_memory.available / (1024 * 1024), 2),
                "current_chromium_memory_mb": round(self._metrics.current_chromium_memory_mb, 2),
                "queue_size": self._metrics.queue_size,
                "max_queue_size": self._metrics.max_queue_size,
                "active_pages": self._metrics.active_pages,
                "avg_queue_time_ms": round(self._metrics.avg_queue_time_ms, 2),
                "max_concurrent_pages": self.max_concurrent_pages,
            }
        )
        return result

    def _validate_int_config(
        self,
        value: int | None,
        env_var: str,
        default: int,
        min_value: int,
        max_value: int,
    ) -> int:
        """
        Validate an integer configuration parameter.

        Args:
            value: Value to validate or None to read from env.
            env_var: Environment variable name.
            default: Default value if env var not set or invalid.
            min_value: Minimum valid value (inclusive).
            max_value: Maximum valid value (inclusive).
        """
        if value is None:
            value = self._parse_int(os.environ.get(env_var), default)
        else:
            value = int(value)

        if not (min_value <= value <= max_value):
            self.log.warning("%s must be between %s and %s, using default: %s", env_var, min_value, max_value, default)
            return default

        return value

    def _validate_health_check_enabled(self, value: bool | None) -> bool:
        if value is not None:
            return bool(value)

        env_value = os.environ.get("CHROMIUM_HEALTH_CHECK_ENABLED")
        if env_value is None:
            return True

        return env_value.lower() in ("true", "1", "yes", "on")

    @staticmethod
    def _parse_int(value: str | None, default: int) -> int:
        """Parse a string to int with a default fallback."""
        try:
            return int(value) if value is not None else default
        except (ValueError, TypeError):
            return default


# Global singleton instance
_chromium_manager: ChromiumManager | None = None


def get_chromium_manager() -> ChromiumManager:
    """
    Get the global ChromiumManager singleton instance.

    Note:
        This is intended for dependency injection in FastAPI endpoints.
    """
    global _chromium_manager  # noqa: PLW0603
    if _chromium_manager is None:
        _chromium_manager = ChromiumManager()
    return _chromium_manager
