"""
Rendering service: HTML snapshots, PDF documents and screenshots.

Every operation borrows exactly one page session from the shared
:class:`~app.chromium_manager.ChromiumManager`, shapes the outgoing requests
of that page, navigates to the target and hands the page back when done.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, NamedTuple

from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import ViewportSize

from app import prometheus_metrics
from app.pdf_merger import merge_pdfs
from app.sanitization import sanitize_url_for_logging

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from playwright.async_api import Page, Request, Route

    from app.chromium_manager import ChromiumManager
    from app.render_options import NavigationOptions, PdfOptions, ScreenshotOptions

logger = logging.getLogger(__name__)

FIRST_PAGE_RANGE = "1"
OTHER_PAGES_RANGE = "2-"

# Resolves once no CSS transition/animation or Web Animation is still running
ANIMATIONS_SETTLED_JS = "() => document.getAnimations().every((animation) => animation.playState !== 'running')"


class Screenshot(NamedTuple):
    image_type: str
    data: bytes


def authorization_header(value: str) -> str:
    """Use ``value`` as is when it already names a scheme, otherwise send it as a bearer token."""
    value = value.strip()
    if " " in value:
        return value
    return f"Bearer {value}"


class Renderer:
    """
    Drives the shared browser to render targets.

    Args:
        chromium_manager: The process-wide browser handle.
    """

    def __init__(self, chromium_manager: ChromiumManager) -> None:
        self._chromium_manager = chromium_manager

    async def html(
        self,
        url: str,
        navigation: NavigationOptions,
        authorization: str | None = None,
        post: bool = False,
        body: Any = None,
    ) -> str:
        """Return the serialized DOM of ``url`` once navigation has settled."""
        async with self._measured("html"), self._open_page(url, navigation, authorization, post, body) as page:
            return await page.content()

    async def pdf(
        self,
        url: str,
        navigation: NavigationOptions,
        pdf_options: PdfOptions,
        authorization: str | None = None,
        post: bool = False,
        body: Any = None,
    ) -> bytes:
        """
        Render ``url`` to PDF.

        Without a footer template the page is printed once. With one, the first
        page and the remaining pages are printed separately so each can use its
        own bottom margin, and the two documents are merged.
        """
        navigation = navigation.with_media_type("print")
        async with self._measured("pdf"), self._open_page(url, navigation, authorization, post, body) as page:
            if not pdf_options.two_pass:
                return await page.pdf(**pdf_options.to_pdf_kwargs())
            return await self._two_pass_pdf(page, pdf_options)

    async def _two_pass_pdf(self, page: Page, pdf_options: PdfOptions) -> bytes:
        cover = await page.pdf(**pdf_options.to_footer_pass_kwargs(FIRST_PAGE_RANGE, pdf_options.footer_first_margin_bottom))

        try:
            body = await page.pdf(**pdf_options.to_footer_pass_kwargs(OTHER_PAGES_RANGE, pdf_options.footer_other_margin_bottom))
        except Exception as e:  # noqa: BLE001
            # Single page documents end up here too: the range "2-" is empty for them
            logger.warning("Rendering pages 2+ failed, returning the first page only: %s", e)
            self._record_merge(fallback=True)
            return cover

        merged = await asyncio.to_thread(merge_pdfs, cover, body)
        self._record_merge(fallback=False)
        return merged

    def _record_merge(self, fallback: bool) -> None:
        self._chromium_manager.metrics.record_merge(fallback)
        prometheus_metrics.increment_pdf_merge(fallback)

    async def screenshot(
        self,
        url: str,
        navigation: NavigationOptions,
        screenshot_options: ScreenshotOptions,
        authorization: str | None = None,
        post: bool = False,
        body: Any = None,
    ) -> Screenshot:
        """Capture ``url`` as png or jpeg at the requested viewport size."""
        viewport = ViewportSize(width=screenshot_options.width, height=screenshot_options.height)
        async with self._measured("screenshot"), self._open_page(url, navigation, authorization, post, body, viewport=viewport) as page:
            if screenshot_options.animation_timeout > 0:
                await self._wait_for_animations(page, screenshot_options.animation_timeout)
            data = await page.screenshot(**screenshot_options.to_screenshot_kwargs())
            return Screenshot(image_type=screenshot_options.screenshot_type, data=data)

    @staticmethod
    async def _wait_for_animations(page: Page, timeout_ms: float) -> None:
        try:
            await page.wait_for_function(ANIMATIONS_SETTLED_JS, timeout=timeout_ms)
        except PlaywrightTimeoutError:
            logger.debug("Animations still running after %.0f ms, capturing anyway", timeout_ms)

    @asynccontextmanager
    async def _measured(self, render_type: str) -> AsyncGenerator[None]:
        """Record duration and outcome of one render in the manager and Prometheus metrics."""
        start_time = time.time()
        try:
            yield
        except Exception:
            self._chromium_manager.metrics.record_failure(render_type)
            prometheus_metrics.increment_render_failure(render_type)
            raise
        duration = time.time() - start_time
        self._chromium_manager.metrics.record_success(render_type, duration * 1000)
        prometheus_metrics.increment_render_success(render_type, duration)
        logger.info("%s render finished in %.0f ms", render_type, duration * 1000)

    @asynccontextmanager
    async def _open_page(
        self,
        url: str,
        navigation: NavigationOptions,
        authorization: str | None,
        post: bool,
        body: Any,
        viewport: ViewportSize | None = None,
    ) -> AsyncGenerator[Page]:
        """
        Open a page session, install request shaping and navigate to ``url``.

        The page is closed by the ChromiumManager on every exit path.
        """
        credentials = navigation.credentials.model_dump() if navigation.credentials else None
        async with self._chromium_manager.page(http_credentials=credentials, viewport=viewport) as page:  # type: ignore[arg-type]

            async def on_crash(crashed_page: Page) -> None:
                logger.error("Page crashed while rendering %s", sanitize_url_for_logging(url))
                try:
                    await crashed_page.close()
                except Exception as e:  # noqa: BLE001
                    logger.warning("Error closing crashed page: %s", e)

            async def shape_request(route: Route, request: Request) -> None:
                await route.continue_(**shape_request_overrides(request, authorization, post, body))

            page.on("crash", on_crash)
            await page.route("**/*", shape_request)

            if navigation.emulate_media_type:
                await page.emulate_media(media=navigation.emulate_media_type)

            logger.debug("Navigating to %s (wait_until=%s, timeout=%.0fms)", sanitize_url_for_logging(url), navigation.wait_until, navigation.timeout)
            await page.goto(url, timeout=navigation.timeout, wait_until=navigation.wait_until)
            yield page


def shape_request_overrides(request: Request, authorization: str | None, post: bool, body: Any) -> dict[str, Any]:
    """
    Overrides for an intercepted request.

    The top-level document of a POSTed render is re-sent as a JSON POST, and the
    authorization value is added to every request.
    """
    headers = dict(request.headers)
    overrides: dict[str, Any] = {"headers": headers}
    if post and request.resource_type == "document":
        overrides["method"] = "POST"
        overrides["post_data"] = json.dumps(body if body is not None else {})
        headers["content-type"] = "application/json"
    if authorization:
        headers["authorization"] = authorization_header(authorization)
    return overrides
