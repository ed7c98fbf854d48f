import contextlib
import json
import logging
import os
import platform
from collections.abc import AsyncGenerator
from importlib.metadata import PackageNotFoundError, version as package_version
from typing import Annotated, Any

from fastapi import Depends, FastAPI, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, PlainTextResponse

from app.chromium_manager import ChromiumManager, get_chromium_manager
from app.content_cache import ContentCache, get_content_cache
from app.content_headers import content_disposition, derive_filename
from app.metrics_server import MetricsServer, get_metrics_port, is_metrics_server_enabled
from app.render_options import InvalidOptionError, NavigationOptions, PdfOptions, ScreenshotOptions, parse_query_options
from app.renderer import Renderer
from app.sanitization import mask_token, sanitize_url_for_logging
from app.schemas import HealthSchema, RenderMetricsSchema, VersionSchema

MISSING_URL_MESSAGE = "Search with url parameter. For example, ?url=http://yourdomain"
RENDER_ERROR_MESSAGE = "Oops, something went wrong"
CONTENT_NOT_FOUND_MESSAGE = "Content not found or expired"
SUBMITTED_HTML_FILENAME = "document.pdf"

# Query parameters that are not render options
RESERVED_PARAMS = ("url", "type", "filename", "authorization", "key")
RENDER_TYPES = ("html", "pdf", "screenshot")


@contextlib.asynccontextmanager
async def lifespan(app_instance: FastAPI) -> AsyncGenerator[None]:  # noqa: ARG001
    """
    Manage the lifecycle of the shared Chromium browser, the content cache sweep
    and the dedicated metrics server.

    If Chromium fails to start, the application will not start and the
    service will terminate (fail-fast behavior for containerized environments).
    """
    chromium_manager = get_chromium_manager()
    content_cache = get_content_cache()
    metrics_server = MetricsServer(port=get_metrics_port()) if is_metrics_server_enabled() else None
    logger = logging.getLogger(__name__)

    logger.info("Starting Chromium browser...")
    await chromium_manager.start()
    logger.info("Chromium browser started")
    await content_cache.start()
    if metrics_server is not None:
        await metrics_server.start()

    yield  # Application runs here

    if metrics_server is not None:
        await metrics_server.stop()
    await content_cache.stop()
    try:
        logger.info("Stopping Chromium browser...")
        await chromium_manager.stop()
        logger.info("Chromium browser stopped successfully")
    except Exception as e:  # noqa: BLE001
        logger.error("Error stopping Chromium browser: %s", e)


logger = logging.getLogger(__name__)

app = FastAPI(
    title="Render Gateway API",
    version="1.0.0",
    docs_url="/api/docs",
    openapi_version="3.1.0",
    lifespan=lifespan,
)


def get_cors_origins() -> list[str]:
    """
    Origins allowed to call the gateway from a browser.

    Returns:
        Comma separated CORS_ALLOW_ORIGINS entries, ["*"] when unset or empty.
    """
    origins = [origin.strip() for origin in os.environ.get("CORS_ALLOW_ORIGINS", "*").split(",") if origin.strip()]
    return origins or ["*"]


app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_methods=["GET", "HEAD", "PUT", "PATCH", "POST", "DELETE"],
    allow_headers=["*"],
)


def get_renderer(chromium_manager: Annotated[ChromiumManager, Depends(get_chromium_manager)]) -> Renderer:
    return Renderer(chromium_manager)


@app.get(
    "/health",
    summary="Health check",
    description="Returns health status with optional detailed metrics. Use ?detailed=true for JSON response with metrics.",
    operation_id="getHealth",
    tags=["meta"],
    response_model=None,
    responses={
        200: {"content": {"text/plain": {"example": "OK"}, "application/json": {"schema": HealthSchema.model_json_schema()}}, "description": "Service is healthy"},
        503: {"content": {"text/plain": {"example": "Service Unavailable"}, "application/json": {"schema": HealthSchema.model_json_schema()}}, "description": "Service is unhealthy"},
    },
)
async def health(
    chromium_manager: Annotated[ChromiumManager, Depends(get_chromium_manager)],
    content_cache: Annotated[ContentCache, Depends(get_content_cache)],
    detailed: bool = Query(False, description="Return detailed JSON response with metrics"),
) -> Response:
    """
    Health check endpoint that verifies service and Chromium browser status.

    Returns:
        - Simple mode: 200 with "OK" text or 503 with "Service Unavailable" text
        - Detailed mode: 200/503 with JSON containing status, metrics, and browser info
    """
    chromium_healthy = chromium_manager.health_check()

    if detailed:
        metrics_data: dict[str, Any] = dict(chromium_manager.get_metrics())
        metrics_data["content_cache_entries"] = len(content_cache)
        health_response = HealthSchema(
            status="healthy" if chromium_healthy else "unhealthy",
            version=os.environ.get("RENDER_GATEWAY_VERSION", "unknown"),
            chromium_running=chromium_manager.is_running(),
            chromium_version=chromium_manager.get_version(),
            health_monitoring_enabled=chromium_manager.health_check_enabled,
            metrics=RenderMetricsSchema(**metrics_data),
        )
        return Response(
            content=health_response.model_dump_json(),
            media_type="application/json",
            status_code=200 if chromium_healthy else 503,
        )

    if chromium_healthy:
        return Response("OK", media_type="text/plain", status_code=200)
    return Response("Service Unavailable", media_type="text/plain", status_code=503)


@app.get(
    "/version",
    response_model=VersionSchema,
    summary="Service version information",
    description="Returns versions of Python, Playwright, the service itself, build timestamp, and Chromium.",
    operation_id="getVersion",
    tags=["meta"],
)
async def version(chromium_manager: Annotated[ChromiumManager, Depends(get_chromium_manager)]) -> dict[str, str | None]:
    """
    Get version information
    """
    logger.info("Version endpoint called")
    version_info = {
        "python": platform.python_version(),
        "playwright": __playwright_version(),
        "renderGateway": os.environ.get("RENDER_GATEWAY_VERSION"),
        "timestamp": os.environ.get("RENDER_GATEWAY_BUILD_TIMESTAMP"),
        "chromium": chromium_manager.get_version(),
    }
    logger.debug("Version info: %s", version_info)
    return version_info


def __playwright_version() -> str:
    try:
        return package_version("playwright")
    except PackageNotFoundError:
        return "unknown"


@app.api_route(
    "/",
    methods=["GET", "POST"],
    responses={
        200: {
            "content": {"text/html": {}, "application/pdf": {}, "image/png": {}, "image/jpeg": {}},
            "description": "Rendered HTML snapshot, PDF document or screenshot",
        },
        400: {"content": {"text/plain": {}}, "description": "Missing url parameter or invalid render option"},
        404: {"content": {"text/plain": {}}, "description": "Unknown or expired content key"},
        500: {"content": {"text/plain": {}}, "description": "Rendering failed"},
    },
    summary="Render a URL or submitted HTML",
    description=(
        "Renders `url` as HTML snapshot (default), PDF (`type=pdf`) or screenshot (`type=screenshot`). "
        "A POST with a JSON body re-sends that body to the target. "
        "A POST of raw HTML without `url` is rendered to PDF. `?key=` serves previously submitted HTML."
    ),
    operation_id="render",
    tags=["render"],
)
async def render(
    request: Request,
    renderer: Annotated[Renderer, Depends(get_renderer)],
    content_cache: Annotated[ContentCache, Depends(get_content_cache)],
) -> Response:
    """
    Dispatch a render request by its ``type`` query parameter.
    """
    query = request.query_params
    url = query.get("url")
    post = request.method == "POST"

    if not url and not post and "key" in query:
        return __serve_submitted_html(content_cache, query["key"])

    raw: bytes = await request.body() if post else b""
    body: Any = None
    if raw:
        if __is_json(request):
            try:
                body = json.loads(raw)
            except json.JSONDecodeError as e:
                return __process_error(e, "Cannot parse JSON request body", 400)
        elif not url:
            return await __render_submitted_html(request, raw, renderer, content_cache)
        else:
            try:
                body = raw.decode(__get_encoding(request), errors="replace")
            except LookupError as e:
                return __process_error(e, "Unknown request body charset", 400)

    if not url:
        logger.info("Render request without url parameter rejected")
        return PlainTextResponse(MISSING_URL_MESSAGE, status_code=400)

    if "://" not in url:
        url = f"http://{url}"

    render_type = query.get("type") or "html"
    authorization = query.get("authorization")
    options = parse_query_options((name, value) for name, value in query.multi_items() if name not in RESERVED_PARAMS)
    logger.info("Render requested: type=%s, url=%s, method=%s, authorization=%s", render_type, sanitize_url_for_logging(url), request.method, mask_token(authorization))

    try:
        if render_type not in RENDER_TYPES:
            raise InvalidOptionError(f"Unknown render type '{render_type}', expected one of: {', '.join(RENDER_TYPES)}")
        navigation = NavigationOptions.from_options(options)

        if render_type == "pdf":
            pdf_options = PdfOptions.from_request(options, body)
            pdf = await renderer.pdf(url, navigation, pdf_options, authorization, post, body)
            return __pdf_response(pdf, derive_filename(url, query.get("filename")), pdf_options)

        if render_type == "screenshot":
            screenshot_options = ScreenshotOptions.from_options(options)
            screenshot = await renderer.screenshot(url, navigation, screenshot_options, authorization, post, body)
            return Response(screenshot.data, media_type=screenshot_options.content_type, status_code=200)

        html = await renderer.html(url, navigation, authorization, post, body)
        return HTMLResponse(html, status_code=200)

    except InvalidOptionError as e:
        logger.warning("Invalid render options: %s", e)
        return PlainTextResponse(str(e), status_code=400)
    except Exception as e:
        logger.error("Rendering %s of %s failed: %s", render_type, sanitize_url_for_logging(url), e, exc_info=True)
        return PlainTextResponse(RENDER_ERROR_MESSAGE, status_code=500)


async def __render_submitted_html(request: Request, raw: bytes, renderer: Renderer, content_cache: ContentCache) -> Response:
    """
    Render a POSTed HTML body to PDF by storing it in the content cache and
    pointing the browser back at ``/?key=<key>``.
    """
    query = request.query_params
    options = parse_query_options((name, value) for name, value in query.multi_items() if name not in RESERVED_PARAMS)
    try:
        html = raw.decode(__get_encoding(request))
    except (UnicodeDecodeError, LookupError) as e:
        return __process_error(e, "Cannot decode request html body", 400)

    key = content_cache.put(html)
    base_url = os.environ.get("LOOPBACK_BASE_URL") or str(request.base_url)
    loopback_url = f"{base_url.rstrip('/')}/?key={key}"
    logger.info("Submitted HTML (%d bytes) cached for loopback PDF render", len(raw))

    try:
        navigation = NavigationOptions.from_options(options)
        pdf_options = PdfOptions.from_options(options)
        pdf = await renderer.pdf(loopback_url, navigation, pdf_options)
        return __pdf_response(pdf, derive_filename(loopback_url, query.get("filename") or SUBMITTED_HTML_FILENAME), pdf_options)
    except InvalidOptionError as e:
        logger.warning("Invalid render options: %s", e)
        return PlainTextResponse(str(e), status_code=400)
    except Exception as e:
        logger.error("Rendering submitted HTML failed: %s", e, exc_info=True)
        return PlainTextResponse(RENDER_ERROR_MESSAGE, status_code=500)
    finally:
        # Drop the entry in case the browser never fetched it
        content_cache.pop(key)


def __serve_submitted_html(content_cache: ContentCache, key: str) -> Response:
    html = content_cache.pop(key)
    if html is None:
        logger.info("Requested content key is unknown or expired")
        return PlainTextResponse(CONTENT_NOT_FOUND_MESSAGE, status_code=404)
    return HTMLResponse(html, status_code=200)


def __pdf_response(pdf: bytes, filename: str, pdf_options: PdfOptions) -> Response:
    logger.debug("Creating PDF response with filename: %s", filename)
    response = Response(pdf, media_type="application/pdf", status_code=200)
    response.headers.append("Content-Disposition", content_disposition(filename, pdf_options.content_disposition_type))
    return response


def __is_json(request: Request) -> bool:
    return request.headers.get("content-type", "").split(";", 1)[0].strip().lower() == "application/json"


def __get_encoding(request: Request) -> str:
    ct = request.headers.get("content-type", "")
    charset = None
    with contextlib.suppress(Exception):
        if "charset=" in ct:
            charset = ct.split("charset=", 1)[1].split(";", 1)[0].strip()
    return charset or "utf-8"


def __process_error(e: Exception, err_msg: str, status: int) -> Response:
    logger.warning("%s: %s", err_msg, str(e))
    return PlainTextResponse(err_msg, status_code=status)
