from pydantic import BaseModel, Field


class VersionSchema(BaseModel):
    """Schema for response /version"""

    python: str = Field(title="Python", description="Python version")
    playwright: str = Field(title="Playwright", description="Playwright version")
    renderGateway: str | None = Field(title="Render Gateway", description="Service version")
    timestamp: str | None = Field(title="Build Timestamp", description="Build timestamp")
    chromium: str | None = Field(title="Chromium", description="Chromium version")


class RenderMetricsSchema(BaseModel):
    """Schema for render performance and browser health metrics"""

    # Render metrics per type
    html_renders: int = Field(title="HTML Renders", description="Total successful HTML snapshots")
    failed_html_renders: int = Field(title="Failed HTML Renders", description="Total failed HTML snapshot attempts")
    avg_html_render_time_ms: float = Field(title="Avg HTML Render Time (ms)", description="Average HTML snapshot time in milliseconds")
    pdf_renders: int = Field(title="PDF Renders", description="Total successful PDF renders")
    failed_pdf_renders: int = Field(title="Failed PDF Renders", description="Total failed PDF render attempts")
    avg_pdf_render_time_ms: float = Field(title="Avg PDF Render Time (ms)", description="Average PDF render time in milliseconds (both passes and merge for two-pass renders)")
    screenshot_renders: int = Field(title="Screenshots", description="Total successful screenshots")
    failed_screenshot_renders: int = Field(title="Failed Screenshots", description="Total failed screenshot attempts")
    avg_screenshot_render_time_ms: float = Field(title="Avg Screenshot Time (ms)", description="Average screenshot time in milliseconds")

    # Two-pass PDF metrics
    pdf_merges: int = Field(title="PDF Merges", description="Two-pass PDF renders merged into one document")
    pdf_merge_fallbacks: int = Field(title="PDF Merge Fallbacks", description="Two-pass PDF renders returned with the first page only")

    # Health metrics
    total_chromium_restarts: int = Field(title="Total Chromium Restarts", description="Total Chromium browser restarts since startup")
    last_health_check: str = Field(title="Last Health Check", description="Formatted timestamp of last health check (HH:MM:SS DD.MM.YYYY)")
    last_health_status: bool = Field(title="Last Health Status", description="Result of last health check (true=healthy)")
    consecutive_failures: int = Field(title="Consecutive Failures", description="Failed renders since the last successful one")
    uptime_seconds: float = Field(title="Uptime (seconds)", description="Browser uptime in seconds")

    # Resource usage metrics
    current_cpu_percent: float = Field(title="Current CPU (%)", description="Current CPU usage percentage")
    total_memory_mb: float = Field(title="Total Memory (MB)", description="Total system memory in MB")
    available_memory_mb: float = Field(title="Available Memory (MB)", description="Available system memory in MB")
    current_chromium_memory_mb: float = Field(title="Current Chromium Memory (MB)", description="Current Chromium physical memory usage in MB")

    # Queue metrics
    queue_size: int = Field(title="Queue Size", description="Current number of requests waiting for a page session")
    max_queue_size: int = Field(title="Max Queue Size", description="Largest number of waiting requests observed")
    active_pages: int = Field(title="Active Pages", description="Current number of open page sessions")
    avg_queue_time_ms: float = Field(title="Avg Queue Time (ms)", description="Average time requests wait for a page session (milliseconds)")
    max_concurrent_pages: int = Field(title="Max Concurrent Pages", description="Maximum allowed concurrent page sessions (configured limit)")

    # Content cache
    content_cache_entries: int = Field(title="Content Cache Entries", description="Submitted HTML bodies waiting to be rendered")


class HealthSchema(BaseModel):
    """Schema for detailed health status response"""

    status: str = Field(title="Status", description="Overall health status: healthy or unhealthy")
    version: str = Field(title="Version", description="Render gateway version")
    chromium_running: bool = Field(title="Chromium Running", description="Whether Chromium browser is running")
    chromium_version: str | None = Field(title="Chromium Version", description="Chromium version if available")
    health_monitoring_enabled: bool = Field(title="Health Monitoring Enabled", description="Whether background health monitoring is active")
    metrics: RenderMetricsSchema = Field(title="Metrics", description="Performance and health metrics")
