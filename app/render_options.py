"""
Typed render options parsed from query strings and JSON bodies.

Query values arrive as strings. Booleans follow the ``"true"``-or-nothing rule
(only the literal ``"true"`` is true), numbers must parse or the request is
rejected with an :class:`InvalidOptionError`.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any, Literal, Self

from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, field_validator

DEFAULT_NAVIGATION_TIMEOUT_MS = 30_000
DEFAULT_WAIT_UNTIL = "networkidle"
DEFAULT_FIRST_PAGE_MARGIN_BOTTOM = "35px"
DEFAULT_OTHER_PAGES_MARGIN_BOTTOM = "78px"

# Aliases accepted for Puppeteer-style wait conditions
WAIT_UNTIL_ALIASES = {
    "networkidle0": "networkidle",
    "networkidle2": "networkidle",
}

# JSON body fields that override query options of a two-pass PDF render
FOOTER_BODY_FIELDS = ("footerTemplate", "footerFirstMarginBottom", "footerOtherMarginBottom")


class InvalidOptionError(ValueError):
    """Raised when a render option cannot be parsed or is out of range."""


def parse_bool(value: Any) -> bool:
    """Only ``True`` and the string ``"true"`` (any case) are true."""
    if isinstance(value, bool):
        return value
    return isinstance(value, str) and value.strip().lower() == "true"


def parse_query_options(items: Iterable[tuple[str, str]]) -> dict[str, Any]:
    """
    Turn flat query parameters into a nested option dictionary.

    Dotted keys are expanded, so ``margin.top=1cm&margin.bottom=2cm`` becomes
    ``{"margin": {"top": "1cm", "bottom": "2cm"}}``. For repeated keys the last
    value wins.
    """
    options: dict[str, Any] = {}
    for key, value in items:
        parts = [part for part in key.split(".") if part]
        if not parts:
            continue
        target = options
        for part in parts[:-1]:
            nested = target.get(part)
            if not isinstance(nested, dict):
                nested = {}
                target[part] = nested
            target = nested
        target[parts[-1]] = value
    return options


def _describe(error: ValidationError) -> str:
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"])
        problems.append(f"{location}: {item['msg']}")
    return "; ".join(problems)


class QueryOptions(BaseModel):
    """Base for option models built from camelCase query or JSON keys."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> Self:
        try:
            return cls.model_validate(dict(options))
        except ValidationError as e:
            raise InvalidOptionError(f"Invalid {cls.__name__}: {_describe(e)}") from e


class Credentials(BaseModel):
    username: str
    password: str = ""


class NavigationOptions(QueryOptions):
    """
    Options controlling how a page session navigates to its target.

    Attributes:
        timeout: Navigation timeout in milliseconds. 0 or missing means 30 seconds.
        wait_until: Event to wait for before the navigation is considered done.
        credentials: HTTP basic auth credentials for the target.
        emulate_media_type: CSS media type to emulate ("screen" or "print").
    """

    timeout: float = Field(DEFAULT_NAVIGATION_TIMEOUT_MS, ge=0)
    wait_until: Literal["load", "domcontentloaded", "networkidle", "commit"] = Field(DEFAULT_WAIT_UNTIL, alias="waitUntil")
    credentials: Credentials | None = None
    emulate_media_type: Literal["screen", "print"] | None = Field(None, alias="emulateMediaType")

    @field_validator("timeout", mode="before")
    @classmethod
    def _default_timeout(cls, value: Any) -> Any:
        if value in (None, "", "0", 0):
            return DEFAULT_NAVIGATION_TIMEOUT_MS
        return value

    @field_validator("wait_until", mode="before")
    @classmethod
    def _normalize_wait_until(cls, value: Any) -> Any:
        if value in (None, ""):
            return DEFAULT_WAIT_UNTIL
        if isinstance(value, str):
            return WAIT_UNTIL_ALIASES.get(value, value)
        return value

    @field_validator("emulate_media_type", mode="before")
    @classmethod
    def _empty_media_type(cls, value: Any) -> Any:
        return value or None

    def with_media_type(self, media_type: str) -> NavigationOptions:
        """Return a copy emulating ``media_type`` unless one was already requested."""
        if self.emulate_media_type:
            return self
        return self.model_copy(update={"emulate_media_type": media_type})


class PdfMargin(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    top: str | None = None
    right: str | None = None
    bottom: str | None = None
    left: str | None = None


class PdfOptions(QueryOptions):
    """
    Options forwarded to the PDF render.

    Attributes:
        footer_template: When set, the PDF is rendered in two passes so the
            first page can use a different bottom margin than the others.
        footer_first_margin_bottom: Bottom margin of the first page in two-pass mode.
        footer_other_margin_bottom: Bottom margin of the remaining pages in two-pass mode.
        content_disposition_type: "attachment" or "inline" for the response header.
    """

    scale: float = Field(1.0, ge=0.1, le=2.0)
    display_header_footer: bool = Field(False, alias="displayHeaderFooter")
    print_background: bool = Field(False, alias="printBackground")
    landscape: bool = False
    prefer_css_page_size: bool = Field(False, alias="preferCSSPageSize")
    outline: bool = False
    tagged: bool = False
    format: str | None = None
    width: str | None = None
    height: str | None = None
    page_ranges: str | None = Field(None, alias="pageRanges")
    header_template: str | None = Field(None, alias="headerTemplate")
    footer_template: str | None = Field(None, alias="footerTemplate")
    margin: PdfMargin | None = None
    footer_first_margin_bottom: str = Field(DEFAULT_FIRST_PAGE_MARGIN_BOTTOM, alias="footerFirstMarginBottom")
    footer_other_margin_bottom: str = Field(DEFAULT_OTHER_PAGES_MARGIN_BOTTOM, alias="footerOtherMarginBottom")
    content_disposition_type: Literal["attachment", "inline"] = Field("attachment", alias="contentDispositionType")

    @field_validator("display_header_footer", "print_background", "landscape", "prefer_css_page_size", "outline", "tagged", mode="before")
    @classmethod
    def _coerce_bool(cls, value: Any) -> bool:
        return parse_bool(value)

    @field_validator("scale", mode="before")
    @classmethod
    def _default_scale(cls, value: Any) -> Any:
        return 1.0 if value in (None, "") else value

    @field_validator("footer_first_margin_bottom", "footer_other_margin_bottom", mode="before")
    @classmethod
    def _default_margin(cls, value: Any, info: ValidationInfo) -> Any:
        if value in (None, ""):
            if info.field_name == "footer_first_margin_bottom":
                return DEFAULT_FIRST_PAGE_MARGIN_BOTTOM
            return DEFAULT_OTHER_PAGES_MARGIN_BOTTOM
        return value

    @field_validator("content_disposition_type", mode="before")
    @classmethod
    def _default_disposition(cls, value: Any) -> Any:
        return value or "attachment"

    @classmethod
    def from_request(cls, options: Mapping[str, Any], body: Any = None) -> PdfOptions:
        """
        Build PDF options from query options, letting footer fields of a JSON
        object body override their query counterparts.
        """
        merged = dict(options)
        if isinstance(body, Mapping):
            for name in FOOTER_BODY_FIELDS:
                if body.get(name) is not None:
                    merged[name] = body[name]
        return cls.from_options(merged)

    @property
    def two_pass(self) -> bool:
        return self.footer_template is not None

    def to_pdf_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for ``Page.pdf`` of a single-pass render."""
        kwargs: dict[str, Any] = {
            "scale": self.scale,
            "display_header_footer": self.display_header_footer,
            "print_background": self.print_background,
            "landscape": self.landscape,
            "prefer_css_page_size": self.prefer_css_page_size,
            "outline": self.outline,
            "tagged": self.tagged,
        }
        for name in ("format", "width", "height", "page_ranges", "header_template", "footer_template"):
            value = getattr(self, name)
            if value is not None:
                kwargs[name] = value
        if self.margin is not None:
            kwargs["margin"] = self.margin.model_dump(exclude_none=True)
        return kwargs

    def to_footer_pass_kwargs(self, page_ranges: str, margin_bottom: str) -> dict[str, Any]:
        """Keyword arguments for one pass of a two-pass render."""
        kwargs = self.to_pdf_kwargs()
        margin = dict(kwargs.get("margin", {}))
        margin["bottom"] = margin_bottom
        kwargs.update(
            display_header_footer=True,
            page_ranges=page_ranges,
            footer_template=self.footer_template,
            margin=margin,
        )
        return kwargs


class ClipArea(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    x: float
    y: float
    width: float = Field(gt=0)
    height: float = Field(gt=0)


class ScreenshotOptions(QueryOptions):
    """
    Options for screenshot capture.

    ``quality`` only applies to jpeg; png captures ignore it.
    """

    width: int = Field(800, ge=1, le=16384)
    height: int = Field(600, ge=1, le=16384)
    full_page: bool = Field(False, alias="fullPage")
    omit_background: bool = Field(False, alias="omitBackground")
    screenshot_type: Literal["png", "jpeg"] = Field("png", alias="screenshotType")
    quality: int | None = Field(None, ge=0, le=100)
    animation_timeout: float = Field(0, ge=0, alias="animationTimeout")
    clip: ClipArea | None = None

    @field_validator("full_page", "omit_background", mode="before")
    @classmethod
    def _coerce_bool(cls, value: Any) -> bool:
        return parse_bool(value)

    @field_validator("width", "height", "quality", "animation_timeout", "screenshot_type", mode="before")
    @classmethod
    def _empty_as_default(cls, value: Any, info: ValidationInfo) -> Any:
        if value in (None, ""):
            return cls.model_fields[info.field_name].default
        return value

    @property
    def effective_quality(self) -> int:
        """Quality sent to the engine: 0 (ignored) for png, else the requested value or 100."""
        if self.screenshot_type == "png":
            return 0
        return self.quality or 100

    @property
    def content_type(self) -> str:
        return f"image/{self.screenshot_type}"

    def to_screenshot_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for ``Page.screenshot``."""
        kwargs: dict[str, Any] = {
            "type": self.screenshot_type,
            "full_page": self.full_page,
            "omit_background": self.omit_background,
        }
        if self.screenshot_type != "png":
            kwargs["quality"] = self.effective_quality
        if self.clip is not None:
            kwargs["clip"] = self.clip.model_dump()
        return kwargs
