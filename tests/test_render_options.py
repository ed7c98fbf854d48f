import pytest

from app.render_options import (
    DEFAULT_NAVIGATION_TIMEOUT_MS,
    InvalidOptionError,
    NavigationOptions,
    PdfOptions,
    ScreenshotOptions,
    parse_bool,
    parse_query_options,
)


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("true", True),
        ("TRUE", True),
        (True, True),
        ("false", False),
        ("1", False),
        ("yes", False),
        ("", False),
        (None, False),
        (False, False),
    ],
)
def test_parse_bool(value, expected):
    assert parse_bool(value) is expected


def test_parse_query_options_expands_dotted_keys():
    options = parse_query_options([("margin.top", "1cm"), ("margin.bottom", "2cm"), ("format", "A4")])

    assert options == {"margin": {"top": "1cm", "bottom": "2cm"}, "format": "A4"}


def test_parse_query_options_last_value_wins():
    assert parse_query_options([("scale", "0.5"), ("scale", "0.8")]) == {"scale": "0.8"}


def test_parse_query_options_nested_replaces_plain_value():
    options = parse_query_options([("clip", "x"), ("clip.x", "10")])

    assert options == {"clip": {"x": "10"}}


def test_parse_query_options_ignores_empty_key():
    assert parse_query_options([(".", "1"), ("", "2")]) == {}


class TestNavigationOptions:
    def test_defaults(self):
        navigation = NavigationOptions.from_options({})

        assert navigation.timeout == DEFAULT_NAVIGATION_TIMEOUT_MS
        assert navigation.wait_until == "networkidle"
        assert navigation.credentials is None
        assert navigation.emulate_media_type is None

    def test_zero_timeout_means_default(self):
        assert NavigationOptions.from_options({"timeout": "0"}).timeout == DEFAULT_NAVIGATION_TIMEOUT_MS

    def test_timeout_parsed(self):
        assert NavigationOptions.from_options({"timeout": "5000"}).timeout == 5000

    @pytest.mark.parametrize("value", ["abc", "-1"])
    def test_invalid_timeout_rejected(self, value):
        with pytest.raises(InvalidOptionError, match="timeout"):
            NavigationOptions.from_options({"timeout": value})

    @pytest.mark.parametrize(("value", "expected"), [("networkidle0", "networkidle"), ("networkidle2", "networkidle"), ("load", "load"), ("", "networkidle")])
    def test_wait_until(self, value, expected):
        assert NavigationOptions.from_options({"waitUntil": value}).wait_until == expected

    def test_unknown_wait_until_rejected(self):
        with pytest.raises(InvalidOptionError):
            NavigationOptions.from_options({"waitUntil": "whenever"})

    def test_nested_wait_until_rejected(self):
        with pytest.raises(InvalidOptionError, match="waitUntil"):
            NavigationOptions.from_options(parse_query_options([("waitUntil.x", "load")]))

    def test_credentials_from_dotted_keys(self):
        options = parse_query_options([("credentials.username", "alice"), ("credentials.password", "secret")])

        navigation = NavigationOptions.from_options(options)

        assert navigation.credentials is not None
        assert navigation.credentials.model_dump() == {"username": "alice", "password": "secret"}

    def test_with_media_type_keeps_explicit_choice(self):
        navigation = NavigationOptions.from_options({"emulateMediaType": "screen"})

        assert navigation.with_media_type("print").emulate_media_type == "screen"

    def test_with_media_type_sets_missing_choice(self):
        navigation = NavigationOptions.from_options({})

        assert navigation.with_media_type("print").emulate_media_type == "print"
        assert navigation.emulate_media_type is None


class TestPdfOptions:
    def test_single_pass_kwargs(self):
        options = PdfOptions.from_options(parse_query_options([("format", "A4"), ("printBackground", "true"), ("landscape", "yes"), ("margin.top", "1cm")]))

        kwargs = options.to_pdf_kwargs()

        assert not options.two_pass
        assert kwargs["format"] == "A4"
        assert kwargs["print_background"] is True
        assert kwargs["landscape"] is False
        assert kwargs["margin"] == {"top": "1cm"}
        assert "footer_template" not in kwargs
        assert "page_ranges" not in kwargs

    @pytest.mark.parametrize("value", ["abc", "0", "3"])
    def test_invalid_scale_rejected(self, value):
        with pytest.raises(InvalidOptionError, match="scale"):
            PdfOptions.from_options({"scale": value})

    def test_invalid_disposition_rejected(self):
        with pytest.raises(InvalidOptionError):
            PdfOptions.from_options({"contentDispositionType": "download"})

    def test_footer_template_enables_two_pass(self):
        options = PdfOptions.from_options({"footerTemplate": "<span class='pageNumber'></span>"})

        assert options.two_pass
        assert options.footer_first_margin_bottom == "35px"
        assert options.footer_other_margin_bottom == "78px"

    def test_footer_pass_kwargs(self):
        options = PdfOptions.from_options({"footerTemplate": "<b>f</b>", "margin": {"top": "1cm", "bottom": "5cm"}})

        kwargs = options.to_footer_pass_kwargs("2-", "78px")

        assert kwargs["page_ranges"] == "2-"
        assert kwargs["display_header_footer"] is True
        assert kwargs["footer_template"] == "<b>f</b>"
        assert kwargs["margin"] == {"top": "1cm", "bottom": "78px"}

    def test_body_footer_fields_override_query(self):
        query = {"footerTemplate": "query", "footerFirstMarginBottom": "10px"}
        body = {"footerTemplate": "body", "footerOtherMarginBottom": "90px", "unrelated": 1}

        options = PdfOptions.from_request(query, body)

        assert options.footer_template == "body"
        assert options.footer_first_margin_bottom == "10px"
        assert options.footer_other_margin_bottom == "90px"

    def test_non_mapping_body_ignored(self):
        options = PdfOptions.from_request({"format": "A4"}, ["footerTemplate"])

        assert options.format == "A4"
        assert not options.two_pass


class TestScreenshotOptions:
    def test_defaults(self):
        options = ScreenshotOptions.from_options({})

        assert (options.width, options.height) == (800, 600)
        assert options.screenshot_type == "png"
        assert options.effective_quality == 0
        assert options.content_type == "image/png"
        assert options.to_screenshot_kwargs() == {"type": "png", "full_page": False, "omit_background": False}

    def test_jpeg_default_quality(self):
        options = ScreenshotOptions.from_options({"screenshotType": "jpeg"})

        assert options.effective_quality == 100
        assert options.to_screenshot_kwargs()["quality"] == 100

    def test_jpeg_quality(self):
        options = ScreenshotOptions.from_options({"screenshotType": "jpeg", "quality": "40"})

        assert options.to_screenshot_kwargs()["quality"] == 40

    def test_png_never_sends_quality(self):
        options = ScreenshotOptions.from_options({"quality": "40"})

        assert "quality" not in options.to_screenshot_kwargs()

    def test_bool_flags(self):
        options = ScreenshotOptions.from_options({"fullPage": "true", "omitBackground": "1"})

        assert options.full_page is True
        assert options.omit_background is False

    def test_empty_values_fall_back_to_defaults(self):
        options = ScreenshotOptions.from_options({"width": "", "height": "", "quality": ""})

        assert (options.width, options.height, options.quality) == (800, 600, None)

    def test_clip(self):
        options = ScreenshotOptions.from_options(parse_query_options([("clip.x", "1"), ("clip.y", "2"), ("clip.width", "30"), ("clip.height", "40")]))

        assert options.to_screenshot_kwargs()["clip"] == {"x": 1, "y": 2, "width": 30, "height": 40}

    @pytest.mark.parametrize(("name", "value"), [("width", "wide"), ("height", "0"), ("quality", "101"), ("screenshotType", "gif")])
    def test_invalid_values_rejected(self, name, value):
        with pytest.raises(InvalidOptionError):
            ScreenshotOptions.from_options({name: value})
