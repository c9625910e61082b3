from datetime import timedelta

from middlekit.monitor_index import (
    DEFAULT_CHART_JS_URL,
    DEFAULT_FONT_URL,
    DEFAULT_REFRESH,
    DEFAULT_TITLE,
    INDEX_HTML,
    TIMEOUT_DIFF,
    ViewBag,
    new_index,
)


def _view(**overrides):
    values = dict(
        title=DEFAULT_TITLE,
        refresh=DEFAULT_REFRESH,
        font_url=DEFAULT_FONT_URL,
        chart_js_url=DEFAULT_CHART_JS_URL,
        custom_head="",
    )
    values.update(overrides)
    return ViewBag(**values)


def test_title_is_substituted():
    html = new_index(_view(title="Dashboard"))
    assert "<title>Dashboard</title>" in html
    assert "<h1>Dashboard</h1>" in html


def test_no_placeholders_remain():
    html = new_index(_view())
    for placeholder in ("$TITLE", "$TIMEOUT", "$FONT_URL", "$CHART_JS_URL", "$CUSTOM_HEAD"):
        assert placeholder not in html


def test_urls_are_substituted():
    html = new_index(_view(font_url="/static/font.css", chart_js_url="/static/chart.js"))
    assert '<link href="/static/font.css" rel="stylesheet">' in html
    assert '<script src="/static/chart.js"></script>' in html


def test_timeout_is_clamped_to_minimum():
    html = new_index(_view(refresh=timedelta(milliseconds=300)))
    assert f"setTimeout(fetchJSON, {TIMEOUT_DIFF})" in html


def test_timeout_clamped_for_zero_refresh():
    html = new_index(_view(refresh=timedelta(0)))
    assert f"setTimeout(fetchJSON, {TIMEOUT_DIFF})" in html


def test_substitution_is_single_pass():
    html = new_index(_view(title="T", custom_head="$TITLE"))
    assert "\n$TITLE\n</style>" in html


def test_template_keeps_surrounding_text():
    html = new_index(_view())
    assert html.startswith("<!DOCTYPE html>")
    assert html.endswith("</html>\n")
    assert len(INDEX_HTML.splitlines()) == len(html.splitlines())