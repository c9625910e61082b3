from dataclasses import replace
from datetime import timedelta

from middlekit import monitor_config
from middlekit.monitor_config import Config, config_default
from middlekit.monitor_index import (
    DEFAULT_CHART_JS_URL,
    DEFAULT_CUSTOM_HEAD,
    DEFAULT_FONT_URL,
    DEFAULT_REFRESH,
    DEFAULT_TITLE,
    MIN_REFRESH,
    ViewBag,
    new_index,
)


def _index(title=DEFAULT_TITLE, refresh=DEFAULT_REFRESH, font=DEFAULT_FONT_URL,
           chart=DEFAULT_CHART_JS_URL, head=DEFAULT_CUSTOM_HEAD):
    return new_index(ViewBag(title, refresh, font, chart, head))


def test_use_default():
    cfg = config_default()
    assert cfg.title == DEFAULT_TITLE
    assert cfg.refresh == DEFAULT_REFRESH
    assert cfg.font_url == DEFAULT_FONT_URL
    assert cfg.chart_js_url == DEFAULT_CHART_JS_URL
    assert cfg.custom_head == DEFAULT_CUSTOM_HEAD
    assert cfg.api_only is False
    assert cfg.next is None
    assert cfg.index == _index()


def test_set_title():
    cfg = config_default(Config(title="title"))
    assert cfg.title == "title"
    assert cfg.refresh == DEFAULT_REFRESH
    assert cfg.font_url == DEFAULT_FONT_URL
    assert cfg.chart_js_url == DEFAULT_CHART_JS_URL
    assert cfg.custom_head == DEFAULT_CUSTOM_HEAD
    assert cfg.api_only is False
    assert cfg.next is None
    assert cfg.index == _index(title="title")


def test_set_refresh_less_than_default():
    cfg = config_default(Config(refresh=timedelta(milliseconds=100)))
    assert cfg.title == DEFAULT_TITLE
    assert cfg.refresh == MIN_REFRESH
    assert cfg.font_url == DEFAULT_FONT_URL
    assert cfg.chart_js_url == DEFAULT_CHART_JS_URL
    assert cfg.custom_head == DEFAULT_CUSTOM_HEAD
    assert cfg.api_only is False
    assert cfg.next is None
    assert cfg.index == _index(refresh=MIN_REFRESH)


def test_set_refresh():
    refresh = timedelta(seconds=1)
    cfg = config_default(Config(refresh=refresh))
    assert cfg.title == DEFAULT_TITLE
    assert cfg.refresh == refresh
    assert cfg.font_url == DEFAULT_FONT_URL
    assert cfg.chart_js_url == DEFAULT_CHART_JS_URL
    assert cfg.custom_head == DEFAULT_CUSTOM_HEAD
    assert cfg.api_only is False
    assert cfg.next is None
    assert cfg.index == _index(refresh=refresh)


def test_set_font_url():
    font_url = "https://example.com"
    cfg = config_default(Config(font_url=font_url))
    assert cfg.title == DEFAULT_TITLE
    assert cfg.refresh == DEFAULT_REFRESH
    assert cfg.font_url == font_url
    assert cfg.chart_js_url == DEFAULT_CHART_JS_URL
    assert cfg.custom_head == DEFAULT_CUSTOM_HEAD
    assert cfg.api_only is False
    assert cfg.next is None
    assert cfg.index == _index(font=font_url)


def test_set_chart_js_url():
    chart_url = "http://example.com"
    cfg = config_default(Config(chart_js_url=chart_url))
    assert cfg.title == DEFAULT_TITLE
    assert cfg.refresh == DEFAULT_REFRESH
    assert cfg.font_url == DEFAULT_FONT_URL
    assert cfg.chart_js_url == chart_url
    assert cfg.custom_head == DEFAULT_CUSTOM_HEAD
    assert cfg.api_only is False
    assert cfg.next is None
    assert cfg.index == _index(chart=chart_url)


def test_set_custom_head():
    cfg = config_default(Config(custom_head="head"))
    assert cfg.title == DEFAULT_TITLE
    assert cfg.refresh == DEFAULT_REFRESH
    assert cfg.font_url == DEFAULT_FONT_URL
    assert cfg.chart_js_url == DEFAULT_CHART_JS_URL
    assert cfg.custom_head == "head"
    assert cfg.api_only is False
    assert cfg.next is None
    assert cfg.index == _index(head="head")


def test_set_api_only():
    cfg = config_default(Config(api_only=True))
    assert cfg.title == DEFAULT_TITLE
    assert cfg.refresh == DEFAULT_REFRESH
    assert cfg.font_url == DEFAULT_FONT_URL
    assert cfg.chart_js_url == DEFAULT_CHART_JS_URL
    assert cfg.custom_head == DEFAULT_CUSTOM_HEAD
    assert cfg.api_only is True
    assert cfg.next is None
    assert cfg.index == _index()


def test_set_next():
    def skip(_ctx):
        return True

    cfg = config_default(Config(next=skip))
    assert cfg.title == DEFAULT_TITLE
    assert cfg.refresh == DEFAULT_REFRESH
    assert cfg.font_url == DEFAULT_FONT_URL
    assert cfg.chart_js_url == DEFAULT_CHART_JS_URL
    assert cfg.custom_head == DEFAULT_CUSTOM_HEAD
    assert cfg.api_only is False
    assert cfg.next(None) == skip(None)
    assert cfg.index == _index()


def test_input_is_not_modified():
    original = Config(title="mine")
    config_default(original)
    assert original.refresh == timedelta(0)
    assert original.index == ""


def test_changed_shared_default_rebuilds_index(monkeypatch):
    changed = replace(monitor_config.CONFIG_DEFAULT, title="Changed", refresh=timedelta(milliseconds=50))
    monkeypatch.setattr(monitor_config, "CONFIG_DEFAULT", changed)
    cfg = config_default()
    assert cfg.title == "Changed"
    assert cfg.refresh == MIN_REFRESH
    assert cfg.index == _index(title="Changed", refresh=MIN_REFRESH)
    derived = config_default(Config(api_only=True))
    assert derived.title == "Changed"