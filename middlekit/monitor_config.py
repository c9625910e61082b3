"""Configuration for the monitor middleware."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import timedelta
from typing import Any, Callable, Optional

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


@dataclass
class Config:
    """Monitor settings; empty or zero fields take their defaults."""

    title: str = ""
    refresh: timedelta = timedelta(0)
    api_only: bool = False
    next: Optional[Callable[[Any], bool]] = None
    custom_head: str = ""
    font_url: str = ""
    chart_js_url: str = ""
    index: str = field(default="", repr=False)

    def _view(self) -> ViewBag:
        return ViewBag(
            title=self.title,
            refresh=self.refresh,
            font_url=self.font_url,
            chart_js_url=self.chart_js_url,
            custom_head=self.custom_head,
        )


CONFIG_DEFAULT = Config(
    title=DEFAULT_TITLE,
    refresh=DEFAULT_REFRESH,
    font_url=DEFAULT_FONT_URL,
    chart_js_url=DEFAULT_CHART_JS_URL,
    custom_head=DEFAULT_CUSTOM_HEAD,
    api_only=False,
    next=None,
)
CONFIG_DEFAULT.index = new_index(CONFIG_DEFAULT._view())


def config_default(config: Optional[Config] = None) -> Config:
    """Return a copy of ``config`` with defaults filled in and the page rendered."""
    default = CONFIG_DEFAULT
    if (
        default.title != DEFAULT_TITLE
        or default.refresh != DEFAULT_REFRESH
        or default.font_url != DEFAULT_FONT_URL
        or default.chart_js_url != DEFAULT_CHART_JS_URL
        or default.custom_head != DEFAULT_CUSTOM_HEAD
    ):
        # The shared default was changed, so its page must follow.
        if default.refresh < MIN_REFRESH:
            default.refresh = MIN_REFRESH
        default.index = new_index(default._view())

    if config is None:
        return replace(default)

    cfg = replace(config)
    if not cfg.title:
        cfg.title = default.title
    if cfg.refresh == timedelta(0):
        cfg.refresh = default.refresh
    if not cfg.font_url:
        cfg.font_url = DEFAULT_FONT_URL
    if not cfg.chart_js_url:
        cfg.chart_js_url = DEFAULT_CHART_JS_URL
    if cfg.refresh < MIN_REFRESH:
        cfg.refresh = MIN_REFRESH
    if cfg.next is None:
        cfg.next = default.next
    if not cfg.api_only:
        cfg.api_only = default.api_only

    cfg.index = new_index(cfg._view())
    return cfg