"""WSGI middleware serving a Swagger UI page and its spec document."""

from __future__ import annotations

import html
import json
import posixpath
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

import yaml

DEFAULT_BASE_PATH = "/"
DEFAULT_FILE_PATH = "./swagger.json"
DEFAULT_PATH = "docs"
DEFAULT_TITLE = "Fiber API documentation"
DEFAULT_CACHE_AGE = 3600

_UI_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <title>{title}</title>
  <link rel="stylesheet" type="text/css" href="https://unpkg.com/swagger-ui-dist/swagger-ui.css">
  <style>
    html {{ box-sizing: border-box; overflow-y: scroll; }}
    *, *:before, *:after {{ box-sizing: inherit; }}
    body {{ margin: 0; background: #fafafa; }}
  </style>
</head>
<body>
<div id="swagger-ui"></div>
<script src="https://unpkg.com/swagger-ui-dist/swagger-ui-bundle.js"></script>
<script src="https://unpkg.com/swagger-ui-dist/swagger-ui-standalone-preset.js"></script>
<script>
window.onload = function() {{
  window.ui = SwaggerUIBundle({{
    url: {spec_url},
    dom_id: '#swagger-ui',
    deepLinking: true,
    presets: [SwaggerUIBundle.presets.apis, SwaggerUIStandalonePreset],
    plugins: [SwaggerUIBundle.plugins.DownloadUrl],
    layout: "StandaloneLayout"
  }});
}};
</script>
</body>
</html>
"""


class InvalidSpecError(ValueError):
    """The spec is neither a JSON nor a YAML mapping."""


@dataclass
class Config:
    """Middleware settings; empty or zero fields take their defaults."""

    next: Optional[Callable[[dict], bool]] = None
    base_path: str = DEFAULT_BASE_PATH
    file_path: str = DEFAULT_FILE_PATH
    file_content: Optional[bytes] = None
    path: str = DEFAULT_PATH
    title: str = DEFAULT_TITLE
    cache_age: int = DEFAULT_CACHE_AGE

    def __post_init__(self) -> None:
        self.base_path = self.base_path or DEFAULT_BASE_PATH
        self.file_path = self.file_path or DEFAULT_FILE_PATH
        self.path = self.path or DEFAULT_PATH
        self.title = self.title or DEFAULT_TITLE
        if self.cache_age == 0:
            self.cache_age = DEFAULT_CACHE_AGE


def _join(*parts: str) -> str:
    joined = "/".join(p for p in parts if p)
    if not joined:
        return ""
    cleaned = posixpath.normpath(joined)
    if cleaned.startswith("//"):
        cleaned = "/" + cleaned.lstrip("/")
    return cleaned


def _is_json_mapping(raw: bytes) -> bool:
    try:
        return isinstance(json.loads(raw), dict)
    except (ValueError, UnicodeDecodeError):
        return False


def _is_yaml_mapping(raw: bytes) -> bool:
    try:
        value: Any = yaml.safe_load(raw)
    except yaml.YAMLError:
        return False
    return value is None or isinstance(value, dict)


def load_spec(config: Config) -> bytes:
    """Return the spec bytes, from ``file_content`` or the file; check they parse."""
    raw = config.file_content or b""
    from_file = not raw
    if from_file:
        spec_file = Path(config.file_path)
        if not spec_file.exists():
            raise FileNotFoundError(f"{config.file_path} file does not exist")
        raw = spec_file.read_bytes()
    if not _is_json_mapping(raw) and not _is_yaml_mapping(raw):
        if from_file:
            raise InvalidSpecError(f"Invalid Swagger spec file: {config.file_path}")
        raise InvalidSpecError(f"Invalid Swagger spec: {raw.decode(errors='replace')}")
    return raw


def render_ui(title: str, spec_url: str) -> str:
    """The Swagger UI page loading the spec from ``spec_url``."""
    return _UI_TEMPLATE.format(title=html.escape(title), spec_url=json.dumps(spec_url))


class SwaggerMiddleware:
    """Answers the UI and spec paths; passes every other request on."""

    def __init__(self, app: Callable, config: Optional[Config] = None) -> None:
        self.app = app
        self.config = config if config is not None else Config()
        self.spec = load_spec(self.config)
        self.spec_url = _join(self.config.base_path, self.config.file_path)
        self.ui_path = _join(self.config.base_path, self.config.path)
        self._page = render_ui(self.config.title, self.spec_url).encode()

    def __call__(self, environ: dict, start_response: Callable) -> Iterable[bytes]:
        cfg = self.config
        if cfg.next is not None and cfg.next(environ):
            return self.app(environ, start_response)

        path = environ.get("PATH_INFO", "") or "/"
        if path == self.ui_path:
            return self._respond(start_response, "200 OK", "text/html; charset=utf-8", self._page)
        if path != self.spec_url:
            return self.app(environ, start_response)

        cache = [("Cache-Control", f"public, max-age={cfg.cache_age}")]
        if path.endswith((".yaml", ".yml")):
            return self._respond(start_response, "200 OK", "application/yaml", self.spec, cache)
        if path.endswith(".json"):
            return self._respond(start_response, "200 OK", "application/json", self.spec, cache)
        return self._respond(start_response, "404 Not Found", "text/plain; charset=utf-8", b"404 page not found\n")

    @staticmethod
    def _respond(
        start_response: Callable,
        status: str,
        content_type: str,
        body: bytes,
        extra: Optional[list[tuple[str, str]]] = None,
    ) -> list[bytes]:
        headers = [("Content-Type", content_type), ("Content-Length", str(len(body)))]
        headers += extra or []
        start_response(status, headers)
        return [body]