"""HTTP server span and metric attributes following OpenTelemetry conventions."""

from __future__ import annotations

import base64
import binascii
from typing import Any, Callable, Optional
from urllib.parse import quote

Attribute = tuple[str, Any]


def has_basic_auth(auth: str) -> tuple[str, bool]:
    """Return the user name from a Basic Authorization value, and whether one was found."""
    if not auth or not auth.startswith("Basic "):
        return "", False
    try:
        raw = base64.b64decode(auth[6:], validate=True)
    except (binascii.Error, ValueError):
        return "", False
    creds = raw.decode("utf-8", errors="replace")
    user, sep, _ = creds.partition(":")
    if not sep:
        return "", False
    return user, True


def http_flavor(environ: dict) -> Attribute:
    """The http.flavor attribute: 1.1 for HTTP/1.1, otherwise 1.0."""
    if environ.get("SERVER_PROTOCOL", "") == "HTTP/1.1":
        return ("http.flavor", "1.1")
    return ("http.flavor", "1.0")


def _hostname(environ: dict) -> str:
    host = environ.get("HTTP_HOST") or environ.get("SERVER_NAME", "")
    if host.startswith("["):
        return host[: host.find("]") + 1]
    return host.rsplit(":", 1)[0] if ":" in host else host


def _request_uri(environ: dict) -> str:
    uri = quote(environ.get("SCRIPT_NAME", "") + environ.get("PATH_INFO", ""), safe="/:@!$&'()*+,;=-._~")
    query = environ.get("QUERY_STRING", "")
    return f"{uri}?{query}" if query else uri


def _common_tail(port: Optional[int], server_name: Optional[str]) -> list[Attribute]:
    attrs: list[Attribute] = []
    if port is not None:
        attrs.append(("net.host.port", port))
    if server_name is not None:
        attrs.append(("http.server_name", server_name))
    return attrs


def server_metric_attributes(
    environ: dict,
    port: Optional[int] = None,
    server_name: Optional[str] = None,
    custom: Optional[Callable[[dict], list[Attribute]]] = None,
) -> list[Attribute]:
    """Attributes recorded on request metrics."""
    attrs: list[Attribute] = [
        http_flavor(environ),
        ("http.method", environ.get("REQUEST_METHOD", "GET")),
        ("http.scheme", environ.get("wsgi.url_scheme", "http")),
        ("net.host.name", _hostname(environ)),
    ]
    attrs += _common_tail(port, server_name)
    if custom is not None:
        attrs += custom(environ)
    return attrs


def server_trace_attributes(
    environ: dict,
    port: Optional[int] = None,
    server_name: Optional[str] = None,
    collect_client_ip: bool = True,
    custom: Optional[Callable[[dict], list[Attribute]]] = None,
) -> list[Attribute]:
    """Attributes recorded on the request's server span."""
    try:
        length = int(environ.get("CONTENT_LENGTH") or 0)
    except ValueError:
        length = 0
    uri = _request_uri(environ)
    attrs: list[Attribute] = [
        http_flavor(environ),
        ("http.method", environ.get("REQUEST_METHOD", "GET")),
        ("http.request_content_length", length),
        ("http.scheme", environ.get("wsgi.url_scheme", "http")),
        ("http.target", uri),
        ("http.url", uri),
        ("http.user_agent", environ.get("HTTP_USER_AGENT", "")),
        ("net.host.name", _hostname(environ)),
        ("net.transport", "ip_tcp"),
    ]
    attrs += _common_tail(port, server_name)
    user, ok = has_basic_auth(environ.get("HTTP_AUTHORIZATION", ""))
    if ok:
        attrs.append(("enduser.id", user))
    if collect_client_ip:
        client_ip = environ.get("REMOTE_ADDR", "")
        if client_ip:
            attrs.append(("http.client_ip", client_ip))
    if custom is not None:
        attrs += custom(environ)
    return attrs