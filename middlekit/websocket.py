"""Websocket helpers: connection context, handshake checks and close frames."""

from __future__ import annotations

import base64
import binascii
import hashlib
import json
import struct
import sys
import traceback
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Callable, Iterable, Mapping, Optional, Protocol
from urllib.parse import parse_qsl

# Close codes defined in RFC 6455, section 11.7.
CLOSE_NORMAL_CLOSURE = 1000
CLOSE_GOING_AWAY = 1001
CLOSE_PROTOCOL_ERROR = 1002
CLOSE_UNSUPPORTED_DATA = 1003
CLOSE_NO_STATUS_RECEIVED = 1005
CLOSE_ABNORMAL_CLOSURE = 1006
CLOSE_INVALID_FRAME_PAYLOAD_DATA = 1007
CLOSE_POLICY_VIOLATION = 1008
CLOSE_MESSAGE_TOO_BIG = 1009
CLOSE_MANDATORY_EXTENSION = 1010
CLOSE_INTERNAL_SERVER_ERR = 1011
CLOSE_SERVICE_RESTART = 1012
CLOSE_TRY_AGAIN_LATER = 1013
CLOSE_TLS_HANDSHAKE = 1015

# Message types defined in RFC 6455, section 11.8.
TEXT_MESSAGE = 1
BINARY_MESSAGE = 2
CLOSE_MESSAGE = 8
PING_MESSAGE = 9
PONG_MESSAGE = 10

_ACCEPT_GUID = "258EAFA5-E914-47DA-95CA-C5AB0DC85B11"

_CLOSE_NAMES = {
    CLOSE_NORMAL_CLOSURE: "normal",
    CLOSE_GOING_AWAY: "going away",
    CLOSE_PROTOCOL_ERROR: "protocol error",
    CLOSE_UNSUPPORTED_DATA: "unsupported data",
    CLOSE_NO_STATUS_RECEIVED: "no status",
    CLOSE_ABNORMAL_CLOSURE: "abnormal closure",
    CLOSE_INVALID_FRAME_PAYLOAD_DATA: "invalid payload data",
    CLOSE_POLICY_VIOLATION: "policy violation",
    CLOSE_MESSAGE_TOO_BIG: "message too big",
    CLOSE_MANDATORY_EXTENSION: "mandatory extension missing",
    CLOSE_INTERNAL_SERVER_ERR: "internal server error",
    CLOSE_TLS_HANDSHAKE: "TLS handshake error",
}


class CloseError(Exception):
    """A close frame received from the peer."""

    def __init__(self, code: int, text: str = "") -> None:
        self.code = code
        self.text = text
        name = _CLOSE_NAMES.get(code, "")
        message = f"websocket: close {code}"
        if name:
            message += f" ({name})"
        if text:
            message += f": {text}"
        super().__init__(message)


class UpgradeRequiredError(Exception):
    """The request cannot be upgraded to the websocket protocol (HTTP 426)."""

    status = 426


class Transport(Protocol):
    """Something that can write websocket frames."""

    def write_message(self, mtype: int, data: bytes) -> None: ...


def _default_recover(conn: "Conn", error: BaseException) -> None:
    """Print the traceback and send the error to the client as JSON."""
    sys.stderr.write(f"panic: {error}\n")
    traceback.print_exception(type(error), error, error.__traceback__, file=sys.stderr)
    try:
        conn.write_json({"error": str(error)})
    except Exception as exc:  # the connection may already be unusable
        sys.stderr.write(f"could not write error response: {exc}\n")


@dataclass
class Config:
    """Upgrade settings; empty fields take their defaults."""

    filter: Optional[Callable[[dict], bool]] = None
    handshake_timeout: timedelta = timedelta(0)
    subprotocols: list[str] = field(default_factory=list)
    origins: list[str] = field(default_factory=list)
    read_buffer_size: int = 0
    write_buffer_size: int = 0
    recover_handler: Optional[Callable[["Conn", BaseException], None]] = None

    def __post_init__(self) -> None:
        if not self.origins:
            self.origins = ["*"]
        if self.read_buffer_size == 0:
            self.read_buffer_size = 1024
        if self.write_buffer_size == 0:
            self.write_buffer_size = 1024
        if self.recover_handler is None:
            self.recover_handler = _default_recover


def _canonical_header(name: str) -> str:
    return "-".join(part.capitalize() for part in name.split("-"))


def _environ_headers(environ: Mapping[str, Any]) -> dict[str, str]:
    headers: dict[str, str] = {}
    for key, value in environ.items():
        if key.startswith("HTTP_"):
            name = key[5:]
        elif key in ("CONTENT_TYPE", "CONTENT_LENGTH"):
            name = key
        else:
            continue
        if key in ("CONTENT_TYPE", "CONTENT_LENGTH") and not value:
            continue
        headers[_canonical_header(name.replace("_", "-"))] = str(value)
    return headers


def _parse_cookies(header: str) -> dict[str, str]:
    cookies: dict[str, str] = {}
    for piece in header.split(";"):
        name, sep, value = piece.strip().partition("=")
        if sep and name:
            cookies[name.strip()] = value.strip().strip('"')
    return cookies


def _lookup(values: Mapping[str, str], key: str, defaults: tuple) -> str:
    if key not in values and defaults:
        return defaults[0]
    return values.get(key, "")


class Conn:
    """Request context carried over into a websocket connection."""

    def __init__(
        self,
        *,
        locals: Optional[Mapping[str, Any]] = None,
        params: Optional[Mapping[str, str]] = None,
        queries: Optional[Mapping[str, str]] = None,
        cookies: Optional[Mapping[str, str]] = None,
        headers: Optional[Mapping[str, str]] = None,
        ip: str = "",
        transport: Optional[Transport] = None,
    ) -> None:
        self._locals = dict(locals or {})
        self._params = dict(params or {})
        self._queries = dict(queries or {})
        self._cookies = dict(cookies or {})
        self._headers = dict(headers or {})
        self.ip = ip
        self.transport = transport

    @classmethod
    def from_environ(cls, environ: Mapping[str, Any], locals: Optional[Mapping[str, Any]] = None) -> "Conn":
        """Copy locals, route params, query, cookies, headers and client address from a request."""
        routing = environ.get("wsgiorg.routing_args")
        params = {str(k): str(v) for k, v in routing[1].items()} if routing else {}
        return cls(
            locals=locals,
            params=params,
            queries=dict(parse_qsl(environ.get("QUERY_STRING", ""), keep_blank_values=True)),
            cookies=_parse_cookies(environ.get("HTTP_COOKIE", "")),
            headers=_environ_headers(environ),
            ip=environ.get("REMOTE_ADDR", ""),
        )

    def locals(self, key: str, *args: Any) -> Any:
        """Return the local value for ``key``, or set it when a value is given."""
        if not args:
            return self._locals.get(key)
        self._locals[key] = args[0]
        return args[0]

    def params(self, key: str, *args: str) -> str:
        """Route parameter, or the given default (else "") when missing."""
        return _lookup(self._params, key, args)

    def query(self, key: str, *args: str) -> str:
        """Query string value, or the given default (else "") when missing."""
        return _lookup(self._queries, key, args)

    def cookies(self, key: str, *args: str) -> str:
        """Cookie value, or the given default (else "") when missing."""
        return _lookup(self._cookies, key, args)

    def headers(self, key: str, *args: str) -> str:
        """Header value, or the given default (else "") when missing."""
        return _lookup(self._headers, key, args)

    def write_message(self, mtype: int, data: bytes) -> None:
        """Write one frame on the underlying transport."""
        if self.transport is None:
            raise RuntimeError("websocket: connection is not established")
        self.transport.write_message(mtype, data)

    def write_json(self, value: Any) -> None:
        """Write ``value`` as a JSON text message."""
        self.write_message(TEXT_MESSAGE, json.dumps(value).encode())


def format_close_message(close_code: int, text: str) -> bytes:
    """Close frame payload; empty for CLOSE_NO_STATUS_RECEIVED."""
    if close_code == CLOSE_NO_STATUS_RECEIVED:
        return b""
    return struct.pack(">H", close_code) + text.encode()


def is_close_error(err: BaseException, *args: int) -> bool:
    """Whether ``err`` is a CloseError with one of the given codes."""
    return isinstance(err, CloseError) and err.code in args


def is_unexpected_close_error(err: BaseException, *args: int) -> bool:
    """Whether ``err`` is a CloseError with a code not among the expected ones."""
    return isinstance(err, CloseError) and err.code not in args


def _has_token(value: str, token: str) -> bool:
    return any(part.strip().lower() == token for part in value.split(","))


def is_websocket_upgrade(environ: Mapping[str, Any]) -> bool:
    """Whether the client asked to upgrade to the websocket protocol."""
    return _has_token(environ.get("HTTP_CONNECTION", ""), "upgrade") and _has_token(
        environ.get("HTTP_UPGRADE", ""), "websocket"
    )


def check_origin(origins: Iterable[str], origin: str) -> bool:
    """Whether ``origin`` is allowed; a leading "*" (or no list) allows all."""
    allowed = list(origins)
    if not allowed or allowed[0] == "*":
        return True
    return origin in allowed


def accept_key(key: str) -> str:
    """The Sec-WebSocket-Accept value for a client key."""
    digest = hashlib.sha1((key + _ACCEPT_GUID).encode()).digest()
    return base64.b64encode(digest).decode()


def _valid_challenge_key(key: str) -> bool:
    if not key:
        return False
    try:
        return len(base64.b64decode(key, validate=True)) == 16
    except (binascii.Error, ValueError):
        return False


def handshake_headers(environ: Mapping[str, Any], config: Optional[Config] = None) -> list[tuple[str, str]]:
    """Response headers for a 101 upgrade; raise UpgradeRequiredError if the request does not qualify."""
    cfg = config if config is not None else Config()
    if environ.get("REQUEST_METHOD", "GET").upper() != "GET":
        raise UpgradeRequiredError("websocket: the client is not using the websocket protocol: request method is not GET")
    if not _has_token(environ.get("HTTP_CONNECTION", ""), "upgrade"):
        raise UpgradeRequiredError("websocket: the client is not using the websocket protocol: 'upgrade' token not found in 'Connection' header")
    if not _has_token(environ.get("HTTP_UPGRADE", ""), "websocket"):
        raise UpgradeRequiredError("websocket: the client is not using the websocket protocol: 'websocket' token not found in 'Upgrade' header")
    if not _has_token(environ.get("HTTP_SEC_WEBSOCKET_VERSION", ""), "13"):
        raise UpgradeRequiredError("websocket: unsupported version: 13 not found in 'Sec-Websocket-Version' header")
    if not check_origin(cfg.origins, environ.get("HTTP_ORIGIN", "")):
        raise UpgradeRequiredError("websocket: request origin not allowed by FastHTTPUpgrader.CheckOrigin")
    key = environ.get("HTTP_SEC_WEBSOCKET_KEY", "").strip()
    if not _valid_challenge_key(key):
        raise UpgradeRequiredError("websocket: not a websocket handshake: 'Sec-WebSocket-Key' header must be Base64 encoded value of 16-byte in length")

    headers = [
        ("Upgrade", "websocket"),
        ("Connection", "Upgrade"),
        ("Sec-WebSocket-Accept", accept_key(key)),
    ]
    requested = [p.strip() for p in environ.get("HTTP_SEC_WEBSOCKET_PROTOCOL", "").split(",") if p.strip()]
    for protocol in cfg.subprotocols:
        if protocol in requested:
            headers.append(("Sec-WebSocket-Protocol", protocol))
            break
    return headers