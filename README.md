# middlekit

WSGI middleware and helpers for web services:

- `middlekit.monitor`: a dashboard of process and host statistics (CPU,
  memory, load average, open TCP connections), served as an HTML page or as
  JSON.
- `middlekit.paseto_middleware`: admits requests that carry a valid PASETO v2
  token, local (encrypted) or public (signed).
- `middlekit.swagger`: serves an OpenAPI document (JSON or YAML) and a
  Swagger UI page for it.
- `middlekit.websocket`: opening-handshake checks, origin filtering,
  close-frame encoding and a connection object holding request data.
- `middlekit.socketio`: a pool of live connections with named events,
  broadcasting and targeted delivery.
- `middlekit.otel_semconv`: HTTP semantic-convention attributes for spans and
  metrics, built from a WSGI environ.

Requires Python 3.10 or later. Runtime dependencies: `psutil`, `pynacl`,
`pyyaml`.

## Monitor

```python
from middlekit.monitor import Monitor
from middlekit.monitor_config import Config

application = Monitor(wsgi_app, Config(title="My service"))
```

- A `GET` with `Accept: application/json`, or any `GET` when
  `Config.api_only` is true, returns the statistics as JSON with two objects:
  `pid` (`cpu`, `ram`, `conns`) and `os` (`cpu`, `ram`, `total_ram`,
  `load_avg`, `conns`).
- Any other `GET` returns the HTML dashboard, which polls the same URL for
  JSON.
- Other methods get `405 Method Not Allowed`.
- `Config.next`, when set and returning true for the environ, passes the
  request on to the wrapped application.

`config_default` in `middlekit.monitor_config` fills empty fields: title
`"Fiber Monitor"`, refresh 3 seconds (never less than 200 milliseconds), and
default font and Chart.js URLs. `Config.custom_head` is inserted into the
page's style section.

Statistics are sampled by one background thread per process, started by the
first `Monitor` created, at that monitor's refresh period. They can also be
read directly:

```python
import os
from middlekit.monitor import StatsCollector

collector = StatsCollector(os.getpid())
collector.update()
print(collector.snapshot())
```

The page itself is rendered by `new_index(ViewBag(...))` in
`middlekit.monitor_index`.

## PASETO authentication

```python
import os
from datetime import timedelta

from middlekit.paseto_config import Config
from middlekit.paseto_middleware import PasetoMiddleware
from middlekit.paseto_tokens import TokenPurpose, create_token

key = os.urandom(32)
application = PasetoMiddleware(wsgi_app, Config(symmetric_key=key, token_prefix="Bearer"))
issued = create_token(key, "user-42", timedelta(hours=1), TokenPurpose.LOCAL)
```

- The token is looked up according to `Config.token_lookup`, a pair of origin
  (`"header"`, `"query"`, `"param"`, `"cookie"`) and name; the default is the
  `Authorization` header. Route parameters are read from
  `environ["wsgiorg.routing_args"]`.
- With `token_prefix` set, the value must start with it; the prefix and one
  following space are removed.
- On success the validated payload is stored in the environ under
  `Config.context_key` (default `"auth-token"`) and the wrapped application
  is called.
- The default error handler answers `401 Unauthorized` for expired tokens and
  unreadable payloads, and `400 Bad Request` otherwise (missing token, wrong
  prefix, failed decryption or signature check). The body is the error text.
- The default validator (`default_validate`) accepts payloads made by
  `create_token` and returns their `data` claim. Supply `Config.validate` for
  tokens made otherwise.

`config_default` raises `ValueError` unless either a 32-byte `symmetric_key`
is given, or both `public_key` and `private_key` (Ed25519) are given; the two
kinds cannot be mixed.

`middlekit.paseto_tokens` also offers `encrypt`, `decrypt`, `sign`, `verify`,
`new_payload`, `JSONToken` and `get_extractor`. All token errors derive from
`PasetoError`.

## Swagger UI

```python
from middlekit.swagger import Config, SwaggerMiddleware

application = SwaggerMiddleware(wsgi_app, Config(base_path="/api/v1"))
```

- By default the document is read from `./swagger.json` and served at
  `/swagger.json`; the UI page is served at `/docs`. Both paths are joined
  onto `base_path`.
- `Config.file_content` supplies the document directly; `file_path` then only
  sets the URL it is served at.
- Documents whose path ends in `.yaml`/`.yml` are served as
  `application/yaml`, `.json` as `application/json`, with
  `Cache-Control: public, max-age=<cache_age>` (default 3600).
- Every other path goes to the wrapped application.

A missing file raises `FileNotFoundError`; a document that is neither a JSON
nor a YAML mapping raises `InvalidSpecError`. `load_spec` and `render_ui` can
be used on their own.

## WebSocket helpers

```python
from middlekit.websocket import Config, Conn, handshake_headers, is_websocket_upgrade

if is_websocket_upgrade(environ):
    headers = handshake_headers(environ, Config(origins=["https://app.example.com"]))
    conn = Conn.from_environ(environ, {"room": "lobby"})
    conn.query("room", "lobby")
```

- `handshake_headers` checks method, `Connection`, `Upgrade`,
  `Sec-WebSocket-Version`, origin and key, and returns the 101 response
  headers (including `Sec-WebSocket-Accept` and a matching subprotocol); it
  raises `UpgradeRequiredError` (status 426) when the request does not
  qualify.
- `check_origin(origins, origin)` allows everything when the list is empty or
  starts with `"*"`. `accept_key(key)` computes the accept value.
- `Conn` accessors `params`, `query`, `cookies` and `headers` take an optional
  default; `locals(key, value)` sets a value. `write_json` and
  `write_message` need a `transport` object with `write_message(mtype, data)`.
- `format_close_message(1000, "test")` returns `b"\x03\xe8test"`;
  `is_close_error` and `is_unexpected_close_error` test a `CloseError`
  against codes.

## Socket event hub

```python
from middlekit import socketio

def on_message(payload):
    if payload.data == b"ping":
        payload.kws.emit(b"pong")

socketio.on("message", on_message)
socketio.serve(conn, lambda kws: kws.set_attribute("user", "guest"))
```

`serve(conn, callback)` takes any object with `read_message()` returning
`(type, bytes)` and `write_message(type, data)`. It registers the connection
in the pool, runs the callback, fires `connect`, then reads, sends queued
messages and sends pong frames until the connection ends (`disconnect`, and
`error` when an exception caused it).

Module-level `emit_to` and `emit_to_list` deliver to given connections,
`broadcast` to all pooled connections and `fire` raises an event on each of
them; `reset_pool` empties the pool. The `Websocket` methods of the same names
act from one connection and report delivery failures as `error` events.
Delivering to an unknown or closed connection raises
`InvalidConnectionError`; `set_uuid` raises `UUIDDuplicationError` for a
UUID already in the pool.

## Trace attributes

`middlekit.otel_semconv` returns attribute lists of `(name, value)` pairs:
`server_metric_attributes(environ, port, server_name, custom)` and
`server_trace_attributes(environ, port, server_name, collect_client_ip, custom)`,
plus `http_flavor(environ)` and `has_basic_auth(auth)`, which returns the user
name from a Basic `Authorization` value and whether it was well formed.

## What this package does not do

- It does not run a WebSocket server or read and write WebSocket frames:
  `middlekit.websocket` only checks the handshake and builds headers, and
  `middlekit.socketio` works with a connection object you supply.
- It does not create spans, record metrics or export telemetry:
  `middlekit.otel_semconv` only builds attribute lists.
- It has no command-line tools. The monitor and Swagger pages load their
  scripts, styles and fonts from external URLs, which the browser must be
  able to reach.