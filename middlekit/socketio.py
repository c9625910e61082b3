"""Event-driven layer over websocket connections: a shared pool, listeners and message queues."""

from __future__ import annotations

import queue
import threading
import uuid as _uuid
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional, Protocol

# Message types defined in RFC 6455, section 11.8.
TEXT_MESSAGE = 1
BINARY_MESSAGE = 2
CLOSE_MESSAGE = 8
PING_MESSAGE = 9
PONG_MESSAGE = 10

EVENT_MESSAGE = "message"
EVENT_PING = "ping"
EVENT_PONG = "pong"
EVENT_DISCONNECT = "disconnect"
EVENT_CONNECT = "connect"
EVENT_CLOSE = "close"
EVENT_ERROR = "error"

# Seconds between pong control frames.
PONG_TIMEOUT = 1.0
# Seconds to wait before retrying a send while no connection is attached.
RETRY_SEND_TIMEOUT = 0.02
MAX_SEND_RETRY = 5
# Pause between reads, so the read loop does not spin.
READ_TIMEOUT = 0.01

_QUEUE_SIZE = 100


class InvalidConnectionError(Exception):
    """The addressed connection is gone or no longer alive."""

    def __init__(self, message: str = "message cannot be delivered invalid/gone connection") -> None:
        super().__init__(message)


class UUIDDuplicationError(Exception):
    """The UUID is already used by a connection in the pool."""

    def __init__(self, message: str = "UUID already exists in the available connections pool") -> None:
        super().__init__(message)


class MessageConn(Protocol):
    """What a websocket connection must offer."""

    def read_message(self) -> tuple[int, bytes]: ...

    def write_message(self, mtype: int, data: bytes) -> None: ...


@dataclass
class _Message:
    mtype: int
    data: bytes
    retries: int = 0


@dataclass
class EventPayload:
    """Everything a listener learns about an event and its connection."""

    kws: "Websocket"
    name: str
    socket_uuid: str
    socket_attributes: dict[str, Any]
    error: Optional[BaseException] = None
    data: Optional[bytes] = None


EventCallback = Callable[[EventPayload], None]


class _Pool:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._conns: dict[str, Websocket] = {}

    def set(self, ws: "Websocket") -> None:
        with self._lock:
            self._conns[ws.uuid] = ws

    def all(self) -> dict[str, "Websocket"]:
        with self._lock:
            return dict(self._conns)

    def get(self, key: str) -> "Websocket":
        with self._lock:
            try:
                return self._conns[key]
            except KeyError:
                raise InvalidConnectionError() from None

    def contains(self, key: str) -> bool:
        with self._lock:
            return key in self._conns

    def delete(self, key: str) -> None:
        with self._lock:
            self._conns.pop(key, None)

    def rekey(self, old: str, new: str, ws: "Websocket") -> None:
        with self._lock:
            if self._conns.get(old) is ws:
                del self._conns[old]
                self._conns[new] = ws

    def reset(self) -> None:
        with self._lock:
            self._conns = {}


class _Listeners:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._callbacks: dict[str, list[EventCallback]] = {}

    def add(self, event: str, callback: EventCallback) -> None:
        with self._lock:
            self._callbacks.setdefault(event, []).append(callback)

    def get(self, event: str) -> list[EventCallback]:
        with self._lock:
            return list(self._callbacks.get(event, ()))


_pool = _Pool()
_listeners = _Listeners()


class Websocket:
    """One connection with its attributes, outgoing queue and event loops."""

    def __init__(self, conn: Optional[MessageConn] = None) -> None:
        self.conn = conn
        self._lock = threading.RLock()
        self._alive = True
        self._queue: queue.Queue[_Message] = queue.Queue(maxsize=_QUEUE_SIZE)
        self._done = threading.Event()
        self._attributes: dict[str, Any] = {}
        self._uuid = str(_uuid.uuid4())

    @property
    def uuid(self) -> str:
        with self._lock:
            return self._uuid

    @property
    def is_alive(self) -> bool:
        with self._lock:
            return self._alive

    def set_uuid(self, uuid: str) -> None:
        """Give the connection a new UUID; raise UUIDDuplicationError if it is taken."""
        with self._lock:
            if _pool.contains(uuid):
                raise UUIDDuplicationError()
            old = self._uuid
            self._uuid = uuid
        _pool.rekey(old, uuid, self)

    def set_attribute(self, key: str, value: Any) -> None:
        with self._lock:
            self._attributes[key] = value

    def get_attribute(self, key: str) -> Any:
        """Return the attribute, or None if unset."""
        with self._lock:
            return self._attributes.get(key)

    def get_int_attribute(self, key: str) -> int:
        """Return the attribute as an int, 0 if unset; raise TypeError if it is not an int."""
        with self._lock:
            if key not in self._attributes:
                return 0
            value = self._attributes[key]
        if not isinstance(value, int) or isinstance(value, bool):
            raise TypeError(f"attribute {key!r} is not an int")
        return value

    def get_string_attribute(self, key: str) -> str:
        """Return the attribute as a str, "" if unset; raise TypeError if it is not a str."""
        with self._lock:
            if key not in self._attributes:
                return ""
            value = self._attributes[key]
        if not isinstance(value, str):
            raise TypeError(f"attribute {key!r} is not a str")
        return value

    def emit_to_list(self, uuids: Iterable[str], message: bytes, mtype: int = TEXT_MESSAGE) -> None:
        """Send to each listed connection, firing an error event for each failure."""
        for ws_uuid in uuids:
            try:
                self.emit_to(ws_uuid, message, mtype)
            except InvalidConnectionError as err:
                self._fire_event(EVENT_ERROR, message, err)

    def emit_to(self, uuid: str, message: bytes, mtype: int = TEXT_MESSAGE) -> None:
        """Send to one connection; raise InvalidConnectionError if it is gone."""
        conn = _pool.get(uuid)
        if not _pool.contains(uuid) or not conn.is_alive:
            err = InvalidConnectionError()
            self._fire_event(EVENT_ERROR, uuid.encode(), err)
            raise err
        conn.emit(message, mtype)

    def broadcast(self, message: bytes, except_self: bool = False, mtype: int = TEXT_MESSAGE) -> None:
        """Send to every pooled connection, optionally skipping this one."""
        own = self.uuid
        for ws_uuid in _pool.all():
            if except_self and ws_uuid == own:
                continue
            try:
                self.emit_to(ws_uuid, message, mtype)
            except InvalidConnectionError as err:
                self._fire_event(EVENT_ERROR, message, err)

    def fire(self, event: str, data: Optional[bytes] = None) -> None:
        """Fire a custom event on this connection."""
        self._fire_event(event, data, None)

    def emit(self, message: bytes, mtype: int = TEXT_MESSAGE) -> None:
        """Queue a message for this connection."""
        self._write(mtype, message)

    def close(self) -> None:
        """Send a close frame and fire the close event."""
        self._write(CLOSE_MESSAGE, b"Connection closed")
        self._fire_event(EVENT_CLOSE, None, None)

    def run(self) -> None:
        """Run the pong, read and send loops; block until the connection is done."""
        stop = threading.Event()
        for loop in (self._pong, self._read, self._send):
            threading.Thread(target=loop, args=(stop,), daemon=True).start()
        self._done.wait()
        stop.set()

    def _write(self, mtype: int, data: bytes) -> None:
        self._queue.put(_Message(mtype, data))

    def _requeue(self, message: _Message) -> None:
        message.retries += 1
        self._queue.put(message)

    def _pong(self, stop: threading.Event) -> None:
        while not stop.wait(PONG_TIMEOUT):
            self._write(PONG_MESSAGE, b"")

    def _send(self, stop: threading.Event) -> None:
        while not stop.is_set():
            try:
                message = self._queue.get(timeout=READ_TIMEOUT * 5)
            except queue.Empty:
                continue
            conn = self.conn
            if conn is None:
                if message.retries <= MAX_SEND_RETRY:
                    timer = threading.Timer(RETRY_SEND_TIMEOUT, self._requeue, args=(message,))
                    timer.daemon = True
                    timer.start()
                continue
            try:
                conn.write_message(message.mtype, message.data)
            except Exception as err:
                self._disconnected(err)

    def _read(self, stop: threading.Event) -> None:
        while not stop.wait(READ_TIMEOUT):
            conn = self.conn
            if conn is None:
                continue
            try:
                mtype, data = conn.read_message()
            except Exception as err:
                self._disconnected(err)
                return
            if mtype == PING_MESSAGE:
                self._fire_event(EVENT_PING, None, None)
            elif mtype == PONG_MESSAGE:
                self._fire_event(EVENT_PONG, None, None)
            elif mtype == CLOSE_MESSAGE:
                self._disconnected(None)
                return
            else:
                self._fire_event(EVENT_MESSAGE, data, None)

    def _disconnected(self, err: Optional[BaseException]) -> None:
        self._fire_event(EVENT_DISCONNECT, None, err)
        with self._lock:
            if self._alive:
                self._alive = False
                self._done.set()
        if err is not None:
            self._fire_event(EVENT_ERROR, None, err)
        _pool.delete(self.uuid)

    def _fire_event(self, event: str, data: Optional[bytes], error: Optional[BaseException]) -> None:
        for callback in _listeners.get(event):
            callback(
                EventPayload(
                    kws=self,
                    name=event,
                    socket_uuid=self.uuid,
                    socket_attributes=self._attributes,
                    error=error,
                    data=data,
                )
            )


def serve(conn: MessageConn, callback: Callable[[Websocket], None]) -> None:
    """Register a connection, let ``callback`` set it up, then run it until it ends."""
    kws = Websocket(conn)
    _pool.set(kws)
    callback(kws)
    kws._fire_event(EVENT_CONNECT, None, None)
    kws.run()


def on(event: str, callback: EventCallback) -> None:
    """Add a listener for an event."""
    _listeners.add(event, callback)


def emit_to(uuid: str, message: bytes, mtype: int = TEXT_MESSAGE) -> None:
    """Send to one connection; raise InvalidConnectionError if it is gone."""
    conn = _pool.get(uuid)
    if not _pool.contains(uuid) or not conn.is_alive:
        raise InvalidConnectionError()
    conn.emit(message, mtype)


def emit_to_list(uuids: Iterable[str], message: bytes, mtype: int = TEXT_MESSAGE) -> None:
    """Send to each listed connection, ignoring failures."""
    for ws_uuid in uuids:
        try:
            emit_to(ws_uuid, message, mtype)
        except InvalidConnectionError:
            pass


def broadcast(message: bytes, mtype: int = TEXT_MESSAGE) -> None:
    """Send to every pooled connection."""
    for kws in _pool.all().values():
        kws.emit(message, mtype)


def fire(event: str, data: Optional[bytes] = None) -> None:
    """Fire a custom event on every pooled connection."""
    for kws in _pool.all().values():
        kws._fire_event(event, data, None)


def reset_pool() -> None:
    """Forget every pooled connection."""
    _pool.reset()