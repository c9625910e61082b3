"""WSGI middleware that serves process and system statistics."""

from __future__ import annotations

import json
import os
import threading
import time
from typing import Any, Callable, Iterable, Optional

import psutil

from middlekit.monitor_config import Config, config_default

_JSON = "application/json"
_HTML = "text/html; charset=utf-8"


class StatsCollector:
    """Samples CPU, memory, load and TCP connection figures."""

    def __init__(self, pid: Optional[int] = None) -> None:
        self._process = psutil.Process(os.getpid() if pid is None else pid)
        self._num_cpu = psutil.cpu_count() or 1
        self._lock = threading.Lock()
        self._values: dict[str, Any] = {}

    def _store(self, key: str, value: Any) -> None:
        with self._lock:
            self._values[key] = value

    def update(self) -> None:
        """Refresh every figure that can be read; unreadable ones keep their last value."""
        proc = self._process
        try:
            self._store("pid_cpu", proc.cpu_percent(interval=None) / self._num_cpu)
        except (psutil.Error, OSError):
            pass
        try:
            self._store("os_cpu", float(psutil.cpu_percent(interval=None)))
        except (psutil.Error, OSError):
            pass
        try:
            self._store("pid_ram", proc.memory_info().rss)
        except (psutil.Error, OSError):
            pass
        try:
            memory = psutil.virtual_memory()
            self._store("os_ram", memory.used)
            self._store("os_total_ram", memory.total)
        except (psutil.Error, OSError):
            pass
        try:
            self._store("os_load_avg", float(psutil.getloadavg()[0]))
        except (psutil.Error, OSError, AttributeError):
            pass
        try:
            connections = getattr(proc, "net_connections", None) or proc.connections
            self._store("pid_conns", len(connections(kind="tcp")))
        except (psutil.Error, OSError):
            pass
        try:
            self._store("os_conns", len(psutil.net_connections(kind="tcp")))
        except (psutil.Error, OSError):
            pass

    def snapshot(self) -> dict[str, dict[str, Any]]:
        """Return the latest figures, zero where none was read."""
        with self._lock:
            v = dict(self._values)
        return {
            "pid": {
                "cpu": v.get("pid_cpu", 0.0),
                "ram": v.get("pid_ram", 0),
                "conns": v.get("pid_conns", 0),
            },
            "os": {
                "cpu": v.get("os_cpu", 0.0),
                "ram": v.get("os_ram", 0),
                "total_ram": v.get("os_total_ram", 0),
                "load_avg": v.get("os_load_avg", 0.0),
                "conns": v.get("os_conns", 0),
            },
        }


_collector_lock = threading.Lock()
_collector: Optional[StatsCollector] = None


def _shared_collector(refresh_seconds: float) -> StatsCollector:
    """Start the process-wide collector once, refreshing at the first given period."""
    global _collector
    with _collector_lock:
        if _collector is None:
            collector = StatsCollector()
            collector.update()

            def loop() -> None:
                while True:
                    time.sleep(refresh_seconds)
                    collector.update()

            threading.Thread(target=loop, name="monitor-stats", daemon=True).start()
            _collector = collector
        return _collector


class Monitor:
    """Serves an HTML dashboard, or JSON statistics when asked for JSON."""

    def __init__(self, app: Callable, config: Optional[Config] = None) -> None:
        self.app = app
        self.config = config_default(config)
        self._stats = _shared_collector(self.config.refresh.total_seconds())

    def __call__(self, environ: dict, start_response: Callable) -> Iterable[bytes]:
        cfg = self.config
        if cfg.next is not None and cfg.next(environ):
            return self.app(environ, start_response)

        if environ.get("REQUEST_METHOD", "GET").upper() != "GET":
            body = b"Method Not Allowed"
            start_response(
                "405 Method Not Allowed",
                [("Content-Type", "text/plain; charset=utf-8"), ("Content-Length", str(len(body)))],
            )
            return [body]

        if environ.get("HTTP_ACCEPT", "") == _JSON or cfg.api_only:
            body = json.dumps(self._stats.snapshot(), separators=(",", ":")).encode()
            content_type = _JSON
        else:
            body = cfg.index.encode()
            content_type = _HTML
        start_response("200 OK", [("Content-Type", content_type), ("Content-Length", str(len(body)))])
        return [body]