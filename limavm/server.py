"""HTTP API of the guest agent, served on a UNIX socket."""

from __future__ import annotations

import contextlib
import json
import logging
import os
import shutil
import socketserver
import threading
from http.server import BaseHTTPRequestHandler
from typing import Any
from urllib.parse import urlsplit

log = logging.getLogger(__name__)

INFO_PATH = "/v1/info"
EVENTS_PATH = "/v1/events"
_ROUTES = frozenset({INFO_PATH, EVENTS_PATH})


def _dumps(obj: Any) -> str:
    return json.dumps(obj, separators=(",", ":"))


class UnixHTTPServer(socketserver.ThreadingMixIn, socketserver.UnixStreamServer):
    """A threaded HTTP server on a UNIX socket that serves an agent."""

    daemon_threads = True

    def __init__(self, socket_path: str, agent: Any, handler: type = None) -> None:
        self.agent = agent
        self._stops: set[threading.Event] = set()
        self._stops_lock = threading.Lock()
        super().__init__(socket_path, handler or AgentRequestHandler)

    def _new_stop(self) -> threading.Event:
        stop = threading.Event()
        with self._stops_lock:
            self._stops.add(stop)
        return stop

    def _drop_stop(self, stop: threading.Event) -> None:
        with self._stops_lock:
            self._stops.discard(stop)

    def server_close(self) -> None:
        with self._stops_lock:
            for stop in self._stops:
                stop.set()
        super().server_close()


class AgentRequestHandler(BaseHTTPRequestHandler):
    """Serves GET /v1/info and GET /v1/events."""

    server: UnixHTTPServer

    def address_string(self) -> str:
        return "unix"

    def log_message(self, format: str, *args: Any) -> None:
        log.debug("%s - %s", self.address_string(), format % args)

    def _path(self) -> str:
        return urlsplit(self.path).path

    def _send_body(self, status: int, content_type: str, body: bytes) -> None:
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _on_error(self, err: BaseException, status: int) -> None:
        # The socket is never exposed beyond the guest, so the message is safe to return.
        body = (_dumps({"message": str(err)}) + "\n").encode()
        self._send_body(status, "application/json", body)

    def do_GET(self) -> None:
        path = self._path()
        if path == INFO_PATH:
            self._get_info()
        elif path == EVENTS_PATH:
            self._get_events()
        else:
            self._send_body(404, "text/plain; charset=utf-8", b"404 page not found\n")

    def _other_method(self) -> None:
        if self._path() in _ROUTES:
            self._send_body(405, "text/plain; charset=utf-8", b"")
        else:
            self._send_body(404, "text/plain; charset=utf-8", b"404 page not found\n")

    do_POST = do_PUT = do_DELETE = do_PATCH = _other_method

    def _get_info(self) -> None:
        try:
            info = self.server.agent.info()
            body = _dumps(info.to_dict()).encode()
        except Exception as e:  # any agent failure is reported to the client
            self._on_error(e, 500)
            return
        self._send_body(200, "application/json", body)

    def _get_events(self) -> None:
        self.send_response(200)
        self.send_header("Content-Type", "application/x-ndjson")
        self.end_headers()
        self.wfile.flush()
        stop = self.server._new_stop()
        try:
            with contextlib.closing(self.server.agent.events(stop)) as events:
                for ev in events:
                    try:
                        self.wfile.write((_dumps(ev.to_dict()) + "\n").encode())
                        self.wfile.flush()
                    except OSError as e:
                        log.warning("%s", e)
                        return
        finally:
            stop.set()
            self.server._drop_stop(stop)


def _remove_all(path: str) -> None:
    if os.path.isdir(path) and not os.path.islink(path):
        shutil.rmtree(path)
    else:
        with contextlib.suppress(FileNotFoundError):
            os.remove(path)


def create_server(agent: Any, socket_path: str) -> UnixHTTPServer:
    """Bind a server for *agent* on *socket_path*, replacing whatever was there."""
    _remove_all(socket_path)
    server = UnixHTTPServer(socket_path, agent)
    try:
        os.chmod(socket_path, 0o777)
    except OSError:
        server.server_close()
        raise
    return server