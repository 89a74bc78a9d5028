"""Client for the guest agent's HTTP API on a UNIX socket."""

from __future__ import annotations

import contextlib
import http.client
import json
import socket
from typing import Callable

from limavm.api import Event, Info

DUMMY_HOST = "lima-guestagent"
API_VERSION = "v1"


class GuestAgentError(Exception):
    """Raised when the guest agent answers with an error."""


class _UnixHTTPConnection(http.client.HTTPConnection):
    def __init__(self, socket_path: str, timeout: float | None) -> None:
        super().__init__(DUMMY_HOST)
        self._socket_path = socket_path
        self._unix_timeout = timeout

    def connect(self) -> None:
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            sock.settimeout(self._unix_timeout)
            sock.connect(self._socket_path)
        except OSError:
            sock.close()
            raise
        self.sock = sock


class GuestAgentClient:
    """Talks to a guest agent listening on *socket_path* (without a unix:// prefix)."""

    def __init__(self, socket_path: str, timeout: float | None = None) -> None:
        self.socket_path = socket_path
        self.timeout = timeout
        self.version = API_VERSION

    def _get(self, conn: _UnixHTTPConnection, name: str) -> http.client.HTTPResponse:
        conn.request("GET", f"/{self.version}/{name}")
        resp = conn.getresponse()
        if resp.status != 200:
            body = resp.read()
            try:
                message = json.loads(body)["message"]
            except (ValueError, KeyError, TypeError):
                message = body.decode(errors="replace").strip()
            raise GuestAgentError(f"unexpected HTTP status {resp.status}: {message}")
        return resp

    def info(self) -> Info:
        """Fetch the agent's current information."""
        with contextlib.closing(_UnixHTTPConnection(self.socket_path, self.timeout)) as conn:
            resp = self._get(conn, "info")
            return Info.from_dict(json.loads(resp.read()))

    def events(self, on_event: Callable[[Event], None]) -> None:
        """Call *on_event* for each event streamed by the agent.

        Raises EOFError when the stream ends.
        """
        with contextlib.closing(_UnixHTTPConnection(self.socket_path, self.timeout)) as conn:
            resp = self._get(conn, "events")
            for line in resp:
                if not line.strip():
                    continue
                on_event(Event.from_dict(json.loads(line)))
        raise EOFError("event stream ended")