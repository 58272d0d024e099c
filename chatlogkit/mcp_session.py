"""Server-sent-event sessions and the inbound message queue of the MCP transport."""

from __future__ import annotations

import json
import logging
import queue
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime
from http import HTTPStatus
from typing import Any, Mapping, TextIO

from .jsonrpc import (
    ERR_INVALID_REQUEST,
    ERR_INVALID_SESSION_ID,
    ERR_SESSION_NOT_FOUND,
    ERR_TOO_MANY_REQUESTS,
    Request,
    RpcError,
    new_error_response,
    new_response,
)
from .mcp_types import to_dict

logger = logging.getLogger(__name__)

PROCESS_QUEUE_CAPACITY = 1000
SSE_PING_INTERVAL = 30
SSE_CONTENT_TYPE = "text/event-stream; charset=utf-8"
SSE_HEADERS = {
    "Content-Type": SSE_CONTENT_TYPE,
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "Access-Control-Allow-Origin": "*",
}


def _format_ping_time(now: datetime) -> str:
    if now.tzinfo is None:
        now = now.astimezone()
    text = now.strftime("%Y-%m-%d %H:%M:%S")
    fraction = f"{now.microsecond:06d}".rstrip("0")
    if fraction:
        text += "." + fraction
    offset = now.strftime("%z")
    return f"{text}{offset[:3]}:{offset[3:5]}"


class SSEWriter:
    """Writes server-sent events for one session onto a text stream."""

    def __init__(self, stream: TextIO, session_id: str) -> None:
        self.stream = stream
        self.session_id = session_id
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._pinger: threading.Thread | None = None
        self.write_endpoint()

    def _emit(self, text: str) -> None:
        with self._lock:
            self.stream.write(text)
            flush = getattr(self.stream, "flush", None)
            if flush is not None:
                flush()

    def write(self, data: bytes | str) -> int:
        """Send ``data`` as a message event and return its length."""
        text = data.decode("utf-8") if isinstance(data, (bytes, bytearray)) else data
        self.write_message(text)
        return len(data)

    def write_message(self, data: str) -> None:
        self.write_event("message", data)

    def write_event(self, event: str, data: str) -> None:
        self._emit(f"event: {event}\ndata: {data}\n\n")

    def write_endpoint(self) -> None:
        """Tell the client where to post its messages."""
        self._emit(f"event: endpoint\ndata: /message?sessionId={self.session_id}\n\n")

    def write_ping(self, now: datetime | None = None) -> None:
        """Write a keep-alive comment line stamped with ``now``."""
        if now is None:
            now = datetime.now().astimezone()
        self._emit(f": ping - {_format_ping_time(now)}\n\n")

    def _start_pinger(self, interval: float) -> None:
        def run() -> None:
            while not self._stop.wait(interval):
                try:
                    self.write_ping()
                except (OSError, ValueError):
                    return

        self._pinger = threading.Thread(target=run, name=f"sse-ping-{self.session_id}", daemon=True)
        self._pinger.start()

    def _stop_pinger(self) -> None:
        self._stop.set()


class Session:
    """One connected MCP client and the SSE stream that answers it."""

    def __init__(self, stream: TextIO, session_id: str, ping_interval: float | None = None) -> None:
        self.id = session_id
        self.writer = SSEWriter(stream, session_id)
        self.client_info: Any = None
        if ping_interval:
            self.writer._start_pinger(ping_interval)

    def write(self, data: bytes | str) -> int:
        return self.writer.write(data)

    def _send(self, payload: Any) -> None:
        self.write(json.dumps(to_dict(payload), ensure_ascii=False, separators=(",", ":")))

    def write_error(self, request: Request, err: Any) -> None:
        """Send an error response (code 500) for ``request``."""
        try:
            self._send(new_error_response(request.id, 500, err).to_dict())
        except (TypeError, ValueError):
            logger.debug("could not encode error response for session %s", self.id)

    def write_response(self, request: Request, data: Any) -> None:
        """Send a successful response carrying ``data`` for ``request``."""
        self._send(new_response(request.id, data).to_dict())

    def save_client_info(self, client_info: Any) -> None:
        self.client_info = client_info

    def _close(self) -> None:
        self.writer._stop_pinger()


@dataclass
class ProcessCtx:
    """A request waiting to be handled, with the session to answer on."""

    session: Session
    request: Request


class MCPHub:
    """Tracks SSE sessions and queues the requests clients post to them."""

    def __init__(
        self,
        capacity: int = PROCESS_QUEUE_CAPACITY,
        ping_interval: float | None = SSE_PING_INTERVAL,
    ) -> None:
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()
        self._queue: queue.Queue[ProcessCtx | None] = queue.Queue(maxsize=capacity)
        self._ping_interval = ping_interval
        self._closed = False

    def open_session(self, stream: TextIO) -> Session:
        """Register a new session writing to ``stream``."""
        session_id = str(uuid.uuid4())
        session = Session(stream, session_id, ping_interval=self._ping_interval)
        with self._lock:
            self._sessions[session_id] = session
        return session

    def close_session(self, session_id: str) -> None:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is not None:
            session._close()

    def get_session(self, session_id: str) -> Session | None:
        with self._lock:
            return self._sessions.get(session_id)

    def handle_message(self, query: Mapping[str, str], body: bytes | str) -> tuple[int, Any]:
        """Queue a posted request; return the HTTP status and response body."""
        session_id = query.get("session_id") or query.get("sessionId") or query.get("sessionid") or ""
        if not session_id:
            return int(HTTPStatus.BAD_REQUEST), ERR_INVALID_SESSION_ID.json_rpc().to_dict()

        session = self.get_session(session_id)
        if session is None:
            return int(HTTPStatus.NOT_FOUND), ERR_SESSION_NOT_FOUND.json_rpc().to_dict()

        try:
            request = Request.from_dict(json.loads(body))
        except (ValueError, RpcError):
            return int(HTTPStatus.BAD_REQUEST), ERR_INVALID_REQUEST.json_rpc().to_dict()

        logger.debug("session: %s, request: %s", session_id, request)
        if self._closed:
            raise RuntimeError("MCP hub is closed")
        try:
            self._queue.put_nowait(ProcessCtx(session=session, request=request))
        except queue.Full:
            return int(HTTPStatus.TOO_MANY_REQUESTS), ERR_TOO_MANY_REQUESTS.json_rpc().to_dict()
        return int(HTTPStatus.ACCEPTED), "Accepted"

    def next_request(self, timeout: float | None = None) -> ProcessCtx | None:
        """The next queued request; None on timeout or once the hub is closed and drained."""
        if self._closed and self._queue.empty():
            return None
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is None:
            try:
                self._queue.put_nowait(None)
            except queue.Full:
                pass
            return None
        return item

    def close(self) -> None:
        """Stop accepting requests; readers drain what is queued and then get None."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        try:
            self._queue.put_nowait(None)
        except queue.Full:
            pass