"""Lifecycle of the decrypted-database connection and its readiness state."""

from __future__ import annotations

import enum
import logging
import threading
from datetime import datetime
from http import HTTPStatus
from typing import Any, Callable, Iterable

from .errors import ChatlogError

logger = logging.getLogger(__name__)

Opener = Callable[[str, str, int], Any]
HookProvider = Callable[[Any, threading.Event], Iterable[tuple[str, Callable[..., Any]]]]

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Credentials": "true",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Accept, Authorization, Content-Type, X-CSRF-Token",
}


class DBState(enum.IntEnum):
    INIT = 0
    DECRYPTING = 1
    READY = 2
    ERROR = 3


class DatabaseService:
    """Opens the database for a configuration and tracks whether it can serve queries.

    ``conf`` provides ``work_dir``, ``platform`` and ``version``. ``opener`` is
    called with those three values and returns the database object. ``hooks``
    optionally yields ``(group, callback)`` pairs to register on a freshly
    opened database; the event it receives is set when the service stops.
    """

    def __init__(self, conf: Any, opener: Opener, hooks: HookProvider | None = None) -> None:
        self.conf = conf
        self.state = DBState.INIT
        self.state_msg = ""
        self.db: Any = None
        self._opener = opener
        self._hooks = hooks
        self._hooks_stop: threading.Event | None = None

    def start(self) -> None:
        """Open the database; errors from the opener propagate."""
        db = self._opener(self.conf.work_dir, self.conf.platform, self.conf.version)
        self.set_ready()
        self.db = db
        try:
            self._init_hooks()
        except Exception:
            logger.exception("set callbacks failed")

    def _init_hooks(self) -> None:
        if self._hooks is None:
            return
        stop = threading.Event()
        self._hooks_stop = stop
        for group, callback in self._hooks(self.db, stop):
            logger.info("set callback for group %s", group)
            self.db.set_callback(group, callback)

    def _cancel_hooks(self) -> None:
        if self._hooks_stop is not None:
            self._hooks_stop.set()
            self._hooks_stop = None

    def stop(self) -> None:
        """Close the database and return to the initial state."""
        if self.db is not None:
            self.db.close()
        self.set_init()
        self.db = None
        self._cancel_hooks()

    def close(self) -> None:
        """Close the database connection without changing the state."""
        if self.db is not None:
            self.db.close()
        self._cancel_hooks()

    def set_init(self) -> None:
        self.state = DBState.INIT

    def set_decrypting(self) -> None:
        self.state = DBState.DECRYPTING

    def set_ready(self) -> None:
        self.state = DBState.READY

    def set_error(self, msg: str) -> None:
        self.state = DBState.ERROR
        self.state_msg = msg

    def unavailable_reason(self) -> str | None:
        """Why queries must be refused (HTTP 503), or None when ready."""
        if self.state == DBState.INIT:
            return "database is not ready"
        if self.state == DBState.DECRYPTING:
            return "database is decrypting, please wait"
        if self.state == DBState.ERROR:
            return "database is error: " + self.state_msg
        return None

    def _require_db(self) -> Any:
        if self.db is None:
            raise ChatlogError("database is not ready", code=HTTPStatus.SERVICE_UNAVAILABLE)
        return self.db

    def get_messages(
        self,
        start: datetime,
        end: datetime,
        talker: str,
        sender: str,
        keyword: str,
        limit: int,
        offset: int,
    ) -> Any:
        return self._require_db().get_messages(start, end, talker, sender, keyword, limit, offset)

    def get_contacts(self, key: str, limit: int, offset: int) -> Any:
        return self._require_db().get_contacts(key, limit, offset)

    def get_chat_rooms(self, key: str, limit: int, offset: int) -> Any:
        return self._require_db().get_chat_rooms(key, limit, offset)

    def get_sessions(self, key: str, limit: int, offset: int) -> Any:
        return self._require_db().get_sessions(key, limit, offset)

    def get_media(self, media_type: str, key: str) -> Any:
        return self._require_db().get_media(media_type, key)


def cors_headers(method: str) -> tuple[dict[str, str], int | None]:
    """CORS headers for a request, and 204 when an OPTIONS preflight should end here."""
    headers = dict(CORS_HEADERS)
    if method == "OPTIONS":
        return headers, int(HTTPStatus.NO_CONTENT)
    return headers, None