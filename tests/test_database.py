from dataclasses import dataclass
from datetime import datetime

import pytest

from chatlogkit.database import DatabaseService, DBState, cors_headers
from chatlogkit.errors import ChatlogError


@dataclass
class Conf:
    work_dir: str = "/tmp/work"
    platform: str = "darwin"
    version: int = 4


class FakeDB:
    def __init__(self):
        self.closed = False
        self.callbacks = []

    def close(self):
        self.closed = True

    def set_callback(self, group, callback):
        self.callbacks.append((group, callback))

    def get_messages(self, *args):
        return ("messages", args)

    def get_contacts(self, *args):
        return ("contacts", args)

    def get_chat_rooms(self, *args):
        return ("chat_rooms", args)

    def get_sessions(self, *args):
        return ("sessions", args)

    def get_media(self, *args):
        return ("media", args)


def _service(hooks=None):
    opened = []

    def opener(work_dir, platform, version):
        db = FakeDB()
        opened.append((work_dir, platform, version, db))
        return db

    return DatabaseService(Conf(), opener, hooks), opened


def test_start_opens_with_config():
    svc, opened = _service()
    svc.start()
    assert svc.state == DBState.READY
    assert opened[0][:3] == ("/tmp/work", "darwin", 4)
    assert svc.db is opened[0][3]
    assert svc.unavailable_reason() is None


def test_start_failure_keeps_state():
    def opener(*_):
        raise ChatlogError("db init failed", code=500)

    svc = DatabaseService(Conf(), opener)
    with pytest.raises(ChatlogError):
        svc.start()
    assert svc.state == DBState.INIT
    assert svc.db is None


def test_stop_closes_and_resets():
    svc, opened = _service()
    svc.start()
    db = svc.db
    svc.stop()
    assert db.closed is True
    assert svc.db is None
    assert svc.state == DBState.INIT


def test_unavailable_reasons():
    svc, _ = _service()
    assert svc.unavailable_reason() == "database is not ready"
    svc.set_decrypting()
    assert svc.unavailable_reason() == "database is decrypting, please wait"
    svc.set_error("boom")
    assert svc.state == DBState.ERROR
    assert svc.unavailable_reason() == "database is error: boom"


def test_queries_delegate():
    svc, _ = _service()
    svc.start()
    start, end = datetime(2024, 1, 1), datetime(2024, 1, 2)
    assert svc.get_messages(start, end, "t", "s", "k", 10, 5) == (
        "messages",
        (start, end, "t", "s", "k", 10, 5),
    )
    assert svc.get_contacts("k", 1, 2) == ("contacts", ("k", 1, 2))
    assert svc.get_chat_rooms("k", 1, 2) == ("chat_rooms", ("k", 1, 2))
    assert svc.get_sessions("", 0, 0) == ("sessions", ("", 0, 0))
    assert svc.get_media("image", "abc") == ("media", ("image", "abc"))


def test_query_before_start_raises():
    svc, _ = _service()
    with pytest.raises(ChatlogError) as info:
        svc.get_sessions("", 0, 0)
    assert info.value.code == 503


def test_hooks_registered_and_cancelled():
    events = []

    def callback(event):
        return None

    def hooks(db, stop):
        events.append(stop)
        return [("message", callback)]

    svc, _ = _service(hooks)
    svc.start()
    assert svc.db.callbacks == [("message", callback)]
    assert events[0].is_set() is False
    svc.stop()
    assert events[0].is_set() is True


def test_cors_preflight():
    headers, status = cors_headers("OPTIONS")
    assert status == 204
    assert headers["Access-Control-Allow-Origin"] == "*"


def test_cors_get_passes_through():
    headers, status = cors_headers("GET")
    assert status is None
    assert headers["Access-Control-Allow-Methods"] == "GET, POST, PUT, DELETE, OPTIONS"