"""Shared fixtures for scoreboard tests."""

import itertools
from typing import Callable, Dict, List, Optional

import pytest

from scoreboard.errors import NotFound
from scoreboard.events import BoardEvents, NoticeLog
from scoreboard.fields import from_remote, to_remote
from scoreboard.board import BoardState
from scoreboard.schema import BoardConfig


class FakeGateway:
    """In-memory record store speaking the gateway interface.

    ``fail`` maps an operation name to an exception raised on its next call.
    ``during`` maps an operation name to a callback run while the call is
    "in flight" (before the reply), to simulate user actions racing a reply.
    """

    def __init__(self):
        self.tables: Dict[str, Dict[str, dict]] = {}
        self.calls: List[tuple] = []
        self.fail: Dict[str, Exception] = {}
        self.during: Dict[str, Callable[[], None]] = {}
        self._ids = itertools.count(1)

    def seed(self, collection: str, record_id: str, **fields) -> None:
        self.tables.setdefault(collection, {})[record_id] = {"id": record_id, "fields": fields}

    def _enter(self, op: str, *args) -> None:
        self.calls.append((op,) + args)
        hook = self.during.pop(op, None)
        if hook:
            hook()
        exc = self.fail.pop(op, None)
        if exc:
            raise exc

    def list(self, collection):
        self._enter("list", collection)
        return [from_remote(r) for r in self.tables.get(collection, {}).values()]

    def get(self, collection, record_id):
        self._enter("get", collection, record_id)
        try:
            return from_remote(self.tables[collection][record_id])
        except KeyError:
            raise NotFound("Remote API error: 404 Not Found", status_code=404)

    def create(self, collection, fields):
        self._enter("create", collection, dict(fields))
        table = self.tables.setdefault(collection, {})
        record_id = f"r{next(self._ids)}"
        while record_id in table:
            record_id = f"r{next(self._ids)}"
        record = {"id": record_id, "fields": to_remote(fields)}
        table[record_id] = record
        return from_remote(record)

    def update(self, collection, record_id, fields):
        self._enter("update", collection, record_id, dict(fields))
        try:
            record = self.tables[collection][record_id]
        except KeyError:
            raise NotFound("Remote API error: 404 Not Found", status_code=404)
        record["fields"].update(to_remote(fields))
        return from_remote(record)

    def delete(self, collection, record_id):
        self._enter("delete", collection, record_id)
        if record_id not in self.tables.get(collection, {}):
            raise NotFound("Remote API error: 404 Not Found", status_code=404)
        del self.tables[collection][record_id]

    def list_collections(self):
        self._enter("list_collections")
        return list(self.tables)

    def create_collection(self, name):
        self._enter("create_collection", name)
        self.tables.setdefault(name, {})
        return name

    def diagnose(self, collection):
        return {"status": "success", "collection": collection, "status_code": 200}

    def ops(self, name: Optional[str] = None) -> List[tuple]:
        return [c for c in self.calls if name is None or c[0] == name]


class FakeMedia:
    def __init__(self, url: str = "https://img.example/shot.png", error: Optional[Exception] = None):
        self.url = url
        self.error = error
        self.calls: List[tuple] = []

    def attach(self, collection, record_id, encoded_image):
        self.calls.append((collection, record_id, encoded_image))
        if self.error:
            raise self.error
        return self.url


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def media():
    return FakeMedia()


@pytest.fixture
def notices():
    return NoticeLog()


@pytest.fixture
def board(gateway, notices):
    events = BoardEvents()
    events.subscribe("*", notices)
    return BoardState(gateway, config=BoardConfig("Tasks"), events=events)
