"""Shared pytest fixtures."""

import copy
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from typing import Any

import pytest
from pymongo.errors import AutoReconnect

from timekeep.config import Config
from timekeep.core.modules.session.models import SessionRecord
from timekeep.core.modules.session.store import SessionStore

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)


def _matches(doc: dict[str, Any], query: dict[str, Any]) -> bool:
    for key, condition in query.items():
        value = doc.get(key)
        if isinstance(condition, dict):
            if "$gt" in condition and not (value is not None and value > condition["$gt"]):
                return False
            if "$in" in condition and value not in condition["$in"]:
                return False
        elif value != condition:
            return False
    return True


class FakeCursor:
    """Subset of AsyncCursor: sort, limit, to_list and async iteration."""

    def __init__(self, collection: "FakeCollection", docs: list[dict[str, Any]]) -> None:
        self._collection = collection
        self._docs = docs
        self._limit: int | None = None

    def sort(self, key: str, direction: int = 1) -> "FakeCursor":
        self._docs.sort(key=lambda d: (d.get(key) is not None, d.get(key)), reverse=direction < 0)
        return self

    def limit(self, limit: int) -> "FakeCursor":
        self._limit = limit
        return self

    async def to_list(self, length: int | None = None) -> list[dict[str, Any]]:
        self._collection.page_reads += 1
        failing_page = self._collection.fail_on_page_read
        if failing_page is not None and self._collection.page_reads >= failing_page:
            raise AutoReconnect("connection lost")
        docs = self._docs if self._limit is None else self._docs[: self._limit]
        return [copy.deepcopy(d) for d in docs]

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for doc in await self.to_list():
            yield doc


class FakeCollection:
    """In-memory stand-in for the parts of AsyncCollection the store uses."""

    def __init__(self) -> None:
        self.docs: dict[Any, dict[str, Any]] = {}
        self.indexes: list[Any] = []
        self.page_reads = 0
        self.fail_on_page_read: int | None = None
        self.delete_failures: dict[str, int] = {}
        self.delete_calls: list[str] = []

    async def create_index(self, keys: Any, **kwargs: Any) -> str:
        self.indexes.append(keys)
        return "index"

    def find(self, query: dict[str, Any] | None = None) -> FakeCursor:
        return FakeCursor(self, [d for d in self.docs.values() if _matches(d, query or {})])

    async def find_one(self, query: dict[str, Any]) -> dict[str, Any] | None:
        found = next((d for d in self.docs.values() if _matches(d, query)), None)
        return copy.deepcopy(found) if found is not None else None

    async def replace_one(self, query: dict[str, Any], doc: dict[str, Any], upsert: bool = False) -> SimpleNamespace:
        self.docs[doc["_id"]] = copy.deepcopy(doc)
        return SimpleNamespace(matched_count=1)

    async def delete_one(self, query: dict[str, Any]) -> SimpleNamespace:
        session_id = query["_id"]
        self.delete_calls.append(session_id)
        if self.delete_failures.get(session_id, 0) > 0:
            self.delete_failures[session_id] -= 1
            raise AutoReconnect(f"delete of {session_id} timed out")
        removed = self.docs.pop(session_id, None)
        return SimpleNamespace(deleted_count=1 if removed is not None else 0)

    async def update_many(self, query: dict[str, Any], update: dict[str, Any]) -> SimpleNamespace:
        modified = 0
        for doc in self.docs.values():
            if _matches(doc, query):
                doc.update(copy.deepcopy(update["$set"]))
                modified += 1
        return SimpleNamespace(modified_count=modified)

    def insert_raw(self, doc: dict[str, Any]) -> None:
        self.docs[doc["_id"]] = doc


class FakeDatabase:
    def __init__(self) -> None:
        self.collections: dict[str, FakeCollection] = {}

    def get_collection(self, name: str) -> FakeCollection:
        return self.collections.setdefault(name, FakeCollection())


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def collection():
    return FakeCollection()


@pytest.fixture
def store(collection):
    return SessionStore(collection, page_size=3)


@pytest.fixture
def database():
    return FakeDatabase()


@pytest.fixture
def config():
    return Config(
        database_url="mongodb://localhost:27017/timekeep_test",
        sessions_collection="user_sessions",
        reclaim_batch_delay=0,
        _env_file=None,
    )


@pytest.fixture
def make_record(now):
    """Build a valid, active session record; override fields via kwargs."""

    def factory(**overrides: Any) -> SessionRecord:
        fields: dict[str, Any] = {
            "user_id": "user-1",
            "user_agent": "Mozilla/5.0",
            "ip_address": "203.0.113.7",
            "created_at": now - timedelta(hours=1),
            "login_time": now - timedelta(hours=1),
            "last_activity": now - timedelta(minutes=5),
            "expires_at": now + timedelta(hours=7),
            "session_timeout": 480,
            "is_active": True,
        }
        fields.update(overrides)
        return SessionRecord(**fields)

    return factory


@pytest.fixture
def add_records(collection):
    """Persist records straight into the fake collection."""

    def add(*records: SessionRecord) -> None:
        for record in records:
            collection.insert_raw(record.to_mongo())

    return add
