"""
backend/tests/conftest.py

Purpose:
    Shared pytest bootstrap: puts backend/ on the import path and provides an
    in-memory stand-in for the Mongo collections the services touch.
"""

from __future__ import annotations

import re
import sys
from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace

import pytest
from bson import ObjectId

_THIS_FILE = Path(__file__).resolve()
_BACKEND_DIR = _THIS_FILE.parents[1]

if str(_BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(_BACKEND_DIR))


def _matches(doc: dict, query: dict) -> bool:
    for key, cond in query.items():
        if key == "$or":
            if not any(_matches(doc, sub) for sub in cond):
                return False
            continue
        value = doc.get(key)
        if isinstance(cond, dict):
            if "$gte" in cond and (value is None or value < cond["$gte"]):
                return False
            if "$lte" in cond and (value is None or value > cond["$lte"]):
                return False
            if "$regex" in cond:
                flags = re.IGNORECASE if "i" in cond.get("$options", "") else 0
                if value is None or not re.search(cond["$regex"], str(value), flags):
                    return False
        elif value != cond:
            return False
    return True


class FakeCursor:
    def __init__(self, docs: list[dict]):
        self._docs = docs
        self._skip = 0
        self._limit = len(docs)

    def sort(self, key: str, direction: int):
        self._docs = sorted(self._docs, key=lambda d: d.get(key), reverse=direction < 0)
        return self

    def skip(self, value: int):
        self._skip = value
        return self

    def limit(self, value: int):
        self._limit = value
        return self

    async def to_list(self, length: int | None = None):
        size = self._limit if length is None else min(self._limit, length)
        return [dict(d) for d in self._docs[self._skip:self._skip + size]]


class FakeCollection:
    """Just enough of a motor collection for the service layer."""

    def __init__(self, docs: list[dict] | None = None):
        self.docs = [dict(d) for d in (docs or [])]
        self.fail_writes: Exception | None = None
        self.write_calls = 0

    def _check_write(self):
        self.write_calls += 1
        if self.fail_writes is not None:
            raise self.fail_writes

    async def insert_one(self, doc: dict):
        self._check_write()
        doc.setdefault("_id", ObjectId())
        self.docs.append(dict(doc))
        return SimpleNamespace(inserted_id=doc["_id"])

    async def find_one(self, query: dict, projection: dict | None = None):
        for doc in self.docs:
            if _matches(doc, query):
                return dict(doc)
        return None

    def find(self, query: dict | None = None):
        return FakeCursor([dict(d) for d in self.docs if _matches(d, query or {})])

    async def count_documents(self, query: dict):
        return sum(1 for d in self.docs if _matches(d, query))

    async def distinct(self, field: str):
        return list({d.get(field) for d in self.docs})

    async def update_one(self, query: dict, update: dict, upsert: bool = False):
        self._check_write()
        for doc in self.docs:
            if _matches(doc, query):
                doc.update(update.get("$set") or {})
                return SimpleNamespace(modified_count=1, upserted_id=None)
        if not upsert:
            return SimpleNamespace(modified_count=0, upserted_id=None)
        doc = dict(query)
        doc.update(update.get("$setOnInsert") or {})
        doc.update(update.get("$set") or {})
        for field in update.get("$currentDate") or {}:
            doc[field] = datetime.now(timezone.utc)
        self.docs.append(doc)
        return SimpleNamespace(modified_count=0, upserted_id=doc.get("_id"))

    async def delete_one(self, query: dict):
        self._check_write()
        for idx, doc in enumerate(self.docs):
            if _matches(doc, query):
                del self.docs[idx]
                return SimpleNamespace(deleted_count=1)
        return SimpleNamespace(deleted_count=0)


@pytest.fixture
def fake_db(monkeypatch):
    import diatrack.database as _db

    db = SimpleNamespace(
        audit_logs=FakeCollection(),
        users=FakeCollection(),
        patients=FakeCollection(),
        health_metrics=FakeCollection(),
        appointments=FakeCollection(),
        lab_results=FakeCollection(),
        meta=FakeCollection(),
    )
    monkeypatch.setattr(_db, "db", db, raising=False)
    return db
