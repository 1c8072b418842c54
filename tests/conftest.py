import copy
import os
from collections import defaultdict
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient
from pymongo.errors import DuplicateKeyError

os.environ.setdefault("OPENAI_API_KEY", "")
os.environ.setdefault("ENABLE_CHANGE_STREAMS", "0")


class _FakeCursor:
    def __init__(self, docs: List[Dict[str, Any]]):
        self._docs = docs

    def sort(self, key: str, direction: int = 1) -> "_FakeCursor":
        self._docs = sorted(self._docs, key=lambda d: d.get(key), reverse=direction < 0)
        return self

    def skip(self, n: int) -> "_FakeCursor":
        self._docs = self._docs[n:]
        return self

    def limit(self, n: int) -> "_FakeCursor":
        if n:
            self._docs = self._docs[:n]
        return self

    def __iter__(self):
        return iter(self._docs)


class FakeCollection:
    """
    In-memory stand-in for the handful of pymongo collection calls the app
    makes. Filters support top-level equality only.
    """

    def __init__(self):
        self.docs: List[Dict[str, Any]] = []

    @staticmethod
    def _match(doc: Dict[str, Any], filt: Optional[Dict[str, Any]]) -> bool:
        return all(doc.get(k) == v for k, v in (filt or {}).items())

    def _first(self, filt) -> Optional[Dict[str, Any]]:
        return next((d for d in self.docs if self._match(d, filt)), None)

    def find(self, filt=None, projection=None) -> _FakeCursor:
        return _FakeCursor([copy.deepcopy(d) for d in self.docs if self._match(d, filt)])

    def find_one(self, filt=None):
        found = self._first(filt)
        return copy.deepcopy(found) if found else None

    def insert_one(self, doc: Dict[str, Any]):
        doc.setdefault("_id", ObjectId())
        if self._first({"_id": doc["_id"]}):
            raise DuplicateKeyError("duplicate _id")
        self.docs.append(copy.deepcopy(doc))
        return SimpleNamespace(inserted_id=doc["_id"])

    def update_one(self, filt, update, upsert: bool = False):
        target = self._first(filt)
        matched = 1
        if target is None:
            if not upsert:
                return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=None)
            matched = 0
            target = dict(filt)
            target.setdefault("_id", ObjectId())
            target.update(copy.deepcopy(update.get("$setOnInsert", {})))
            self.docs.append(target)
        target.update(copy.deepcopy(update.get("$set", {})))
        for k, v in update.get("$push", {}).items():
            target.setdefault(k, []).append(copy.deepcopy(v))
        return SimpleNamespace(matched_count=matched, modified_count=1, upserted_id=None if matched else target["_id"])

    def delete_one(self, filt):
        target = self._first(filt)
        if target is None:
            return SimpleNamespace(deleted_count=0)
        self.docs.remove(target)
        return SimpleNamespace(deleted_count=1)


class FakeDB:
    def __init__(self):
        self.collections: Dict[str, FakeCollection] = defaultdict(FakeCollection)

    def __getitem__(self, name: str) -> FakeCollection:
        return self.collections[name]

    def command(self, name: str):
        return {"ok": 1.0}


@pytest.fixture()
def fake_db(monkeypatch):
    """
    Swap the Mongo handle everywhere the app reads it.
    """
    import database
    import main

    fdb = FakeDB()
    monkeypatch.setattr(database, "db", fdb)
    monkeypatch.setattr(main, "db", fdb)
    return fdb


@pytest.fixture()
def client(fake_db):
    import main

    return TestClient(main.app)


@pytest.fixture()
def ai_unavailable(monkeypatch):
    import ai_client

    async def fail(*args, **kwargs):
        raise ai_client.AIGenerationError("AI service is not configured (OPENAI_API_KEY missing)")

    monkeypatch.setattr(ai_client, "generate", fail)
