from __future__ import annotations

import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest

# Ensure the repo root is on sys.path so `import medlearn.*` works in tests.
ROOT_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT_DIR))

BASE_TIME = datetime(2024, 1, 1, 12, 0, 0)


def _session_doc(session_id: str, session_type: str = "Dicom", is_free: bool = False, minutes: int = 0, **extra) -> dict:
    doc = {
        "session_id": session_id,
        "title": f"Session {session_id}",
        "description": "Findings " * 30,
        "session_type": session_type,
        "is_free": is_free,
        "created_at": BASE_TIME + timedelta(minutes=minutes),
        "faculty": [],
        "average_rating": 0.0,
        "num_of_reviews": 0,
    }
    doc.update(extra)
    return doc


@pytest.fixture
def session_doc():
    """Factory for stored session documents"""
    return _session_doc


@pytest.fixture
def make_items():
    """Factory for ContentItem lists: n_free free sessions followed by n_paid paid ones"""
    from medlearn.learning.models import ContentItem

    def _make(n_free: int, n_paid: int, session_type: str = "Live") -> list:
        docs = [
            _session_doc(f"F{i}", session_type, is_free=True, minutes=i, zoom_join_url=f"https://zoom.example/j/{i}")
            for i in range(n_free)
        ] + [
            _session_doc(f"P{i}", session_type, is_free=False, minutes=100 + i, zoom_join_url=f"https://zoom.example/p/{i}")
            for i in range(n_paid)
        ]
        return [ContentItem.from_document(d) for d in docs]

    return _make


@pytest.fixture
def fake_db():
    # Storage calls are monkeypatched per test; the handle is only passed through.
    return object()


def _matches(doc: dict, filters: dict) -> bool:
    for key, cond in filters.items():
        if key == "$or":
            if not any(_matches(doc, c) for c in cond):
                return False
            continue
        value = doc.get(key)
        if isinstance(cond, dict):
            values = value if isinstance(value, list) else [value]
            if "$in" in cond and not any(v in cond["$in"] for v in values):
                return False
            if "$nin" in cond and value in cond["$nin"]:
                return False
            if "$gte" in cond and (value is None or value < cond["$gte"]):
                return False
        elif value != cond:
            return False
    return True


class FakeSessions:
    """In-memory stand-in for the session storage functions"""

    def __init__(self, docs):
        self.docs = [dict(d) for d in docs]
        self.calls = []

    async def find_sessions(self, db, filters, sort=None, skip=0, limit=0):
        self.calls.append({"filters": filters, "sort": sort, "skip": skip, "limit": limit})
        docs = [dict(d) for d in self.docs if _matches(d, filters)]
        for key, direction in reversed(sort or []):
            docs.sort(
                key=lambda d: (d.get(key) is not None, d.get(key) if d.get(key) is not None else 0),
                reverse=direction < 0,
            )
        docs = docs[skip:]
        return docs[:limit] if limit else docs

    async def get_session(self, db, session_id):
        for d in self.docs:
            if d["session_id"] == session_id:
                return dict(d)
        return None

    async def get_sessions_by_ids(self, db, session_ids):
        return await self.find_sessions(db, {"session_id": {"$in": list(session_ids)}})

    async def count_sessions(self, db, filters):
        return sum(1 for d in self.docs if _matches(d, filters))

    async def populate_faculty(self, db, sessions):
        return sessions


@pytest.fixture
def session_store(monkeypatch):
    from medlearn.learning import database

    def _install(docs) -> FakeSessions:
        store = FakeSessions(docs)
        for name in ("find_sessions", "get_session", "get_sessions_by_ids", "count_sessions", "populate_faculty"):
            monkeypatch.setattr(database, name, getattr(store, name))
        return store

    return _install
