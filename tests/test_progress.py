from __future__ import annotations

from datetime import datetime
from types import SimpleNamespace

import anyio
import pytest

from medlearn.errors import BadInputError, NotFoundError
from medlearn.learning import database, progress
from medlearn.learning.models import SessionStatus


class FakeViews:
    """Mirrors the increment-if-exists-else-insert contract of upsert_session_view"""

    def __init__(self):
        self.views = {}
        self.progress = {}
        self.increments = []

    async def upsert_session_view(self, db, user_id, session_id, module_id=None, increment=0, completed=False):
        key = (user_id, session_id)
        view = self.views.setdefault(key, {
            "user_id": user_id,
            "session_id": session_id,
            "module_id": module_id,
            "view_count": 1 if completed and not increment else 0,
            "is_completed": False,
        })
        view["view_count"] += increment
        self.increments.append(increment)
        if completed:
            view["is_completed"] = True
        view["last_viewed_at"] = datetime.utcnow()
        return dict(view)

    async def upsert_playback_progress(self, db, user_id, session_id, session_model_type, current_time=None):
        record = self.progress.setdefault((user_id, session_id), {"current_time": 0})
        if current_time is not None:
            record["current_time"] = current_time
        record["session_model_type"] = session_model_type
        record["last_watched_at"] = datetime.utcnow()
        return dict(record)

    async def get_playback_progress(self, db, user_id, session_id):
        return self.progress.get((user_id, session_id))

    async def get_session_view(self, db, user_id, session_id):
        return self.views.get((user_id, session_id))


@pytest.fixture
def views(monkeypatch, session_store, session_doc):
    session_store([
        session_doc("LEC", "Vimeo", module_id="MOD_1"),
        session_doc("CASE", "Dicom", module_id="MOD_1"),
    ])
    fake = FakeViews()
    for name in ("upsert_session_view", "upsert_playback_progress", "get_playback_progress", "get_session_view"):
        monkeypatch.setattr(database, name, getattr(fake, name))
    return fake


def test_derive_status_threshold():
    assert progress.derive_status(410, 500) == SessionStatus.COMPLETED
    assert progress.derive_status(400, 500) == SessionStatus.COMPLETED
    assert progress.derive_status(350, 500) == SessionStatus.IN_PROGRESS
    assert progress.derive_status(10, None) == SessionStatus.IN_PROGRESS
    assert progress.derive_status(0, 500, already_completed=True) == SessionStatus.COMPLETED


def test_lecture_at_82_percent_is_completed(views, fake_db):
    out = anyio.run(progress.update_lecture_progress, fake_db, "USR_1", "LEC", 410, 500)

    assert out.status == SessionStatus.COMPLETED
    assert out.is_completed is True
    assert out.completion_percentage == pytest.approx(82.0)
    assert views.views[("USR_1", "LEC")]["is_completed"] is True


def test_lecture_at_70_percent_is_in_progress(views, fake_db):
    out = anyio.run(progress.update_lecture_progress, fake_db, "USR_1", "LEC", 350, 500)

    assert out.status == SessionStatus.IN_PROGRESS
    assert out.is_completed is False
    assert views.progress[("USR_1", "LEC")]["current_time"] == 350


def test_completed_lecture_never_regresses(views, fake_db):
    anyio.run(progress.update_lecture_progress, fake_db, "USR_1", "LEC", 450, 500)
    out = anyio.run(progress.update_lecture_progress, fake_db, "USR_1", "LEC", 20, 500)

    assert out.status == SessionStatus.COMPLETED
    assert out.is_completed is True
    assert out.completion_percentage == 100.0
    assert views.progress[("USR_1", "LEC")]["current_time"] == 20


def test_progress_ticks_do_not_count_as_views(views, fake_db):
    anyio.run(progress.update_lecture_progress, fake_db, "USR_1", "LEC", 10, 500)
    anyio.run(progress.update_lecture_progress, fake_db, "USR_1", "LEC", 20, 500)
    assert views.views[("USR_1", "LEC")]["view_count"] == 0


def test_lecture_progress_on_unknown_session(views, fake_db):
    with pytest.raises(NotFoundError):
        anyio.run(progress.update_lecture_progress, fake_db, "USR_1", "NOPE", 10, 500)


def test_lecture_progress_on_dicom_case_is_rejected(views, fake_db):
    with pytest.raises(BadInputError):
        anyio.run(progress.update_lecture_progress, fake_db, "USR_1", "CASE", 10, 500)


def test_case_start_then_complete(views, fake_db):
    started = anyio.run(progress.mark_case_started, fake_db, "USR_1", "CASE")
    assert started.status == SessionStatus.IN_PROGRESS
    assert views.views[("USR_1", "CASE")]["view_count"] == 1

    done = anyio.run(progress.mark_case_completed, fake_db, "USR_1", "CASE")
    assert done.status == SessionStatus.COMPLETED

    again = anyio.run(progress.mark_case_started, fake_db, "USR_1", "CASE")
    assert again.status == SessionStatus.COMPLETED
    assert views.views[("USR_1", "CASE")]["view_count"] == 2


def test_case_start_rejects_lecture(views, fake_db):
    with pytest.raises(BadInputError):
        anyio.run(progress.mark_case_started, fake_db, "USR_1", "LEC")


def test_session_progress_not_started(views, fake_db):
    out = anyio.run(progress.get_session_progress, fake_db, "USR_1", "LEC")
    assert out.status == SessionStatus.NOT_STARTED
    assert out.is_completed is False


def test_session_progress_reflects_completion(views, fake_db):
    anyio.run(progress.update_lecture_progress, fake_db, "USR_1", "LEC", 100, 500)
    assert anyio.run(progress.get_session_progress, fake_db, "USR_1", "LEC").status == SessionStatus.IN_PROGRESS

    anyio.run(progress.update_lecture_progress, fake_db, "USR_1", "LEC", 499, 500)
    out = anyio.run(progress.get_session_progress, fake_db, "USR_1", "LEC")
    assert out.status == SessionStatus.COMPLETED
    assert out.current_time == 499


def test_track_view_increments(views, fake_db):
    anyio.run(progress.track_session_view, fake_db, "USR_1", "LEC")
    view = anyio.run(progress.track_session_view, fake_db, "USR_1", "LEC")
    assert view["view_count"] == 2
    assert view["module_id"] == "MOD_1"


def test_user_stats_completion_rate(fake_db, monkeypatch):
    async def count(db, filters):
        return 3 if filters["is_completed"] else 1

    monkeypatch.setattr(database, "count_session_views", count)
    stats = anyio.run(progress.get_user_session_stats, fake_db, "USR_1")
    assert stats == {"total_started": 4, "total_completed": 3, "total_in_progress": 1, "completion_rate": 75.0}


def test_user_stats_without_views(fake_db, monkeypatch):
    async def count(db, filters):
        return 0

    monkeypatch.setattr(database, "count_session_views", count)
    assert anyio.run(progress.get_user_session_stats, fake_db, "USR_1")["completion_rate"] == 0


def test_watched_sessions_rejects_unknown_type(fake_db):
    with pytest.raises(BadInputError):
        anyio.run(progress.get_watched_sessions, fake_db, "USR_1", "Podcast")


def test_in_progress_list_skips_deleted_sessions(views, fake_db, monkeypatch):
    async def find_session_views(db, filters, limit=0):
        return [
            {"user_id": "USR_1", "session_id": "GONE", "view_count": 3, "is_completed": False},
            {"user_id": "USR_1", "session_id": "LEC", "view_count": 1, "is_completed": False},
        ]

    monkeypatch.setattr(database, "find_session_views", find_session_views)
    out = anyio.run(progress.get_in_progress_sessions, fake_db, "USR_1")

    assert [row["session"]["session_id"] for row in out] == ["LEC"]
    assert out[0]["status"] == SessionStatus.IN_PROGRESS


class FakeCollection:
    def __init__(self):
        self.updates = []

    async def find_one_and_update(self, filters, update, upsert=False, return_document=None):
        self.updates.append((filters, update, upsert))
        return {"_id": "x", **filters}


def test_view_upsert_never_writes_completion_false_on_existing():
    db = SimpleNamespace(session_views=FakeCollection())

    anyio.run(database.upsert_session_view, db, "USR_1", "LEC")
    filters, update, upsert = db.session_views.updates[-1]
    assert upsert is True
    assert "is_completed" not in update["$set"]
    assert update["$setOnInsert"]["is_completed"] is False

    anyio.run(database.upsert_session_view, db, "USR_1", "LEC", None, 1)
    _, update, _ = db.session_views.updates[-1]
    assert update["$inc"] == {"view_count": 1}
    assert "view_count" not in update["$setOnInsert"]

    anyio.run(database.upsert_session_view, db, "USR_1", "LEC", None, 0, True)
    _, update, _ = db.session_views.updates[-1]
    assert update["$set"]["is_completed"] is True
    assert "is_completed" not in update["$setOnInsert"]
