"""
Session progress tracking
Playback position for recorded lectures, started/completed markers for
DICOM cases, and the three state status derived from them.

    notstarted -> inprogress -> completed

A lecture counts as completed once current_time / duration reaches
COMPLETION_THRESHOLD. Completed is terminal: re-watching never moves a
session back to in progress.
"""

import asyncio
import logging
from typing import List, Optional, Dict, Any

from motor.motor_asyncio import AsyncIOMotorDatabase

from medlearn import config
from medlearn.errors import BadInputError, NotFoundError
from medlearn.learning import database
from medlearn.learning.models import (
    PROGRESS_MODEL_TYPES, SessionProgress, SessionStatus, SessionType
)

logger = logging.getLogger(__name__)

# ==================== STATUS RULES ====================

def completion_percentage(current_time: float, duration: Optional[float]) -> float:
    if not duration or duration <= 0:
        return 0.0
    return (current_time / duration) * 100

def derive_status(
    current_time: float,
    duration: Optional[float],
    already_completed: bool = False,
) -> SessionStatus:
    if already_completed:
        return SessionStatus.COMPLETED
    if completion_percentage(current_time, duration) >= config.COMPLETION_THRESHOLD * 100:
        return SessionStatus.COMPLETED
    return SessionStatus.IN_PROGRESS

async def _require_session(db: AsyncIOMotorDatabase, session_id: str, session_type: SessionType, label: str) -> dict:
    session = await database.get_session(db, session_id)
    if not session:
        raise NotFoundError("Session not found")
    if SessionType.normalize(session.get("session_type")) != session_type:
        raise BadInputError(f"Session is not a {label}")
    return session

# ==================== EVENTS ====================

async def update_lecture_progress(
    db: AsyncIOMotorDatabase,
    user_id: str,
    session_id: str,
    current_time: float,
    duration: Optional[float] = None,
) -> SessionProgress:
    """Progress tick from the lecture player. Does not count as a new view."""
    session = await _require_session(db, session_id, SessionType.VIMEO, "Vimeo lecture")

    percentage = completion_percentage(current_time, duration)
    reached = derive_status(current_time, duration) == SessionStatus.COMPLETED

    progress = await database.upsert_playback_progress(
        db, user_id, session_id,
        PROGRESS_MODEL_TYPES[SessionType.VIMEO],
        current_time=current_time,
    )
    view = await database.upsert_session_view(
        db, user_id, session_id,
        module_id=session.get("module_id"),
        completed=reached,
    )

    is_completed = bool(view.get("is_completed"))
    status = derive_status(current_time, duration, already_completed=is_completed)

    logger.info(
        "Lecture progress: user=%s session=%s status=%s progress=%.2f%%",
        user_id, session_id, status.value, percentage,
    )
    return SessionProgress(
        status=status,
        current_time=current_time,
        last_watched_at=progress.get("last_watched_at"),
        completion_percentage=100.0 if is_completed and not reached else percentage,
        is_completed=is_completed,
    )

async def mark_case_started(db: AsyncIOMotorDatabase, user_id: str, session_id: str) -> SessionProgress:
    """User opened a DICOM case; counts as a view"""
    session = await _require_session(db, session_id, SessionType.DICOM, "DICOM case")

    progress = await database.upsert_playback_progress(
        db, user_id, session_id, PROGRESS_MODEL_TYPES[SessionType.DICOM]
    )
    view = await database.upsert_session_view(
        db, user_id, session_id,
        module_id=session.get("module_id"),
        increment=1,
    )

    is_completed = bool(view.get("is_completed"))
    status = SessionStatus.COMPLETED if is_completed else SessionStatus.IN_PROGRESS
    logger.info("DICOM case started: user=%s session=%s status=%s", user_id, session_id, status.value)
    return SessionProgress(
        status=status,
        last_watched_at=progress.get("last_watched_at"),
        completion_percentage=100.0 if is_completed else None,
        is_completed=is_completed,
    )

async def mark_case_completed(db: AsyncIOMotorDatabase, user_id: str, session_id: str) -> SessionProgress:
    """Observations submitted for a DICOM case"""
    session = await _require_session(db, session_id, SessionType.DICOM, "DICOM case")

    progress = await database.upsert_playback_progress(
        db, user_id, session_id, PROGRESS_MODEL_TYPES[SessionType.DICOM]
    )
    await database.upsert_session_view(
        db, user_id, session_id,
        module_id=session.get("module_id"),
        completed=True,
    )

    logger.info("DICOM case completed: user=%s session=%s", user_id, session_id)
    return SessionProgress(
        status=SessionStatus.COMPLETED,
        last_watched_at=progress.get("last_watched_at"),
        completion_percentage=100.0,
        is_completed=True,
    )

async def track_session_view(
    db: AsyncIOMotorDatabase,
    user_id: str,
    session_id: str,
    module_id: Optional[str] = None,
) -> dict:
    """Start event for any session kind: one more view, fresh last_viewed_at"""
    session = await database.get_session(db, session_id)
    if not session:
        raise NotFoundError("Session not found")
    return await database.upsert_session_view(
        db, user_id, session_id,
        module_id=module_id or session.get("module_id"),
        increment=1,
    )

# ==================== QUERIES ====================

async def get_session_progress(db: AsyncIOMotorDatabase, user_id: str, session_id: str) -> SessionProgress:
    session = await database.get_session(db, session_id)
    if not session:
        raise NotFoundError("Session not found")

    progress, view = await asyncio.gather(
        database.get_playback_progress(db, user_id, session_id),
        database.get_session_view(db, user_id, session_id),
    )

    if not progress and not view:
        return SessionProgress(status=SessionStatus.NOT_STARTED, is_completed=False)

    progress = progress or {}
    if view and view.get("is_completed"):
        return SessionProgress(
            status=SessionStatus.COMPLETED,
            current_time=progress.get("current_time"),
            last_watched_at=progress.get("last_watched_at"),
            completion_percentage=100.0,
            is_completed=True,
        )

    return SessionProgress(
        status=SessionStatus.IN_PROGRESS,
        current_time=progress.get("current_time"),
        last_watched_at=progress.get("last_watched_at"),
        is_completed=False,
    )

async def _views_with_sessions(db: AsyncIOMotorDatabase, user_id: str, completed: bool) -> List[Dict[str, Any]]:
    views = await database.find_session_views(db, {"user_id": user_id, "is_completed": completed})
    if not views:
        return []

    sessions = await database.get_sessions_by_ids(db, [v["session_id"] for v in views])
    sessions = await database.populate_faculty(db, sessions)
    by_id = {s["session_id"]: database.append_image_domain(s) for s in sessions}

    status = SessionStatus.COMPLETED if completed else SessionStatus.IN_PROGRESS
    # Views of deleted sessions are skipped
    return [
        {
            "session": by_id[v["session_id"]],
            "last_viewed_at": v.get("last_viewed_at"),
            "view_count": v.get("view_count", 0),
            "status": status,
        }
        for v in views
        if v["session_id"] in by_id
    ]

async def get_in_progress_sessions(db: AsyncIOMotorDatabase, user_id: str) -> List[Dict[str, Any]]:
    return await _views_with_sessions(db, user_id, completed=False)

async def get_completed_sessions(db: AsyncIOMotorDatabase, user_id: str) -> List[Dict[str, Any]]:
    return await _views_with_sessions(db, user_id, completed=True)

async def get_user_session_stats(db: AsyncIOMotorDatabase, user_id: str) -> Dict[str, Any]:
    completed, in_progress = await asyncio.gather(
        database.count_session_views(db, {"user_id": user_id, "is_completed": True}),
        database.count_session_views(db, {"user_id": user_id, "is_completed": False}),
    )
    total_started = completed + in_progress
    rate = (completed / total_started) * 100 if total_started > 0 else 0
    return {
        "total_started": total_started,
        "total_completed": completed,
        "total_in_progress": in_progress,
        "completion_rate": round(rate, 2),
    }

async def get_watched_sessions(
    db: AsyncIOMotorDatabase,
    user_id: str,
    session_type: Optional[str] = None,
    limit: int = 50,
) -> List[Dict[str, Any]]:
    """Sessions with a playback record, most recently watched first"""
    filters: Dict[str, Any] = {"user_id": user_id}
    if session_type:
        try:
            filters["session_model_type"] = PROGRESS_MODEL_TYPES[SessionType.normalize(session_type)]
        except (ValueError, KeyError):
            raise BadInputError(f"Invalid session type: {session_type}")

    records = await database.find_playback_progress(db, filters, limit=limit)
    if not records:
        return []

    sessions = await database.get_sessions_by_ids(db, [r["session_id"] for r in records])
    sessions = await database.populate_faculty(db, sessions)
    by_id = {s["session_id"]: database.append_image_domain(s) for s in sessions}

    watched = []
    for record in records:
        session = by_id.get(record["session_id"])
        if not session:
            continue
        watched.append({
            **session,
            "playback_progress": {
                "current_time": record.get("current_time"),
                "last_watched_at": record.get("last_watched_at"),
                "session_model_type": record.get("session_model_type"),
            },
        })
    return watched
