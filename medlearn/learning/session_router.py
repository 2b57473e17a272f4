from fastapi import APIRouter, Depends, Query
from motor.motor_asyncio import AsyncIOMotorDatabase
from typing import Optional

from medlearn.learning import aggregator, catalog, progress
from medlearn.learning.access_control import classify
from medlearn.learning.dependencies import (
    get_db, get_current_user_id, get_optional_user_id, get_viewer_access
)
from medlearn.learning.models import (
    ContentItem, FacultyUpdate, SessionCreate, SessionUpdate, SessionViewTrack, ViewerAccess
)

router = APIRouter(tags=["Sessions"])


def dump_items(items):
    return [item.model_dump() for item in items]

# ==================== ADMIN / FACULTY ====================

@router.post("/create")
async def create_session_endpoint(
    payload: SessionCreate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    session = await catalog.create_session(db, payload.model_dump())
    return {"success": True, "message": "Session created successfully", "data": session}

@router.put("/update")
async def update_session_endpoint(
    payload: SessionUpdate,
    session_id: str = Query(...),
    session_type: str = Query(...),
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    session = await catalog.update_session(db, session_id, session_type, payload.model_dump())
    return {"success": True, "message": "Session updated successfully", "data": session}

@router.put("/faculties/{session_id}/{session_type}")
async def update_session_faculties_endpoint(
    session_id: str,
    session_type: str,
    payload: FacultyUpdate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    session = await catalog.update_session_faculties(db, session_id, session_type, payload.faculty_ids)
    return {"success": True, "message": "Session faculties updated successfully", "data": session}

@router.delete("/delete")
async def delete_session_endpoint(
    session_id: str = Query(...),
    session_type: str = Query(...),
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    await catalog.delete_session(db, session_id, session_type)
    return {"success": True, "message": "Session deleted successfully"}

# ==================== CONTENT SURFACES ====================

@router.get("/get")
async def list_sessions_endpoint(
    session_type: str = "All",
    page: int = 1,
    limit: int = 10,
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    result = await aggregator.get_sessions(db, session_type or "All", page, limit)
    return {"success": True, "data": result}

@router.get("/by-pathology")
async def sessions_by_pathology_endpoint(
    pathology_id: str,
    page: int = 1,
    limit: int = 10,
    db: AsyncIOMotorDatabase = Depends(get_db),
    access: ViewerAccess = Depends(get_viewer_access),
):
    result = await aggregator.get_sessions_by_pathology(db, pathology_id, page, limit, access)
    result["sessions"] = dump_items(result["sessions"])
    return {"success": True, "data": result}

@router.get("/recent")
async def recent_items_endpoint(
    db: AsyncIOMotorDatabase = Depends(get_db),
    access: ViewerAccess = Depends(get_viewer_access),
):
    return {"success": True, "data": dump_items(await aggregator.get_recent_items(db, access))}

@router.get("/top-rated-lectures")
async def top_rated_lectures_endpoint(
    db: AsyncIOMotorDatabase = Depends(get_db),
    access: ViewerAccess = Depends(get_viewer_access),
):
    return {"success": True, "data": dump_items(await aggregator.get_top_rated_lectures(db, access))}

@router.get("/top-rated-cases")
async def top_rated_cases_endpoint(
    limit: str = "10",
    db: AsyncIOMotorDatabase = Depends(get_db),
    access: ViewerAccess = Depends(get_viewer_access),
):
    return {"success": True, "data": dump_items(await aggregator.get_top_rated_cases(db, access, limit))}

@router.get("/top-watched")
async def top_watched_endpoint(
    db: AsyncIOMotorDatabase = Depends(get_db),
    access: ViewerAccess = Depends(get_viewer_access),
):
    return {"success": True, "data": dump_items(await aggregator.get_top_watched_sessions(db, access))}

@router.get("/upcoming-live")
async def upcoming_live_endpoint(
    limit: int = 10,
    db: AsyncIOMotorDatabase = Depends(get_db),
    access: ViewerAccess = Depends(get_viewer_access),
):
    return {"success": True, "data": dump_items(await aggregator.get_upcoming_live_programs(db, access, limit))}

@router.get("/recommended")
async def recommended_endpoint(
    limit: int = 10,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: Optional[str] = Depends(get_optional_user_id),
    access: ViewerAccess = Depends(get_viewer_access),
):
    items = await aggregator.get_recommended_sessions(db, user_id, access, limit)
    return {"success": True, "data": dump_items(items)}

# ==================== VIEWS ====================

@router.post("/track-view")
async def track_view_endpoint(
    payload: SessionViewTrack,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    view = await progress.track_session_view(db, user_id, payload.session_id, payload.module_id)
    return {"success": True, "message": "Session view tracked", "data": view}

@router.get("/watched")
async def watched_sessions_endpoint(
    session_type: Optional[str] = None,
    limit: int = 50,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    sessions = await progress.get_watched_sessions(db, user_id, session_type, limit)
    return {"success": True, "data": sessions}

@router.get("/completed")
async def completed_sessions_endpoint(
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return {"success": True, "data": await progress.get_completed_sessions(db, user_id)}

@router.get("/{session_id}")
async def get_session_endpoint(
    session_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    access: ViewerAccess = Depends(get_viewer_access),
):
    item = ContentItem.from_document(await catalog.get_session(db, session_id))
    return {"success": True, "data": classify([item], access)[0].model_dump()}
