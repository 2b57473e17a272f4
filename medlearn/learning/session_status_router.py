from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from medlearn.learning import progress
from medlearn.learning.dependencies import get_db, get_current_user_id
from medlearn.learning.models import DicomAction, LectureProgressUpdate

router = APIRouter(tags=["Session Status"])


@router.post("/vimeo/progress")
async def update_vimeo_progress(
    payload: LectureProgressUpdate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    status = await progress.update_lecture_progress(
        db, user_id, payload.session_id, payload.current_time, payload.duration
    )
    return {"success": True, "data": status}

@router.post("/dicom/start")
async def mark_dicom_started(
    payload: DicomAction,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return {"success": True, "data": await progress.mark_case_started(db, user_id, payload.session_id)}

@router.post("/dicom/complete")
async def mark_dicom_completed(
    payload: DicomAction,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return {"success": True, "data": await progress.mark_case_completed(db, user_id, payload.session_id)}

@router.get("/progress/{session_id}")
async def get_session_progress(
    session_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return {"success": True, "data": await progress.get_session_progress(db, user_id, session_id)}

@router.get("/in-progress")
async def get_in_progress_sessions(
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return {"success": True, "data": await progress.get_in_progress_sessions(db, user_id)}

@router.get("/completed")
async def get_completed_sessions(
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return {"success": True, "data": await progress.get_completed_sessions(db, user_id)}

@router.get("/stats")
async def get_user_session_stats(
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return {"success": True, "data": await progress.get_user_session_stats(db, user_id)}
