from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from medlearn.learning import observations
from medlearn.learning.dependencies import get_db, get_current_user_id
from medlearn.learning.models import (
    FacultyObservation, ObservationCreate, UserObservation, UserObservationBatch
)

router = APIRouter(tags=["Observations"])


@router.post("/")
async def create_observation(
    payload: ObservationCreate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    observation = await observations.create_observation(
        db, payload.session_id, payload.observation_text, payload.module
    )
    return {"success": True, "data": observation}

@router.put("/{observation_id}/faculty")
async def add_faculty_observation(
    observation_id: str,
    payload: FacultyObservation,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    observation = await observations.add_faculty_observation(db, observation_id, payload.faculty_observation)
    return {"success": True, "data": observation}

@router.post("/user")
async def add_user_observation(
    payload: UserObservation,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    doc = await observations.add_user_observation(db, payload.observation_id, user_id, payload.user_observation)
    return {"success": True, "data": doc}

@router.post("/user/submit")
async def submit_user_observations(
    payload: UserObservationBatch,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    answers = [o.model_dump() for o in payload.observations]
    return {"success": True, **await observations.submit_user_observations(db, user_id, answers)}

@router.get("/user/mine")
async def my_observations(
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return {"success": True, "data": await observations.get_user_observations(db, user_id)}

@router.get("/session/{session_id}")
async def observations_by_session(session_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    return {"success": True, "data": await observations.get_observations_by_session(db, session_id)}

@router.get("/session/{session_id}/compare")
async def compare_observations(
    session_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return {"success": True, "data": await observations.compare_observations(db, session_id, user_id)}

@router.get("/session/{session_id}/video")
async def dicom_video_url(session_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    return {"success": True, "data": {"video_url": await observations.get_dicom_video_url(db, session_id)}}

@router.get("/{observation_id}")
async def observation_with_responses(
    observation_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    data = await observations.get_observation_with_user_responses(db, observation_id)
    return {"success": True, "data": data}
