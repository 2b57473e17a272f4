from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from medlearn.learning import assessments
from medlearn.learning.dependencies import get_db, get_current_user_id
from medlearn.learning.models import AssessmentAnswer, AssessmentCreate

router = APIRouter(tags=["Assessments"])


@router.post("/")
async def create_assessment(
    payload: AssessmentCreate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return {"success": True, "data": await assessments.create_assessment(db, payload.model_dump())}

@router.get("/session/{session_id}")
async def assessments_by_session(session_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    return {"success": True, "data": await assessments.get_assessments_by_session(db, session_id)}

@router.post("/submit")
async def submit_answer(
    payload: AssessmentAnswer,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    result = await assessments.submit_user_answer(db, user_id, payload.assessment_id, payload.user_answer)
    return {"success": True, "data": result}

@router.get("/mine")
async def my_assessments(
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return {"success": True, "data": await assessments.get_user_assessments(db, user_id)}

@router.get("/belt")
async def my_belt(
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return {"success": True, "data": await assessments.get_user_belt(db, user_id)}

@router.get("/belt/history")
async def my_belt_history(
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return {"success": True, "data": await assessments.get_belt_history(db, user_id)}
