"""
Session assessments
Faculty attach short-answer questions to a session. A learner's answer is
scored against the faculty answer by text similarity, the learner's points
are totalled across every assessment and the total decides their belt.
"""

import logging
from datetime import datetime
from difflib import SequenceMatcher
from typing import List, Optional, Dict, Any

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from medlearn.errors import NotFoundError
from medlearn.learning import database
from medlearn.learning.models import Belt

logger = logging.getLogger(__name__)

EXACT_MATCH = 1.0
PARTIAL_MATCH = 0.7

# Highest first
BELT_THRESHOLDS = [
    (1000, Belt.BLACK),
    (700, Belt.BROWN),
    (400, Belt.BLUE),
    (200, Belt.GREEN),
    (100, Belt.YELLOW),
]
BELT_ORDER = [Belt.WHITE, Belt.YELLOW, Belt.GREEN, Belt.BLUE, Belt.BROWN, Belt.BLACK]


def calculate_belt(total_points: int) -> Belt:
    for threshold, belt in BELT_THRESHOLDS:
        if total_points >= threshold:
            return belt
    return Belt.WHITE


def answer_similarity(expected: str, given: str) -> float:
    return SequenceMatcher(None, expected, given).ratio()


def score_answer(faculty_answer: Optional[str], user_answer: Optional[str], max_points: int) -> int:
    """Full points for an exact match, half for a close one, nothing otherwise"""
    expected = (faculty_answer or "").strip().lower()
    given = (user_answer or "").strip().lower()
    if not expected or not given:
        return 0

    similarity = answer_similarity(expected, given)
    if similarity >= EXACT_MATCH:
        return max_points
    if similarity >= PARTIAL_MATCH:
        return max_points // 2
    return 0


def _without_answer(assessment: dict) -> dict:
    return {k: v for k, v in assessment.items() if k != "faculty_answer"}

# ==================== STORAGE ====================

async def insert_assessment(db: AsyncIOMotorDatabase, assessment: dict) -> dict:
    await db.assessments.insert_one(assessment)
    return database.serialize_mongo(assessment)

async def get_assessment(db: AsyncIOMotorDatabase, assessment_id: str) -> Optional[dict]:
    return database.serialize_mongo(await db.assessments.find_one({"assessment_id": assessment_id}))

async def find_assessments(db: AsyncIOMotorDatabase, filters: dict) -> List[dict]:
    docs = await db.assessments.find(filters).sort("created_at", 1).to_list(length=None)
    return database.serialize_many(docs)

async def upsert_user_assessment(db: AsyncIOMotorDatabase, user_id: str, assessment_id: str, fields: dict) -> dict:
    now = datetime.utcnow()
    doc = await db.user_assessments.find_one_and_update(
        {"user_id": user_id, "assessment_id": assessment_id},
        {
            "$set": {**fields, "updated_at": now},
            "$setOnInsert": {"user_assessment_id": database.new_id("UAS"), "created_at": now},
        },
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return database.serialize_mongo(doc)

async def sum_user_points(db: AsyncIOMotorDatabase, user_id: str) -> int:
    pipeline = [
        {"$match": {"user_id": user_id}},
        {"$group": {"_id": None, "total_points": {"$sum": "$points_awarded"}}},
    ]
    rows = await db.user_assessments.aggregate(pipeline).to_list(length=1)
    return rows[0]["total_points"] if rows else 0

async def set_user_totals(db: AsyncIOMotorDatabase, user_id: str, total_points: int, belt: str) -> None:
    await db.user_assessments.update_many(
        {"user_id": user_id},
        {"$set": {"total_points": total_points, "belt": belt}},
    )

async def find_user_assessments(db: AsyncIOMotorDatabase, user_id: str) -> List[dict]:
    docs = await db.user_assessments.find({"user_id": user_id}).sort("created_at", -1).to_list(length=None)
    return database.serialize_many(docs)

async def find_user_standing(db: AsyncIOMotorDatabase, user_id: str) -> Optional[dict]:
    return database.serialize_mongo(await db.user_assessments.find_one(
        {"user_id": user_id}, {"_id": 0, "total_points": 1, "belt": 1}
    ))

async def insert_belt_promotion(db: AsyncIOMotorDatabase, promotion: dict) -> None:
    await db.user_belt_history.insert_one(promotion)

async def find_belt_history(db: AsyncIOMotorDatabase, user_id: str) -> List[dict]:
    docs = await db.user_belt_history.find({"user_id": user_id}).sort("achieved_at", 1).to_list(length=None)
    return database.serialize_many(docs)

# ==================== SERVICE ====================

async def create_assessment(db: AsyncIOMotorDatabase, data: dict) -> dict:
    session = await database.get_session(db, data["session_id"])
    if not session:
        raise NotFoundError("Session not found")

    assessment = await insert_assessment(db, {
        "assessment_id": database.new_id("ASM"),
        "session_id": data["session_id"],
        "question_text": data["question_text"],
        "faculty_answer": data.get("faculty_answer") or "",
        "module": data.get("module"),
        "max_points": data.get("max_points", 10),
        "created_at": datetime.utcnow(),
    })
    logger.info("Assessment %s created for session %s", assessment["assessment_id"], data["session_id"])
    return assessment

async def get_assessments_by_session(db: AsyncIOMotorDatabase, session_id: str, include_answers: bool = False) -> List[dict]:
    assessments = await find_assessments(db, {"session_id": session_id})
    if include_answers:
        return assessments
    return [_without_answer(a) for a in assessments]

async def get_user_belt(db: AsyncIOMotorDatabase, user_id: str) -> Dict[str, Any]:
    standing = await find_user_standing(db, user_id)
    if not standing:
        return {"belt": Belt.WHITE.value, "total_points": 0}
    return {
        "belt": standing.get("belt") or Belt.WHITE.value,
        "total_points": standing.get("total_points") or 0,
    }

async def submit_user_answer(db: AsyncIOMotorDatabase, user_id: str, assessment_id: str, user_answer: str) -> Dict[str, Any]:
    assessment = await get_assessment(db, assessment_id)
    if not assessment:
        raise NotFoundError("Assessment not found")

    previous = await get_user_belt(db, user_id)
    points = score_answer(assessment.get("faculty_answer"), user_answer, assessment.get("max_points", 0))
    record = await upsert_user_assessment(db, user_id, assessment_id, {
        "user_answer": user_answer,
        "points_awarded": points,
        "is_reviewed": True,
    })

    total_points = await sum_user_points(db, user_id)
    belt = calculate_belt(total_points)
    await set_user_totals(db, user_id, total_points, belt.value)

    if BELT_ORDER.index(belt) > BELT_ORDER.index(Belt(previous["belt"])):
        await insert_belt_promotion(db, {
            "user_id": user_id,
            "belt": belt.value,
            "points_at_promotion": total_points,
            "achieved_at": datetime.utcnow(),
        })
        logger.info("User %s promoted to %s belt (%d points)", user_id, belt.value, total_points)

    return {**record, "total_points": total_points, "belt": belt.value}

async def get_user_assessments(db: AsyncIOMotorDatabase, user_id: str) -> List[dict]:
    """A user's answers, each with the assessment it answers"""
    records = await find_user_assessments(db, user_id)
    if not records:
        return []
    assessments = await find_assessments(db, {"assessment_id": {"$in": [r["assessment_id"] for r in records]}})
    by_id = {a["assessment_id"]: a for a in assessments}
    return [{**r, "assessment": by_id.get(r["assessment_id"])} for r in records]

async def get_belt_history(db: AsyncIOMotorDatabase, user_id: str) -> List[dict]:
    return await find_belt_history(db, user_id)

async def create_assessment_indexes(db: AsyncIOMotorDatabase):
    await db.assessments.create_index("assessment_id", unique=True)
    await db.assessments.create_index("session_id")
    await db.assessments.create_index("module")
    await db.user_assessments.create_index([("user_id", 1), ("assessment_id", 1)], unique=True)
    await db.user_assessments.create_index("assessment_id")
    await db.user_belt_history.create_index("user_id")
