"""
DICOM case observations
Faculty write the reference findings for a case, learners submit their own,
and the two are compared side by side. Submitting a full set of learner
observations completes the case for that learner.
"""

import logging
from datetime import datetime
from typing import List, Optional, Dict, Any

from motor.motor_asyncio import AsyncIOMotorDatabase

from medlearn.errors import BadInputError, NotFoundError
from medlearn.learning import database, progress
from medlearn.learning.models import SessionType

logger = logging.getLogger(__name__)

# ==================== STORAGE ====================

async def insert_observation(db: AsyncIOMotorDatabase, observation: dict) -> dict:
    await db.observations.insert_one(observation)
    return database.serialize_mongo(observation)

async def get_observation(db: AsyncIOMotorDatabase, observation_id: str) -> Optional[dict]:
    return database.serialize_mongo(await db.observations.find_one({"observation_id": observation_id}))

async def find_observations(db: AsyncIOMotorDatabase, filters: dict) -> List[dict]:
    docs = await db.observations.find(filters).sort("created_at", 1).to_list(length=None)
    return database.serialize_many(docs)

async def set_faculty_observation(db: AsyncIOMotorDatabase, observation_id: str, text: str) -> None:
    await db.observations.update_one(
        {"observation_id": observation_id},
        {"$set": {"faculty_observation": text, "updated_at": datetime.utcnow()}},
    )

async def insert_user_observations(db: AsyncIOMotorDatabase, docs: List[dict]) -> None:
    if docs:
        await db.user_observations.insert_many(docs)

async def find_user_observations(db: AsyncIOMotorDatabase, filters: dict) -> List[dict]:
    docs = await db.user_observations.find(filters).sort("created_at", 1).to_list(length=None)
    return database.serialize_many(docs)

# ==================== SERVICE ====================

async def create_observation(db: AsyncIOMotorDatabase, session_id: str, observation_text: str, module: Optional[str]) -> dict:
    session = await database.get_session(db, session_id)
    if not session:
        raise NotFoundError("Session not found")
    if SessionType.normalize(session.get("session_type")) != SessionType.DICOM:
        raise BadInputError("Observations can only be added to DICOM sessions")

    return await insert_observation(db, {
        "observation_id": database.new_id("OBS"),
        "session_id": session_id,
        "observation_text": observation_text,
        "module": module,
        "faculty_observation": None,
        "created_at": datetime.utcnow(),
    })

async def add_faculty_observation(db: AsyncIOMotorDatabase, observation_id: str, text: str) -> dict:
    observation = await get_observation(db, observation_id)
    if not observation:
        raise NotFoundError("Observation not found")
    await set_faculty_observation(db, observation_id, text)
    observation["faculty_observation"] = text
    return observation

def _user_observation(observation: dict, user_id: str, text: str) -> dict:
    return {
        "user_observation_id": database.new_id("UOB"),
        "observation_id": observation["observation_id"],
        "session_id": observation.get("session_id"),
        "observation_text": observation.get("observation_text"),
        "module": observation.get("module"),
        "user_id": user_id,
        "user_observation": text,
        "created_at": datetime.utcnow(),
    }

async def add_user_observation(db: AsyncIOMotorDatabase, observation_id: str, user_id: str, text: str) -> dict:
    observation = await get_observation(db, observation_id)
    if not observation:
        raise NotFoundError("Observation not found")
    doc = _user_observation(observation, user_id, text)
    await insert_user_observations(db, [doc])
    return database.serialize_mongo(doc)

async def submit_user_observations(
    db: AsyncIOMotorDatabase,
    user_id: str,
    answers: List[Dict[str, str]],
) -> Dict[str, Any]:
    """
    Save a learner's answers for a case in one go. Every observation id must
    exist or nothing is written. Completes the DICOM case(s) answered.
    """
    ids = [a["observation_id"] for a in answers]
    known = {o["observation_id"]: o for o in await find_observations(db, {"observation_id": {"$in": ids}})}

    docs = []
    for answer in answers:
        observation = known.get(answer["observation_id"])
        if not observation:
            raise NotFoundError(f"Observation {answer['observation_id']} not found")
        docs.append(_user_observation(observation, user_id, answer["user_observation"]))

    await insert_user_observations(db, docs)

    for session_id in sorted({d["session_id"] for d in docs if d.get("session_id")}):
        await progress.mark_case_completed(db, user_id, session_id)

    logger.info("User %s submitted %d observations", user_id, len(docs))
    return {"message": "All user observations saved successfully", "count": len(docs)}

async def get_observations_by_session(db: AsyncIOMotorDatabase, session_id: str) -> List[dict]:
    return await find_observations(db, {"session_id": session_id})

async def get_observation_with_user_responses(db: AsyncIOMotorDatabase, observation_id: str) -> dict:
    observation = await get_observation(db, observation_id)
    if not observation:
        raise NotFoundError("Observation not found")
    responses = await find_user_observations(db, {"observation_id": observation_id})
    return {**observation, "user_responses": responses}

async def compare_observations(db: AsyncIOMotorDatabase, session_id: str, user_id: str) -> Dict[str, Any]:
    observations = await find_observations(db, {"session_id": session_id})
    if not observations:
        raise NotFoundError("No observations found for this session")

    answers = await find_user_observations(db, {
        "observation_id": {"$in": [o["observation_id"] for o in observations]},
        "user_id": user_id,
    })
    # Latest answer wins when a learner submitted more than once
    by_observation = {a["observation_id"]: a for a in answers}

    comparisons = [
        {
            "observation_id": o["observation_id"],
            "observation_text": o.get("observation_text"),
            "module": o.get("module"),
            "faculty_observation": o.get("faculty_observation") or "",
            "user_observation": by_observation.get(o["observation_id"], {}).get("user_observation", ""),
        }
        for o in observations
    ]
    return {"count": len(comparisons), "comparisons": comparisons}

async def get_user_observations(db: AsyncIOMotorDatabase, user_id: str) -> List[dict]:
    return await find_user_observations(db, {"user_id": user_id})

async def get_dicom_video_url(db: AsyncIOMotorDatabase, session_id: str) -> Optional[str]:
    session = await database.get_session(db, session_id)
    if not session:
        raise NotFoundError("Session not found")
    if SessionType.normalize(session.get("session_type")) != SessionType.DICOM:
        return None
    return session.get("dicom_case_video_url")

async def create_observation_indexes(db: AsyncIOMotorDatabase):
    await db.observations.create_index("observation_id", unique=True)
    await db.observations.create_index("session_id")
    await db.user_observations.create_index([("observation_id", 1), ("user_id", 1)])
    await db.user_observations.create_index("user_id")
