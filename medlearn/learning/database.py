from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from datetime import datetime
from typing import List, Optional, Dict, Any, Iterable
import uuid

from medlearn import config

# ==================== HELPERS ====================

def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12].upper()}"

def serialize_mongo(doc: Optional[dict]) -> Optional[dict]:
    """Drop the driver ObjectId; every collection carries its own string id"""
    if doc is None:
        return None
    doc.pop("_id", None)
    return doc

def serialize_many(docs: List[dict]) -> List[dict]:
    return [serialize_mongo(doc) for doc in docs]

def _with_domain(url):
    if url and isinstance(url, str) and not url.startswith("http"):
        return f"{config.BACKEND_IMAGE_DOMAIN}{url}"
    return url

def append_image_domain(doc: Optional[dict]) -> Optional[dict]:
    """Turn relative upload paths into absolute URLs"""
    if not doc:
        return doc
    for key in ("image_url", "image_url_1920x1080", "image_url_522x760", "image"):
        if key in doc:
            doc[key] = _with_domain(doc[key])
    if isinstance(doc.get("faculty"), list):
        for f in doc["faculty"]:
            if isinstance(f, dict) and "image" in f:
                f["image"] = _with_domain(f["image"])
    return doc

def append_image_domain_to_many(docs: List[dict]) -> List[dict]:
    return [append_image_domain(doc) for doc in docs]

# ==================== SESSION CRUD ====================

async def create_session(db: AsyncIOMotorDatabase, data: dict) -> dict:
    session = {
        **data,
        "session_id": new_id("SES"),
        "average_rating": 0.0,
        "num_of_reviews": 0,
        "created_at": datetime.utcnow(),
        "updated_at": datetime.utcnow(),
    }
    await db.sessions.insert_one(session)
    return serialize_mongo(session)

async def get_session(db: AsyncIOMotorDatabase, session_id: str) -> Optional[dict]:
    return serialize_mongo(await db.sessions.find_one({"session_id": session_id}))

async def find_sessions(
    db: AsyncIOMotorDatabase,
    filters: dict,
    sort: Optional[List[tuple]] = None,
    skip: int = 0,
    limit: int = 0,
) -> List[dict]:
    """Find sessions; ``limit=0`` means no limit"""
    cursor = db.sessions.find(filters)
    if sort:
        cursor = cursor.sort(sort)
    if skip:
        cursor = cursor.skip(skip)
    if limit:
        cursor = cursor.limit(limit)
    docs = await cursor.to_list(length=limit or None)
    return serialize_many(docs)

async def count_sessions(db: AsyncIOMotorDatabase, filters: dict) -> int:
    return await db.sessions.count_documents(filters)

async def get_sessions_by_ids(db: AsyncIOMotorDatabase, session_ids: Iterable[str]) -> List[dict]:
    return await find_sessions(db, {"session_id": {"$in": list(session_ids)}})

async def update_session(db: AsyncIOMotorDatabase, session_id: str, updates: dict) -> Optional[dict]:
    updates["updated_at"] = datetime.utcnow()
    doc = await db.sessions.find_one_and_update(
        {"session_id": session_id},
        {"$set": updates},
        return_document=ReturnDocument.AFTER,
    )
    return serialize_mongo(doc)

async def delete_session(db: AsyncIOMotorDatabase, session_id: str) -> bool:
    result = await db.sessions.delete_one({"session_id": session_id})
    return result.deleted_count > 0

async def set_session_rating(
    db: AsyncIOMotorDatabase,
    session_id: str,
    average_rating: float,
    num_of_reviews: int,
    last_review_at: Optional[datetime],
) -> None:
    await db.sessions.update_one(
        {"session_id": session_id},
        {"$set": {
            "average_rating": average_rating,
            "num_of_reviews": num_of_reviews,
            "last_review_at": last_review_at,
        }},
    )

# ==================== FACULTY ====================

async def create_faculty(db: AsyncIOMotorDatabase, data: dict) -> dict:
    faculty = {**data, "faculty_id": new_id("FAC"), "created_at": datetime.utcnow()}
    await db.faculty.insert_one(faculty)
    return serialize_mongo(faculty)

async def list_faculty(db: AsyncIOMotorDatabase) -> List[dict]:
    docs = await db.faculty.find({}).sort("name", 1).to_list(length=None)
    return serialize_many(docs)

async def get_faculty_by_ids(db: AsyncIOMotorDatabase, faculty_ids: Iterable[str]) -> List[dict]:
    docs = await db.faculty.find(
        {"faculty_id": {"$in": list(faculty_ids)}},
        {"_id": 0, "faculty_id": 1, "name": 1, "image": 1},
    ).to_list(length=None)
    return docs

async def populate_faculty(db: AsyncIOMotorDatabase, sessions: List[dict]) -> List[dict]:
    """Replace faculty ids with {id, name, image} references"""
    wanted = {fid for s in sessions for fid in (s.get("faculty") or []) if isinstance(fid, str)}
    if not wanted:
        return sessions
    by_id = {f["faculty_id"]: f for f in await get_faculty_by_ids(db, wanted)}
    for s in sessions:
        refs = []
        for fid in s.get("faculty") or []:
            if not isinstance(fid, str):
                refs.append(fid)
                continue
            f = by_id.get(fid, {})
            refs.append({"id": fid, "name": f.get("name"), "image": _with_domain(f.get("image"))})
        s["faculty"] = refs
    return sessions

# ==================== MODULES ====================

async def create_module(db: AsyncIOMotorDatabase, data: dict) -> dict:
    module = {
        **data,
        "module_id": new_id("MOD"),
        "created_at": datetime.utcnow(),
        "updated_at": datetime.utcnow(),
    }
    await db.modules.insert_one(module)
    return serialize_mongo(module)

async def get_module(db: AsyncIOMotorDatabase, module_id: str) -> Optional[dict]:
    return serialize_mongo(await db.modules.find_one({"module_id": module_id}))

async def list_modules(db: AsyncIOMotorDatabase) -> List[dict]:
    docs = await db.modules.find({}).sort("created_at", 1).to_list(length=None)
    return serialize_many(docs)

async def update_module(db: AsyncIOMotorDatabase, module_id: str, updates: dict) -> Optional[dict]:
    updates["updated_at"] = datetime.utcnow()
    doc = await db.modules.find_one_and_update(
        {"module_id": module_id},
        {"$set": updates},
        return_document=ReturnDocument.AFTER,
    )
    return serialize_mongo(doc)

async def list_modules_with_counts(db: AsyncIOMotorDatabase, include_sessions: bool = False) -> List[dict]:
    """Modules with pathology (and optionally session) counts and all pathology names"""
    pipeline: List[Dict[str, Any]] = [
        {"$lookup": {
            "from": "pathologies",
            "localField": "module_id",
            "foreignField": "module_id",
            "as": "pathologies",
        }},
    ]
    if include_sessions:
        pipeline.append({"$lookup": {
            "from": "sessions",
            "localField": "module_id",
            "foreignField": "module_id",
            "as": "sessions",
        }})

    project = {
        "_id": 0,
        "module_id": 1,
        "module_name": 1,
        "image_url": 1,
        "assessment": 1,
        "total_pathologies_count": {"$size": "$pathologies"},
        "pathology_names": "$pathologies.pathology_name",
    }
    if include_sessions:
        project["total_sessions_count"] = {"$size": "$sessions"}
    pipeline.append({"$project": project})

    return await db.modules.aggregate(pipeline).to_list(length=None)

# ==================== PATHOLOGIES ====================

async def create_pathology(db: AsyncIOMotorDatabase, module_id: str, data: dict) -> dict:
    pathology = {
        **data,
        "pathology_id": new_id("PAT"),
        "module_id": module_id,
        "created_at": datetime.utcnow(),
        "updated_at": datetime.utcnow(),
    }
    await db.pathologies.insert_one(pathology)
    return serialize_mongo(pathology)

async def get_pathology(db: AsyncIOMotorDatabase, pathology_id: str) -> Optional[dict]:
    return serialize_mongo(await db.pathologies.find_one({"pathology_id": pathology_id}))

async def list_pathologies(db: AsyncIOMotorDatabase, filters: Optional[dict] = None) -> List[dict]:
    docs = await db.pathologies.find(filters or {}).sort("created_at", 1).to_list(length=None)
    return serialize_many(docs)

async def update_pathology(db: AsyncIOMotorDatabase, pathology_id: str, updates: dict) -> Optional[dict]:
    updates["updated_at"] = datetime.utcnow()
    doc = await db.pathologies.find_one_and_update(
        {"pathology_id": pathology_id},
        {"$set": updates},
        return_document=ReturnDocument.AFTER,
    )
    return serialize_mongo(doc)

# ==================== VIEWS & PLAYBACK PROGRESS ====================

async def upsert_playback_progress(
    db: AsyncIOMotorDatabase,
    user_id: str,
    session_id: str,
    session_model_type: str,
    current_time: Optional[float] = None,
) -> dict:
    """Record the latest position; ``current_time=None`` keeps the stored one (0 on insert)"""
    now = datetime.utcnow()
    update: Dict[str, Any] = {
        "$set": {"last_watched_at": now, "session_model_type": session_model_type, "updated_at": now},
        "$setOnInsert": {"created_at": now},
    }
    if current_time is None:
        update["$setOnInsert"]["current_time"] = 0
    else:
        update["$set"]["current_time"] = current_time

    doc = await db.playback_progress.find_one_and_update(
        {"user_id": user_id, "session_id": session_id},
        update,
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return serialize_mongo(doc)

async def upsert_session_view(
    db: AsyncIOMotorDatabase,
    user_id: str,
    session_id: str,
    module_id: Optional[str] = None,
    increment: int = 0,
    completed: bool = False,
) -> dict:
    """
    Atomic increment-if-exists-else-insert of the per user view record.

    ``completed=True`` marks the view completed; otherwise the completion flag
    is only initialised on insert, so a completed view never goes back.
    """
    now = datetime.utcnow()
    update: Dict[str, Any] = {
        "$set": {"last_viewed_at": now, "updated_at": now},
        "$setOnInsert": {"module_id": module_id, "created_at": now},
    }
    if increment:
        update["$inc"] = {"view_count": increment}
    else:
        update["$setOnInsert"]["view_count"] = 1 if completed else 0
    if completed:
        update["$set"]["is_completed"] = True
    else:
        update["$setOnInsert"]["is_completed"] = False

    doc = await db.session_views.find_one_and_update(
        {"user_id": user_id, "session_id": session_id},
        update,
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return serialize_mongo(doc)

async def get_playback_progress(db: AsyncIOMotorDatabase, user_id: str, session_id: str) -> Optional[dict]:
    return serialize_mongo(
        await db.playback_progress.find_one({"user_id": user_id, "session_id": session_id})
    )

async def get_session_view(db: AsyncIOMotorDatabase, user_id: str, session_id: str) -> Optional[dict]:
    return serialize_mongo(
        await db.session_views.find_one({"user_id": user_id, "session_id": session_id})
    )

async def find_session_views(
    db: AsyncIOMotorDatabase,
    filters: dict,
    limit: int = 0,
) -> List[dict]:
    """Views newest first"""
    cursor = db.session_views.find(filters).sort("last_viewed_at", -1)
    if limit:
        cursor = cursor.limit(limit)
    return serialize_many(await cursor.to_list(length=limit or None))

async def count_session_views(db: AsyncIOMotorDatabase, filters: dict) -> int:
    return await db.session_views.count_documents(filters)

async def find_playback_progress(db: AsyncIOMotorDatabase, filters: dict, limit: int = 50) -> List[dict]:
    cursor = db.playback_progress.find(filters).sort("last_watched_at", -1).limit(limit)
    return serialize_many(await cursor.to_list(length=limit))

async def aggregate_top_viewed(db: AsyncIOMotorDatabase, limit: int) -> List[dict]:
    """[{session_id, total_views}] summed over every user, most viewed first"""
    pipeline = [
        {"$group": {"_id": "$session_id", "total_views": {"$sum": "$view_count"}}},
        {"$sort": {"total_views": -1}},
        {"$limit": limit},
        {"$project": {"_id": 0, "session_id": "$_id", "total_views": 1}},
    ]
    return await db.session_views.aggregate(pipeline).to_list(length=limit)

# ==================== INDEXES ====================

async def create_learning_indexes(db: AsyncIOMotorDatabase):
    await db.sessions.create_index("session_id", unique=True)
    await db.sessions.create_index([("session_type", 1), ("created_at", -1)])
    await db.sessions.create_index([("session_type", 1), ("pathology_id", 1)])
    await db.sessions.create_index([("is_free", 1), ("session_type", 1)])
    await db.sessions.create_index([("average_rating", -1), ("num_of_reviews", -1)])
    await db.sessions.create_index("module_id")
    await db.sessions.create_index("difficulty")
    await db.sessions.create_index("start_date")
    await db.sessions.create_index("faculty")

    await db.modules.create_index("module_id", unique=True)
    await db.pathologies.create_index("pathology_id", unique=True)
    await db.pathologies.create_index("module_id")
    await db.faculty.create_index("faculty_id", unique=True)

    await db.playback_progress.create_index([("user_id", 1), ("session_id", 1)], unique=True)
    await db.playback_progress.create_index([("user_id", 1), ("last_watched_at", -1)])
    await db.session_views.create_index([("user_id", 1), ("session_id", 1)], unique=True)
    await db.session_views.create_index([("user_id", 1), ("is_completed", 1)])
    await db.session_views.create_index([("user_id", 1), ("last_viewed_at", -1)])
    await db.session_views.create_index([("session_id", 1), ("view_count", -1)])
