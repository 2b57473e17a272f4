import logging
import random
from typing import List, Optional, Dict, Any

from motor.motor_asyncio import AsyncIOMotorDatabase

from medlearn.errors import BadInputError, NotFoundError
from medlearn.learning import database
from medlearn.learning.models import SessionType

logger = logging.getLogger(__name__)

COMMON_SESSION_FIELDS = (
    "title", "description", "module_name", "module_id", "pathology_name", "pathology_id",
    "difficulty", "is_free", "sponsored", "image_url_1920x1080", "image_url_522x760",
    "start_date", "end_date", "start_time", "end_time", "resource_links", "faculty",
)

# Extra fields stored per session kind
TYPE_SESSION_FIELDS = {
    SessionType.DICOM: (
        "is_assessment", "dicom_study_id", "dicom_case_id", "dicom_case_video_url", "case_access_type",
    ),
    SessionType.VIMEO: (
        "session_duration", "vimeo_video_id", "video_url", "video_type", "is_assessment",
    ),
    SessionType.LIVE: (
        "live_program_type", "zoom_meeting_id", "zoom_password", "zoom_join_url",
        "zoom_backup_link", "vimeo_video_id", "vimeo_live_url",
    ),
}

PATHOLOGY_PREVIEW_COUNT = 3


def _session_type(value: str) -> SessionType:
    try:
        session_type = SessionType.normalize(value)
    except ValueError:
        raise BadInputError("Invalid session type")
    if session_type not in TYPE_SESSION_FIELDS:
        raise BadInputError("Invalid session type")
    return session_type

def _check_type(session: dict, requested: str):
    stored = str(session.get("session_type", ""))
    if stored.lower() != str(requested or "").strip().lower():
        raise BadInputError(f"Session type mismatch. Expected {stored}, got {requested}")

# ==================== SESSIONS ====================

async def create_session(db: AsyncIOMotorDatabase, data: dict) -> dict:
    session_type = _session_type(data.get("session_type"))

    if data.get("pathology_id"):
        pathology = await database.get_pathology(db, data["pathology_id"])
        if pathology:
            data["pathology_name"] = pathology.get("pathology_name")

    fields = COMMON_SESSION_FIELDS + TYPE_SESSION_FIELDS[session_type]
    session = {key: data.get(key) for key in fields}
    session["session_type"] = session_type.value
    session["faculty"] = session.get("faculty") or []
    session["resource_links"] = session.get("resource_links") or []

    created = await database.create_session(db, session)
    logger.info("Session %s created (%s)", created["session_id"], session_type.value)
    return created

async def present_session(db: AsyncIOMotorDatabase, session: dict) -> dict:
    """Faculty populated and image urls absolute, as every session read returns"""
    sessions = await database.populate_faculty(db, [session])
    return database.append_image_domain(sessions[0])

async def get_session(db: AsyncIOMotorDatabase, session_id: str) -> dict:
    session = await database.get_session(db, session_id)
    if not session:
        raise NotFoundError("Session not found")
    return await present_session(db, session)

async def update_session(db: AsyncIOMotorDatabase, session_id: str, session_type: str, updates: dict) -> dict:
    existing = await database.get_session(db, session_id)
    if not existing:
        raise NotFoundError("Session not found for update")
    _check_type(existing, session_type)

    updates = {k: v for k, v in updates.items() if v is not None}
    if not updates:
        return await present_session(db, existing)
    return await present_session(db, await database.update_session(db, session_id, updates))

async def update_session_faculties(db: AsyncIOMotorDatabase, session_id: str, session_type: str, faculty_ids: List[str]) -> dict:
    session = await database.get_session(db, session_id)
    if not session:
        raise NotFoundError("Session not found")
    _check_type(session, session_type)
    updated = await database.update_session(db, session_id, {"faculty": list(faculty_ids)})
    return await present_session(db, updated)

async def delete_session(db: AsyncIOMotorDatabase, session_id: str, session_type: str) -> None:
    session = await database.get_session(db, session_id)
    if not session:
        raise NotFoundError("Session not found")
    _check_type(session, session_type)
    await database.delete_session(db, session_id)
    logger.info("Session %s deleted", session_id)

# ==================== MODULES ====================

def pick_pathology_names(names: List[str], rng: Optional[random.Random] = None) -> List[str]:
    """Up to three consecutive names from a random starting point"""
    if not names:
        return []
    rng = rng or random
    start = rng.randrange(len(names))
    return names[start:start + PATHOLOGY_PREVIEW_COUNT]

async def list_modules(db: AsyncIOMotorDatabase) -> List[dict]:
    return database.append_image_domain_to_many(await database.list_modules(db))

async def get_module(db: AsyncIOMotorDatabase, module_id: str) -> dict:
    module = await database.get_module(db, module_id)
    if not module:
        raise NotFoundError("Module Not Found")
    return database.append_image_domain(module)

async def list_modules_with_counts(db: AsyncIOMotorDatabase, include_sessions: bool = False) -> List[dict]:
    modules = await database.list_modules_with_counts(db, include_sessions=include_sessions)
    for module in modules:
        module["random_pathology_names"] = pick_pathology_names(module.pop("pathology_names", []) or [])
    return database.append_image_domain_to_many(modules)

async def create_module(db: AsyncIOMotorDatabase, data: dict) -> dict:
    module = await database.create_module(db, data)
    return database.append_image_domain(module)

async def update_module(db: AsyncIOMotorDatabase, module_id: str, updates: dict) -> dict:
    updates = {k: v for k, v in updates.items() if v is not None}
    module = await database.update_module(db, module_id, updates)
    if not module:
        raise NotFoundError("Module Not Found")
    return database.append_image_domain(module)

# ==================== PATHOLOGIES ====================

async def list_pathologies(db: AsyncIOMotorDatabase) -> List[dict]:
    return database.append_image_domain_to_many(await database.list_pathologies(db))

async def get_pathology(db: AsyncIOMotorDatabase, pathology_id: str) -> dict:
    pathology = await database.get_pathology(db, pathology_id)
    if not pathology:
        raise NotFoundError("Pathology Not Found")
    return database.append_image_domain(pathology)

async def create_pathology(db: AsyncIOMotorDatabase, module_id: str, data: dict) -> dict:
    if not await database.get_module(db, module_id):
        raise NotFoundError("Module Not Found")
    pathology = await database.create_pathology(db, module_id, data)
    return database.append_image_domain(pathology)

async def update_pathology(db: AsyncIOMotorDatabase, pathology_id: str, updates: dict) -> dict:
    updates = {k: v for k, v in updates.items() if v is not None}
    pathology = await database.update_pathology(db, pathology_id, updates)
    if not pathology:
        raise NotFoundError("Pathology Not Found")
    return database.append_image_domain(pathology)

async def get_pathologies_by_module(db: AsyncIOMotorDatabase, module_id: str) -> Dict[str, Any]:
    """A missing module is not found; a module without pathologies is an empty list"""
    module = await database.get_module(db, module_id)
    if not module:
        raise NotFoundError("Module Not Found")
    pathologies = await database.list_pathologies(db, {"module_id": module_id})
    return {
        "assessment": module.get("assessment", False),
        "pathologies": database.append_image_domain_to_many(pathologies),
    }

# ==================== FACULTY ====================

async def list_faculty(db: AsyncIOMotorDatabase) -> List[dict]:
    return database.append_image_domain_to_many(await database.list_faculty(db))

async def create_faculty(db: AsyncIOMotorDatabase, data: dict) -> dict:
    return database.append_image_domain(await database.create_faculty(db, data))
