"""
Content surfaces
Recent, top rated, top watched, upcoming, by pathology and recommended
sessions. Every surface gathers candidates, ranks them and hands the merged
list to the access classifier for the current viewer.
"""

import asyncio
import logging
from datetime import datetime
from typing import List, Optional, Union, Dict, Any

from motor.motor_asyncio import AsyncIOMotorDatabase

from medlearn import config
from medlearn.errors import BadInputError
from medlearn.learning import database
from medlearn.learning.access_control import classify
from medlearn.learning.models import ContentItem, ControlledItem, SessionType, ViewerAccess

logger = logging.getLogger(__name__)

RECENCY_SORT = [("created_at", -1)]
RATING_SORT = [("average_rating", -1), ("num_of_reviews", -1), ("last_review_at", -1)]

# ==================== RANKING HELPERS ====================

def _timestamp(value: Optional[datetime]) -> float:
    return value.timestamp() if value else 0.0

def merge_by_recency(*groups: List[ContentItem]) -> List[ContentItem]:
    merged = [item for group in groups for item in group]
    return sorted(merged, key=lambda item: _timestamp(item.created_at), reverse=True)

def rank_by_rating(items: List[ContentItem]) -> List[ContentItem]:
    """Average rating, then review count, then latest review, all descending"""
    return sorted(
        items,
        key=lambda item: (item.average_rating, item.num_of_reviews, _timestamp(item.last_review_at)),
        reverse=True,
    )

def rank_by_views(items: List[ContentItem]) -> List[ContentItem]:
    return sorted(items, key=lambda item: item.total_views or 0, reverse=True)

def page_bounds(page: int, limit: int):
    page = max(int(page), 1)
    limit = max(int(limit), 1)
    return page, limit, (page - 1) * limit

def paginate(items: list, page: int, limit: int) -> list:
    _, limit, skip = page_bounds(page, limit)
    return items[skip:skip + limit]

def recommendation_facets(history: List[ContentItem]) -> Dict[str, set]:
    facets = {"pathology_ids": set(), "difficulties": set(), "faculty_ids": set()}
    for item in history:
        if item.pathology_id:
            facets["pathology_ids"].add(item.pathology_id)
        if item.difficulty:
            facets["difficulties"].add(item.difficulty)
        for f in item.faculty:
            facets["faculty_ids"].add(f.id)
    return facets

def build_recommendation_filter(facets: Dict[str, set], seen_ids) -> Optional[dict]:
    """Unseen sessions matching any facet; None when there is nothing to match on"""
    clauses = []
    if facets["pathology_ids"]:
        clauses.append({"pathology_id": {"$in": sorted(facets["pathology_ids"])}})
    if facets["difficulties"]:
        clauses.append({"difficulty": {"$in": sorted(facets["difficulties"])}})
    if facets["faculty_ids"]:
        clauses.append({"faculty": {"$in": sorted(facets["faculty_ids"])}})
    if not clauses:
        return None
    return {"$or": clauses, "session_id": {"$nin": sorted(seen_ids)}}

# ==================== FETCHING ====================

async def fetch_items(
    db: AsyncIOMotorDatabase,
    filters: dict,
    sort: Optional[list] = None,
    limit: int = 0,
    skip: int = 0,
) -> List[ContentItem]:
    docs = await database.find_sessions(db, filters, sort=sort, skip=skip, limit=limit)
    docs = await database.populate_faculty(db, docs)
    return [ContentItem.from_document(database.append_image_domain(doc)) for doc in docs]

# ==================== SURFACES ====================

async def get_recent_items(db: AsyncIOMotorDatabase, access: ViewerAccess) -> List[ControlledItem]:
    cases, lectures, live = await asyncio.gather(
        fetch_items(db, {"session_type": SessionType.DICOM.value}, RECENCY_SORT, config.RECENT_DICOM_LIMIT),
        fetch_items(db, {"session_type": SessionType.VIMEO.value}, RECENCY_SORT, config.RECENT_LECTURE_LIMIT),
        fetch_items(db, {"session_type": SessionType.LIVE.value}, RECENCY_SORT, config.RECENT_LIVE_LIMIT),
    )
    return classify(merge_by_recency(cases, lectures, live), access)

async def get_top_rated_lectures(
    db: AsyncIOMotorDatabase,
    access: ViewerAccess,
    limit: int = config.TOP_RATED_LECTURE_LIMIT,
) -> List[ControlledItem]:
    lectures = await fetch_items(db, {"session_type": SessionType.VIMEO.value}, RATING_SORT, max(int(limit), 1))
    return classify(rank_by_rating(lectures), access)

async def get_top_rated_cases(
    db: AsyncIOMotorDatabase,
    access: ViewerAccess,
    limit: Union[int, str] = config.TOP_RATED_CASE_LIMIT,
) -> List[ControlledItem]:
    """``limit="All"`` returns every case"""
    if isinstance(limit, str) and limit.strip().lower() == "all":
        limit_num = 0
    else:
        try:
            limit_num = int(limit)
        except (TypeError, ValueError):
            limit_num = config.TOP_RATED_CASE_LIMIT
        if limit_num < 1:
            limit_num = config.TOP_RATED_CASE_LIMIT

    cases = await fetch_items(db, {"session_type": SessionType.DICOM.value}, RATING_SORT, limit_num)
    return classify(rank_by_rating(cases), access)

async def get_top_watched_sessions(
    db: AsyncIOMotorDatabase,
    access: ViewerAccess,
    limit: int = config.TOP_WATCHED_LIMIT,
) -> List[ControlledItem]:
    top = await database.aggregate_top_viewed(db, max(int(limit), 1))
    if not top:
        return []

    views = {row["session_id"]: row["total_views"] for row in top}
    items = await fetch_items(db, {"session_id": {"$in": list(views)}})

    # Sessions deleted since they were viewed drop out here
    for item in items:
        item.total_views = views[item.id]
    return classify(rank_by_views(items), access)

async def get_upcoming_live_programs(
    db: AsyncIOMotorDatabase,
    access: ViewerAccess,
    limit: int = 10,
    now: Optional[datetime] = None,
) -> List[ControlledItem]:
    now = now or datetime.utcnow()
    programs = await fetch_items(
        db,
        {"session_type": SessionType.LIVE.value, "start_date": {"$gte": now}},
        [("start_date", 1)],
        max(int(limit), 1),
    )
    return classify(programs, access)

async def get_sessions_by_pathology(
    db: AsyncIOMotorDatabase,
    pathology_id: str,
    page: int,
    limit: int,
    access: ViewerAccess,
) -> Dict[str, Any]:
    """
    Every session of a pathology, classified first and paginated after, so
    the locked/unlocked split is the same no matter which page is asked for.
    """
    page, limit, skip = page_bounds(page, limit)
    items = await fetch_items(db, {"pathology_id": pathology_id}, RECENCY_SORT)
    items = merge_by_recency(items)

    controlled = classify(items, access)
    return {
        "sessions": controlled[skip:skip + limit],
        "total_count": len(controlled),
        "page": page,
        "limit": limit,
        "breakdown": {
            "dicom_count": sum(1 for i in items if i.session_type == SessionType.DICOM),
            "recorded_count": sum(1 for i in items if i.session_type == SessionType.VIMEO),
            "live_count": sum(1 for i in items if i.session_type == SessionType.LIVE),
        },
    }

async def get_recommended_sessions(
    db: AsyncIOMotorDatabase,
    user_id: Optional[str],
    access: ViewerAccess,
    limit: int = 10,
    history_window: int = None,
) -> List[ControlledItem]:
    """
    Content based recommendations: facets of the last viewed sessions
    (pathology, difficulty, faculty) select unseen sessions matching any of
    them, newest first. Without history, the newest sessions overall.
    """
    if history_window is None:
        history_window = config.RECOMMENDATION_HISTORY_WINDOW
    limit = max(int(limit), 1)

    history: List[ContentItem] = []
    if user_id:
        views = await database.find_session_views(db, {"user_id": user_id}, limit=history_window)
        if views:
            history = await fetch_items(db, {"session_id": {"$in": [v["session_id"] for v in views]}})

    query = build_recommendation_filter(
        recommendation_facets(history),
        {item.id for item in history},
    )
    if query is None:
        logger.debug("No view history for %s, falling back to recent sessions", user_id)
        query = {}

    items = await fetch_items(db, query, RECENCY_SORT, limit)
    return classify(items, access)

async def get_sessions(
    db: AsyncIOMotorDatabase,
    session_type: str = "All",
    page: int = 1,
    limit: int = 10,
) -> Dict[str, Any]:
    """Plain listing for administration; no access control applied"""
    page, limit, skip = page_bounds(page, limit)
    filters = {}
    if session_type and session_type != "All":
        try:
            filters["session_type"] = SessionType.normalize(session_type).value
        except ValueError as e:
            raise BadInputError(str(e))

    docs = await database.find_sessions(db, filters, RECENCY_SORT, skip=skip, limit=limit)
    docs = await database.populate_faculty(db, docs)
    total_count = await database.count_sessions(db, filters)
    return {
        "sessions": database.append_image_domain_to_many(docs),
        "total_count": total_count,
        "page": page,
        "limit": limit,
    }
