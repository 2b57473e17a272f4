import logging
from datetime import datetime
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from medlearn.errors import BadInputError, ForbiddenError, NotFoundError
from medlearn.learning import database

logger = logging.getLogger(__name__)

LATEST_REVIEWS_LIMIT = 4

# ==================== STORAGE ====================

async def insert_review(db: AsyncIOMotorDatabase, review: dict) -> dict:
    await db.reviews.insert_one(review)
    return database.serialize_mongo(review)

async def find_review(db: AsyncIOMotorDatabase, filters: dict) -> Optional[dict]:
    return database.serialize_mongo(await db.reviews.find_one(filters))

async def find_latest_reviews(db: AsyncIOMotorDatabase, item_id: str, limit: int) -> List[dict]:
    cursor = db.reviews.find({"item_id": item_id}).sort("created_at", -1).limit(limit)
    return database.serialize_many(await cursor.to_list(length=limit))

async def save_review(db: AsyncIOMotorDatabase, review_id: str, updates: dict) -> None:
    await db.reviews.update_one({"review_id": review_id}, {"$set": updates})

async def remove_review(db: AsyncIOMotorDatabase, review_id: str) -> None:
    await db.reviews.delete_one({"review_id": review_id})

async def rating_stats(db: AsyncIOMotorDatabase, item_id: str) -> dict:
    pipeline = [
        {"$match": {"item_id": item_id}},
        {"$group": {
            "_id": None,
            "average_rating": {"$avg": "$rating"},
            "num_of_reviews": {"$sum": 1},
            "last_review_at": {"$max": "$updated_at"},
        }},
    ]
    rows = await db.reviews.aggregate(pipeline).to_list(length=1)
    if not rows:
        return {"average_rating": 0.0, "num_of_reviews": 0, "last_review_at": None}
    return rows[0]

# ==================== SERVICE ====================

async def refresh_item_rating(db: AsyncIOMotorDatabase, item_id: str) -> dict:
    """Recompute the rating aggregates the top rated surfaces rank by"""
    stats = await rating_stats(db, item_id)
    await database.set_session_rating(
        db, item_id,
        stats["average_rating"] or 0.0,
        stats["num_of_reviews"],
        stats.get("last_review_at"),
    )
    return stats

async def get_reviews_for_item(db: AsyncIOMotorDatabase, item_id: str) -> List[dict]:
    return await find_latest_reviews(db, item_id, LATEST_REVIEWS_LIMIT)

async def get_user_review(db: AsyncIOMotorDatabase, user_id: str, item_id: str) -> Optional[dict]:
    return await find_review(db, {"user_id": user_id, "item_id": item_id})

async def create_review(db: AsyncIOMotorDatabase, user_id: str, item_id: str, rating: int, comment: Optional[str]) -> dict:
    if not await database.get_session(db, item_id):
        raise NotFoundError("Session not found")
    if await find_review(db, {"user_id": user_id, "item_id": item_id}):
        raise BadInputError("You have already reviewed this item.")

    now = datetime.utcnow()
    review = await insert_review(db, {
        "review_id": database.new_id("REV"),
        "item_id": item_id,
        "user_id": user_id,
        "rating": rating,
        "comment": comment,
        "created_at": now,
        "updated_at": now,
    })
    await refresh_item_rating(db, item_id)
    logger.info("Review %s created by %s for %s", review["review_id"], user_id, item_id)
    return review

async def _owned_review(db: AsyncIOMotorDatabase, user_id: str, review_id: str, action: str) -> dict:
    review = await find_review(db, {"review_id": review_id})
    if not review:
        raise NotFoundError("Review not found.")
    if review["user_id"] != user_id:
        raise ForbiddenError(f"Unauthorized to {action} this review.")
    return review

async def update_review(
    db: AsyncIOMotorDatabase,
    user_id: str,
    review_id: str,
    rating: Optional[int] = None,
    comment: Optional[str] = None,
) -> dict:
    review = await _owned_review(db, user_id, review_id, "update")

    updates = {"updated_at": datetime.utcnow()}
    if rating is not None:
        updates["rating"] = rating
    if comment is not None:
        updates["comment"] = comment

    await save_review(db, review_id, updates)
    review.update(updates)
    await refresh_item_rating(db, review["item_id"])
    return review

async def delete_review(db: AsyncIOMotorDatabase, user_id: str, review_id: str) -> dict:
    review = await _owned_review(db, user_id, review_id, "delete")
    await remove_review(db, review_id)
    await refresh_item_rating(db, review["item_id"])
    logger.info("Review %s deleted by %s", review_id, user_id)
    return {"message": "Review deleted successfully."}

async def create_review_indexes(db: AsyncIOMotorDatabase):
    await db.reviews.create_index("review_id", unique=True)
    await db.reviews.create_index([("item_id", 1), ("user_id", 1)], unique=True)
    await db.reviews.create_index([("item_id", 1), ("created_at", -1)])
