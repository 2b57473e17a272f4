from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from medlearn.learning import reviews
from medlearn.learning.dependencies import get_db, get_current_user_id
from medlearn.learning.models import ReviewCreate, ReviewUpdate

router = APIRouter(tags=["Reviews"])


@router.get("/item/{item_id}")
async def reviews_for_item(item_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    return {"success": True, "data": await reviews.get_reviews_for_item(db, item_id)}

@router.get("/item/{item_id}/mine")
async def my_review_for_item(
    item_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return {"success": True, "data": await reviews.get_user_review(db, user_id, item_id)}

@router.post("/")
async def create_review(
    payload: ReviewCreate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    review = await reviews.create_review(db, user_id, payload.item_id, payload.rating, payload.comment)
    return {"success": True, "data": review}

@router.put("/{review_id}")
async def update_review(
    review_id: str,
    payload: ReviewUpdate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    review = await reviews.update_review(db, user_id, review_id, payload.rating, payload.comment)
    return {"success": True, "data": review}

@router.delete("/{review_id}")
async def delete_review(
    review_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    result = await reviews.delete_review(db, user_id, review_id)
    return {"success": True, **result}
