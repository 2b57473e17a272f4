import logging
from typing import Optional

from fastapi import Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from medlearn.auth_utils import optional_token, user_id_from_payload, verify_token
from medlearn.errors import UnauthorizedError
from medlearn.learning.models import ViewerAccess
from medlearn.learning.subscriptions import get_user, has_active_subscription

logger = logging.getLogger(__name__)

def get_db_instance():
    """Get database from main module"""
    from medlearn.main import db
    return db

# ==================== DEPENDENCY FUNCTIONS ====================

async def get_db() -> AsyncIOMotorDatabase:
    """Database dependency"""
    return get_db_instance()

async def get_current_user_id(
    payload: dict = Depends(verify_token),
    db: AsyncIOMotorDatabase = Depends(get_db),
) -> str:
    """Authenticated user id; the account must still exist"""
    user_id = user_id_from_payload(payload)
    user = await get_user(db, user_id)
    if not user or not user.get("is_active", True):
        raise UnauthorizedError("User not found or inactive")
    return user_id

async def get_optional_user_id(
    payload: Optional[dict] = Depends(optional_token),
    db: AsyncIOMotorDatabase = Depends(get_db),
) -> Optional[str]:
    if not payload:
        return None
    user_id = user_id_from_payload(payload)
    user = await get_user(db, user_id)
    if not user or not user.get("is_active", True):
        logger.debug("Token for unknown or inactive user %s, treating as guest", user_id)
        return None
    return user_id

async def get_viewer_access(
    user_id: Optional[str] = Depends(get_optional_user_id),
    db: AsyncIOMotorDatabase = Depends(get_db),
) -> ViewerAccess:
    """Access tier for this request: guest, logged in, or subscribed"""
    if not user_id:
        return ViewerAccess()
    return ViewerAccess(
        is_logged_in=True,
        is_subscribed=await has_active_subscription(db, user_id),
    )
