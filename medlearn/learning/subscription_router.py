from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from medlearn.learning import subscriptions
from medlearn.learning.dependencies import get_db, get_current_user_id
from medlearn.learning.models import AutoRenewToggle, PackageCreate, SubscriptionCreate, SubscriptionRenew

router = APIRouter(tags=["Subscriptions"])


# ==================== PACKAGES ====================

@router.get("/packages")
async def list_packages(db: AsyncIOMotorDatabase = Depends(get_db)):
    return {"success": True, "data": await subscriptions.get_packages(db)}

@router.post("/packages")
async def create_package(
    payload: PackageCreate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    package = await subscriptions.create_package(db, payload.model_dump(mode="json"))
    return {"success": True, "data": package}

# ==================== SUBSCRIPTIONS ====================

@router.post("/")
async def create_subscription(
    payload: SubscriptionCreate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    subscription = await subscriptions.create_subscription(
        db,
        user_id,
        payload.package_id,
        payload.billing_cycle.value,
        transaction_id=payload.transaction_id,
        payment_gateway=payload.payment_gateway,
        auto_renew=payload.auto_renew,
    )
    return {"success": True, "data": subscription}

@router.get("/active")
async def active_subscriptions(
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return {"success": True, "data": await subscriptions.get_active_subscriptions(db, user_id)}

@router.get("/history")
async def subscription_history(
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return {"success": True, "data": await subscriptions.get_subscription_history(db, user_id)}

@router.get("/stats")
async def subscription_stats(
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return {"success": True, "data": await subscriptions.get_subscription_stats(db)}

@router.post("/expire")
async def expire_subscriptions(
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return {"success": True, **await subscriptions.expire_overdue_subscriptions(db)}

@router.get("/renewals")
async def upcoming_renewals(
    days_ahead: int = 7,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return {"success": True, "data": await subscriptions.get_upcoming_renewals(db, days_ahead)}

@router.get("/{subscription_id}")
async def get_subscription(
    subscription_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return {"success": True, "data": await subscriptions.get_subscription(db, subscription_id, user_id)}

@router.post("/{subscription_id}/cancel")
async def cancel_subscription(
    subscription_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return {"success": True, "data": await subscriptions.cancel_subscription(db, subscription_id, user_id)}

@router.post("/{subscription_id}/renew")
async def renew_subscription(
    subscription_id: str,
    payload: SubscriptionRenew,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return {"success": True, "data": await subscriptions.renew_subscription(db, subscription_id, user_id, payload.transaction_id)}

@router.put("/{subscription_id}/auto-renew")
async def toggle_auto_renew(
    subscription_id: str,
    payload: AutoRenewToggle,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    subscription = await subscriptions.toggle_auto_renew(db, subscription_id, user_id, payload.auto_renew)
    return {"success": True, "data": subscription}
