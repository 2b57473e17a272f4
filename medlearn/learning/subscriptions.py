"""
Packages and subscriptions
Gateway order/verification calls live outside this service. The payment
service writes a captured record into `payments`; a subscription is only
granted by consuming one such record (once, for its owner, covering the
price). An active, unexpired subscription is what makes a viewer
"subscribed" for access control.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional, Dict, Any

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from medlearn.errors import BadInputError, NotFoundError
from medlearn.learning import database
from medlearn.learning.models import BillingCycle, SubscriptionStatus

logger = logging.getLogger(__name__)

BILLING_CYCLE_DAYS = {
    BillingCycle.MONTHLY: 30,
    BillingCycle.QUARTERLY: 90,
    BillingCycle.BIANNUALLY: 182,
    BillingCycle.YEARLY: 365,
}

PAYMENT_CAPTURED = "captured"


def calculate_expiry_date(start_date: datetime, billing_cycle) -> datetime:
    try:
        cycle = BillingCycle(billing_cycle)
    except ValueError:
        raise BadInputError(f"Invalid billing cycle: {billing_cycle}")
    return start_date + timedelta(days=BILLING_CYCLE_DAYS[cycle])


def is_subscription_expired(subscription: Optional[dict], now: Optional[datetime] = None) -> bool:
    if not subscription:
        return True
    expiry_date = subscription.get("expiry_date")
    if not expiry_date:
        return False
    return (now or datetime.utcnow()) > expiry_date


def _pricing_for(package: dict, billing_cycle: str) -> Optional[dict]:
    for option in package.get("pricing_options", []):
        if option.get("billing_cycle") == billing_cycle:
            return option
    return None


def check_payment(payment: Optional[dict], user_id: str, pricing: dict) -> None:
    """Raise unless the payment is captured, unused, owned by the user and covers the price"""
    if not payment or payment.get("user_id") != user_id:
        raise BadInputError("Payment not found for this user")
    if payment.get("status") != PAYMENT_CAPTURED:
        raise BadInputError(f"Payment not captured. Status: {payment.get('status')}")
    if payment.get("subscription_id"):
        raise BadInputError("Payment already used")
    if payment.get("currency") and payment["currency"] != (pricing.get("currency") or "USD"):
        raise BadInputError("Payment currency mismatch")
    if (payment.get("amount") or 0) < (pricing.get("amount") or 0):
        raise BadInputError("Payment amount does not cover the selected plan")


async def _consume_payment(db, transaction_id: str, user_id: str, pricing: dict, subscription_id: str) -> dict:
    check_payment(await find_payment(db, transaction_id), user_id, pricing)
    payment = await claim_payment(db, transaction_id, user_id, subscription_id)
    if not payment:
        # lost a race with a concurrent request for the same transaction
        raise BadInputError("Payment already used")
    return payment

# ==================== STORAGE ====================

async def insert_package(db: AsyncIOMotorDatabase, package: dict) -> dict:
    await db.packages.insert_one(package)
    return database.serialize_mongo(package)

async def get_package(db: AsyncIOMotorDatabase, package_id: str) -> Optional[dict]:
    return database.serialize_mongo(await db.packages.find_one({"package_id": package_id}))

async def list_active_packages(db: AsyncIOMotorDatabase) -> List[dict]:
    docs = await db.packages.find({"is_active": True}).sort("display_order", 1).to_list(length=None)
    return database.serialize_many(docs)

async def get_user(db: AsyncIOMotorDatabase, user_id: str) -> Optional[dict]:
    return database.serialize_mongo(await db.users.find_one({"user_id": user_id}))

async def set_user_subscription(db: AsyncIOMotorDatabase, user_id: str, subscription_id: str) -> None:
    await db.users.update_one(
        {"user_id": user_id},
        {"$set": {"active_subscription_id": subscription_id, "updated_at": datetime.utcnow()}},
    )

async def insert_subscription(db: AsyncIOMotorDatabase, subscription: dict) -> dict:
    await db.subscriptions.insert_one(subscription)
    return database.serialize_mongo(subscription)

async def find_subscription(db: AsyncIOMotorDatabase, filters: dict) -> Optional[dict]:
    return database.serialize_mongo(await db.subscriptions.find_one(filters))

async def find_subscriptions(db: AsyncIOMotorDatabase, filters: dict) -> List[dict]:
    docs = await db.subscriptions.find(filters).sort("start_date", -1).to_list(length=None)
    return database.serialize_many(docs)

async def find_payment(db: AsyncIOMotorDatabase, transaction_id: str) -> Optional[dict]:
    return database.serialize_mongo(await db.payments.find_one({"transaction_id": transaction_id}))

async def claim_payment(db: AsyncIOMotorDatabase, transaction_id: str, user_id: str, subscription_id: str) -> Optional[dict]:
    """Mark a captured payment as consumed; None when it was already used"""
    doc = await db.payments.find_one_and_update(
        {
            "transaction_id": transaction_id,
            "user_id": user_id,
            "status": PAYMENT_CAPTURED,
            "subscription_id": None,
        },
        {"$set": {"subscription_id": subscription_id, "consumed_at": datetime.utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    return database.serialize_mongo(doc)

async def update_subscription(db: AsyncIOMotorDatabase, filters: dict, updates: dict) -> Optional[dict]:
    doc = await db.subscriptions.find_one_and_update(
        filters,
        {"$set": {**updates, "updated_at": datetime.utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    return database.serialize_mongo(doc)

# ==================== PACKAGES ====================

async def create_package(db: AsyncIOMotorDatabase, data: dict) -> dict:
    package = {
        **data,
        "package_id": database.new_id("PKG"),
        "created_at": datetime.utcnow(),
        "updated_at": datetime.utcnow(),
    }
    return await insert_package(db, package)

async def get_packages(db: AsyncIOMotorDatabase) -> List[dict]:
    return await list_active_packages(db)

# ==================== SUBSCRIPTIONS ====================

async def create_subscription(
    db: AsyncIOMotorDatabase,
    user_id: str,
    package_id: str,
    billing_cycle: str,
    transaction_id: str,
    payment_gateway: Optional[str] = None,
    auto_renew: bool = False,
) -> dict:
    package = await get_package(db, package_id)
    user = await get_user(db, user_id)
    if not package or not user:
        raise NotFoundError("Package or User not found")
    if not package.get("is_active", True):
        raise BadInputError("Package is not active")

    pricing = _pricing_for(package, billing_cycle)
    if not pricing:
        raise BadInputError(f"Billing cycle '{billing_cycle}' not available for this package")
    if not transaction_id:
        raise BadInputError("A settled payment is required")

    subscription_id = database.new_id("SUB")
    payment = await _consume_payment(db, transaction_id, user_id, pricing, subscription_id)

    start_date = datetime.utcnow()
    subscription = await insert_subscription(db, {
        "subscription_id": subscription_id,
        "user_id": user_id,
        "package_id": package_id,
        "billing_cycle": billing_cycle,
        "amount": pricing.get("amount"),
        "currency": pricing.get("currency") or "USD",
        "start_date": start_date,
        "expiry_date": calculate_expiry_date(start_date, billing_cycle),
        "status": SubscriptionStatus.ACTIVE.value,
        "transaction_id": transaction_id,
        "payment_gateway": payment_gateway or payment.get("payment_gateway"),
        "auto_renew": auto_renew,
        "created_at": start_date,
    })
    await set_user_subscription(db, user_id, subscription["subscription_id"])

    logger.info("Subscription %s created for %s (%s)", subscription["subscription_id"], user_id, billing_cycle)
    return subscription

async def has_active_subscription(db: AsyncIOMotorDatabase, user_id: str) -> bool:
    subscription = await find_subscription(db, {
        "user_id": user_id,
        "status": SubscriptionStatus.ACTIVE.value,
        "expiry_date": {"$gt": datetime.utcnow()},
    })
    return subscription is not None

async def get_active_subscriptions(db: AsyncIOMotorDatabase, user_id: str) -> List[dict]:
    return await find_subscriptions(db, {
        "user_id": user_id,
        "status": SubscriptionStatus.ACTIVE.value,
        "expiry_date": {"$gt": datetime.utcnow()},
    })

async def get_subscription_history(db: AsyncIOMotorDatabase, user_id: str) -> List[dict]:
    return await find_subscriptions(db, {"user_id": user_id})

async def get_subscription(db: AsyncIOMotorDatabase, subscription_id: str, user_id: Optional[str] = None) -> dict:
    filters = {"subscription_id": subscription_id}
    if user_id:
        filters["user_id"] = user_id
    subscription = await find_subscription(db, filters)
    if not subscription:
        raise NotFoundError("Subscription not found")
    return subscription

async def cancel_subscription(db: AsyncIOMotorDatabase, subscription_id: str, user_id: str) -> dict:
    subscription = await get_subscription(db, subscription_id, user_id)
    if subscription.get("status") == SubscriptionStatus.CANCELLED.value:
        raise BadInputError("Subscription is already cancelled")

    cancelled = await update_subscription(
        db,
        {"subscription_id": subscription_id},
        {"status": SubscriptionStatus.CANCELLED.value, "cancelled_at": datetime.utcnow(), "auto_renew": False},
    )
    logger.info("Subscription %s cancelled by %s", subscription_id, user_id)
    return cancelled

async def toggle_auto_renew(db: AsyncIOMotorDatabase, subscription_id: str, user_id: str, auto_renew: bool) -> dict:
    subscription = await update_subscription(
        db,
        {"subscription_id": subscription_id, "user_id": user_id, "status": SubscriptionStatus.ACTIVE.value},
        {"auto_renew": auto_renew},
    )
    if not subscription:
        raise NotFoundError("Active subscription not found")
    return subscription

async def renew_subscription(db: AsyncIOMotorDatabase, subscription_id: str, user_id: str, transaction_id: str) -> dict:
    """Start a new paid period on the same package and cycle; the old one is completed"""
    current = await get_subscription(db, subscription_id, user_id)
    package = await get_package(db, current["package_id"])
    pricing = _pricing_for(package, current["billing_cycle"]) if package else None
    if not pricing:
        raise BadInputError("Pricing option no longer available")
    if not transaction_id:
        raise BadInputError("A settled payment is required")

    renewed_id = database.new_id("SUB")
    await _consume_payment(db, transaction_id, user_id, pricing, renewed_id)

    start_date = datetime.utcnow()
    renewed = await insert_subscription(db, {
        "subscription_id": renewed_id,
        "user_id": user_id,
        "package_id": current["package_id"],
        "billing_cycle": current["billing_cycle"],
        "amount": pricing.get("amount"),
        "currency": pricing.get("currency") or "USD",
        "start_date": start_date,
        "expiry_date": calculate_expiry_date(start_date, current["billing_cycle"]),
        "status": SubscriptionStatus.ACTIVE.value,
        "auto_renew": current.get("auto_renew", False),
        "transaction_id": transaction_id,
        "previous_subscription_id": subscription_id,
        "created_at": start_date,
    })
    await update_subscription(db, {"subscription_id": subscription_id}, {"status": SubscriptionStatus.COMPLETED.value})
    await set_user_subscription(db, user_id, renewed["subscription_id"])
    return renewed

async def expire_overdue_subscriptions(db: AsyncIOMotorDatabase) -> Dict[str, Any]:
    """Daily sweep: active subscriptions past their expiry become expired"""
    result = await db.subscriptions.update_many(
        {"status": SubscriptionStatus.ACTIVE.value, "expiry_date": {"$lt": datetime.utcnow()}},
        {"$set": {"status": SubscriptionStatus.EXPIRED.value, "updated_at": datetime.utcnow()}},
    )
    logger.info("Expired %d subscriptions", result.modified_count)
    return {
        "modified_count": result.modified_count,
        "message": f"{result.modified_count} subscriptions expired",
    }

async def get_upcoming_renewals(db: AsyncIOMotorDatabase, days_ahead: int = 7) -> List[dict]:
    now = datetime.utcnow()
    return await find_subscriptions(db, {
        "status": SubscriptionStatus.ACTIVE.value,
        "auto_renew": True,
        "expiry_date": {"$gte": now, "$lte": now + timedelta(days=days_ahead)},
    })

async def get_subscription_stats(db: AsyncIOMotorDatabase) -> List[dict]:
    pipeline = [
        {"$group": {"_id": "$status", "count": {"$sum": 1}, "total_revenue": {"$sum": "$amount"}}},
        {"$project": {"_id": 0, "status": "$_id", "count": 1, "total_revenue": 1}},
    ]
    return await db.subscriptions.aggregate(pipeline).to_list(length=None)

async def create_subscription_indexes(db: AsyncIOMotorDatabase):
    await db.packages.create_index("package_id", unique=True)
    await db.packages.create_index("package_name", unique=True)
    await db.subscriptions.create_index("subscription_id", unique=True)
    await db.subscriptions.create_index([("user_id", 1), ("status", 1), ("expiry_date", -1)])
    await db.users.create_index("user_id", unique=True)
    await db.payments.create_index("transaction_id", unique=True)
    await db.payments.create_index([("user_id", 1), ("status", 1)])
