from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from medlearn import auth_utils, config
from medlearn.errors import MedLearnError, medlearn_error_handler
from medlearn.learning import dependencies, subscriptions
from medlearn.learning.dependencies import get_db, get_viewer_access
from medlearn.learning.models import ViewerAccess

USERS = {
    "USR_ACTIVE": {"user_id": "USR_ACTIVE"},
    "USR_SUBSCRIBED": {"user_id": "USR_SUBSCRIBED"},
    "USR_EXPIRED": {"user_id": "USR_EXPIRED"},
    "USR_CANCELLED": {"user_id": "USR_CANCELLED"},
    "USR_DISABLED": {"user_id": "USR_DISABLED", "is_active": False},
}


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(config, "JWT_SECRET_KEY", "test-secret")
    now = datetime.utcnow()
    subs = [
        {"user_id": "USR_SUBSCRIBED", "status": "active", "expiry_date": now + timedelta(days=10)},
        {"user_id": "USR_EXPIRED", "status": "active", "expiry_date": now - timedelta(days=1)},
        {"user_id": "USR_CANCELLED", "status": "cancelled", "expiry_date": now + timedelta(days=10)},
    ]

    async def get_user(db, user_id):
        return USERS.get(user_id)

    async def find_subscription(db, filters):
        for s in subs:
            if (s["user_id"] == filters["user_id"]
                    and s["status"] == filters["status"]
                    and s["expiry_date"] > filters["expiry_date"]["$gt"]):
                return s
        return None

    monkeypatch.setattr(dependencies, "get_user", get_user)
    monkeypatch.setattr(subscriptions, "find_subscription", find_subscription)

    app = FastAPI()
    app.add_exception_handler(MedLearnError, medlearn_error_handler)

    @app.get("/access")
    async def access(viewer: ViewerAccess = Depends(get_viewer_access)):
        return {"is_logged_in": viewer.is_logged_in, "is_subscribed": viewer.is_subscribed}

    async def db_override():
        return object()

    app.dependency_overrides[get_db] = db_override
    return TestClient(app)


def bearer(user_id):
    return {"Authorization": f"Bearer {auth_utils.create_access_token(user_id)}"}


@pytest.mark.parametrize("headers", [{}, {"Authorization": "Bearer garbage"}, {"Authorization": "Basic abc"}])
def test_missing_or_bad_token_is_guest(client, headers):
    body = client.get("/access", headers=headers).json()
    assert body == {"is_logged_in": False, "is_subscribed": False}


def test_unknown_user_is_guest(client):
    body = client.get("/access", headers=bearer("USR_UNKNOWN")).json()
    assert body == {"is_logged_in": False, "is_subscribed": False}


def test_inactive_user_is_guest(client):
    body = client.get("/access", headers=bearer("USR_DISABLED")).json()
    assert body == {"is_logged_in": False, "is_subscribed": False}


def test_user_without_subscription_is_logged_in(client):
    body = client.get("/access", headers=bearer("USR_ACTIVE")).json()
    assert body == {"is_logged_in": True, "is_subscribed": False}


@pytest.mark.parametrize("user_id", ["USR_EXPIRED", "USR_CANCELLED"])
def test_lapsed_subscription_stays_logged_in(client, user_id):
    body = client.get("/access", headers=bearer(user_id)).json()
    assert body == {"is_logged_in": True, "is_subscribed": False}


def test_active_unexpired_subscription_is_subscribed(client):
    body = client.get("/access", headers=bearer("USR_SUBSCRIBED")).json()
    assert body == {"is_logged_in": True, "is_subscribed": True}


def test_cookie_token_is_honoured(client):
    client.cookies.set(config.JWT_COOKIE_NAME, auth_utils.create_access_token("USR_SUBSCRIBED"))
    body = client.get("/access").json()
    assert body == {"is_logged_in": True, "is_subscribed": True}


def test_required_user_rejects_disabled_account(client):
    app = client.app

    @app.get("/me")
    async def me(user_id: str = Depends(dependencies.get_current_user_id)):
        return {"user_id": user_id}

    assert client.get("/me", headers=bearer("USR_ACTIVE")).json() == {"user_id": "USR_ACTIVE"}
    r = client.get("/me", headers=bearer("USR_DISABLED"))
    assert r.status_code == 401
