from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from pymongo.errors import PyMongoError

from medlearn.errors import MedLearnError, medlearn_error_handler, storage_error_handler
from medlearn.learning import aggregator, assessments, database, progress, reviews, subscriptions
from medlearn.learning.app import setup_learning_routes
from medlearn.learning.dependencies import get_current_user_id, get_db, get_viewer_access
from medlearn.learning.models import SessionProgress, SessionStatus, ViewerAccess


def create_app(access: ViewerAccess = None, user_id: str = "USR_1", authenticated: bool = True) -> FastAPI:
    app = FastAPI()
    setup_learning_routes(app)
    app.add_exception_handler(MedLearnError, medlearn_error_handler)
    app.add_exception_handler(PyMongoError, storage_error_handler)

    async def db_override():
        return object()

    async def access_override():
        return access or ViewerAccess()

    app.dependency_overrides[get_db] = db_override
    app.dependency_overrides[get_viewer_access] = access_override
    if authenticated:
        async def user_override():
            return user_id
        app.dependency_overrides[get_current_user_id] = user_override
    return app


def test_recent_returns_classified_items(session_store, session_doc):
    session_store(
        [session_doc(f"F{i}", "Dicom", is_free=True, minutes=i) for i in range(4)]
        + [session_doc("PAID", "Vimeo", minutes=50, video_url="https://player.example/1")]
    )
    client = TestClient(create_app(ViewerAccess(is_logged_in=True)))

    r = client.get("/sessions/recent")
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert len(body["data"]) == 5
    locked = [i for i in body["data"] if i["is_locked"]]
    assert [i["id"] for i in locked] == ["PAID"]
    assert "video_url" not in locked[0]
    assert locked[0]["lock_reason"] == "Subscribe to access this content"


def test_unknown_session_is_404(session_store):
    session_store([])
    client = TestClient(create_app())

    r = client.get("/sessions/SES_404")
    assert r.status_code == 404
    assert r.json() == {"success": False, "message": "Session not found"}


def test_single_session_is_classified_for_viewer(session_store, session_doc):
    session_store([session_doc("SES_1", "Live", zoom_join_url="https://zoom.example/j/1")])

    guest = TestClient(create_app()).get("/sessions/SES_1").json()["data"]
    assert guest["is_locked"] is True
    assert "zoom_join_url" not in guest

    subscriber = TestClient(create_app(ViewerAccess(is_logged_in=True, is_subscribed=True))).get("/sessions/SES_1").json()["data"]
    assert subscriber["is_locked"] is False
    assert subscriber["zoom_join_url"] == "https://zoom.example/j/1"


def test_storage_failure_is_500(monkeypatch):
    async def broken(db, access):
        raise PyMongoError("connection reset")

    monkeypatch.setattr(aggregator, "get_recent_items", broken)
    r = TestClient(create_app()).get("/sessions/recent")
    assert r.status_code == 500
    assert r.json() == {"success": False, "message": "Failed to fetch data"}


def test_invalid_session_type_is_400(session_store):
    session_store([])
    r = TestClient(create_app()).get("/sessions/get", params={"session_type": "Podcast"})
    assert r.status_code == 400
    assert r.json()["success"] is False


def test_write_routes_require_a_token():
    client = TestClient(create_app(authenticated=False))

    r = client.post("/reviews/", json={"item_id": "SES_1", "rating": 5})
    assert r.status_code == 401
    assert r.json()["success"] is False

    r = client.post("/session-status/vimeo/progress", json={"session_id": "SES_1", "current_time": 10, "duration": 100})
    assert r.status_code == 401


def test_vimeo_progress_route(monkeypatch):
    seen = {}

    async def update(db, user_id, session_id, current_time, duration=None):
        seen.update(user_id=user_id, session_id=session_id, current_time=current_time, duration=duration)
        return SessionProgress(status=SessionStatus.COMPLETED, current_time=current_time, completion_percentage=82.0, is_completed=True)

    monkeypatch.setattr(progress, "update_lecture_progress", update)
    r = TestClient(create_app()).post(
        "/session-status/vimeo/progress",
        json={"session_id": "SES_1", "current_time": 410, "duration": 500},
    )

    assert r.status_code == 200
    assert r.json()["data"]["status"] == "completed"
    assert seen == {"user_id": "USR_1", "session_id": "SES_1", "current_time": 410, "duration": 500}


def test_negative_playback_position_is_rejected():
    r = TestClient(create_app()).post(
        "/session-status/vimeo/progress",
        json={"session_id": "SES_1", "current_time": -1},
    )
    assert r.status_code == 422


def test_review_rating_out_of_range_is_rejected():
    r = TestClient(create_app()).post("/reviews/", json={"item_id": "SES_1", "rating": 6})
    assert r.status_code == 422


def test_review_route_passes_caller(monkeypatch):
    async def create(db, user_id, item_id, rating, comment):
        return {"review_id": "REV_1", "user_id": user_id, "item_id": item_id, "rating": rating, "comment": comment}

    monkeypatch.setattr(reviews, "create_review", create)
    r = TestClient(create_app(user_id="USR_9")).post("/reviews/", json={"item_id": "SES_1", "rating": 4})
    assert r.status_code == 200
    assert r.json()["data"]["user_id"] == "USR_9"


def test_packages_are_public(monkeypatch):
    async def packages(db):
        return [{"package_id": "PKG_1", "package_name": "Radiology Pro"}]

    monkeypatch.setattr(subscriptions, "get_packages", packages)
    r = TestClient(create_app(authenticated=False)).get("/subscriptions/packages")
    assert r.status_code == 200
    assert r.json()["data"][0]["package_id"] == "PKG_1"


@pytest.mark.parametrize("path", ["/modules/MOD_404", "/pathologies/PAT_404"])
def test_missing_catalog_entries_are_404(path, monkeypatch):
    async def missing(db, _id):
        return None

    monkeypatch.setattr(database, "get_module", missing)
    monkeypatch.setattr(database, "get_pathology", missing)
    r = TestClient(create_app()).get(path)
    assert r.status_code == 404


def test_unpaid_subscription_request_is_rejected(monkeypatch):
    inserted = []

    async def package(db, package_id):
        return {"package_id": package_id, "is_active": True,
                "pricing_options": [{"billing_cycle": "yearly", "amount": 200.0, "currency": "USD"}]}

    async def user(db, user_id):
        return {"user_id": user_id}

    async def no_payment(db, transaction_id):
        return None

    async def insert(db, subscription):
        inserted.append(subscription)
        return subscription

    monkeypatch.setattr(subscriptions, "get_package", package)
    monkeypatch.setattr(subscriptions, "get_user", user)
    monkeypatch.setattr(subscriptions, "find_payment", no_payment)
    monkeypatch.setattr(subscriptions, "insert_subscription", insert)
    client = TestClient(create_app())

    r = client.post("/subscriptions/", json={"package_id": "PKG_1", "billing_cycle": "yearly"})
    assert r.status_code == 422

    r = client.post("/subscriptions/", json={"package_id": "PKG_1", "billing_cycle": "yearly", "transaction_id": "TXN_FAKE"})
    assert r.status_code == 400
    assert r.json()["success"] is False
    assert inserted == []

    r = client.post("/subscriptions/SUB_1/renew", json={})
    assert r.status_code == 422


def test_top_rated_cases_negative_limit_falls_back(session_store, session_doc):
    session_store([session_doc(f"D{i}", "Dicom", is_free=True) for i in range(3)])
    r = TestClient(create_app()).get("/sessions/top-rated-cases", params={"limit": "-5"})
    assert r.status_code == 200
    assert len(r.json()["data"]) == 3


def test_assessment_submission_uses_caller(monkeypatch):
    seen = {}

    async def submit(db, user_id, assessment_id, user_answer):
        seen.update(user_id=user_id, assessment_id=assessment_id)
        return {"assessment_id": assessment_id, "points_awarded": 10, "total_points": 10, "belt": "White"}

    monkeypatch.setattr(assessments, "submit_user_answer", submit)
    client = TestClient(create_app(user_id="USR_7"))

    r = client.post("/assessments/submit", json={"assessment_id": "ASM_1", "user_answer": "Pneumothorax"})
    assert r.status_code == 200
    assert r.json()["data"]["belt"] == "White"
    assert seen == {"user_id": "USR_7", "assessment_id": "ASM_1"}

    assert client.post("/assessments/submit", json={"assessment_id": "ASM_1", "user_answer": ""}).status_code == 422
    assert TestClient(create_app(authenticated=False)).post(
        "/assessments/submit", json={"assessment_id": "ASM_1", "user_answer": "x"}
    ).status_code == 401
