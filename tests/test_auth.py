from __future__ import annotations

import pytest
from jose import jwt
from starlette.requests import Request

from medlearn import auth_utils, config
from medlearn.errors import UnauthorizedError


@pytest.fixture(autouse=True)
def secret(monkeypatch):
    monkeypatch.setattr(config, "JWT_SECRET_KEY", "test-secret")


def _request(cookie: str = None) -> Request:
    headers = []
    if cookie:
        headers.append((b"cookie", f"{config.JWT_COOKIE_NAME}={cookie}".encode()))
    return Request({"type": "http", "method": "GET", "path": "/", "headers": headers})


def test_token_round_trip_via_bearer():
    token = auth_utils.create_access_token("USR_1")
    payload = auth_utils.verify_token(_request(), f"Bearer {token}")
    assert auth_utils.user_id_from_payload(payload) == "USR_1"


def test_cookie_wins_over_header():
    cookie_token = auth_utils.create_access_token("FROM_COOKIE")
    header_token = auth_utils.create_access_token("FROM_HEADER")
    payload = auth_utils.verify_token(_request(cookie_token), f"Bearer {header_token}")
    assert payload["sub"] == "FROM_COOKIE"


def test_legacy_id_claim_is_accepted():
    token = jwt.encode({"_id": "USR_LEGACY"}, "test-secret", algorithm=config.JWT_ALGORITHM)
    assert auth_utils.user_id_from_payload(auth_utils.verify_token(_request(), f"Bearer {token}")) == "USR_LEGACY"


def test_missing_token_is_unauthorized():
    with pytest.raises(UnauthorizedError):
        auth_utils.verify_token(_request(), None)


def test_expired_token_is_unauthorized():
    token = auth_utils.create_access_token("USR_1", expires_minutes=-5)
    with pytest.raises(UnauthorizedError, match="Invalid or Expired Token"):
        auth_utils.verify_token(_request(), f"Bearer {token}")


def test_token_signed_with_other_secret_is_unauthorized():
    token = jwt.encode({"sub": "USR_1"}, "other-secret", algorithm=config.JWT_ALGORITHM)
    with pytest.raises(UnauthorizedError):
        auth_utils.verify_token(_request(), f"Bearer {token}")


def test_optional_token_degrades_to_guest():
    assert auth_utils.optional_token(_request(), None) is None
    assert auth_utils.optional_token(_request(), "Bearer not-a-jwt") is None
    assert auth_utils.optional_token(_request(), "Basic abc") is None

    token = auth_utils.create_access_token("USR_1")
    assert auth_utils.optional_token(_request(), f"Bearer {token}")["sub"] == "USR_1"


def test_optional_token_without_secret_is_guest(monkeypatch):
    token = auth_utils.create_access_token("USR_1")
    monkeypatch.setattr(config, "JWT_SECRET_KEY", "")
    assert auth_utils.optional_token(_request(), f"Bearer {token}") is None


def test_token_signed_with_empty_secret_is_rejected_when_unconfigured(monkeypatch):
    monkeypatch.setattr(config, "JWT_SECRET_KEY", "")
    forged = jwt.encode({"sub": "USR_admin"}, "", algorithm="HS256")
    with pytest.raises(UnauthorizedError):
        auth_utils.verify_token(_request(), f"Bearer {forged}")
    with pytest.raises(UnauthorizedError):
        auth_utils.verify_token(_request(forged), None)
