from datetime import datetime, timedelta
from typing import Optional

from fastapi import Header, Request
from jose import jwt, JWTError

from medlearn import config
from medlearn.errors import UnauthorizedError


def create_access_token(user_id: str, expires_minutes: int = None) -> str:
    if expires_minutes is None:
        expires_minutes = config.JWT_EXPIRE_MINUTES
    payload = {
        "sub": user_id,
        "iat": datetime.utcnow(),
        "exp": datetime.utcnow() + timedelta(minutes=expires_minutes),
    }
    return jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def decode_token(token: str) -> dict:
    if not config.JWT_SECRET_KEY:
        raise UnauthorizedError("Token verification is not configured")
    try:
        return jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
    except JWTError:
        raise UnauthorizedError("Invalid or Expired Token")


def extract_token(request: Request, authorization: Optional[str]) -> Optional[str]:
    """Cookie first, then a Bearer header"""
    token = request.cookies.get(config.JWT_COOKIE_NAME)
    if token:
        return token
    if authorization and authorization.startswith("Bearer "):
        return authorization.split(" ", 1)[1].strip() or None
    return None


def user_id_from_payload(payload: dict) -> Optional[str]:
    return payload.get("sub") or payload.get("_id")


def verify_token(request: Request, authorization: str = Header(None)) -> dict:
    token = extract_token(request, authorization)
    if not token:
        raise UnauthorizedError("Unauthorized")
    payload = decode_token(token)
    if not user_id_from_payload(payload):
        raise UnauthorizedError("Invalid or Expired Token")
    return payload


def optional_token(request: Request, authorization: str = Header(None)) -> Optional[dict]:
    """Payload when a valid token is present; None for guests and bad tokens"""
    token = extract_token(request, authorization)
    if not token:
        return None
    try:
        payload = decode_token(token)
    except UnauthorizedError:
        return None
    return payload if user_id_from_payload(payload) else None
