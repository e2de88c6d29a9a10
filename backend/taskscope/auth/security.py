from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from taskscope.config import settings


ACCESS_TOKEN_TYPE = "access"
ALGORITHM = "HS256"


def create_access_token(*, user_id: uuid.UUID, role: str, department: str | None) -> str:
    now = datetime.now(timezone.utc)
    expire = now + timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)
    payload = {
        "type": ACCESS_TOKEN_TYPE,
        "sub": str(user_id),
        "role": role,
        "department": department,
        "iat": int(now.timestamp()),
        "exp": int(expire.timestamp()),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Verified claims of an access token; ValueError when the token is bad or of another type."""
    try:
        claims = jwt.decode(token, settings.JWT_SECRET, algorithms=[ALGORITHM])
    except JWTError as exc:
        raise ValueError("Invalid token") from exc
    if claims.get("type") != ACCESS_TOKEN_TYPE:
        raise ValueError("Not an access token")
    if not claims.get("sub"):
        raise ValueError("Token has no subject")
    return claims


def subject_id(token: str) -> uuid.UUID:
    """User id carried by a valid access token."""
    return uuid.UUID(str(decode_access_token(token)["sub"]))
