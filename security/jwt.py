from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt

from core.config import settings

ACCESS_TOKEN_TYPE = "access"


def create_access_token(sub: str, role: str) -> str:
    """Sign a staff session token; the role claim is informational, routes re-read it from the DB."""
    issued = datetime.now(timezone.utc)
    expires = issued + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    payload = {
        "sub": sub,
        "role": role,
        "type": ACCESS_TOKEN_TYPE,
        "iat": int(issued.timestamp()),
        "exp": int(expires.timestamp()),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALG)


def decode_access(token: str) -> Dict[str, Any]:
    payload = jwt.decode(
        token,
        settings.JWT_SECRET,
        algorithms=[settings.JWT_ALG],
        options={"require": ["exp", "sub"]},
    )
    if payload.get("type") != ACCESS_TOKEN_TYPE:
        raise jwt.InvalidTokenError("Not an access token")
    return payload
