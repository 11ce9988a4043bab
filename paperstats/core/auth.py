from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from paperstats.core.config import settings
from paperstats.core.errors import UnauthorizedError


class CallerIdentity(BaseModel):
    """Who is calling. Passed explicitly into every service operation."""

    user_id: int
    email: Optional[str] = None


bearer = HTTPBearer(auto_error=False)


def create_token(user_id: int, email: Optional[str] = None, ttl_minutes: Optional[int] = None) -> str:
    now = datetime.now(timezone.utc)
    ttl = ttl_minutes if ttl_minutes is not None else settings.ACCESS_TOKEN_EXPIRE_MINUTES
    payload = {"sub": str(user_id), "email": email, "iat": int(now.timestamp()), "exp": int((now + timedelta(minutes=ttl)).timestamp())}
    return jwt.encode(payload, settings.SECRET_KEY.get_secret_value(), algorithm=settings.ALGORITHM)


def decode_token(token: str) -> CallerIdentity:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY.get_secret_value(), algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Token has expired")
    except jwt.InvalidTokenError:
        raise UnauthorizedError("Invalid token")
    try:
        return CallerIdentity(user_id=int(payload["sub"]), email=payload.get("email"))
    except (KeyError, TypeError, ValueError):
        raise UnauthorizedError("Invalid token subject")


def get_current_user(creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer)) -> CallerIdentity:
    if creds is None or creds.scheme.lower() != "bearer":
        raise UnauthorizedError("Missing or invalid token")
    return decode_token(creds.credentials)
