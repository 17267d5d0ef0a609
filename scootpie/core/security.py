from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt

from .config import settings

ALGORITHM = "HS256"


def create_access_token(subject: str, expires_minutes: int | None = None) -> str:
    """Issue a bearer token for an auth-provider subject (used by the seed script and tests)."""
    now = datetime.now(timezone.utc)
    minutes = expires_minutes if expires_minutes is not None else settings.access_token_expire_minutes
    payload: dict = {"sub": subject, "iat": now, "exp": now + timedelta(minutes=minutes)}
    if settings.jwt_audience:
        payload["aud"] = settings.jwt_audience
    return jwt.encode(payload, settings.secret_key, algorithm=ALGORITHM)


def decode_access_token(token: str) -> str:
    """Return the token subject. Raises `jwt.PyJWTError` or ValueError when invalid."""
    payload = jwt.decode(
        token,
        settings.secret_key,
        algorithms=[ALGORITHM],
        audience=settings.jwt_audience,
        options={"require": ["sub", "exp"], "verify_aud": bool(settings.jwt_audience)},
    )
    sub = payload.get("sub")
    if not isinstance(sub, str) or not sub:
        raise ValueError("Invalid token subject")
    return sub
