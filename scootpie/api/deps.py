from __future__ import annotations

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from scootpie.core.config import settings
from scootpie.core.security import decode_access_token
from scootpie.db.session import get_db_session
from scootpie.models import User
from scootpie.services.chat import ChatComponents

bearer_scheme = HTTPBearer(auto_error=False)


def get_db() -> Session:
    yield from get_db_session()


def _resolve_user(token: str, db: Session) -> User | None:
    if token == "dev" and settings.app_env == "development":
        # dev shortcut: seeded demo user, else first user in db
        return (
            db.query(User).filter(User.auth_subject == settings.dev_auth_subject).first()
            or db.query(User).first()
        )
    subject = decode_access_token(token)
    return db.query(User).filter(User.auth_subject == subject).first()


def get_current_user(
    cred: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    if cred is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing auth token")

    try:
        user = _resolve_user(cred.credentials, db)
    except Exception:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user


def get_optional_user(
    cred: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User | None:
    if cred is None:
        return None
    try:
        return _resolve_user(cred.credentials, db)
    except Exception:
        return None


def get_chat_components(db: Session = Depends(get_db)) -> ChatComponents:
    return ChatComponents.from_settings(db, settings)
