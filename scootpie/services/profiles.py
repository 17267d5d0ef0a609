from __future__ import annotations

import logging

from pydantic import ValidationError
from sqlalchemy.orm import Session

from scootpie.models import Photo, User
from scootpie.schemas.profile import Preferences

logger = logging.getLogger(__name__)


class PhotoNotFoundError(LookupError):
    pass


def load_preferences(user: User) -> Preferences:
    try:
        return Preferences.model_validate(user.preferences or {})
    except ValidationError:
        logger.warning("user_preferences_invalid user_id=%s", user.id)
        return Preferences()


def primary_photo_for(user: User) -> Photo | None:
    for photo in user.photos:
        if photo.is_primary:
            return photo
    return user.photos[0] if user.photos else None


def update_preferences(db: Session, user: User, preferences: Preferences) -> Preferences:
    user.preferences = preferences.model_dump(by_alias=True, exclude_none=True, mode="json")
    db.commit()
    db.refresh(user)
    return load_preferences(user)


def set_primary_photo(db: Session, user: User, photo_id: str) -> Photo:
    photo = db.query(Photo).filter(Photo.id == photo_id, Photo.user_id == user.id).first()
    if photo is None:
        raise PhotoNotFoundError(photo_id)

    db.query(Photo).filter(Photo.user_id == user.id, Photo.id != photo_id).update({Photo.is_primary: False})
    photo.is_primary = True
    user.primary_photo_id = photo.id
    db.commit()
    db.refresh(user)
    logger.info("primary_photo_set photo_id=%s", photo.id)
    return photo
