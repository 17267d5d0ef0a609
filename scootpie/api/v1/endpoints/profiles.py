from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from scootpie.api.deps import get_current_user, get_db
from scootpie.models import User
from scootpie.schemas.profile import PhotoOut, Preferences, ProfileOut
from scootpie.services.profiles import (
    PhotoNotFoundError,
    load_preferences,
    primary_photo_for,
    set_primary_photo,
    update_preferences,
)

router = APIRouter()


def _profile_out(user: User) -> ProfileOut:
    primary = primary_photo_for(user)
    return ProfileOut(
        id=user.id,
        email=user.email,
        name=user.name,
        preferences=load_preferences(user),
        primary_photo_id=primary.id if primary else None,
        photos=[
            PhotoOut(id=p.id, url=p.url, is_primary=p.is_primary, uploaded_at=p.uploaded_at)
            for p in user.photos
        ],
    )


@router.get("/users/me/profile", response_model=ProfileOut)
def get_profile(user: User = Depends(get_current_user)) -> ProfileOut:
    return _profile_out(user)


@router.put("/users/me/preferences", response_model=Preferences)
def put_preferences(
    payload: Preferences,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Preferences:
    return update_preferences(db, user, payload)


@router.put("/users/me/photos/{photo_id}/primary", response_model=ProfileOut)
def put_primary_photo(
    photo_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> ProfileOut:
    try:
        set_primary_photo(db, user, photo_id)
    except PhotoNotFoundError:
        raise HTTPException(status_code=404, detail="Photo not found")
    return _profile_out(user)
