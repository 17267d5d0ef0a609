from __future__ import annotations

from typing import Literal

from scootpie.schemas.base import CamelModel, UtcDatetime

Gender = Literal["men", "women", "unisex", "non-binary", "prefer-not-to-say"]


class Sizes(CamelModel):
    top: str | None = None
    bottom: str | None = None
    shoes: str | None = None


class Preferences(CamelModel):
    gender: Gender | None = None
    sizes: Sizes | None = None
    budget_range: tuple[float, float] | None = None


class PhotoOut(CamelModel):
    id: str
    url: str
    is_primary: bool
    uploaded_at: UtcDatetime


class ProfileOut(CamelModel):
    id: str
    email: str
    name: str | None = None
    preferences: Preferences
    primary_photo_id: str | None = None
    photos: list[PhotoOut]
