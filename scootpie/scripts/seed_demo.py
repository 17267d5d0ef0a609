#!/usr/bin/env python3
"""Create tables, a demo shopper with a primary photo, and the starter catalog."""
from __future__ import annotations

from sqlalchemy.orm import Session

from scootpie.core.config import settings
from scootpie.core.security import create_access_token
from scootpie.db.base import Base
from scootpie.db.session import engine, session_scope
from scootpie.models import Photo, User
from scootpie.services.product_ingest import ingest_products_csv


def get_or_create_demo_user(db: Session) -> User:
    user = db.query(User).filter(User.auth_subject == settings.dev_auth_subject).first()
    if user:
        return user
    user = User(
        auth_subject=settings.dev_auth_subject,
        email=settings.dev_auth_email,
        name="Demo Shopper",
        preferences={"gender": "women", "sizes": {"top": "M", "bottom": "28", "shoes": "8"}},
    )
    db.add(user)
    db.flush()
    photo = Photo(user_id=user.id, url=settings.dev_photo_url, is_primary=True)
    user.photos.append(photo)
    db.flush()
    user.primary_photo_id = photo.id
    db.commit()
    db.refresh(user)
    return user


def main() -> None:
    Base.metadata.create_all(bind=engine)
    with session_scope() as db:
        user = get_or_create_demo_user(db)
        count = ingest_products_csv(db, settings.product_csv_path)
        print(f"seeded user={user.email} products={count}")
        print(f"access_token={create_access_token(user.auth_subject)}")


if __name__ == "__main__":
    main()
