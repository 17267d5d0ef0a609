from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from scootpie.db.base import Base
from scootpie.models import Photo, Product, User
from scootpie.schemas.chat import OutfitItem
from scootpie.services.gemini import LlmParse, ParseFailure
from scootpie.services.product_search import ProductCandidate, ShoppingSearch, web_product_id
from scootpie.services.tryon import TryOnResult


@pytest.fixture()
def db_session(tmp_path: Path):
    db_path = tmp_path / "test.db"
    engine = create_engine(
        f"sqlite+pysqlite:///{db_path}",
        future=True,
        connect_args={"check_same_thread": False},
    )
    Session = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
    Base.metadata.create_all(bind=engine)

    session = Session()
    try:
        yield session
    finally:
        session.close()


def make_candidate(name: str, image_url: str = "https://img.example/x.jpg", retailer: str = "Shop", **kw) -> ProductCandidate:
    return ProductCandidate(
        product_id=kw.pop("product_id", web_product_id("test", name)),
        name=name,
        brand=kw.pop("brand", retailer),
        price=kw.pop("price", 10.0),
        currency=kw.pop("currency", "USD"),
        retailer=retailer,
        category=kw.pop("category", "search"),
        image_url=image_url,
        product_url=kw.pop("product_url", f"https://shop.example/{name.replace(' ', '-')}"),
        is_external=kw.pop("is_external", True),
    )


class FakeShoppingSearch(ShoppingSearch):
    """Returns canned results for queries containing a keyword and records every query."""

    def __init__(self, results: dict[str, list[ProductCandidate]] | None = None) -> None:
        self.results = results or {}
        self.queries: list[str] = []

    def search(self, query: str, limit: int = 10) -> list[ProductCandidate]:
        self.queries.append(query)
        for keyword, found in self.results.items():
            if keyword in query:
                return list(found[:limit])
        return []


class FakeQueryParser:
    def __init__(self, result: LlmParse | None = None) -> None:
        self.result = result or ParseFailure("not_configured")
        self.calls: list[str] = []

    def parse(self, message: str) -> LlmParse:
        self.calls.append(message)
        return self.result


class FakeTryOn:
    def __init__(self, success: bool = True) -> None:
        self.success = success
        self.calls: list[tuple[str, list[OutfitItem]]] = []

    def generate(self, base_image: str, items: Sequence[OutfitItem]) -> TryOnResult:
        self.calls.append((base_image, list(items)))
        if not self.success:
            return TryOnResult(success=False, error="model unavailable")
        return TryOnResult(success=True, image_url=f"https://cdn.example/tryon/{len(self.calls)}.jpg")


@pytest.fixture()
def make_user(db_session):
    def _make(
        subject: str = "user_1",
        gender: str | None = "women",
        with_photo: bool = True,
        sizes: dict | None = None,
    ) -> User:
        prefs: dict = {}
        if gender:
            prefs["gender"] = gender
        if sizes:
            prefs["sizes"] = sizes
        user = User(auth_subject=subject, email=f"{subject}@example.com", preferences=prefs)
        db_session.add(user)
        db_session.flush()
        if with_photo:
            photo = Photo(user_id=user.id, url="https://img.example/me.jpg", is_primary=True)
            user.photos.append(photo)
            db_session.flush()
            user.primary_photo_id = photo.id
        db_session.commit()
        return user

    return _make


@pytest.fixture()
def catalog_products(db_session) -> list[Product]:
    rows = [
        Product(
            id="p_jacket",
            name="Black Puffer Jacket",
            brand="Zara",
            price=89.0,
            currency="USD",
            retailer="Zara",
            category="outerwear",
            image_url="https://img.example/jacket.jpg",
            product_url="https://zara.example/jacket",
            description="Warm puffer",
            trending=True,
        ),
        Product(
            id="p_jeans",
            name="Straight Leg Jeans",
            brand="Levi's",
            price=69.5,
            currency="USD",
            retailer="Levi's",
            category="bottoms",
            image_url="https://img.example/jeans.jpg",
            product_url="https://levis.example/jeans",
            description=None,
            trending=False,
        ),
    ]
    db_session.add_all(rows)
    db_session.commit()
    return rows


@pytest.fixture()
def client(db_session):
    from scootpie.api.deps import get_db
    from scootpie.main import app

    def _get_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def current_user(make_user) -> User:
    return make_user()


@pytest.fixture()
def authed_client(client, current_user):
    """TestClient acting as a fully onboarded user."""
    from scootpie.api.deps import get_current_user
    from scootpie.main import app

    app.dependency_overrides[get_current_user] = lambda: current_user
    return client
