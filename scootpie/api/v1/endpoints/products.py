from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from scootpie.api.deps import get_db, get_optional_user
from scootpie.core.config import settings
from scootpie.models import User
from scootpie.schemas.product import ProductSearchOut, ProductSearchResponse
from scootpie.services.product_search import (
    ProductCandidate,
    ProductSearchAdapter,
    build_shopping_search,
    enhance_query,
    random_catalog,
    trending_catalog,
)
from scootpie.services.profiles import load_preferences

logger = logging.getLogger(__name__)

router = APIRouter()


def _product_out(p: ProductCandidate) -> ProductSearchOut:
    return ProductSearchOut(
        product_id=p.product_id,
        name=p.name,
        brand=p.brand,
        price=p.price,
        currency=p.currency,
        retailer=p.retailer,
        category=p.category,
        image_url=p.image_url,
        product_url=p.product_url,
        is_external=p.is_external,
    )


@router.get("/search/products", response_model=ProductSearchResponse)
def search_products(
    q: str = Query(default=""),
    count: int = Query(default=15, ge=1, le=50),
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
) -> ProductSearchResponse:
    """Shopping search with the caller's preferences applied; trending catalog items for a blank query."""
    if not q.strip():
        return ProductSearchResponse(query="", enhanced_query="", products=[_product_out(p) for p in trending_catalog(db, count)])

    preferences = load_preferences(user) if user is not None else None
    adapter = ProductSearchAdapter(db=db, web=build_shopping_search(settings), limit=count)
    found = adapter.search(q, preferences)
    if not found:
        logger.info("product_search_random_fallback query=%s", q)
        found = random_catalog(db, count)
    return ProductSearchResponse(
        query=q,
        enhanced_query=enhance_query(q, preferences),
        products=[_product_out(p) for p in found],
    )
