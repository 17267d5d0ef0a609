from __future__ import annotations

from scootpie.schemas.base import CamelModel


class ProductSearchOut(CamelModel):
    product_id: str
    name: str
    brand: str
    price: float
    currency: str
    retailer: str
    category: str
    image_url: str
    product_url: str
    is_external: bool


class ProductSearchResponse(CamelModel):
    query: str
    enhanced_query: str
    products: list[ProductSearchOut]
