from __future__ import annotations

import csv
from pathlib import Path

from sqlalchemy.orm import Session

from scootpie.models import Product

_TRUE = {"1", "true", "yes", "y"}


def _price(raw: str | None) -> float:
    try:
        return float(raw) if raw else 0.0
    except ValueError:
        return 0.0


def ingest_products_csv(db: Session, csv_path: str | Path) -> int:
    """Upsert catalog rows keyed by `product_id`. Returns rows written."""
    path = Path(csv_path)
    if not path.exists():
        return 0

    written = 0
    with path.open("r", encoding="utf-8") as f:
        for row in csv.DictReader(f):
            pid = (row.get("product_id") or "").strip()
            if not pid or not row.get("name"):
                continue

            existing = db.query(Product).filter(Product.id == pid).first()
            if existing:
                existing.name = row.get("name") or existing.name
                existing.brand = row.get("brand") or existing.brand
                existing.price = _price(row.get("price"))
                existing.currency = row.get("currency") or existing.currency
                existing.retailer = row.get("retailer") or existing.retailer
                existing.category = row.get("category") or existing.category
                existing.subcategory = row.get("subcategory") or existing.subcategory
                existing.image_url = row.get("image_url") or existing.image_url
                existing.product_url = row.get("product_url") or existing.product_url
                existing.description = row.get("description") or existing.description
                existing.trending = (row.get("trending") or "").strip().lower() in _TRUE
                written += 1
                continue

            brand = row.get("brand") or "Unknown"
            db.add(
                Product(
                    id=pid,
                    name=row["name"],
                    brand=brand,
                    price=_price(row.get("price")),
                    currency=row.get("currency") or "USD",
                    retailer=row.get("retailer") or brand,
                    category=row.get("category") or "other",
                    subcategory=row.get("subcategory") or None,
                    image_url=row.get("image_url") or "",
                    product_url=row.get("product_url") or "https://example.com",
                    description=row.get("description") or None,
                    trending=(row.get("trending") or "").strip().lower() in _TRUE,
                )
            )
            written += 1

    db.commit()
    return written
