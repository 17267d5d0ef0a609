from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass
from typing import Any
from urllib.parse import urljoin, urlsplit

import httpx
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from scootpie.core.config import Settings
from scootpie.models import Product
from scootpie.schemas.profile import Preferences
from scootpie.services.query_extractor import ProductRequest, parse_user_query

logger = logging.getLogger(__name__)

_PRICE_RE = re.compile(r"([A-Z$£€₹]{0,3})\s*([0-9,.]+)")
_CURRENCY_SYMBOLS = {
    "$": "USD",
    "€": "EUR",
    "£": "GBP",
    "₹": "INR",
}

GENDER_TERMS = {
    "men": "men",
    "women": "women",
    "unisex": "unisex",
    "non-binary": "unisex",
}
TOP_TERMS = (
    "shirt", "top", "t-shirt", "blouse", "sweater", "hoodie", "jacket", "coat",
    "sweatshirt", "cardigan", "blazer", "dress", "apparel",
)
BOTTOM_TERMS = ("pants", "jeans", "trousers", "shorts", "skirt", "leggings", "tights")
SHOE_TERMS = (
    "shoe", "shoes", "sneaker", "sneakers", "boot", "boots", "sandal", "sandals",
    "heel", "heels", "slipper", "slippers",
)

_PAGE_HEADERS = {"User-Agent": "Mozilla/5.0 scootpieBot", "Accept": "text/html"}
_OG_IMAGE_RE = re.compile(
    r"""<meta[^>]+property=["']og:image["'][^>]+content=["']([^"']+)["'][^>]*>""", re.IGNORECASE
)
_TWITTER_IMAGE_RE = re.compile(
    r"""<meta[^>]+name=["']twitter:image["'][^>]+content=["']([^"']+)["'][^>]*>""", re.IGNORECASE
)


@dataclass(slots=True)
class ProductCandidate:
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


def parse_price(text: str | None) -> tuple[float, str]:
    """Parse a shopping price string like "$49.99" into (amount, currency)."""
    m = _PRICE_RE.search(text or "")
    if not m:
        return 0.0, "USD"

    symbol = m.group(1) or ""
    currency = "USD"
    for sym, code in _CURRENCY_SYMBOLS.items():
        if sym in symbol:
            currency = code
            break

    try:
        value = float(m.group(2).replace(",", ""))
    except ValueError:
        value = 0.0
    return value, currency


def enhance_query(query: str, preferences: Preferences | None) -> str:
    """Append the shopper's gender term and the matching size token."""
    if not query.strip() or preferences is None:
        return query

    parts = [query]
    query_l = query.lower()

    term = GENDER_TERMS.get(preferences.gender or "")
    if term and term not in query_l:
        parts.append(term)

    sizes = preferences.sizes
    if sizes is not None:
        is_top = any(t in query_l for t in TOP_TERMS)
        is_bottom = any(t in query_l for t in BOTTOM_TERMS)
        is_shoe = any(t in query_l for t in SHOE_TERMS)

        size: str | None = None
        if is_top or is_bottom or is_shoe:
            if is_top and sizes.top:
                size = sizes.top
            elif is_bottom and sizes.bottom:
                size = sizes.bottom
            elif is_shoe and sizes.shoes:
                size = sizes.shoes
        else:
            size = sizes.top or sizes.bottom
        if size:
            parts.append(f"size {size}")

    return " ".join(parts)


def relaxation_queries(request: ProductRequest) -> list[str]:
    """Progressively less specific queries, most specific first."""
    if request.has_fields():
        brand, color, category = request.brand, request.color, request.category
    else:
        parsed = parse_user_query(request.query)
        brand, color, category = parsed.brand, parsed.color, parsed.category

    levels = [
        (brand, color, category),
        (brand, category),
        (color, category),
        (category,),
    ]
    out: list[str] = []
    for terms in levels:
        q = " ".join(t for t in terms if t).strip()
        if q:
            out.append(q)
    return out


def web_product_id(provider: str, product_url: str) -> str:
    digest = hashlib.sha1(f"{provider}|{product_url}".encode("utf-8")).hexdigest()[:24]
    return f"web_{digest}"


class ShoppingSearch:
    def search(self, query: str, limit: int = 10) -> list[ProductCandidate]:
        raise NotImplementedError


class NoopShoppingSearch(ShoppingSearch):
    def search(self, query: str, limit: int = 10) -> list[ProductCandidate]:
        return []


class SerpApiShoppingSearch(ShoppingSearch):
    provider = "serpapi_google_shopping"
    product_engine = "google_shopping_product"

    def __init__(
        self,
        api_key: str,
        base_url: str,
        engine: str,
        timeout_sec: float = 15.0,
        image_timeout_sec: float = 10.0,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url
        self.engine = engine
        self.timeout_sec = timeout_sec
        self.image_timeout_sec = image_timeout_sec

    def search(self, query: str, limit: int = 10) -> list[ProductCandidate]:
        params = {
            "engine": self.engine,
            "q": query,
            "api_key": self.api_key,
        }
        payload = _serpapi_request(self.base_url, params, self.timeout_sec)
        rows = payload.get("shopping_results")
        if not isinstance(rows, list):
            rows = []
        logger.info("web_search_results query=%s count=%d", query, len(rows))
        return [
            self._candidate_from_result(row)
            for row in rows[: max(1, limit)]
            if isinstance(row, dict)
        ]

    def _candidate_from_result(self, row: dict[str, Any]) -> ProductCandidate:
        price_text = row.get("price")
        extracted = row.get("extracted_price")
        if isinstance(price_text, str):
            price, currency = parse_price(price_text)
        elif isinstance(extracted, (int, float)):
            price, currency = float(extracted), "USD"
        else:
            price, currency = 0.0, "USD"

        seller = str(row.get("source") or row.get("store") or "Unknown").strip()
        product_url = pick_retailer_url(row)
        image_url = str(row.get("thumbnail") or row.get("image") or "").strip()
        if not image_url:
            image_url = self._backfill_image(row, product_url)
        return ProductCandidate(
            product_id=web_product_id(self.provider, product_url),
            name=str(row.get("title") or "Product").strip(),
            brand=seller,
            price=price,
            currency=currency,
            retailer=seller,
            category="search",
            image_url=image_url,
            product_url=product_url,
            is_external=True,
        )

    def _backfill_image(self, row: dict[str, Any], product_url: str) -> str:
        """Shopping results without a thumbnail cannot be tried on, so look one up."""
        serp_product_id = row.get("product_id")
        if serp_product_id:
            image_url = self._product_image(str(serp_product_id))
            if image_url:
                logger.info("web_search_image_from_product product_id=%s", serp_product_id)
                return image_url

        image_url = fetch_page_image(product_url, self.image_timeout_sec)
        if image_url:
            logger.info("web_search_image_from_page url=%s", product_url)
            return image_url
        logger.warning("web_search_result_without_image title=%s", row.get("title"))
        return ""

    def _product_image(self, serp_product_id: str) -> str | None:
        params = {
            "engine": self.product_engine,
            "product_id": serp_product_id,
            "api_key": self.api_key,
        }
        try:
            payload = _serpapi_request(self.base_url, params, self.image_timeout_sec)
        except Exception as exc:
            logger.warning("web_search_product_image_failed product_id=%s error=%s", serp_product_id, exc)
            return None

        images = payload.get("images") or payload.get("product_photos") or []
        if not isinstance(images, list) or not images or not isinstance(images[0], dict):
            return None
        first = images[0]
        link = first.get("link") or first.get("thumbnail") or first.get("image")
        return link if isinstance(link, str) and link else None


def is_retailer_url(url: Any) -> bool:
    if not isinstance(url, str) or not url:
        return False
    host = (urlsplit(url).hostname or "").lower()
    if not host:
        return False
    return "google." not in host and "serpapi.com" not in host


def pick_retailer_url(row: dict[str, Any]) -> str:
    """Prefer a link that lands on the retailer over Google or SerpAPI redirect pages."""
    offer = row.get("offer") if isinstance(row.get("offer"), dict) else {}
    for url in (
        row.get("link"),
        row.get("product_link"),
        row.get("product_page_url"),
        offer.get("link"),
        offer.get("product_link"),
    ):
        if is_retailer_url(url):
            return url.strip()
    return str(row.get("link") or row.get("product_link") or "#").strip()


def fetch_page_image(page_url: str, timeout_sec: float) -> str | None:
    """Read the og:image (or twitter:image) of a product page."""
    if not page_url or not page_url.startswith(("http://", "https://")):
        return None
    try:
        response = httpx.get(page_url, headers=_PAGE_HEADERS, timeout=timeout_sec, follow_redirects=True)
        response.raise_for_status()
        html = response.text
    except Exception as exc:
        logger.warning("web_search_page_image_failed url=%s error=%s", page_url, exc)
        return None

    m = _OG_IMAGE_RE.search(html) or _TWITTER_IMAGE_RE.search(html)
    if not m:
        return None
    return urljoin(page_url, m.group(1))


def _serpapi_request(base_url: str, params: dict[str, Any], timeout_sec: float) -> dict[str, Any]:
    response = httpx.get(base_url, params=params, timeout=timeout_sec)
    response.raise_for_status()
    payload = response.json()
    if not isinstance(payload, dict):
        raise ValueError("Invalid SerpAPI response payload")
    if payload.get("error"):
        raise ValueError(f"SerpAPI error: {payload.get('error')}")
    return payload


def search_catalog(db: Session, query: str, limit: int = 10) -> list[ProductCandidate]:
    term = f"%{query.strip()}%"
    rows = (
        db.query(Product)
        .filter(
            or_(
                Product.name.ilike(term),
                Product.brand.ilike(term),
                Product.category.ilike(term),
                func.coalesce(Product.description, "").ilike(term),
            )
        )
        .limit(limit)
        .all()
    )
    return [_candidate_from_product(p) for p in rows]


def _candidate_from_product(p: Product) -> ProductCandidate:
    return ProductCandidate(
        product_id=p.id,
        name=p.name,
        brand=p.brand,
        price=float(p.price or 0.0),
        currency=p.currency or "USD",
        retailer=p.retailer,
        category=p.category,
        image_url=p.image_url or "",
        product_url=p.product_url,
        is_external=False,
    )


def trending_catalog(db: Session, limit: int = 15) -> list[ProductCandidate]:
    rows = db.query(Product).filter(Product.trending.is_(True)).order_by(Product.created_at.desc()).limit(limit).all()
    return [_candidate_from_product(p) for p in rows]


def random_catalog(db: Session, limit: int = 15) -> list[ProductCandidate]:
    rows = db.query(Product).order_by(func.random()).limit(limit).all()
    return [_candidate_from_product(p) for p in rows]


class ProductSearchAdapter:
    """Shopping search with an internal catalog fallback."""

    def __init__(self, db: Session, web: ShoppingSearch, limit: int = 10) -> None:
        self.db = db
        self.web = web
        self.limit = max(1, limit)

    @classmethod
    def from_settings(cls, db: Session, cfg: Settings) -> "ProductSearchAdapter":
        return cls(db=db, web=build_shopping_search(cfg), limit=cfg.search_result_limit)

    def search(self, query: str, preferences: Preferences | None = None) -> list[ProductCandidate]:
        enhanced = enhance_query(query, preferences)
        logger.info("product_search query=%s enhanced=%s", query, enhanced)

        found: list[ProductCandidate] = []
        try:
            found = self.web.search(enhanced, limit=self.limit)
        except Exception:
            logger.exception("web_search_failed")

        if found:
            return found[: self.limit]

        logger.info("product_search_catalog_fallback query=%s", enhanced)
        try:
            found = search_catalog(self.db, enhanced, limit=self.limit)
            if not found and enhanced != query:
                # catalog rows never carry gender/size tokens
                found = search_catalog(self.db, query, limit=self.limit)
            return found
        except Exception:
            logger.exception("catalog_search_failed")
            self.db.rollback()
            return []

    def search_with_relaxation(
        self,
        request: ProductRequest,
        preferences: Preferences | None = None,
    ) -> list[ProductCandidate]:
        found = self.search(request.query, preferences)
        if found:
            return found

        for candidate_query in relaxation_queries(request):
            logger.info("product_search_relax query=%s", candidate_query)
            found = self.search(candidate_query, preferences)
            if found:
                return found
        logger.warning("product_search_no_results query=%s", request.query)
        return []


_warned_missing_key = False


def build_shopping_search(cfg: Settings) -> ShoppingSearch:
    global _warned_missing_key
    if not cfg.serpapi_api_key:
        if not _warned_missing_key:
            logger.warning("web_search_key_missing_skip_search")
            _warned_missing_key = True
        return NoopShoppingSearch()
    return SerpApiShoppingSearch(
        api_key=cfg.serpapi_api_key,
        base_url=cfg.serpapi_base_url,
        engine=cfg.serpapi_engine,
        timeout_sec=cfg.search_timeout_sec,
        image_timeout_sec=cfg.image_fetch_timeout_sec,
    )
