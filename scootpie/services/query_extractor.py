from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from scootpie.services.gemini import ParsedMultiItem, ParsedSingleItem, QueryParser

logger = logging.getLogger(__name__)

_CLEAN_RE = re.compile(r"[^a-z0-9&\s]")
_SPACE_RE = re.compile(r"\s+")
CONJUNCTION_RE = re.compile(r"\band\b|,|\bthen\b|\balso\b|\bplus\b", re.IGNORECASE)

LITERAL_QUERY_MAX_CHARS = 80

BRAND_ALIASES: dict[str, str] = {
    "h&m": "H&M",
    "h & m": "H&M",
    "hm": "H&M",
    "zara": "Zara",
    "uniqlo": "UNIQLO",
    "nike": "Nike",
    "adidas": "Adidas",
    "patagonia": "Patagonia",
    "gap": "GAP",
    "hollister": "Hollister",
    "h and m": "H&M",
}

COLORS: tuple[str, ...] = (
    "black", "blue", "red", "white", "green", "pink", "purple", "yellow",
    "orange", "brown", "grey", "gray", "navy", "beige", "cream", "tan",
)

CATEGORY_SYNONYMS: dict[str, str] = {
    "jacket": "jacket",
    "coat": "jacket",
    "puffer": "jacket",
    "parka": "jacket",
    "top": "top",
    "t shirt": "top",
    "tshirt": "top",
    "tee": "top",
    "blouse": "top",
    "shirt": "top",
    "jeans": "jeans",
    "denim": "jeans",
    "trousers": "pants",
    "pants": "pants",
    "dress": "dress",
    "skirt": "skirt",
    "hoodie": "hoodie",
    "sweater": "sweater",
}


@dataclass(slots=True)
class ParsedQuery:
    brand: str | None = None
    color: str | None = None
    category: str | None = None

    def has_fields(self) -> bool:
        return bool(self.brand or self.color or self.category)

    def query(self) -> str:
        return " ".join(t for t in (self.brand, self.color, self.category) if t).strip()


@dataclass(slots=True)
class ProductRequest:
    query: str
    brand: str | None = None
    color: str | None = None
    category: str | None = None

    def has_fields(self) -> bool:
        return bool(self.brand or self.color or self.category)


def _contains_word(text: str, word: str) -> bool:
    return re.search(rf"(^|\s){re.escape(word)}($|\s)", text) is not None


def parse_user_query(message: str) -> ParsedQuery:
    """Keyword parse of brand, color and category out of free text."""
    text = _SPACE_RE.sub(" ", _CLEAN_RE.sub(" ", (message or "").lower())).strip()

    brand = next((canonical for alias, canonical in BRAND_ALIASES.items() if _contains_word(text, alias)), None)
    color = next((c for c in COLORS if _contains_word(text, c)), None)

    category = None
    for key in sorted(CATEGORY_SYNONYMS, key=len, reverse=True):
        if _contains_word(text, key):
            category = CATEGORY_SYNONYMS[key]
            break

    return ParsedQuery(brand=brand, color=color, category=category)


def _request_from_parsed(parsed: ParsedQuery) -> ProductRequest | None:
    q = parsed.query()
    if not q:
        return None
    return ProductRequest(query=q, brand=parsed.brand, color=parsed.color, category=parsed.category)


def split_on_conjunctions(message: str) -> list[ProductRequest]:
    if not CONJUNCTION_RE.search(message):
        return []
    parts = [p.strip() for p in CONJUNCTION_RE.split(message)]
    requests: list[ProductRequest] = []
    for part in parts:
        if not part:
            continue
        request = _request_from_parsed(parse_user_query(part))
        if request is not None:
            requests.append(request)
    return requests


def requests_from_llm(message: str, parser: QueryParser) -> list[ProductRequest]:
    result = parser.parse(message)
    if isinstance(result, ParsedMultiItem):
        items = result.items
    elif isinstance(result, ParsedSingleItem):
        items = [result.item]
    else:
        return []
    return [
        ProductRequest(query=item.query(), brand=item.brand, color=item.color, category=item.category)
        for item in items
        if item.query()
    ]


def extract_product_requests(message: str, parser: QueryParser) -> list[ProductRequest]:
    """Turn a chat message into product requests, degrading from cheap to literal.

    Conjunction split first, then the LLM parse, then a keyword parse of the
    whole message, and finally the trimmed message itself as a search query.
    """
    requests = split_on_conjunctions(message)
    if requests:
        logger.info("query_extract_conjunctions count=%d", len(requests))
        return requests

    requests = requests_from_llm(message, parser)
    if requests:
        logger.info("query_extract_llm count=%d", len(requests))
        return requests

    request = _request_from_parsed(parse_user_query(message))
    if request is not None:
        logger.info("query_extract_keywords query=%s", request.query)
        return [request]

    literal = message.strip()[:LITERAL_QUERY_MAX_CHARS]
    logger.info("query_extract_literal query=%s", literal)
    return [ProductRequest(query=literal)]
