from __future__ import annotations

from typing import Literal

NormalizedCategory = Literal[
    "outerwear",
    "top",
    "bottom",
    "dress",
    "skirt",
    "footwear",
    "bag",
    "headwear",
    "accessories",
    "other",
]

# Checked top to bottom with substring containment. Order is fixed because
# substrings overlap across buckets ("baggy jeans" contains "bag").
# Each bucket lists its own name first so normalize_category is idempotent.
CATEGORY_BUCKETS: tuple[tuple[NormalizedCategory, tuple[str, ...]], ...] = (
    ("outerwear", ("outerwear", "jacket", "coat", "puffer", "parka", "blazer", "cardigan")),
    ("top", ("top", "t-shirt", "tshirt", "tee", "blouse", "shirt", "sweater", "hoodie")),
    ("bottom", ("bottom", "jeans", "pants", "trousers", "chinos", "joggers")),
    ("dress", ("dress", "gown")),
    ("skirt", ("skirt",)),
    ("footwear", ("footwear", "shoes", "sneakers", "boots", "sandals", "heels")),
    ("bag", ("bag", "purse", "backpack", "tote")),
    ("headwear", ("headwear", "hat", "cap", "beanie")),
    ("accessories", ("accessories", "necklace", "bracelet", "earrings", "ring", "watch", "jewelry")),
)

NORMALIZED_CATEGORIES: frozenset[str] = frozenset([bucket for bucket, _ in CATEGORY_BUCKETS] + ["other"])

# Product-name keywords used when the user's request carried no category.
ITEM_CATEGORY_HINTS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("jacket", ("jacket", "coat", "puffer", "parka", "blazer", "cardigan")),
    ("jeans", ("jean", "pants", "trouser", "chino", "jogger")),
    ("top", ("top", "t-shirt", "tshirt", "tee", "blouse", "shirt", "cami")),
    ("dress", ("dress", "gown")),
    ("skirt", ("skirt",)),
    ("shoes", ("shoe", "sneaker", "boot", "sandal", "heel")),
    ("sweater", ("sweater", "hoodie", "sweatshirt", "pullover")),
)


def normalize_category(category: str | None) -> NormalizedCategory:
    """Map a free-form category string onto the fixed outfit taxonomy."""
    if not category:
        return "other"
    cat = category.lower()
    for bucket, keywords in CATEGORY_BUCKETS:
        if any(k in cat for k in keywords):
            return bucket
    return "other"


def infer_item_category(product_name: str | None, message: str | None = None) -> str:
    """Guess a garment category from a chosen product's name.

    Tops also look at the user's message, since shopping titles for tops are
    often just a brand and a fabric.
    """
    name = (product_name or "").lower()
    query = (message or "").lower()
    for category, keywords in ITEM_CATEGORY_HINTS:
        if category == "top":
            if any(k in name or k in query for k in keywords):
                return category
        elif any(k in name for k in keywords):
            return category
    return "other"
