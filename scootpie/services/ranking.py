from __future__ import annotations

from collections.abc import Sequence

from scootpie.services.product_search import ProductCandidate

BRAND_WEIGHT = 3
COLOR_WEIGHT = 2
CATEGORY_WEIGHT = 2
IMAGE_WEIGHT = 1


def score_candidate(candidate: ProductCandidate, brand: str, color: str, category: str) -> int:
    name = (candidate.name or "").lower()
    retailer = (candidate.retailer or "").lower()
    score = 0
    if brand and (brand in name or brand in retailer):
        score += BRAND_WEIGHT
    if color and color in name:
        score += COLOR_WEIGHT
    if category and category in name:
        score += CATEGORY_WEIGHT
    if candidate.image_url:
        score += IMAGE_WEIGHT
    return score


def pick_best_product(
    candidates: Sequence[ProductCandidate],
    brand: str | None = None,
    color: str | None = None,
    category: str | None = None,
) -> ProductCandidate | None:
    """Pick the candidate with the highest lexical overlap score.

    Ties keep the earliest candidate. When nothing matches at all the first
    candidate is still returned, so a non-empty list always yields a pick.
    """
    if not candidates:
        return None

    b = (brand or "").lower()
    c = (color or "").lower()
    cat = (category or "").lower()

    best = candidates[0]
    best_score = -1
    for candidate in candidates:
        score = score_candidate(candidate, b, c, cat)
        if score > best_score:
            best_score = score
            best = candidate
    return best
