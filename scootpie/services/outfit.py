from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from scootpie.schemas.chat import OutfitItem
from scootpie.services.categories import normalize_category

logger = logging.getLogger(__name__)


class TryOnBranch(str, Enum):
    REPLACEMENT = "replacement"
    ADDITION = "addition"
    FIRST_TIME = "first_time"


@dataclass(slots=True)
class TryOnPlan:
    branch: TryOnBranch
    base_image: str
    items: list[OutfitItem]


def categories_of(items: Sequence[OutfitItem]) -> set[str]:
    return {normalize_category(i.category) for i in items}


def merge_outfit_items(prior: Sequence[OutfitItem], incoming: Sequence[OutfitItem]) -> list[OutfitItem]:
    """Combine the worn outfit with newly picked items.

    Any prior item sharing a normalized category with an incoming item is
    dropped; everything incoming is appended after the survivors.
    """
    if not incoming:
        return list(prior)

    incoming_categories = categories_of(incoming)
    retained: list[OutfitItem] = []
    for item in prior:
        if normalize_category(item.category) in incoming_categories:
            logger.info("outfit_replace_item name=%s category=%s", item.name, normalize_category(item.category))
            continue
        retained.append(item)
    return retained + list(incoming)


def had_replacement(prior: Sequence[OutfitItem], incoming: Sequence[OutfitItem]) -> bool:
    if not prior or not incoming:
        return False
    incoming_categories = categories_of(incoming)
    return any(normalize_category(i.category) in incoming_categories for i in prior)


def with_images(items: Sequence[OutfitItem]) -> list[OutfitItem]:
    return [i for i in items if i.image_url]


def plan_try_on(
    prior: Sequence[OutfitItem],
    incoming: Sequence[OutfitItem],
    merged: Sequence[OutfitItem],
    prior_outfit_image: str | None,
    original_photo_url: str,
) -> TryOnPlan | None:
    """Choose the base image and the garments to composite for this turn.

    A replacement regenerates from the original photo because the previous
    composite still shows the replaced garment. An addition layers only the
    new garments onto the previous composite. Returns None when there is
    nothing with an image to apply.
    """
    if had_replacement(prior, incoming):
        plan = TryOnPlan(TryOnBranch.REPLACEMENT, original_photo_url, with_images(merged))
    elif prior and prior_outfit_image:
        plan = TryOnPlan(TryOnBranch.ADDITION, prior_outfit_image, with_images(incoming))
    else:
        plan = TryOnPlan(TryOnBranch.FIRST_TIME, original_photo_url, with_images(merged))

    logger.info(
        "tryon_plan branch=%s items=%d prior=%d incoming=%d",
        plan.branch.value,
        len(plan.items),
        len(prior),
        len(incoming),
    )
    if not plan.items:
        return None
    return plan
