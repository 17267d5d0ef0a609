from __future__ import annotations

from collections.abc import Sequence

from scootpie.schemas.chat import OutfitItem
from scootpie.services.categories import normalize_category
from scootpie.services.outfit import had_replacement


def _gender_hint(gender: str | None) -> str:
    if not gender or gender == "prefer-not-to-say":
        return ""
    if gender == "men":
        return " for men"
    if gender == "women":
        return " for women"
    return " for you"


def describe_items(items: Sequence[OutfitItem]) -> str:
    return ", ".join(f"{item.name} ({normalize_category(item.category)})" for item in items)


def compose_reply(
    message: str,
    merged: Sequence[OutfitItem],
    incoming: Sequence[OutfitItem],
    prior: Sequence[OutfitItem],
    gender: str | None,
) -> str:
    if not merged:
        return (
            f"I couldn't find good matches{_gender_hint(gender)} for \"{message}\". "
            "Try something like 'red crop top from Zara', 'black jeans from H&M', "
            "or include specific brands and colors."
        )

    items_list = describe_items(merged)
    if incoming and prior:
        if had_replacement(prior, incoming):
            return f"Updated your outfit! Now wearing: {items_list}. Want to add or replace anything else?"
        return f"Added to your outfit! Now wearing: {items_list}. Keep building your look by adding more items!"
    return (
        f"Here's your look with: {items_list}. "
        "Add more items to complete your outfit (e.g., 'black jeans', 'white sneakers')!"
    )
