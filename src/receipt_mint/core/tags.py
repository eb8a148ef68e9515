"""Category tags derived from merchant and item names."""

from collections.abc import Mapping, Sequence

from receipt_mint.config import DEFAULT_CATEGORY_KEYWORDS, DEFAULT_ITEM_SCAN_CAP
from receipt_mint.models import ReceiptItem

RANDOM_TAG = "random"


def _matching_categories(text: str, keywords: Mapping[str, Sequence[str]]) -> list[str]:
    lowered = text.lower()
    return [
        category
        for category, words in keywords.items()
        if any(word.lower() in lowered for word in words)
    ]


def extract_tags(
    merchant_name: str,
    items: Sequence[ReceiptItem],
    keywords: Mapping[str, Sequence[str]] | None = None,
    item_scan_cap: int | None = None,
) -> list[str]:
    """Derive category tags for a receipt.

    The merchant name can hit several categories (a "market cafe" is both
    grocery and food). Only the first ``item_scan_cap`` item names are
    scanned. Matching is plain substring search.

    Args:
        merchant_name: Parsed merchant name.
        items: Parsed line items.
        keywords: Category -> keyword list table.
        item_scan_cap: How many items to scan (default 5).

    Returns:
        Unique tags in first-seen order, always ending with ``"random"``.
    """
    keywords = DEFAULT_CATEGORY_KEYWORDS if keywords is None else keywords
    cap = DEFAULT_ITEM_SCAN_CAP if item_scan_cap is None else item_scan_cap

    tags: dict[str, None] = {}
    if merchant_name:
        tags.update(dict.fromkeys(_matching_categories(merchant_name, keywords)))
    for item in items[:cap]:
        tags.update(dict.fromkeys(_matching_categories(item.name, keywords)))

    tags.pop(RANDOM_TAG, None)
    return [*tags, RANDOM_TAG]
