"""Classification of receipt totals into monetary tiers."""

from collections.abc import Sequence
from decimal import Decimal

from receipt_mint.config import DEFAULT_TIERS
from receipt_mint.models import Tier, TierId


def classify_tier(
    total: Decimal | float | int, tiers: Sequence[Tier] | None = None
) -> Tier:
    """Return the tier whose ``[min_total, max_total)`` interval holds ``total``.

    Tiers must be contiguous and start at zero (``Settings`` enforces this).
    Totals below the lowest bound fall into the lowest tier.
    """
    tiers = sorted(tiers or DEFAULT_TIERS, key=lambda t: t.min_total)
    amount = Decimal(str(total))

    for tier in reversed(tiers):
        if amount >= tier.min_total:
            return tier
    return tiers[0]


def get_tier(tier_id: TierId | str, tiers: Sequence[Tier] | None = None) -> Tier:
    """Look up a tier by id, e.g. ``get_tier("PREMIUM")``."""
    try:
        wanted = TierId(tier_id.upper())
    except ValueError as e:
        raise KeyError(f"Unknown tier: {tier_id}") from e
    for tier in tiers or DEFAULT_TIERS:
        if tier.id == wanted:
            return tier
    raise KeyError(f"Unknown tier: {wanted.value}")
