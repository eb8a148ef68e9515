"""Runtime settings: tier table, keyword tables and parser constants.

Defaults reproduce the production business rules. Operators can override any
of them with a JSON file (``RECEIPT_MINT_CONFIG``) and the scalar ones with
environment variables, without touching code.
"""

import json
import os
from decimal import Decimal
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

from receipt_mint.models import Tier, TierId

DEFAULT_TIERS: list[Tier] = [
    Tier(
        id=TierId.BASIC,
        title="Basic",
        description="Basic BlockReceipt with minimal features",
        min_total=Decimal("0"),
        max_total=Decimal("50"),
        mint_price=Decimal("0.00"),
        warranty_boost=1,
    ),
    Tier(
        id=TierId.STANDARD,
        title="Standard",
        description="Standard BlockReceipt with basic features and encryption",
        min_total=Decimal("50"),
        max_total=Decimal("200"),
        mint_price=Decimal("0.99"),
        warranty_boost=3,
    ),
    Tier(
        id=TierId.PREMIUM,
        title="Premium",
        description=(
            "Enhanced BlockReceipt with premium features and advanced encryption"
        ),
        min_total=Decimal("200"),
        max_total=Decimal("1000"),
        mint_price=Decimal("2.99"),
        warranty_boost=6,
    ),
    Tier(
        id=TierId.LUXURY,
        title="Luxury",
        description=(
            "Exclusive BlockReceipt with premium features and highest encryption"
        ),
        min_total=Decimal("1000"),
        max_total=None,
        mint_price=Decimal("5.00"),
        warranty_boost=12,
    ),
]

DEFAULT_CATEGORY_KEYWORDS: dict[str, list[str]] = {
    "food": [
        "restaurant", "cafe", "diner", "bistro", "grill", "eatery", "kitchen",
        "food", "meal", "dinner", "lunch", "breakfast", "brunch",
    ],
    "coffee": [
        "coffee", "espresso", "latte", "mocha", "cappuccino", "cafe",
        "starbucks", "peet", "dunkin",
    ],
    "retail": [
        "store", "shop", "boutique", "mall", "outlet", "market", "retail",
        "buy", "purchase", "clothing", "apparel", "fashion",
    ],
    "grocery": [
        "grocery", "supermarket", "market", "foods", "produce", "organic",
        "farm", "vegetable", "fruit", "meat", "dairy",
    ],
    "tech": [
        "electronics", "technology", "computer", "laptop", "phone", "device",
        "gadget", "digital", "software", "hardware",
    ],
    "entertainment": [
        "cinema", "movie", "theater", "ticket", "show", "concert",
        "performance", "entertainment", "film", "amusement",
    ],
    "travel": [
        "hotel", "motel", "inn", "lodge", "resort", "vacation", "travel",
        "airline", "flight", "booking", "reservation",
    ],
}

# Lines containing any of these are never item lines.
DEFAULT_NON_ITEM_KEYWORDS: list[str] = [
    "TOTAL", "SUBTOTAL", "TAX", "TIP", "AMOUNT", "CHANGE", "CASH", "CREDIT",
    "BALANCE", "PAYMENT", "DUE",
]

DEFAULT_ITEM_SCAN_CAP = 5

# Environment variable -> Settings field
ENV_OVERRIDES = {
    "RECEIPT_MINT_TAX_ESTIMATE_RATE": "tax_estimate_rate",
    "RECEIPT_MINT_ITEM_SCAN_CAP": "item_scan_cap",
    "RECEIPT_MINT_OCR_TIMEOUT": "ocr_timeout",
    "RECEIPT_MINT_OPTION_COUNT": "option_count",
    "RECEIPT_MINT_ART_POOL": "art_pool_path",
}


class Settings(BaseModel):
    """Business parameters for the receipt pipeline."""

    model_config = ConfigDict(frozen=True)

    tiers: list[Tier] = Field(default_factory=lambda: list(DEFAULT_TIERS))
    category_keywords: dict[str, list[str]] = Field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_CATEGORY_KEYWORDS.items()}
    )
    non_item_keywords: list[str] = Field(
        default_factory=lambda: list(DEFAULT_NON_ITEM_KEYWORDS)
    )
    # Used only when a receipt has items but neither a subtotal nor a total.
    tax_estimate_rate: Decimal = Field(default=Decimal("0.08"), ge=0)
    item_scan_cap: int = Field(default=DEFAULT_ITEM_SCAN_CAP, ge=0)
    ocr_timeout: float = Field(default=30.0, gt=0)
    option_count: int = Field(default=6, ge=1)
    art_pool_path: Path | None = None

    @field_validator("tiers")
    @classmethod
    def _check_tiers(cls, tiers: list[Tier]) -> list[Tier]:
        if not tiers:
            raise ValueError("at least one tier is required")
        ordered = sorted(tiers, key=lambda t: t.min_total)
        if [tier.id for tier in ordered] != list(TierId):
            raise ValueError(
                "tiers must be exactly "
                + ", ".join(tier_id.value for tier_id in TierId)
                + ", in ascending order of min_total"
            )
        for tier in ordered:
            if tier.max_total is not None and tier.max_total <= tier.min_total:
                raise ValueError(
                    f"tier {tier.id.value} max_total must exceed its min_total"
                )
        if ordered[0].min_total != 0:
            raise ValueError("the lowest tier must start at 0")
        for lower, upper in zip(ordered, ordered[1:]):
            if lower.max_total != upper.min_total:
                raise ValueError(
                    f"tiers {lower.id.value} and {upper.id.value} are not contiguous"
                )
        if ordered[-1].max_total is not None:
            raise ValueError("the highest tier must be open-ended")
        return ordered


def load_settings(path: str | Path | None = None) -> Settings:
    """Build settings from an optional JSON file plus environment overrides.

    Args:
        path: JSON file with any subset of the ``Settings`` fields. Falls back
            to ``RECEIPT_MINT_CONFIG`` when omitted.

    Returns:
        Validated settings.

    Raises:
        FileNotFoundError: If the config file does not exist.
        pydantic.ValidationError: If a value is out of range or tiers overlap.
    """
    load_dotenv()

    data: dict = {}
    config_path = path or os.getenv("RECEIPT_MINT_CONFIG")
    if config_path:
        config_file = Path(config_path)
        if not config_file.is_file():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        with config_file.open("r", encoding="utf-8") as f:
            data = json.load(f)

    for env_var, field in ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value:
            data[field] = value

    return Settings.model_validate(data)
