"""Data models for receipt parsing, tier classification and NFT metadata."""

from datetime import UTC, date, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer

UNKNOWN_MERCHANT = "Unknown Merchant"

CENTS = Decimal("0.01")


def to_money(value: Decimal | float | int | str) -> Decimal:
    """Round a monetary value to two decimal places (half-up)."""
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def format_money(value: Decimal) -> str:
    """Format an amount as a dollar string, e.g. ``$1,234.50``."""
    return f"${to_money(value):,.2f}"


def _today() -> str:
    return date.today().isoformat()


class TierId(str, Enum):
    """Monetary tiers, lowest first."""

    BASIC = "BASIC"
    STANDARD = "STANDARD"
    PREMIUM = "PREMIUM"
    LUXURY = "LUXURY"


class Rarity(str, Enum):
    COMMON = "common"
    UNCOMMON = "uncommon"
    RARE = "rare"
    LEGENDARY = "legendary"


class ReceiptItem(BaseModel):
    """Individual line item on a receipt."""

    name: str
    price: Decimal


class ReceiptRecord(BaseModel):
    """Structured receipt data parsed from OCR text.

    Amounts default to zero when they could not be read; ``error`` is only
    set when the OCR call or the parser failed outright.
    """

    merchant_name: str = UNKNOWN_MERCHANT
    date: str = Field(default_factory=_today)
    items: list[ReceiptItem] = Field(default_factory=list)
    subtotal: Decimal = Decimal("0")
    tax: Decimal = Decimal("0")
    total: Decimal = Decimal("0")
    raw_text: str = ""
    error: str | None = None

    @classmethod
    def degraded(cls, error: str, raw_text: str = "") -> "ReceiptRecord":
        """Return a fully-defaulted record carrying ``error``."""
        return cls(error=error, raw_text=raw_text)


class Tier(BaseModel):
    """A monetary tier covering ``[min_total, max_total)``.

    The top tier has ``max_total=None`` and is open-ended.
    """

    model_config = ConfigDict(frozen=True)

    id: TierId
    title: str
    description: str
    min_total: Decimal = Field(ge=0)
    max_total: Decimal | None = None
    mint_price: Decimal = Field(ge=0)
    warranty_boost: int = Field(ge=0)

    def contains(self, total: Decimal) -> bool:
        if total < self.min_total:
            return False
        return self.max_total is None or total < self.max_total


class ArtOption(BaseModel):
    """A selectable art template for the collectible."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    image: str
    preview: str
    description: str
    rarity: Rarity
    tags: frozenset[str] = frozenset()

    @field_serializer("tags")
    def _serialize_tags(self, tags: frozenset[str]) -> list[str]:
        return sorted(tags)


class NFTAttribute(BaseModel):
    trait_type: str
    value: str | int
    display_type: str | None = None


class NFTMetadata(BaseModel):
    """Token metadata handed to the minting collaborator."""

    name: str
    description: str
    image: str
    attributes: list[NFTAttribute] = Field(default_factory=list)

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class StorageSummary(BaseModel):
    """Receipt summary safe to store alongside a token.

    Item names are left out; only their count is kept.
    """

    merchant_name: str
    date: str
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    item_count: int
    tier: TierId
    mint_price: Decimal
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class PipelineResult(BaseModel):
    """Everything produced for one receipt by the pipeline."""

    source: str
    receipt: ReceiptRecord
    tier: Tier
    tags: list[str] = Field(default_factory=list)
    options: list[ArtOption] = Field(default_factory=list)
    metadata: NFTMetadata | None = None

    def to_json_dict(self) -> dict[str, Any]:
        data = self.model_dump(mode="json", exclude={"metadata"})
        data["metadata"] = self.metadata.to_json_dict() if self.metadata else None
        return data
