"""Assembly of NFT metadata from a parsed receipt, its tier and chosen art."""

from functools import lru_cache
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from receipt_mint.models import (
    ArtOption,
    NFTAttribute,
    NFTMetadata,
    ReceiptRecord,
    StorageSummary,
    Tier,
    format_money,
)

DEFAULT_TEMPLATES_DIR = Path(__file__).parent.parent / "templates"


class MetadataBuilder:
    """
    Builds token metadata for a receipt.

    Name and description come from Jinja2 templates so their wording can be
    changed without code changes; the attribute list is fixed.
    """

    def __init__(self, templates_dir: str | Path | None = None) -> None:
        """
        Initialize the builder.

        Args:
            templates_dir: Directory containing ``metadata_name.jinja2`` and
                ``metadata_description.jinja2`` (default: packaged templates)
        """
        self.jinja_env = Environment(
            loader=FileSystemLoader(str(templates_dir or DEFAULT_TEMPLATES_DIR)),
            autoescape=select_autoescape(),
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def _render(self, template_name: str, **context) -> str:
        return self.jinja_env.get_template(template_name).render(**context).strip()

    def build(self, receipt: ReceiptRecord, tier: Tier, art: ArtOption) -> NFTMetadata:
        """
        Combine a receipt, its tier and the selected art into token metadata.

        Attribute order is part of the output format: merchant, date, total,
        tier, warranty boost, art name, rarity.
        """
        context = {"receipt": receipt, "tier": tier, "art": art}
        return NFTMetadata(
            name=self._render("metadata_name.jinja2", **context),
            description=self._render("metadata_description.jinja2", **context),
            image=art.image,
            attributes=[
                NFTAttribute(trait_type="Merchant", value=receipt.merchant_name),
                NFTAttribute(trait_type="Date", value=receipt.date),
                NFTAttribute(trait_type="Total Amount", value=format_money(receipt.total)),
                NFTAttribute(trait_type="Receipt Tier", value=tier.id.value),
                NFTAttribute(
                    trait_type="Warranty Boost",
                    value=tier.warranty_boost,
                    display_type="boost_number",
                ),
                NFTAttribute(trait_type="NFT Art", value=art.name),
                NFTAttribute(trait_type="Rarity", value=art.rarity.value),
            ],
        )


@lru_cache(maxsize=1)
def _default_builder() -> MetadataBuilder:
    return MetadataBuilder()


def build_metadata(receipt: ReceiptRecord, tier: Tier, art: ArtOption) -> NFTMetadata:
    """Build metadata with the packaged templates."""
    return _default_builder().build(receipt, tier, art)


def summarize_for_storage(receipt: ReceiptRecord, tier: Tier) -> StorageSummary:
    """Reduce a receipt to the fields stored with the token (no item names)."""
    return StorageSummary(
        merchant_name=receipt.merchant_name,
        date=receipt.date,
        subtotal=receipt.subtotal,
        tax=receipt.tax,
        total=receipt.total,
        item_count=len(receipt.items),
        tier=tier.id,
        mint_price=tier.mint_price,
    )
