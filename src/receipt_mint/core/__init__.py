"""Receipt parsing, tiering, tagging, art selection and metadata stages."""

from receipt_mint.core.art import ArtPool, ArtPoolError, load_art_pool, select_art
from receipt_mint.core.metadata import (
    MetadataBuilder,
    build_metadata,
    summarize_for_storage,
)
from receipt_mint.core.parser import parse_receipt_text, validate_receipt
from receipt_mint.core.tags import extract_tags
from receipt_mint.core.tiers import classify_tier, get_tier

__all__ = [
    "ArtPool",
    "ArtPoolError",
    "MetadataBuilder",
    "build_metadata",
    "classify_tier",
    "extract_tags",
    "get_tier",
    "load_art_pool",
    "parse_receipt_text",
    "select_art",
    "summarize_for_storage",
    "validate_receipt",
]
