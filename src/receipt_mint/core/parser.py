"""Rule-based extraction of receipt fields from raw OCR text.

Every field has an ordered tuple of ``FieldPattern`` entries. Patterns are
tried top to bottom and the first match wins, so labelled formats must stay
ahead of the generic ones. Reordering a tuple changes parsing results.
"""

import logging
import re
from collections.abc import Callable, Sequence
from decimal import Decimal
from typing import NamedTuple

from receipt_mint.config import Settings
from receipt_mint.models import (
    UNKNOWN_MERCHANT,
    ReceiptItem,
    ReceiptRecord,
    to_money,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

# Matches "12.34" and "1,234.56" but not a rate like "8.25%"
AMOUNT = r"(\d{1,3}(?:,\d{3})+\.\d{2}|\d+\.\d{2})(?![\d%])"

MONTH_NAMES = (
    "january", "february", "march", "april", "may", "june", "july",
    "august", "september", "october", "november", "december",
    "jan", "feb", "mar", "apr", "jun", "jul", "aug", "sep", "sept",
    "oct", "nov", "dec",
)
WEEKDAY_NAMES = (
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
)
_MONTH_RE = "|".join(sorted(MONTH_NAMES, key=len, reverse=True))

CORPORATE_SUFFIXES = (
    "INC", "LLC", "LTD", "CORP", "CORPORATION", "CO", "COMPANY",
    "INCORPORATED", "LIMITED", "INTERNATIONAL", "INTL", "ENTERPRISES",
    "HOLDINGS", "GROUP", "WORLDWIDE",
)


class FieldPattern(NamedTuple):
    """A regex and the rule turning its match into the field's text."""

    pattern: re.Pattern[str]
    extract: Callable[[re.Match[str]], str]


def _first_group(match: re.Match[str]) -> str:
    return match.group(1).strip()


def _whole_match(match: re.Match[str]) -> str:
    return match.group(0).strip()


def _month_day_year(match: re.Match[str]) -> str:
    month, day, year = match.groups()
    return f"{month} {day}, {year}"


def _labelled_amount(label: str) -> FieldPattern:
    """``LABEL: $12.34`` with optional colon, dollar sign and spacing."""
    return FieldPattern(
        re.compile(rf"{label}[:\s]*\$?\s*{AMOUNT}", re.IGNORECASE), _first_group
    )


def _label_then_amount(label: str) -> FieldPattern:
    """``LABEL`` followed by any text on the same line, then an amount."""
    return FieldPattern(
        re.compile(rf"{label}\b[^$\n]*[^\d,.]\$?{AMOUNT}", re.IGNORECASE),
        _first_group,
    )


# TOTAL must not fire inside SUBTOTAL / SUB TOTAL / SUB-TOTAL
_TOTAL = r"(?<!SUB[ -])\bTOTAL"

MERCHANT_PATTERNS: tuple[FieldPattern, ...] = (
    # Capitalised line, e.g. "TRADER JOE'S"
    FieldPattern(
        re.compile(r"^[ \t]*([A-Z][A-Z \t&.']*[A-Z.'])[ \t]*$", re.MULTILINE),
        _first_group,
    ),
    FieldPattern(
        re.compile(r"\bWELCOME TO[ \t]+([A-Z][A-Z \t&.']+)", re.IGNORECASE),
        _first_group,
    ),
    FieldPattern(
        re.compile(r"\bMERCHANT:?[ \t]*([A-Z][A-Z \t&.']+)", re.IGNORECASE),
        _first_group,
    ),
    FieldPattern(
        re.compile(r"\bSTORE:?[ \t]*([A-Z][A-Z \t&.']+)", re.IGNORECASE),
        _first_group,
    ),
    FieldPattern(
        re.compile(r"\bRESTAURANT:?[ \t]*([A-Z][A-Z \t&.']+)", re.IGNORECASE),
        _first_group,
    ),
    FieldPattern(
        re.compile(r"\bRECEIPT[ \t]+([A-Z][A-Z \t&.']+)", re.IGNORECASE),
        _first_group,
    ),
    # Last resort: first line that starts with a letter
    FieldPattern(
        re.compile(r"^[ \t]*([A-Za-z][^\n]*?)[ \t]*$", re.MULTILINE),
        _first_group,
    ),
)

DATE_PATTERNS: tuple[FieldPattern, ...] = (
    FieldPattern(re.compile(r"\b(\d{1,2}/\d{1,2}/\d{2,4})\b"), _first_group),
    FieldPattern(re.compile(r"\b(\d{1,2}-\d{1,2}-\d{2,4})\b"), _first_group),
    FieldPattern(re.compile(r"\b(\d{2,4}\.\d{1,2}\.\d{1,2})\b"), _first_group),
    FieldPattern(
        re.compile(r"\bDATE:?\s*(\d{1,2}/\d{1,2}/\d{2,4})", re.IGNORECASE),
        _first_group,
    ),
    FieldPattern(
        re.compile(r"\bDATE:?\s*(\d{1,2}-\d{1,2}-\d{2,4})", re.IGNORECASE),
        _first_group,
    ),
    FieldPattern(re.compile(r"\b\d{1,2}[/.-]\d{1,2}[/.-]\d{2,4}\b"), _whole_match),
    FieldPattern(
        re.compile(
            rf"\b({_MONTH_RE})\.?\s+(\d{{1,2}}),?\s+(\d{{4}})\b", re.IGNORECASE
        ),
        _month_day_year,
    ),
)

TOTAL_PATTERNS: tuple[FieldPattern, ...] = (
    _labelled_amount(_TOTAL),
    _labelled_amount(r"\bAMOUNT"),
    _labelled_amount(r"\bGRAND TOTAL"),
    _labelled_amount(r"\bBALANCE DUE"),
    _labelled_amount(r"\bTO PAY"),
    _labelled_amount(r"\bPAYMENT"),
    _label_then_amount(_TOTAL),
)

SUBTOTAL_PATTERNS: tuple[FieldPattern, ...] = (
    _labelled_amount(r"\bSUBTOTAL"),
    _labelled_amount(r"\bSUB[ -]?TOTAL"),
    _labelled_amount(r"\bSUB AMOUNT"),
    _label_then_amount(r"\bSUBTOTAL"),
)

TAX_PATTERNS: tuple[FieldPattern, ...] = (
    _labelled_amount(r"\bTAX"),
    _labelled_amount(r"\bSALES TAX"),
    _labelled_amount(r"\bVAT"),
    _labelled_amount(r"\bGST"),
    _labelled_amount(r"\bHST"),
    _label_then_amount(r"\bTAX"),
)

# Item lines: "name <spaces> price" with the price ending the line first,
# then anywhere on the line.
ITEM_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(rf"^(.+?)\s+\$?\s*{AMOUNT}\s*$"),
    re.compile(rf"([A-Za-z0-9&\s\-'\".]+?)\s+\$?\s*{AMOUNT}"),
)

# Fallback pass: any dollar-prefixed price on the line
FALLBACK_PRICE_PATTERN = re.compile(rf"\$\s*{AMOUNT}")

_NUMERIC_ONLY = re.compile(r"[\d\s.,/:#-]+")


def match_first(patterns: Sequence[FieldPattern], text: str) -> str | None:
    """Return the value extracted by the first pattern that matches."""
    for field_pattern in patterns:
        match = field_pattern.pattern.search(text)
        if match:
            value = field_pattern.extract(match)
            if value:
                return value
    return None


def parse_amount(value: str | None) -> Decimal:
    if not value:
        return ZERO
    return Decimal(value.replace(",", ""))


def clean_merchant_name(name: str) -> str:
    """Normalize a merchant name: drop corporate suffixes, title-case it."""
    clean = re.sub(r"\s+", " ", name.upper()).strip()

    previous = None
    while previous != clean:
        previous = clean
        for suffix in CORPORATE_SUFFIXES:
            clean = re.sub(rf"[\s,]+{suffix}\.?\s*$", "", clean).strip()

    return " ".join(word.capitalize() for word in clean.split(" ") if word)


def is_item_name(name: str) -> bool:
    """Reject OCR artifacts: bare numbers, dates, month and weekday names."""
    if len(name) < 2 or _NUMERIC_ONLY.fullmatch(name):
        return False
    first_word = name.split()[0].strip(".,:").lower()
    return first_word not in MONTH_NAMES and first_word not in WEEKDAY_NAMES


def _is_item_line(line: str, non_item_keywords: Sequence[str]) -> bool:
    upper = line.upper()
    return bool(line.strip()) and not any(
        keyword.upper() in upper for keyword in non_item_keywords
    )


def extract_items(
    lines: Sequence[str], non_item_keywords: Sequence[str]
) -> list[ReceiptItem]:
    """Extract priced item lines.

    The fallback pass (dollar-prefixed prices anywhere on the line) only runs
    when the primary pass finds nothing.
    """
    candidates = [line for line in lines if _is_item_line(line, non_item_keywords)]

    items: list[ReceiptItem] = []
    for line in candidates:
        for pattern in ITEM_PATTERNS:
            match = pattern.search(line)
            if match:
                name = match.group(1).strip()
                if is_item_name(name):
                    items.append(ReceiptItem(name=name, price=parse_amount(match.group(2))))
                break

    if items:
        return items

    for line in candidates:
        match = FALLBACK_PRICE_PATTERN.search(line)
        if not match:
            continue
        name = " ".join((line[: match.start()] + line[match.end() :]).split())
        if is_item_name(name):
            items.append(ReceiptItem(name=name, price=parse_amount(match.group(1))))

    if items:
        logger.debug("Item lines found by fallback price scan: %d", len(items))
    return items


def reconcile_amounts(
    items: Sequence[ReceiptItem],
    subtotal: Decimal,
    tax: Decimal,
    total: Decimal,
    tax_estimate_rate: Decimal,
) -> tuple[Decimal, Decimal, Decimal]:
    """Fill in whichever of subtotal, tax and total could not be read.

    Rules apply in order: subtotal from items, tax from total minus subtotal,
    then total from subtotal plus tax. When the receipt printed neither a
    subtotal nor a tax line, the total is estimated from the items and
    ``tax_estimate_rate`` instead, and the tax is the difference.
    """
    items_sum = sum((item.price for item in items), ZERO)
    printed = subtotal > 0 or tax > 0

    if subtotal == 0 and items:
        subtotal = to_money(items_sum)

    if tax == 0 and subtotal > 0 and total > 0:
        tax = max(ZERO, to_money(total - subtotal))

    if total == 0:
        if printed:
            total = to_money(subtotal + tax)
        elif items:
            total = to_money(items_sum * (1 + tax_estimate_rate))
            tax = max(ZERO, total - subtotal)

    return subtotal, tax, total


def _parse(text: str, settings: Settings) -> ReceiptRecord:
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    merchant = match_first(MERCHANT_PATTERNS, text)
    merchant_name = clean_merchant_name(merchant) if merchant else ""
    date = match_first(DATE_PATTERNS, text)

    total = parse_amount(match_first(TOTAL_PATTERNS, text))
    subtotal = parse_amount(match_first(SUBTOTAL_PATTERNS, text))
    tax = parse_amount(match_first(TAX_PATTERNS, text))

    items = extract_items(text.splitlines(), settings.non_item_keywords)
    subtotal, tax, total = reconcile_amounts(
        items, subtotal, tax, total, settings.tax_estimate_rate
    )

    fields = {
        "merchant_name": merchant_name or UNKNOWN_MERCHANT,
        "items": items,
        "subtotal": subtotal,
        "tax": tax,
        "total": total,
        "raw_text": text,
    }
    if date:
        fields["date"] = date
    record = ReceiptRecord(**fields)

    logger.debug(
        "Parsed receipt: merchant=%s date=%s items=%d subtotal=%s tax=%s total=%s",
        record.merchant_name,
        record.date,
        len(items),
        subtotal,
        tax,
        total,
    )
    return record


def parse_receipt_text(text: str, settings: Settings | None = None) -> ReceiptRecord:
    """Parse raw OCR text into a ``ReceiptRecord``.

    Never raises: if parsing fails unexpectedly the record is fully defaulted
    and carries the failure in ``error``.

    Args:
        text: Raw OCR text.
        settings: Parser constants; defaults apply when omitted.

    Returns:
        The parsed, reconciled receipt record.
    """
    settings = settings or Settings()
    try:
        return _parse(text, settings)
    except Exception as e:
        logger.exception("Failed to parse receipt text")
        raw_text = text if isinstance(text, str) else ""
        return ReceiptRecord.degraded(f"Failed to parse receipt text: {e}", raw_text)


def validate_receipt(record: ReceiptRecord) -> list[str]:
    """List problems with a parsed record; an empty list means it looks sane."""
    errors: list[str] = []

    if not record.merchant_name or record.merchant_name == UNKNOWN_MERCHANT:
        errors.append("Merchant name is required")
    if not record.date:
        errors.append("Date is required")
    for field in ("subtotal", "tax", "total"):
        if getattr(record, field) < 0:
            errors.append(f"{field.capitalize()} must not be negative")
    if record.total == 0:
        errors.append("Total amount could not be determined")

    for index, item in enumerate(record.items, start=1):
        if not item.name.strip():
            errors.append(f"Item #{index}: Name is required")
        if item.price < 0:
            errors.append(f"Item #{index}: Price must not be negative")

    return errors
