"""receipt-mint integrations module."""

from receipt_mint.integrations.local_export import MetadataExporter
from receipt_mint.integrations.ocr import OCREngine, OCRError

__all__ = [
    "MetadataExporter",
    "OCREngine",
    "OCRError",
]
