"""End-to-end receipt pipeline: OCR text -> record -> tier -> tags -> art -> metadata."""

import asyncio
import logging
import random
from collections.abc import Callable, Sequence
from pathlib import Path

from receipt_mint.config import Settings
from receipt_mint.core.art import ArtPool, load_art_pool, select_art
from receipt_mint.core.metadata import MetadataBuilder
from receipt_mint.core.parser import parse_receipt_text
from receipt_mint.core.tags import extract_tags
from receipt_mint.core.tiers import classify_tier
from receipt_mint.integrations.ocr import OCREngine
from receipt_mint.models import PipelineResult, ReceiptRecord, format_money

logger = logging.getLogger(__name__)

ImageInput = bytes | str | Path
ProgressCallback = Callable[[str, str], None]


class InvalidInputError(ValueError):
    """Raised when no receipt image or text was supplied."""


def load_image(image: ImageInput | None) -> bytes:
    """Read image bytes from a path, or validate bytes passed directly.

    Raises:
        InvalidInputError: If nothing usable was supplied.
    """
    if image is None:
        raise InvalidInputError("No receipt image supplied")

    if isinstance(image, bytes):
        if not image:
            raise InvalidInputError("Receipt image is empty")
        return image

    path = Path(image)
    if not path.is_file():
        raise InvalidInputError(f"Receipt image not found: {image}")
    content = path.read_bytes()
    if not content:
        raise InvalidInputError(f"Receipt image is empty: {image}")
    return content


class ReceiptPipeline:
    """
    Runs receipts through parsing, tiering, tagging, art selection and
    metadata assembly.

    The art pool is loaded once and only read afterwards, so one pipeline
    can serve any number of concurrent receipts.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        art_pool: ArtPool | None = None,
        ocr_engine: OCREngine | None = None,
        rng: random.Random | None = None,
        metadata_builder: MetadataBuilder | None = None,
    ) -> None:
        """
        Initialize the pipeline.

        Args:
            settings: Business parameters (default: built-in defaults)
            art_pool: Loaded art registry (default: from settings.art_pool_path
                or the packaged pool)
            ocr_engine: OCR collaborator (default: Google Vision engine)
            rng: Random source for art selection; seed it for reproducible
                results
            metadata_builder: Metadata builder (default: packaged templates)
        """
        self.settings = settings or Settings()
        self.art_pool = art_pool or load_art_pool(self.settings.art_pool_path)
        self.ocr_engine = ocr_engine or OCREngine()
        self.rng = rng or random.Random()
        self.metadata_builder = metadata_builder or MetadataBuilder()

    def complete(
        self,
        receipt: ReceiptRecord,
        source: str,
        count: int | None = None,
        rng: random.Random | None = None,
    ) -> PipelineResult:
        """Classify, tag and decorate an already parsed receipt.

        ``rng`` overrides the pipeline's random source for this receipt only.
        """
        settings = self.settings
        if count is None:
            count = settings.option_count
        tier = classify_tier(receipt.total, settings.tiers)
        tags = extract_tags(
            receipt.merchant_name,
            receipt.items,
            settings.category_keywords,
            settings.item_scan_cap,
        )
        options = select_art(self.art_pool, tags, tier, count, rng or self.rng)
        metadata = (
            self.metadata_builder.build(receipt, tier, options[0]) if options else None
        )
        return PipelineResult(
            source=source,
            receipt=receipt,
            tier=tier,
            tags=tags,
            options=options,
            metadata=metadata,
        )

    def process_text(
        self, raw_text: str | None, source: str = "text", count: int | None = None
    ) -> PipelineResult:
        """
        Run OCR text through the pipeline.

        Raises:
            InvalidInputError: If no text was supplied.
        """
        if raw_text is None or not raw_text.strip():
            raise InvalidInputError("No receipt text supplied")
        receipt = parse_receipt_text(raw_text, self.settings)
        return self.complete(receipt, source, count)

    async def read_receipt(self, image: ImageInput | None) -> ReceiptRecord:
        """
        OCR an image and parse the text.

        OCR failures, timeouts and a cancelled OCR call come back as a
        degraded record with ``error`` set. Cancelling the task awaiting this
        coroutine still propagates.

        Raises:
            InvalidInputError: If no image was supplied.
        """
        content = load_image(image)
        timeout = self.settings.ocr_timeout

        # OCR is synchronous, so we run it in an executor
        loop = asyncio.get_running_loop()
        try:
            text = await asyncio.wait_for(
                loop.run_in_executor(
                    None, self.ocr_engine.extract_text_from_bytes, content
                ),
                timeout=timeout,
            )
        except TimeoutError:
            logger.warning("OCR timed out after %ss", timeout)
            return ReceiptRecord.degraded(f"OCR timed out after {timeout:g}s")
        except asyncio.CancelledError:
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                raise
            logger.warning("OCR call was cancelled")
            return ReceiptRecord.degraded("OCR call was cancelled")
        except Exception as e:
            logger.warning("OCR failed: %s", e)
            return ReceiptRecord.degraded(f"OCR failed: {e}")

        if not text.strip():
            return ReceiptRecord.degraded("No text detected in image", raw_text=text)

        logger.info("OCR extracted %d characters", len(text))
        return parse_receipt_text(text, self.settings)

    async def process_image(
        self,
        image: ImageInput | None,
        source: str | None = None,
        count: int | None = None,
        rng: random.Random | None = None,
    ) -> PipelineResult:
        """Run a receipt image through OCR and the rest of the pipeline."""
        if source is None:
            source = Path(image).name if isinstance(image, str | Path) else "image"
        receipt = await self.read_receipt(image)
        return self.complete(receipt, source, count, rng)

    async def process_batch(
        self,
        images: Sequence[ImageInput],
        count: int | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> list[PipelineResult]:
        """
        Process several receipts concurrently.

        All inputs are checked before any OCR starts, so a missing file fails
        the whole batch up front. Each receipt gets its own random source,
        derived from the pipeline's in input order, so a seeded batch picks
        the same art whatever order the OCR calls finish in.

        Args:
            images: Image paths or bytes
            count: Art options per receipt (default: settings.option_count)
            on_progress: Optional callback for progress updates (event_type, message)

        Returns:
            One result per input, in input order.

        Raises:
            InvalidInputError: If the batch is empty or an input is unusable.
        """
        if not images:
            raise InvalidInputError("No receipt images supplied")

        sources = []
        for index, image in enumerate(images, start=1):
            load_image(image)
            if isinstance(image, bytes):
                sources.append(f"image-{index}")
            else:
                sources.append(Path(image).name)

        rngs = [random.Random(self.rng.getrandbits(64)) for _ in images]

        async def run_one(
            image: ImageInput, source: str, rng: random.Random
        ) -> PipelineResult:
            result = await self.process_image(
                image, source=source, count=count, rng=rng
            )
            if on_progress:
                receipt = result.receipt
                if receipt.error:
                    on_progress("receipt_error", f"Failed to read {source}: {receipt.error}")
                else:
                    on_progress(
                        "receipt_success",
                        f"Parsed {source}: {receipt.merchant_name}, {receipt.date}, "
                        f"{format_money(receipt.total)} ({result.tier.id.value})",
                    )
            return result

        tasks = [
            asyncio.create_task(run_one(image, source, rng))
            for image, source, rng in zip(images, sources, rngs)
        ]
        return list(await asyncio.gather(*tasks))
