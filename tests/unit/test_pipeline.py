"""Unit tests for the receipt pipeline."""

import asyncio
import random
import threading
import time
from decimal import Decimal
from unittest.mock import Mock, patch

import pytest

from receipt_mint.config import Settings
from receipt_mint.core.art import load_art_pool
from receipt_mint.models import UNKNOWN_MERCHANT, TierId
from receipt_mint.pipeline import InvalidInputError, ReceiptPipeline, load_image

pytestmark = pytest.mark.unit

COFFEE_RECEIPT = """STARBUCKS
Date: 03/14/2024
Venti Latte 5.25
Muffin 3.50
SUBTOTAL: 8.75
TAX: 0.70
TOTAL: 9.45
"""

ELECTRONICS_RECEIPT = """BEST BUY
Laptop 1,199.99
TOTAL: 1,295.99
"""


@pytest.fixture(scope="module")
def art_pool():
    return load_art_pool()


@pytest.fixture
def ocr_engine():
    engine = Mock()
    engine.extract_text_from_bytes.return_value = COFFEE_RECEIPT
    return engine


@pytest.fixture
def pipeline(art_pool, ocr_engine):
    return ReceiptPipeline(art_pool=art_pool, ocr_engine=ocr_engine, rng=random.Random(7))


@pytest.fixture
def image_file(tmp_path):
    path = tmp_path / "receipt.jpg"
    path.write_bytes(b"fake image data")
    return path


class TestLoadImage:
    """Test input validation before OCR."""

    def test_bytes_pass_through(self):
        assert load_image(b"abc") == b"abc"

    def test_reads_file(self, image_file):
        assert load_image(image_file) == b"fake image data"
        assert load_image(str(image_file)) == b"fake image data"

    @pytest.mark.parametrize("image", [None, b""])
    def test_missing_input_rejected(self, image):
        with pytest.raises(InvalidInputError):
            load_image(image)

    def test_missing_or_empty_file_rejected(self, tmp_path):
        empty = tmp_path / "empty.jpg"
        empty.write_bytes(b"")

        with pytest.raises(InvalidInputError, match="not found"):
            load_image(tmp_path / "missing.jpg")
        with pytest.raises(InvalidInputError, match="empty"):
            load_image(empty)


class TestProcessText:
    """Test the synchronous text path."""

    def test_full_result(self, pipeline):
        result = pipeline.process_text(COFFEE_RECEIPT, source="starbucks.txt")

        assert result.source == "starbucks.txt"
        assert result.receipt.merchant_name == "Starbucks"
        assert result.tier.id == TierId.BASIC
        assert result.tags == ["coffee", "random"]
        assert len(result.options) == 6
        assert result.metadata is not None
        assert result.metadata.name.endswith(": Starbucks")
        assert result.metadata.image == result.options[0].image

    def test_tier_drives_bonus_art(self, art_pool, ocr_engine):
        pipeline = ReceiptPipeline(art_pool=art_pool, ocr_engine=ocr_engine)

        result = pipeline.process_text(ELECTRONICS_RECEIPT, count=20)

        assert result.tier.id == TierId.LUXURY
        assert {"luxury-1", "luxury-2"} <= {option.id for option in result.options}

    def test_count_override(self, pipeline):
        assert len(pipeline.process_text(COFFEE_RECEIPT, count=2).options) == 2

    def test_zero_count_selects_no_art(self, pipeline):
        result = pipeline.process_text(COFFEE_RECEIPT, count=0)

        assert result.options == []
        assert result.metadata is None

    def test_option_count_from_settings(self, art_pool, ocr_engine):
        pipeline = ReceiptPipeline(
            settings=Settings(option_count=3), art_pool=art_pool, ocr_engine=ocr_engine
        )
        assert len(pipeline.process_text(COFFEE_RECEIPT).options) == 3

    @pytest.mark.parametrize("text", [None, "", "   \n"])
    def test_blank_text_rejected(self, pipeline, text):
        with pytest.raises(InvalidInputError):
            pipeline.process_text(text)

    def test_same_seed_same_result(self, art_pool, ocr_engine):
        first = ReceiptPipeline(
            art_pool=art_pool, ocr_engine=ocr_engine, rng=random.Random(11)
        ).process_text(COFFEE_RECEIPT)
        second = ReceiptPipeline(
            art_pool=art_pool, ocr_engine=ocr_engine, rng=random.Random(11)
        ).process_text(COFFEE_RECEIPT)

        assert [o.id for o in first.options] == [o.id for o in second.options]
        assert first.metadata == second.metadata


class TestReadReceipt:
    """Test OCR failure handling."""

    @pytest.mark.asyncio
    async def test_ocr_text_is_parsed(self, pipeline, ocr_engine, image_file):
        record = await pipeline.read_receipt(image_file)

        ocr_engine.extract_text_from_bytes.assert_called_once_with(b"fake image data")
        assert record.total == Decimal("9.45")
        assert record.error is None

    @pytest.mark.asyncio
    async def test_ocr_exception_gives_degraded_record(self, pipeline, ocr_engine):
        ocr_engine.extract_text_from_bytes.side_effect = RuntimeError("quota exceeded")

        record = await pipeline.read_receipt(b"image")

        assert record.error == "OCR failed: quota exceeded"
        assert record.merchant_name == UNKNOWN_MERCHANT
        assert record.total == Decimal("0")

    @pytest.mark.asyncio
    async def test_ocr_timeout_gives_degraded_record(self, art_pool):
        release = threading.Event()

        class SlowEngine:
            def extract_text_from_bytes(self, content):
                release.wait(5)
                return COFFEE_RECEIPT

        pipeline = ReceiptPipeline(
            settings=Settings(ocr_timeout=0.05), art_pool=art_pool, ocr_engine=SlowEngine()
        )
        try:
            record = await pipeline.read_receipt(b"image")
        finally:
            release.set()

        assert record.error == "OCR timed out after 0.05s"
        assert record.total == Decimal("0")

    @pytest.mark.asyncio
    async def test_cancelled_ocr_call_gives_degraded_record(self, pipeline):
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        future.cancel()

        with patch.object(loop, "run_in_executor", return_value=future):
            record = await pipeline.read_receipt(b"image")

        assert record.error == "OCR call was cancelled"
        assert record.total == Decimal("0")

    @pytest.mark.asyncio
    async def test_cancelling_the_caller_propagates(self, art_pool):
        release = threading.Event()

        class SlowEngine:
            def extract_text_from_bytes(self, content):
                release.wait(5)
                return COFFEE_RECEIPT

        pipeline = ReceiptPipeline(art_pool=art_pool, ocr_engine=SlowEngine())
        task = asyncio.create_task(pipeline.read_receipt(b"image"))
        try:
            await asyncio.sleep(0.05)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
        finally:
            release.set()

    @pytest.mark.asyncio
    async def test_no_text_detected(self, pipeline, ocr_engine):
        ocr_engine.extract_text_from_bytes.return_value = "  \n"

        record = await pipeline.read_receipt(b"image")

        assert record.error == "No text detected in image"

    @pytest.mark.asyncio
    async def test_missing_image_raises(self, pipeline):
        with pytest.raises(InvalidInputError):
            await pipeline.read_receipt(None)

    @pytest.mark.asyncio
    async def test_degraded_record_still_gets_a_result(self, pipeline, ocr_engine):
        """Test that a failed OCR still yields a BASIC result with random art."""
        ocr_engine.extract_text_from_bytes.side_effect = RuntimeError("boom")

        result = await pipeline.process_image(b"image")

        assert result.source == "image"
        assert result.tier.id == TierId.BASIC
        assert result.tags == ["random"]
        assert all(option.id.startswith("random-") for option in result.options)


class TestProcessBatch:
    """Test concurrent batch processing."""

    @pytest.mark.asyncio
    async def test_results_in_input_order(self, pipeline, ocr_engine, image_file):
        ocr_engine.extract_text_from_bytes.side_effect = lambda content: (
            ELECTRONICS_RECEIPT if content == b"second" else COFFEE_RECEIPT
        )

        results = await pipeline.process_batch([image_file, b"second"])

        assert [r.source for r in results] == ["receipt.jpg", "image-2"]
        assert [r.tier.id for r in results] == [TierId.BASIC, TierId.LUXURY]

    @pytest.mark.asyncio
    async def test_progress_events(self, pipeline, ocr_engine):
        def fake_ocr(content):
            if content == b"bad":
                raise RuntimeError("bad image")
            return COFFEE_RECEIPT

        ocr_engine.extract_text_from_bytes.side_effect = fake_ocr
        events = []

        await pipeline.process_batch(
            [b"good", b"bad"], on_progress=lambda kind, msg: events.append((kind, msg))
        )

        assert sorted(events) == [
            ("receipt_error", "Failed to read image-2: OCR failed: bad image"),
            (
                "receipt_success",
                "Parsed image-1: Starbucks, 03/14/2024, $9.45 (BASIC)",
            ),
        ]

    @pytest.mark.asyncio
    async def test_empty_batch_rejected(self, pipeline):
        with pytest.raises(InvalidInputError):
            await pipeline.process_batch([])

    @pytest.mark.asyncio
    async def test_invalid_input_fails_before_any_ocr(self, pipeline, ocr_engine, tmp_path):
        with pytest.raises(InvalidInputError):
            await pipeline.process_batch([b"good", tmp_path / "missing.jpg"])

        ocr_engine.extract_text_from_bytes.assert_not_called()

    @pytest.mark.asyncio
    async def test_seeded_batch_ignores_ocr_completion_order(self, art_pool):
        """Test that art picks depend on input position, not on which OCR finishes first."""

        def staggered_engine(slow_content):
            engine = Mock()

            def fake_ocr(content):
                if content == slow_content:
                    time.sleep(0.3)
                return ELECTRONICS_RECEIPT if content == b"second" else COFFEE_RECEIPT

            engine.extract_text_from_bytes.side_effect = fake_ocr
            return engine

        runs = []
        for slow_content in (b"first", b"second"):
            pipeline = ReceiptPipeline(
                art_pool=art_pool,
                ocr_engine=staggered_engine(slow_content),
                rng=random.Random(42),
            )
            runs.append(await pipeline.process_batch([b"first", b"second"]))

        first_run, second_run = runs
        assert [r.source for r in first_run] == ["image-1", "image-2"]
        assert [r.source for r in second_run] == ["image-1", "image-2"]
        for before, after in zip(first_run, second_run):
            assert [o.id for o in before.options] == [o.id for o in after.options]
            assert before.metadata == after.metadata
