"""Unit tests for OCR Engine using Google Vision API."""

from unittest.mock import Mock, patch

import pytest
from google.api_core.exceptions import PermissionDenied, ServiceUnavailable

from receipt_mint.integrations.ocr import OCREngine, OCRError

pytestmark = pytest.mark.unit


def _response(text: str | None = None, error: str = "") -> Mock:
    response = Mock()
    response.error.message = error
    if text is None:
        response.text_annotations = []
    else:
        annotation = Mock()
        annotation.description = text
        response.text_annotations = [annotation]
    return response


@pytest.fixture(autouse=True)
def no_retry_wait():
    """Skip tenacity's back-off sleeps."""
    with patch.object(OCREngine.extract_text_from_bytes.retry, "sleep", lambda _: None):
        yield


class TestOCREngineInitialization:
    """Test OCREngine initialization and client setup."""

    def test_ocr_engine_creates_default_client_lazily(self):
        """Test that the Vision client is only built on first use."""
        with patch(
            "receipt_mint.integrations.ocr.vision.ImageAnnotatorClient"
        ) as mock_client_class:
            engine = OCREngine()
            mock_client_class.assert_not_called()

            assert engine.client is mock_client_class.return_value
            assert engine.client is mock_client_class.return_value
            mock_client_class.assert_called_once()

    def test_ocr_engine_accepts_custom_client(self):
        """Test that OCREngine can be initialized with a custom client."""
        mock_client = Mock()
        engine = OCREngine(client=mock_client)
        assert engine.client is mock_client


class TestTextExtraction:
    """Test basic text extraction functionality."""

    def test_extract_text_from_file(self, tmp_path):
        """Test that extract_text reads the file and returns the full text."""
        image_path = tmp_path / "receipt.jpg"
        image_path.write_bytes(b"fake image data")
        mock_client = Mock()
        mock_client.text_detection.return_value = _response(
            "STARBUCKS\nTOTAL: 9.45"
        )

        engine = OCREngine(client=mock_client)
        result = engine.extract_text(image_path)

        assert result == "STARBUCKS\nTOTAL: 9.45"
        image = mock_client.text_detection.call_args.kwargs["image"]
        assert image.content == b"fake image data"

    def test_no_text_returns_empty_string(self):
        mock_client = Mock()
        mock_client.text_detection.return_value = _response()

        engine = OCREngine(client=mock_client)

        assert engine.extract_text_from_bytes(b"blank") == ""


class TestErrorHandling:
    """Test error handling for various failure scenarios."""

    def test_extract_text_raises_error_for_invalid_path(self):
        """Test that extract_text raises appropriate error for non-existent file."""
        engine = OCREngine(client=Mock())

        with pytest.raises(FileNotFoundError):
            engine.extract_text("/invalid/path/to/image.png")

    def test_empty_content_raises_value_error(self):
        engine = OCREngine(client=Mock())

        with pytest.raises(ValueError):
            engine.extract_text_from_bytes(b"")

    def test_api_error_message_raises_ocr_error(self):
        mock_client = Mock()
        mock_client.text_detection.return_value = _response(error="Bad image data")

        engine = OCREngine(client=mock_client)

        with pytest.raises(OCRError, match="Bad image data"):
            engine.extract_text_from_bytes(b"data")

    def test_transient_error_is_retried(self):
        """Test that a ServiceUnavailable error gets another attempt."""
        mock_client = Mock()
        mock_client.text_detection.side_effect = [
            ServiceUnavailable("try again"),
            _response("TOTAL 5.00"),
        ]

        engine = OCREngine(client=mock_client)

        assert engine.extract_text_from_bytes(b"data") == "TOTAL 5.00"
        assert mock_client.text_detection.call_count == 2

    def test_retries_give_up_after_three_attempts(self):
        mock_client = Mock()
        mock_client.text_detection.side_effect = ServiceUnavailable("down")

        engine = OCREngine(client=mock_client)

        with pytest.raises(ServiceUnavailable):
            engine.extract_text_from_bytes(b"data")
        assert mock_client.text_detection.call_count == 3

    def test_permission_error_is_not_retried(self):
        mock_client = Mock()
        mock_client.text_detection.side_effect = PermissionDenied("billing disabled")

        engine = OCREngine(client=mock_client)

        with pytest.raises(PermissionDenied):
            engine.extract_text_from_bytes(b"data")
        assert mock_client.text_detection.call_count == 1
