"""OCR Engine using Google Cloud Vision API for receipt text extraction."""

import threading
from pathlib import Path

from google.api_core.exceptions import (
    DeadlineExceeded,
    InternalServerError,
    ServiceUnavailable,
)
from google.cloud import vision
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

# Errors worth another attempt; anything else (auth, quota, bad image) is final
TRANSIENT_ERRORS = (DeadlineExceeded, InternalServerError, ServiceUnavailable)


class OCRError(Exception):
    """Raised when the Vision API reports an error for an image."""


class OCREngine:
    """
    OCR Engine for extracting text from receipt images using Google Vision API.

    Only the raw text leaves this class; parsing happens downstream.
    """

    def __init__(self, client: vision.ImageAnnotatorClient | None = None) -> None:
        """
        Initialize the OCR Engine.

        Args:
            client: Optional pre-configured ImageAnnotatorClient.
                   If None, a default client will be created lazily on first use.
        """
        self._client = client
        self._client_initialized = client is not None
        self._client_lock = threading.Lock()

    @property
    def client(self) -> vision.ImageAnnotatorClient:
        """Lazily initialize and return the Vision API client.

        Uses double-check locking so concurrent executor threads share one
        client.
        """
        if not self._client_initialized:
            with self._client_lock:
                if not self._client_initialized:
                    self._client = vision.ImageAnnotatorClient()
                    self._client_initialized = True
        return self._client  # type: ignore[return-value]

    def extract_text(self, image_path: str | Path) -> str:
        """
        Extract text from an image file.

        Args:
            image_path: Path to the image file to process.

        Returns:
            Extracted text. Returns empty string if no text is found.

        Raises:
            FileNotFoundError: If the image file does not exist.
            OCRError: If the Vision API reports an error for the image.
            google.api_core.exceptions.GoogleAPIError: If the API call fails.
        """
        path = Path(image_path)
        if not path.exists() or not path.is_file():
            raise FileNotFoundError(f"Image file not found: {image_path}")

        with path.open("rb") as image_file:
            content = image_file.read()

        return self.extract_text_from_bytes(content)

    @retry(
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, max=4),
        reraise=True,
    )
    def extract_text_from_bytes(self, content: bytes) -> str:
        """
        Extract text from raw image bytes.

        Transient API errors are retried up to three attempts.

        Raises:
            ValueError: If ``content`` is empty.
            OCRError: If the Vision API reports an error for the image.
        """
        if not content:
            raise ValueError("Image content is empty")

        # vision.Image content expects bytes,
        # but type hints sometimes incorrectly expect a dict
        image = vision.Image(content=content)  # type: ignore

        # text_detection is a dynamic method added at runtime
        response = self.client.text_detection(image=image)  # type: ignore

        if response.error.message:
            raise OCRError(f"Vision API error: {response.error.message}")

        if response.text_annotations:
            # The first annotation contains the entire detected text
            return response.text_annotations[0].description

        return ""
