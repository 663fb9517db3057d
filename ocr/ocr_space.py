"""
OCR.space remote engine.

Used for the stat-line pass, where the hosted engine reads small digits on
coloured rows better than local Tesseract. Every call goes through the
request deduplication cache, keyed by image digest and language, so retries
of the same upload never hit the API twice and upstream failures cool down.
"""

import base64
import hashlib
from typing import Optional

import cv2
import numpy as np
import requests

from config import RemoteOCRConfig
from logger import get_logger
from netcache import RequestDeduplicationCache
from recognition.errors import UpstreamError, UpstreamOther, upstream_error_for_status
from .base import OCREngine, OCRResult

logger = get_logger("ocr.ocr_space")


def extract_parsed_text(payload: dict) -> str:
    """Text from an OCR.space response, falling back to overlay lines."""
    results = payload.get("ParsedResults") or []
    if not results:
        return ""
    first = results[0] or {}
    text = first.get("ParsedText") or ""
    if text.strip():
        return text
    lines = (first.get("TextOverlay") or {}).get("Lines") or []
    return "\n".join(line.get("LineText", "") for line in lines if line)


class OCRSpaceEngine(OCREngine):
    """
    Client for the OCR.space parse/image endpoint.

    Character whitelists are not supported by the service and are ignored.
    """

    def __init__(
        self,
        api_key: str = RemoteOCRConfig.API_KEY,
        language: str = RemoteOCRConfig.LANGUAGE,
        endpoint: str = RemoteOCRConfig.ENDPOINT,
        timeout: float = RemoteOCRConfig.TIMEOUT,
        cache: Optional[RequestDeduplicationCache] = None,
        session: Optional[requests.Session] = None,
        cache_ttl_ms: float = RemoteOCRConfig.CACHE_TTL_MS
    ):
        super().__init__(name="ocr_space")
        self.api_key = api_key
        self.language = language
        self.endpoint = endpoint
        self.timeout = timeout
        self.cache = cache or RequestDeduplicationCache()
        self.session = session or requests.Session()
        self.cache_ttl_ms = cache_ttl_ms

    def initialize(self) -> bool:
        if not self.api_key:
            logger.warning("OCR_SPACE_API_KEY not configured, remote OCR disabled")
            return False
        self._initialized = True
        return True

    def _post(self, base64_image: str, language: str) -> dict:
        form = {
            "apikey": self.api_key,
            "language": language,
            "OCREngine": "2",
            "scale": "true",
            "isOverlayRequired": "false",
            "base64Image": base64_image,
        }
        try:
            response = self.session.post(self.endpoint, data=form, timeout=self.timeout)
        except requests.RequestException as e:
            raise UpstreamOther(f"OCR.space unreachable: {e}") from e

        if response.status_code != 200:
            raise upstream_error_for_status(
                response.status_code, f"OCR.space HTTP {response.status_code}"
            )
        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamOther("OCR.space returned invalid JSON") from e
        if payload.get("IsErroredOnProcessing"):
            message = payload.get("ErrorMessage") or "processing error"
            raise UpstreamOther(f"OCR.space failed: {message}")
        return payload

    def fetch_text(self, png_bytes: bytes) -> str:
        """
        OCR a PNG through the cache.

        Russian requests that fail or come back empty are retried in English.

        Raises:
            UpstreamError subclasses on failure (possibly replayed from cache)
        """
        digest = hashlib.sha1(png_bytes).hexdigest()
        base64_image = "data:image/png;base64," + base64.b64encode(png_bytes).decode("ascii")

        def produce() -> str:
            try:
                text = extract_parsed_text(self._post(base64_image, self.language))
            except UpstreamError:
                if self.language != "rus":
                    raise
                text = ""
            if not text.strip() and self.language == "rus":
                logger.debug("Empty Russian OCR result, retrying in English")
                text = extract_parsed_text(self._post(base64_image, "eng"))
            return text

        return self.cache.request(("ocr.space", digest, self.language), produce, self.cache_ttl_ms)

    def recognize(self, image: np.ndarray) -> OCRResult:
        if not self._initialized:
            return OCRResult(engine=self.name)
        if image is None or image.size == 0:
            return OCRResult(engine=self.name)

        ok, encoded = cv2.imencode(".png", image)
        if not ok:
            return OCRResult(engine=self.name)

        try:
            text = self.fetch_text(encoded.tobytes())
        except UpstreamError as e:
            logger.warning(f"Remote OCR failed: {e}")
            return OCRResult(engine=self.name)

        return OCRResult(text=text.strip(), engine=self.name)
