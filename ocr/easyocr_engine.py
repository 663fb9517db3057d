"""
EasyOCR Engine - deep-learning OCR, no system binary required.

Slower to start than Tesseract (model download on first run) but copes
better with low-contrast banners.
"""

import numpy as np
import cv2
from typing import List

from logger import get_logger
from .base import OCREngine, OCRResult

logger = get_logger("ocr.easyocr")


class EasyOCREngine(OCREngine):
    """
    EasyOCR-based text recognition.

    The character whitelist maps to EasyOCR's allowlist. Lines are
    returned top to bottom, joined with newlines.
    """

    def __init__(self, gpu: bool = False, languages: List[str] = None):
        """
        Initialize EasyOCR engine.

        Args:
            gpu: Whether to use GPU acceleration
            languages: List of language codes (default: ['en'])
        """
        super().__init__(name="easyocr")
        self.gpu = gpu
        self.languages = languages or ['en']
        self.reader = None

    def initialize(self) -> bool:
        """Initialize EasyOCR reader."""
        try:
            import easyocr
            self.reader = easyocr.Reader(
                self.languages,
                gpu=self.gpu,
                verbose=False
            )
            self._initialized = True
            return True
        except ImportError:
            logger.error("EasyOCR not installed. Install with: pip install easyocr")
            return False
        except (RuntimeError, OSError, ValueError) as e:
            logger.error(f"EasyOCR initialization failed: {e}")
            return False

    def recognize(self, image: np.ndarray) -> OCRResult:
        if not self._initialized or self.reader is None:
            return OCRResult(engine=self.name)

        if image is None or image.size == 0:
            return OCRResult(engine=self.name)

        # EasyOCR expects RGB
        if len(image.shape) == 2:
            rgb_image = cv2.cvtColor(image, cv2.COLOR_GRAY2RGB)
        else:
            rgb_image = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)

        try:
            detections = self.reader.readtext(
                rgb_image,
                detail=1,
                paragraph=False,
                allowlist=self.parameters.character_whitelist or None,
            )
        except (RuntimeError, ValueError) as e:
            logger.warning(f"EasyOCR recognition error: {e}")
            return OCRResult(engine=self.name)

        lines = []
        confidences = []
        # Sort by top edge so multi-line stat blocks keep their order
        for bbox, text, conf in sorted(detections, key=lambda d: min(p[1] for p in d[0])):
            lines.append(text)
            confidences.append(float(conf))

        return OCRResult(
            text="\n".join(lines),
            confidence=sum(confidences) / len(confidences) if confidences else 0.0,
            engine=self.name
        )
