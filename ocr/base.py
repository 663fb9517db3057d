"""
Base OCR Engine - Abstract class for all OCR implementations.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional
import numpy as np


@dataclass
class OCRResult:
    """Result from OCR recognition."""
    text: str = ""  # Recognized text, may span several lines
    confidence: float = 0.0  # Recognition confidence (0-1), 0 when unknown
    engine: str = ""  # Which engine produced this result

    @property
    def is_empty(self) -> bool:
        return not self.text.strip()

    def __repr__(self):
        preview = self.text.replace("\n", "\\n")[:40]
        return f"OCRResult(text='{preview}', conf={self.confidence:.3f}, engine='{self.engine}')"


@dataclass(frozen=True)
class OCRParameters:
    """Per-call engine configuration."""
    character_whitelist: str = ""
    preserve_interword_spaces: bool = True


class OCREngine(ABC):
    """
    Abstract base class for OCR engines.

    The engine instance is single-consumer: parameters set with
    set_parameters() apply to the next recognize() call only.
    """

    def __init__(self, name: str = "base"):
        self.name = name
        self._initialized = False
        self._parameters = OCRParameters()

    @abstractmethod
    def initialize(self) -> bool:
        """
        Initialize the OCR engine.

        Returns:
            True if initialization successful, False otherwise.
        """
        pass

    @abstractmethod
    def recognize(self, image: np.ndarray) -> OCRResult:
        """
        Recognize text in an image using the current parameters.

        Args:
            image: Binarized or BGR numpy array

        Returns:
            OCRResult with the recognized text
        """
        pass

    def set_parameters(
        self,
        character_whitelist: str = "",
        preserve_interword_spaces: bool = True
    ) -> None:
        """Configure the character set and spacing for the next call."""
        self._parameters = OCRParameters(
            character_whitelist=character_whitelist,
            preserve_interword_spaces=preserve_interword_spaces,
        )

    @property
    def parameters(self) -> OCRParameters:
        return self._parameters

    def recognize_text(self, image: np.ndarray, whitelist: Optional[str] = None) -> str:
        """
        Configure the whitelist and recognize in one step.

        Args:
            image: Image to read
            whitelist: Allowed characters, None for no restriction

        Returns:
            Recognized text ("" when nothing was read)
        """
        self.set_parameters(character_whitelist=whitelist or "")
        return self.recognize(image).text or ""

    @property
    def is_initialized(self) -> bool:
        """Check if engine is initialized."""
        return self._initialized

    def __repr__(self):
        status = "initialized" if self._initialized else "not initialized"
        return f"{self.__class__.__name__}(name='{self.name}', status={status})"
