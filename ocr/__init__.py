"""
OCR Engine Module for results-screen text.

Supports:
- Tesseract: local, whitelist-driven, default for banners and match ids
- EasyOCR: local deep-learning fallback
- OCR.space: hosted engine for the stat line, behind the request cache

Usage:
    from ocr import create_ocr_engine

    engine = create_ocr_engine('tesseract', lang='eng+rus')
    text = engine.recognize_text(binary_image, whitelist="ABCDEFGHIJKLMNOPQRSTUVWXYZ")
"""

from .base import OCREngine, OCRParameters, OCRResult
from .easyocr_engine import EasyOCREngine
from .factory import create_best_available_engine, create_ocr_engine, get_available_engines
from .ocr_space import OCRSpaceEngine
from .tesseract_engine import TesseractEngine

__all__ = [
    'OCREngine',
    'OCRParameters',
    'OCRResult',
    'TesseractEngine',
    'EasyOCREngine',
    'OCRSpaceEngine',
    'create_ocr_engine',
    'create_best_available_engine',
    'get_available_engines',
]
