"""
OCR Engine Factory - Creates and initializes OCR engines by name.
"""

from typing import Optional

from logger import get_logger
from .base import OCREngine
from .easyocr_engine import EasyOCREngine
from .ocr_space import OCRSpaceEngine
from .tesseract_engine import TesseractEngine

logger = get_logger("ocr.factory")


ENGINE_REGISTRY = {
    'tesseract': TesseractEngine,
    'easyocr': EasyOCREngine,
    'ocr_space': OCRSpaceEngine,
}


def create_ocr_engine(engine_type: str = 'tesseract', **kwargs) -> Optional[OCREngine]:
    """
    Create and initialize an OCR engine by type.

    Args:
        engine_type: 'tesseract', 'easyocr' or 'ocr_space'
        **kwargs: Passed to the engine constructor

    Returns:
        Initialized OCREngine, or None if unknown or initialization failed

    Examples:
        engine = create_ocr_engine('tesseract', lang='eng+rus')
        remote = create_ocr_engine('ocr_space', api_key='...', cache=cache)
    """
    if engine_type not in ENGINE_REGISTRY:
        logger.error(f"Unknown OCR engine: {engine_type}. Available: {get_available_engines()}")
        return None

    engine = ENGINE_REGISTRY[engine_type](**kwargs)
    if not engine.initialize():
        logger.warning(f"Failed to initialize {engine_type}")
        return None
    return engine


def create_best_available_engine(preferred: str = 'tesseract', **kwargs) -> Optional[OCREngine]:
    """
    Create the preferred local engine, falling back to the other one.

    Args:
        preferred: 'tesseract' or 'easyocr'
        **kwargs: Passed to the preferred engine only

    Returns:
        Initialized OCREngine, or None if no local engine works
    """
    engine = create_ocr_engine(preferred, **kwargs)
    if engine is not None:
        return engine

    fallback = 'easyocr' if preferred == 'tesseract' else 'tesseract'
    logger.info(f"Falling back to {fallback} OCR engine")
    return create_ocr_engine(fallback)


def get_available_engines():
    """Get list of known OCR engines."""
    return list(ENGINE_REGISTRY.keys())
