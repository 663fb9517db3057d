"""
Region preprocessing for OCR.

Crop to a fractional region, upscale, convert to luminance and binarize.
Every function here is a pure function of its inputs.
"""

import math
from dataclasses import dataclass
from typing import Tuple

import cv2
import numpy as np

from config import OCRConfig
from .loader import RawImage

# 0.3R + 0.59G + 0.11B
LUMA_WEIGHTS = np.array([0.3, 0.59, 0.11], dtype=np.float32)


@dataclass(frozen=True)
class CropRegion:
    """Sub-region of a frame as fractions of its width and height."""
    x: float
    y: float
    w: float
    h: float

    @classmethod
    def from_tuple(cls, values: Tuple[float, float, float, float]) -> "CropRegion":
        return cls(*values)

    def to_pixels(self, width: int, height: int) -> Tuple[int, int, int, int]:
        """
        Pixel rectangle (x, y, w, h) for a frame of the given size.

        Offsets and sizes are floored, sizes are at least one pixel, and the
        rectangle is clipped to the frame.
        """
        x0 = min(max(0, math.floor(width * self.x)), width - 1)
        y0 = min(max(0, math.floor(height * self.y)), height - 1)
        w = max(1, min(math.floor(width * self.w), width - x0))
        h = max(1, min(math.floor(height * self.h), height - y0))
        return x0, y0, w, h


FULL_FRAME = CropRegion(0.0, 0.0, 1.0, 1.0)


def scaled_size(length: int, factor: float) -> int:
    """round(length * factor), half away from zero, at least 1."""
    return max(1, int(math.floor(length * factor + 0.5)))


def crop(bitmap: RawImage, region: CropRegion) -> np.ndarray:
    """RGBA pixels of the region."""
    x, y, w, h = region.to_pixels(bitmap.width, bitmap.height)
    return np.ascontiguousarray(bitmap.pixels[y:y + h, x:x + w])


def upscale(pixels: np.ndarray, factor: float) -> np.ndarray:
    h, w = pixels.shape[:2]
    size = (scaled_size(w, factor), scaled_size(h, factor))
    return cv2.resize(pixels, size, interpolation=cv2.INTER_LINEAR)


def luminance(pixels: np.ndarray) -> np.ndarray:
    """Float32 luminance plane of RGB(A) pixels."""
    return pixels[..., :3].astype(np.float32) @ LUMA_WEIGHTS


def binarize(gray: np.ndarray, threshold: int) -> np.ndarray:
    """Pure black/white uint8 image: 255 where gray > threshold."""
    return np.where(gray > threshold, 255, 0).astype(np.uint8)


def preprocess(
    bitmap: RawImage,
    region: CropRegion,
    threshold: int,
    scale: float = OCRConfig.RESULT_UPSCALE
) -> np.ndarray:
    """
    Crop, upscale and binarize one OCR candidate.

    Args:
        bitmap: Source frame
        region: Fractional crop
        threshold: Binarization threshold (0-255)
        scale: Upscale factor (2.0 result text, 2.4 match identifier)

    Returns:
        Single-channel uint8 image of size
        (round(crop_h * scale), round(crop_w * scale)) holding only 0 and 255
    """
    if not 0 <= threshold <= 255:
        raise ValueError(f"Threshold out of range: {threshold}")
    cropped = crop(bitmap, region)
    enlarged = upscale(cropped, scale)
    return binarize(luminance(enlarged), threshold)


def preprocess_for_match_id(bitmap: RawImage) -> np.ndarray:
    """Top band of the frame where the match identifier is printed."""
    region = CropRegion(0.0, 0.0, 1.0, OCRConfig.MATCH_ID_HEIGHT)
    return preprocess(
        bitmap,
        region,
        OCRConfig.MATCH_ID_THRESHOLD,
        scale=OCRConfig.MATCH_ID_UPSCALE,
    )
