"""
Bitmap loading for uploaded screenshots.

Decodes arbitrary image bytes into an RGBA pixel buffer. OpenCV's in-memory
decoder is tried first; Pillow reading a temporary file is the fallback.
"""

import os
import tempfile
from dataclasses import dataclass

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError

from logger import get_logger
from recognition.errors import DecodeError

logger = get_logger("imaging.loader")


@dataclass(frozen=True, eq=False)
class RawImage:
    """
    Immutable RGBA bitmap.

    pixels: np.ndarray with shape (height, width, 4), dtype uint8, read-only
    """
    width: int
    height: int
    pixels: np.ndarray

    def __post_init__(self):
        if self.pixels.shape != (self.height, self.width, 4):
            raise ValueError(
                f"Pixel buffer shape {self.pixels.shape} does not match "
                f"{self.width}x{self.height} RGBA"
            )
        if self.pixels.flags.writeable:
            frozen = np.ascontiguousarray(self.pixels, dtype=np.uint8).copy()
            frozen.setflags(write=False)
            object.__setattr__(self, "pixels", frozen)

    @classmethod
    def from_rgba(cls, rgba: np.ndarray) -> "RawImage":
        h, w = rgba.shape[:2]
        return cls(width=w, height=h, pixels=rgba)

    @classmethod
    def from_bgr(cls, image: np.ndarray) -> "RawImage":
        """Wrap an OpenCV image (BGR, BGRA or grayscale)."""
        if image.ndim == 2:
            rgba = cv2.cvtColor(image, cv2.COLOR_GRAY2RGBA)
        elif image.shape[2] == 4:
            rgba = cv2.cvtColor(image, cv2.COLOR_BGRA2RGBA)
        else:
            rgba = cv2.cvtColor(image, cv2.COLOR_BGR2RGBA)
        return cls.from_rgba(rgba)

    @classmethod
    def from_bytes(cls, width: int, height: int, data: bytes) -> "RawImage":
        """Rebuild from raw RGBA bytes (worker message payload)."""
        pixels = np.frombuffer(data, dtype=np.uint8).reshape(height, width, 4)
        return cls(width=width, height=height, pixels=pixels)

    def tobytes(self) -> bytes:
        return self.pixels.tobytes()

    def to_bgr(self) -> np.ndarray:
        return cv2.cvtColor(self.pixels, cv2.COLOR_RGBA2BGR)

    def region(self, x: int, y: int, width: int, height: int) -> "RawImage":
        """Copy of a pixel rectangle, clipped to the image."""
        x0 = max(0, min(x, self.width - 1))
        y0 = max(0, min(y, self.height - 1))
        x1 = max(x0 + 1, min(x + width, self.width))
        y1 = max(y0 + 1, min(y + height, self.height))
        return RawImage.from_rgba(self.pixels[y0:y1, x0:x1].copy())


def _decode_native(file_bytes: bytes) -> RawImage:
    buffer = np.frombuffer(file_bytes, dtype=np.uint8)
    image = cv2.imdecode(buffer, cv2.IMREAD_UNCHANGED)
    if image is None:
        raise DecodeError("OpenCV could not decode image")
    if image.dtype != np.uint8:
        image = cv2.convertScaleAbs(image, alpha=255.0 / max(1, int(image.max())))
    return RawImage.from_bgr(image)


def _decode_via_tempfile(file_bytes: bytes) -> RawImage:
    fd, path = tempfile.mkstemp(prefix="matchscan_", suffix=".img")
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(file_bytes)
        with Image.open(path) as img:
            rgba = np.array(img.convert("RGBA"), dtype=np.uint8)
        return RawImage.from_rgba(rgba)
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise DecodeError(f"Image decode failed: {e}") from e
    finally:
        try:
            os.unlink(path)
        except OSError as e:
            logger.warning(f"Could not remove temporary decode file {path}: {e}")


def load_bitmap(file_bytes: bytes) -> RawImage:
    """
    Decode image bytes into an RGBA RawImage.

    Args:
        file_bytes: Encoded image (PNG, JPEG, WebP, BMP, ...)

    Returns:
        RawImage

    Raises:
        DecodeError: if neither decoder can read the bytes
    """
    if not file_bytes:
        raise DecodeError("Empty image payload")

    try:
        return _decode_native(file_bytes)
    except (DecodeError, cv2.error) as e:
        logger.debug(f"Native decode failed, falling back to Pillow: {e}")

    return _decode_via_tempfile(file_bytes)


def encode_png(image: RawImage) -> bytes:
    """Encode a RawImage as PNG bytes."""
    ok, encoded = cv2.imencode(".png", cv2.cvtColor(image.pixels, cv2.COLOR_RGBA2BGRA))
    if not ok:
        raise DecodeError("PNG encode failed")
    return encoded.tobytes()


def downscale_for_upload(image: RawImage, max_side: int = 1280) -> RawImage:
    """Shrink so the longest side is at most max_side; smaller images pass through."""
    longest = max(image.width, image.height)
    if longest <= max_side:
        return image
    scale = max_side / longest
    size = (max(1, round(image.width * scale)), max(1, round(image.height * scale)))
    resized = cv2.resize(image.pixels, size, interpolation=cv2.INTER_AREA)
    return RawImage.from_rgba(resized)
