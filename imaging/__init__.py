"""
Image handling for uploaded screenshots.

Usage:
    from imaging import load_bitmap, preprocess, CropRegion

    bitmap = load_bitmap(file_bytes)
    binary = preprocess(bitmap, CropRegion(0.25, 0.0, 0.5, 0.18), threshold=135)
"""

from .loader import RawImage, load_bitmap, encode_png, downscale_for_upload
from .preprocess import (
    CropRegion,
    FULL_FRAME,
    preprocess,
    preprocess_for_match_id,
    scaled_size,
)

__all__ = [
    'RawImage',
    'load_bitmap',
    'encode_png',
    'downscale_for_upload',
    'CropRegion',
    'FULL_FRAME',
    'preprocess',
    'preprocess_for_match_id',
    'scaled_size',
]
