"""
Highlighted player row localization.

The results table marks the submitting player's row in green. The row is
found by HSV thresholding, morphological cleanup and connected components,
then expanded into a full-width horizontal slice for stat-line OCR.

Speed: ~5-15 ms per 1280px frame on CPU
"""

import math
from dataclasses import dataclass
from typing import Optional, Tuple

import cv2
import numpy as np

from config import RowLocatorConfig
from imaging.loader import RawImage
from logger import get_logger
from .buffers import BufferScope

logger = get_logger("localizer")


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned rectangle in source-image pixel coordinates."""
    x: int
    y: int
    width: int
    height: int

    def within(self, image_width: int, image_height: int) -> bool:
        return (
            self.x >= 0 and self.y >= 0
            and self.width > 0 and self.height > 0
            and self.x + self.width <= image_width
            and self.y + self.height <= image_height
        )

    def as_dict(self) -> dict:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass(frozen=True)
class RowComponent:
    """Connected component that won the row scoring."""
    x: int
    y: int
    w: int
    h: int
    area: int
    score: float


@dataclass(frozen=True)
class RowMatch:
    box: BoundingBox
    component: RowComponent


@dataclass(frozen=True)
class RowLocatorParams:
    """
    Segmentation and scoring constants.

    Defaults come from RowLocatorConfig, which holds the values tuned
    against real results screens.
    """
    hsv_lower: Tuple[int, int, int] = RowLocatorConfig.GREEN_HSV_LOWER
    hsv_upper: Tuple[int, int, int] = RowLocatorConfig.GREEN_HSV_UPPER
    kernel_size: int = RowLocatorConfig.MORPH_KERNEL
    band_top: float = RowLocatorConfig.BAND_TOP
    band_bottom: float = RowLocatorConfig.BAND_BOTTOM
    max_x_fraction: float = RowLocatorConfig.MAX_X_FRACTION
    min_area: int = RowLocatorConfig.MIN_AREA
    min_height: int = RowLocatorConfig.MIN_HEIGHT
    max_height: int = RowLocatorConfig.MAX_HEIGHT
    min_aspect: float = RowLocatorConfig.MIN_ASPECT
    max_aspect: float = RowLocatorConfig.MAX_ASPECT
    area_weight: float = RowLocatorConfig.AREA_WEIGHT
    width_weight: float = RowLocatorConfig.WIDTH_WEIGHT
    y_penalty: float = RowLocatorConfig.Y_PENALTY
    row_center: float = RowLocatorConfig.ROW_CENTER
    crop_multiplier: float = RowLocatorConfig.CROP_MULTIPLIER
    crop_min: int = RowLocatorConfig.CROP_MIN
    crop_max: int = RowLocatorConfig.CROP_MAX
    crop_above_bias: float = RowLocatorConfig.CROP_ABOVE_BIAS


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def green_mask(rgba: np.ndarray, params: RowLocatorParams, scope: BufferScope) -> np.ndarray:
    """Binary mask of highlight-green pixels, opened then dilated."""
    rgb = scope.track(cv2.cvtColor(rgba, cv2.COLOR_RGBA2RGB))
    hsv = scope.track(cv2.cvtColor(rgb, cv2.COLOR_RGB2HSV))
    lower = scope.track(np.array(params.hsv_lower, dtype=np.uint8))
    upper = scope.track(np.array(params.hsv_upper, dtype=np.uint8))
    mask = scope.track(cv2.inRange(hsv, lower, upper))

    kernel = scope.track(cv2.getStructuringElement(
        cv2.MORPH_RECT, (params.kernel_size, params.kernel_size)
    ))
    opened = scope.track(cv2.morphologyEx(mask, cv2.MORPH_OPEN, kernel))
    return scope.track(cv2.dilate(opened, kernel))


def score_components(
    stats: np.ndarray,
    count: int,
    width: int,
    height: int,
    params: RowLocatorParams
) -> Optional[RowComponent]:
    """
    Filter connected components and return the best scoring one.

    Label 0 is the background and is skipped. Ties keep the earliest label.
    """
    y_min = math.floor(height * params.band_top)
    y_max = math.floor(height * params.band_bottom)
    x_max = width * params.max_x_fraction
    target_y = height * params.row_center

    best = None
    for label in range(1, count):
        x = int(stats[label, cv2.CC_STAT_LEFT])
        y = int(stats[label, cv2.CC_STAT_TOP])
        w = int(stats[label, cv2.CC_STAT_WIDTH])
        h = int(stats[label, cv2.CC_STAT_HEIGHT])
        area = int(stats[label, cv2.CC_STAT_AREA])

        if y < y_min or y > y_max:
            continue
        if x > x_max:
            continue
        if area < params.min_area:
            continue
        if h < params.min_height or h > params.max_height:
            continue
        aspect = w / h
        if aspect < params.min_aspect or aspect > params.max_aspect:
            continue

        score = (
            area * params.area_weight
            + w * params.width_weight
            - abs(y - target_y) * params.y_penalty
        )
        if best is None or score > best.score:
            best = RowComponent(x=x, y=y, w=w, h=h, area=area, score=score)

    return best


def expand_to_row(
    component: RowComponent,
    width: int,
    height: int,
    params: RowLocatorParams
) -> BoundingBox:
    """Full-width slice around the component, clamped to the frame."""
    row_h = _clamp(
        _round_half_up(component.h * params.crop_multiplier),
        params.crop_min,
        params.crop_max,
    )
    row_h = min(row_h, height)
    row_y = _clamp(
        _round_half_up(component.y - row_h * params.crop_above_bias),
        0,
        height - row_h,
    )
    return BoundingBox(x=0, y=row_y, width=width, height=row_h)


def find_highlighted_row(
    image: RawImage,
    params: Optional[RowLocatorParams] = None,
    scope: Optional[BufferScope] = None
) -> Optional[RowMatch]:
    """
    Locate the highlighted row and the component it was grown from.

    Args:
        image: Full results-screen frame
        params: Segmentation constants (defaults: tuned config)
        scope: Buffer scope to use; a private one is created if omitted

    Returns:
        RowMatch, or None when no component survives filtering
    """
    params = params or RowLocatorParams()
    scope = scope if scope is not None else BufferScope()

    with scope:
        mask = green_mask(image.pixels, params, scope)
        count, labels, stats, centroids = cv2.connectedComponentsWithStats(
            mask, connectivity=8, ltype=cv2.CV_32S
        )
        scope.track(labels)
        scope.track(stats)
        scope.track(centroids)

        component = score_components(stats, count, image.width, image.height, params)
        # The scope keeps the only references from here on
        del mask, labels, stats, centroids
        if component is None:
            logger.debug(f"No row candidate among {count - 1} components")
            return None

        box = expand_to_row(component, image.width, image.height, params)
        logger.debug(f"Row candidate {component} -> {box}")
        return RowMatch(box=box, component=component)


def locate_row(
    image: RawImage,
    params: Optional[RowLocatorParams] = None,
    scope: Optional[BufferScope] = None
) -> Optional[BoundingBox]:
    """Bounding box of the highlighted player row, or None."""
    match = find_highlighted_row(image, params, scope)
    return match.box if match else None
