"""
Highlighted player row localization.

Usage:
    from localizer import RowLocatorWorker

    with RowLocatorWorker() as worker:
        row = worker.locate(bitmap)   # RowCrop or None
"""

from .buffers import BufferScope
from .row_locator import (
    BoundingBox,
    RowComponent,
    RowLocatorParams,
    RowMatch,
    find_highlighted_row,
    locate_row,
)
from .worker import RowCrop, RowLocatorWorker

__all__ = [
    'BufferScope',
    'BoundingBox',
    'RowComponent',
    'RowLocatorParams',
    'RowMatch',
    'find_highlighted_row',
    'locate_row',
    'RowCrop',
    'RowLocatorWorker',
]
