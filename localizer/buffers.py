"""
Lifetime tracking for intermediate CV buffers.

The row localizer registers every matrix it allocates with a BufferScope and
the scope drops them all on exit, whichever way the block is left. Callers
must not keep their own references past the scope, so that the scope holds
the last one and release() actually frees the memory.
"""

from typing import List, Optional
import numpy as np


class BufferScope:
    """Context manager that owns intermediate numpy buffers."""

    def __init__(self):
        self._live: List[Optional[np.ndarray]] = []
        self.allocated = 0
        self.released = 0

    def track(self, buffer: np.ndarray) -> np.ndarray:
        self._live.append(buffer)
        self.allocated += 1
        return buffer

    @property
    def live(self) -> int:
        return len(self._live)

    def release(self) -> None:
        """Drop every tracked reference; the counters record how many."""
        while self._live:
            self._live.pop()
            self.released += 1

    def __enter__(self) -> "BufferScope":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.release()
        return False
