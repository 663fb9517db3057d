"""
Crop/threshold search for the result banner.

The search space and the stopping rule are kept apart: iter_attempts()
enumerates candidates, first_success() consumes them until one parses.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Iterator, List, Optional, Sequence, Tuple

from imaging.preprocess import CropRegion
from .cancellation import CancelToken, check


@dataclass(frozen=True)
class RecognitionAttempt:
    """One OCR pass over one crop at one threshold."""
    region: CropRegion
    threshold: int
    text: str = ""
    parsed: Optional[Any] = None

    @property
    def succeeded(self) -> bool:
        return self.parsed is not None


@dataclass
class SearchOutcome:
    """Attempts made, in order, and the one that parsed (if any)."""
    attempts: List[RecognitionAttempt] = field(default_factory=list)
    winner: Optional[RecognitionAttempt] = None

    @property
    def parsed(self) -> Optional[Any]:
        return self.winner.parsed if self.winner else None


def iter_attempts(
    regions: Sequence[CropRegion],
    thresholds: Sequence[int]
) -> Iterator[Tuple[CropRegion, int]]:
    """(region, threshold) pairs, regions outer and thresholds inner."""
    for region in regions:
        for threshold in thresholds:
            yield region, threshold


def first_success(
    candidates: Iterable[Tuple[CropRegion, int]],
    run: Callable[[CropRegion, int], RecognitionAttempt],
    cancel: Optional[CancelToken] = None
) -> SearchOutcome:
    """
    Run candidates in order until one parses.

    Args:
        candidates: (region, threshold) pairs, usually from iter_attempts()
        run: Performs one attempt
        cancel: Checked before every attempt

    Raises:
        Aborted: cancel was raised
    """
    outcome = SearchOutcome()
    for region, threshold in candidates:
        check(cancel, "result detection")
        attempt = run(region, threshold)
        outcome.attempts.append(attempt)
        if attempt.succeeded:
            outcome.winner = attempt
            break
    return outcome
