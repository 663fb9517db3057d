"""
Error taxonomy for the recognition pipeline.

CV and OCR failures are recovered inside the orchestrator; DecodeError ends a
single batch item; Aborted always propagates.
"""

from typing import Optional


class RecognitionError(Exception):
    """Base class for recoverable and per-item pipeline failures."""


class DecodeError(RecognitionError):
    """Image bytes could not be decoded by any available path."""


class WorkerError(RecognitionError):
    """Row localizer worker crashed or answered with an error."""


class WorkerTimeout(WorkerError):
    """Row localizer worker did not answer within the response bound."""


class CvInitTimeout(WorkerTimeout):
    """Row localizer worker did not become ready within the init bound."""


class InvalidTransition(RecognitionError):
    """A batch item was asked to move to a state it cannot reach."""


class Aborted(Exception):
    """
    Cancellation signal observed.

    Not a RecognitionError on purpose: handlers that recover pipeline
    failures must never catch it.
    """

    def __init__(self, stage: str = ""):
        self.stage = stage
        super().__init__(f"Aborted{f' during {stage}' if stage else ''}")


class UpstreamError(Exception):
    """Failure of a network producer guarded by the request cache."""

    def __init__(self, message: str = "", status: Optional[int] = None):
        super().__init__(message or f"Upstream request failed (status={status})")
        self.status = status


class UpstreamRateLimited(UpstreamError):
    """HTTP 429-class failure."""


class UpstreamServerError(UpstreamError):
    """HTTP 5xx-class failure."""


class UpstreamOther(UpstreamError):
    """Any other upstream failure (4xx, transport, malformed payload)."""


def upstream_error_for_status(status: int, message: str = "") -> UpstreamError:
    """Map an HTTP status code to the matching upstream error class."""
    if status == 429:
        return UpstreamRateLimited(message, status=status)
    if status >= 500:
        return UpstreamServerError(message, status=status)
    return UpstreamOther(message, status=status)
