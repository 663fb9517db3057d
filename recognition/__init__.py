"""
Match result recognition: data model, errors, parsers and cancellation.

The orchestrator and the attempt search live in submodules so that the
imaging and OCR packages can import the error types without a cycle:

    from recognition.orchestrator import RecognitionOrchestrator
"""

from .cancellation import CancelToken, check
from .errors import (
    Aborted,
    CvInitTimeout,
    DecodeError,
    InvalidTransition,
    RecognitionError,
    UpstreamError,
    UpstreamOther,
    UpstreamRateLimited,
    UpstreamServerError,
    WorkerError,
    WorkerTimeout,
)
from .models import (
    DEFEAT,
    VICTORY,
    BatchItem,
    BatchStatus,
    ManualDecision,
    MatchObservation,
    StatLine,
)
from .parsers import extract_match_id, parse_match_result, parse_stat_line

__all__ = [
    'CancelToken',
    'check',
    'Aborted',
    'CvInitTimeout',
    'DecodeError',
    'InvalidTransition',
    'RecognitionError',
    'UpstreamError',
    'UpstreamOther',
    'UpstreamRateLimited',
    'UpstreamServerError',
    'WorkerError',
    'WorkerTimeout',
    'DEFEAT',
    'VICTORY',
    'BatchItem',
    'BatchStatus',
    'ManualDecision',
    'MatchObservation',
    'StatLine',
    'extract_match_id',
    'parse_match_result',
    'parse_stat_line',
]
