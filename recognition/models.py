"""
Data types shared by the parser and the orchestrator.
"""

import time
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional

VICTORY = "victory"
DEFEAT = "defeat"
MATCH_RESULTS = (VICTORY, DEFEAT)


class BatchStatus(Enum):
    """Batch item state; see RecognitionOrchestrator for transitions."""
    QUEUED = "queued"
    RUNNING = "running"
    NEEDS_MANUAL_RESULT = "needsManualResult"
    DONE = "done"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (BatchStatus.DONE, BatchStatus.ERROR)


class ManualDecision(Enum):
    """User answer to a manual-resolution prompt."""
    VICTORY = "victory"
    DEFEAT = "defeat"
    SKIP = "skip"

    @property
    def result(self) -> Optional[str]:
        return None if self is ManualDecision.SKIP else self.value


@dataclass(frozen=True)
class StatLine:
    """Fully parsed stat row of one player."""
    owner_uid: str
    name: str
    score: int
    kills: int
    deaths: int
    assists: int
    damage: int
    damage_share: float
    created_at: int = field(default_factory=lambda: int(time.time() * 1000))


@dataclass(frozen=True)
class MatchObservation:
    """
    Parsed outcome of one screenshot.

    Numeric fields are either all set (a StatLine parsed) or all None.
    """
    match_id: Optional[str] = None
    result: Optional[str] = None
    score: Optional[int] = None
    kills: Optional[int] = None
    deaths: Optional[int] = None
    assists: Optional[int] = None
    damage: Optional[int] = None
    damage_share: Optional[float] = None

    @classmethod
    def build(
        cls,
        match_id: Optional[str],
        result: Optional[str],
        stats: Optional[StatLine]
    ) -> "MatchObservation":
        if stats is None:
            return cls(match_id=match_id, result=result)
        return cls(
            match_id=match_id,
            result=result,
            score=stats.score,
            kills=stats.kills,
            deaths=stats.deaths,
            assists=stats.assists,
            damage=stats.damage,
            damage_share=stats.damage_share,
        )

    @property
    def has_stats(self) -> bool:
        return self.score is not None

    @property
    def is_complete(self) -> bool:
        """Keyed by a match id and carrying a full stat line."""
        return self.match_id is not None and self.has_stats

    def with_result(self, result: Optional[str]) -> "MatchObservation":
        return replace(self, result=result)

    def to_dict(self) -> dict:
        return {
            "matchId": self.match_id,
            "result": self.result,
            "score": self.score,
            "kills": self.kills,
            "deaths": self.deaths,
            "assists": self.assists,
            "damage": self.damage,
            "damageShare": self.damage_share,
        }


@dataclass
class BatchItem:
    """Progress of one uploaded file through recognition."""
    file_label: str
    payload: bytes = field(default=b"", repr=False)
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    status: BatchStatus = BatchStatus.QUEUED
    observation: Optional[MatchObservation] = None
    error_message: Optional[str] = None
    decision: Optional[ManualDecision] = None
    published: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "fileLabel": self.file_label,
            "status": self.status.value,
            "observation": self.observation.to_dict() if self.observation else None,
            "errorMessage": self.error_message,
            "decision": self.decision.value if self.decision else None,
            "published": self.published,
        }
