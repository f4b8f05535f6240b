"""Data models shared across the import pipeline."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class MatchMethod(str, Enum):
    """How a catalog track was chosen for a source track.

    Priority: EXACT > NORMALIZED > FUZZY > NONE
    """

    EXACT = "exact"  # equal after case folding
    NORMALIZED = "normalized"  # equal after punctuation/whitespace normalization
    FUZZY = "fuzzy"  # best similarity score above the threshold
    NONE = "none"


class OutcomeStatus(str, Enum):
    """Final status of a source track."""

    ADDED = "added"
    ALREADY_PRESENT = "already_present"
    WOULD_ADD = "would_add"
    UNMATCHED = "unmatched"
    SUBMIT_FAILED = "submit_failed"

    @property
    def is_success(self) -> bool:
        return self in SUCCESS_STATUSES


SUCCESS_STATUSES = frozenset(
    {OutcomeStatus.ADDED, OutcomeStatus.ALREADY_PRESENT, OutcomeStatus.WOULD_ADD}
)


@dataclass(frozen=True)
class SourceTrack:
    """A single scrobbled play from the source document."""

    index: int
    artist: str
    title: str
    album: Optional[str] = None
    played_at: Optional[datetime] = None

    def __str__(self):
        return f"{self.artist} - {self.title}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "artist": self.artist,
            "title": self.title,
            "album": self.album,
            "played_at": self.played_at.isoformat() if self.played_at else None,
        }


@dataclass(frozen=True)
class CatalogTrack:
    """A search candidate returned by the catalog."""

    id: str
    artist: str
    title: str
    album: Optional[str] = None

    def __str__(self):
        return f"{self.artist} - {self.title} [{self.id}]"


@dataclass(frozen=True)
class CandidateMatch:
    """Result of matching one source track against the catalog."""

    source_track: SourceTrack
    catalog_track_id: Optional[str]
    confidence_score: float
    match_method: MatchMethod

    @property
    def is_match(self) -> bool:
        return self.catalog_track_id is not None


@dataclass(frozen=True)
class OutcomeRecord:
    """Final outcome for one source track."""

    source_track: SourceTrack
    status: OutcomeStatus
    error_detail: Optional[str] = None
    catalog_track_id: Optional[str] = None
    match_method: Optional[MatchMethod] = None
    confidence_score: Optional[float] = None

    @classmethod
    def from_match(
        cls,
        match: CandidateMatch,
        status: OutcomeStatus,
        error_detail: Optional[str] = None,
    ) -> "OutcomeRecord":
        return cls(
            source_track=match.source_track,
            status=status,
            error_detail=error_detail,
            catalog_track_id=match.catalog_track_id,
            match_method=match.match_method,
            confidence_score=match.confidence_score,
        )

    @property
    def is_success(self) -> bool:
        return self.status.is_success

    def to_dict(self) -> Dict[str, Any]:
        data = self.source_track.to_dict()
        data.update(
            {
                "status": self.status.value,
                "error_detail": self.error_detail,
                "catalog_track_id": self.catalog_track_id,
                "match_method": self.match_method.value if self.match_method else None,
                "confidence_score": self.confidence_score,
            }
        )
        return data
