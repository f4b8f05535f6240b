"""Base matcher interface for catalog matching."""

import logging
from abc import ABC, abstractmethod
from typing import List, Tuple

from models import CandidateMatch, CatalogTrack, SourceTrack


class BaseMatcher(ABC):
    """Base abstract class for catalog track matchers."""

    def __init__(self, logger: logging.Logger):
        """Initialize base matcher.

        Args:
            logger: Logger instance
        """
        self.logger = logger

    @abstractmethod
    def score_candidates(
        self, source_track: SourceTrack, candidates: List[CatalogTrack]
    ) -> List[Tuple[float, CatalogTrack]]:
        """Score catalog candidates against a source track.

        Args:
            source_track: Scrobbled track
            candidates: Catalog candidates in relevance order

        Returns:
            List of (score, track) tuples sorted by descending score
        """
        pass

    @abstractmethod
    def select_best_match(
        self, source_track: SourceTrack, candidates: List[CatalogTrack]
    ) -> CandidateMatch:
        """Select the best match for a source track.

        Args:
            source_track: Scrobbled track
            candidates: Catalog candidates in relevance order

        Returns:
            The chosen match, or a match without a catalog ID
        """
        pass
