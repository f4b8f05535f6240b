"""Catalog matching: exact normalized match first, fuzzy scoring second."""

import logging
from typing import Callable, List, Optional, Tuple

from fuzzywuzzy import fuzz
from Levenshtein import jaro_winkler

from clients.base_client import CatalogClient
from config import Config
from matchers.base_matcher import BaseMatcher
from models import CandidateMatch, CatalogTrack, MatchMethod, SourceTrack
from utils.retry import call_with_retry
from utils.text_processing import (
    comparable_text,
    fold_text,
    normalized_key,
    strip_version_info,
)

# Subtracted when a title only matches once version qualifiers are dropped
VERSION_PENALTY = 5.0


class CatalogMatcher(BaseMatcher):
    """Matcher that resolves a scrobbled track to a catalog track ID."""

    def __init__(
        self,
        catalog: CatalogClient,
        logger: logging.Logger,
        fuzzy_threshold: float = Config.FUZZY_THRESHOLD,
        title_weight: float = Config.TITLE_WEIGHT,
        artist_weight: float = Config.ARTIST_WEIGHT,
        search_limit: int = Config.SEARCH_LIMIT,
        retry_budget: int = Config.RETRY_BUDGET,
        retry_base_delay: float = Config.RETRY_BASE_DELAY,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        """Initialize catalog matcher.

        Args:
            catalog: Client used to search the destination catalog
            logger: Logger instance
            fuzzy_threshold: Minimum score (0-100) for a fuzzy match
            title_weight: Weight for title match score
            artist_weight: Weight for artist match score
            search_limit: Maximum candidates requested per search
            retry_budget: Retries allowed per search on transient errors
            retry_base_delay: Base delay for exponential backoff
            sleep: Optional sleep function used between retries
        """
        super().__init__(logger)
        self.catalog = catalog
        self.fuzzy_threshold = fuzzy_threshold
        self.title_weight = title_weight
        self.artist_weight = artist_weight
        self.search_limit = search_limit
        self.retry_budget = retry_budget
        self.retry_base_delay = retry_base_delay
        self.sleep = sleep

    def match(
        self,
        source_track: SourceTrack,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> CandidateMatch:
        """Search the catalog and pick the best candidate for a track.

        Args:
            source_track: Scrobbled track
            should_stop: Optional callable that cuts retries short

        Returns:
            The selected match (possibly without a catalog ID)

        Raises:
            RetryableError: If the search still fails once the retry
                budget is exhausted
            FatalError: On authentication failures
        """
        candidates = self._search(source_track, source_track.album, should_stop)
        if not candidates and source_track.album:
            self.logger.debug(f"No results with album for {source_track}, retrying without")
            candidates = self._search(source_track, None, should_stop)

        return self.select_best_match(source_track, candidates)

    def _search(
        self,
        source_track: SourceTrack,
        album: Optional[str],
        should_stop: Optional[Callable[[], bool]],
    ) -> List[CatalogTrack]:
        kwargs = {}
        if self.sleep is not None:
            kwargs["sleep"] = self.sleep
        return call_with_retry(
            lambda: self.catalog.search_tracks(
                source_track.artist,
                source_track.title,
                album=album,
                limit=self.search_limit,
            ),
            retry_budget=self.retry_budget,
            base_delay=self.retry_base_delay,
            logger=self.logger,
            description=f"Search for {source_track}",
            should_stop=should_stop,
            **kwargs,
        )

    def score_candidates(
        self, source_track: SourceTrack, candidates: List[CatalogTrack]
    ) -> List[Tuple[float, CatalogTrack]]:
        """Score candidates with weighted title and artist similarity.

        Title similarity is the token sort ratio of the normalized titles,
        or of the titles without version qualifiers minus a small penalty,
        whichever is higher. Artist similarity is Jaro-Winkler scaled to
        0-100. Equal scores keep the catalog's relevance order.
        """
        src_title = comparable_text(source_track.title)
        src_base = comparable_text(strip_version_info(source_track.title))
        src_artist = comparable_text(source_track.artist)

        scored_results = []
        for candidate in candidates:
            cand_title = comparable_text(candidate.title)
            cand_base = comparable_text(strip_version_info(candidate.title))
            cand_artist = comparable_text(candidate.artist)

            title_score = max(
                fuzz.token_sort_ratio(src_title, cand_title),
                fuzz.token_sort_ratio(src_base, cand_base) - VERSION_PENALTY,
            )
            artist_score = jaro_winkler(src_artist, cand_artist) * 100
            total_score = (
                title_score * self.title_weight + artist_score * self.artist_weight
            )
            scored_results.append((total_score, candidate))

            self.logger.debug(
                f"Candidate: {candidate}\n"
                f"  Scores:\n"
                f"    Title: {title_score:.1f}\n"
                f"    Artist: {artist_score:.1f}\n"
                f"    TOTAL: {total_score:.1f}"
            )

        # sort is stable, so ties keep relevance order
        scored_results.sort(reverse=True, key=lambda x: x[0])
        return scored_results

    def select_best_match(
        self, source_track: SourceTrack, candidates: List[CatalogTrack]
    ) -> CandidateMatch:
        """Select an exact normalized match, else the best fuzzy match."""
        if not candidates:
            self.logger.info(f"No catalog candidates for {source_track}")
            return CandidateMatch(source_track, None, 0.0, MatchMethod.NONE)

        exact = self._select_exact(source_track, candidates)
        if exact is not None:
            return exact

        scored_results = self.score_candidates(source_track, candidates)
        best_score, best = scored_results[0]
        if best_score >= self.fuzzy_threshold:
            self.logger.info(
                f"Fuzzy match for {source_track}: {best} (score {best_score:.1f})"
            )
            return CandidateMatch(source_track, best.id, best_score, MatchMethod.FUZZY)

        self.logger.info(
            f"No match for {source_track}: best candidate {best} scored "
            f"{best_score:.1f} < {self.fuzzy_threshold}"
        )
        return CandidateMatch(source_track, None, best_score, MatchMethod.NONE)

    def _select_exact(
        self, source_track: SourceTrack, candidates: List[CatalogTrack]
    ) -> Optional[CandidateMatch]:
        source_key = normalized_key(source_track.artist, source_track.title)
        exact = [
            c for c in candidates if normalized_key(c.artist, c.title) == source_key
        ]
        if not exact:
            return None

        chosen = exact[0]
        source_album = comparable_text(source_track.album)
        if source_album:
            for candidate in exact:
                if comparable_text(candidate.album) == source_album:
                    chosen = candidate
                    break

        method = MatchMethod.NORMALIZED
        if fold_text(chosen.artist) == fold_text(source_track.artist) and fold_text(
            chosen.title
        ) == fold_text(source_track.title):
            method = MatchMethod.EXACT

        self.logger.info(f"{method.value.capitalize()} match for {source_track}: {chosen}")
        return CandidateMatch(source_track, chosen.id, 100.0, method)
