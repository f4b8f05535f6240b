"""Batch submission of matched tracks to the user's liked songs."""

import logging
import time
from collections import OrderedDict
from typing import Callable, Dict, Iterable, List, Optional

from clients.base_client import SAVE_ADDED, SAVE_ALREADY_PRESENT, CatalogClient
from config import Config
from errors import (
    FatalError,
    RateLimitedError,
    RequestRejectedError,
    RetryableError,
)
from models import CandidateMatch, OutcomeRecord, OutcomeStatus
from pipeline.ledger import Ledger
from utils.retry import backoff_delay

DUPLICATE_DETAIL = "duplicate of an earlier track in this run"


class BatchSubmitter:
    """Groups matched tracks into batches and adds them to liked songs.

    Tracks are queued with ``add`` as they are resolved; a batch is sent as
    soon as it is full, and ``flush`` sends whatever is left. Every queued
    track ends up with exactly one outcome in the ledger.
    """

    def __init__(
        self,
        catalog: CatalogClient,
        ledger: Ledger,
        logger: logging.Logger,
        dry_run: bool = True,
        batch_size: int = Config.SPOTIFY_BATCH_SIZE,
        retry_budget: int = Config.RETRY_BUDGET,
        retry_base_delay: float = Config.RETRY_BASE_DELAY,
        rate_limit_backoff: float = Config.RATE_LIMIT_BACKOFF,
        max_rate_limit_waits: int = Config.MAX_RATE_LIMIT_WAITS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize batch submitter.

        Args:
            catalog: Client used to save tracks
            ledger: Ledger receiving one outcome per source track
            logger: Logger instance
            dry_run: Assemble and log batches without sending them
            batch_size: Maximum IDs per save request
            retry_budget: Retries per batch on transient errors
            retry_base_delay: Base delay for exponential backoff
            rate_limit_backoff: Wait used when a rate limit gives no Retry-After
            max_rate_limit_waits: Consecutive rate limit waits before a batch
                is given up
            sleep: Sleep function (injectable for tests)
        """
        self.catalog = catalog
        self.ledger = ledger
        self.logger = logger
        self.dry_run = dry_run
        self.batch_size = batch_size
        self.retry_budget = retry_budget
        self.retry_base_delay = retry_base_delay
        self.rate_limit_backoff = rate_limit_backoff
        self.max_rate_limit_waits = max_rate_limit_waits
        self.sleep = sleep

        self._pending: "OrderedDict[str, List[CandidateMatch]]" = OrderedDict()
        self._submitted: Dict[str, OutcomeStatus] = {}
        self._queued_sources = set()
        self._aborted = False

        self.batches_assembled = 0
        self.batches_submitted = 0
        self.save_calls = 0
        self.rate_limit_pauses = 0

    @property
    def pending_count(self) -> int:
        return sum(len(group) for group in self._pending.values())

    def add(self, match: CandidateMatch) -> None:
        """Queue a resolved match, sending a batch once it is full.

        Raises:
            ValueError: If the match has no catalog ID or its source track
                was already queued
            FatalError: If the batch sent as a result fails fatally
        """
        if not match.is_match:
            raise ValueError(f"Cannot submit unresolved track {match.source_track}")
        index = match.source_track.index
        if index in self._queued_sources:
            raise ValueError(f"Track {index} ({match.source_track}) already queued")
        if self._aborted:
            raise FatalError("Submitter was aborted, no more tracks accepted")
        self._queued_sources.add(index)

        track_id = match.catalog_track_id
        previous = self._submitted.get(track_id)
        if previous is not None and previous.is_success:
            status = (
                OutcomeStatus.WOULD_ADD if self.dry_run else OutcomeStatus.ALREADY_PRESENT
            )
            self.ledger.record(OutcomeRecord.from_match(match, status, DUPLICATE_DETAIL))
            return

        if track_id in self._pending:
            self._pending[track_id].append(match)
            return

        self._pending[track_id] = [match]
        if len(self._pending) >= self.batch_size:
            self.flush()

    def submit_all(self, matches: Iterable[CandidateMatch]) -> None:
        """Queue every match and send the final partial batch."""
        for match in matches:
            self.add(match)
        self.flush()

    def flush(self) -> None:
        """Send the pending batch, if any."""
        if not self._pending or self._aborted:
            return
        groups = self._pending
        self._pending = OrderedDict()
        self._submit_batch(groups)

    def abort(self, reason: str) -> int:
        """Stop submitting and fail every track still waiting in a batch.

        Returns:
            Number of tracks recorded as failed
        """
        self._aborted = True
        groups = self._pending
        self._pending = OrderedDict()
        failed = 0
        for group in groups.values():
            for match in group:
                self.ledger.record(
                    OutcomeRecord.from_match(
                        match,
                        OutcomeStatus.SUBMIT_FAILED,
                        f"run aborted before submission: {reason}",
                    )
                )
                failed += 1
        if failed:
            self.logger.warning(f"Aborted submission of {failed} pending tracks")
        return failed

    def _submit_batch(self, groups: "OrderedDict[str, List[CandidateMatch]]") -> None:
        track_ids = list(groups.keys())
        self.batches_assembled += 1
        batch_no = self.batches_assembled

        if self.dry_run:
            self.logger.info(
                f"[dry run] Would add batch {batch_no} ({len(track_ids)} tracks): "
                f"{', '.join(track_ids)}"
            )
            for track_id, group in groups.items():
                self._submitted[track_id] = OutcomeStatus.WOULD_ADD
                for match in group:
                    self.ledger.record(
                        OutcomeRecord.from_match(match, OutcomeStatus.WOULD_ADD)
                    )
            return

        self.logger.info(f"Adding batch {batch_no} ({len(track_ids)} tracks)")
        try:
            results = self._save_with_backoff(track_ids)
        except FatalError as e:
            self._aborted = True
            self._record_batch_failure(groups, f"run aborted: {str(e)}")
            raise
        except (RetryableError, RequestRejectedError) as e:
            self.logger.error(f"Batch {batch_no} failed: {str(e)}")
            self._record_batch_failure(groups, f"batch submission failed: {str(e)}")
            return

        self.batches_submitted += 1
        added = 0
        for track_id, group in groups.items():
            status, detail = self._status_for(results.get(track_id))
            self._submitted[track_id] = status
            first, rest = group[0], group[1:]
            self.ledger.record(OutcomeRecord.from_match(first, status, detail))
            if status == OutcomeStatus.ADDED:
                added += 1
            for match in rest:
                if status.is_success:
                    self.ledger.record(
                        OutcomeRecord.from_match(
                            match, OutcomeStatus.ALREADY_PRESENT, DUPLICATE_DETAIL
                        )
                    )
                else:
                    self.ledger.record(OutcomeRecord.from_match(match, status, detail))

        self.logger.info(
            f"Batch {batch_no} done: {added} added, {len(track_ids) - added} not added"
        )

    @staticmethod
    def _status_for(result: Optional[str]):
        if result == SAVE_ADDED:
            return OutcomeStatus.ADDED, None
        if result == SAVE_ALREADY_PRESENT:
            return OutcomeStatus.ALREADY_PRESENT, None
        if result is None:
            return OutcomeStatus.SUBMIT_FAILED, "no result reported for track"
        return OutcomeStatus.SUBMIT_FAILED, f"rejected by catalog ({result})"

    def _record_batch_failure(
        self, groups: "OrderedDict[str, List[CandidateMatch]]", detail: str
    ) -> None:
        for track_id, group in groups.items():
            self._submitted[track_id] = OutcomeStatus.SUBMIT_FAILED
            for match in group:
                self.ledger.record(
                    OutcomeRecord.from_match(match, OutcomeStatus.SUBMIT_FAILED, detail)
                )

    def _save_with_backoff(self, track_ids: List[str]) -> Dict[str, str]:
        """Save one batch, pausing on rate limits and retrying transient errors.

        Rate limit pauses do not count against the retry budget.
        """
        attempt = 0
        rate_limit_waits = 0
        while True:
            try:
                self.save_calls += 1
                return self.catalog.save_tracks(track_ids)
            except RateLimitedError as e:
                rate_limit_waits += 1
                if rate_limit_waits > self.max_rate_limit_waits:
                    raise
                wait = e.retry_after if e.retry_after else self.rate_limit_backoff
                self.rate_limit_pauses += 1
                self.logger.warning(
                    f"Rate limited while adding tracks, pausing {wait:.1f}s "
                    f"({rate_limit_waits}/{self.max_rate_limit_waits})"
                )
                self.sleep(wait)
            except RetryableError as e:
                if attempt >= self.retry_budget:
                    raise
                wait = backoff_delay(attempt, self.retry_base_delay)
                attempt += 1
                self.logger.info(
                    f"Adding tracks failed ({str(e)}), retrying in {wait:.1f}s "
                    f"(attempt {attempt}/{self.retry_budget})"
                )
                self.sleep(wait)
