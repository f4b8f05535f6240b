"""Concurrent import pipeline: match in parallel, submit as batches fill up."""

import logging
import threading
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor, as_completed
from typing import Dict, List, Optional, Union

from tqdm.auto import tqdm

from config import Config
from errors import FatalError, RequestRejectedError, RetryableError
from matchers.catalog_matcher import CatalogMatcher
from models import CandidateMatch, OutcomeRecord, OutcomeStatus, SourceTrack
from pipeline.ledger import Ledger
from pipeline.submitter import BatchSubmitter

MatchResult = Union[CandidateMatch, OutcomeRecord, None]


class ImportRunner:
    """Drives matching workers and the batch submitter over a track list."""

    def __init__(
        self,
        matcher: CatalogMatcher,
        submitter: BatchSubmitter,
        ledger: Ledger,
        logger: logging.Logger,
        concurrency_limit: int = Config.CONCURRENCY_LIMIT,
        show_progress: bool = True,
    ):
        """Initialize import runner.

        Args:
            matcher: Catalog matcher shared by all workers
            submitter: Batch submitter, only used from the calling thread
            ledger: Ledger receiving one outcome per source track
            logger: Logger instance
            concurrency_limit: Maximum concurrent catalog searches
            show_progress: Show a progress bar while matching
        """
        self.matcher = matcher
        self.submitter = submitter
        self.ledger = ledger
        self.logger = logger
        self.concurrency_limit = concurrency_limit
        self.show_progress = show_progress
        self._cancel = threading.Event()

    def run(self, tracks: List[SourceTrack]) -> Dict[str, int]:
        """Match every track and submit the matches.

        Results are handled in completion order; full batches are sent while
        later tracks are still being matched.

        Args:
            tracks: Source tracks to import

        Returns:
            Outcome counts per status

        Raises:
            FatalError: If the run had to be aborted, including on unexpected
                errors while submitting. Every track still has an outcome in
                the ledger when this is raised.
        """
        self.logger.info(
            f"Matching {len(tracks)} tracks with {self.concurrency_limit} workers"
        )
        fatal: Optional[FatalError] = None

        with ThreadPoolExecutor(max_workers=self.concurrency_limit) as executor:
            futures: Dict[Future, SourceTrack] = {
                executor.submit(self._match_one, track): track for track in tracks
            }
            completed = tqdm(
                as_completed(futures),
                total=len(futures),
                mininterval=5,
                disable=not self.show_progress,
            )
            for future in completed:
                track = futures[future]
                try:
                    result = future.result()
                except CancelledError:
                    continue
                except FatalError as e:
                    if fatal is None:
                        fatal = e
                        self._abort_pending(futures, e)
                    continue
                except Exception as e:
                    self.logger.error(f"Unexpected error matching {track}: {str(e)}")
                    result = OutcomeRecord(
                        track, OutcomeStatus.SUBMIT_FAILED, f"unexpected error: {str(e)}"
                    )

                try:
                    self._handle_result(result, fatal)
                except Exception as e:
                    if fatal is None:
                        fatal = self._as_fatal(e)
                        self._abort_pending(futures, fatal)
                    else:
                        self.logger.error(f"Error after abort for {track}: {str(e)}")

        if fatal is None:
            try:
                self.submitter.flush()
            except Exception as e:
                fatal = self._as_fatal(e)

        if fatal is not None:
            self._record_aborted(tracks, fatal)
            raise fatal

        counts = self.ledger.counts()
        self.logger.info(f"Run finished: {counts}")
        return counts

    def _match_one(self, track: SourceTrack) -> MatchResult:
        if self._cancel.is_set():
            return None
        try:
            return self.matcher.match(track, should_stop=self._cancel.is_set)
        except RetryableError as e:
            self.logger.error(f"Catalog search failed for {track}: {str(e)}")
            return OutcomeRecord(
                track, OutcomeStatus.SUBMIT_FAILED, f"catalog search failed: {str(e)}"
            )
        except RequestRejectedError as e:
            self.logger.error(f"Catalog search rejected for {track}: {str(e)}")
            return OutcomeRecord(
                track, OutcomeStatus.SUBMIT_FAILED, f"catalog search rejected: {str(e)}"
            )

    def _handle_result(self, result: MatchResult, fatal: Optional[FatalError]) -> None:
        if result is None:
            return
        if isinstance(result, OutcomeRecord):
            self.ledger.record(result)
            return
        if not result.is_match:
            if result.confidence_score > 0:
                detail = (
                    f"best candidate scored {result.confidence_score:.1f}, "
                    "below the fuzzy threshold"
                )
            else:
                detail = "no catalog candidates"
            self.ledger.record(
                OutcomeRecord.from_match(result, OutcomeStatus.UNMATCHED, detail)
            )
            return
        if fatal is not None:
            self.ledger.record(
                OutcomeRecord.from_match(
                    result,
                    OutcomeStatus.SUBMIT_FAILED,
                    f"run aborted before submission: {str(fatal)}",
                )
            )
            return
        self.submitter.add(result)

    def _as_fatal(self, error: Exception) -> FatalError:
        if isinstance(error, FatalError):
            return error
        self.logger.exception(f"Unexpected error while submitting: {str(error)}")
        fatal = FatalError(f"unexpected error: {str(error)}")
        fatal.__cause__ = error
        return fatal

    def _abort_pending(self, futures: Dict[Future, SourceTrack], error: FatalError) -> None:
        self.logger.error(f"Fatal error, stopping run: {str(error)}")
        self._cancel.set()
        cancelled = sum(1 for future in futures if future.cancel())
        self.logger.info(f"Cancelled {cancelled} queued match requests")

    def _record_aborted(self, tracks: List[SourceTrack], error: FatalError) -> None:
        reason = str(error)
        self.submitter.abort(reason)
        missing = self.ledger.missing(tracks)
        for track in missing:
            self.ledger.record(
                OutcomeRecord(
                    track, OutcomeStatus.SUBMIT_FAILED, f"run aborted: {reason}"
                )
            )
        self.logger.warning(
            f"Run aborted; {len(missing)} tracks were never processed"
        )
