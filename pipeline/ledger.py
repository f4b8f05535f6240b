"""Reconciliation ledger: one outcome per source track."""

import threading
from collections import Counter
from typing import Dict, Iterable, List

from errors import DuplicateOutcomeError, LedgerFinalizedError
from models import OutcomeRecord, OutcomeStatus, SourceTrack


class Ledger:
    """Append-only, thread-safe record of every source track's outcome."""

    def __init__(self):
        self._lock = threading.Lock()
        self._outcomes: Dict[int, OutcomeRecord] = {}
        self._finalized = False

    def record(self, outcome: OutcomeRecord) -> None:
        """Record the outcome of a source track.

        Raises:
            DuplicateOutcomeError: If the track already has an outcome
            LedgerFinalizedError: If the ledger was already finalized
        """
        index = outcome.source_track.index
        with self._lock:
            if self._finalized:
                raise LedgerFinalizedError(
                    f"Cannot record track {index}: ledger already finalized"
                )
            existing = self._outcomes.get(index)
            if existing is not None:
                raise DuplicateOutcomeError(
                    f"Track {index} ({outcome.source_track}) already recorded as "
                    f"{existing.status.value}, refusing {outcome.status.value}"
                )
            self._outcomes[index] = outcome

    def missing(self, source_tracks: Iterable[SourceTrack]) -> List[SourceTrack]:
        """Source tracks that have no outcome yet, in the given order."""
        with self._lock:
            return [t for t in source_tracks if t.index not in self._outcomes]

    def outcomes(self) -> List[OutcomeRecord]:
        """All outcomes recorded so far, in source order."""
        with self._lock:
            return [self._outcomes[i] for i in sorted(self._outcomes)]

    def counts(self) -> Dict[str, int]:
        with self._lock:
            counter = Counter(o.status.value for o in self._outcomes.values())
        return {status.value: counter.get(status.value, 0) for status in OutcomeStatus}

    def __len__(self):
        with self._lock:
            return len(self._outcomes)

    def finalize(self) -> List[OutcomeRecord]:
        """Close the ledger and return the failures in source order.

        Raises:
            LedgerFinalizedError: If called more than once
        """
        with self._lock:
            if self._finalized:
                raise LedgerFinalizedError("Ledger already finalized")
            self._finalized = True
            return [
                self._outcomes[i]
                for i in sorted(self._outcomes)
                if not self._outcomes[i].is_success
            ]
