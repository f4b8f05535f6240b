"""Exception hierarchy for the liked songs importer."""

from typing import Optional


class SpotifyImportError(Exception):
    """Base class for all importer errors."""


class DecodeError(SpotifyImportError):
    """The scrobble document is malformed or lacks required fields."""


class RetryableError(SpotifyImportError):
    """A transient failure (network, timeout, server error) worth retrying."""


class RateLimitedError(RetryableError):
    """The API answered with a rate limit signal (HTTP 429)."""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class RequestRejectedError(SpotifyImportError):
    """The API permanently rejected a single request (e.g. HTTP 400/404)."""


class FatalError(SpotifyImportError):
    """An unrecoverable failure that aborts the whole run."""


class AuthError(FatalError):
    """Authentication failed or the access token expired."""


class LedgerError(SpotifyImportError):
    """The ledger was used in a way that breaks its invariants."""


class DuplicateOutcomeError(LedgerError):
    """A second outcome was recorded for the same source track."""


class LedgerFinalizedError(LedgerError):
    """The ledger was written to or finalized after finalization."""


class ReportWriteError(SpotifyImportError):
    """The failure report could not be written."""
