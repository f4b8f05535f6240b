"""Configuration settings for the liked songs importer."""

from dataclasses import dataclass


class Config:
    """Default configuration for the import pipeline."""

    # Matching
    FUZZY_THRESHOLD = 85
    TITLE_WEIGHT = 0.6
    ARTIST_WEIGHT = 0.4
    SEARCH_LIMIT = 10
    MAX_SEARCH_LIMIT = 50

    # API limits (PUT /me/tracks accepts at most 50 ids)
    SPOTIFY_BATCH_SIZE = 50
    CONCURRENCY_LIMIT = 4
    REQUEST_TIMEOUT = 10

    # Retry settings
    RETRY_BUDGET = 3
    RETRY_BASE_DELAY = 1.0
    RATE_LIMIT_BACKOFF = 5.0
    MAX_RATE_LIMIT_WAITS = 10

    # Spotify auth
    SPOTIFY_SCOPE = "user-library-read user-library-modify"

    # Database settings
    DATABASE_PATH = "spotify_import.db"

    # Logging
    LOG_LEVEL = "INFO"
    LOG_FILE = "spotify_import.log"

    # Output
    REPORT_DIR = "."
    REPORT_PREFIX = "spotifyimport-failures"


@dataclass(frozen=True)
class ImportSettings:
    """Effective settings for a single import run.

    Built once at run start from ``Config`` defaults and command line
    overrides, then handed to every component that needs it.
    """

    mutate: bool = False
    concurrency_limit: int = Config.CONCURRENCY_LIMIT
    retry_budget: int = Config.RETRY_BUDGET
    retry_base_delay: float = Config.RETRY_BASE_DELAY
    rate_limit_backoff: float = Config.RATE_LIMIT_BACKOFF
    max_rate_limit_waits: int = Config.MAX_RATE_LIMIT_WAITS
    fuzzy_threshold: float = Config.FUZZY_THRESHOLD
    batch_size: int = Config.SPOTIFY_BATCH_SIZE
    search_limit: int = Config.SEARCH_LIMIT
    request_timeout: float = Config.REQUEST_TIMEOUT
    report_dir: str = Config.REPORT_DIR

    def __post_init__(self):
        if self.concurrency_limit < 1:
            raise ValueError("concurrency_limit must be at least 1")
        if self.retry_budget < 0:
            raise ValueError("retry_budget must not be negative")
        if not 1 <= self.batch_size <= Config.SPOTIFY_BATCH_SIZE:
            raise ValueError(
                f"batch_size must be between 1 and {Config.SPOTIFY_BATCH_SIZE}"
            )
        if not 0 <= self.fuzzy_threshold <= 100:
            raise ValueError("fuzzy_threshold must be between 0 and 100")
        if not 1 <= self.search_limit <= Config.MAX_SEARCH_LIMIT:
            raise ValueError(
                f"search_limit must be between 1 and {Config.MAX_SEARCH_LIMIT}"
            )
        if self.retry_base_delay < 0 or self.rate_limit_backoff < 0:
            raise ValueError("backoff delays must not be negative")
        if self.max_rate_limit_waits < 0:
            raise ValueError("max_rate_limit_waits must not be negative")
        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be positive")

    @property
    def dry_run(self) -> bool:
        return not self.mutate
