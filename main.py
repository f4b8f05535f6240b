"""Main module for the liked songs importer."""

import argparse
import os
import sys
import time
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Union

from clients.access_token import SP_DC_INSTRUCTIONS, fetch_token
from clients.base_client import CatalogClient
from clients.spotify_client import SpotifyClient
from config import Config, ImportSettings
from database import Database
from errors import DecodeError, FatalError, ReportWriteError, SpotifyImportError
from matchers.catalog_matcher import CatalogMatcher
from models import OutcomeRecord
from pipeline.decoder import decode_tracks
from pipeline.ledger import Ledger
from pipeline.report import write_failure_report
from pipeline.runner import ImportRunner
from pipeline.submitter import BatchSubmitter
from utils.logging_utils import setup_logging


@dataclass
class RunResult:
    """Summary of a finished import run."""

    run_id: int
    report_path: str
    counts: Dict[str, int]
    failures: List[OutcomeRecord]
    batches_submitted: int


class ImportApp:
    """Main application class for importing scrobbles into liked songs."""

    def __init__(
        self,
        settings: ImportSettings,
        access_token: Optional[str] = None,
        debug: bool = False,
        catalog: Optional[CatalogClient] = None,
        database_path: str = Config.DATABASE_PATH,
        log_file: Optional[str] = Config.LOG_FILE,
        started_at: Optional[datetime] = None,
        sleep: Callable[[float], None] = time.sleep,
        show_progress: bool = True,
    ):
        """Initialize the importer.

        Args:
            settings: Effective run settings
            access_token: Optional Spotify bearer token
            debug: Enable debug logging
            catalog: Catalog client to use instead of Spotify (tests)
            database_path: Path of the run database
            log_file: Path to the log file, or None
            started_at: Run start timestamp (defaults to now)
            sleep: Sleep function used for backoff
            show_progress: Show a progress bar while matching
        """
        self.settings = settings
        self.started_at = started_at or datetime.now()

        # Initialize database
        self.db = Database(database_path)

        # Start tracking run
        self.run_id = self.db.start_run(
            {
                "settings": asdict(settings),
                "debug": debug,
                "auth": "token" if access_token else "oauth",
            },
            self.started_at,
        )

        # Set up logging
        log_level = "DEBUG" if debug else Config.LOG_LEVEL
        self.logger = setup_logging(log_file, log_level, self.db, self.run_id)

        self.logger.info("Initializing clients")
        self._verify_catalog = catalog is None
        try:
            self.catalog = catalog or SpotifyClient(
                self.logger,
                access_token=access_token,
                request_timeout=settings.request_timeout,
            )
        except FatalError as e:
            self.db.end_run(self.run_id, "FAILED", {"error": str(e)})
            raise

        self.logger.info("Initializing pipeline")
        self.ledger = Ledger()
        self.matcher = CatalogMatcher(
            self.catalog,
            self.logger,
            fuzzy_threshold=settings.fuzzy_threshold,
            search_limit=settings.search_limit,
            retry_budget=settings.retry_budget,
            retry_base_delay=settings.retry_base_delay,
            sleep=sleep,
        )
        self.submitter = BatchSubmitter(
            self.catalog,
            self.ledger,
            self.logger,
            dry_run=settings.dry_run,
            batch_size=settings.batch_size,
            retry_budget=settings.retry_budget,
            retry_base_delay=settings.retry_base_delay,
            rate_limit_backoff=settings.rate_limit_backoff,
            max_rate_limit_waits=settings.max_rate_limit_waits,
            sleep=sleep,
        )
        self.runner = ImportRunner(
            self.matcher,
            self.submitter,
            self.ledger,
            self.logger,
            concurrency_limit=settings.concurrency_limit,
            show_progress=show_progress,
        )

        mode = "MUTATE" if settings.mutate else "DRY RUN"
        self.logger.info(f"Importer initialized ({mode})")

    def run(self, raw_input: Union[bytes, str]) -> RunResult:
        """Import a scrobble document.

        Args:
            raw_input: JSON document of scrobbles

        Returns:
            Run summary including the failure report path

        Raises:
            DecodeError: If the input is malformed (nothing is reported)
            FatalError: If the run was aborted (the partial report is
                still written)
            ReportWriteError: If the failure report could not be written
        """
        try:
            tracks = decode_tracks(raw_input)
        except DecodeError as e:
            self.logger.error(f"Invalid input: {str(e)}")
            self.db.end_run(self.run_id, "FAILED", {"error": str(e)})
            raise

        self.logger.info(f"Decoded {len(tracks)} tracks")

        if self._verify_catalog:
            try:
                self.catalog.verify()
            except FatalError as e:
                self.db.end_run(self.run_id, "FAILED", {"error": str(e)})
                raise

        start_time = time.time()
        fatal: Optional[FatalError] = None
        try:
            self.runner.run(tracks)
        except FatalError as e:
            fatal = e
            self.logger.error(f"Run aborted: {str(e)}")
        except Exception as e:
            self.logger.exception(f"Run failed: {str(e)}")
            fatal = FatalError(f"unexpected error: {str(e)}")
            fatal.__cause__ = e

        failures = self.ledger.finalize()
        counts = self.ledger.counts()
        stats = {
            "total_tracks": len(tracks),
            "counts": counts,
            "failures": len(failures),
            "batches_submitted": self.submitter.batches_submitted,
            "batches_assembled": self.submitter.batches_assembled,
            "rate_limit_pauses": self.submitter.rate_limit_pauses,
            "duration_seconds": time.time() - start_time,
        }

        try:
            report_path = write_failure_report(
                failures, self.settings.report_dir, self.started_at
            )
        except ReportWriteError as e:
            self.logger.error(str(e))
            self.db.end_run(self.run_id, "FAILED", dict(stats, error=str(e)))
            raise
        self.logger.info(f"Failure report with {len(failures)} entries: {report_path}")

        try:
            self.db.log_outcomes(self.run_id, self.ledger.outcomes())
        except Exception as e:
            self.logger.error(f"Failed to store outcomes in database: {str(e)}")

        if fatal is not None:
            self.db.end_run(self.run_id, "ABORTED", dict(stats, error=str(fatal)))
            raise fatal

        self.db.end_run(self.run_id, "SUCCESS", stats)
        return RunResult(
            run_id=self.run_id,
            report_path=report_path,
            counts=counts,
            failures=failures,
            batches_submitted=self.submitter.batches_submitted,
        )


def read_input(path: Optional[str]) -> bytes:
    """Read the scrobble document from a file or standard input."""
    if path is None or path == "-":
        return sys.stdin.buffer.read()
    with open(path, "rb") as file:
        return file.read()


def resolve_access_token(args: argparse.Namespace) -> Optional[str]:
    """Pick the bearer token from flags, cookies or the environment."""
    if args.access_token:
        return args.access_token
    if args.sp_dc or args.sp_key:
        if not (args.sp_dc and args.sp_key):
            raise FatalError("--sp-dc and --sp-key must be given together")
        return fetch_token(
            args.sp_dc, args.sp_key, timeout=args.request_timeout
        ).access_token
    return os.environ.get("SPOTIFY_ACCESS_TOKEN") or None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Import Apple Music scrobbles into Spotify liked songs"
    )
    parser.add_argument(
        "--input", help="Path to the scrobble JSON file (default: standard input)"
    )
    parser.add_argument(
        "--mutate",
        action="store_true",
        help="Actually add tracks to liked songs (default is a dry run)",
    )
    parser.add_argument(
        "--concurrency-limit",
        type=int,
        default=Config.CONCURRENCY_LIMIT,
        help="Maximum concurrent catalog searches",
    )
    parser.add_argument(
        "--retry-budget",
        type=int,
        default=Config.RETRY_BUDGET,
        help="Retries per request on transient errors",
    )
    parser.add_argument(
        "--rate-limit-backoff",
        type=float,
        default=Config.RATE_LIMIT_BACKOFF,
        help="Seconds to pause on a rate limit without Retry-After",
    )
    parser.add_argument(
        "--fuzzy-threshold",
        type=float,
        default=Config.FUZZY_THRESHOLD,
        help="Minimum fuzzy score (0-100) to accept a match",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=Config.SPOTIFY_BATCH_SIZE,
        help="Tracks per liked songs request",
    )
    parser.add_argument(
        "--search-limit",
        type=int,
        default=Config.SEARCH_LIMIT,
        help="Candidates requested per search",
    )
    parser.add_argument(
        "--request-timeout",
        type=float,
        default=Config.REQUEST_TIMEOUT,
        help="Per-request timeout in seconds",
    )
    parser.add_argument(
        "--report-dir", default=Config.REPORT_DIR, help="Directory for the failure report"
    )
    parser.add_argument("--database", default=Config.DATABASE_PATH, help="Run database")
    parser.add_argument("--log-file", default=Config.LOG_FILE, help="Log file path")
    parser.add_argument("--access-token", help="Spotify bearer token")
    parser.add_argument("--sp-dc", help="sp_dc cookie for a web player token")
    parser.add_argument("--sp-key", help="sp_key cookie for a web player token")
    parser.add_argument(
        "--no-progress", action="store_true", help="Hide the progress bar"
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser


def main(argv: Optional[List[str]] = None):
    """Command line entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = ImportSettings(
            mutate=args.mutate,
            concurrency_limit=args.concurrency_limit,
            retry_budget=args.retry_budget,
            rate_limit_backoff=args.rate_limit_backoff,
            fuzzy_threshold=args.fuzzy_threshold,
            batch_size=args.batch_size,
            search_limit=args.search_limit,
            request_timeout=args.request_timeout,
            report_dir=args.report_dir,
        )
    except ValueError as e:
        parser.error(str(e))

    try:
        raw_input = read_input(args.input)
    except OSError as e:
        print(f"Error: could not read input: {str(e)}", file=sys.stderr)
        sys.exit(1)

    try:
        app = ImportApp(
            settings=settings,
            access_token=resolve_access_token(args),
            debug=args.debug,
            database_path=args.database,
            log_file=args.log_file,
            show_progress=not args.no_progress,
        )
        result = app.run(raw_input)
    except SpotifyImportError as e:
        print(f"Error: {str(e)}", file=sys.stderr)
        sys.exit(1)

    print(app.db.get_status_counts(result.run_id).to_string(index=False))
    print(f"Failure report: {result.report_path} ({len(result.failures)} entries)")


def accesstoken_main(argv: Optional[List[str]] = None):
    """Print a web player access token for the given sp_dc/sp_key cookies."""
    args = sys.argv[1:] if argv is None else argv
    if len(args) != 2:
        prog = os.path.basename(sys.argv[0]) if sys.argv else "accesstoken"
        print(f"usage: {prog} <SP_DC> <SP_KEY>\n", file=sys.stderr)
        print("To obtain SP_DC and SP_KEY:", file=sys.stderr)
        print(SP_DC_INSTRUCTIONS, file=sys.stderr)
        sys.exit(2)

    try:
        token = fetch_token(args[0], args[1])
    except SpotifyImportError as e:
        print(f"Error: {str(e)}", file=sys.stderr)
        sys.exit(1)
    print(token.access_token)


if __name__ == "__main__":
    main()
