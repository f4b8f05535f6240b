"""SQLite database management for tracking import runs and outcomes."""

import json
import sqlite3
import threading
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

import pandas as pd

from models import OutcomeRecord


class Database:
    """Database manager for the liked songs importer."""

    def __init__(self, db_path: str):
        """Initialize database connection and create tables if they don't exist.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = db_path
        self._lock = threading.Lock()
        self._initialize_db()

    def _initialize_db(self) -> None:
        """Create database tables if they don't exist."""
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.cursor()

            # Create table for tracking runs
            cursor.execute(
                """
            CREATE TABLE IF NOT EXISTS runs (
                run_id INTEGER PRIMARY KEY AUTOINCREMENT,
                start_time TIMESTAMP NOT NULL,
                end_time TIMESTAMP,
                status TEXT NOT NULL,
                config TEXT NOT NULL,
                stats TEXT
            )
            """
            )

            # Create table for tracking per-track outcomes
            cursor.execute(
                """
            CREATE TABLE IF NOT EXISTS track_outcomes (
                outcome_id INTEGER PRIMARY KEY AUTOINCREMENT,
                run_id INTEGER NOT NULL,
                source_index INTEGER NOT NULL,
                artist TEXT NOT NULL,
                title TEXT NOT NULL,
                album TEXT,
                played_at TEXT,
                status TEXT NOT NULL,
                catalog_track_id TEXT,
                match_method TEXT,
                confidence_score REAL,
                error_detail TEXT,
                FOREIGN KEY (run_id) REFERENCES runs (run_id)
            )
            """
            )

            # Create table for logging
            cursor.execute(
                """
            CREATE TABLE IF NOT EXISTS logs (
                log_id INTEGER PRIMARY KEY AUTOINCREMENT,
                run_id INTEGER,
                timestamp TIMESTAMP NOT NULL,
                level TEXT NOT NULL,
                message TEXT NOT NULL,
                FOREIGN KEY (run_id) REFERENCES runs (run_id)
            )
            """
            )

            conn.commit()

    def start_run(self, config: Dict[str, Any], start_time: datetime) -> int:
        """Start a new tracking run.

        Args:
            config: Dictionary containing configuration for this run
            start_time: Run start timestamp

        Returns:
            run_id: ID of the newly created run
        """
        with self._lock, sqlite3.connect(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(
                "INSERT INTO runs (start_time, status, config) VALUES (?, ?, ?)",
                (start_time.isoformat(), "RUNNING", json.dumps(config, default=str)),
            )
            conn.commit()
            if not isinstance(cursor.lastrowid, int):
                raise Exception("Database last row id is not an integer.")
            return cursor.lastrowid

    def end_run(
        self, run_id: int, status: str, stats: Optional[Dict[str, Any]] = None
    ) -> None:
        """Mark a run as complete with final statistics.

        Args:
            run_id: ID of the run to finish
            status: Final status (SUCCESS, FAILED, etc.)
            stats: Optional statistics about the run
        """
        with self._lock, sqlite3.connect(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(
                "UPDATE runs SET end_time = ?, status = ?, stats = ? WHERE run_id = ?",
                (
                    datetime.now().isoformat(),
                    status,
                    json.dumps(stats) if stats else None,
                    run_id,
                ),
            )
            conn.commit()

    def log_outcomes(self, run_id: int, outcomes: Iterable[OutcomeRecord]) -> int:
        """Store the outcome of every source track for a run.

        Args:
            run_id: ID of the current run
            outcomes: Outcome records to store

        Returns:
            Number of rows written
        """
        rows = []
        for outcome in outcomes:
            data = outcome.to_dict()
            rows.append(
                (
                    run_id,
                    data["index"],
                    data["artist"],
                    data["title"],
                    data["album"],
                    data["played_at"],
                    data["status"],
                    data["catalog_track_id"],
                    data["match_method"],
                    data["confidence_score"],
                    data["error_detail"],
                )
            )

        with self._lock, sqlite3.connect(self.db_path) as conn:
            conn.executemany(
                """
                INSERT INTO track_outcomes (
                    run_id, source_index, artist, title, album, played_at,
                    status, catalog_track_id, match_method, confidence_score,
                    error_detail
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                rows,
            )
            conn.commit()
        return len(rows)

    def add_log(self, level: str, message: str, run_id: Optional[int] = None) -> None:
        """Add a log entry.

        Args:
            level: Log level (DEBUG, INFO, etc.)
            message: Log message
            run_id: Optional ID of the current run
        """
        with self._lock, sqlite3.connect(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(
                "INSERT INTO logs (run_id, timestamp, level, message) VALUES (?, ?, ?, ?)",
                (run_id, datetime.now().isoformat(), level, message),
            )
            conn.commit()

    def get_runs(self) -> pd.DataFrame:
        """Get all runs as a DataFrame.

        Returns:
            DataFrame containing all runs
        """
        with sqlite3.connect(self.db_path) as conn:
            return pd.read_sql_query("SELECT * FROM runs", conn)

    def get_outcomes(self, run_id: Optional[int] = None) -> pd.DataFrame:
        """Get track outcomes as a DataFrame.

        Args:
            run_id: Optional ID to filter by specific run

        Returns:
            DataFrame containing track outcomes ordered by source index
        """
        with sqlite3.connect(self.db_path) as conn:
            query = "SELECT * FROM track_outcomes"
            params: tuple = ()
            if run_id is not None:
                query += " WHERE run_id = ?"
                params = (run_id,)
            query += " ORDER BY run_id, source_index"
            return pd.read_sql_query(query, conn, params=params)

    def get_status_counts(self, run_id: int) -> pd.DataFrame:
        """Count outcomes per status for a run.

        Args:
            run_id: ID of the run

        Returns:
            DataFrame with ``status`` and ``count`` columns, largest first
        """
        outcomes = self.get_outcomes(run_id)
        if outcomes.empty:
            return pd.DataFrame(columns=["status", "count"])
        return (
            outcomes.groupby("status")
            .size()
            .reset_index(name="count")
            .sort_values(["count", "status"], ascending=[False, True])
            .reset_index(drop=True)
        )

    def get_logs(
        self, run_id: Optional[int] = None, level: Optional[str] = None
    ) -> pd.DataFrame:
        """Get logs as a DataFrame.

        Args:
            run_id: Optional ID to filter by specific run
            level: Optional log level to filter by

        Returns:
            DataFrame containing logs
        """
        with sqlite3.connect(self.db_path) as conn:
            query = "SELECT * FROM logs"
            conditions = []
            params = []

            if run_id is not None:
                conditions.append("run_id = ?")
                params.append(run_id)
            if level is not None:
                conditions.append("level = ?")
                params.append(level)

            if conditions:
                query += " WHERE " + " AND ".join(conditions)

            return pd.read_sql_query(query, conn, params=params)
