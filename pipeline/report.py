"""Failure report output."""

import json
import os
from datetime import datetime
from typing import List

from config import Config
from errors import ReportWriteError
from models import OutcomeRecord


def report_filename(started_at: datetime, prefix: str = Config.REPORT_PREFIX) -> str:
    """File name for a run's failure report, e.g.
    ``spotifyimport-failures-20261019T101500.json``."""
    return f"{prefix}-{started_at.strftime('%Y%m%dT%H%M%S')}.json"


def write_failure_report(
    failures: List[OutcomeRecord], report_dir: str, started_at: datetime
) -> str:
    """Write the finalized failures as a JSON array.

    Args:
        failures: Non-success outcomes in source order
        report_dir: Directory for the report
        started_at: Run start timestamp, embedded in the file name

    Returns:
        Path of the written report

    Raises:
        ReportWriteError: If the file cannot be written
    """
    path = os.path.join(report_dir, report_filename(started_at))
    try:
        os.makedirs(report_dir, exist_ok=True)
        with open(path, "w", encoding="utf-8") as file:
            json.dump([f.to_dict() for f in failures], file, indent=4, ensure_ascii=False)
    except OSError as e:
        raise ReportWriteError(f"Could not write failure report {path}: {str(e)}") from e
    return path
