import json
import logging
import os
from datetime import datetime

import pytest

import main as main_module
from config import ImportSettings
from database import Database
from errors import AuthError, DecodeError, FatalError, RateLimitedError
from main import ImportApp, main
from models import CatalogTrack
from pipeline.report import report_filename
from utils.logging_utils import LOGGER_NAME

STARTED_AT = datetime(2026, 10, 19, 9, 0, 0)

SCROBBLES = json.dumps(
    [
        {"artist": "The Beatles", "title": "Let It Be", "playedAt": "2024-03-01T10:00:00Z"},
        {"artist": "Nobody", "title": "Unreleased Demo"},
        {"artist": "Queen", "title": "Bicycle Race", "album": "Jazz"},
        {"artist": "The Beatles", "title": "Let It Be", "playedAt": 1709290000},
    ]
).encode("utf-8")


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    logging.getLogger(LOGGER_NAME).handlers = []


@pytest.fixture
def seeded_catalog(catalog):
    catalog.add_result(
        "The Beatles", "Let It Be", CatalogTrack("beatles", "The Beatles", "Let It Be")
    )
    catalog.add_result(
        "Queen", "Bicycle Race", CatalogTrack("queen", "Queen", "Bicycle Race", "Jazz")
    )
    return catalog


def _app(tmp_path, catalog, fake_sleep, **settings):
    return ImportApp(
        settings=ImportSettings(report_dir=str(tmp_path / "reports"), **settings),
        catalog=catalog,
        database_path=str(tmp_path / "runs.db"),
        log_file=None,
        started_at=STARTED_AT,
        sleep=fake_sleep,
        show_progress=False,
    )


def _report(tmp_path):
    with open(tmp_path / "reports" / report_filename(STARTED_AT), encoding="utf-8") as f:
        return json.load(f)


def test_dry_run_reports_unmatched_and_adds_nothing(tmp_path, seeded_catalog, fake_sleep):
    app = _app(tmp_path, seeded_catalog, fake_sleep)

    result = app.run(SCROBBLES)

    assert seeded_catalog.save_calls == []
    assert result.counts["would_add"] == 3
    assert result.counts["unmatched"] == 1
    assert [entry["index"] for entry in _report(tmp_path)] == [1]
    assert app.db.get_runs().loc[0, "status"] == "SUCCESS"
    assert len(app.db.get_outcomes(result.run_id)) == 4


def test_mutate_adds_each_catalog_track_once(tmp_path, seeded_catalog, fake_sleep):
    app = _app(tmp_path, seeded_catalog, fake_sleep, mutate=True)

    result = app.run(SCROBBLES)

    assert sorted(sum(seeded_catalog.save_calls, [])) == ["beatles", "queen"]
    assert result.counts["added"] == 2
    assert result.counts["already_present"] == 1
    assert result.batches_submitted == 1
    assert len(result.failures) == 1


def test_decode_error_aborts_before_any_search(tmp_path, catalog, fake_sleep):
    app = _app(tmp_path, catalog, fake_sleep)

    with pytest.raises(DecodeError):
        app.run(b'[{"title": "no artist"}]')

    assert catalog.search_calls == []
    assert not os.path.exists(tmp_path / "reports")
    assert app.db.get_runs().loc[0, "status"] == "FAILED"


def test_fatal_error_still_writes_partial_report(tmp_path, seeded_catalog, fake_sleep):
    seeded_catalog.search_errors[("Queen", "Bicycle Race")] = [AuthError("token expired")]
    app = _app(tmp_path, seeded_catalog, fake_sleep, mutate=True, concurrency_limit=1)

    with pytest.raises(AuthError):
        app.run(SCROBBLES)

    report = _report(tmp_path)
    assert len(report) >= 2
    assert [entry["index"] for entry in report] == sorted(entry["index"] for entry in report)
    assert any("token expired" in (entry["error_detail"] or "") for entry in report)
    assert app.db.get_runs().loc[0, "status"] == "ABORTED"
    assert len(app.db.get_outcomes()) == 4


def test_cli_exits_non_zero_on_bad_input(tmp_path, capsys):
    bad_input = tmp_path / "bad.json"
    bad_input.write_text("{not json")

    with pytest.raises(SystemExit) as excinfo:
        main(
            [
                "--input",
                str(bad_input),
                "--access-token",
                "dummy",
                "--database",
                str(tmp_path / "runs.db"),
                "--log-file",
                str(tmp_path / "run.log"),
                "--report-dir",
                str(tmp_path),
                "--no-progress",
            ]
        )

    assert excinfo.value.code == 1
    assert "not valid JSON" in capsys.readouterr().err


def test_cli_exits_non_zero_on_missing_input(tmp_path):
    with pytest.raises(SystemExit) as excinfo:
        main(["--input", str(tmp_path / "missing.json")])
    assert excinfo.value.code == 1


def test_cli_rejects_invalid_batch_size():
    with pytest.raises(SystemExit) as excinfo:
        main(["--batch-size", "100"])
    assert excinfo.value.code == 2


@pytest.mark.parametrize(
    "overrides",
    [
        {"rate_limit_backoff": -5},
        {"retry_base_delay": -1},
        {"max_rate_limit_waits": -1},
        {"request_timeout": 0},
        {"search_limit": 0},
        {"search_limit": 51},
    ],
)
def test_settings_reject_out_of_range_values(overrides):
    with pytest.raises(ValueError):
        ImportSettings(**overrides)


def test_cli_rejects_invalid_search_limit():
    with pytest.raises(SystemExit) as excinfo:
        main(["--search-limit", "0"])
    assert excinfo.value.code == 2


def test_unexpected_error_still_writes_report(tmp_path, seeded_catalog):
    seeded_catalog.save_errors = [RateLimitedError("slow down")]

    def broken_sleep(seconds):
        raise ValueError("sleep length must be non-negative")

    app = _app(tmp_path, seeded_catalog, broken_sleep, mutate=True)

    with pytest.raises(FatalError):
        app.run(SCROBBLES)

    assert [entry["index"] for entry in _report(tmp_path)] == [0, 1, 2, 3]
    assert app.db.get_runs().loc[0, "status"] == "ABORTED"


def test_client_setup_failure_marks_run_failed(tmp_path, monkeypatch):
    def failing_client(*args, **kwargs):
        raise AuthError("no credentials")

    monkeypatch.setattr(main_module, "SpotifyClient", failing_client)

    with pytest.raises(AuthError):
        ImportApp(
            settings=ImportSettings(report_dir=str(tmp_path)),
            database_path=str(tmp_path / "runs.db"),
            log_file=None,
            show_progress=False,
        )

    runs = Database(str(tmp_path / "runs.db")).get_runs()
    assert runs.loc[0, "status"] == "FAILED"
