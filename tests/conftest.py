"""
Pytest configuration and shared fixtures for importer tests.
"""

import logging
import threading
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import pytest

from clients.base_client import (
    SAVE_ADDED,
    SAVE_ALREADY_PRESENT,
    SAVE_REJECTED,
    CatalogClient,
)
from database import Database
from models import CatalogTrack, SourceTrack
from pipeline.ledger import Ledger


class FakeCatalog(CatalogClient):
    """In-memory catalog that records every call."""

    def __init__(self):
        self.results: Dict[Tuple[str, str], List[CatalogTrack]] = {}
        self.search_errors: Dict[Tuple[str, str], List[Exception]] = {}
        self.save_errors: List[Exception] = []
        self.library = set()
        self.rejected = set()
        self.search_calls: List[Tuple[str, str, Optional[str]]] = []
        self.save_calls: List[List[str]] = []
        self.on_search: Optional[Callable[[str, str], None]] = None
        self._lock = threading.Lock()

    def add_result(self, artist: str, title: str, *candidates: CatalogTrack):
        self.results.setdefault((artist, title), []).extend(candidates)

    def search_tracks(self, artist, title, album=None, limit=10):
        with self._lock:
            self.search_calls.append((artist, title, album))
            errors = self.search_errors.get((artist, title))
            error = errors.pop(0) if errors else None
        if self.on_search is not None:
            self.on_search(artist, title)
        if error is not None:
            raise error
        return list(self.results.get((artist, title), []))[:limit]

    def save_tracks(self, track_ids: Sequence[str]) -> Dict[str, str]:
        with self._lock:
            self.save_calls.append(list(track_ids))
            if self.save_errors:
                raise self.save_errors.pop(0)
            statuses = {}
            for track_id in track_ids:
                if track_id in self.rejected:
                    statuses[track_id] = SAVE_REJECTED
                elif track_id in self.library:
                    statuses[track_id] = SAVE_ALREADY_PRESENT
                else:
                    self.library.add(track_id)
                    statuses[track_id] = SAVE_ADDED
            return statuses


@pytest.fixture
def logger() -> logging.Logger:
    return logging.getLogger("importer_tests")


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog()


@pytest.fixture
def ledger() -> Ledger:
    return Ledger()


@pytest.fixture
def sleeps() -> List[float]:
    """Collects sleep durations instead of sleeping."""
    return []


@pytest.fixture
def fake_sleep(sleeps):
    return sleeps.append


@pytest.fixture
def beatles_track() -> SourceTrack:
    return SourceTrack(index=0, artist="The Beatles", title="Let It Be")


@pytest.fixture
def db(tmp_path) -> Database:
    return Database(str(tmp_path / "test.db"))


def make_tracks(count: int, start: int = 0) -> List[SourceTrack]:
    return [
        SourceTrack(index=start + i, artist=f"Artist {i}", title=f"Song {i}")
        for i in range(count)
    ]
