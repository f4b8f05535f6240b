"""Base catalog client interface for the import pipeline."""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence

from models import CatalogTrack

# Per-id results of a save request
SAVE_ADDED = "added"
SAVE_ALREADY_PRESENT = "already_present"
SAVE_REJECTED = "rejected"


class CatalogClient(ABC):
    """Base abstract class for destination catalog clients."""

    @abstractmethod
    def search_tracks(
        self, artist: str, title: str, album: Optional[str] = None, limit: int = 10
    ) -> List[CatalogTrack]:
        """Search the catalog for a track.

        Args:
            artist: Artist name
            title: Track title
            album: Optional album name to narrow the search
            limit: Maximum number of candidates

        Returns:
            Candidates in the catalog's relevance order

        Raises:
            RetryableError: On network, timeout or rate limit failures
            FatalError: On authentication failures
        """
        pass

    @abstractmethod
    def save_tracks(self, track_ids: Sequence[str]) -> Dict[str, str]:
        """Add tracks to the user's liked songs.

        Args:
            track_ids: Catalog track IDs, at most one batch worth

        Returns:
            Mapping of every requested ID to ``SAVE_ADDED``,
            ``SAVE_ALREADY_PRESENT`` or ``SAVE_REJECTED``

        Raises:
            RetryableError: On network, timeout or rate limit failures
            FatalError: On authentication failures
        """
        pass
