"""Spotify API client for the liked songs importer."""

import logging
from typing import Any, Dict, List, Optional, Sequence

import requests
import spotipy
from spotipy.oauth2 import SpotifyOAuth, SpotifyOauthError

from clients.base_client import (
    SAVE_ADDED,
    SAVE_ALREADY_PRESENT,
    SAVE_REJECTED,
    CatalogClient,
)
from config import Config
from errors import (
    AuthError,
    FatalError,
    RateLimitedError,
    RequestRejectedError,
    RetryableError,
)
from models import CatalogTrack
from utils.text_processing import build_search_query, safe_get


def classify_error(error: Exception) -> Exception:
    """Translate a spotipy/requests exception into the importer's taxonomy.

    Args:
        error: Exception raised by spotipy or requests

    Returns:
        The matching importer exception (not raised)
    """
    if isinstance(error, SpotifyOauthError):
        return AuthError(f"Spotify authentication failed: {str(error)}")

    if isinstance(error, spotipy.SpotifyException):
        status = error.http_status
        if status == 401:
            return AuthError(f"Spotify rejected the access token: {error.msg}")
        if status == 403:
            return FatalError(f"Spotify denied access (missing scope?): {error.msg}")
        if status == 429:
            retry_after = _retry_after(getattr(error, "headers", None))
            return RateLimitedError(
                f"Spotify rate limit hit: {error.msg}", retry_after=retry_after
            )
        if status is not None and status >= 500:
            return RetryableError(f"Spotify server error {status}: {error.msg}")
        return RequestRejectedError(f"Spotify request failed ({status}): {error.msg}")

    if isinstance(error, (requests.exceptions.Timeout, requests.exceptions.ConnectionError)):
        return RetryableError(f"Network error talking to Spotify: {str(error)}")

    if isinstance(error, requests.exceptions.RequestException):
        return RetryableError(f"Request to Spotify failed: {str(error)}")

    return error


def _retry_after(headers: Optional[Dict[str, Any]]) -> Optional[float]:
    if not headers:
        return None
    value = headers.get("Retry-After") or headers.get("retry-after")
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


class SpotifyClient(CatalogClient):
    """Client for interacting with Spotify API."""

    def __init__(
        self,
        logger: logging.Logger,
        access_token: Optional[str] = None,
        request_timeout: float = Config.REQUEST_TIMEOUT,
        client: Optional[spotipy.Spotify] = None,
        session: Optional[requests.Session] = None,
    ):
        """Initialize Spotify client.

        Args:
            logger: Logger instance
            access_token: Optional bearer token; when absent the OAuth flow
                configured by the SPOTIPY_* environment variables is used
            request_timeout: Per-request timeout in seconds
            client: Pre-built spotipy client (mainly for tests)
            session: HTTP session for spotipy to use (defaults to a new one)
        """
        self.logger = logger
        self.client = client or self._init_spotify_client(
            access_token, request_timeout, session or requests.Session()
        )

    def _init_spotify_client(
        self,
        access_token: Optional[str],
        request_timeout: float,
        session: requests.Session,
    ) -> spotipy.Spotify:
        """Initialize and return authenticated Spotify client.

        spotipy is handed a plain session so it mounts no retry adapter of
        its own. Errors then surface with their real status and headers
        (including Retry-After) and the importer's retry budget and rate
        limit handling stay in control.

        Args:
            access_token: Optional bearer token
            request_timeout: Per-request timeout in seconds
            session: HTTP session without retry adapters

        Returns:
            Authenticated Spotify client instance

        Raises:
            AuthError: If authentication cannot be set up
        """
        try:
            if access_token:
                return spotipy.Spotify(
                    auth=access_token,
                    requests_timeout=request_timeout,
                    requests_session=session,
                )
            auth_manager = SpotifyOAuth(scope=Config.SPOTIFY_SCOPE)
            return spotipy.Spotify(
                auth_manager=auth_manager,
                requests_timeout=request_timeout,
                requests_session=session,
            )
        except Exception as e:
            self.logger.error(f"Failed to initialize Spotify client: {str(e)}")
            raise AuthError(f"Failed to initialize Spotify client: {str(e)}") from e

    def verify(self) -> str:
        """Check the credentials by fetching the current user.

        Returns:
            The user's display name (or ID)

        Raises:
            FatalError: If the credentials are not accepted
        """
        try:
            user = self.client.current_user()
        except Exception as e:
            error = classify_error(e)
            self.logger.error(f"Failed to verify Spotify credentials: {str(error)}")
            if isinstance(error, FatalError):
                raise error from e
            raise FatalError(f"Failed to verify Spotify credentials: {str(error)}") from e

        name = (user or {}).get("display_name") or (user or {}).get("id", "unknown")
        self.logger.info(f"Connected to Spotify as: {name}")
        return name

    def search_tracks(
        self, artist: str, title: str, album: Optional[str] = None, limit: int = 10
    ) -> List[CatalogTrack]:
        query = build_search_query(artist, title, album)
        self.logger.debug(f"Searching Spotify for '{query}'")
        try:
            results = self.client.search(q=query, type="track", limit=limit)
        except Exception as e:
            raise classify_error(e) from e

        items = safe_get(results, ["tracks", "items"], []) or []
        candidates = []
        for item in items:
            if not item or not item.get("id"):
                continue
            candidates.append(
                CatalogTrack(
                    id=item["id"],
                    artist=safe_get(item, ["artists", 0, "name"], ""),
                    title=item.get("name", ""),
                    album=safe_get(item, ["album", "name"]),
                )
            )

        self.logger.debug(f"Found {len(candidates)} candidates for '{query}'")
        return candidates

    def save_tracks(self, track_ids: Sequence[str]) -> Dict[str, str]:
        """Add tracks to liked songs, reporting already-saved ones separately.

        The save endpoint does not report per-track results, so the library
        is checked first and only tracks not yet saved are sent.
        """
        ids = list(dict.fromkeys(track_ids))
        if not ids:
            return {}

        try:
            contained = self.client.current_user_saved_tracks_contains(tracks=ids)
        except Exception as e:
            raise classify_error(e) from e

        statuses = {}
        to_add = []
        for track_id, present in zip(ids, contained or []):
            if present:
                statuses[track_id] = SAVE_ALREADY_PRESENT
            else:
                to_add.append(track_id)
        # Ids the contains call did not answer for are added anyway
        to_add.extend(track_id for track_id in ids[len(contained or []) :])

        if to_add:
            try:
                self.client.current_user_saved_tracks_add(tracks=to_add)
            except Exception as e:
                error = classify_error(e)
                if not isinstance(error, RequestRejectedError):
                    raise error from e
                self.logger.warning(
                    f"Spotify rejected {len(to_add)} tracks: {str(error)}"
                )
                statuses.update({track_id: SAVE_REJECTED for track_id in to_add})
            else:
                statuses.update({track_id: SAVE_ADDED for track_id in to_add})

        self.logger.debug(
            f"Saved batch of {len(ids)}: {len(to_add)} sent, "
            f"{len(ids) - len(to_add)} already present"
        )
        return statuses
