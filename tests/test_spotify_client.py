import json
from unittest.mock import MagicMock

import pytest
import requests
from spotipy import SpotifyException

from clients.base_client import SAVE_ADDED, SAVE_ALREADY_PRESENT, SAVE_REJECTED
from clients.spotify_client import SpotifyClient, classify_error
from errors import (
    AuthError,
    FatalError,
    RateLimitedError,
    RequestRejectedError,
    RetryableError,
)


@pytest.fixture
def spotipy_mock():
    return MagicMock()


@pytest.fixture
def client(spotipy_mock, logger):
    return SpotifyClient(logger, client=spotipy_mock)


def _item(track_id, artist, title, album):
    return {
        "id": track_id,
        "name": title,
        "artists": [{"name": artist}, {"name": "Guest"}],
        "album": {"name": album},
    }


def test_search_parses_candidates(client, spotipy_mock):
    spotipy_mock.search.return_value = {
        "tracks": {
            "items": [
                _item("1", "The Beatles", "Let It Be", "Let It Be"),
                None,
                {"id": None, "name": "broken"},
            ]
        }
    }

    candidates = client.search_tracks("The Beatles", "Let It Be", limit=5)

    spotipy_mock.search.assert_called_once_with(
        q="track:Let It Be artist:The Beatles", type="track", limit=5
    )
    assert len(candidates) == 1
    assert candidates[0].id == "1"
    assert candidates[0].artist == "The Beatles"
    assert candidates[0].album == "Let It Be"


def test_search_includes_album_in_query(client, spotipy_mock):
    spotipy_mock.search.return_value = {"tracks": {"items": []}}

    assert client.search_tracks("Queen", "Jazz", album="Jazz") == []
    assert spotipy_mock.search.call_args.kwargs["q"] == "track:Jazz artist:Queen album:Jazz"


def test_search_translates_rate_limit(client, spotipy_mock):
    spotipy_mock.search.side_effect = SpotifyException(
        429, -1, "too many requests", headers={"Retry-After": "12"}
    )

    with pytest.raises(RateLimitedError) as excinfo:
        client.search_tracks("A", "B")
    assert excinfo.value.retry_after == 12.0


def test_save_reports_already_present_ids(client, spotipy_mock):
    spotipy_mock.current_user_saved_tracks_contains.return_value = [False, True, False]

    statuses = client.save_tracks(["a", "b", "c"])

    spotipy_mock.current_user_saved_tracks_add.assert_called_once_with(tracks=["a", "c"])
    assert statuses == {"a": SAVE_ADDED, "b": SAVE_ALREADY_PRESENT, "c": SAVE_ADDED}


def test_save_skips_add_when_everything_is_saved(client, spotipy_mock):
    spotipy_mock.current_user_saved_tracks_contains.return_value = [True]

    assert client.save_tracks(["a"]) == {"a": SAVE_ALREADY_PRESENT}
    spotipy_mock.current_user_saved_tracks_add.assert_not_called()


def test_save_marks_rejected_ids(client, spotipy_mock):
    spotipy_mock.current_user_saved_tracks_contains.return_value = [True, False]
    spotipy_mock.current_user_saved_tracks_add.side_effect = SpotifyException(
        400, -1, "invalid id"
    )

    statuses = client.save_tracks(["a", "bad"])

    assert statuses == {"a": SAVE_ALREADY_PRESENT, "bad": SAVE_REJECTED}


def test_save_propagates_auth_failure(client, spotipy_mock):
    spotipy_mock.current_user_saved_tracks_contains.side_effect = SpotifyException(
        401, -1, "expired"
    )

    with pytest.raises(AuthError):
        client.save_tracks(["a"])


def test_verify_raises_fatal_on_bad_token(client, spotipy_mock):
    spotipy_mock.current_user.side_effect = SpotifyException(401, -1, "invalid token")

    with pytest.raises(AuthError):
        client.verify()


def test_verify_returns_display_name(client, spotipy_mock):
    spotipy_mock.current_user.return_value = {"display_name": "Jo", "id": "jo1"}

    assert client.verify() == "Jo"


@pytest.mark.parametrize(
    "error, expected",
    [
        (SpotifyException(401, -1, "expired"), AuthError),
        (SpotifyException(403, -1, "scope"), FatalError),
        (SpotifyException(429, -1, "slow"), RateLimitedError),
        (SpotifyException(502, -1, "bad gateway"), RetryableError),
        (SpotifyException(404, -1, "missing"), RequestRejectedError),
        (requests.exceptions.ReadTimeout("timed out"), RetryableError),
        (requests.exceptions.ConnectionError("refused"), RetryableError),
    ],
)
def test_classify_error(error, expected):
    assert isinstance(classify_error(error), expected)


def test_classify_error_leaves_unknown_errors_alone():
    error = KeyError("x")
    assert classify_error(error) is error


class CannedAdapter(requests.adapters.BaseAdapter):
    """Transport adapter answering every request with one fixed response."""

    def __init__(self, status_code, body=None, headers=None):
        super().__init__()
        self.status_code = status_code
        self.body = body if body is not None else {}
        self.headers = headers or {}
        self.sent = []

    def send(self, request, **kwargs):
        self.sent.append(request)
        response = requests.Response()
        response.status_code = self.status_code
        response.reason = "canned"
        response.headers.update(self.headers)
        response._content = json.dumps(self.body).encode("utf-8")
        response.url = request.url
        response.request = request
        return response

    def close(self):
        pass


def _http_client(logger, adapter):
    session = requests.Session()
    session.mount("https://", adapter)
    return SpotifyClient(logger, access_token="token", session=session)


def test_http_rate_limit_carries_retry_after(logger):
    adapter = CannedAdapter(
        429,
        {"error": {"status": 429, "message": "API rate limit exceeded"}},
        {"Retry-After": "7"},
    )

    with pytest.raises(RateLimitedError) as excinfo:
        _http_client(logger, adapter).search_tracks("Queen", "Jazz")

    assert excinfo.value.retry_after == 7.0
    assert len(adapter.sent) == 1


def test_http_server_error_is_retryable_not_rate_limited(logger):
    adapter = CannedAdapter(503, {"error": {"status": 503, "message": "unavailable"}})

    with pytest.raises(RetryableError) as excinfo:
        _http_client(logger, adapter).search_tracks("Queen", "Jazz")

    assert not isinstance(excinfo.value, RateLimitedError)
    assert "503" in str(excinfo.value)
    assert len(adapter.sent) == 1


def test_http_search_sends_bearer_token(logger):
    adapter = CannedAdapter(
        200, {"tracks": {"items": [_item("q1", "Queen", "Jazz", "Jazz")]}}
    )

    candidates = _http_client(logger, adapter).search_tracks("Queen", "Jazz", limit=3)

    assert [c.id for c in candidates] == ["q1"]
    assert adapter.sent[0].headers["Authorization"] == "Bearer token"
