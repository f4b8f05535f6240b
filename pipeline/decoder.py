"""Decode a scrobble export into SourceTrack records."""

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Union

from errors import DecodeError
from models import SourceTrack

ARTIST_KEYS = ("artist", "artistName")
TITLE_KEYS = ("title", "name", "trackName")
ALBUM_KEYS = ("album", "albumName")
PLAYED_AT_KEYS = ("playedAt", "played_at", "timestamp")

# Epoch values above this are taken as milliseconds
_EPOCH_MS_CUTOFF = 10**11


def decode_tracks(raw: Union[bytes, str]) -> List[SourceTrack]:
    """Parse a JSON array of scrobbles.

    Args:
        raw: JSON document as bytes or text

    Returns:
        Source tracks in document order

    Raises:
        DecodeError: If the document is not valid JSON, is not an array of
            objects, or an entry lacks an artist or title
    """
    try:
        document = json.loads(raw)
    except (ValueError, UnicodeDecodeError) as e:
        raise DecodeError(f"Input is not valid JSON: {str(e)}") from e

    if not isinstance(document, list):
        raise DecodeError(
            f"Expected a JSON array of tracks, got {type(document).__name__}"
        )

    return [decode_track(index, entry) for index, entry in enumerate(document)]


def decode_track(index: int, entry: Any) -> SourceTrack:
    """Validate one scrobble entry into a SourceTrack."""
    if not isinstance(entry, dict):
        raise DecodeError(f"Track {index}: expected an object, got {type(entry).__name__}")

    artist = _required_string(entry, ARTIST_KEYS, "artist", index)
    title = _required_string(entry, TITLE_KEYS, "title", index)
    album = _optional_string(entry, ALBUM_KEYS, "album", index)

    played_at = None
    raw_played_at = _first_present(entry, PLAYED_AT_KEYS)
    if raw_played_at is not None:
        played_at = parse_played_at(raw_played_at, index)

    return SourceTrack(
        index=index, artist=artist, title=title, album=album, played_at=played_at
    )


def parse_played_at(value: Any, index: int = 0) -> datetime:
    """Parse an ISO-8601 string or a numeric epoch (seconds or milliseconds).

    Naive timestamps are assumed to be UTC.
    """
    if isinstance(value, bool):
        raise DecodeError(f"Track {index}: invalid playedAt {value!r}")

    if isinstance(value, (int, float)):
        return _from_epoch(value, index)

    if isinstance(value, str):
        text = value.strip()
        try:
            return _from_epoch(float(text), index)
        except ValueError:
            pass
        if text.endswith("Z") or text.endswith("z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as e:
            raise DecodeError(f"Track {index}: invalid playedAt {value!r}") from e
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    raise DecodeError(f"Track {index}: invalid playedAt {value!r}")


def _from_epoch(value: float, index: int) -> datetime:
    if value > _EPOCH_MS_CUTOFF:
        value = value / 1000
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as e:
        raise DecodeError(f"Track {index}: playedAt {value!r} out of range") from e


def _first_present(entry: Dict[str, Any], keys: Sequence[str]) -> Any:
    # Blank strings fall through to the next alias
    for key in keys:
        value = entry.get(key)
        if value is None or (isinstance(value, str) and not value.strip()):
            continue
        return value
    return None


def _required_string(
    entry: Dict[str, Any], keys: Sequence[str], field: str, index: int
) -> str:
    value = _optional_string(entry, keys, field, index)
    if value is None:
        raise DecodeError(f"Track {index}: missing required field '{field}'")
    return value


def _optional_string(
    entry: Dict[str, Any], keys: Sequence[str], field: str, index: int
) -> Optional[str]:
    value = _first_present(entry, keys)
    if value is None:
        return None
    if not isinstance(value, str):
        raise DecodeError(f"Track {index}: field '{field}' must be a string")
    value = value.strip()
    return value or None
