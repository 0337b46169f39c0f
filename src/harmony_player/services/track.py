"""Track value model and catalog payload mapping."""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

UNKNOWN_ARTIST = "Unknown Artist"


@dataclass(frozen=True)
class Track:
    """Immutable playable unit handed to the engine by discovery."""

    id: str
    title: str
    artists: tuple[str, ...] = ()
    artwork_url: str | None = None
    duration_hint: float | None = None
    stream_url: str | None = None

    @property
    def is_playable(self) -> bool:
        return bool(self.stream_url and self.stream_url.strip())

    @property
    def artist_line(self) -> str:
        return ", ".join(self.artists) if self.artists else UNKNOWN_ARTIST


def track_from_catalog(payload: Mapping[str, Any]) -> Track:
    """Build a `Track` from one catalog search result.

    The catalog lists artwork and download URLs from lowest to highest quality;
    the highest-quality entry wins. A result without any download URL maps to
    an unplayable track rather than being dropped, so callers can still show it.
    """
    track_id = payload.get("id")
    if track_id is None or str(track_id).strip() == "":
        raise ValueError("catalog payload is missing an id")
    title = payload.get("name") or payload.get("title") or "Untitled"
    return Track(
        id=str(track_id),
        title=str(title),
        artists=_artist_names(payload.get("artists")),
        artwork_url=_last_url(payload.get("image")),
        duration_hint=_duration_seconds(payload.get("duration")),
        stream_url=_last_url(payload.get("downloadUrl")),
    )


def _artist_names(value: Any) -> tuple[str, ...]:
    if isinstance(value, Mapping):
        value = value.get("primary")
    if not isinstance(value, list):
        return ()
    names: list[str] = []
    for artist in value:
        if isinstance(artist, Mapping):
            name = artist.get("name")
        else:
            name = artist
        if isinstance(name, str) and name.strip():
            names.append(name.strip())
    return tuple(names)


def _last_url(value: Any) -> str | None:
    if not isinstance(value, list):
        return None
    for entry in reversed(value):
        url = entry.get("url") if isinstance(entry, Mapping) else entry
        if isinstance(url, str) and url.strip():
            return url.strip()
    return None


def _duration_seconds(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(seconds) or seconds <= 0:
        return None
    return seconds
