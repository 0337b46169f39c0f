"""Service events emitted by `PlaybackController` to its observers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from harmony_player.services.playback_state import PlaybackState
    from harmony_player.services.track import Track

NoticeLevel = Literal["info", "success", "warning", "error"]


@dataclass(frozen=True)
class PlayerStateChanged:
    """Emitted whenever the effective playback snapshot changes."""

    state: PlaybackState


@dataclass(frozen=True)
class TrackChanged:
    """Emitted when a different track is handed to the media backend."""

    track: Track | None


@dataclass(frozen=True)
class PlayerNotice:
    """User-visible notice (toast) that does not change playback state."""

    message: str
    level: NoticeLevel = "info"
