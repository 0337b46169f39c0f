"""Error taxonomy for the playback queue engine.

Queue errors are raised synchronously by the operation that caused them and
leave the engine usable. Stream and blocked-playback errors originate from the
media backend and are routed through the controller's retry/notice handling.
"""

from __future__ import annotations


class PlayerError(Exception):
    """Base class for all engine errors."""


class InvalidTrack(PlayerError, ValueError):
    """Track has no stream URL and cannot be queued for playback."""


class IndexOutOfRange(PlayerError, IndexError):
    """Queue index does not refer to an existing entry."""


class EmptyTracklist(PlayerError, ValueError):
    """A queue replacement was requested with no tracks."""


class NoHistory(PlayerError, LookupError):
    """No archived queue or previously played track is available."""


class InvalidTransition(PlayerError, RuntimeError):
    """Playback status change not permitted by the state machine."""


class StreamError(PlayerError):
    """Backend could not fetch or decode the stream."""


class PlaybackBlocked(PlayerError):
    """Host policy rejected playback until the user interacts again."""


def format_user_error(
    *, what_failed: str, likely_cause: str, next_step: str, detail: str | None = None
) -> str:
    message = f"{what_failed}\nLikely cause: {likely_cause}\nNext step: {next_step}"
    if detail:
        message = f"{message}\nDetails: {detail}"
    return message
