"""Playback state snapshot, transition rules, and transport resolvers.

`PlaybackState` is the single authoritative snapshot of what the engine is
doing. Only `PlaybackController` replaces it; status changes go through
`transition`, which enforces `ALLOWED_TRANSITIONS`. The resolvers are pure
functions so repeat/advance/previous rules can be reasoned about in isolation.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Literal

from harmony_player.errors import InvalidTransition
from harmony_player.services.track import Track

STATUS = Literal["idle", "loading", "playing", "paused", "errored"]
REPEAT = Literal["off", "all", "one"]
TRACK_END_ACTION = Literal["restart", "advance", "wrap", "stop"]
PREVIOUS_ACTION = Literal["restart", "select"]

RESTART_THRESHOLD_SECONDS = 3.0
DEFAULT_VOLUME = 0.7

ALLOWED_TRANSITIONS: dict[STATUS, frozenset[STATUS]] = {
    "idle": frozenset({"idle", "loading", "errored"}),
    "loading": frozenset({"idle", "loading", "playing", "paused", "errored"}),
    "playing": frozenset({"idle", "loading", "playing", "paused", "errored"}),
    "paused": frozenset({"idle", "loading", "playing", "paused", "errored"}),
    "errored": frozenset({"idle", "loading", "errored"}),
}


@dataclass(frozen=True)
class PlaybackState:
    """Read-only snapshot of transport and queue position exposed to observers."""

    status: STATUS = "idle"
    current_index: int = -1
    current_track: Track | None = None
    queue: tuple[Track, ...] = ()
    position_seconds: float = 0.0
    duration_seconds: float = 0.0
    volume: float = DEFAULT_VOLUME
    muted: bool = False
    pre_mute_volume: float = DEFAULT_VOLUME
    repeat_mode: REPEAT = "off"
    shuffle_enabled: bool = False
    play_intent: bool = False
    last_error: str | None = None
    retry_count: int = 0


@dataclass(frozen=True)
class TrackEndDecision:
    action: TRACK_END_ACTION
    index: int | None = None


@dataclass(frozen=True)
class PreviousDecision:
    action: PREVIOUS_ACTION
    index: int | None = None


def can_transition(current: STATUS, target: STATUS) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def transition(state: PlaybackState, status: STATUS, **changes: Any) -> PlaybackState:
    """Return `state` moved to `status` with extra field changes applied."""
    if not can_transition(state.status, status):
        raise InvalidTransition(f"Cannot move playback from {state.status} to {status}.")
    return replace(state, status=status, **changes)


def resolve_track_end(
    repeat_mode: REPEAT, current_index: int, queue_length: int
) -> TrackEndDecision:
    """Decide what follows a natural track end.

    Priority: repeat-one restart, next queued track, repeat-all wrap, stop.
    """
    if current_index < 0 or queue_length <= 0:
        return TrackEndDecision("stop")
    if repeat_mode == "one":
        return TrackEndDecision("restart", current_index)
    if current_index + 1 < queue_length:
        return TrackEndDecision("advance", current_index + 1)
    if repeat_mode == "all":
        return TrackEndDecision("wrap", 0)
    return TrackEndDecision("stop")


def resolve_next(repeat_mode: REPEAT, current_index: int, queue_length: int) -> int | None:
    """Index for a user skip-forward, or None at the end of the queue."""
    if queue_length <= 0:
        return None
    if current_index + 1 < queue_length:
        return current_index + 1
    if repeat_mode == "all":
        return 0
    return None


def resolve_previous(
    position_seconds: float,
    repeat_mode: REPEAT,
    current_index: int,
    queue_length: int,
) -> PreviousDecision:
    if position_seconds > RESTART_THRESHOLD_SECONDS:
        return PreviousDecision("restart")
    if current_index > 0:
        return PreviousDecision("select", current_index - 1)
    if repeat_mode == "all" and queue_length > 0:
        return PreviousDecision("select", queue_length - 1)
    return PreviousDecision("restart")


def next_repeat_mode(mode: REPEAT) -> REPEAT:
    if mode == "off":
        return "all"
    if mode == "all":
        return "one"
    return "off"


def clamp_seek(seconds: float, duration_seconds: float) -> float:
    return _clamp_float(seconds, 0.0, max(0.0, duration_seconds))


def apply_volume(state: PlaybackState, volume: float) -> PlaybackState:
    """Set slider volume; zero mutes and a positive value clears the mute."""
    value = _clamp_float(volume, 0.0, 1.0)
    if value == 0.0:
        remembered = state.volume if state.volume > 0 else state.pre_mute_volume
        return replace(state, volume=0.0, muted=True, pre_mute_volume=remembered)
    return replace(state, volume=value, muted=False)


def apply_toggle_mute(state: PlaybackState) -> PlaybackState:
    """Mute remembering the current volume, or unmute restoring it."""
    if state.muted:
        restored = state.pre_mute_volume if state.pre_mute_volume > 0 else DEFAULT_VOLUME
        return replace(state, muted=False, volume=restored)
    remembered = state.volume if state.volume > 0 else state.pre_mute_volume
    return replace(state, muted=True, pre_mute_volume=remembered)


def effective_volume(state: PlaybackState) -> float:
    return 0.0 if state.muted else state.volume


def _clamp_float(value: float, min_value: float, max_value: float) -> float:
    return max(min_value, min(value, max_value))
