"""Tests for playback transition rules and transport resolvers."""

from __future__ import annotations

import pytest

from harmony_player.errors import InvalidTransition
from harmony_player.services.playback_state import (
    DEFAULT_VOLUME,
    PlaybackState,
    PreviousDecision,
    TrackEndDecision,
    apply_toggle_mute,
    apply_volume,
    can_transition,
    clamp_seek,
    effective_volume,
    next_repeat_mode,
    resolve_next,
    resolve_previous,
    resolve_track_end,
    transition,
)


def test_idle_cannot_jump_straight_to_playing() -> None:
    assert can_transition("idle", "loading") is True
    assert can_transition("idle", "playing") is False
    assert can_transition("errored", "paused") is False
    assert can_transition("loading", "playing") is True


def test_transition_applies_changes_or_raises() -> None:
    state = transition(PlaybackState(), "loading", play_intent=True)
    assert state.status == "loading"
    assert state.play_intent is True

    with pytest.raises(InvalidTransition):
        transition(PlaybackState(), "paused")


@pytest.mark.parametrize(
    ("repeat", "index", "length", "expected"),
    [
        ("one", 1, 3, TrackEndDecision("restart", 1)),
        ("one", 2, 3, TrackEndDecision("restart", 2)),
        ("off", 0, 3, TrackEndDecision("advance", 1)),
        ("all", 1, 3, TrackEndDecision("advance", 2)),
        ("all", 2, 3, TrackEndDecision("wrap", 0)),
        ("off", 2, 3, TrackEndDecision("stop")),
        ("all", -1, 0, TrackEndDecision("stop")),
    ],
)
def test_track_end_priority(repeat, index, length, expected) -> None:
    assert resolve_track_end(repeat, index, length) == expected


def test_resolve_next() -> None:
    assert resolve_next("off", 0, 2) == 1
    assert resolve_next("off", 1, 2) is None
    assert resolve_next("all", 1, 2) == 0
    assert resolve_next("one", 1, 2) is None
    assert resolve_next("all", -1, 0) is None


def test_resolve_previous_restarts_past_threshold() -> None:
    assert resolve_previous(3.5, "off", 2, 3) == PreviousDecision("restart")
    assert resolve_previous(3.0, "off", 2, 3) == PreviousDecision("select", 1)
    assert resolve_previous(0.0, "off", 0, 3) == PreviousDecision("restart")
    assert resolve_previous(0.0, "all", 0, 3) == PreviousDecision("select", 2)


def test_repeat_mode_cycle() -> None:
    assert next_repeat_mode("off") == "all"
    assert next_repeat_mode("all") == "one"
    assert next_repeat_mode("one") == "off"


def test_clamp_seek() -> None:
    assert clamp_seek(-1.0, 100.0) == 0.0
    assert clamp_seek(50.0, 100.0) == 50.0
    assert clamp_seek(150.0, 100.0) == 100.0


def test_volume_zero_remembers_previous_level() -> None:
    state = apply_volume(PlaybackState(volume=0.5), 0.0)
    assert state.muted is True
    assert state.pre_mute_volume == 0.5
    assert effective_volume(state) == 0.0

    restored = apply_toggle_mute(state)
    assert restored.muted is False
    assert restored.volume == 0.5


def test_toggle_mute_keeps_slider_volume() -> None:
    muted = apply_toggle_mute(PlaybackState(volume=0.3))
    assert muted.volume == 0.3
    assert effective_volume(muted) == 0.0
    assert apply_toggle_mute(muted).volume == 0.3


def test_unmute_with_nothing_remembered_uses_default() -> None:
    state = PlaybackState(volume=0.0, muted=True, pre_mute_volume=0.0)
    assert apply_toggle_mute(state).volume == DEFAULT_VOLUME


def test_volume_is_clamped() -> None:
    assert apply_volume(PlaybackState(), 2.0).volume == 1.0
    assert apply_volume(PlaybackState(), -1.0).muted is True
