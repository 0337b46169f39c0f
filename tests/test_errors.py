"""Tests for the error taxonomy and user-facing messages."""

from __future__ import annotations

from harmony_player.errors import (
    EmptyTracklist,
    IndexOutOfRange,
    InvalidTrack,
    InvalidTransition,
    NoHistory,
    PlayerError,
    format_user_error,
)


def test_errors_keep_builtin_bases() -> None:
    assert issubclass(InvalidTrack, ValueError)
    assert issubclass(EmptyTracklist, ValueError)
    assert issubclass(IndexOutOfRange, IndexError)
    assert issubclass(NoHistory, LookupError)
    assert issubclass(InvalidTransition, RuntimeError)
    for error in (InvalidTrack, EmptyTracklist, IndexOutOfRange, NoHistory):
        assert issubclass(error, PlayerError)


def test_format_user_error_lines() -> None:
    message = format_user_error(
        what_failed="Failed to play.",
        likely_cause="Stream offline.",
        next_step="Try another track.",
    )
    assert message.splitlines() == [
        "Failed to play.",
        "Likely cause: Stream offline.",
        "Next step: Try another track.",
    ]
    detailed = format_user_error(
        what_failed="x", likely_cause="y", next_step="z", detail="HTTP 404"
    )
    assert detailed.endswith("\nDetails: HTTP 404")
