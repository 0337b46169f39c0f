"""Tests for persisted settings."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from harmony_player.services.playback_state import PlaybackState
from harmony_player.state_store import (
    AppState,
    app_state_from_playback,
    load_state,
    load_state_with_notice,
    playback_state_from_app_state,
    save_state,
)


def test_state_roundtrip(tmp_path) -> None:
    path = tmp_path / "settings.json"
    state = AppState(
        volume=0.35,
        muted=True,
        repeat_mode="one",
        shuffle=True,
        playback_backend="fake",
        log_level="DEBUG",
    )

    save_state(path, state)
    assert load_state(path) == state
    assert list(tmp_path.iterdir()) == [path]


def test_missing_file_defaults_without_notice(tmp_path) -> None:
    state, notice = load_state_with_notice(tmp_path / "absent.json")
    assert state == AppState()
    assert notice is None


def test_state_corrupt_json_defaults(tmp_path, caplog) -> None:
    path = tmp_path / "settings.json"
    path.write_text("{bad json", encoding="utf-8")

    state, notice = load_state_with_notice(path)
    assert state == AppState()
    assert notice is not None
    assert "corrupt or partially written" in notice
    assert any("invalid JSON" in record.message for record in caplog.records)


def test_state_non_object_defaults(tmp_path) -> None:
    path = tmp_path / "settings.json"
    path.write_text("[1, 2]", encoding="utf-8")
    state, notice = load_state_with_notice(path)
    assert state == AppState()
    assert notice is not None


def test_invalid_values_are_coerced(tmp_path) -> None:
    path = tmp_path / "settings.json"
    path.write_text(
        json.dumps(
            {
                "volume": 4,
                "muted": "yes",
                "repeat_mode": "ALL",
                "shuffle": 1,
                "playback_backend": "winamp",
                "unknown": True,
            }
        ),
        encoding="utf-8",
    )
    state = load_state(path)
    assert state.volume == 1.0
    assert state.muted is False
    assert state.repeat_mode == "all"
    assert state.shuffle is False
    assert state.playback_backend == "vlc"


def test_non_finite_volume_defaults(tmp_path) -> None:
    path = tmp_path / "settings.json"
    path.write_text('{"volume": NaN}', encoding="utf-8")
    assert load_state(path).volume == AppState().volume


def test_state_save_replace_failure_keeps_previous_file(tmp_path, monkeypatch) -> None:
    path = tmp_path / "settings.json"
    original = AppState(playback_backend="fake")
    save_state(path, original)
    updated = AppState(playback_backend="vlc", volume=0.2)

    def fail_replace(self: Path, target: Path) -> None:
        del target
        if self.suffix == ".tmp":
            raise OSError("replace failed")
        return None

    monkeypatch.setattr(Path, "replace", fail_replace)

    with pytest.raises(OSError):
        save_state(path, updated)

    monkeypatch.undo()
    assert load_state(path) == original
    assert list(tmp_path.iterdir()) == [path]


def test_playback_state_seeded_from_settings() -> None:
    playback = playback_state_from_app_state(
        AppState(volume=0.4, muted=True, repeat_mode="all", shuffle=True)
    )
    assert playback.volume == 0.4
    assert playback.pre_mute_volume == 0.4
    assert playback.muted is True
    assert playback.repeat_mode == "all"
    assert playback.shuffle_enabled is True
    assert playback.status == "idle"


def test_zero_volume_setting_starts_muted() -> None:
    playback = playback_state_from_app_state(AppState(volume=0.0))
    assert playback.muted is True
    assert playback.volume == 0.0
    assert playback.pre_mute_volume == AppState().volume


def test_settings_captured_from_playback() -> None:
    base = AppState(log_level="DEBUG")
    playback = PlaybackState(
        volume=0.0, muted=True, pre_mute_volume=0.6, repeat_mode="one", shuffle_enabled=True
    )
    captured = app_state_from_playback(base, playback, backend_name="fake")
    assert captured == AppState(
        volume=0.6,
        muted=True,
        repeat_mode="one",
        shuffle=True,
        playback_backend="fake",
        log_level="DEBUG",
    )
