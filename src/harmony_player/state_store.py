"""JSON persistence for user playback settings.

Loading is tolerant of missing or invalid values so a corrupt or partially
written file degrades to defaults instead of aborting startup. Only settings
are persisted; the queue itself belongs to the playlist collaborator.
"""

from __future__ import annotations

import json
import logging
import math
from contextlib import suppress
from dataclasses import asdict, dataclass, replace
from pathlib import Path
from typing import Any
from uuid import uuid4

from harmony_player.errors import format_user_error
from harmony_player.runtime_config import (
    DEFAULT_BACKEND,
    normalize_backend_name,
    normalize_repeat_mode,
)
from harmony_player.services.playback_state import DEFAULT_VOLUME, PlaybackState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppState:
    """Settings restored at startup and saved on exit."""

    volume: float = DEFAULT_VOLUME
    muted: bool = False
    repeat_mode: str = "off"
    shuffle: bool = False
    playback_backend: str = DEFAULT_BACKEND
    log_level: str = "INFO"


def _coerce_state(data: dict[str, Any]) -> AppState:
    """Coerce an untyped JSON object into `AppState` with safe defaults."""

    def _volume(value: Any) -> float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return DEFAULT_VOLUME
        normalized = float(value)
        if not math.isfinite(normalized):
            return DEFAULT_VOLUME
        return max(0.0, min(normalized, 1.0))

    def _bool_or_default(value: Any, default: bool) -> bool:
        return value if isinstance(value, bool) else default

    def _str_or_default(value: Any, default: str) -> str:
        return value if isinstance(value, str) else default

    return AppState(
        volume=_volume(data.get("volume")),
        muted=_bool_or_default(data.get("muted"), False),
        repeat_mode=normalize_repeat_mode(_str_or_default(data.get("repeat_mode"), "off")),
        shuffle=_bool_or_default(data.get("shuffle"), False),
        playback_backend=normalize_backend_name(
            _str_or_default(data.get("playback_backend"), DEFAULT_BACKEND)
        ),
        log_level=_str_or_default(data.get("log_level"), "INFO"),
    )


def _reset_notice(*, likely_cause: str, next_step: str) -> str:
    return format_user_error(
        what_failed="Settings were reset to defaults.",
        likely_cause=likely_cause,
        next_step=next_step,
    )


def load_state_with_notice(path: Path) -> tuple[AppState, str | None]:
    """Load settings, returning defaults plus a user-facing notice on damage."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        logger.info("No settings at %s yet; starting with defaults.", path)
        return AppState(), None
    except json.JSONDecodeError:
        logger.warning("Settings file at %s is invalid JSON; using defaults.", path)
        return AppState(), _reset_notice(
            likely_cause="the settings file is corrupt or partially written.",
            next_step=f"delete or fix '{path}'; it is rewritten on exit.",
        )
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("Cannot read settings %s (%s); using defaults.", path, exc)
        return AppState(), _reset_notice(
            likely_cause="the settings file could not be read.",
            next_step=f"check permissions on '{path}'.",
        )

    if not isinstance(data, dict):
        logger.warning("Settings at %s hold %s, not an object.", path, type(data).__name__)
        return AppState(), _reset_notice(
            likely_cause="the settings file does not hold a JSON object.",
            next_step=f"delete '{path}'; it is rewritten on exit.",
        )
    return _coerce_state(data), None


def load_state(path: Path) -> AppState:
    return load_state_with_notice(path)[0]


def save_state(path: Path, state: AppState) -> None:
    """Write settings next to `path` first, then swap the file into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    staging = path.with_name(f".{path.name}.{uuid4().hex}.tmp")
    try:
        staging.write_text(json.dumps(asdict(state), indent=2, sort_keys=True), "utf-8")
        staging.replace(path)
    finally:
        with suppress(OSError):
            staging.unlink()


def playback_state_from_app_state(state: AppState) -> PlaybackState:
    """Seed a fresh controller snapshot from persisted settings."""
    playback = PlaybackState(
        repeat_mode=normalize_repeat_mode(state.repeat_mode),
        shuffle_enabled=state.shuffle,
    )
    if state.volume > 0:
        playback = replace(playback, volume=state.volume, pre_mute_volume=state.volume)
    else:
        playback = replace(playback, volume=0.0, muted=True)
    if state.muted:
        playback = replace(playback, muted=True)
    return playback


def app_state_from_playback(
    base: AppState, playback: PlaybackState, *, backend_name: str | None = None
) -> AppState:
    """Capture the settings part of a playback snapshot for saving."""
    volume = playback.volume if playback.volume > 0 else playback.pre_mute_volume
    return replace(
        base,
        volume=volume,
        muted=playback.muted,
        repeat_mode=playback.repeat_mode,
        shuffle=playback.shuffle_enabled,
        playback_backend=backend_name or base.playback_backend,
    )
