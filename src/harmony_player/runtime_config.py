"""Runtime configuration normalization helpers.

CLI flags and persisted settings pass through these so every entrypoint
interprets them the same way.
"""

from __future__ import annotations

from harmony_player.services.playback_state import REPEAT

BACKEND_NAMES = ("fake", "vlc")
REPEAT_MODES: tuple[REPEAT, ...] = ("off", "all", "one")
DEFAULT_BACKEND = "vlc"


def resolve_log_level(*, verbose: bool, quiet: bool) -> str:
    """Resolve effective log level from CLI flags.

    Precedence is deterministic: --quiet overrides --verbose.
    """
    if quiet:
        return "WARNING"
    if verbose:
        return "DEBUG"
    return "INFO"


def normalize_repeat_mode(value: str | None) -> REPEAT:
    normalized = (value or "").strip().lower()
    for mode in REPEAT_MODES:
        if normalized == mode:
            return mode
    return "off"


def normalize_backend_name(value: str | None) -> str:
    normalized = (value or "").strip().lower()
    if normalized in BACKEND_NAMES:
        return normalized
    return DEFAULT_BACKEND
