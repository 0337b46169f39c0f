"""Time formatting helpers for display."""

from __future__ import annotations

import math


def format_time_seconds(seconds: float | None) -> str:
    """Format seconds as m:ss, or h:mm:ss from one hour up.

    Missing, negative or non-finite values render as 0:00.
    """
    total = _coerce_seconds(seconds)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def _coerce_seconds(value: float | None) -> int:
    try:
        numeric = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(numeric):
        return 0
    return max(0, int(numeric))
