"""Media backend contract and event payloads.

`PlaybackController` depends on this protocol to stay backend-agnostic.
Concrete implementations (fake/VLC) wrap a single audio stream, translate
engine-specific behavior into these commands and events, and deliver events
asynchronously: never from inside a command coroutine.

Every event carries the `track_id` that was passed to `load`, so the
controller can drop late events for a track that is no longer current.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Literal, Protocol

MediaErrorKind = Literal["stream", "blocked"]


@dataclass(frozen=True)
class MediaEvent:
    """Marker base type for backend-originated events."""

    track_id: str


@dataclass(frozen=True)
class MetadataReady(MediaEvent):
    """Stream metadata is known; carries the real duration."""

    duration_seconds: float


@dataclass(frozen=True)
class TimeUpdate(MediaEvent):
    """Periodic transport position update in seconds."""

    position_seconds: float


@dataclass(frozen=True)
class Ended(MediaEvent):
    """Stream played through to its end."""


@dataclass(frozen=True)
class CanPlay(MediaEvent):
    """Enough data is buffered to start playback."""


@dataclass(frozen=True)
class MediaError(MediaEvent):
    """Backend-reported failure for the loaded stream."""

    kind: MediaErrorKind
    message: str = ""


MediaEventHandler = Callable[[MediaEvent], Awaitable[None]]


class MediaBackend(Protocol):
    """Single-stream audio engine protocol consumed by `PlaybackController`.

    `play` may raise `PlaybackBlocked` when host policy rejects playback; any
    other exception from `load` or `play` counts as a stream failure.
    """

    def set_event_handler(self, handler: MediaEventHandler) -> None: ...

    async def start(self) -> None: ...

    async def shutdown(self) -> None: ...

    async def load(self, track_id: str, stream_url: str) -> None: ...

    async def play(self) -> None: ...

    async def pause(self) -> None: ...

    async def seek(self, seconds: float) -> None: ...

    async def set_volume(self, volume: float) -> None: ...
