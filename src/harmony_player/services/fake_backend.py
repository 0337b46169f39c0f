"""Fake media backend for deterministic testing and offline runs."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from contextlib import suppress
from dataclasses import dataclass
from typing import Literal

from harmony_player.errors import PlaybackBlocked

from .media_backend import (
    CanPlay,
    Ended,
    MediaError,
    MediaEvent,
    MediaEventHandler,
    MetadataReady,
    TimeUpdate,
)

_StreamStatus = Literal["empty", "failed", "ready", "playing", "paused", "ended"]


@dataclass
class _StreamState:
    track_id: str | None = None
    stream_url: str | None = None
    status: _StreamStatus = "empty"
    position_seconds: float = 0.0
    duration_seconds: float = 0.0


class FakeMediaBackend:
    """In-memory backend that records commands and simulates stream progress.

    Events are delivered from separate tasks, after the command that caused
    them returns. `failing_urls` maps a stream URL to the number of loads that
    should fail with a stream error; `blocked_plays` makes that many `play`
    calls raise `PlaybackBlocked`.
    """

    def __init__(
        self,
        *,
        tick_interval_ms: int = 250,
        default_duration_s: float = 180.0,
        durations: Mapping[str, float] | None = None,
        failing_urls: Mapping[str, int] | None = None,
        blocked_plays: int = 0,
        auto_metadata: bool = True,
    ) -> None:
        self._tick_interval_ms = tick_interval_ms
        self._default_duration_s = default_duration_s
        self._durations = dict(durations or {})
        self._failures = dict(failing_urls or {})
        self._blocked_plays = blocked_plays
        self._auto_metadata = auto_metadata
        self._stream = _StreamState()
        self._volume = 1.0
        self._handler: MediaEventHandler | None = None
        self._task: asyncio.Task[None] | None = None
        self._deliveries: set[asyncio.Task[None]] = set()
        self.commands: list[tuple[object, ...]] = []

    @property
    def volume(self) -> float:
        return self._volume

    def commands_named(self, name: str) -> list[tuple[object, ...]]:
        return [command for command in self.commands if command[0] == name]

    def transport_commands(self) -> list[tuple[object, ...]]:
        """Commands that change what is audible (everything but volume)."""
        return [command for command in self.commands if command[0] != "set_volume"]

    def set_event_handler(self, handler: MediaEventHandler) -> None:
        self._handler = handler

    async def start(self) -> None:
        if self._task is not None or self._tick_interval_ms <= 0:
            return
        self._task = asyncio.create_task(self._ticker_loop())

    async def shutdown(self) -> None:
        tasks = list(self._deliveries)
        if self._task is not None:
            tasks.append(self._task)
            self._task = None
        for task in tasks:
            task.cancel()
        for task in tasks:
            with suppress(asyncio.CancelledError):
                await task

    async def load(self, track_id: str, stream_url: str) -> None:
        self.commands.append(("load", stream_url))
        self._stream = _StreamState(track_id=track_id, stream_url=stream_url)
        remaining = self._failures.get(stream_url, 0)
        if remaining > 0:
            self._failures[stream_url] = remaining - 1
            self._stream.status = "failed"
            self._schedule(
                MediaError(track_id, "stream", f"Could not fetch {stream_url}")
            )
            return
        self._stream.status = "ready"
        if self._auto_metadata:
            duration = self._durations.get(stream_url, self._default_duration_s)
            self._stream.duration_seconds = duration
            self._schedule(MetadataReady(track_id, duration))
            self._schedule(CanPlay(track_id))

    async def play(self) -> None:
        self.commands.append(("play",))
        if self._blocked_plays > 0:
            self._blocked_plays -= 1
            raise PlaybackBlocked("Playback rejected by host autoplay policy.")
        if self._stream.status in {"ready", "paused", "ended"}:
            self._stream.status = "playing"

    async def pause(self) -> None:
        self.commands.append(("pause",))
        if self._stream.status == "playing":
            self._stream.status = "paused"

    async def seek(self, seconds: float) -> None:
        self.commands.append(("seek", seconds))
        upper = self._stream.duration_seconds
        self._stream.position_seconds = max(0.0, min(seconds, upper))
        if self._stream.status == "ended":
            self._stream.status = "paused"

    async def set_volume(self, volume: float) -> None:
        self.commands.append(("set_volume", volume))
        self._volume = max(0.0, min(volume, 1.0))

    async def emit(self, event: MediaEvent) -> None:
        """Deliver an event straight to the handler (test injection)."""
        if self._handler is not None:
            await self._handler(event)

    async def finish_track(self) -> None:
        """Jump the loaded stream to its end and report it."""
        track_id = self._stream.track_id
        if track_id is None:
            return
        self._stream.position_seconds = self._stream.duration_seconds
        self._stream.status = "ended"
        await self.emit(Ended(track_id))

    async def drain(self) -> None:
        """Wait until every scheduled event has been handled."""
        while self._deliveries:
            await asyncio.gather(*list(self._deliveries))

    def _schedule(self, event: MediaEvent) -> None:
        task = asyncio.create_task(self.emit(event))
        self._deliveries.add(task)
        task.add_done_callback(self._deliveries.discard)

    async def _ticker_loop(self) -> None:
        try:
            while True:
                await asyncio.sleep(self._tick_interval_ms / 1000)
                await self._tick()
        except asyncio.CancelledError:
            pass

    async def _tick(self) -> None:
        stream = self._stream
        if stream.status != "playing" or stream.track_id is None:
            return
        if stream.duration_seconds <= 0:
            return
        position = stream.position_seconds + self._tick_interval_ms / 1000
        if position >= stream.duration_seconds:
            position = stream.duration_seconds
            stream.status = "ended"
        stream.position_seconds = position
        await self.emit(TimeUpdate(stream.track_id, position))
        if stream.status == "ended":
            await self.emit(Ended(stream.track_id))
