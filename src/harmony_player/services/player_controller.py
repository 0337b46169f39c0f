"""Playback orchestration between user intents and the media backend.

`PlaybackController` is the composition root and the only writer of playback
state. It binds the queue store, the state-machine rules, the retry policy and
a media backend into one API, folds asynchronous backend events into status
transitions, and emits snapshots and notices to subscribers.

Every public operation runs under a single `asyncio.Lock`. Backend events are
matched to the loaded track by identity, so a late event for a superseded track
is dropped no matter in which order it arrives.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable, Iterable
from contextlib import suppress
from dataclasses import replace

from harmony_player.errors import InvalidTrack, PlaybackBlocked, format_user_error
from harmony_player.events import (
    NoticeLevel,
    PlayerNotice,
    PlayerStateChanged,
    TrackChanged,
)
from harmony_player.services.media_backend import (
    CanPlay,
    Ended,
    MediaBackend,
    MediaError,
    MediaEvent,
    MetadataReady,
    TimeUpdate,
)
from harmony_player.services.playback_state import (
    REPEAT,
    PlaybackState,
    apply_toggle_mute,
    apply_volume,
    clamp_seek,
    effective_volume,
    next_repeat_mode,
    resolve_next,
    resolve_previous,
    resolve_track_end,
    transition,
)
from harmony_player.services.queue_store import (
    QUEUE_ARCHIVE_LIMIT,
    TRACK_HISTORY_LIMIT,
    QueueStore,
    TrackHistory,
)
from harmony_player.services.retry_policy import RetryPolicy
from harmony_player.services.track import Track

logger = logging.getLogger(__name__)

POSITION_EMIT_THRESHOLD_S = 0.1
BLOCKED_MESSAGE = "Playback was blocked. Press play to continue."
EMPTY_QUEUE_NOTICE = "Add some tracks to your queue first"
END_OF_QUEUE_NOTICE = "End of queue reached"
RESTORED_NOTICE = "Previous queue restored"

_ACTIVE_STATUSES = frozenset({"loading", "playing", "paused"})


async def _discard_event(_event: object) -> None:
    return None


class PlaybackController:
    """Owns the queue and playback state and drives the media backend."""

    def __init__(
        self,
        *,
        backend: MediaBackend,
        emit_event: Callable[[object], Awaitable[None]] | None = None,
        retry_policy: RetryPolicy | None = None,
        shuffle_random: random.Random | None = None,
        initial_state: PlaybackState | None = None,
        archive_limit: int = QUEUE_ARCHIVE_LIMIT,
        history_limit: int = TRACK_HISTORY_LIMIT,
    ) -> None:
        self._backend = backend
        self._emit_event = emit_event or _discard_event
        self._retry = retry_policy or RetryPolicy()
        self._queue = QueueStore(archive_limit=archive_limit, shuffle_random=shuffle_random)
        self._history = TrackHistory(limit=history_limit)
        # Queue-derived fields are rebuilt from the store on every read.
        self._state = replace(
            initial_state or PlaybackState(),
            status="idle",
            current_index=-1,
            current_track=None,
            queue=(),
            play_intent=False,
            retry_count=0,
            last_error=None,
        )
        self._lock = asyncio.Lock()
        self._loaded_track: Track | None = None
        self._duration_reported = False
        self._outbox: list[object] = []
        self._backend.set_event_handler(self._handle_backend_event)

    @property
    def state(self) -> PlaybackState:
        return replace(
            self._state,
            current_index=self._queue.current_index,
            current_track=self._queue.current_track,
            queue=self._queue.tracks,
        )

    @property
    def history(self) -> tuple[Track, ...]:
        return self._history.tracks

    async def start(self) -> None:
        """Start the backend and push the initial volume to it."""
        await self._backend.start()
        await self._backend.set_volume(effective_volume(self._state))

    async def shutdown(self) -> None:
        """Cancel pending retries and perform best-effort backend shutdown."""
        await self._retry.shutdown()
        with suppress(Exception):
            await self._backend.shutdown()

    # Queue operations

    async def append(self, track: Track) -> None:
        async with self._lock:
            if self._queue.append(track):
                await self._start_current()
        await self._flush()

    async def insert_next(self, track: Track) -> None:
        async with self._lock:
            if self._queue.insert_next(track):
                await self._start_current()
        await self._flush()

    async def remove_at(self, index: int) -> Track:
        async with self._lock:
            removed = self._queue.remove_at(index)
            if removed.was_current:
                await self._release_current()
        await self._flush()
        return removed.track

    async def replace_all(self, tracks: Iterable[Track], start_index: int = 0) -> None:
        async with self._lock:
            self._queue.replace_all(tracks, start_index)
            await self._start_current()
        await self._flush()

    async def restore_previous(self) -> None:
        async with self._lock:
            self._queue.restore_previous()
            self._notify(RESTORED_NOTICE, "success")
            await self._start_current()
        await self._flush()

    async def clear_queue(self) -> None:
        async with self._lock:
            await self._release_current()
            self._queue.clear()
        await self._flush()

    async def play_track(self, track: Track) -> None:
        """Play `track`, jumping to it when already queued instead of re-adding."""
        async with self._lock:
            if not track.is_playable:
                raise InvalidTrack(f'Cannot play "{track.title}": no audio available.')
            index = self._queue.index_of(track.id)
            if index is None:
                self._queue.append(track)
                index = len(self._queue) - 1
            await self._activate(index)
        await self._flush()

    async def play_from_history(self) -> Track:
        """Go back to the most recently played track, across queue replacements."""
        async with self._lock:
            track = self._history.pop()
            index = self._queue.index_of(track.id)
            if index is None:
                self._queue.append(track)
                index = len(self._queue) - 1
            self._queue.select(index)
            await self._start_current(record_history=False)
        await self._flush()
        return track

    # Transport operations

    async def toggle_play_pause(self) -> None:
        async with self._lock:
            if len(self._queue) == 0:
                self._notify(EMPTY_QUEUE_NOTICE)
            elif self._queue.current_index == -1:
                self._queue.select(0)
                await self._start_current()
            elif self._state.play_intent and self._state.status in {"loading", "playing"}:
                await self._pause_locked()
            else:
                await self._resume_locked()
        await self._flush()

    async def pause(self) -> None:
        async with self._lock:
            await self._pause_locked()
        await self._flush()

    async def resume(self) -> None:
        async with self._lock:
            await self._resume_locked()
        await self._flush()

    async def retry(self) -> None:
        """Manually reload the current track, resetting the retry counter."""
        async with self._lock:
            await self._retry_locked()
        await self._flush()

    async def play_next(self) -> None:
        async with self._lock:
            index = resolve_next(
                self._state.repeat_mode, self._queue.current_index, len(self._queue)
            )
            if index is None:
                self._notify(END_OF_QUEUE_NOTICE)
            else:
                self._queue.select(index)
                await self._start_current()
        await self._flush()

    async def play_previous(self) -> None:
        """Restart the current track past 3s, otherwise step back in the queue."""
        async with self._lock:
            if self._queue.current_track is not None:
                decision = resolve_previous(
                    self._state.position_seconds,
                    self._state.repeat_mode,
                    self._queue.current_index,
                    len(self._queue),
                )
                if decision.action == "select" and decision.index is not None:
                    self._queue.select(decision.index)
                    await self._start_current()
                else:
                    await self._restart_current()
        await self._flush()

    async def seek(self, seconds: float) -> bool:
        """Seek within the loaded track; refused until the duration is known."""
        async with self._lock:
            loaded = self._loaded_track
            current = self._queue.current_track
            allowed = (
                loaded is not None
                and current is not None
                and loaded.id == current.id
                and self._duration_reported
                and self._state.duration_seconds > 0
                and self._state.status in _ACTIVE_STATUSES
            )
            if allowed:
                position = clamp_seek(seconds, self._state.duration_seconds)
                self._state = replace(self._state, position_seconds=position)
                await self._backend.seek(position)
            else:
                logger.debug("Seek to %.2fs ignored; no seekable track.", seconds)
        if allowed:
            await self._flush()
        return allowed

    async def set_volume(self, volume: float) -> None:
        async with self._lock:
            self._state = apply_volume(self._state, volume)
            level = effective_volume(self._state)
            await self._backend.set_volume(level)
        await self._flush()

    async def toggle_mute(self) -> None:
        async with self._lock:
            self._state = apply_toggle_mute(self._state)
            level = effective_volume(self._state)
            await self._backend.set_volume(level)
        await self._flush()

    async def cycle_repeat_mode(self) -> REPEAT:
        async with self._lock:
            mode = next_repeat_mode(self._state.repeat_mode)
            self._state = replace(self._state, repeat_mode=mode)
        await self._flush()
        return mode

    async def toggle_shuffle(self) -> bool:
        """Flip shuffle; switching it on shuffles only the upcoming tracks."""
        async with self._lock:
            enabled = not self._state.shuffle_enabled
            self._state = replace(self._state, shuffle_enabled=enabled)
            if enabled:
                self._queue.shuffle_remaining()
        await self._flush()
        return enabled

    # Internals; callers hold the lock.

    async def _activate(self, index: int) -> None:
        loaded = self._loaded_track
        if (
            index == self._queue.current_index
            and loaded is not None
            and loaded.id == self._queue.tracks[index].id
            and self._state.status in _ACTIVE_STATUSES
        ):
            await self._resume_locked()
            return
        self._queue.select(index)
        await self._start_current()

    async def _start_current(self, *, record_history: bool = True) -> None:
        """Hand the queue's current track to the backend and request playback."""
        track = self._queue.current_track
        if track is None:
            await self._release_current()
            return
        self._retry.reset()
        previous = self._loaded_track
        if record_history and previous is not None and previous.id != track.id:
            self._history.push(previous)
        if not track.is_playable:
            await self._stop_audible()
            self._set_loaded(None)
            self._state = transition(
                self._state,
                "errored",
                play_intent=False,
                position_seconds=0.0,
                duration_seconds=0.0,
                retry_count=0,
                last_error=format_user_error(
                    what_failed=f'No playable audio found for "{track.title}".',
                    likely_cause="The catalog did not provide a stream URL.",
                    next_step="Select another track.",
                ),
            )
            self._notify(f'Cannot play "{track.title}" - no audio available', "error")
            return
        self._set_loaded(track)
        self._duration_reported = False
        self._state = transition(
            self._state,
            "loading",
            play_intent=True,
            position_seconds=0.0,
            duration_seconds=track.duration_hint or 0.0,
            retry_count=0,
            last_error=None,
        )
        await self._load_and_play(track)

    async def _load_and_play(self, track: Track) -> None:
        try:
            await self._backend.load(track.id, track.stream_url or "")
            if self._state.play_intent:
                await self._backend.play()
        except PlaybackBlocked as exc:
            self._handle_blocked(track, str(exc))
        except Exception as exc:
            logger.warning("Backend failed to start %s: %s", track.id, exc)
            self._handle_stream_failure(track, str(exc))

    async def _play_loaded(self, track: Track) -> None:
        try:
            await self._backend.play()
        except PlaybackBlocked as exc:
            self._handle_blocked(track, str(exc))
        except Exception as exc:
            logger.warning("Backend failed to resume %s: %s", track.id, exc)
            self._handle_stream_failure(track, str(exc))

    async def _release_current(self) -> None:
        """Stop whatever is loaded and fall back to idle."""
        self._retry.reset()
        await self._stop_audible()
        if self._loaded_track is not None:
            self._history.push(self._loaded_track)
        self._set_loaded(None)
        self._duration_reported = False
        self._state = transition(
            self._state,
            "idle",
            play_intent=False,
            position_seconds=0.0,
            duration_seconds=0.0,
            retry_count=0,
            last_error=None,
        )

    async def _stop_audible(self) -> None:
        if (
            self._loaded_track is not None
            and self._state.play_intent
            and self._state.status in {"loading", "playing"}
        ):
            await self._backend.pause()

    async def _pause_locked(self) -> None:
        status = self._state.status
        if status == "playing":
            self._state = transition(self._state, "paused", play_intent=False)
        elif status == "loading" and self._state.play_intent:
            # Metadata arriving later settles into Paused.
            self._state = replace(self._state, play_intent=False)
        else:
            return
        await self._backend.pause()

    async def _resume_locked(self) -> None:
        current = self._queue.current_track
        if current is None:
            return
        status = self._state.status
        if status == "errored":
            await self._retry_locked()
            return
        loaded = self._loaded_track
        if loaded is None or loaded.id != current.id or status == "idle":
            await self._start_current()
            return
        if self._state.play_intent and status in {"loading", "playing"}:
            return
        target = "playing" if self._duration_reported else "loading"
        self._state = transition(self._state, target, play_intent=True, last_error=None)
        await self._play_loaded(loaded)

    async def _retry_locked(self) -> None:
        if self._queue.current_track is None:
            return
        self._retry.reset()
        await self._start_current()

    async def _restart_current(self) -> None:
        loaded = self._loaded_track
        current = self._queue.current_track
        if (
            loaded is None
            or current is None
            or loaded.id != current.id
            or self._state.status not in _ACTIVE_STATUSES
        ):
            await self._start_current()
            return
        self._state = replace(self._state, position_seconds=0.0)
        await self._backend.seek(0.0)

    async def _retry_track(self, track_id: str) -> None:
        async with self._lock:
            track = self._loaded_track
            if track is None or track.id != track_id or self._state.status != "loading":
                logger.debug("Dropping stale retry for %s.", track_id)
                return
            logger.info(
                "Retrying stream for %s (%d/%d).",
                track_id,
                self._retry.retry_count,
                self._retry.max_retries,
            )
            self._duration_reported = False
            await self._load_and_play(track)
        await self._flush()

    def _handle_stream_failure(self, track: Track, detail: str) -> None:
        if self._state.status not in _ACTIVE_STATUSES:
            logger.debug(
                "Ignoring stream error for %s while %s.", track.id, self._state.status
            )
            return
        self._duration_reported = False
        if self._retry.record_failure():
            logger.warning(
                "Stream error for %s; retry %d/%d scheduled: %s",
                track.id,
                self._retry.retry_count,
                self._retry.max_retries,
                detail,
            )
            self._state = transition(
                self._state, "loading", retry_count=self._retry.retry_count
            )
            self._retry.schedule(track.id, self._retry_track)
            return
        logger.error(
            "Giving up on %s after %d failed attempts: %s",
            track.id,
            self._retry.retry_count,
            detail,
        )
        self._state = transition(
            self._state,
            "errored",
            play_intent=False,
            retry_count=self._retry.retry_count,
            last_error=format_user_error(
                what_failed=f'Failed to play "{track.title}".',
                likely_cause="The stream is unavailable or could not be decoded.",
                next_step="Retry playback or try another track.",
                detail=detail or None,
            ),
        )
        self._notify(f'Failed to play "{track.title}". Try another track.', "error")

    def _handle_blocked(self, track: Track, detail: str) -> None:
        if self._state.status not in _ACTIVE_STATUSES:
            return
        if self._retry.retry_count > 0 and self._state.status == "loading":
            # A block on an automatic re-attempt counts against the retry bound.
            self._handle_stream_failure(track, detail)
            return
        logger.warning("Playback blocked for %s: %s", track.id, detail)
        self._retry.cancel()
        self._state = transition(
            self._state, "paused", play_intent=False, last_error=BLOCKED_MESSAGE
        )
        self._notify(BLOCKED_MESSAGE, "warning")

    async def _handle_backend_event(self, event: MediaEvent) -> None:
        """Fold one backend event into playback state."""
        emit = False
        async with self._lock:
            loaded = self._loaded_track
            if loaded is None or event.track_id != loaded.id:
                logger.debug(
                    "Ignoring %s for stale track %s.", type(event).__name__, event.track_id
                )
                return
            if isinstance(event, TimeUpdate):
                emit = self._apply_time_update(event.position_seconds)
            elif isinstance(event, MetadataReady):
                emit = self._apply_metadata(event.duration_seconds)
            elif isinstance(event, Ended):
                if self._state.status == "playing":
                    await self._handle_track_end()
                    emit = True
            elif isinstance(event, MediaError):
                if event.kind == "blocked":
                    self._handle_blocked(loaded, event.message)
                else:
                    self._handle_stream_failure(loaded, event.message)
                emit = True
            elif isinstance(event, CanPlay):
                logger.debug("Stream for %s can play.", loaded.id)
        if emit or self._outbox:
            await self._flush()

    def _apply_time_update(self, position_seconds: float) -> bool:
        if self._state.status not in _ACTIVE_STATUSES:
            return False
        position = max(0.0, position_seconds)
        if self._duration_reported and self._state.duration_seconds > 0:
            position = min(position, self._state.duration_seconds)
        last = self._state.position_seconds
        if position == last:
            return False
        self._state = replace(self._state, position_seconds=position)
        return abs(position - last) >= POSITION_EMIT_THRESHOLD_S

    def _apply_metadata(self, duration_seconds: float) -> bool:
        status = self._state.status
        if status not in _ACTIVE_STATUSES:
            return False
        self._duration_reported = True
        self._retry.reset()
        changes: dict[str, object] = {
            "duration_seconds": max(0.0, duration_seconds),
            "retry_count": 0,
        }
        if status == "loading":
            status = "playing" if self._state.play_intent else "paused"
            changes["last_error"] = None
        self._state = transition(self._state, status, **changes)
        return True

    async def _handle_track_end(self) -> None:
        decision = resolve_track_end(
            self._state.repeat_mode, self._queue.current_index, len(self._queue)
        )
        logger.debug("Track end resolved to %s.", decision.action)
        if decision.action == "restart":
            loaded = self._loaded_track
            self._state = transition(self._state, "playing", position_seconds=0.0)
            await self._backend.seek(0.0)
            if loaded is not None:
                await self._play_loaded(loaded)
            return
        if decision.index is not None:
            self._queue.select(decision.index)
            await self._start_current()
            return
        self._state = transition(
            self._state, "paused", play_intent=False, position_seconds=0.0
        )
        await self._backend.seek(0.0)

    def _set_loaded(self, track: Track | None) -> None:
        previous = self._loaded_track
        self._loaded_track = track
        previous_id = previous.id if previous is not None else None
        track_id = track.id if track is not None else None
        if previous_id != track_id:
            self._outbox.append(TrackChanged(track))

    def _notify(self, message: str, level: NoticeLevel = "info") -> None:
        logger.info("Notice: %s", message)
        self._outbox.append(PlayerNotice(message, level))

    async def _flush(self) -> None:
        events, self._outbox = self._outbox, []
        for event in events:
            await self._emit_event(event)
        await self._emit_event(PlayerStateChanged(self.state))
