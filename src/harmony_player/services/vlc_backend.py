"""VLC stream backend using python-vlc."""

from __future__ import annotations

import asyncio
import logging
import queue
import threading
from collections.abc import Coroutine
from dataclasses import dataclass, field
from typing import Any, Literal, cast

from harmony_player.errors import StreamError

from .media_backend import (
    CanPlay,
    Ended,
    MediaError,
    MediaEvent,
    MediaEventHandler,
    MetadataReady,
    TimeUpdate,
)

logger = logging.getLogger(__name__)

_PlayerState = Literal["idle", "opening", "buffering", "playing", "paused", "ended", "error"]

_STOP = "stop"


@dataclass
class _Request:
    name: str
    args: tuple[Any, ...] = ()
    reply: asyncio.Future[Any] | None = None


@dataclass
class _Watch:
    """Per-load bookkeeping used to derive one-shot events."""

    track_id: str | None = None
    metadata_sent: bool = False
    can_play_sent: bool = False
    terminal_sent: bool = False
    last_position_ms: int = -1
    pending_seek_ms: int = 0

    def rearm(self) -> None:
        """Start reporting again for a stream that already ended or failed."""
        self.terminal_sent = False
        self.last_position_ms = -1


@dataclass
class _Session:
    """libVLC objects owned by the worker thread."""

    instance: Any
    player: Any
    watch: _Watch = field(default_factory=_Watch)


class VLCMediaBackend:
    """Media backend driven from a dedicated VLC thread.

    libVLC is touched only from the worker thread. Requests travel to it over a
    queue; replies and media events come back to the event loop thread-safely.
    Between requests the worker polls the player to derive events.
    """

    def __init__(self, *, poll_interval_ms: int = 200) -> None:
        self._poll_interval = poll_interval_ms / 1000
        self._handler: MediaEventHandler | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._requests: queue.Queue[_Request] = queue.Queue()
        self._worker: threading.Thread | None = None

    def set_event_handler(self, handler: MediaEventHandler) -> None:
        self._handler = handler

    async def start(self) -> None:
        if self._worker is not None:
            return
        self._loop = asyncio.get_running_loop()
        ready: asyncio.Future[None] = self._loop.create_future()
        worker = threading.Thread(
            target=self._run_worker, args=(ready,), name="harmony-vlc", daemon=True
        )
        self._worker = worker
        worker.start()
        try:
            await ready
        except Exception:
            self._worker = None
            raise
        logger.info("VLC backend started.")

    async def shutdown(self) -> None:
        worker = self._worker
        if worker is None:
            return
        self._worker = None
        self._requests.put(_Request(_STOP))
        await asyncio.to_thread(worker.join, 2.0)

    async def load(self, track_id: str, stream_url: str) -> None:
        await self._call("load", track_id, stream_url)

    async def play(self) -> None:
        await self._call("play")

    async def pause(self) -> None:
        await self._call("pause")

    async def seek(self, seconds: float) -> None:
        await self._call("seek", seconds)

    async def set_volume(self, volume: float) -> None:
        await self._call("set_volume", volume)

    async def _call(self, name: str, *args: Any) -> Any:
        loop = self._loop
        if loop is None or self._worker is None:
            raise RuntimeError("VLC backend not started.")
        reply: asyncio.Future[Any] = loop.create_future()
        self._requests.put(_Request(name, args, reply))
        return await reply

    # Worker thread

    def _run_worker(self, ready: asyncio.Future[None]) -> None:
        try:
            import vlc

            instance = vlc.Instance("--no-video", "--quiet")
            session = _Session(instance=instance, player=instance.media_player_new())
        except Exception as exc:  # pragma: no cover - depends on VLC install
            logger.error("VLC initialization failed: %s", exc)
            self._reply(
                ready,
                error=RuntimeError(
                    "VLC backend unavailable. Install VLC and the 'vlc' extra."
                ),
            )
            return
        self._reply(ready, value=None)

        while True:
            try:
                request = self._requests.get(timeout=self._poll_interval)
            except queue.Empty:
                request = None
            if request is not None:
                if request.name == _STOP:
                    break
                self._serve(session, request)
            self._poll(session)
        session.player.stop()
        session.player.release()
        session.instance.release()

    def _serve(self, session: _Session, request: _Request) -> None:
        handler = getattr(self, f"_do_{request.name}", None)
        try:
            if handler is None:
                raise ValueError(f"Unknown VLC request {request.name!r}")
            result = handler(session, *request.args)
        except Exception as exc:
            self._reply(request.reply, error=exc)
        else:
            self._reply(request.reply, value=result)

    def _do_load(self, session: _Session, track_id: str, stream_url: str) -> None:
        media = session.instance.media_new(stream_url)
        if media is None:
            raise StreamError(f"VLC could not open {stream_url}.")
        session.watch = _Watch(track_id=track_id)
        session.player.set_media(media)

    def _do_play(self, session: _Session) -> None:
        watch = session.watch
        if watch.terminal_sent:
            _restart_finished(session)
        if session.player.play() == -1:
            raise StreamError("VLC refused to start playback.")
        if watch.pending_seek_ms > 0:
            session.player.set_time(watch.pending_seek_ms)
        watch.pending_seek_ms = 0

    def _do_pause(self, session: _Session) -> None:
        session.player.set_pause(1)

    def _do_seek(self, session: _Session, seconds: float) -> None:
        target_ms = int(float(seconds) * 1000)
        watch = session.watch
        if watch.terminal_sent:
            # libVLC ignores set_time once ended; apply it on the next play.
            _restart_finished(session)
            watch.pending_seek_ms = target_ms
            return
        session.player.set_time(target_ms)

    def _do_set_volume(self, session: _Session, volume: float) -> None:
        session.player.audio_set_volume(int(round(float(volume) * 100)))

    def _poll(self, session: _Session) -> None:
        watch = session.watch
        track_id = watch.track_id
        if track_id is None or watch.terminal_sent:
            return
        player = session.player
        state = _map_state(player)
        if state == "error":
            watch.terminal_sent = True
            self._dispatch(MediaError(track_id, "stream", "VLC could not open the stream."))
            return
        if state == "ended":
            watch.terminal_sent = True
            self._dispatch(Ended(track_id))
            return
        if state not in {"playing", "paused"}:
            return
        if not watch.can_play_sent:
            watch.can_play_sent = True
            self._dispatch(CanPlay(track_id))
        length_ms = max(player.get_length(), 0)
        if length_ms > 0 and not watch.metadata_sent:
            watch.metadata_sent = True
            self._dispatch(MetadataReady(track_id, length_ms / 1000))
        position_ms = max(player.get_time(), 0)
        if position_ms != watch.last_position_ms:
            watch.last_position_ms = position_ms
            self._dispatch(TimeUpdate(track_id, position_ms / 1000))

    def _dispatch(self, event: MediaEvent) -> None:
        handler, loop = self._handler, self._loop
        if handler is None or loop is None:
            return
        asyncio.run_coroutine_threadsafe(
            cast(Coroutine[Any, Any, None], handler(event)), loop
        )

    def _reply(
        self,
        reply: asyncio.Future[Any] | None,
        *,
        value: Any = None,
        error: BaseException | None = None,
    ) -> None:
        if reply is None or self._loop is None:
            return
        self._loop.call_soon_threadsafe(_settle_reply, reply, value, error)


def _settle_reply(
    reply: asyncio.Future[Any], value: Any, error: BaseException | None
) -> None:
    if reply.done():
        return
    if error is not None:
        reply.set_exception(error)
    else:
        reply.set_result(value)


def _restart_finished(session: _Session) -> None:
    session.watch.rearm()
    session.player.stop()


def _map_state(player: Any) -> _PlayerState:
    try:
        name = str(getattr(player.get_state(), "name", "")).lower()
    except Exception:
        return "error"
    if name in {"opening", "buffering", "playing", "paused", "ended", "error"}:
        return cast(_PlayerState, name)
    return "idle"
