"""Command-line interface for harmony-player."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence
from dataclasses import replace
from pathlib import Path, PurePosixPath
from typing import Any
from urllib.parse import unquote, urlparse

from . import __version__
from .events import PlayerNotice, PlayerStateChanged, TrackChanged
from .logging_utils import setup_logging
from .paths import log_dir, state_path
from .runtime_config import (
    BACKEND_NAMES,
    REPEAT_MODES,
    normalize_backend_name,
    normalize_repeat_mode,
    resolve_log_level,
)
from .services.fake_backend import FakeMediaBackend
from .services.media_backend import MediaBackend
from .services.player_controller import PlaybackController
from .services.playback_state import PlaybackState
from .services.track import Track, track_from_catalog
from .services.vlc_backend import VLCMediaBackend
from .state_store import (
    AppState,
    app_state_from_playback,
    load_state_with_notice,
    playback_state_from_app_state,
    save_state,
)
from .utils.async_utils import run_blocking
from .utils.time_format import format_time_seconds

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_UNEXPECTED = 1
EXIT_NOTHING_TO_PLAY = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="harmony-player", description="Stream a queue of tracks from the terminal."
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument("--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument(
        "--quiet", action="store_true", help="Only show warnings and errors"
    )
    parser.add_argument("--log-file", help="Write logs to a file path")
    parser.add_argument(
        "--backend",
        choices=BACKEND_NAMES,
        help="Playback backend to use (fake or vlc).",
    )
    parser.add_argument(
        "--repeat",
        choices=REPEAT_MODES,
        help="Repeat mode for this session (off, all or one).",
    )
    parser.add_argument(
        "--shuffle", action="store_true", help="Shuffle the tracks after the first"
    )
    parser.add_argument(
        "--catalog", help="JSON file of catalog search results to queue"
    )
    parser.add_argument("urls", nargs="*", help="Stream URLs to queue in order")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        level = resolve_log_level(verbose=args.verbose, quiet=args.quiet)
        setup_logging(
            log_dir=log_dir(),
            level=level,
            log_file=Path(args.log_file) if args.log_file else None,
        )
        logger.info("Starting harmony-player CLI")
        settings_path = state_path()
        settings, notice = load_state_with_notice(settings_path)
        if notice:
            print(notice, file=sys.stderr)

        tracks = collect_tracks(args.urls, Path(args.catalog) if args.catalog else None)
        if not tracks:
            print(
                "Nothing to play.\n"
                "Likely cause: no stream URLs were given and the catalog has no playable tracks.\n"
                "Next step: pass one or more stream URLs or a --catalog file.",
                file=sys.stderr,
            )
            return EXIT_NOTHING_TO_PLAY

        if args.repeat:
            settings = _with_overrides(settings, repeat_mode=args.repeat)
        if args.shuffle:
            settings = _with_overrides(settings, shuffle=True)
        backend_name = normalize_backend_name(args.backend or settings.playback_backend)
        asyncio.run(_run_session(tracks, settings, settings_path, backend_name))
        return EXIT_OK
    except Exception as exc:  # pragma: no cover - top-level safety net
        logger.exception("Unhandled error: %s", exc)
        print("Unexpected error. Re-run with --verbose for details.", file=sys.stderr)
        return EXIT_UNEXPECTED


def collect_tracks(urls: Sequence[str], catalog_path: Path | None) -> list[Track]:
    """Build the session queue from stream URLs and an optional catalog file."""
    tracks = [_track_from_url(index, url) for index, url in enumerate(urls)]
    if catalog_path is not None:
        for payload in _read_catalog(catalog_path):
            try:
                track = track_from_catalog(payload)
            except ValueError as exc:
                logger.warning("Skipping catalog entry: %s", exc)
                continue
            if not track.is_playable:
                logger.warning("Skipping %s: no audio available.", track.id)
                continue
            tracks.append(track)
    return tracks


def _track_from_url(index: int, url: str) -> Track:
    name = unquote(PurePosixPath(urlparse(url).path).stem)
    return Track(id=f"url-{index}", title=name or url, stream_url=url)


def _read_catalog(path: Path) -> list[dict[str, Any]]:
    data = json.loads(path.read_text(encoding="utf-8"))
    # Accept a bare result list or the search API envelope.
    if isinstance(data, dict):
        data = data.get("data", data)
        if isinstance(data, dict):
            data = data.get("results", [])
    if not isinstance(data, list):
        raise ValueError(f"Catalog file {path} does not contain a list of results.")
    return [entry for entry in data if isinstance(entry, dict)]


def _with_overrides(settings: AppState, **changes: Any) -> AppState:
    if "repeat_mode" in changes:
        changes["repeat_mode"] = normalize_repeat_mode(changes["repeat_mode"])
    return replace(settings, **changes)


def _build_backend(name: str, tracks: Sequence[Track]) -> MediaBackend:
    if name == "vlc":
        return VLCMediaBackend()
    durations = {
        track.stream_url: track.duration_hint
        for track in tracks
        if track.stream_url and track.duration_hint
    }
    return FakeMediaBackend(durations=durations)


class _SessionPrinter:
    """Prints controller events and signals when the session is over."""

    def __init__(self) -> None:
        self.finished = asyncio.Event()

    async def __call__(self, event: object) -> None:
        if isinstance(event, TrackChanged):
            track = event.track
            if track is not None:
                print(
                    f"Now playing: {track.title} - {track.artist_line} "
                    f"({format_time_seconds(track.duration_hint)})"
                )
        elif isinstance(event, PlayerNotice):
            stream = sys.stderr if event.level in {"warning", "error"} else sys.stdout
            print(event.message, file=stream)
        elif isinstance(event, PlayerStateChanged):
            state = event.state
            if state.status == "errored" and state.last_error:
                print(state.last_error, file=sys.stderr)
            if state.status == "errored" or (
                state.status in {"idle", "paused"} and not state.play_intent
            ):
                self.finished.set()


async def _run_session(
    tracks: Sequence[Track],
    settings: AppState,
    settings_path: Path,
    backend_name: str,
) -> PlaybackState:
    printer = _SessionPrinter()
    initial = replace(playback_state_from_app_state(settings), shuffle_enabled=False)
    controller = PlaybackController(
        backend=_build_backend(backend_name, tracks),
        emit_event=printer,
        initial_state=initial,
    )
    try:
        await controller.start()
    except RuntimeError as exc:
        if backend_name != "vlc":
            raise
        logger.warning("VLC backend unavailable (%s); falling back to fake.", exc)
        print("VLC is unavailable; using the fake backend.", file=sys.stderr)
        backend_name = "fake"
        controller = PlaybackController(
            backend=_build_backend(backend_name, tracks),
            emit_event=printer,
            initial_state=initial,
        )
        await controller.start()

    try:
        await controller.replace_all(tracks)
        if settings.shuffle:
            # Switching shuffle on reorders the tracks after the first.
            await controller.toggle_shuffle()
        await printer.finished.wait()
    finally:
        final_state = controller.state
        await controller.shutdown()
        await run_blocking(
            save_state,
            settings_path,
            app_state_from_playback(settings, final_state, backend_name=backend_name),
        )
    return final_state
