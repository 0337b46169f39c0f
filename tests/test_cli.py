"""Tests for the command-line entrypoint."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

import harmony_player.cli as cli_module
from harmony_player.cli import build_parser, collect_tracks


@pytest.fixture
def quiet_logging(monkeypatch: pytest.MonkeyPatch):
    """Keep CLI runs from replacing the root logging handlers."""

    def fake_setup_logging(*, log_dir: Path, level: str, log_file: Path | None):
        return log_dir / "harmony-player.log"

    monkeypatch.setattr(cli_module, "setup_logging", fake_setup_logging)


def _write_catalog(path: Path, results: list[dict]) -> Path:
    path.write_text(json.dumps({"success": True, "data": {"results": results}}), "utf-8")
    return path


def _result(track_id: str, duration: float, *, playable: bool = True) -> dict:
    downloads = [{"quality": "320kbps", "url": f"https://aac.test/{track_id}.mp4"}]
    return {
        "id": track_id,
        "name": f"Track {track_id}",
        "duration": duration,
        "artists": {"primary": [{"name": "Band"}]},
        "downloadUrl": downloads if playable else [],
    }


def test_cli_parser_defaults() -> None:
    args = build_parser().parse_args([])
    assert args.backend is None
    assert args.repeat is None
    assert args.shuffle is False
    assert args.urls == []


def test_cli_parser_accepts_session_options() -> None:
    args = build_parser().parse_args(
        ["--backend", "fake", "--repeat", "all", "--shuffle", "http://a/1.mp3", "http://a/2.mp3"]
    )
    assert args.backend == "fake"
    assert args.repeat == "all"
    assert args.shuffle is True
    assert args.urls == ["http://a/1.mp3", "http://a/2.mp3"]


def test_cli_parser_rejects_unknown_repeat_mode() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args(["--repeat", "twice"])


def test_collect_tracks_from_urls_and_catalog(tmp_path) -> None:
    catalog = _write_catalog(
        tmp_path / "catalog.json",
        [_result("s1", 200), _result("s2", 100, playable=False), {"name": "no id"}],
    )
    tracks = collect_tracks(["https://cdn.test/music/My%20Song.mp3"], catalog)
    assert [track.id for track in tracks] == ["url-0", "s1"]
    assert tracks[0].title == "My Song"
    assert tracks[1].artist_line == "Band"


def test_collect_tracks_accepts_bare_result_list(tmp_path) -> None:
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps([_result("s1", 10)]), encoding="utf-8")
    assert [track.id for track in collect_tracks([], path)] == ["s1"]


def test_main_without_tracks_returns_nothing_to_play(quiet_logging, capsys) -> None:
    rc = cli_module.main([])
    assert rc == cli_module.EXIT_NOTHING_TO_PLAY
    assert "Nothing to play." in capsys.readouterr().err


def test_main_plays_catalog_with_fake_backend(quiet_logging, tmp_path, capsys) -> None:
    catalog = _write_catalog(tmp_path / "catalog.json", [_result("s1", 0.5), _result("s2", 0.25)])

    rc = cli_module.main(["--backend", "fake", "--repeat", "off", "--catalog", str(catalog)])

    assert rc == cli_module.EXIT_OK
    out = capsys.readouterr().out
    assert "Now playing: Track s1 - Band (0:00)" in out
    assert "Now playing: Track s2 - Band (0:00)" in out
    saved = json.loads(cli_module.state_path().read_text(encoding="utf-8"))
    assert saved["playback_backend"] == "fake"
    assert saved["repeat_mode"] == "off"


def test_main_reports_unexpected_errors(quiet_logging, tmp_path, capsys) -> None:
    path = tmp_path / "catalog.json"
    path.write_text("{not json", encoding="utf-8")

    rc = cli_module.main(["--catalog", str(path)])

    assert rc == cli_module.EXIT_UNEXPECTED
    assert "Unexpected error" in capsys.readouterr().err
