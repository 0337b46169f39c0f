"""Tests for queue index invariants and history bookkeeping."""

from __future__ import annotations

import random

import pytest

from harmony_player.errors import EmptyTracklist, IndexOutOfRange, InvalidTrack, NoHistory
from harmony_player.services.queue_store import QueueStore, TrackHistory
from harmony_player.services.track import Track


def _track(track_id: str) -> Track:
    return Track(id=track_id, title=track_id.upper(), stream_url=f"https://x.test/{track_id}")


def _ids(store: QueueStore) -> list[str]:
    return [track.id for track in store.tracks]


def test_first_append_becomes_current() -> None:
    store = QueueStore()
    assert store.current_index == -1
    assert store.current_track is None

    assert store.append(_track("a")) is True
    assert store.append(_track("b")) is False
    assert store.current_index == 0
    assert store.current_track == _track("a")


def test_append_after_clear_auto_selects_again() -> None:
    store = QueueStore()
    store.append(_track("a"))
    store.clear()
    assert store.append(_track("b")) is True


def test_append_rejects_unplayable_track() -> None:
    store = QueueStore()
    with pytest.raises(InvalidTrack):
        store.append(Track(id="x", title="X"))
    assert len(store) == 0


def test_insert_next_on_empty_queue_appends() -> None:
    store = QueueStore()
    assert store.insert_next(_track("a")) is True
    store.insert_next(_track("b"))
    store.insert_next(_track("c"))
    assert _ids(store) == ["a", "c", "b"]


def test_remove_before_current_decrements_index() -> None:
    store = QueueStore()
    store.replace_all([_track("a"), _track("b"), _track("c")], start_index=2)
    removed = store.remove_at(0)
    assert removed.was_current is False
    assert store.current_index == 1
    assert store.current_track == _track("c")


def test_remove_after_current_keeps_index() -> None:
    store = QueueStore()
    store.replace_all([_track("a"), _track("b"), _track("c")], start_index=0)
    store.remove_at(2)
    assert store.current_index == 0


def test_remove_current_keeps_index_pointing_at_next() -> None:
    store = QueueStore()
    store.replace_all([_track("a"), _track("b"), _track("c")], start_index=1)
    removed = store.remove_at(1)
    assert removed.was_current is True
    assert removed.track == _track("b")
    assert store.current_track == _track("c")


def test_remove_current_last_element_clears_index() -> None:
    store = QueueStore()
    store.replace_all([_track("a"), _track("b")], start_index=1)
    store.remove_at(1)
    assert store.current_index == -1
    assert store.current_track is None


def test_remove_out_of_range_raises() -> None:
    store = QueueStore()
    store.append(_track("a"))
    with pytest.raises(IndexOutOfRange):
        store.remove_at(1)
    with pytest.raises(IndexOutOfRange):
        store.remove_at(-1)
    with pytest.raises(IndexOutOfRange):
        store.select(5)


def test_replace_all_clamps_start_index() -> None:
    store = QueueStore()
    assert store.replace_all([_track("a"), _track("b")], start_index=9) == _track("b")
    assert store.current_index == 1
    store.replace_all([_track("c")], start_index=-4)
    assert store.current_index == 0


def test_replace_all_empty_raises_and_keeps_queue() -> None:
    store = QueueStore()
    store.append(_track("a"))
    with pytest.raises(EmptyTracklist):
        store.replace_all([])
    assert _ids(store) == ["a"]
    assert store.archive_depth == 0


def test_archive_is_bounded_and_restores_most_recent() -> None:
    store = QueueStore(archive_limit=2)
    for name in ["a", "b", "c", "d"]:
        store.replace_all([_track(name)])
    assert store.archive_depth == 2

    assert store.restore_previous() == _track("c")
    assert store.current_index == 0
    assert store.restore_previous() == _track("b")
    with pytest.raises(NoHistory):
        store.restore_previous()


def test_clear_archives_non_empty_queue_only() -> None:
    store = QueueStore()
    store.clear()
    assert store.archive_depth == 0
    store.append(_track("a"))
    store.clear()
    assert store.archive_depth == 1
    assert store.current_index == -1


def test_shuffle_remaining_leaves_played_prefix() -> None:
    tracks = [_track(str(index)) for index in range(10)]
    store = QueueStore(shuffle_random=random.Random(1))
    store.replace_all(tracks, start_index=4)

    store.shuffle_remaining()

    assert store.tracks[:5] == tuple(tracks[:5])
    assert sorted(_ids(store)[5:]) == sorted(track.id for track in tracks[5:])
    assert store.current_index == 4


def test_shuffle_remaining_with_nothing_upcoming_is_noop() -> None:
    store = QueueStore()
    store.replace_all([_track("a"), _track("b")], start_index=1)
    store.shuffle_remaining()
    assert _ids(store) == ["a", "b"]


def test_index_of_finds_by_identity() -> None:
    store = QueueStore()
    store.replace_all([_track("a"), _track("b")])
    assert store.index_of("b") == 1
    assert store.index_of("zzz") is None


def test_track_history_is_bounded_most_recent_first() -> None:
    history = TrackHistory(limit=3)
    for name in ["a", "b", "b", "c", "d"]:
        history.push(_track(name))
    assert [track.id for track in history.tracks] == ["d", "c", "b"]
    assert history.pop() == _track("d")
    assert len(history) == 2


def test_track_history_pop_empty_raises() -> None:
    with pytest.raises(NoHistory):
        TrackHistory().pop()
