"""Ordered track queue with a single current-position index.

`QueueStore` owns every queue-mutation invariant: indices stay contiguous and
`current_index` is either -1 or a valid index. It never talks to the media
backend; return values tell the controller when playback must be requested or
stopped.
"""

from __future__ import annotations

import logging
import random
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass

from harmony_player.errors import EmptyTracklist, IndexOutOfRange, InvalidTrack, NoHistory
from harmony_player.services.track import Track

logger = logging.getLogger(__name__)

QUEUE_ARCHIVE_LIMIT = 5
TRACK_HISTORY_LIMIT = 20


@dataclass(frozen=True)
class RemovedTrack:
    """Outcome of `QueueStore.remove_at`."""

    track: Track
    index: int
    was_current: bool


class QueueStore:
    """Ordered sequence of tracks plus the current index."""

    def __init__(
        self,
        *,
        archive_limit: int = QUEUE_ARCHIVE_LIMIT,
        shuffle_random: random.Random | None = None,
    ) -> None:
        if archive_limit < 1:
            raise ValueError("archive_limit must be >= 1")
        self._tracks: list[Track] = []
        self._current_index = -1
        self._archive: deque[tuple[Track, ...]] = deque(maxlen=archive_limit)
        self._shuffle_random = shuffle_random or random.Random()

    def __len__(self) -> int:
        return len(self._tracks)

    @property
    def tracks(self) -> tuple[Track, ...]:
        return tuple(self._tracks)

    @property
    def current_index(self) -> int:
        return self._current_index

    @property
    def current_track(self) -> Track | None:
        if self._current_index < 0:
            return None
        return self._tracks[self._current_index]

    @property
    def archive_depth(self) -> int:
        return len(self._archive)

    def index_of(self, track_id: str) -> int | None:
        for index, track in enumerate(self._tracks):
            if track.id == track_id:
                return index
        return None

    def select(self, index: int) -> Track:
        self._require_index(index)
        self._current_index = index
        return self._tracks[index]

    def append(self, track: Track) -> bool:
        """Add a track to the end; return True when it became current."""
        _require_playable(track)
        auto_start = not self._tracks and self._current_index == -1
        self._tracks.append(track)
        if auto_start:
            self._current_index = 0
        logger.debug("Appended track %s (queue size %d).", track.id, len(self._tracks))
        return auto_start

    def insert_next(self, track: Track) -> bool:
        """Insert right after the current track ("play next")."""
        if self._current_index == -1:
            return self.append(track)
        _require_playable(track)
        self._tracks.insert(self._current_index + 1, track)
        return False

    def remove_at(self, index: int) -> RemovedTrack:
        self._require_index(index)
        removed = self._tracks.pop(index)
        was_current = index == self._current_index
        if index < self._current_index:
            self._current_index -= 1
        elif was_current and self._current_index >= len(self._tracks):
            # Removed current track was the last element.
            self._current_index = -1
        return RemovedTrack(track=removed, index=index, was_current=was_current)

    def replace_all(self, tracks: Iterable[Track], start_index: int = 0) -> Track:
        """Swap in a new queue, archiving the old one, and select `start_index`."""
        new_tracks = list(tracks)
        if not new_tracks:
            raise EmptyTracklist("Cannot replace the queue with an empty tracklist.")
        self._archive_current()
        self._tracks = new_tracks
        self._current_index = max(0, min(start_index, len(new_tracks) - 1))
        return self._tracks[self._current_index]

    def restore_previous(self) -> Track:
        if not self._archive:
            raise NoHistory("No previous queue available.")
        self._tracks = list(self._archive.pop())
        self._current_index = 0
        return self._tracks[0]

    def clear(self) -> None:
        self._archive_current()
        self._tracks = []
        self._current_index = -1

    def shuffle_remaining(self) -> None:
        """Shuffle only the tracks strictly after the current index."""
        start = self._current_index + 1
        remaining = self._tracks[start:]
        if len(remaining) < 2:
            return
        self._shuffle_random.shuffle(remaining)
        self._tracks[start:] = remaining
        logger.debug("Shuffled %d upcoming tracks.", len(remaining))

    def _archive_current(self) -> None:
        if self._tracks:
            self._archive.append(tuple(self._tracks))

    def _require_index(self, index: int) -> None:
        if not 0 <= index < len(self._tracks):
            raise IndexOutOfRange(
                f"Queue index {index} out of range for {len(self._tracks)} tracks."
            )


class TrackHistory:
    """Bounded stack of previously current tracks, most recent first."""

    def __init__(self, *, limit: int = TRACK_HISTORY_LIMIT) -> None:
        self._tracks: deque[Track] = deque(maxlen=limit)

    def __len__(self) -> int:
        return len(self._tracks)

    @property
    def tracks(self) -> tuple[Track, ...]:
        return tuple(self._tracks)

    def push(self, track: Track) -> None:
        if self._tracks and self._tracks[0].id == track.id:
            return
        self._tracks.appendleft(track)

    def pop(self) -> Track:
        if not self._tracks:
            raise NoHistory("No previously played track available.")
        return self._tracks.popleft()


def _require_playable(track: Track) -> None:
    if not track.is_playable:
        raise InvalidTrack(f'Cannot queue "{track.title}": no audio stream available.')
