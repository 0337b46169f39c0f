"""Bounded, track-scoped automatic retry of failing streams."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import suppress

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
RETRY_BACKOFF_S = 1.0

RetryCallback = Callable[[str], Awaitable[None]]


class RetryPolicy:
    """Counts consecutive stream failures and schedules delayed re-attempts.

    At most one retry is pending at a time and it belongs to a single track;
    scheduling a new one or calling `cancel` drops the previous task. The
    backoff runs in its own task so queue operations are never blocked by it.
    """

    def __init__(
        self,
        *,
        max_retries: int = MAX_RETRIES,
        backoff_s: float = RETRY_BACKOFF_S,
    ) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        self._max_retries = max_retries
        self._backoff_s = max(0.0, float(backoff_s))
        self._retry_count = 0
        self._task: asyncio.Task[None] | None = None
        self._pending_track_id: str | None = None

    @property
    def max_retries(self) -> int:
        return self._max_retries

    @property
    def retry_count(self) -> int:
        return self._retry_count

    @property
    def exhausted(self) -> bool:
        return self._retry_count >= self._max_retries

    @property
    def pending_track_id(self) -> str | None:
        return self._pending_track_id if self._task is not None else None

    def record_failure(self) -> bool:
        """Count one failure; return True while another attempt is allowed."""
        if not self.exhausted:
            self._retry_count += 1
        return not self.exhausted

    def schedule(self, track_id: str, callback: RetryCallback) -> None:
        self.cancel()
        self._pending_track_id = track_id
        self._task = asyncio.create_task(self._run(track_id, callback))

    def cancel(self) -> bool:
        """Cancel the pending retry, if any; return whether one was pending."""
        task = self._task
        self._task = None
        self._pending_track_id = None
        if task is None or task.done():
            return False
        task.cancel()
        logger.debug("Cancelled pending stream retry.")
        return True

    def reset(self) -> None:
        self.cancel()
        self._retry_count = 0

    async def shutdown(self) -> None:
        task = self._task
        self.cancel()
        if task is not None:
            with suppress(asyncio.CancelledError):
                await task

    async def _run(self, track_id: str, callback: RetryCallback) -> None:
        await asyncio.sleep(self._backoff_s)
        if self._pending_track_id != track_id:
            return
        # Detach before running so a failing attempt can schedule the next one.
        self._task = None
        self._pending_track_id = None
        await callback(track_id)
