"""
Fixed-interval refresh loop feeding a SnapshotStore.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Generic, Optional, TypeVar
import asyncio
import logging

from .errors import FetchFailure
from .notifications import Notifier
from .store import SnapshotStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PollHandle:
    """
    Returned by Poller.start(). Cancelling it stops the schedule for good.
    """

    def __init__(self, poller: "Poller") -> None:
        self._poller = poller

    @property
    def cancelled(self) -> bool:
        return self._poller.stopped

    def cancel(self) -> bool:
        """Stop polling. Returns False if it was already stopped."""
        return self._poller.stop()


class Poller(Generic[T]):
    """
    Runs one fetch-and-replace cycle right away, then one every ``interval``
    seconds until stopped.

    Failed fetches leave the store untouched and the schedule running. Every
    request gets a sequence number when it is issued so the store can drop
    responses that come back after a newer one was applied. Once stopped,
    nothing that completes later is allowed to touch the store.
    """

    def __init__(
        self,
        name: str,
        fetch: Callable[[], Awaitable[T]],
        store: SnapshotStore[T],
        interval: float,
        notifier: Optional[Notifier] = None,
        failure_title: str = "Connection problem",
    ) -> None:
        self.name = name
        self.interval = interval
        self.failure_title = failure_title
        self.consecutive_failures = 0
        self.last_error: Optional[str] = None
        self._fetch = fetch
        self._store = store
        self._notifier = notifier
        self._next_sequence = 0
        self._task: Optional[asyncio.Task] = None
        self._stopped = False

    @property
    def store(self) -> SnapshotStore[T]:
        return self._store

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def stopped(self) -> bool:
        return self._stopped

    def start(self) -> PollHandle:
        """Schedule the loop on the running event loop."""
        if self._stopped:
            raise RuntimeError(f"Poller {self.name} has been stopped")
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name=f"poll-{self.name}")
        return PollHandle(self)

    def stop(self) -> bool:
        if self._stopped:
            return False
        self._stopped = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
        logger.info("poll.%s stopped", self.name)
        return True

    async def aclose(self) -> None:
        """Stop and wait for the loop task to finish unwinding."""
        self.stop()
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    async def _run(self) -> None:
        logger.info("poll.%s loop started interval=%.1fs", self.name, self.interval)
        while True:
            try:
                try:
                    await self.refresh()
                except Exception:
                    # Keep the loop alive; the next tick retries.
                    logger.exception("poll.%s cycle error", self.name)
                await asyncio.sleep(self.interval)
            except asyncio.CancelledError:
                logger.info("poll.%s loop cancelled", self.name)
                break

    async def refresh(self) -> bool:
        """
        One fetch-and-replace cycle. Returns True if the store was replaced.
        Safe to call out of schedule (the command gateway does, after a
        command is accepted).
        """
        if self._stopped:
            return False

        self._next_sequence += 1
        sequence = self._next_sequence

        try:
            value = await self._fetch()
        except (FetchFailure, ValueError) as exc:
            # A payload that slipped past the client's parsing is still a bad read.
            if self._stopped:
                return False
            self._record_failure(sequence, exc)
            return False

        if self._stopped:
            logger.debug("poll.%s dropped response after stop seq=%s", self.name, sequence)
            return False

        applied = self._store.apply(sequence, value)
        self._record_success()
        return applied

    def _record_success(self) -> None:
        if self.consecutive_failures:
            logger.info(
                "poll.%s recovered after %s failed attempts",
                self.name,
                self.consecutive_failures,
            )
            if self._notifier is not None:
                self._notifier.info("Connection restored", f"{self.name} updates resumed")
        self.consecutive_failures = 0
        self.last_error = None

    def _record_failure(self, sequence: int, exc: Exception) -> None:
        if sequence <= self._store.sequence:
            # A newer request already succeeded; this failure is old news.
            logger.debug("poll.%s ignored stale failure seq=%s", self.name, sequence)
            return

        self.consecutive_failures += 1
        self.last_error = str(exc)
        logger.warning(
            "poll.%s failed seq=%s failures=%s error=%s",
            self.name,
            sequence,
            self.consecutive_failures,
            exc,
        )
        # One toast per outage, not one per tick.
        if self.consecutive_failures == 1 and self._notifier is not None:
            self._notifier.error(self.failure_title, str(exc))
