"""
Holder for the latest value fetched from the device.
"""

from __future__ import annotations

from typing import Callable, Generic, List, Optional, TypeVar
import logging
import time

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SnapshotStore(Generic[T]):
    """
    Keeps the most recent fetched value and replaces it wholesale.

    Each value comes with the sequence number of the request that produced
    it. A value from an older request than the one currently held is
    discarded, so a slow response never overwrites a fresher one.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._value: Optional[T] = None
        self._sequence = 0
        self._applied_at: Optional[float] = None
        self._handlers: List[Callable[[T], None]] = []

    @property
    def value(self) -> Optional[T]:
        return self._value

    @property
    def sequence(self) -> int:
        return self._sequence

    @property
    def loading(self) -> bool:
        """True until the first successful fetch lands."""
        return self._applied_at is None

    @property
    def age(self) -> Optional[float]:
        """Seconds since the last replacement, on the local monotonic clock."""
        if self._applied_at is None:
            return None
        return time.monotonic() - self._applied_at

    def subscribe(self, handler: Callable[[T], None]) -> Callable[[], None]:
        """Register a change handler; returns a callable that removes it."""
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    def apply(self, sequence: int, value: T) -> bool:
        """
        Replace the held value if ``sequence`` is newer than the current one.
        """
        if sequence <= self._sequence:
            logger.info(
                "store.%s discarded late response seq=%s current=%s",
                self.name,
                sequence,
                self._sequence,
            )
            return False

        self._value = value
        self._sequence = sequence
        self._applied_at = time.monotonic()

        for handler in list(self._handlers):
            try:
                handler(value)
            except Exception:
                logger.exception("store.%s change handler failed", self.name)
        return True
