"""
Device liveness derived from the snapshot's last-update time.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional


STALE_THRESHOLD = timedelta(minutes=2)


@dataclass(frozen=True)
class LivenessVerdict:
    """
    Online/offline verdict plus how long ago the device last reported.
    ``elapsed_label`` is None when the device has never reported.
    """

    is_online: bool
    elapsed_label: Optional[str] = None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}" if count == 1 else f"{count} {unit}s"


def format_elapsed(elapsed: timedelta) -> str:
    """
    Render an elapsed duration as minutes, hours or days, floored.
    """
    minutes = int(max(elapsed.total_seconds(), 0.0) // 60)
    if minutes < 60:
        return _plural(minutes, "minute")
    hours = minutes // 60
    if minutes < 1440:
        return _plural(hours, "hour")
    return _plural(hours // 24, "day")


def evaluate(last_updated_at: Optional[datetime], now: datetime) -> LivenessVerdict:
    """
    Derive liveness from the last confirmed update. Pure: callers re-run it
    whenever they need a verdict, since ``now`` keeps moving between polls.
    """
    if last_updated_at is None:
        return LivenessVerdict(is_online=False)

    # Clock skew can put the device ahead of us; treat that as "just now".
    elapsed = max(now - last_updated_at, timedelta(0))
    return LivenessVerdict(
        is_online=elapsed < STALE_THRESHOLD,
        elapsed_label=format_elapsed(elapsed),
    )
