import asyncio

import pytest

from irrigation.errors import FetchFailure
from irrigation.notifications import Notifier
from irrigation.poller import Poller
from irrigation.store import SnapshotStore


class ScriptedFetch:
    """Returns (or raises) scripted results in order; the last one repeats."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0
        self.called = asyncio.Event()

    async def __call__(self):
        self.calls += 1
        self.called.set()
        item = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(item, BaseException):
            raise item
        return item


def make_poller(fetch, interval=60.0):
    store = SnapshotStore("device")
    notifier = Notifier()
    poller = Poller("device", fetch, store, interval, notifier)
    return poller, store, notifier


@pytest.mark.asyncio
async def test_refresh_replaces_store():
    poller, store, _ = make_poller(ScriptedFetch("snap-1"))
    assert await poller.refresh() is True
    assert store.value == "snap-1"
    assert store.loading is False


@pytest.mark.asyncio
async def test_failed_tick_keeps_previous_snapshot_and_next_tick_recovers():
    fetch = ScriptedFetch("tick-1", FetchFailure("network down"), "tick-3")
    poller, store, notifier = make_poller(fetch)

    await poller.refresh()
    assert store.value == "tick-1"

    assert await poller.refresh() is False
    assert store.value == "tick-1"
    assert poller.consecutive_failures == 1
    assert poller.last_error == "network down"

    assert await poller.refresh() is True
    assert store.value == "tick-3"
    assert poller.consecutive_failures == 0

    levels = [item.level for item in notifier.recent()]
    assert levels == ["error", "info"]


@pytest.mark.asyncio
async def test_failure_streak_notifies_once():
    fetch = ScriptedFetch(FetchFailure("down"))
    poller, store, notifier = make_poller(fetch)

    for _ in range(4):
        await poller.refresh()

    assert poller.consecutive_failures == 4
    assert len(notifier.recent()) == 1
    assert notifier.recent()[0].description == "down"
    assert store.value is None
    assert store.loading is True


@pytest.mark.asyncio
async def test_late_response_does_not_clobber_newer_one():
    gate = asyncio.Event()
    calls = []

    async def fetch():
        calls.append(len(calls))
        if len(calls) == 1:
            await gate.wait()
            return "slow-old"
        return "fast-new"

    poller, store, _ = make_poller(fetch)
    slow = asyncio.create_task(poller.refresh())
    await asyncio.sleep(0)

    assert await poller.refresh() is True
    assert store.value == "fast-new"

    gate.set()
    assert await slow is False
    assert store.value == "fast-new"


@pytest.mark.asyncio
async def test_start_fetches_immediately_and_repeats_until_cancelled():
    fetch = ScriptedFetch("snap")
    poller, store, _ = make_poller(fetch, interval=0.01)

    handle = poller.start()
    await asyncio.wait_for(fetch.called.wait(), timeout=1.0)
    assert store.value == "snap"

    for _ in range(100):
        if fetch.calls >= 3:
            break
        await asyncio.sleep(0.01)
    assert fetch.calls >= 3

    assert handle.cancel() is True
    assert handle.cancel() is False
    assert handle.cancelled is True
    await poller.aclose()
    assert poller.running is False

    calls_after_cancel = fetch.calls
    await asyncio.sleep(0.05)
    assert fetch.calls == calls_after_cancel


@pytest.mark.asyncio
async def test_response_arriving_after_stop_is_dropped():
    gate = asyncio.Event()

    async def fetch():
        await gate.wait()
        return "late"

    poller, store, notifier = make_poller(fetch)
    pending = asyncio.create_task(poller.refresh())
    await asyncio.sleep(0)

    poller.stop()
    gate.set()

    assert await pending is False
    assert store.value is None
    assert notifier.recent() == []
    assert await poller.refresh() is False


@pytest.mark.asyncio
async def test_unexpected_error_does_not_kill_loop():
    fetch = ScriptedFetch(RuntimeError("bug"), "snap")
    poller, store, _ = make_poller(fetch, interval=0.01)

    poller.start()
    for _ in range(100):
        if store.value == "snap":
            break
        await asyncio.sleep(0.01)
    await poller.aclose()

    assert store.value == "snap"


@pytest.mark.asyncio
async def test_start_after_stop_is_refused():
    poller, _, _ = make_poller(ScriptedFetch("snap"))
    poller.stop()
    with pytest.raises(RuntimeError):
        poller.start()


@pytest.mark.asyncio
async def test_parse_error_from_fetch_counts_as_failure():
    fetch = ScriptedFetch(ValueError("bad timestamp"), "snap")
    poller, store, notifier = make_poller(fetch)

    assert await poller.refresh() is False
    assert poller.consecutive_failures == 1
    assert poller.last_error == "bad timestamp"
    assert [item.level for item in notifier.recent()] == ["error"]

    assert await poller.refresh() is True
    assert store.value == "snap"
