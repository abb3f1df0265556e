import asyncio
import os
import sys
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import pytest

# Ensure project root is on sys.path for `import irrigation`
PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
PROJECT_ROOT = os.path.dirname(PROJECT_ROOT)
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from irrigation.errors import CommandRejected, FetchFailure
from irrigation.gateway import CommandGateway
from irrigation.notifications import Notifier
from irrigation.poller import Poller
from irrigation.schemas import CommandResponse, DeviceSnapshot
from irrigation.store import SnapshotStore


T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def zone_payload(zone_id: Any, **overrides: Any) -> Dict[str, Any]:
    payload = {
        "id": zone_id,
        "name": f"Zone {str(zone_id).split('-')[-1]}",
        "cropType": "Tomatoes",
        "soilType": "Loam",
        "moistureThreshold": 35,
        "moisture": 42.0,
        "valveOpen": False,
    }
    payload.update(overrides)
    return payload


def snapshot_payload(
    mode: str = "manual",
    updated_at: Optional[datetime] = T0,
    zones: Optional[List[Dict[str, Any]]] = None,
    **overrides: Any,
) -> Dict[str, Any]:
    payload = {
        "zones": zones if zones is not None else [zone_payload("zone-1"), zone_payload("zone-2")],
        "temperature": 24.0,
        "humidity": 65.0,
        "motorStatus": False,
        "mode": mode,
        "updatedAt": updated_at.isoformat() if updated_at else None,
    }
    payload.update(overrides)
    return payload


def make_snapshot(**kwargs: Any) -> DeviceSnapshot:
    return DeviceSnapshot.model_validate(snapshot_payload(**kwargs))


class FakeDeviceClient:
    """
    Scripted stand-in for DeviceClient. Snapshots are served in order, the
    last one repeating. Commands can be held open with per-target gates.
    """

    def __init__(self, snapshots: Optional[List[DeviceSnapshot]] = None) -> None:
        self.snapshots: List[Any] = list(snapshots or [])
        self.calls: List[tuple] = []
        self.gates: Dict[str, asyncio.Event] = {}
        self.reject_with: Optional[CommandRejected] = None
        self.on_command: Optional[Callable[[str], None]] = None
        self.on_fetch: Optional[Callable[[], None]] = None

    def command_calls(self) -> List[tuple]:
        return [call for call in self.calls if call[0] != "snapshot"]

    def fetch_count(self) -> int:
        return sum(1 for call in self.calls if call[0] == "snapshot")

    async def snapshot(self) -> DeviceSnapshot:
        self.calls.append(("snapshot",))
        if self.on_fetch is not None:
            self.on_fetch()
        if not self.snapshots:
            raise FetchFailure("no data")
        item = self.snapshots.pop(0) if len(self.snapshots) > 1 else self.snapshots[0]
        if isinstance(item, Exception):
            raise item
        return item

    async def _command(self, target: str) -> CommandResponse:
        if self.on_command is not None:
            self.on_command(target)
        gate = self.gates.get(target)
        if gate is not None:
            await gate.wait()
        if self.reject_with is not None:
            raise self.reject_with
        return CommandResponse(message="ok")

    async def set_valve(self, zone_id: str, desired_open: bool) -> CommandResponse:
        self.calls.append(("set_valve", zone_id, desired_open))
        return await self._command(zone_id)

    async def set_mode(self, mode: Any) -> CommandResponse:
        self.calls.append(("set_mode", mode))
        return await self._command("mode")


class GatewayHarness:
    def __init__(self, client: FakeDeviceClient, now: datetime) -> None:
        self.client = client
        self.now = now
        self.notifier = Notifier()
        self.store: SnapshotStore[DeviceSnapshot] = SnapshotStore("device")
        self.poller: Poller[DeviceSnapshot] = Poller(
            "device", client.snapshot, self.store, interval=60.0, notifier=self.notifier
        )
        self.gateway = CommandGateway(
            client, self.store, self.poller, self.notifier, clock=lambda: self.now
        )

    async def load(self) -> None:
        """Land the first snapshot through the poller, then forget the call."""
        await self.poller.refresh()
        self.client.calls.clear()


@pytest.fixture
def harness_factory() -> Callable[..., GatewayHarness]:
    def factory(snapshots: List[Any], now: datetime = T0 + timedelta(seconds=90)) -> GatewayHarness:
        return GatewayHarness(FakeDeviceClient(snapshots), now)

    return factory
