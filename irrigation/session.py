"""
One mounted dashboard: client, stores, pollers and command gateway.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, List, Optional, Union
import logging

from .client import DeviceClient
from .config import Settings
from .gateway import CommandGateway
from .heartbeat import LivenessVerdict, utcnow
from .notifications import Notifier
from .poller import PollHandle, Poller
from .presentation import build_dashboard_view, build_history_view
from .schemas import Confirmation, DashboardView, DeviceSnapshot, HistoryEntry, HistoryView, Mode
from .store import SnapshotStore

logger = logging.getLogger(__name__)


class DashboardSession:
    """
    Owns everything that lives as long as the dashboard is mounted.

    ``start()`` kicks off the state and history pollers; ``close()`` cancels
    them exactly once and detaches the command gateway so nothing mutates
    state after teardown. Use it as an async context manager to get both.
    """

    def __init__(
        self,
        settings: Settings,
        client: Optional[DeviceClient] = None,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.settings = settings
        self._owns_client = client is None
        self.client = client or DeviceClient(
            settings.api_base,
            timeout=settings.request_timeout,
            zone_descriptors=settings.zone_descriptors,
        )
        self.notifier = notifier or Notifier()

        self.snapshot_store: SnapshotStore[DeviceSnapshot] = SnapshotStore("device")
        self.history_store: SnapshotStore[List[HistoryEntry]] = SnapshotStore("history")
        self.state_poller: Poller[DeviceSnapshot] = Poller(
            "device",
            self.client.snapshot,
            self.snapshot_store,
            settings.poll_interval,
            self.notifier,
            failure_title="Failed to fetch device state",
        )
        self.history_poller: Poller[List[HistoryEntry]] = Poller(
            "history",
            self._fetch_history,
            self.history_store,
            settings.history_interval,
            self.notifier,
            failure_title="Failed to fetch history",
        )
        self.gateway = CommandGateway(
            self.client,
            self.snapshot_store,
            self.state_poller,
            self.notifier,
            clock=clock,
        )
        self._handles: List[PollHandle] = []
        self._started = False
        self._closed = False

    async def _fetch_history(self) -> List[HistoryEntry]:
        return await self.client.history(self.settings.history_limit)

    @property
    def closed(self) -> bool:
        return self._closed

    async def start(self) -> None:
        if self._closed:
            raise RuntimeError("Dashboard session is closed")
        if self._started:
            return
        self._started = True
        missing = self.settings.missing_fields()
        if missing:
            logger.warning("session.start missing settings: %s", ", ".join(missing))
        self._handles = [self.state_poller.start(), self.history_poller.start()]
        logger.info(
            "session.start device=%s api=%s",
            self.settings.device_name,
            self.client.base_url,
        )

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.gateway.dispose()
        for handle in self._handles:
            handle.cancel()
        await self.state_poller.aclose()
        await self.history_poller.aclose()
        if self._owns_client:
            await self.client.aclose()
        logger.info("session.close device=%s", self.settings.device_name)

    async def __aenter__(self) -> "DashboardSession":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def liveness(self) -> LivenessVerdict:
        return self.gateway.liveness()

    def dashboard_view(self) -> DashboardView:
        return build_dashboard_view(
            self.settings.device_name,
            self.snapshot_store.value,
            self.liveness(),
            self.gateway.in_flight(),
            loading=self.snapshot_store.loading,
        )

    def history_view(self) -> HistoryView:
        return build_history_view(self.history_store.value, loading=self.history_store.loading)

    async def toggle_valve(self, zone_id: str, desired_state: Optional[bool] = None) -> Confirmation:
        return await self.gateway.toggle_valve(zone_id, desired_state)

    async def set_mode(self, mode: Union[Mode, str]) -> Confirmation:
        return await self.gateway.set_mode(mode)
