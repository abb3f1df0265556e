"""
Command dispatch with eligibility checks and in-flight tracking.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional, Set, Union
import logging

from .client import DeviceClient
from .errors import CommandInFlight, CommandRejected, UnknownZone
from .heartbeat import LivenessVerdict, evaluate, utcnow
from .notifications import Notifier
from .policy import check_change_mode, check_toggle_valve
from .poller import Poller
from .schemas import Confirmation, DeviceSnapshot, InFlightState, Mode
from .store import SnapshotStore

logger = logging.getLogger(__name__)

MODE_TARGET = "mode"


class CommandGateway:
    """
    Sends valve and mode commands to the device.

    Commands never write to the snapshot. On acceptance the gateway asks the
    poller for an immediate re-sync, so whatever the UI shows afterwards is
    what the device reported, not what we hoped it would do. From dispatch
    until that re-sync lands, the command's target (a zone id, or the global
    mode slot) is marked in flight and a second command for that target is
    refused; other zones stay free.
    """

    def __init__(
        self,
        client: DeviceClient,
        store: SnapshotStore[DeviceSnapshot],
        poller: Poller[DeviceSnapshot],
        notifier: Notifier,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._client = client
        self._store = store
        self._poller = poller
        self._notifier = notifier
        self._clock = clock
        self._valves_in_flight: Set[str] = set()
        self._mode_changing = False
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    def dispose(self) -> None:
        """
        Detach from the view. Commands still waiting on the device finish
        silently: no in-flight updates, notifications or re-syncs.
        """
        self._disposed = True

    def liveness(self) -> LivenessVerdict:
        snapshot = self._store.value
        last_updated_at = snapshot.last_updated_at if snapshot is not None else None
        return evaluate(last_updated_at, self._clock())

    def in_flight(self) -> InFlightState:
        return InFlightState(
            loading_valve_ids=frozenset(self._valves_in_flight),
            is_mode_changing=self._mode_changing,
        )

    def _release_valve(self, zone_id: str) -> None:
        if not self._disposed:
            self._valves_in_flight.discard(zone_id)

    def _release_mode(self) -> None:
        if not self._disposed:
            self._mode_changing = False

    async def _resync(self) -> None:
        if self._disposed:
            return
        await self._poller.refresh()

    async def toggle_valve(
        self, zone_id: str, desired_state: Optional[bool] = None
    ) -> Confirmation:
        """
        Open or close one zone's valve. ``desired_state`` of None flips the
        last confirmed state. The zone stays in flight until the re-sync
        after acceptance has landed.
        """
        if self._disposed:
            raise RuntimeError("Command gateway has been disposed")

        snapshot = self._store.value
        verdict = self.liveness()
        check_toggle_valve(snapshot.mode if snapshot is not None else None, verdict.is_online)

        zone = snapshot.zone(zone_id) if snapshot is not None else None
        if zone is None:
            raise UnknownZone(zone_id)
        if zone_id in self._valves_in_flight:
            raise CommandInFlight(f"zone {zone_id}")

        desired = (not zone.valve_open) if desired_state is None else desired_state
        zone_label = zone.name or zone.id

        self._valves_in_flight.add(zone_id)
        logger.info("command.valve zone=%s desired_open=%s dispatched", zone_id, desired)
        try:
            try:
                response = await self._client.set_valve(zone_id, desired)
            except CommandRejected as exc:
                logger.warning("command.valve zone=%s failed reason=%s", zone_id, exc.reason)
                if not self._disposed:
                    self._notifier.error("Valve command failed", f"{zone_label}: {exc.reason}")
                raise

            state = "open" if desired else "closed"
            confirmation = Confirmation(
                target=zone_id,
                state=state,
                title="Valve Opened" if desired else "Valve Closed",
                description=f"{zone_label} valve is now {state}.",
                server_message=response.message,
            )
            if self._disposed:
                logger.debug("command.valve zone=%s completed after dispose", zone_id)
                return confirmation

            logger.info("command.valve zone=%s accepted state=%s", zone_id, state)
            self._notifier.success(confirmation.title, confirmation.description)
            await self._resync()
            return confirmation
        finally:
            self._release_valve(zone_id)

    async def set_mode(self, desired_mode: Union[Mode, str]) -> Confirmation:
        """Switch the controller between automatic and manual mode."""
        if self._disposed:
            raise RuntimeError("Command gateway has been disposed")

        mode = Mode.parse(desired_mode)
        check_change_mode(self.liveness().is_online)
        if self._mode_changing:
            raise CommandInFlight(MODE_TARGET)

        self._mode_changing = True
        logger.info("command.mode desired=%s dispatched", mode.value)
        try:
            try:
                response = await self._client.set_mode(mode)
            except CommandRejected as exc:
                logger.warning("command.mode desired=%s failed reason=%s", mode.value, exc.reason)
                if not self._disposed:
                    self._notifier.error("Mode change failed", exc.reason)
                raise

            confirmation = Confirmation(
                target=MODE_TARGET,
                state=mode.value,
                title="Mode Changed",
                description=f"Irrigation is now in {mode.label.lower()} mode.",
                server_message=response.message,
            )
            if self._disposed:
                logger.debug("command.mode completed after dispose")
                return confirmation

            logger.info("command.mode accepted mode=%s", mode.value)
            self._notifier.success(confirmation.title, confirmation.description)
            await self._resync()
            return confirmation
        finally:
            self._release_mode()
