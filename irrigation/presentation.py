"""
Map engine state onto dashboard view models.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from .heartbeat import LivenessVerdict
from .policy import can_change_mode, can_toggle_valve
from .schemas import (
    DeviceSnapshot,
    DashboardView,
    HistoryEntry,
    HistoryMoistureView,
    HistoryRowView,
    HistoryView,
    InFlightState,
    StatCardView,
    ZoneState,
    ZoneView,
)

UNKNOWN = "unknown"

# Moisture bands used by the stat card and the history table.
LOW_MOISTURE = 30.0
HIGH_MOISTURE = 60.0


def _display(value: Optional[float], is_online: bool) -> str:
    if not is_online or value is None:
        return UNKNOWN
    return f"{value:.1f}"


def moisture_level(moisture: Optional[float]) -> str:
    if moisture is None:
        return "unknown"
    if moisture < LOW_MOISTURE:
        return "low"
    if moisture > HIGH_MOISTURE:
        return "high"
    return "normal"


def average_moisture(zones: Sequence[ZoneState]) -> Optional[float]:
    readings = [zone.moisture for zone in zones if zone.moisture is not None]
    if not readings:
        return None
    return sum(readings) / len(readings)


def build_zone_view(
    zone: ZoneState,
    snapshot: DeviceSnapshot,
    verdict: LivenessVerdict,
    in_flight: InFlightState,
) -> ZoneView:
    loading = zone.id in in_flight.loading_valve_ids
    known = verdict.is_online and zone.moisture is not None
    return ZoneView(
        id=zone.id,
        name=zone.name or zone.id,
        crop_type=zone.crop_type,
        soil_type=zone.soil_type,
        moisture=_display(zone.moisture, verdict.is_online),
        moisture_threshold=zone.moisture_threshold,
        needs_water=(zone.moisture < zone.moisture_threshold) if known else None,
        valve_open=zone.valve_open,
        valve_label="Close Valve" if zone.valve_open else "Open Valve",
        loading=loading,
        toggle_disabled=loading or not can_toggle_valve(snapshot.mode, verdict.is_online),
    )


def build_stat_cards(snapshot: Optional[DeviceSnapshot], is_online: bool) -> List[StatCardView]:
    moisture = average_moisture(snapshot.zones) if snapshot is not None else None
    temperature = snapshot.temperature if snapshot is not None else None
    humidity = snapshot.humidity if snapshot is not None else None

    moisture_variant = "default"
    if is_online and moisture is not None:
        moisture_variant = "warning" if moisture < LOW_MOISTURE else "success"

    return [
        StatCardView(
            title="Soil Moisture",
            value=_display(moisture, is_online),
            unit="%",
            variant=moisture_variant,
        ),
        StatCardView(
            title="Temperature",
            value=_display(temperature, is_online),
            unit="°C",
            variant="info",
        ),
        StatCardView(
            title="Humidity",
            value=_display(humidity, is_online),
            unit="%",
        ),
    ]


def build_dashboard_view(
    device_name: str,
    snapshot: Optional[DeviceSnapshot],
    verdict: LivenessVerdict,
    in_flight: InFlightState,
    loading: bool = False,
) -> DashboardView:
    zones: List[ZoneView] = []
    if snapshot is not None:
        zones = [build_zone_view(zone, snapshot, verdict, in_flight) for zone in snapshot.zones]

    return DashboardView(
        device_name=device_name,
        loading=loading,
        is_online=verdict.is_online,
        elapsed_label=verdict.elapsed_label,
        mode=snapshot.mode if snapshot is not None else None,
        motor_status=snapshot.motor_status if snapshot is not None else False,
        mode_changing=in_flight.is_mode_changing,
        mode_toggle_disabled=in_flight.is_mode_changing or not can_change_mode(verdict.is_online),
        stats=build_stat_cards(snapshot, verdict.is_online),
        zones=zones,
    )


def build_history_view(entries: Optional[Sequence[HistoryEntry]], loading: bool = False) -> HistoryView:
    rows: List[HistoryRowView] = []
    for index, entry in enumerate(entries or (), start=1):
        rows.append(
            HistoryRowView(
                index=index,
                timestamp=entry.timestamp,
                moisture=[
                    HistoryMoistureView(
                        zone_id=reading.id,
                        moisture=reading.moisture,
                        level=moisture_level(reading.moisture),
                    )
                    for reading in entry.zones
                ],
                temperature=entry.temperature,
                humidity=entry.humidity,
            )
        )
    return HistoryView(loading=loading, rows=rows)
