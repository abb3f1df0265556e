from datetime import timedelta

from irrigation.heartbeat import LivenessVerdict
from irrigation.presentation import (
    UNKNOWN,
    build_dashboard_view,
    build_history_view,
    build_stat_cards,
    moisture_level,
)
from irrigation.schemas import HistoryEntry, InFlightState, Mode

from conftest import T0, make_snapshot, zone_payload

ONLINE = LivenessVerdict(is_online=True, elapsed_label="1 minute")
OFFLINE = LivenessVerdict(is_online=False, elapsed_label="3 minutes")
IDLE = InFlightState()


def test_online_dashboard_shows_readings():
    snapshot = make_snapshot(zones=[zone_payload("zone-1", moisture=28.0), zone_payload("zone-2", moisture=50.0)])
    view = build_dashboard_view("ESP32-Garden-01", snapshot, ONLINE, IDLE)

    assert view.is_online is True
    assert view.mode is Mode.MANUAL
    assert view.mode_toggle_disabled is False

    first, second = view.zones
    assert first.moisture == "28.0"
    assert first.needs_water is True
    assert first.toggle_disabled is False
    assert first.valve_label == "Open Valve"
    assert second.needs_water is False


def test_offline_dashboard_hides_values_and_disables_controls():
    snapshot = make_snapshot()
    view = build_dashboard_view("ESP32-Garden-01", snapshot, OFFLINE, IDLE)

    assert view.elapsed_label == "3 minutes"
    assert view.mode_toggle_disabled is True
    assert all(zone.moisture == UNKNOWN for zone in view.zones)
    assert all(zone.needs_water is None for zone in view.zones)
    assert all(zone.toggle_disabled for zone in view.zones)
    assert all(card.value == UNKNOWN for card in view.stats)


def test_automatic_mode_disables_valves_but_not_mode_toggle():
    view = build_dashboard_view("garden", make_snapshot(mode="auto"), ONLINE, IDLE)
    assert all(zone.toggle_disabled for zone in view.zones)
    assert view.mode_toggle_disabled is False


def test_in_flight_zone_is_loading_and_others_stay_enabled():
    in_flight = InFlightState(loading_valve_ids=frozenset({"zone-2"}), is_mode_changing=True)
    view = build_dashboard_view("garden", make_snapshot(), ONLINE, in_flight)

    by_id = {zone.id: zone for zone in view.zones}
    assert by_id["zone-2"].loading is True
    assert by_id["zone-2"].toggle_disabled is True
    assert by_id["zone-1"].loading is False
    assert by_id["zone-1"].toggle_disabled is False
    assert view.mode_changing is True
    assert view.mode_toggle_disabled is True


def test_dashboard_before_first_snapshot():
    view = build_dashboard_view("garden", None, LivenessVerdict(is_online=False), IDLE, loading=True)
    assert view.loading is True
    assert view.zones == []
    assert view.mode is None
    assert view.elapsed_label is None


def test_dashboard_serializes_with_camel_case_keys():
    view = build_dashboard_view("garden", make_snapshot(), ONLINE, IDLE)
    payload = view.model_dump(by_alias=True, mode="json")
    assert payload["deviceName"] == "garden"
    assert payload["isOnline"] is True
    assert payload["mode"] == "manual"
    assert {"needsWater", "valveLabel", "toggleDisabled"} <= set(payload["zones"][0])


def test_stat_cards_average_moisture():
    snapshot = make_snapshot(zones=[zone_payload("zone-1", moisture=20.0), zone_payload("zone-2", moisture=30.0)])
    moisture, temperature, humidity = build_stat_cards(snapshot, True)

    assert moisture.value == "25.0"
    assert moisture.variant == "warning"
    assert temperature.value == "24.0"
    assert temperature.unit == "°C"
    assert humidity.value == "65.0"


def test_stat_cards_skip_missing_readings():
    snapshot = make_snapshot(zones=[zone_payload("zone-1", moisture=None), zone_payload("zone-2", moisture=70.0)])
    moisture = build_stat_cards(snapshot, True)[0]
    assert moisture.value == "70.0"
    assert moisture.variant == "success"


def test_moisture_levels():
    assert moisture_level(29.9) == "low"
    assert moisture_level(30.0) == "normal"
    assert moisture_level(60.0) == "normal"
    assert moisture_level(60.1) == "high"
    assert moisture_level(None) == "unknown"


def test_history_rows_are_numbered_and_leveled():
    entries = [
        HistoryEntry.model_validate({
            "timestamp": (T0 - timedelta(minutes=5)).isoformat(),
            "zones": [{"id": "zone-1", "moisture": 25}, {"id": "zone-2", "moisture": 65}],
            "temperature": 22.5,
        }),
        HistoryEntry.model_validate({"timestamp": T0.isoformat(), "zones": [{"id": "zone-1"}]}),
    ]
    view = build_history_view(entries)

    assert view.loading is False
    assert [row.index for row in view.rows] == [1, 2]
    assert [item.level for item in view.rows[0].moisture] == ["low", "high"]
    assert view.rows[1].moisture[0].level == "unknown"
    assert view.rows[1].timestamp == T0


def test_history_view_while_loading():
    view = build_history_view(None, loading=True)
    assert view.loading is True
    assert view.rows == []
