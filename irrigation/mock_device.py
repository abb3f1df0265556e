"""
Simulated irrigation controller serving the device API.
Used for local development and the integration tests.
"""

from __future__ import annotations

from collections import deque
from datetime import datetime
from typing import Any, Deque, Dict, Iterable, List, Mapping, Optional
import logging
import random

from fastapi import FastAPI, Query
from fastapi.responses import JSONResponse
import uvicorn

from .config import HISTORY_PATH, MODE_PATH, STATUS_PATH, VALVE_PATH
from .heartbeat import utcnow
from .schemas import Mode

logger = logging.getLogger(__name__)


DEFAULT_ZONES: List[Dict[str, Any]] = [
    {"id": "zone-1", "name": "Vegetable Garden", "cropType": "Tomatoes",
     "soilType": "Loam", "moistureThreshold": 35.0},
    {"id": "zone-2", "name": "Orchard", "cropType": "Apple Trees",
     "soilType": "Clay", "moistureThreshold": 30.0},
    {"id": "zone-3", "name": "Herb Bed", "cropType": "Basil",
     "soilType": "Sandy", "moistureThreshold": 40.0},
]


class MockIrrigationController:
    """
    In-memory simulation of the controller. Readings drift a little on every
    status read; open valves push moisture up.
    """

    def __init__(
        self,
        zones: Optional[Iterable[Mapping[str, Any]]] = None,
        mode: Mode = Mode.MANUAL,
        seed: Optional[int] = None,
        history_size: int = 100,
    ):
        self._random = random.Random(seed)
        self.zones: List[Dict[str, Any]] = []
        for zone in zones if zones is not None else DEFAULT_ZONES:
            entry = dict(zone)
            entry.setdefault("moisture", round(self._random.uniform(25.0, 60.0), 1))
            entry.setdefault("valveOpen", False)
            self.zones.append(entry)
        self.mode = mode
        self.temperature = round(self._random.uniform(18.0, 28.0), 1)
        self.humidity = round(self._random.uniform(45.0, 75.0), 1)
        self.updated_at: datetime = utcnow()
        self.frozen = False  # stop the heartbeat to simulate a dead device
        self._history: Deque[Dict[str, Any]] = deque(maxlen=history_size)
        self._record_sample()

    @property
    def motor_status(self) -> bool:
        return any(zone["valveOpen"] for zone in self.zones)

    def get_zone(self, zone_id: str) -> Optional[Dict[str, Any]]:
        for zone in self.zones:
            if zone["id"] == zone_id:
                return zone
        return None

    def _drift(self) -> None:
        for zone in self.zones:
            step = self._random.uniform(1.0, 2.5) if zone["valveOpen"] else self._random.uniform(-1.0, 0.3)
            zone["moisture"] = round(max(0.0, min(100.0, zone["moisture"] + step)), 1)
        self.temperature = round(max(15.0, min(35.0, self.temperature + self._random.uniform(-0.25, 0.25))), 1)
        self.humidity = round(max(40.0, min(90.0, self.humidity + self._random.uniform(-1.0, 1.0))), 1)

    def _touch(self) -> None:
        if not self.frozen:
            self.updated_at = utcnow()
        self._record_sample()

    def _record_sample(self) -> None:
        self._history.append(
            {
                "timestamp": self.updated_at.isoformat(),
                "zones": [{"id": zone["id"], "moisture": zone["moisture"]} for zone in self.zones],
                "temperature": self.temperature,
                "humidity": self.humidity,
            }
        )

    def status(self) -> Dict[str, Any]:
        if not self.frozen:
            self._drift()
            self._touch()
        return {
            "zones": [dict(zone) for zone in self.zones],
            "temperature": self.temperature,
            "humidity": self.humidity,
            "motorStatus": self.motor_status,
            "mode": self.mode.wire_value,
            "updatedAt": self.updated_at.isoformat(),
        }

    def history(self, limit: int) -> List[Dict[str, Any]]:
        samples = list(self._history)
        return samples[-limit:] if limit > 0 else []

    def set_mode(self, mode: Mode) -> None:
        self.mode = mode
        self._touch()

    def set_valve(self, zone_id: str, is_open: bool) -> None:
        # Raises KeyError for unknown zones; the route maps that to 404.
        zone = self.get_zone(zone_id)
        if zone is None:
            raise KeyError(f"Zone {zone_id} not found")
        if self.mode is Mode.AUTOMATIC:
            raise ValueError("Device is in automatic mode")
        zone["valveOpen"] = is_open
        self._touch()


def create_mock_device_app(controller: Optional[MockIrrigationController] = None) -> FastAPI:
    """
    Build the device API around a controller. Tests pass their own
    controller so they can inspect and steer it.
    """
    device = controller or MockIrrigationController()
    app = FastAPI(title="Mock Irrigation Controller", version="0.1.0")
    app.state.controller = device

    @app.get(STATUS_PATH)
    def status() -> Dict[str, Any]:
        return device.status()

    @app.get(HISTORY_PATH)
    def history(limit: int = Query(10, ge=1, le=1000)) -> List[Dict[str, Any]]:
        return device.history(limit)

    @app.post(MODE_PATH)
    def set_mode(payload: Dict[str, Any]) -> Any:
        try:
            mode = Mode.parse(payload.get("mode"))
        except ValueError as exc:
            return JSONResponse(status_code=400, content={"error": str(exc)})
        device.set_mode(mode)
        logger.info("mock.mode set to %s", mode.wire_value)
        return {"message": f"Mode set to {mode.wire_value}", "mode": mode.wire_value}

    @app.post(VALVE_PATH)
    def set_valve(payload: Dict[str, Any]) -> Any:
        zone_id = str(payload.get("zoneId", ""))
        state = payload.get("state")
        if not isinstance(state, bool):
            return JSONResponse(status_code=400, content={"error": "state must be a boolean"})
        try:
            device.set_valve(zone_id, state)
        except KeyError as exc:
            return JSONResponse(status_code=404, content={"error": str(exc.args[0])})
        except ValueError as exc:
            return JSONResponse(status_code=409, content={"error": str(exc)})
        logger.info("mock.valve zone=%s open=%s", zone_id, state)
        return {
            "message": f"Valve {'opened' if state else 'closed'}",
            "zoneId": zone_id,
            "state": state,
        }

    return app


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    uvicorn.run(create_mock_device_app(), host="0.0.0.0", port=8001, log_level="info")
