"""
Runtime configuration for the irrigation dashboard.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List
import json
import logging
import os

logger = logging.getLogger(__name__)


DEFAULT_API_BASE = "http://192.168.1.100"
DEFAULT_DEVICE_NAME = "ESP32-Garden-01"

# Device endpoints, relative to the API base.
STATUS_PATH = "/api/status"
MODE_PATH = "/api/mode"
VALVE_PATH = "/api/valve"
HISTORY_PATH = "/api/history"

# Descriptor keys a persisted zone entry may carry.
ZONE_DESCRIPTOR_KEYS = ("name", "cropType", "soilType", "moistureThreshold")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "")
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


@dataclass
class Settings:
    """
    Simple settings object populated from environment variables.

    Holds the per-user values a browser dashboard would keep locally:
    device name, API base, city, weather key and the per-zone descriptors.
    """

    api_base: str = field(
        default_factory=lambda: os.getenv("IRRIGATION_API_BASE", DEFAULT_API_BASE)
    )
    device_name: str = field(
        default_factory=lambda: os.getenv("IRRIGATION_DEVICE_NAME", DEFAULT_DEVICE_NAME)
    )
    city: str = field(default_factory=lambda: os.getenv("IRRIGATION_CITY", ""))
    weather_api_key: str = field(
        default_factory=lambda: os.getenv("IRRIGATION_WEATHER_API_KEY", "")
    )
    zone_config_path: Path = field(
        default_factory=lambda: Path(
            os.getenv("IRRIGATION_ZONE_CONFIG", "config/zones.json")
        )
    )
    # Poll cadence in seconds: dashboard state and history.
    poll_interval: float = field(
        default_factory=lambda: _env_float("IRRIGATION_POLL_INTERVAL", 3.0)
    )
    history_interval: float = field(
        default_factory=lambda: _env_float("IRRIGATION_HISTORY_INTERVAL", 5.0)
    )
    history_limit: int = field(
        default_factory=lambda: _env_int("IRRIGATION_HISTORY_LIMIT", 10)
    )
    request_timeout: float = field(
        default_factory=lambda: _env_float("IRRIGATION_REQUEST_TIMEOUT", 10.0)
    )
    zone_descriptors: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Resolve relative paths against the repo root (parent of the package)
        repo_root = Path(__file__).parent.parent
        if not self.zone_config_path.is_absolute():
            self.zone_config_path = repo_root / self.zone_config_path

        self.api_base = self.api_base.strip().rstrip("/")
        self.device_name = self.device_name.strip()

        if not self.zone_descriptors:
            self.zone_descriptors = self._load_zone_descriptors()

    def _load_zone_descriptors(self) -> Dict[str, Dict[str, Any]]:
        """
        Load the zone-id -> descriptor mapping from JSON. A missing or
        malformed file simply means the device is the only source of
        descriptors.
        """
        if not self.zone_config_path.exists():
            return {}
        try:
            with self.zone_config_path.open("r", encoding="utf-8") as fh:
                raw = json.load(fh)
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Ignoring zone config %s: %s", self.zone_config_path, exc)
            return {}
        if not isinstance(raw, dict):
            logger.warning("Ignoring zone config %s: expected an object", self.zone_config_path)
            return {}

        descriptors: Dict[str, Dict[str, Any]] = {}
        for zone_id, entry in raw.items():
            if not isinstance(entry, dict):
                continue
            descriptors[str(zone_id)] = {
                key: entry[key] for key in ZONE_DESCRIPTOR_KEYS if key in entry
            }
        return descriptors

    def missing_fields(self) -> List[str]:
        """
        Names of required settings that are empty.
        """
        missing: List[str] = []
        if not self.api_base:
            missing.append("api_base")
        if not self.device_name:
            missing.append("device_name")
        return missing


# Single global settings object imported by other modules.
settings = Settings()
