"""
Pydantic models for device payloads, commands and dashboard view models.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, FrozenSet, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


class Mode(str, Enum):
    """
    Global controller mode. The device speaks "auto"/"manual" on the wire.
    """

    MANUAL = "manual"
    AUTOMATIC = "automatic"

    @property
    def wire_value(self) -> str:
        return "auto" if self is Mode.AUTOMATIC else "manual"

    @property
    def label(self) -> str:
        return "Automatic" if self is Mode.AUTOMATIC else "Manual"

    @classmethod
    def parse(cls, value: Any) -> "Mode":
        if isinstance(value, Mode):
            return value
        normalized = str(value).strip().lower()
        if normalized in ("auto", "automatic"):
            return cls.AUTOMATIC
        if normalized == "manual":
            return cls.MANUAL
        raise ValueError(f"Unknown mode: {value!r}")


def _from_epoch_ms(value: float) -> datetime:
    try:
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    except (OverflowError, OSError) as exc:
        raise ValueError(f"Epoch timestamp out of range: {value!r}") from exc


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Accept ISO-8601 strings (with or without a zone, with a space or a T
    separator) and epoch milliseconds. Naive values are taken as UTC.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError("Timestamp cannot be a boolean")
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        parsed = _from_epoch_ms(value)
    elif isinstance(value, str):
        text = value.strip()
        if text.lstrip("-").isdigit():
            parsed = _from_epoch_ms(int(text))
        else:
            normalized = text.replace(" ", "T")
            if normalized.endswith("Z"):
                normalized = normalized[:-1] + "+00:00"
            parsed = datetime.fromisoformat(normalized)
    else:
        raise ValueError(f"Unsupported timestamp: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# Device payloads -------------------------------------------------------------


class ZoneState(BaseModel):
    """
    One irrigated zone as last confirmed by the device.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    name: str = ""
    crop_type: str = Field("", alias="cropType")
    soil_type: str = Field("", alias="soilType")
    moisture_threshold: float = Field(30.0, alias="moistureThreshold", ge=0, le=100)
    moisture: Optional[float] = None
    valve_open: bool = Field(..., alias="valveOpen")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        if value is None or value == "":
            raise ValueError("Zone id is required")
        return str(value)


class DeviceSnapshot(BaseModel):
    """
    The complete device state returned by one status read. Instances are
    never modified; each successful poll produces a new one.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    zones: Tuple[ZoneState, ...] = ()
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    motor_status: bool = Field(False, alias="motorStatus")
    mode: Mode
    last_updated_at: Optional[datetime] = Field(None, alias="updatedAt")

    @field_validator("mode", mode="before")
    @classmethod
    def _coerce_mode(cls, value: Any) -> Mode:
        return Mode.parse(value)

    @field_validator("last_updated_at", mode="before")
    @classmethod
    def _coerce_updated_at(cls, value: Any) -> Optional[datetime]:
        return parse_timestamp(value)

    def zone(self, zone_id: str) -> Optional[ZoneState]:
        for zone in self.zones:
            if zone.id == zone_id:
                return zone
        return None


class ZoneReading(BaseModel):
    """Per-zone moisture sample inside a history entry."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    moisture: Optional[float] = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        return str(value)


class HistoryEntry(BaseModel):
    """
    One past snapshot, as served by the history endpoint.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    timestamp: datetime
    zones: Tuple[ZoneReading, ...] = ()
    temperature: Optional[float] = None
    humidity: Optional[float] = None

    @field_validator("timestamp", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> Optional[datetime]:
        return parse_timestamp(value)


class ModeCommandRequest(BaseModel):
    """Body sent to the device to switch modes."""

    mode: Literal["auto", "manual"]


class ValveCommandRequest(BaseModel):
    """Body sent to the device to drive one valve."""
    model_config = ConfigDict(populate_by_name=True)

    zone_id: str = Field(..., alias="zoneId")
    state: bool


class CommandResponse(BaseModel):
    """
    Device reply to a write. Anything beyond message/error is kept as-is.
    """
    model_config = ConfigDict(extra="allow")

    message: Optional[str] = None
    error: Optional[str] = None

    @field_validator("message", "error", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any, info: ValidationInfo) -> Optional[str]:
        # Firmwares send {"error": false} on success and {"error": true} on failure.
        if value is None or value is False or value == "":
            return None
        if value is True:
            return "Device reported an error" if info.field_name == "error" else None
        if isinstance(value, (str, int, float)):
            return str(value)
        raise ValueError(f"Expected text, got {type(value).__name__}")


# Engine state ----------------------------------------------------------------


class Confirmation(BaseModel):
    """Returned by the command gateway once the device accepts a command."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    target: str
    state: str
    title: str
    description: str
    server_message: Optional[str] = Field(None, alias="serverMessage")


class InFlightState(BaseModel):
    """
    Commands dispatched and not yet re-synced: one slot per zone plus the
    global mode flag.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    loading_valve_ids: FrozenSet[str] = Field(frozenset(), alias="loadingValveIds")
    is_mode_changing: bool = Field(False, alias="isModeChanging")


# Dashboard API ---------------------------------------------------------------


class ValveToggleRequest(BaseModel):
    """
    Dashboard request to drive a valve. ``open`` omitted means "flip it".
    """

    open: Optional[bool] = None


class ModeChangeRequest(BaseModel):
    """Dashboard request to switch the controller mode."""

    mode: Literal["auto", "automatic", "manual"]


class NotificationModel(BaseModel):
    """
    API representation of a user-visible notification.
    """
    model_config = ConfigDict(populate_by_name=True)

    level: Literal["info", "success", "error"]
    title: str
    description: str
    created_at: datetime = Field(..., alias="createdAt")


class StatCardView(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str
    value: str
    unit: str
    variant: Literal["default", "success", "warning", "info"] = "default"


class ZoneView(BaseModel):
    """
    Displayable zone card. ``moisture`` is the "unknown" sentinel while the
    device is offline.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    crop_type: str = Field(..., alias="cropType")
    soil_type: str = Field(..., alias="soilType")
    moisture: str
    moisture_threshold: float = Field(..., alias="moistureThreshold")
    needs_water: Optional[bool] = Field(None, alias="needsWater")
    valve_open: bool = Field(..., alias="valveOpen")
    valve_label: str = Field(..., alias="valveLabel")
    loading: bool
    toggle_disabled: bool = Field(..., alias="toggleDisabled")


class DashboardView(BaseModel):
    """
    Everything the dashboard page renders from one read of the engine.
    """
    model_config = ConfigDict(populate_by_name=True)

    device_name: str = Field(..., alias="deviceName")
    loading: bool
    is_online: bool = Field(..., alias="isOnline")
    elapsed_label: Optional[str] = Field(None, alias="elapsedLabel")
    mode: Optional[Mode] = None
    motor_status: bool = Field(False, alias="motorStatus")
    mode_changing: bool = Field(False, alias="modeChanging")
    mode_toggle_disabled: bool = Field(..., alias="modeToggleDisabled")
    stats: List[StatCardView] = Field(default_factory=list)
    zones: List[ZoneView] = Field(default_factory=list)


class HistoryMoistureView(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    zone_id: str = Field(..., alias="zoneId")
    moisture: Optional[float] = None
    level: Literal["low", "normal", "high", "unknown"]


class HistoryRowView(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    index: int
    timestamp: datetime
    moisture: List[HistoryMoistureView] = Field(default_factory=list)
    temperature: Optional[float] = None
    humidity: Optional[float] = None


class HistoryView(BaseModel):
    """Table of recent readings, newest last."""
    model_config = ConfigDict(populate_by_name=True)

    loading: bool
    rows: List[HistoryRowView] = Field(default_factory=list)
