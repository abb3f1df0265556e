"""
HTTP client for the irrigation controller's JSON API.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional
import logging

import httpx
from pydantic import ValidationError

from .config import HISTORY_PATH, MODE_PATH, STATUS_PATH, VALVE_PATH
from .errors import CommandRejected, FetchFailure
from .schemas import (
    CommandResponse,
    DeviceSnapshot,
    HistoryEntry,
    Mode,
    ModeCommandRequest,
    ValveCommandRequest,
)

logger = logging.getLogger(__name__)


def _describe(exc: Exception) -> str:
    text = str(exc)
    return text if text else type(exc).__name__


def _safe_json(response: httpx.Response) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


class DeviceClient:
    """
    Thin async wrapper around the device endpoints.

    Reads raise FetchFailure; writes raise CommandRejected. Nothing here
    retries: the poller and the command gateway decide what happens next.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        zone_descriptors: Optional[Mapping[str, Mapping[str, Any]]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url
        self._descriptors = dict(zone_descriptors or {})
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "DeviceClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # Reads ------------------------------------------------------------------

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        try:
            response = await self._client.get(path, params=params)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as exc:
            raise FetchFailure(f"Failed to fetch {path}: {_describe(exc)}") from exc
        except ValueError as exc:
            raise FetchFailure(f"Invalid JSON from {path}") from exc

    def _with_descriptors(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Fill descriptor fields the device left out from the persisted zone
        config. Values sent by the device always win.
        """
        zones = payload.get("zones")
        if not self._descriptors or not isinstance(zones, list):
            return payload

        merged_zones: List[Any] = []
        for zone in zones:
            if not isinstance(zone, dict):
                merged_zones.append(zone)
                continue
            descriptor = self._descriptors.get(str(zone.get("id")), {})
            merged = dict(descriptor)
            merged.update(
                {
                    key: value
                    for key, value in zone.items()
                    if not (key in descriptor and value in (None, ""))
                }
            )
            merged_zones.append(merged)
        return {**payload, "zones": merged_zones}

    async def snapshot(self) -> DeviceSnapshot:
        """Fetch the full device state."""
        payload = await self._get_json(STATUS_PATH)
        if not isinstance(payload, dict):
            raise FetchFailure(f"Unexpected status payload: {type(payload).__name__}")
        try:
            return DeviceSnapshot.model_validate(self._with_descriptors(payload))
        except ValidationError as exc:
            raise FetchFailure(f"Malformed status payload: {exc.error_count()} errors") from exc

    async def history(self, limit: int) -> List[HistoryEntry]:
        """Fetch up to ``limit`` past snapshots, newest last."""
        payload = await self._get_json(HISTORY_PATH, params={"limit": limit})
        if isinstance(payload, dict):
            payload = payload.get("history", payload.get("readings"))
        if not isinstance(payload, list):
            raise FetchFailure("Unexpected history payload")
        try:
            return [HistoryEntry.model_validate(entry) for entry in payload]
        except ValidationError as exc:
            raise FetchFailure(f"Malformed history payload: {exc.error_count()} errors") from exc

    # Writes -----------------------------------------------------------------

    async def _post_command(self, path: str, body: Dict[str, Any]) -> CommandResponse:
        try:
            response = await self._client.post(path, json=body)
        except httpx.TimeoutException as exc:
            raise CommandRejected("Device did not respond in time") from exc
        except httpx.HTTPError as exc:
            raise CommandRejected(f"Could not reach device: {_describe(exc)}") from exc

        data = _safe_json(response)
        if response.is_error:
            reason = (
                data.get("error")
                or data.get("message")
                or f"HTTP {response.status_code} {response.reason_phrase}".strip()
            )
            logger.warning("device.command %s rejected status=%s reason=%s",
                           path, response.status_code, reason)
            raise CommandRejected(str(reason), response.status_code)

        try:
            parsed = CommandResponse.model_validate(data)
        except ValidationError as exc:
            logger.warning("device.command %s malformed reply: %s", path, exc)
            raise CommandRejected("Malformed device reply", response.status_code) from exc
        if parsed.error:
            raise CommandRejected(parsed.error, response.status_code)
        return parsed

    async def set_mode(self, mode: Mode) -> CommandResponse:
        body = ModeCommandRequest(mode=mode.wire_value).model_dump()
        return await self._post_command(MODE_PATH, body)

    async def set_valve(self, zone_id: str, desired_open: bool) -> CommandResponse:
        body = ValveCommandRequest(zone_id=zone_id, state=desired_open).model_dump(by_alias=True)
        return await self._post_command(VALVE_PATH, body)
