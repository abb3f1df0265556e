"""
Irrigation Dashboard Web Application
Serves dashboard view models and relays commands to the controller
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional
import logging

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
import uvicorn

from .client import DeviceClient
from .config import Settings, settings as default_settings
from .errors import CommandInFlight, CommandRejected, PolicyViolation, UnknownZone
from .notifications import Notification
from .schemas import (
    Confirmation,
    DashboardView,
    HistoryView,
    ModeChangeRequest,
    NotificationModel,
    ValveToggleRequest,
)
from .session import DashboardSession

logger = logging.getLogger(__name__)


def _to_model(notification: Notification) -> NotificationModel:
    return NotificationModel(
        level=notification.level,
        title=notification.title,
        description=notification.description,
        created_at=notification.created_at,
    )


def create_app(
    app_settings: Optional[Settings] = None,
    client: Optional[DeviceClient] = None,
) -> FastAPI:
    """
    Build the dashboard API. The session lives for the lifetime of the app:
    pollers start on startup and are cancelled on shutdown.
    """
    config = app_settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("🌱 Starting irrigation dashboard for %s...", config.device_name)
        session = DashboardSession(config, client=client)
        app.state.session = session
        await session.start()
        logger.info("✅ Irrigation dashboard started")

        yield

        logger.info("🛑 Shutting down irrigation dashboard...")
        await session.close()

    app = FastAPI(title="Irrigation Dashboard", version="0.1.0", lifespan=lifespan)

    def get_session(request: Request) -> DashboardSession:
        svc: DashboardSession = request.app.state.session
        return svc

    @app.get("/api/dashboard", response_model=DashboardView)
    async def dashboard(svc: DashboardSession = Depends(get_session)) -> DashboardView:
        return svc.dashboard_view()

    @app.get("/api/history", response_model=HistoryView)
    async def history(svc: DashboardSession = Depends(get_session)) -> HistoryView:
        return svc.history_view()

    @app.post("/api/zones/{zone_id}/valve", response_model=Confirmation)
    async def toggle_valve(
        zone_id: str,
        payload: ValveToggleRequest,
        svc: DashboardSession = Depends(get_session),
    ) -> Confirmation:
        try:
            return await svc.toggle_valve(zone_id, payload.open)
        except PolicyViolation as exc:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
        except UnknownZone as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
        except CommandInFlight as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
        except CommandRejected as exc:
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.reason)

    @app.post("/api/mode", response_model=Confirmation)
    async def set_mode(
        payload: ModeChangeRequest,
        svc: DashboardSession = Depends(get_session),
    ) -> Confirmation:
        try:
            return await svc.set_mode(payload.mode)
        except PolicyViolation as exc:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
        except CommandInFlight as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
        except CommandRejected as exc:
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.reason)

    @app.get("/api/notifications", response_model=List[NotificationModel])
    async def notifications(
        drain: bool = Query(False),
        svc: DashboardSession = Depends(get_session),
    ) -> List[NotificationModel]:
        items = svc.notifier.drain() if drain else svc.notifier.recent()
        return [_to_model(item) for item in items]

    @app.get("/api/connection/status")
    async def connection_status(svc: DashboardSession = Depends(get_session)) -> Dict[str, Any]:
        """Device reachability as seen by the pollers."""
        verdict = svc.liveness()
        snapshot = svc.snapshot_store.value
        last_update = snapshot.last_updated_at if snapshot is not None else None
        return {
            "online": verdict.is_online,
            "elapsed": verdict.elapsed_label,
            "last_update": last_update.isoformat() if last_update else None,
            "consecutive_failures": svc.state_poller.consecutive_failures,
            "last_error": svc.state_poller.last_error,
            "polling": svc.state_poller.running,
        }

    @app.get("/api/settings")
    async def current_settings(svc: DashboardSession = Depends(get_session)) -> Dict[str, Any]:
        cfg = svc.settings
        return {
            "deviceName": cfg.device_name,
            "apiBase": cfg.api_base,
            "city": cfg.city,
            "weatherConfigured": bool(cfg.weather_api_key),
            "zones": cfg.zone_descriptors,
            "missing": cfg.missing_fields(),
        }

    @app.get("/health")
    async def health(svc: DashboardSession = Depends(get_session)) -> Dict[str, Any]:
        """Health check endpoint."""
        online = svc.liveness().is_online
        return {
            "status": "healthy" if online else "degraded",
            "device_online": online,
            "snapshot_loaded": not svc.snapshot_store.loading,
            "history_loaded": not svc.history_store.loading,
        }

    return app


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    uvicorn.run(
        create_app(),
        host="0.0.0.0",
        port=8000,
        reload=False,
        log_level="info"
    )
