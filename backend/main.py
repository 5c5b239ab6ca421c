"""
Marketplace Backend API
=======================

Thin FastAPI surface over an injected store, sync layer and dual-write
dispatcher.

Endpoints
---------
- GET  /health                               runtime + sync diagnostics
- GET  /notifications/{user_id}              visible notifications, sorted
- GET  /notifications/{user_id}/unread-count
- POST /notifications/read-all/{user_id}
- POST /notifications/{notification_id}/read
- GET  /analytics/summary                    platform-wide sales summary
- GET  /analytics/wholesalers/{wholesaler_id}
- GET  /sync/rules                           table -> collection map

``create_app()`` builds an isolated app (tests pass their own store).
The module-level ``app`` is what uvicorn serves: on startup it connects to
Supabase when credentials are configured and otherwise runs offline.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from analytics.platform_insights import platform_summary, wholesaler_summary
from core.actions import MarkAllNotificationsRead, MarkNotificationRead
from core.config import AppConfig, load_config
from core.dispatch import DualWriteDispatcher
from core.errors import MarketplaceError
from core.health import system_health
from core.logging_config import configure_logging
from core.metadata import __project__, __version__, get_metadata
from core.models import Role
from core.store import Store
from core.sync_rules import list_sync_rules
from supabase_client.config import get_supabase_client
from supabase_client.gateway import SupabaseGateway
from sync.layer import DataSyncLayer

logger = logging.getLogger(__name__)

# --------------------------------------------------------------------------- #
# Response Models
# --------------------------------------------------------------------------- #


class UnreadCountResponse(BaseModel):
    user_id: str
    unread: int


class ActionResponse(BaseModel):
    applied: bool
    diagnostic: Optional[str] = None
    unread: Optional[int] = None


# --------------------------------------------------------------------------- #
# App Factory
# --------------------------------------------------------------------------- #


async def connect_services(app: FastAPI, config: AppConfig) -> None:
    """Attach a live gateway to the app's dispatcher and sync layer."""
    try:
        client = await get_supabase_client(config)
    except MarketplaceError as e:
        logger.info("[Supabase] %s; running in offline/demo mode", e)
        return

    gateway = SupabaseGateway(client)
    store: Store = app.state.store
    app.state.dispatcher = DualWriteDispatcher(store, gateway)
    app.state.sync_layer = DataSyncLayer(gateway, store, config)
    await app.state.sync_layer.start()
    logger.info("[Supabase] connected to %s", config.supabase_url)


def create_app(
    store: Optional[Store] = None,
    sync_layer: Optional[DataSyncLayer] = None,
    dispatcher: Optional[DualWriteDispatcher] = None,
    config: Optional[AppConfig] = None,
    autostart: bool = False,
) -> FastAPI:
    config = config or load_config()
    store = store or Store()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if autostart and app.state.sync_layer is None:
            await connect_services(app, config)
        yield
        if app.state.dispatcher is not None:
            await app.state.dispatcher.drain()
        if app.state.sync_layer is not None:
            await app.state.sync_layer.stop()

    app = FastAPI(
        title=f"{__project__} API",
        version=__version__,
        description="Notifications, sync status and analytics over the marketplace store.",
        lifespan=lifespan,
    )
    app.state.store = store
    app.state.sync_layer = sync_layer
    app.state.dispatcher = dispatcher or DualWriteDispatcher(store)

    # ------------------------------------------------------------------ #
    # Health
    # ------------------------------------------------------------------ #

    @app.get("/")
    async def root() -> Dict[str, Any]:
        """Basic liveness probe."""
        return {
            "status": "ok",
            **get_metadata(),
            "supabase_enabled": app.state.sync_layer is not None and app.state.sync_layer.online,
        }

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        return system_health(app.state.sync_layer, app.state.dispatcher)

    # ------------------------------------------------------------------ #
    # Notifications
    # ------------------------------------------------------------------ #

    @app.get("/notifications/{user_id}")
    async def list_notifications(user_id: str, unread_only: bool = False) -> List[Dict[str, Any]]:
        notes = store.notifications_for(user_id)
        if unread_only:
            notes = [n for n in notes if not n.read]
        return [n.model_dump(mode="json") for n in notes]

    @app.get("/notifications/{user_id}/unread-count", response_model=UnreadCountResponse)
    async def get_unread_count(user_id: str):
        return UnreadCountResponse(user_id=user_id, unread=store.unread_count(user_id))

    @app.post("/notifications/read-all/{user_id}", response_model=ActionResponse)
    async def mark_all_read(user_id: str):
        result = app.state.dispatcher.dispatch(MarkAllNotificationsRead(user_id))
        return ActionResponse(applied=result.applied, unread=store.unread_count(user_id))

    @app.post("/notifications/{notification_id}/read", response_model=ActionResponse)
    async def mark_read(notification_id: str):
        result = app.state.dispatcher.dispatch(MarkNotificationRead(notification_id))
        if not result.applied:
            raise HTTPException(status_code=404, detail=result.diagnostic)
        return ActionResponse(applied=True)

    # ------------------------------------------------------------------ #
    # Analytics
    # ------------------------------------------------------------------ #

    @app.get("/analytics/summary")
    async def analytics_summary() -> Dict[str, Any]:
        return platform_summary(store.state)

    @app.get("/analytics/wholesalers/{wholesaler_id}")
    async def analytics_wholesaler(wholesaler_id: str) -> Dict[str, Any]:
        user = store.state.find_user(wholesaler_id)
        if user is None or user.role != Role.WHOLESALER:
            raise HTTPException(status_code=404, detail=f"wholesaler {wholesaler_id} not found")
        return wholesaler_summary(store.state, wholesaler_id)

    # ------------------------------------------------------------------ #
    # Sync
    # ------------------------------------------------------------------ #

    @app.get("/sync/rules")
    async def sync_rules() -> List[Dict[str, Any]]:
        return list_sync_rules(as_dicts=True)

    return app


_config = load_config()
configure_logging(_config.log_level)
app = create_app(config=_config, autostart=True)
