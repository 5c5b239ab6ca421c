"""
core/health.py
--------------
Runtime health diagnostics for the marketplace core.

Purpose
-------
- Used by the FastAPI ``/health`` endpoint.
- Reports sync-layer connectivity (connected / hard error / offline mode).
- Reports remote-write failures still held in the dispatcher's result sink.
- Reports process uptime, version and CPU/memory usage via psutil.
- Returns a JSON-safe dict ready for serialization.
"""

from __future__ import annotations

import logging
import platform
import time
from typing import Any, Dict, Optional

import psutil

from core.metadata import get_metadata

logger = logging.getLogger(__name__)

# Cache the process start time for uptime calculation
START_TIME = time.time()


def _process_metrics() -> Dict[str, Optional[float]]:
    try:
        proc = psutil.Process()
        return {
            "cpu_load": psutil.cpu_percent(interval=None),
            "memory_mb": round(proc.memory_info().rss / (1024 * 1024), 2),
        }
    except psutil.Error as e:
        logger.warning("[Health] psutil metrics unavailable: %s", e)
        return {"cpu_load": None, "memory_mb": None}


def system_health(sync_layer=None, dispatcher=None) -> Dict[str, Any]:
    """
    Return structured health diagnostics.

    Parameters
    ----------
    sync_layer : DataSyncLayer, optional
        Source of connection status; omitted means offline/demo mode.
    dispatcher : DualWriteDispatcher, optional
        Source of recent remote-write failures.

    Returns
    -------
    dict
        ``status`` is "ok" when connected (or running offline by choice),
        "degraded" when the remote is unreachable or writes failed, and
        "error" after a hard sync error.
    """
    status = "ok"
    message = "Marketplace core operational."
    sync_status: Dict[str, Any] = {"online": False, "connected": False, "error": None}

    if sync_layer is not None:
        sync_status = sync_layer.status()

    if sync_status["error"]:
        status = "error"
        message = f"Sync error: {sync_status['error']}"
    elif not sync_status["online"]:
        message = "Running in offline/demo mode."
    elif not sync_status["connected"]:
        status = "degraded"
        message = "Remote data gateway unreachable; serving last-known data."

    failed_writes = len(dispatcher.failures()) if dispatcher is not None else 0
    if failed_writes and status == "ok":
        status = "degraded"
        message = f"{failed_writes} remote write(s) failed; local state kept."

    meta = get_metadata()
    return {
        "status": status,
        "message": message,
        "project": meta["project"],
        "version": meta["version"],
        "sync": sync_status,
        "failed_writes": failed_writes,
        **_process_metrics(),
        "uptime_sec": round(time.time() - START_TIME, 2),
        "system": platform.system(),
        "release": platform.release(),
    }
