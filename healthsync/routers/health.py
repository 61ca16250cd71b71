"""Health check endpoint — public, no auth required."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter

from healthsync.dependencies import AppSettings, Engine
from healthsync.sync.engine import SyncStatus

router = APIRouter(tags=["system"])
logger = logging.getLogger("healthsync.health")


@router.get("/health")
async def health_check(settings: AppSettings, engine: Engine) -> dict:
    """Liveness check. Returns 200 if the process is up.

    Reports ``degraded`` while the last sync failed or batches await retry.
    """
    stats = engine.statistics()
    healthy = stats.current_state.status is not SyncStatus.FAILED and stats.pending_batch_count == 0

    return {
        "status": "healthy" if healthy else "degraded",
        "version": settings.app_version,
        "environment": settings.environment,
        "sync_state": stats.current_state.status.value,
        "pending_batches": stats.pending_batch_count,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
