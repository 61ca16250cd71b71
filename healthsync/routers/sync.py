"""Operator endpoints that drive the sync engine."""

from __future__ import annotations

import logging
import math
from typing import Any

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse

from healthsync.dependencies import Engine
from healthsync.models.sync import RetryResultRead, SyncMetricsRequest, SyncStatusRead
from healthsync.sync.engine import SyncEngine
from healthsync.sync.errors import (
    LowBatteryError,
    PartialFailureError,
    SyncThrottledError,
    UploadFailedError,
    WifiRequiredError,
)

router = APIRouter(prefix="/sync", tags=["sync"])
logger = logging.getLogger("healthsync.routers.sync")


def _status(engine: SyncEngine) -> SyncStatusRead:
    stats = engine.statistics()
    return SyncStatusRead(
        state=stats.current_state.status.value,
        error=stats.current_state.error_message,
        total_synced=stats.total_synced,
        last_sync=stats.last_sync,
        failed_attempts=stats.failed_attempts,
        pending_batch_count=stats.pending_batch_count,
        automatic_sync_running=engine.automatic_sync_running,
    )


async def _run_sync(engine: SyncEngine, coro: Any) -> SyncStatusRead:
    try:
        await coro
    except (LowBatteryError, WifiRequiredError) as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    except SyncThrottledError as exc:
        raise HTTPException(
            status_code=429,
            detail=str(exc),
            headers={"Retry-After": str(max(1, math.ceil(exc.retry_after)))},
        )
    except UploadFailedError as exc:
        raise HTTPException(status_code=502, detail=str(exc))
    return _status(engine)


@router.get("/status", response_model=SyncStatusRead)
async def sync_status(engine: Engine) -> Any:
    return _status(engine)


@router.post("", response_model=SyncStatusRead)
async def sync_now(engine: Engine) -> Any:
    """Sync every tracked metric type. A sync already in flight makes this a no-op."""
    return await _run_sync(engine, engine.sync_now())


@router.post("/metrics", response_model=SyncStatusRead)
async def sync_metrics(engine: Engine, body: SyncMetricsRequest) -> Any:
    return await _run_sync(engine, engine.sync_metrics(body.metric_types))


@router.post("/retry", response_model=RetryResultRead)
async def retry_failed_uploads(engine: Engine) -> Any:
    """Retry queued batches in order. Returns 207 when the queue was not drained."""
    try:
        succeeded = await engine.retry_failed_uploads()
    except PartialFailureError as exc:
        body = RetryResultRead(
            success_count=exc.success_count,
            failed_count=len(exc.errors),
            errors=[str(e) for e in exc.errors],
            pending_batch_count=len(engine.pending_batches),
        )
        return JSONResponse(status_code=207, content=body.model_dump(mode="json"))
    return RetryResultRead(
        success_count=succeeded,
        pending_batch_count=len(engine.pending_batches),
    )
