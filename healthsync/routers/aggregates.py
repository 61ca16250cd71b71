"""Window summaries over the tracked metrics, read through the cache."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from fastapi import APIRouter, HTTPException, Query

from healthsync.aggregates import fetch_aggregated
from healthsync.dependencies import Cache, Source
from healthsync.metrics import utc_now
from healthsync.models.sync import AggregatedHealthRead

router = APIRouter(prefix="/aggregates", tags=["aggregates"])


@router.get("", response_model=AggregatedHealthRead)
async def aggregated_health(
    cache: Cache,
    source: Source,
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    use_cache: bool = Query(default=True),
) -> Any:
    """Summarise ``[start, end]``. Defaults to the day ending at the current minute."""
    if end is None:
        # Whole minutes so repeated default requests share a cache key
        end = utc_now().replace(second=0, microsecond=0)
    if start is None:
        start = end - timedelta(days=1)
    if start.tzinfo is None or end.tzinfo is None:
        raise HTTPException(status_code=422, detail="start and end must include a UTC offset")
    if start >= end:
        raise HTTPException(status_code=422, detail="start must be before end")

    aggregate = await fetch_aggregated(source, cache, start, end, use_cache=use_cache)
    return AggregatedHealthRead(**vars(aggregate))
