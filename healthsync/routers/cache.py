"""Operator endpoints for inspecting and clearing the metric cache."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Query

from healthsync.cache.service import CacheService
from healthsync.dependencies import Cache
from healthsync.metrics import MetricType
from healthsync.models.sync import (
    CacheConfigurationRead,
    CachedSeriesRead,
    CacheStatisticsRead,
)

router = APIRouter(prefix="/cache", tags=["cache"])


def _statistics(cache: CacheService) -> CacheStatisticsRead:
    return CacheStatisticsRead(**cache.statistics().to_dict())


@router.get("/statistics", response_model=CacheStatisticsRead)
async def cache_statistics(cache: Cache) -> Any:
    return _statistics(cache)


@router.post("/statistics/reset", response_model=CacheStatisticsRead)
async def reset_cache_statistics(cache: Cache) -> Any:
    cache.reset_statistics()
    return _statistics(cache)


@router.get("/recommended", response_model=CacheConfigurationRead)
async def recommended_configuration(
    battery_level: float = Query(ge=0.0, le=1.0),
    low_power_mode: bool = Query(default=False),
) -> Any:
    config = CacheService.recommended_configuration(battery_level, low_power_mode)
    return CacheConfigurationRead(
        cache_duration=config.cache_duration,
        throttle_interval=config.throttle_interval,
        max_cache_size=config.max_cache_size,
        persist_to_disk=config.persist_to_disk,
    )


@router.get("/{metric_type}", response_model=CachedSeriesRead)
async def cached_series(metric_type: MetricType, cache: Cache) -> Any:
    """Return the latest unexpired series for ``metric_type``. Counts a hit or miss."""
    values = cache.fetch_cached(metric_type)
    if values is None:
        raise HTTPException(status_code=404, detail=f"No cached {metric_type.display_name} data")
    return CachedSeriesRead(
        metric_type=metric_type,
        values=[m.to_dict() for m in values],
        remaining_throttle_seconds=cache.remaining_throttle_time(metric_type),
    )


@router.delete("", status_code=204)
async def clear_cache(cache: Cache) -> None:
    cache.clear_all()


@router.delete("/{metric_type}", status_code=204)
async def clear_cache_for(metric_type: MetricType, cache: Cache) -> None:
    cache.clear_for(metric_type)
