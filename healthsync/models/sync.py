"""Pydantic models for the upload wire format and the operator API."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import Field

from healthsync.metrics import MetricType
from healthsync.models.base import HealthSyncBase


# ---------- Upload wire format ----------

class UploadRequest(HealthSyncBase):
    user_id: str = Field(alias="userId")
    device_id: str = Field(alias="deviceId")
    timestamp: datetime
    checksum: str
    batch: dict[str, Any]


class UploadResponse(HealthSyncBase):
    success: bool
    upload_id: str | None = Field(default=None, alias="uploadId")
    timestamp: datetime | None = None
    message: str | None = None
    errors: list[str] | None = None


# ---------- Operator API ----------

class SyncStatusRead(HealthSyncBase):
    state: str
    error: str | None = None
    total_synced: int
    last_sync: datetime | None = None
    failed_attempts: int
    pending_batch_count: int
    automatic_sync_running: bool = False


class SyncMetricsRequest(HealthSyncBase):
    metric_types: list[MetricType] = Field(min_length=1)


class RetryResultRead(HealthSyncBase):
    success_count: int
    failed_count: int = 0
    errors: list[str] = Field(default_factory=list)
    pending_batch_count: int


class CacheStatisticsRead(HealthSyncBase):
    hit_count: int
    miss_count: int
    throttle_count: int
    total_queries: int
    hit_rate: float
    throttle_rate: float


class CacheConfigurationRead(HealthSyncBase):
    cache_duration: float
    throttle_interval: float
    max_cache_size: int
    persist_to_disk: bool


class CachedSeriesRead(HealthSyncBase):
    metric_type: MetricType
    values: list[dict[str, Any]]
    remaining_throttle_seconds: float


class AggregatedHealthRead(HealthSyncBase):
    start_date: datetime
    end_date: datetime
    heart_rate_average: float | None = None
    heart_rate_min: float | None = None
    heart_rate_max: float | None = None
    total_steps: int | None = None
    sleep_duration: float | None = None
    deep_sleep_duration: float | None = None
    rem_sleep_duration: float | None = None
    active_energy_burned: float | None = None
    resting_heart_rate: float | None = None
