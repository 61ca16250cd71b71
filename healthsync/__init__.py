"""healthsync: health metric cache and upload engine.

Collects time-series health metrics from a device-local source, caches them
to avoid expensive re-fetches, throttles fetch frequency to save battery, and
uploads accumulated data to a remote service in size-bounded batches with
retry on failure.

Subpackages:
    cache/   — Expiring, throttled metric cache with a disk mirror
    sync/    — Batching, upload transport, resource gate and the SyncEngine
    sources/ — Device-local data sources (Apple Health export)
    routers/ — Operator API endpoints

Core modules:
    metrics       — MetricType and the canonical metric records
    config        — Process settings (HEALTHSYNC_* environment variables)
    config_loader — Load/validate healthsync.yaml presets
    main          — FastAPI application factory
"""

from healthsync.cache import CacheConfiguration, CacheService
from healthsync.metrics import HealthMetric, MetricType
from healthsync.sync import SyncConfiguration, SyncEngine

__all__ = [
    "CacheConfiguration",
    "CacheService",
    "HealthMetric",
    "MetricType",
    "SyncConfiguration",
    "SyncEngine",
]
