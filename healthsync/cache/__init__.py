"""Expiring, throttled metric cache with an optional disk mirror.

Modules:
    config      — CacheConfiguration presets and battery-aware selection
    store       — CacheEntry, MetricCache, ThrottleRegistry, CacheStatistics
    persistence — JSON-file mirror of cache contents
    service     — CacheService, the serialised owner of all cache state
"""

from healthsync.cache.config import CACHE_PRESETS, CacheConfiguration, recommended_configuration
from healthsync.cache.persistence import DiskPersistence, PersistenceAdapter
from healthsync.cache.service import CacheService
from healthsync.cache.store import CacheEntry, CacheStatistics, MetricCache, ThrottleRegistry

__all__ = [
    "CACHE_PRESETS",
    "CacheConfiguration",
    "CacheEntry",
    "CacheService",
    "CacheStatistics",
    "DiskPersistence",
    "MetricCache",
    "PersistenceAdapter",
    "ThrottleRegistry",
    "recommended_configuration",
]
