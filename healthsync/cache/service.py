"""Serialised owner of every metric cache, throttle entry and counter.

``CacheService`` is the only component allowed to mutate cache state.  Every
public method runs under one lock, so no caller ever observes a half-applied
store, trim or clear.  All operations are in-memory; the disk mirror is
best-effort and a persistence fault never invalidates the in-memory cache.

Usage::

    cache = CacheService(CacheConfiguration.default(), DiskPersistence(path))

    if not cache.should_throttle(MetricType.STEPS):
        cache.record_fetch(MetricType.STEPS)
        cache.store(MetricType.STEPS, await source.fetch(MetricType.STEPS, start, end))
    steps = cache.fetch_cached(MetricType.STEPS)
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Iterable

from healthsync.cache.config import CacheConfiguration, recommended_configuration
from healthsync.cache.persistence import DiskPersistence, PersistenceAdapter
from healthsync.cache.store import CacheEntry, CacheStatistics, MetricCache, ThrottleRegistry
from healthsync.metrics import (
    AggregatedHealthData,
    HealthMetric,
    MetricType,
    metric_from_dict,
    parse_timestamp,
    utc_now,
)

logger = logging.getLogger("healthsync.cache.service")

AGGREGATE_PREFIX = "aggregated_"


class CacheService:
    """Expiring, size-bounded, throttled cache for health metrics.

    One ``MetricCache`` per metric type plus a keyed map for aggregates.
    Eviction is expiry-first, then oldest-first; never LRU.
    """

    def __init__(
        self,
        configuration: CacheConfiguration | None = None,
        persistence: PersistenceAdapter | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialise the service and load the disk mirror.

        Args:
            configuration: Cache tuning. Defaults to the ``default`` preset.
            persistence:   Disk mirror. Only used when ``persist_to_disk`` is
                           set; a ``DiskPersistence`` in the default cache
                           directory is created when omitted.
            clock:         Returns the current UTC time (injectable for tests).
        """
        self._config = configuration or CacheConfiguration.default()
        self._clock = clock
        self._lock = threading.Lock()

        self._caches: dict[MetricType, MetricCache[tuple[HealthMetric, ...]]] = {}
        self._aggregates: dict[str, CacheEntry[AggregatedHealthData]] = {}
        self._throttle = ThrottleRegistry(self._config.throttle_interval)
        self._statistics = CacheStatistics()

        self._persistence: PersistenceAdapter | None = None
        if self._config.persist_to_disk:
            self._persistence = persistence or DiskPersistence()
            self._load_persisted()

    @property
    def configuration(self) -> CacheConfiguration:
        return self._config

    # ------------------------------------------------------------------
    # Metric series
    # ------------------------------------------------------------------

    def store(self, metric_type: MetricType | str, values: Iterable[HealthMetric]) -> None:
        """Cache a freshly fetched series for ``metric_type``.

        Appends a new entry, mirrors it to disk when enabled, then trims.
        Never raises for persistence faults.
        """
        metric_type = MetricType(metric_type)
        with self._lock:
            now = self._clock()
            entry = CacheEntry.create(tuple(values), now, self._config.cache_duration)
            cache = self._caches.get(metric_type)
            if cache is None:
                cache = self._caches[metric_type] = MetricCache(self._config.max_cache_size)
            cache.append(entry)
            self._persist(metric_type.value, self._series_document(metric_type, entry))
            removed = cache.trim(now)
            if removed:
                logger.debug("Trimmed %d entries from %s cache", removed, metric_type.value)

    def fetch_cached(self, metric_type: MetricType | str) -> list[HealthMetric] | None:
        """Return the most recently stored, unexpired series, or None."""
        metric_type = MetricType(metric_type)
        with self._lock:
            cache = self._caches.get(metric_type)
            entry = cache.latest(self._clock()) if cache else None
            if entry is None:
                self._statistics.record_miss()
                return None
            self._statistics.record_hit()
            return list(entry.value)

    def entry_count(self, metric_type: MetricType | str) -> int:
        """Number of entries currently held for ``metric_type``."""
        with self._lock:
            cache = self._caches.get(MetricType(metric_type))
            return len(cache) if cache else 0

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    def store_aggregate(self, key: str, data: AggregatedHealthData) -> None:
        """Cache an aggregate under ``key``, replacing any previous value."""
        with self._lock:
            entry = CacheEntry.create(data, self._clock(), self._config.cache_duration)
            self._aggregates[key] = entry
            self._persist(f"{AGGREGATE_PREFIX}{key}", self._aggregate_document(key, entry))

    def fetch_aggregate(self, key: str) -> AggregatedHealthData | None:
        with self._lock:
            entry = self._aggregates.get(key)
            if entry is None or entry.is_expired(self._clock()):
                self._statistics.record_miss()
                return None
            self._statistics.record_hit()
            return entry.value

    # ------------------------------------------------------------------
    # Throttling
    # ------------------------------------------------------------------

    def should_throttle(self, metric_type: MetricType | str) -> bool:
        """Return True if ``metric_type`` was fetched within the throttle interval.

        Counts a throttled query when True.  Does not touch the throttle entry.
        """
        metric_type = MetricType(metric_type)
        with self._lock:
            throttled = self._throttle.should_throttle(metric_type.value, self._clock())
            if throttled:
                self._statistics.record_throttle()
            return throttled

    def record_fetch(self, metric_type: MetricType | str) -> None:
        """Mark ``metric_type`` as fetched now.

        Call once per attempted fetch, whether or not the fetch succeeded.
        """
        metric_type = MetricType(metric_type)
        with self._lock:
            self._throttle.record(metric_type.value, self._clock())

    def remaining_throttle_time(self, metric_type: MetricType | str) -> float:
        """Seconds until ``metric_type`` may be fetched again."""
        metric_type = MetricType(metric_type)
        with self._lock:
            return self._throttle.remaining(metric_type.value, self._clock())

    # ------------------------------------------------------------------
    # Management
    # ------------------------------------------------------------------

    def clear_all(self) -> None:
        """Empty every cache and throttle entry, and the disk mirror."""
        with self._lock:
            self._caches.clear()
            self._aggregates.clear()
            self._throttle.clear()
            if self._persistence is not None:
                try:
                    self._persistence.clear()
                except OSError as exc:
                    logger.warning("Failed to clear persisted cache: %s", exc)
        logger.info("Cleared all cached health data")

    def clear_for(self, metric_type: MetricType | str) -> None:
        """Empty the cache, throttle entry and disk mirror of one metric type."""
        metric_type = MetricType(metric_type)
        with self._lock:
            self._caches.pop(metric_type, None)
            self._throttle.discard(metric_type.value)
            if self._persistence is not None:
                try:
                    self._persistence.clear(metric_type.value)
                except OSError as exc:
                    logger.warning("Failed to clear persisted cache for %s: %s", metric_type.value, exc)

    def statistics(self) -> CacheStatistics:
        """Return a snapshot of the query counters."""
        with self._lock:
            return replace(self._statistics)

    def reset_statistics(self) -> None:
        with self._lock:
            self._statistics = CacheStatistics()

    @staticmethod
    def recommended_configuration(battery_level: float, low_power_mode: bool) -> CacheConfiguration:
        return recommended_configuration(battery_level, low_power_mode)

    # ------------------------------------------------------------------
    # Disk mirror (called with the lock held)
    # ------------------------------------------------------------------

    @staticmethod
    def _series_document(metric_type: MetricType, entry: CacheEntry) -> dict[str, Any]:
        return {
            "metricType": metric_type.value,
            "createdAt": entry.created_at.isoformat(),
            "expiresAt": entry.expires_at.isoformat(),
            "values": [m.to_dict() for m in entry.value],
        }

    @staticmethod
    def _aggregate_document(key: str, entry: CacheEntry) -> dict[str, Any]:
        return {
            "key": key,
            "createdAt": entry.created_at.isoformat(),
            "expiresAt": entry.expires_at.isoformat(),
            "value": entry.value.to_dict(),
        }

    def _persist(self, key: str, document: dict[str, Any]) -> None:
        if self._persistence is None:
            return
        try:
            self._persistence.write(key, document)
        except (OSError, TypeError, ValueError) as exc:
            logger.warning("Failed to persist cache for key %s: %s", key, exc)

    def _load_persisted(self) -> None:
        """Rebuild unexpired entries from the disk mirror."""
        persistence = self._persistence
        if persistence is None:
            return
        try:
            keys = persistence.keys()
        except OSError as exc:
            logger.warning("Failed to list persisted cache: %s", exc)
            return

        now = self._clock()
        loaded = 0
        for key in keys:
            try:
                document = persistence.read(key)
                if document is None:
                    continue
                created_at = parse_timestamp(document["createdAt"])
                expires_at = parse_timestamp(document["expiresAt"])
                metric_type: MetricType | None = None
                if key.startswith(AGGREGATE_PREFIX):
                    value: Any = AggregatedHealthData.from_dict(document["value"])
                else:
                    metric_type = MetricType(key)
                    value = tuple(metric_from_dict(m) for m in document["values"])
                entry = CacheEntry(value=value, created_at=created_at, expires_at=expires_at)
            except (OSError, KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping unreadable persisted cache %s: %s", key, exc)
                continue

            if entry.is_expired(now):
                logger.debug("Persisted cache %s has expired; not loading", key)
                continue

            if metric_type is None:
                self._aggregates[key[len(AGGREGATE_PREFIX):]] = entry
            else:
                cache = self._caches.setdefault(metric_type, MetricCache(self._config.max_cache_size))
                cache.append(entry)
            loaded += 1

        if loaded:
            logger.info("Loaded %d cached series from %s", loaded, getattr(persistence, "cache_dir", "disk"))
