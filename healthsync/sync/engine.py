"""Sync engine: gate, fetch, batch, upload and retry.

Workflow of one sync:
1. Reject the request if a sync is already in flight (silent no-op)
2. Check the resource gate (battery level, Wi-Fi)
3. Fetch each tracked metric type for its window, skipping failures; a
   throttled type is read from the cache instead
4. Assemble one batch and split it into chunks of ``max_batch_size``
5. Upload chunks in order; the first failed chunk is queued for retry
6. Record the outcome on ``SyncState`` and the counters

Every metric type keeps its own watermark: every reading up to it has been
delivered or is queued for retry.  A type whose fetch failed, or that was
throttled with nothing cached, keeps its old watermark, so its window is
read again on the next sync.  After a failed upload a type advances only
past the readings that were delivered or queued.

Usage::

    engine = SyncEngine(
        owner_id="user-123",
        data_source=AppleHealthExportSource("export.xml"),
        transport=HttpUploadTransport("https://api.example.com"),
        cache=CacheService(),
    )
    await engine.sync_now()
    engine.start_automatic_sync()
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Iterable, Sequence

from healthsync.cache.service import CacheService
from healthsync.metrics import SYNCABLE_METRICS, HealthMetric, MetricType, utc_now
from healthsync.sources import DataSource
from healthsync.sync.batch import HealthDataBatch, HealthDataPoint, split_batch
from healthsync.sync.conditions import DeviceConditions, StaticDeviceConditions
from healthsync.sync.config import SyncConfiguration
from healthsync.sync.errors import (
    LowBatteryError,
    PartialFailureError,
    SyncThrottledError,
    UploadFailedError,
    WifiRequiredError,
)
from healthsync.sync.transport import UploadTransport

logger = logging.getLogger("healthsync.sync.engine")

DEFAULT_LOOKBACK_DAYS = 7
ON_DEMAND_LOOKBACK_DAYS = 1


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------


class SyncStatus(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class SyncState:
    """Current position in the ``idle → syncing → success | failed`` machine.

    Attributes:
        status: Machine state.
        error:  The failure when ``status`` is FAILED.
    """

    status: SyncStatus = SyncStatus.IDLE
    error: BaseException | None = None

    @classmethod
    def idle(cls) -> "SyncState":
        return cls(SyncStatus.IDLE)

    @classmethod
    def syncing(cls) -> "SyncState":
        return cls(SyncStatus.SYNCING)

    @classmethod
    def success(cls) -> "SyncState":
        return cls(SyncStatus.SUCCESS)

    @classmethod
    def failed(cls, error: BaseException) -> "SyncState":
        return cls(SyncStatus.FAILED, error)

    @property
    def is_syncing(self) -> bool:
        return self.status is SyncStatus.SYNCING

    @property
    def error_message(self) -> str | None:
        return str(self.error) if self.error is not None else None


@dataclass(frozen=True)
class SyncStatistics:
    """Snapshot of the engine's counters.

    Attributes:
        total_synced:        Data points confirmed uploaded since start-up.
        last_sync:           Time of the last fully successful sync.
        failed_attempts:     Consecutive failed syncs since the last success.
        pending_batch_count: Batches waiting in the retry queue.
        current_state:       Current SyncState.
    """

    total_synced: int
    last_sync: datetime | None
    failed_attempts: int
    pending_batch_count: int
    current_state: SyncState


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class SyncEngine:
    """Fetches health metrics and uploads them in bounded batches.

    Runs on one asyncio event loop.  ``SyncState`` is checked and set with
    no ``await`` in between, so at most one sync is in flight.  The retry
    queue and the state are owned here; cache state is only touched through
    ``CacheService``.
    """

    def __init__(
        self,
        owner_id: str,
        data_source: DataSource,
        transport: UploadTransport,
        cache: CacheService,
        configuration: SyncConfiguration | None = None,
        conditions: DeviceConditions | None = None,
        clock: Callable[[], datetime] = utc_now,
        tracked_metrics: Iterable[MetricType | str] = SYNCABLE_METRICS,
        default_lookback_days: int = DEFAULT_LOOKBACK_DAYS,
        on_demand_lookback_days: int = ON_DEMAND_LOOKBACK_DAYS,
        device_model: str | None = None,
        device_manufacturer: str | None = None,
        auto_start: bool = False,
    ) -> None:
        """Initialize the engine.

        Args:
            owner_id:                User the uploaded data belongs to.
            data_source:             Supplies raw readings.
            transport:               Delivers batches to the remote service.
            cache:                   Throttle and cache for fetched series.
            configuration:           Sync tuning. Defaults to the ``default`` preset.
            conditions:              Battery / network readings. Defaults to a
                                     healthy static device.
            clock:                   Returns the current UTC time (injectable for tests).
            tracked_metrics:         Metric types fetched by ``sync_now``, in order.
            default_lookback_days:   Window of a type's first sync.
            on_demand_lookback_days: Window of ``sync_metrics``.
            device_model:            Attached to every data point's device info.
            device_manufacturer:     Attached to every data point's device info.
            auto_start:              Start the automatic sync timer immediately.
                                     Requires a running event loop.
        """
        self.owner_id = owner_id
        self._source = data_source
        self._transport = transport
        self._cache = cache
        self._config = configuration or SyncConfiguration.default()
        self._conditions = conditions or StaticDeviceConditions()
        self._clock = clock
        self._tracked = tuple(MetricType(m) for m in tracked_metrics)
        self._default_lookback = timedelta(days=default_lookback_days)
        self._on_demand_lookback = timedelta(days=on_demand_lookback_days)
        self._device_model = device_model
        self._device_manufacturer = device_manufacturer

        self._state = SyncState.idle()
        self._pending: deque[HealthDataBatch] = deque()
        self._watermarks: dict[MetricType, datetime] = {}
        self._total_synced = 0
        self._last_successful_sync: datetime | None = None
        self._failed_attempts = 0
        self._retrying = False

        self._auto_task: asyncio.Task | None = None
        self._auto_stop: asyncio.Event | None = None

        if auto_start:
            self.start_automatic_sync()

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def configuration(self) -> SyncConfiguration:
        return self._config

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def tracked_metrics(self) -> tuple[MetricType, ...]:
        return self._tracked

    @property
    def last_successful_sync(self) -> datetime | None:
        return self._last_successful_sync

    @property
    def pending_batches(self) -> tuple[HealthDataBatch, ...]:
        return tuple(self._pending)

    @property
    def automatic_sync_running(self) -> bool:
        return self._auto_task is not None and not self._auto_task.done()

    def watermark(self, metric_type: MetricType | str) -> datetime | None:
        """End of the last fully uploaded window for ``metric_type``."""
        return self._watermarks.get(MetricType(metric_type))

    def statistics(self) -> SyncStatistics:
        return SyncStatistics(
            total_synced=self._total_synced,
            last_sync=self._last_successful_sync,
            failed_attempts=self._failed_attempts,
            pending_batch_count=len(self._pending),
            current_state=self._state,
        )

    # ------------------------------------------------------------------
    # Sync operations
    # ------------------------------------------------------------------

    async def sync_now(self) -> None:
        """Sync every tracked metric type since its watermark.

        A type never synced before starts ``default_lookback_days`` back.
        Returns immediately, changing nothing, when a sync is in flight.

        Raises:
            LowBatteryError:   Battery below ``minimum_battery_level``.
            WifiRequiredError: ``wifi_only`` is set and Wi-Fi is down.
            SyncThrottledError: Every type is throttled and nothing is cached.
            UploadFailedError: A chunk was not accepted; it is queued for retry.
        """
        await self._run(self._tracked, on_demand=False)

    async def sync_metrics(self, metric_types: Iterable[MetricType | str]) -> None:
        """Sync only ``metric_types`` over the last ``on_demand_lookback_days``.

        Raises:
            Same as ``sync_now``.
        """
        await self._run(tuple(MetricType(m) for m in metric_types), on_demand=True)

    async def _run(self, metric_types: tuple[MetricType, ...], on_demand: bool) -> None:
        if self._state.is_syncing:
            logger.debug("Sync already in progress; request ignored")
            return
        self._state = SyncState.syncing()

        try:
            self._check_resources()
            now = self._clock()
            points, covered = await self._collect(metric_types, now, on_demand)
            batch = HealthDataBatch(owner_id=self.owner_id, data_points=points, created_at=now)
            await self._upload(batch, covered)
        except BaseException as exc:
            self._state = SyncState.failed(exc)
            self._failed_attempts += 1
            logger.warning("Sync failed (attempt %d): %s", self._failed_attempts, exc)
            raise

        self._advance_watermarks(covered)
        self._last_successful_sync = now
        self._failed_attempts = 0
        self._state = SyncState.success()
        logger.info(
            "Sync complete: %d points uploaded across %d metric types",
            len(batch), len(covered),
        )

    def _check_resources(self) -> None:
        battery = self._conditions.battery_level()
        if battery is not None and battery < self._config.minimum_battery_level:
            raise LowBatteryError(battery)
        if self._config.wifi_only and not self._conditions.is_on_wifi():
            raise WifiRequiredError()

    async def _collect(
        self,
        metric_types: tuple[MetricType, ...],
        now: datetime,
        on_demand: bool,
    ) -> tuple[list[HealthDataPoint], dict[MetricType, datetime]]:
        """Read every type in order, from the source or, when throttled, the cache.

        A scheduled window starts just after the type's watermark, so a
        reading stamped exactly at the watermark is not read twice.

        Returns:
            The data points, and for each type the time up to which its
            readings are now in the batch.

        Raises:
            SyncThrottledError: Nothing was read because every type that
                was not skipped for a fetch error is throttled with no
                cached series.
        """
        points: list[HealthDataPoint] = []
        covered: dict[MetricType, datetime] = {}
        throttled: list[MetricType] = []
        read_any = False

        for metric_type in metric_types:
            previous = self._watermarks.get(metric_type)
            if on_demand:
                start = now - self._on_demand_lookback
                after = None
            else:
                start = previous or now - self._default_lookback
                after = previous

            if self._cache.should_throttle(metric_type):
                cached = self._cache.fetch_cached(metric_type)
                if cached is None:
                    logger.info(
                        "Skipping %s: throttled for another %.0fs and nothing cached",
                        metric_type.value, self._cache.remaining_throttle_time(metric_type),
                    )
                    throttled.append(metric_type)
                    continue
                metrics = _in_window(cached, start, now, after)
                # The cached series only vouches for the readings it holds
                reached = max((m.timestamp for m in metrics), default=None)
                logger.debug("Using %d cached %s readings", len(metrics), metric_type.value)
            else:
                fetched = await self._fetch_metric(metric_type, start, now)
                if fetched is None:
                    continue
                metrics = _in_window(fetched, start, now, after)
                reached = now

            read_any = True
            points.extend(
                HealthDataPoint.from_metric(m, self._device_model, self._device_manufacturer)
                for m in metrics
            )
            # An on-demand window only advances a watermark it reaches back to
            if reached is not None and (not on_demand or (previous is not None and start <= previous)):
                covered[metric_type] = reached

        if throttled and not read_any:
            retry_after = min(self._cache.remaining_throttle_time(m) for m in throttled)
            raise SyncThrottledError(retry_after)
        return points, covered

    async def _fetch_metric(
        self,
        metric_type: MetricType,
        start: datetime,
        end: datetime,
    ) -> list[HealthMetric] | None:
        """Fetch one type from the source and cache it. None means the fetch failed."""
        self._cache.record_fetch(metric_type)
        try:
            metrics = await self._source.fetch(metric_type, start, end)
        except Exception as exc:
            logger.error("Failed to fetch %s: %s", metric_type.value, exc)
            return None

        self._cache.store(metric_type, metrics)
        logger.debug("Fetched %d %s readings", len(metrics), metric_type.value)
        return metrics

    async def _upload(self, batch: HealthDataBatch, covered: dict[MetricType, datetime]) -> None:
        """Upload ``batch`` chunk by chunk.

        On the first failed chunk, that chunk is queued for retry and the
        watermarks move past every reading that was delivered or queued, so
        neither is read again by the next sync.
        """
        if not batch.data_points:
            logger.info("No new data points; nothing to upload")
            return

        chunks = split_batch(batch, self._config.max_batch_size)
        for index, chunk in enumerate(chunks, start=1):
            try:
                await self._upload_chunk(chunk)
            except UploadFailedError:
                self._pending.append(chunk)
                unsent = [p for later in chunks[index:] for p in later.data_points]
                self._advance_watermarks(_handed_off_marks(batch.data_points, unsent, covered))
                logger.warning(
                    "Chunk %d/%d failed; batch %s queued for retry (%d pending)",
                    index, len(chunks), chunk.batch_id, len(self._pending),
                )
                raise
            self._total_synced += len(chunk)
            logger.debug("Uploaded chunk %d/%d (%d points)", index, len(chunks), len(chunk))

    def _advance_watermarks(self, marks: dict[MetricType, datetime]) -> None:
        for metric_type, mark in marks.items():
            current = self._watermarks.get(metric_type)
            if current is None or mark > current:
                self._watermarks[metric_type] = mark

    async def _upload_chunk(self, chunk: HealthDataBatch) -> None:
        try:
            response = await self._transport.upload(chunk, self.owner_id)
        except Exception as exc:
            raise UploadFailedError(str(exc), cause=exc) from exc
        if not response.success:
            raise UploadFailedError(response.message or "server rejected batch")

    # ------------------------------------------------------------------
    # Retry
    # ------------------------------------------------------------------

    async def retry_failed_uploads(self) -> int:
        """Re-upload pending batches front to back.

        Stops at the first failure.  Batches uploaded before it leave the
        queue; the failed batch and everything after it stay queued.  A
        retry already in progress makes this call a no-op returning 0.

        Returns:
            Number of batches uploaded (the queue is now empty).

        Raises:
            PartialFailureError: The queue was not fully drained.
        """
        if self._retrying:
            logger.debug("Retry already in progress; request ignored")
            return 0
        if not self._pending:
            return 0

        self._retrying = True
        succeeded = 0
        errors: list[Exception] = []
        try:
            while self._pending:
                batch = self._pending[0]
                try:
                    await self._upload_chunk(batch)
                except UploadFailedError as exc:
                    errors.append(exc)
                    break
                self._pending.popleft()
                self._total_synced += len(batch)
                succeeded += 1
        finally:
            self._retrying = False

        if errors:
            logger.warning(
                "Retry stopped after %d batches; %d still pending", succeeded, len(self._pending)
            )
            raise PartialFailureError(succeeded, errors)

        logger.info("Retried %d pending batches", succeeded)
        return succeeded

    # ------------------------------------------------------------------
    # Automatic sync
    # ------------------------------------------------------------------

    def start_automatic_sync(self) -> bool:
        """Run ``sync_now`` every ``sync_interval`` seconds on the running loop.

        Does nothing when the interval is <= 0 or background sync is
        disabled.  Errors from individual runs are logged and swallowed.

        Returns:
            True if the timer is running after the call.

        Raises:
            RuntimeError: If called outside a running event loop.
        """
        interval = self._config.sync_interval
        if interval <= 0 or not self._config.background_sync_enabled:
            logger.info("Automatic sync disabled (interval=%ss)", interval)
            return False
        if self.automatic_sync_running and not self._auto_stop.is_set():
            return True

        loop = asyncio.get_running_loop()
        self._auto_stop = asyncio.Event()
        self._auto_task = loop.create_task(
            self._automatic_sync_loop(self._auto_stop, interval),
            name="healthsync-automatic-sync",
        )
        logger.info("Automatic sync started (every %ss)", interval)
        return True

    def stop_automatic_sync(self) -> None:
        """Cancel future automatic syncs. A sync in flight runs to completion."""
        if self._auto_stop is not None:
            self._auto_stop.set()
            logger.info("Automatic sync stopped")

    async def aclose(self) -> None:
        """Stop the timer and wait for its loop to exit."""
        self.stop_automatic_sync()
        if self._auto_task is not None:
            await self._auto_task
            self._auto_task = None

    async def _automatic_sync_loop(self, stop: asyncio.Event, interval: float) -> None:
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
            if stop.is_set():
                break
            try:
                await self.sync_now()
            except Exception as exc:
                logger.error("Automatic sync failed: %s", exc)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _in_window(
    metrics: Iterable[HealthMetric],
    start: datetime,
    end: datetime,
    after: datetime | None,
) -> list[HealthMetric]:
    """Readings within ``[start, end]``, and strictly later than ``after`` when given."""
    return [
        m for m in metrics
        if start <= m.timestamp <= end and (after is None or m.timestamp > after)
    ]


def _handed_off_marks(
    points: Sequence[HealthDataPoint],
    unsent: Sequence[HealthDataPoint],
    covered: dict[MetricType, datetime],
) -> dict[MetricType, datetime]:
    """Watermarks after a failed upload.

    ``unsent`` is the tail of ``points`` that was never attempted; every
    other point was delivered or is queued for retry.  A type with no unsent
    points advances as far as a successful sync would take it.  A type with
    unsent points advances to its last handed-off reading before the first
    unsent one, or not at all.
    """
    first_unsent: dict[str, datetime] = {}
    for point in unsent:
        current = first_unsent.get(point.metric_type)
        if current is None or point.timestamp < current:
            first_unsent[point.metric_type] = point.timestamp

    handed_off = points[:len(points) - len(unsent)]
    marks: dict[MetricType, datetime] = {}
    for metric_type, reached in covered.items():
        cutoff = first_unsent.get(metric_type.value)
        if cutoff is None:
            marks[metric_type] = reached
            continue
        earlier = [
            p.timestamp for p in handed_off
            if p.metric_type == metric_type.value and p.timestamp < cutoff
        ]
        if earlier:
            marks[metric_type] = max(earlier)
    return marks
