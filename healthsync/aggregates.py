"""Window summaries over heart rate, steps and sleep.

``compute_aggregate`` is a pure function over readings already in memory.
``fetch_aggregated`` reads through the cache: a summary for the same window
is served from ``CacheService`` until it expires, otherwise the three series
are fetched from the data source and the result is stored.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Sequence

from healthsync.cache.service import CacheService
from healthsync.metrics import (
    AggregatedHealthData,
    HealthMetric,
    HeartRateContext,
    HeartRateMetric,
    MetricType,
    SleepMetric,
    SleepStage,
    StepsMetric,
)
from healthsync.sources import DataSource

logger = logging.getLogger("healthsync.aggregates")

# Stages that count toward total sleep; in-bed and awake samples do not
_ASLEEP_STAGES = frozenset({SleepStage.ASLEEP, SleepStage.CORE, SleepStage.DEEP, SleepStage.REM})

_AGGREGATED_TYPES = (MetricType.HEART_RATE, MetricType.STEPS, MetricType.SLEEP)


def aggregate_key(start: datetime, end: datetime) -> str:
    """Cache key for a window, in whole epoch seconds."""
    return f"{int(start.timestamp())}-{int(end.timestamp())}"


def _mean(values: Sequence[float]) -> float | None:
    return sum(values) / len(values) if values else None


def compute_aggregate(
    start: datetime,
    end: datetime,
    heart_rates: Sequence[HealthMetric] = (),
    steps: Sequence[HealthMetric] = (),
    sleep: Sequence[HealthMetric] = (),
) -> AggregatedHealthData:
    """Summarise readings for ``[start, end]``.

    A field stays ``None`` when no reading contributes to it. Readings of
    the wrong record type are ignored.
    """
    beats = [m.beats_per_minute for m in heart_rates if isinstance(m, HeartRateMetric)]
    resting = [
        m.beats_per_minute
        for m in heart_rates
        if isinstance(m, HeartRateMetric) and m.context == HeartRateContext.REST
    ]
    counts = [m.count for m in steps if isinstance(m, StepsMetric)]
    samples = [m for m in sleep if isinstance(m, SleepMetric)]

    def stage_total(stages: frozenset[SleepStage]) -> float | None:
        matching = [s.duration for s in samples if s.stage in stages]
        return sum(matching) if matching else None

    return AggregatedHealthData(
        start_date=start,
        end_date=end,
        heart_rate_average=_mean(beats),
        heart_rate_min=min(beats) if beats else None,
        heart_rate_max=max(beats) if beats else None,
        total_steps=sum(counts) if counts else None,
        sleep_duration=stage_total(_ASLEEP_STAGES),
        deep_sleep_duration=stage_total(frozenset({SleepStage.DEEP})),
        rem_sleep_duration=stage_total(frozenset({SleepStage.REM})),
        resting_heart_rate=_mean(resting),
    )


async def fetch_aggregated(
    source: DataSource,
    cache: CacheService,
    start: datetime,
    end: datetime,
    use_cache: bool = True,
) -> AggregatedHealthData:
    """Return the summary for ``[start, end]``, computing it on a cache miss.

    A series whose fetch fails is left out of the summary and logged. The
    computed summary is always stored, so ``use_cache=False`` refreshes it.
    """
    key = aggregate_key(start, end)
    if use_cache:
        cached = cache.fetch_aggregate(key)
        if cached is not None:
            logger.debug("Aggregate %s served from cache", key)
            return cached

    series: dict[MetricType, list[HealthMetric]] = {}
    for metric_type in _AGGREGATED_TYPES:
        try:
            series[metric_type] = await source.fetch(metric_type, start, end)
        except Exception as exc:
            logger.warning("Aggregate %s: fetching %s failed: %s", key, metric_type.value, exc)
            series[metric_type] = []

    aggregate = compute_aggregate(
        start,
        end,
        heart_rates=series[MetricType.HEART_RATE],
        steps=series[MetricType.STEPS],
        sleep=series[MetricType.SLEEP],
    )
    cache.store_aggregate(key, aggregate)
    logger.info("Aggregate %s computed", key)
    return aggregate
