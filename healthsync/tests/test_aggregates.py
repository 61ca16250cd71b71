"""Tests for window summaries and the read-through aggregate cache."""

from __future__ import annotations

from datetime import timedelta

import pytest

from healthsync.aggregates import aggregate_key, compute_aggregate, fetch_aggregated
from healthsync.cache.service import CacheService
from healthsync.metrics import (
    HeartRateContext,
    HeartRateMetric,
    MetricType,
    SleepMetric,
    SleepStage,
)
from healthsync.sync.errors import DataSourceError
from healthsync.tests.conftest import (
    TEST_NOW,
    FakeClock,
    FakeDataSource,
    make_heart_rates,
    make_steps,
)

START = TEST_NOW - timedelta(days=1)


def _sleep(stage: SleepStage, minutes: int, offset_hours: int) -> SleepMetric:
    begin = TEST_NOW - timedelta(hours=offset_hours)
    return SleepMetric(
        timestamp=begin,
        start_date=begin,
        end_date=begin + timedelta(minutes=minutes),
        stage=stage,
    )


@pytest.fixture
def night() -> list[SleepMetric]:
    return [
        _sleep(SleepStage.IN_BED, 240, 10),
        _sleep(SleepStage.CORE, 120, 10),
        _sleep(SleepStage.DEEP, 60, 8),
        _sleep(SleepStage.AWAKE, 10, 7),
        _sleep(SleepStage.REM, 30, 6),
    ]


@pytest.fixture
def source(night: list[SleepMetric]) -> FakeDataSource:
    return FakeDataSource(
        {
            MetricType.HEART_RATE: make_heart_rates(3),
            MetricType.STEPS: make_steps(3),
            MetricType.SLEEP: night,
        }
    )


class TestComputeAggregate:
    def test_heart_rate_and_steps(self) -> None:
        resting = HeartRateMetric(
            timestamp=TEST_NOW - timedelta(hours=5),
            beats_per_minute=52,
            context=HeartRateContext.REST,
        )
        result = compute_aggregate(
            START, TEST_NOW, heart_rates=[*make_heart_rates(3), resting], steps=make_steps(3)
        )
        assert result.start_date == START
        assert result.end_date == TEST_NOW
        assert result.heart_rate_average == pytest.approx((60 + 61 + 62 + 52) / 4)
        assert result.heart_rate_min == 52
        assert result.heart_rate_max == 62
        assert result.resting_heart_rate == 52
        assert result.total_steps == 500 + 501 + 502

    def test_sleep_totals_skip_in_bed_and_awake(self, night: list[SleepMetric]) -> None:
        result = compute_aggregate(START, TEST_NOW, sleep=night)
        assert result.sleep_duration == (120 + 60 + 30) * 60
        assert result.deep_sleep_duration == 60 * 60
        assert result.rem_sleep_duration == 30 * 60

    def test_empty_window_leaves_fields_unset(self) -> None:
        result = compute_aggregate(START, TEST_NOW)
        assert result.heart_rate_average is None
        assert result.heart_rate_min is None
        assert result.total_steps is None
        assert result.sleep_duration is None
        assert result.resting_heart_rate is None
        assert result.active_energy_burned is None

    def test_no_resting_readings(self) -> None:
        result = compute_aggregate(START, TEST_NOW, heart_rates=make_heart_rates(3))
        assert result.heart_rate_average == 61
        assert result.resting_heart_rate is None


class TestFetchAggregated:
    def test_key_is_epoch_seconds(self) -> None:
        assert aggregate_key(START, TEST_NOW) == (
            f"{int(START.timestamp())}-{int(TEST_NOW.timestamp())}"
        )

    @pytest.mark.asyncio
    async def test_second_read_served_from_cache(
        self, source: FakeDataSource, cache: CacheService
    ) -> None:
        first = await fetch_aggregated(source, cache, START, TEST_NOW)
        assert [call[0] for call in source.calls] == [
            MetricType.HEART_RATE,
            MetricType.STEPS,
            MetricType.SLEEP,
        ]
        assert first.total_steps == 1503

        second = await fetch_aggregated(source, cache, START, TEST_NOW)
        assert second == first
        assert len(source.calls) == 3
        assert cache.statistics().hit_count == 1

    @pytest.mark.asyncio
    async def test_bypassing_cache_refetches_and_stores(
        self, source: FakeDataSource, cache: CacheService
    ) -> None:
        await fetch_aggregated(source, cache, START, TEST_NOW)
        source.data[MetricType.STEPS] = make_steps(1)

        fresh = await fetch_aggregated(source, cache, START, TEST_NOW, use_cache=False)
        assert len(source.calls) == 6
        assert fresh.total_steps == 500
        assert cache.fetch_aggregate(aggregate_key(START, TEST_NOW)) == fresh

    @pytest.mark.asyncio
    async def test_other_window_is_a_miss(
        self, source: FakeDataSource, cache: CacheService
    ) -> None:
        await fetch_aggregated(source, cache, START, TEST_NOW)
        await fetch_aggregated(source, cache, START - timedelta(days=1), TEST_NOW)
        assert len(source.calls) == 6
        assert cache.statistics().miss_count == 2

    @pytest.mark.asyncio
    async def test_expired_summary_is_recomputed(
        self, source: FakeDataSource, cache: CacheService, clock: FakeClock
    ) -> None:
        await fetch_aggregated(source, cache, START, TEST_NOW)
        clock.advance(301)
        await fetch_aggregated(source, cache, START, TEST_NOW)
        assert len(source.calls) == 6

    @pytest.mark.asyncio
    async def test_failed_series_left_out(self, source: FakeDataSource, cache: CacheService) -> None:
        source.failures[MetricType.STEPS] = DataSourceError("apple_health", "export unreadable")
        result = await fetch_aggregated(source, cache, START, TEST_NOW)
        assert result.total_steps is None
        assert result.heart_rate_max == 62
        assert result.sleep_duration == 210 * 60
