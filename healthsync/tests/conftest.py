"""Shared fixtures and fakes for healthsync tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from healthsync.cache.config import CacheConfiguration
from healthsync.cache.service import CacheService
from healthsync.metrics import HealthMetric, HeartRateMetric, MetricType, StepsMetric
from healthsync.models.sync import UploadResponse

# Fixtures directory
FIXTURES_DIR = Path(__file__).parent / "fixtures"

TEST_OWNER_ID = "user-123"
TEST_NOW = datetime(2026, 2, 23, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeClock:
    """Controllable clock; call it to read the time."""

    def __init__(self, start: datetime = TEST_NOW) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeDataSource:
    """In-memory DataSource that records every call.

    Attributes:
        data:     Readings served per metric type (filtered by window).
        failures: Exceptions raised per metric type.
        calls:    (metric_type, start, end) of every fetch.
    """

    def __init__(
        self,
        data: dict[MetricType, list[HealthMetric]] | None = None,
        failures: dict[MetricType, Exception] | None = None,
    ) -> None:
        self.data = data or {}
        self.failures = failures or {}
        self.calls: list[tuple[MetricType, datetime, datetime]] = []

    async def fetch(
        self,
        metric_type: MetricType,
        start: datetime,
        end: datetime,
        limit: int | None = None,
    ) -> list[HealthMetric]:
        self.calls.append((metric_type, start, end))
        if metric_type in self.failures:
            raise self.failures[metric_type]
        values = [m for m in self.data.get(metric_type, []) if start <= m.timestamp <= end]
        return values[:limit] if limit is not None else values


def make_heart_rates(count: int, end: datetime = TEST_NOW) -> list[HealthMetric]:
    """``count`` heart-rate readings one minute apart, ending one minute before ``end``."""
    return [
        HeartRateMetric(
            timestamp=end - timedelta(minutes=count - i),
            source_device="Apple Watch",
            beats_per_minute=60 + i % 40,
        )
        for i in range(count)
    ]


def make_steps(count: int, end: datetime = TEST_NOW) -> list[HealthMetric]:
    return [
        StepsMetric(
            timestamp=end - timedelta(hours=count - i),
            source_device="iPhone",
            count=500 + i,
            duration=3600,
        )
        for i in range(count)
    ]


def ok_response() -> UploadResponse:
    return UploadResponse(success=True, upload_id="upload-1")


def rejected_response(message: str = "checksum mismatch") -> UploadResponse:
    return UploadResponse(success=False, message=message)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_config() -> CacheConfiguration:
    """Default timings without the disk mirror."""
    return CacheConfiguration(
        cache_duration=300, throttle_interval=60, max_cache_size=1000, persist_to_disk=False
    )


@pytest.fixture
def cache(memory_config: CacheConfiguration, clock: FakeClock) -> CacheService:
    return CacheService(memory_config, clock=clock)


@pytest.fixture
def transport() -> AsyncMock:
    """UploadTransport mock that accepts every batch."""
    mock = AsyncMock()
    mock.upload.return_value = ok_response()
    return mock


@pytest.fixture
def export_path() -> Path:
    return FIXTURES_DIR / "export.xml"
