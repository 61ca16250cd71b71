"""Device-local metric sources.

Each source implements the ``DataSource`` protocol and returns canonical
metric records for a time window.

Available sources:
    AppleHealthExportSource — Apple Health export.xml on local disk
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from healthsync.metrics import HealthMetric, MetricType


class DataSource(Protocol):
    """Supplies raw metric readings for a time range."""

    async def fetch(
        self,
        metric_type: MetricType,
        start: datetime,
        end: datetime,
        limit: int | None = None,
    ) -> list[HealthMetric]:
        """Return readings of ``metric_type`` taken within ``[start, end]``.

        May block on I/O and may raise; callers treat any exception as a
        failed fetch for that metric type.
        """
        ...


from healthsync.sources.apple_health import AppleHealthExportSource  # noqa: E402

__all__ = ["DataSource", "AppleHealthExportSource"]
