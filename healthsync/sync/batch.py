"""Upload batches and the splitting algorithm.

Batches are value objects: splitting builds new batches and never mutates
the original.
"""

from __future__ import annotations

import hashlib
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Sequence

from healthsync.metrics import HealthMetric, MetricType, utc_now

logger = logging.getLogger("healthsync.sync.batch")


@dataclass(frozen=True)
class DeviceInfo:
    """Originating device of a data point."""

    name: str | None = None
    model: str | None = None
    manufacturer: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "model": self.model, "manufacturer": self.manufacturer}


@dataclass(frozen=True)
class HealthDataPoint:
    """One serialized metric reading ready for upload.

    Attributes:
        metric_type: Metric type wire value (e.g. 'heartRate').
        timestamp:   UTC time of the reading.
        value:       JSON-encoded metric record.
        device_info: Originating device, when known.
    """

    metric_type: str
    timestamp: datetime
    value: str
    device_info: DeviceInfo | None = None

    @classmethod
    def from_metric(
        cls,
        metric: HealthMetric,
        device_model: str | None = None,
        device_manufacturer: str | None = None,
    ) -> "HealthDataPoint":
        device_info = None
        if metric.source_device:
            device_info = DeviceInfo(
                name=metric.source_device,
                model=device_model,
                manufacturer=device_manufacturer,
            )
        return cls(
            metric_type=MetricType(metric.metric_type).value,
            timestamp=metric.timestamp,
            value=json.dumps(metric.to_dict(), sort_keys=True),
            device_info=device_info,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "metricType": self.metric_type,
            "timestamp": self.timestamp.isoformat(),
            "value": self.value,
            "deviceInfo": self.device_info.to_dict() if self.device_info else None,
        }


def compute_checksum(data_points: Sequence[HealthDataPoint]) -> str:
    """SHA-256 over ``timestamp:value`` of every point, in order."""
    digest = hashlib.sha256()
    for point in data_points:
        digest.update(f"{point.timestamp.timestamp()}:{point.value}".encode())
    return digest.hexdigest()


@dataclass(frozen=True)
class HealthDataBatch:
    """An ordered group of data points owned by one user.

    Attributes:
        owner_id:    Identifier of the user the data belongs to.
        data_points: Points in fetch order.
        batch_id:    Unique batch identifier.
        created_at:  When the batch was assembled.
    """

    owner_id: str
    data_points: tuple[HealthDataPoint, ...] = ()
    batch_id: uuid.UUID = field(default_factory=uuid.uuid4)
    created_at: datetime = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        if not isinstance(self.data_points, tuple):
            object.__setattr__(self, "data_points", tuple(self.data_points))

    @property
    def checksum(self) -> str:
        return compute_checksum(self.data_points)

    def __len__(self) -> int:
        return len(self.data_points)

    def to_dict(self) -> dict[str, Any]:
        return {
            "batchId": str(self.batch_id),
            "userId": self.owner_id,
            "createdAt": self.created_at.isoformat(),
            "dataPoints": [p.to_dict() for p in self.data_points],
            "checksum": self.checksum,
        }


def split_batch(batch: HealthDataBatch, max_size: int) -> list[HealthDataBatch]:
    """Split ``batch`` into contiguous chunks of at most ``max_size`` points.

    A batch already within the limit is returned as-is.  Otherwise the
    result has ``ceil(len / max_size)`` chunks in original order; only the
    last one may be smaller than ``max_size``.

    Raises:
        ValueError: If ``max_size`` is not positive.
    """
    if max_size < 1:
        raise ValueError(f"max_size must be >= 1, got {max_size}")

    points = batch.data_points
    if len(points) <= max_size:
        return [batch]

    chunks = [
        HealthDataBatch(
            owner_id=batch.owner_id,
            data_points=points[start:start + max_size],
            created_at=batch.created_at,
        )
        for start in range(0, len(points), max_size)
    ]
    logger.debug("Split batch of %d points into %d chunks", len(points), len(chunks))
    return chunks
