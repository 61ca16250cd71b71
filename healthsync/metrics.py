"""Canonical health metric types and records.

Every data source returns these records and the cache stores them verbatim.
Records are plain dataclasses with ``to_dict`` / ``from_dict`` so they can be
mirrored to disk and embedded in upload batches as JSON.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar

logger = logging.getLogger("healthsync.metrics")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp, assuming UTC when no offset is given."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ---------------------------------------------------------------------------
# Metric types
# ---------------------------------------------------------------------------


class MetricType(str, Enum):
    """All supported health metrics. Values double as persisted cache keys."""

    HEART_RATE = "heartRate"
    STEPS = "steps"
    BLOOD_PRESSURE = "bloodPressure"
    SLEEP = "sleep"
    ACTIVE_ENERGY = "activeEnergy"
    RESTING_HEART_RATE = "restingHeartRate"
    HEART_RATE_VARIABILITY = "heartRateVariability"
    OXYGEN_SATURATION = "oxygenSaturation"
    BODY_TEMPERATURE = "bodyTemperature"
    RESPIRATORY_RATE = "respiratoryRate"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES: dict[MetricType, str] = {
    MetricType.HEART_RATE: "Heart Rate",
    MetricType.STEPS: "Steps",
    MetricType.BLOOD_PRESSURE: "Blood Pressure",
    MetricType.SLEEP: "Sleep",
    MetricType.ACTIVE_ENERGY: "Active Energy",
    MetricType.RESTING_HEART_RATE: "Resting Heart Rate",
    MetricType.HEART_RATE_VARIABILITY: "Heart Rate Variability",
    MetricType.OXYGEN_SATURATION: "Oxygen Saturation",
    MetricType.BODY_TEMPERATURE: "Body Temperature",
    MetricType.RESPIRATORY_RATE: "Respiratory Rate",
}

# Metric types the device data source can currently deliver
SYNCABLE_METRICS: tuple[MetricType, ...] = (
    MetricType.HEART_RATE,
    MetricType.STEPS,
    MetricType.BLOOD_PRESSURE,
    MetricType.SLEEP,
)


# ---------------------------------------------------------------------------
# Metric records
# ---------------------------------------------------------------------------

# Namespace for ids derived from a reading's identity
_ID_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_DNS, "metrics.healthsync")


@dataclass(frozen=True)
class HealthMetric:
    """Fields shared by every metric record.

    Attributes:
        timestamp:     UTC time the reading was taken.
        source_device: Name of the originating device, when known.
        id:            Record identifier.  Derived from the metric type,
                       timestamp and source when omitted, so the same
                       reading always gets the same id.
    """

    timestamp: datetime
    source_device: str | None = None
    id: uuid.UUID | None = None

    metric_type: ClassVar[MetricType] = MetricType.HEART_RATE

    def __post_init__(self) -> None:
        if self.id is None:
            object.__setattr__(self, "id", uuid.uuid5(_ID_NAMESPACE, "|".join(self._identity())))

    def _identity(self) -> tuple[str, ...]:
        return (
            self.metric_type.value,
            self.timestamp.astimezone(timezone.utc).isoformat(),
            self.source_device or "",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "metricType": self.metric_type.value,
            "timestamp": self.timestamp.isoformat(),
            "sourceDevice": self.source_device,
        }

    @staticmethod
    def _base_kwargs(data: dict[str, Any]) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "timestamp": parse_timestamp(data["timestamp"]),
            "source_device": data.get("sourceDevice"),
        }
        if data.get("id"):
            kwargs["id"] = uuid.UUID(data["id"])
        return kwargs


class HeartRateContext(str, Enum):
    REST = "rest"
    ACTIVE = "active"
    RECOVERY = "recovery"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class HeartRateMetric(HealthMetric):
    beats_per_minute: float = 0.0
    context: HeartRateContext | None = None

    metric_type = MetricType.HEART_RATE

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["beatsPerMinute"] = self.beats_per_minute
        data["context"] = self.context.value if self.context else None
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HeartRateMetric":
        context = data.get("context")
        return cls(
            beats_per_minute=float(data["beatsPerMinute"]),
            context=HeartRateContext(context) if context else None,
            **cls._base_kwargs(data),
        )


@dataclass(frozen=True)
class StepsMetric(HealthMetric):
    """Step count over an optional duration (seconds)."""

    count: int = 0
    duration: float | None = None

    metric_type = MetricType.STEPS

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["count"] = self.count
        data["duration"] = self.duration
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StepsMetric":
        duration = data.get("duration")
        return cls(
            count=int(data["count"]),
            duration=float(duration) if duration is not None else None,
            **cls._base_kwargs(data),
        )


class BloodPressureClassification(str, Enum):
    NORMAL = "normal"
    ELEVATED = "elevated"
    HYPERTENSION_STAGE_1 = "hypertensionStage1"
    HYPERTENSION_STAGE_2 = "hypertensionStage2"
    HYPERTENSIVE_CRISIS = "hypertensiveCrisis"


@dataclass(frozen=True)
class BloodPressureMetric(HealthMetric):
    """Systolic / diastolic reading in mmHg."""

    systolic: float = 0.0
    diastolic: float = 0.0

    metric_type = MetricType.BLOOD_PRESSURE

    @property
    def classification(self) -> BloodPressureClassification:
        if self.systolic < 120 and self.diastolic < 80:
            return BloodPressureClassification.NORMAL
        if self.systolic < 130 and self.diastolic < 80:
            return BloodPressureClassification.ELEVATED
        if self.systolic < 140 or self.diastolic < 90:
            return BloodPressureClassification.HYPERTENSION_STAGE_1
        if self.systolic < 180 or self.diastolic < 120:
            return BloodPressureClassification.HYPERTENSION_STAGE_2
        return BloodPressureClassification.HYPERTENSIVE_CRISIS

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["systolic"] = self.systolic
        data["diastolic"] = self.diastolic
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BloodPressureMetric":
        return cls(
            systolic=float(data["systolic"]),
            diastolic=float(data["diastolic"]),
            **cls._base_kwargs(data),
        )


class SleepStage(str, Enum):
    IN_BED = "inBed"
    ASLEEP = "asleep"
    AWAKE = "awake"
    CORE = "core"
    DEEP = "deep"
    REM = "rem"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class SleepMetric(HealthMetric):
    """One sleep-analysis sample covering ``[start_date, end_date]``."""

    start_date: datetime | None = None
    end_date: datetime | None = None
    stage: SleepStage = SleepStage.UNKNOWN

    metric_type = MetricType.SLEEP

    def _identity(self) -> tuple[str, ...]:
        start = self.start_date.astimezone(timezone.utc).isoformat() if self.start_date else ""
        return (*super()._identity(), start, self.stage.value)

    @property
    def duration(self) -> float:
        """Sample length in seconds."""
        if self.start_date is None or self.end_date is None:
            return 0.0
        return (self.end_date - self.start_date).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["startDate"] = self.start_date.isoformat() if self.start_date else None
        data["endDate"] = self.end_date.isoformat() if self.end_date else None
        data["duration"] = self.duration
        data["stage"] = self.stage.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SleepMetric":
        start = data.get("startDate")
        end = data.get("endDate")
        return cls(
            start_date=parse_timestamp(start) if start else None,
            end_date=parse_timestamp(end) if end else None,
            stage=SleepStage(data.get("stage", SleepStage.UNKNOWN.value)),
            **cls._base_kwargs(data),
        )


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AggregatedHealthData:
    """Summary of several metrics over ``[start_date, end_date]``.

    Durations are in seconds, energy in kcal.
    """

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

    def to_dict(self) -> dict[str, Any]:
        return {
            "startDate": self.start_date.isoformat(),
            "endDate": self.end_date.isoformat(),
            "heartRateAverage": self.heart_rate_average,
            "heartRateMin": self.heart_rate_min,
            "heartRateMax": self.heart_rate_max,
            "totalSteps": self.total_steps,
            "sleepDuration": self.sleep_duration,
            "deepSleepDuration": self.deep_sleep_duration,
            "remSleepDuration": self.rem_sleep_duration,
            "activeEnergyBurned": self.active_energy_burned,
            "restingHeartRate": self.resting_heart_rate,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AggregatedHealthData":
        return cls(
            start_date=parse_timestamp(data["startDate"]),
            end_date=parse_timestamp(data["endDate"]),
            heart_rate_average=data.get("heartRateAverage"),
            heart_rate_min=data.get("heartRateMin"),
            heart_rate_max=data.get("heartRateMax"),
            total_steps=data.get("totalSteps"),
            sleep_duration=data.get("sleepDuration"),
            deep_sleep_duration=data.get("deepSleepDuration"),
            rem_sleep_duration=data.get("remSleepDuration"),
            active_energy_burned=data.get("activeEnergyBurned"),
            resting_heart_rate=data.get("restingHeartRate"),
        )


# Registry: metric type → record class used to decode persisted payloads
METRIC_CLASSES: dict[MetricType, type] = {
    MetricType.HEART_RATE: HeartRateMetric,
    MetricType.STEPS: StepsMetric,
    MetricType.BLOOD_PRESSURE: BloodPressureMetric,
    MetricType.SLEEP: SleepMetric,
}


def metric_from_dict(data: dict[str, Any]) -> HealthMetric:
    """Decode a record produced by ``to_dict()``.

    Raises:
        KeyError:   If the metric type has no registered record class.
        ValueError: If the metric type is unknown.
    """
    metric_type = MetricType(data["metricType"])
    if metric_type not in METRIC_CLASSES:
        raise KeyError(
            f"No record class registered for metric type '{metric_type.value}'. "
            f"Available: {[m.value for m in METRIC_CLASSES]}"
        )
    return METRIC_CLASSES[metric_type].from_dict(data)
