"""Apple Health export source.

Apple does not provide a server-side API: data is exported from the phone as
``export.xml`` and copied to the device running healthsync.  This source reads
that file and serves metric records for a time window.

Records used:
    HKQuantityTypeIdentifierHeartRate          → HeartRateMetric
    HKQuantityTypeIdentifierStepCount          → StepsMetric
    HKCorrelationTypeIdentifierBloodPressure   → BloodPressureMetric
    HKCategoryTypeIdentifierSleepAnalysis      → SleepMetric

The parsed tree is cached and re-read only when the file's mtime changes.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from xml.etree import ElementTree as ET

from healthsync.metrics import (
    BloodPressureMetric,
    HealthMetric,
    HeartRateContext,
    HeartRateMetric,
    MetricType,
    SleepMetric,
    SleepStage,
    StepsMetric,
)
from healthsync.sync.errors import DataSourceError

logger = logging.getLogger("healthsync.sources.apple_health")

_HK_HEART_RATE = "HKQuantityTypeIdentifierHeartRate"
_HK_STEP_COUNT = "HKQuantityTypeIdentifierStepCount"
_HK_BLOOD_PRESSURE = "HKCorrelationTypeIdentifierBloodPressure"
_HK_BP_SYSTOLIC = "HKQuantityTypeIdentifierBloodPressureSystolic"
_HK_BP_DIASTOLIC = "HKQuantityTypeIdentifierBloodPressureDiastolic"
_HK_SLEEP_ANALYSIS = "HKCategoryTypeIdentifierSleepAnalysis"

# Sleep stage values from HealthKit
_SLEEP_STAGE_MAP: dict[str, SleepStage] = {
    "HKCategoryValueSleepAnalysisInBed": SleepStage.IN_BED,
    "HKCategoryValueSleepAnalysisAsleepUnspecified": SleepStage.ASLEEP,
    "HKCategoryValueSleepAnalysisAsleep": SleepStage.ASLEEP,
    "HKCategoryValueSleepAnalysisAwake": SleepStage.AWAKE,
    "HKCategoryValueSleepAnalysisAsleepCore": SleepStage.CORE,
    "HKCategoryValueSleepAnalysisAsleepDeep": SleepStage.DEEP,
    "HKCategoryValueSleepAnalysisAsleepREM": SleepStage.REM,
}

# HKMetadataKeyHeartRateMotionContext: 0 = not set, 1 = sedentary, 2 = active
_MOTION_CONTEXT_MAP: dict[str, HeartRateContext] = {
    "0": HeartRateContext.UNKNOWN,
    "1": HeartRateContext.REST,
    "2": HeartRateContext.ACTIVE,
}


def parse_export_date(value: str) -> datetime:
    """Parse an export timestamp such as ``2026-02-23 07:15:00 -0800``.

    Raises:
        ValueError: If the value is not a recognised timestamp.
    """
    try:
        parsed = datetime.strptime(value.strip(), "%Y-%m-%d %H:%M:%S %z")
    except ValueError:
        parsed = datetime.fromisoformat(value.strip().replace(" ", "T"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class AppleHealthExportSource:
    """``DataSource`` backed by an Apple Health ``export.xml`` file."""

    SOURCE_ID = "apple_health"

    def __init__(self, export_path: Path | str) -> None:
        self.export_path = Path(export_path)
        self._root: ET.Element | None = None
        self._root_mtime: float | None = None

    async def fetch(
        self,
        metric_type: MetricType,
        start: datetime,
        end: datetime,
        limit: int | None = None,
    ) -> list[HealthMetric]:
        """Return records of ``metric_type`` within ``[start, end]``, oldest first.

        Metric types the export cannot provide return an empty list.

        Raises:
            DataSourceError: If the export is missing or not valid XML.
        """
        root = await asyncio.to_thread(self._load_root)
        metric_type = MetricType(metric_type)

        if metric_type is MetricType.HEART_RATE:
            records = self._heart_rate(root)
        elif metric_type is MetricType.STEPS:
            records = self._steps(root)
        elif metric_type is MetricType.BLOOD_PRESSURE:
            records = self._blood_pressure(root)
        elif metric_type is MetricType.SLEEP:
            records = self._sleep(root)
        else:
            logger.debug("Apple Health export has no reader for %s", metric_type.value)
            return []

        in_window = sorted(
            (r for r in records if start <= r.timestamp <= end),
            key=lambda r: r.timestamp,
        )
        if limit is not None:
            in_window = in_window[:limit]

        logger.debug(
            "Apple Health: %d %s records between %s and %s",
            len(in_window), metric_type.value, start.isoformat(), end.isoformat(),
        )
        return in_window

    # ------------------------------------------------------------------
    # XML loading
    # ------------------------------------------------------------------

    def _load_root(self) -> ET.Element:
        try:
            mtime = self.export_path.stat().st_mtime
        except FileNotFoundError as exc:
            raise DataSourceError(
                self.SOURCE_ID, f"Export not found: {self.export_path}", cause=exc
            ) from exc

        if self._root is None or self._root_mtime != mtime:
            try:
                self._root = ET.parse(self.export_path).getroot()
            except ET.ParseError as exc:
                logger.error("Apple Health XML parse error: %s", exc)
                raise DataSourceError(
                    self.SOURCE_ID, f"Invalid Apple Health XML: {exc}", cause=exc
                ) from exc
            self._root_mtime = mtime
            logger.info("Apple Health: loaded export %s", self.export_path)
        return self._root

    # ------------------------------------------------------------------
    # Record readers
    # ------------------------------------------------------------------

    @staticmethod
    def _records(root: ET.Element, hk_type: str) -> list[ET.Element]:
        return [r for r in root.findall("Record") if r.get("type") == hk_type]

    def _heart_rate(self, root: ET.Element) -> list[HealthMetric]:
        metrics: list[HealthMetric] = []
        for record in self._records(root, _HK_HEART_RATE):
            try:
                timestamp = parse_export_date(record.get("startDate", ""))
                bpm = float(record.get("value", ""))
            except ValueError:
                continue
            context = None
            for meta in record.findall("MetadataEntry"):
                if meta.get("key") == "HKMetadataKeyHeartRateMotionContext":
                    context = _MOTION_CONTEXT_MAP.get(meta.get("value", ""), HeartRateContext.UNKNOWN)
            metrics.append(
                HeartRateMetric(
                    timestamp=timestamp,
                    source_device=record.get("sourceName"),
                    beats_per_minute=bpm,
                    context=context,
                )
            )
        return metrics

    def _steps(self, root: ET.Element) -> list[HealthMetric]:
        metrics: list[HealthMetric] = []
        for record in self._records(root, _HK_STEP_COUNT):
            try:
                start = parse_export_date(record.get("startDate", ""))
                count = int(float(record.get("value", "")))
            except ValueError:
                continue
            duration = None
            end_str = record.get("endDate")
            if end_str:
                try:
                    duration = (parse_export_date(end_str) - start).total_seconds()
                except ValueError:
                    pass
            metrics.append(
                StepsMetric(
                    timestamp=start,
                    source_device=record.get("sourceName"),
                    count=count,
                    duration=duration,
                )
            )
        return metrics

    def _blood_pressure(self, root: ET.Element) -> list[HealthMetric]:
        metrics: list[HealthMetric] = []
        for corr in root.findall("Correlation"):
            if corr.get("type") != _HK_BLOOD_PRESSURE:
                continue
            values: dict[str, float] = {}
            for record in corr.findall("Record"):
                try:
                    values[record.get("type", "")] = float(record.get("value", ""))
                except ValueError:
                    continue
            if _HK_BP_SYSTOLIC not in values or _HK_BP_DIASTOLIC not in values:
                continue
            try:
                timestamp = parse_export_date(corr.get("startDate", ""))
            except ValueError:
                continue
            metrics.append(
                BloodPressureMetric(
                    timestamp=timestamp,
                    source_device=corr.get("sourceName"),
                    systolic=values[_HK_BP_SYSTOLIC],
                    diastolic=values[_HK_BP_DIASTOLIC],
                )
            )
        return metrics

    def _sleep(self, root: ET.Element) -> list[HealthMetric]:
        metrics: list[HealthMetric] = []
        for record in self._records(root, _HK_SLEEP_ANALYSIS):
            try:
                start = parse_export_date(record.get("startDate", ""))
                end = parse_export_date(record.get("endDate", ""))
            except ValueError:
                continue
            if end <= start:
                continue
            metrics.append(
                SleepMetric(
                    timestamp=end,
                    source_device=record.get("sourceName"),
                    start_date=start,
                    end_date=end,
                    stage=_SLEEP_STAGE_MAP.get(record.get("value", ""), SleepStage.UNKNOWN),
                )
            )
        return metrics
