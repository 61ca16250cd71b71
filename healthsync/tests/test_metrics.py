"""Tests for metric records and their JSON form."""

from __future__ import annotations

from datetime import timedelta

import pytest

from healthsync.metrics import (
    SYNCABLE_METRICS,
    AggregatedHealthData,
    BloodPressureClassification,
    BloodPressureMetric,
    HeartRateContext,
    HeartRateMetric,
    MetricType,
    SleepMetric,
    SleepStage,
    StepsMetric,
    metric_from_dict,
)
from healthsync.tests.conftest import TEST_NOW


class TestMetricType:
    def test_wire_values_are_camel_case(self) -> None:
        assert MetricType.HEART_RATE.value == "heartRate"
        assert MetricType("bloodPressure") is MetricType.BLOOD_PRESSURE

    def test_every_type_has_display_name(self) -> None:
        for metric_type in MetricType:
            assert metric_type.display_name

    def test_syncable_metrics(self) -> None:
        assert SYNCABLE_METRICS == (
            MetricType.HEART_RATE,
            MetricType.STEPS,
            MetricType.BLOOD_PRESSURE,
            MetricType.SLEEP,
        )


class TestRecords:
    def test_heart_rate_dict_round_trip(self) -> None:
        metric = HeartRateMetric(
            timestamp=TEST_NOW,
            source_device="Apple Watch",
            beats_per_minute=64,
            context=HeartRateContext.REST,
        )
        data = metric.to_dict()
        assert data["metricType"] == "heartRate"
        assert data["beatsPerMinute"] == 64
        assert metric_from_dict(data) == metric

    def test_sleep_dict_round_trip_keeps_duration(self) -> None:
        metric = SleepMetric(
            timestamp=TEST_NOW,
            start_date=TEST_NOW - timedelta(hours=7),
            end_date=TEST_NOW,
            stage=SleepStage.DEEP,
        )
        data = metric.to_dict()
        assert data["duration"] == 7 * 3600
        restored = metric_from_dict(data)
        assert restored == metric
        assert restored.duration == metric.duration

    def test_steps_without_duration(self) -> None:
        metric = StepsMetric(timestamp=TEST_NOW, count=1200)
        assert metric_from_dict(metric.to_dict()).duration is None

    def test_unregistered_metric_type_raises(self) -> None:
        data = HeartRateMetric(timestamp=TEST_NOW).to_dict()
        data["metricType"] = "oxygenSaturation"
        with pytest.raises(KeyError):
            metric_from_dict(data)

    def test_unknown_metric_type_raises(self) -> None:
        data = HeartRateMetric(timestamp=TEST_NOW).to_dict()
        data["metricType"] = "bloodSugar"
        with pytest.raises(ValueError):
            metric_from_dict(data)

    def test_same_reading_gets_same_id(self) -> None:
        first = HeartRateMetric(timestamp=TEST_NOW, source_device="Apple Watch", beats_per_minute=70)
        again = HeartRateMetric(timestamp=TEST_NOW, source_device="Apple Watch", beats_per_minute=70)
        assert first.id == again.id
        assert first.to_dict() == again.to_dict()

    def test_id_depends_on_type_time_and_source(self) -> None:
        base = HeartRateMetric(timestamp=TEST_NOW, source_device="Apple Watch")
        assert base.id != HeartRateMetric(timestamp=TEST_NOW + timedelta(seconds=1), source_device="Apple Watch").id
        assert base.id != HeartRateMetric(timestamp=TEST_NOW, source_device="iPhone").id
        assert base.id != StepsMetric(timestamp=TEST_NOW, source_device="Apple Watch").id

    def test_sleep_id_includes_stage(self) -> None:
        start = TEST_NOW - timedelta(hours=1)
        deep = SleepMetric(timestamp=TEST_NOW, start_date=start, end_date=TEST_NOW, stage=SleepStage.DEEP)
        rem = SleepMetric(timestamp=TEST_NOW, start_date=start, end_date=TEST_NOW, stage=SleepStage.REM)
        assert deep.id != rem.id

    def test_explicit_id_is_kept(self) -> None:
        metric = HeartRateMetric(timestamp=TEST_NOW)
        assert HeartRateMetric.from_dict(metric.to_dict()).id == metric.id


class TestBloodPressureClassification:
    @pytest.mark.parametrize(
        "systolic,diastolic,expected",
        [
            (115, 75, BloodPressureClassification.NORMAL),
            (125, 75, BloodPressureClassification.ELEVATED),
            (135, 85, BloodPressureClassification.HYPERTENSION_STAGE_1),
            (150, 95, BloodPressureClassification.HYPERTENSION_STAGE_2),
            (185, 125, BloodPressureClassification.HYPERTENSIVE_CRISIS),
        ],
    )
    def test_classification(
        self, systolic: float, diastolic: float, expected: BloodPressureClassification
    ) -> None:
        metric = BloodPressureMetric(timestamp=TEST_NOW, systolic=systolic, diastolic=diastolic)
        assert metric.classification == expected


class TestAggregatedHealthData:
    def test_dict_round_trip(self) -> None:
        aggregate = AggregatedHealthData(
            start_date=TEST_NOW - timedelta(days=1),
            end_date=TEST_NOW,
            heart_rate_average=68.5,
            total_steps=9421,
            sleep_duration=7 * 3600,
        )
        restored = AggregatedHealthData.from_dict(aggregate.to_dict())
        assert restored == aggregate
        assert restored.resting_heart_rate is None
