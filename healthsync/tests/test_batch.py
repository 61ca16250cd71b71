"""Tests for upload batches and chunking."""

from __future__ import annotations

import json

import pytest

from healthsync.metrics import HeartRateMetric
from healthsync.sync.batch import HealthDataBatch, HealthDataPoint, split_batch
from healthsync.tests.conftest import TEST_NOW, TEST_OWNER_ID, make_heart_rates


def _batch(size: int) -> HealthDataBatch:
    return HealthDataBatch(
        owner_id=TEST_OWNER_ID,
        data_points=[HealthDataPoint.from_metric(m) for m in make_heart_rates(size)],
    )


class TestHealthDataPoint:
    def test_value_is_metric_json(self) -> None:
        metric = HeartRateMetric(timestamp=TEST_NOW, beats_per_minute=70)
        point = HealthDataPoint.from_metric(metric)
        assert point.metric_type == "heartRate"
        assert point.timestamp == TEST_NOW
        assert json.loads(point.value)["beatsPerMinute"] == 70

    def test_device_info_only_with_source_device(self) -> None:
        bare = HealthDataPoint.from_metric(HeartRateMetric(timestamp=TEST_NOW))
        assert bare.device_info is None

        watch = HealthDataPoint.from_metric(
            HeartRateMetric(timestamp=TEST_NOW, source_device="Apple Watch"),
            device_model="Watch7,1",
            device_manufacturer="Apple",
        )
        assert watch.device_info is not None
        assert watch.device_info.name == "Apple Watch"
        assert watch.device_info.manufacturer == "Apple"


class TestHealthDataBatch:
    def test_points_stored_as_tuple(self) -> None:
        assert isinstance(_batch(3).data_points, tuple)

    def test_checksum_depends_on_points(self) -> None:
        batch = _batch(5)
        same = HealthDataBatch(owner_id=TEST_OWNER_ID, data_points=batch.data_points)
        assert batch.checksum == same.checksum
        assert batch.checksum != _batch(4).checksum

    def test_rebuilt_from_same_readings_has_same_checksum(self) -> None:
        assert _batch(5).checksum == _batch(5).checksum

    def test_wire_form(self) -> None:
        batch = _batch(2)
        data = batch.to_dict()
        assert data["userId"] == TEST_OWNER_ID
        assert data["batchId"] == str(batch.batch_id)
        assert len(data["dataPoints"]) == 2
        assert data["checksum"] == batch.checksum


class TestSplitBatch:
    def test_250_points_by_100(self) -> None:
        chunks = split_batch(_batch(250), 100)
        assert [len(c) for c in chunks] == [100, 100, 50]

    def test_chunks_reconstruct_original_in_order(self) -> None:
        batch = _batch(37)
        chunks = split_batch(batch, 8)
        rebuilt = tuple(p for c in chunks for p in c.data_points)
        assert rebuilt == batch.data_points
        assert all(len(c) <= 8 for c in chunks)
        assert all(c.owner_id == TEST_OWNER_ID for c in chunks)

    def test_batch_within_limit_returned_unchanged(self) -> None:
        batch = _batch(100)
        chunks = split_batch(batch, 100)
        assert len(chunks) == 1
        assert chunks[0] is batch

    def test_empty_batch(self) -> None:
        batch = HealthDataBatch(owner_id=TEST_OWNER_ID)
        assert split_batch(batch, 10) == [batch]

    def test_chunks_get_new_ids(self) -> None:
        batch = _batch(20)
        ids = {c.batch_id for c in split_batch(batch, 10)}
        assert len(ids) == 2
        assert batch.batch_id not in ids

    def test_chunks_keep_batch_creation_time(self) -> None:
        batch = HealthDataBatch(
            owner_id=TEST_OWNER_ID,
            data_points=_batch(25).data_points,
            created_at=TEST_NOW,
        )
        assert {c.created_at for c in split_batch(batch, 10)} == {TEST_NOW}

    def test_non_positive_size_rejected(self) -> None:
        with pytest.raises(ValueError):
            split_batch(_batch(3), 0)
