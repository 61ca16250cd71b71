"""Batching, upload and retry of health metrics.

Modules:
    errors     — SyncError taxonomy
    config     — SyncConfiguration presets
    batch      — HealthDataBatch and the chunking algorithm
    conditions — battery / network readings for the resource gate
    transport  — UploadTransport protocol and the httpx implementation
    engine     — SyncEngine state machine, retry queue and automatic sync
"""

from healthsync.sync.batch import HealthDataBatch, HealthDataPoint, split_batch
from healthsync.sync.conditions import (
    DeviceConditions,
    StaticDeviceConditions,
    SystemDeviceConditions,
)
from healthsync.sync.config import SYNC_PRESETS, SyncConfiguration
from healthsync.sync.engine import SyncEngine, SyncState, SyncStatistics, SyncStatus
from healthsync.sync.errors import (
    DataSourceError,
    LowBatteryError,
    PartialFailureError,
    SyncError,
    SyncThrottledError,
    TransportError,
    UploadFailedError,
    WifiRequiredError,
)
from healthsync.sync.transport import HttpUploadTransport, UploadTransport

__all__ = [
    "DataSourceError",
    "DeviceConditions",
    "HealthDataBatch",
    "HealthDataPoint",
    "HttpUploadTransport",
    "LowBatteryError",
    "PartialFailureError",
    "StaticDeviceConditions",
    "SyncConfiguration",
    "SyncEngine",
    "SyncError",
    "SyncState",
    "SyncStatistics",
    "SyncStatus",
    "SyncThrottledError",
    "SystemDeviceConditions",
    "TransportError",
    "UploadFailedError",
    "UploadTransport",
    "WifiRequiredError",
    "SYNC_PRESETS",
    "split_batch",
]
