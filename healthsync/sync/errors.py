"""Typed failures raised by the sync engine and its collaborators."""

from __future__ import annotations


class SyncError(Exception):
    """Base class for every sync failure."""


class LowBatteryError(SyncError):
    """Battery level is below the configured minimum."""

    def __init__(self, level: float) -> None:
        self.level = level
        super().__init__(f"Battery too low for sync ({int(level * 100)}%)")


class WifiRequiredError(SyncError):
    """Sync is restricted to Wi-Fi and no Wi-Fi link is up."""

    def __init__(self) -> None:
        super().__init__("WiFi connection required for sync")


class SyncThrottledError(SyncError):
    """Every requested metric type is inside its throttle window and nothing was cached."""

    def __init__(self, retry_after: float) -> None:
        self.retry_after = retry_after
        super().__init__(f"Sync throttled; retry in {retry_after:.0f}s")


class UploadFailedError(SyncError):
    """A batch upload was rejected or could not be delivered."""

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        self.message = message
        self.cause = cause
        super().__init__(f"Upload failed: {message}")


class PartialFailureError(SyncError):
    """Retrying pending batches stopped before the queue was drained."""

    def __init__(self, success_count: int, errors: list[Exception]) -> None:
        self.success_count = success_count
        self.errors = errors
        super().__init__(
            f"Partial sync failure: {success_count} succeeded, {len(errors)} failed"
        )


class TransportError(Exception):
    """The upload transport could not complete the request."""

    def __init__(self, message: str, status_code: int | None = None, cause: Exception | None = None):
        self.status_code = status_code
        self.cause = cause
        super().__init__(message)


class DataSourceError(Exception):
    """A data source failed to read metrics."""

    def __init__(self, source_name: str, message: str, cause: Exception | None = None):
        self.source_name = source_name
        self.cause = cause
        super().__init__(f"[{source_name}] {message}")
