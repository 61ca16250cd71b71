"""Sync configuration presets."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class SyncConfiguration:
    """Immutable sync tuning.

    Attributes:
        max_batch_size:          Maximum data points per uploaded chunk.
        sync_interval:           Seconds between automatic syncs; <= 0 disables them.
        wifi_only:               Refuse to sync without a Wi-Fi link.
        minimum_battery_level:   Refuse to sync below this charge (0.0–1.0).
        background_sync_enabled: Allow the automatic sync timer to run.
    """

    max_batch_size: int = 100
    sync_interval: float = 3600.0
    wifi_only: bool = False
    minimum_battery_level: float = 0.2
    background_sync_enabled: bool = True

    def __post_init__(self) -> None:
        if self.max_batch_size < 1:
            raise ValueError(f"max_batch_size must be >= 1, got {self.max_batch_size}")
        if not 0.0 <= self.minimum_battery_level <= 1.0:
            raise ValueError(
                f"minimum_battery_level must be between 0 and 1, got {self.minimum_battery_level}"
            )

    @classmethod
    def default(cls) -> "SyncConfiguration":
        return cls(
            max_batch_size=100,
            sync_interval=3600,
            wifi_only=False,
            minimum_battery_level=0.2,
            background_sync_enabled=True,
        )

    @classmethod
    def conservative(cls) -> "SyncConfiguration":
        """Small batches, Wi-Fi only, no background timer."""
        return cls(
            max_batch_size=50,
            sync_interval=7200,
            wifi_only=True,
            minimum_battery_level=0.3,
            background_sync_enabled=False,
        )

    @classmethod
    def aggressive(cls) -> "SyncConfiguration":
        return cls(
            max_batch_size=200,
            sync_interval=900,
            wifi_only=False,
            minimum_battery_level=0.1,
            background_sync_enabled=True,
        )


# Built-in presets; healthsync.yaml may override their fields or add new ones
SYNC_PRESETS = {
    "default": SyncConfiguration.default,
    "conservative": SyncConfiguration.conservative,
    "aggressive": SyncConfiguration.aggressive,
}
