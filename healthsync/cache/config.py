"""Cache configuration presets and battery-aware selection."""

from __future__ import annotations

import logging
from dataclasses import dataclass

logger = logging.getLogger("healthsync.cache.config")

# Battery thresholds (fraction of full charge) for preset selection
LOW_BATTERY_THRESHOLD = 0.2
HIGH_BATTERY_THRESHOLD = 0.5


@dataclass(frozen=True)
class CacheConfiguration:
    """Immutable cache tuning.

    Attributes:
        cache_duration:    Seconds before a cached entry is considered stale.
        throttle_interval: Minimum seconds between fetches of one metric type.
        max_cache_size:    Maximum entries kept per metric type.
        persist_to_disk:   Mirror cache writes to the persistence adapter.
    """

    cache_duration: float = 300.0
    throttle_interval: float = 60.0
    max_cache_size: int = 1000
    persist_to_disk: bool = True

    def __post_init__(self) -> None:
        if self.cache_duration < 0:
            raise ValueError(f"cache_duration must be >= 0, got {self.cache_duration}")
        if self.throttle_interval < 0:
            raise ValueError(f"throttle_interval must be >= 0, got {self.throttle_interval}")
        if self.max_cache_size < 1:
            raise ValueError(f"max_cache_size must be >= 1, got {self.max_cache_size}")

    @classmethod
    def default(cls) -> "CacheConfiguration":
        return cls(cache_duration=300, throttle_interval=60, max_cache_size=1000, persist_to_disk=True)

    @classmethod
    def aggressive(cls) -> "CacheConfiguration":
        """Long-lived cache, infrequent fetches. Used when the battery is low."""
        return cls(cache_duration=900, throttle_interval=180, max_cache_size=500, persist_to_disk=True)

    @classmethod
    def realtime(cls) -> "CacheConfiguration":
        """Short-lived in-memory cache for a well-charged device."""
        return cls(cache_duration=30, throttle_interval=10, max_cache_size=2000, persist_to_disk=False)


# Built-in presets; healthsync.yaml may override their fields or add new ones
CACHE_PRESETS = {
    "default": CacheConfiguration.default,
    "aggressive": CacheConfiguration.aggressive,
    "realtime": CacheConfiguration.realtime,
}


def recommended_configuration(battery_level: float, low_power_mode: bool) -> CacheConfiguration:
    """Pick a preset from the device power state.

    Low-power mode or a battery under 20% favours fewer fetches; above 50%
    the realtime preset is affordable.

    Args:
        battery_level:  Charge as a fraction between 0.0 and 1.0.
        low_power_mode: Whether the OS low-power mode is on.

    Returns:
        The recommended CacheConfiguration.
    """
    if low_power_mode or battery_level < LOW_BATTERY_THRESHOLD:
        return CacheConfiguration.aggressive()
    if battery_level > HIGH_BATTERY_THRESHOLD:
        return CacheConfiguration.realtime()
    return CacheConfiguration.default()
