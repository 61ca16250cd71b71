"""Device power and network state used by the sync resource gate."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

import psutil

logger = logging.getLogger("healthsync.sync.conditions")

# Interface name prefixes that identify a Wi-Fi link
_WIFI_PREFIXES = ("wl", "wlan", "wifi", "en0", "ath", "ra")


class DeviceConditions(Protocol):
    """Read-only view of the device's battery and connectivity."""

    def battery_level(self) -> float | None:
        """Charge as a fraction in [0, 1], or None when unknown."""
        ...

    def is_low_power_mode(self) -> bool: ...

    def is_on_wifi(self) -> bool: ...


@dataclass(frozen=True)
class StaticDeviceConditions:
    """Fixed conditions, for headless hosts and tests."""

    battery: float | None = None
    low_power_mode: bool = False
    wifi: bool = True

    def battery_level(self) -> float | None:
        return self.battery

    def is_low_power_mode(self) -> bool:
        return self.low_power_mode

    def is_on_wifi(self) -> bool:
        return self.wifi


class SystemDeviceConditions:
    """Live conditions from the host via psutil.

    Hosts without a battery report ``None`` (unknown), which never trips the
    battery gate.  A machine on battery with less than the low-power
    threshold is treated as being in low-power mode.
    """

    def __init__(self, low_power_threshold: float = 0.2) -> None:
        self._low_power_threshold = low_power_threshold

    def battery_level(self) -> float | None:
        try:
            battery = psutil.sensors_battery()
        except (AttributeError, NotImplementedError, OSError) as exc:
            logger.debug("Battery sensor unavailable: %s", exc)
            return None
        if battery is None:
            return None
        return max(0.0, min(1.0, battery.percent / 100.0))

    def is_low_power_mode(self) -> bool:
        try:
            battery = psutil.sensors_battery()
        except (AttributeError, NotImplementedError, OSError):
            return False
        if battery is None or battery.power_plugged:
            return False
        return battery.percent / 100.0 < self._low_power_threshold

    def is_on_wifi(self) -> bool:
        try:
            stats = psutil.net_if_stats()
        except OSError as exc:
            logger.warning("Could not read network interfaces: %s", exc)
            return False
        return any(
            st.isup and name.lower().startswith(_WIFI_PREFIXES)
            for name, st in stats.items()
        )
