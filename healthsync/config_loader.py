"""Load and validate the healthsync presets file.

Built-in presets are defined in ``healthsync.cache.config`` and
``healthsync.sync.config``; ``healthsync.yaml`` alongside this module sets the
sync defaults and may override preset fields or add presets.  The loader
returns an immutable ``HealthSyncConfig`` that callers pass explicitly into
``CacheService`` and ``SyncEngine``; nothing is cached globally, so tests and
alternative environments simply load a different file.

Usage::

    from healthsync.config_loader import load_sync_config

    config = load_sync_config(cache_preset="aggressive")
    cache = CacheService(config.cache)
    config.sync.max_batch_size          # 100
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Callable

import yaml

from healthsync.cache.config import CACHE_PRESETS, CacheConfiguration
from healthsync.metrics import MetricType
from healthsync.sync.config import SYNC_PRESETS, SyncConfiguration

logger = logging.getLogger("healthsync.config_loader")

# Path to the YAML file sitting next to this module
_CONFIG_PATH = Path(__file__).parent / "healthsync.yaml"

_CACHE_KEYS = ("cache_duration", "throttle_interval", "max_cache_size", "persist_to_disk")
_SYNC_KEYS = (
    "max_batch_size",
    "sync_interval",
    "wifi_only",
    "minimum_battery_level",
    "background_sync_enabled",
)


@dataclass(frozen=True)
class HealthSyncConfig:
    """Validated presets file with the selected presets resolved.

    Attributes:
        version:                 Config schema version string.
        cache:                   Selected cache preset.
        sync:                    Selected sync preset.
        default_lookback_days:   Window of a metric type's first sync.
        on_demand_lookback_days: Window of an on-demand metric sync.
        tracked_metrics:         Metric types synced by ``sync_now``, in order.
        cache_presets:           Every cache preset by name.
        sync_presets:            Every sync preset by name.
    """

    version: str
    cache: CacheConfiguration
    sync: SyncConfiguration
    default_lookback_days: int
    on_demand_lookback_days: int
    tracked_metrics: tuple[MetricType, ...]
    cache_presets: dict[str, CacheConfiguration]
    sync_presets: dict[str, SyncConfiguration]


class ConfigValidationError(ValueError):
    """Raised when healthsync.yaml fails validation."""


def _load_yaml(path: Path) -> dict:
    """Read and parse a YAML file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigValidationError: If the YAML is malformed.
    """
    if not path.exists():
        raise FileNotFoundError(f"healthsync config not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            raw = yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"YAML parse error in {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigValidationError(f"{path} must contain a mapping at the top level")
    return raw


def _build_presets(
    raw: Any,
    section: str,
    keys: tuple[str, ...],
    builtins: dict[str, Callable[[], Any]],
    errors: list[str],
) -> dict[str, Any]:
    """Start from the built-in presets and apply the YAML overrides.

    A YAML entry naming a built-in preset replaces only the fields it lists;
    any other name defines a new preset on top of the ``default`` preset.
    """
    presets = {name: make() for name, make in builtins.items()}
    if raw is None:
        return presets
    if not isinstance(raw, dict):
        errors.append(f"'{section}' must be a mapping of preset names")
        return presets

    for name, values in raw.items():
        values = values or {}
        if not isinstance(values, dict):
            errors.append(f"{section}.{name} must be a mapping")
            continue
        unknown = set(values) - set(keys)
        if unknown:
            errors.append(f"{section}.{name} has unknown keys: {sorted(unknown)}")
            continue
        base = presets.get(name, presets["default"])
        try:
            presets[name] = replace(base, **values)
        except (TypeError, ValueError) as exc:
            errors.append(f"{section}.{name}: {exc}")
    return presets


def _validate_and_build(raw: dict, cache_preset: str, sync_preset: str) -> HealthSyncConfig:
    """Validate the raw YAML dict and construct a HealthSyncConfig.

    Raises:
        ConfigValidationError: If any section is missing or invalid, or a
            selected preset does not exist.
    """
    errors: list[str] = []

    # ── Presets ──
    cache_presets = _build_presets(
        raw.get("cache_presets"), "cache_presets", _CACHE_KEYS, CACHE_PRESETS, errors
    )
    sync_presets = _build_presets(
        raw.get("sync_presets"), "sync_presets", _SYNC_KEYS, SYNC_PRESETS, errors
    )
    if cache_preset not in cache_presets:
        errors.append(f"Unknown cache preset '{cache_preset}'. Available: {list(cache_presets)}")
    if sync_preset not in sync_presets:
        errors.append(f"Unknown sync preset '{sync_preset}'. Available: {list(sync_presets)}")

    # ── Sync defaults ──
    sync_raw = raw.get("sync") or {}
    lookbacks: dict[str, int] = {}
    for key, fallback in (("default_lookback_days", 7), ("on_demand_lookback_days", 1)):
        value = sync_raw.get(key, fallback)
        try:
            lookbacks[key] = int(value)
        except (TypeError, ValueError):
            errors.append(f"sync.{key} must be an integer, got {value!r}")
            continue
        if lookbacks[key] < 1:
            errors.append(f"sync.{key} must be >= 1, got {lookbacks[key]}")

    tracked: list[MetricType] = []
    for value in sync_raw.get("tracked_metrics") or []:
        try:
            tracked.append(MetricType(value))
        except ValueError:
            errors.append(f"sync.tracked_metrics: unknown metric type {value!r}")
    if not tracked and not any("tracked_metrics" in e for e in errors):
        errors.append("sync.tracked_metrics is missing or empty")

    if errors:
        raise ConfigValidationError(
            f"healthsync.yaml has {len(errors)} validation error(s):\n"
            + "\n".join(f"  • {e}" for e in errors)
        )

    return HealthSyncConfig(
        version=str(raw.get("version", "1.0")),
        cache=cache_presets[cache_preset],
        sync=sync_presets[sync_preset],
        default_lookback_days=lookbacks["default_lookback_days"],
        on_demand_lookback_days=lookbacks["on_demand_lookback_days"],
        tracked_metrics=tuple(tracked),
        cache_presets=cache_presets,
        sync_presets=sync_presets,
    )


def load_sync_config(
    path: Path | str | None = None,
    cache_preset: str = "default",
    sync_preset: str = "default",
) -> HealthSyncConfig:
    """Load and validate the presets file.

    Args:
        path:         Override path to YAML. Uses the bundled healthsync.yaml by default.
        cache_preset: Name of the cache preset to select.
        sync_preset:  Name of the sync preset to select.

    Returns:
        Validated HealthSyncConfig instance.
    """
    target = Path(path) if path else _CONFIG_PATH
    raw = _load_yaml(target)
    config = _validate_and_build(raw, cache_preset, sync_preset)
    logger.info(
        "Loaded healthsync config v%s from %s (cache=%s, sync=%s)",
        config.version, target, cache_preset, sync_preset,
    )
    return config
