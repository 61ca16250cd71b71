"""Disk mirror for cache contents.

Each key is stored as ``<cache_dir>/<key>.json``. Keys are metric type names
(``heartRate``, ``steps``…) or ``aggregated_<key>`` for aggregates.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger("healthsync.cache.persistence")

# Characters that would let a key name a file outside the cache directory
_UNSAFE_KEY_CHARS = ("/", "\\", "\x00")


def default_cache_dir() -> Path:
    """Return ``~/.healthsync/cache`` or ``$HEALTHSYNC_CACHE_DIR``."""
    return Path(os.environ.get("HEALTHSYNC_CACHE_DIR", Path.home() / ".healthsync" / "cache"))


class PersistenceAdapter(Protocol):
    """Durable key → JSON document store."""

    def write(self, key: str, payload: dict[str, Any]) -> None: ...

    def read(self, key: str) -> dict[str, Any] | None: ...

    def clear(self, key: str | None = None) -> None: ...

    def keys(self) -> list[str]: ...


class DiskPersistence:
    """JSON files in a single directory.

    ``write`` and ``clear`` raise ``OSError`` on filesystem faults; the cache
    service decides whether to absorb them. ``read`` treats a missing or
    corrupt file as not found.
    """

    def __init__(self, cache_dir: Path | None = None) -> None:
        self.cache_dir = Path(cache_dir) if cache_dir else default_cache_dir()
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        """Return the file for ``key``.

        Raises:
            ValueError: If ``key`` is empty or would leave ``cache_dir``.
        """
        if not key or key in (".", "..") or any(sep in key for sep in _UNSAFE_KEY_CHARS):
            raise ValueError(f"Invalid cache key {key!r}")
        return self.cache_dir / f"{key}.json"

    def write(self, key: str, payload: dict[str, Any]) -> None:
        target = self._path(key)
        tmp = target.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        tmp.replace(target)

    def read(self, key: str) -> dict[str, Any] | None:
        cache_file = self._path(key)
        if not cache_file.exists():
            return None
        try:
            return json.loads(cache_file.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            logger.warning("Ignoring corrupt cache file %s: %s", cache_file, exc)
            return None

    def clear(self, key: str | None = None) -> None:
        """Remove one key, or every cached document when ``key`` is None."""
        if key:
            cache_file = self._path(key)
            if cache_file.exists():
                cache_file.unlink()
        else:
            for cache_file in self.cache_dir.glob("*.json"):
                cache_file.unlink()

    def keys(self) -> list[str]:
        return sorted(f.stem for f in self.cache_dir.glob("*.json"))
