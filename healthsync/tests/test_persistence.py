"""Tests for the JSON-file cache mirror."""

from __future__ import annotations

from pathlib import Path

import pytest

from healthsync.cache.persistence import DiskPersistence, default_cache_dir


@pytest.fixture
def persistence(tmp_path: Path) -> DiskPersistence:
    return DiskPersistence(tmp_path / "cache")


class TestDiskPersistence:
    def test_creates_directory(self, persistence: DiskPersistence) -> None:
        assert persistence.cache_dir.is_dir()

    def test_write_read(self, persistence: DiskPersistence) -> None:
        persistence.write("steps", {"values": [1, 2]})
        assert (persistence.cache_dir / "steps.json").exists()
        assert persistence.read("steps") == {"values": [1, 2]}

    def test_overwrite(self, persistence: DiskPersistence) -> None:
        persistence.write("steps", {"v": 1})
        persistence.write("steps", {"v": 2})
        assert persistence.read("steps") == {"v": 2}
        assert persistence.keys() == ["steps"]

    def test_missing_key(self, persistence: DiskPersistence) -> None:
        assert persistence.read("sleep") is None

    def test_corrupt_file_reads_as_missing(self, persistence: DiskPersistence) -> None:
        (persistence.cache_dir / "sleep.json").write_text("{oops")
        assert persistence.read("sleep") is None

    def test_clear_one_and_all(self, persistence: DiskPersistence) -> None:
        for key in ("steps", "sleep", "aggregated_daily"):
            persistence.write(key, {})
        persistence.clear("steps")
        persistence.clear("not-there")
        assert persistence.keys() == ["aggregated_daily", "sleep"]
        persistence.clear()
        assert persistence.keys() == []

    def test_unserialisable_payload_raises(self, persistence: DiskPersistence) -> None:
        with pytest.raises(TypeError):
            persistence.write("steps", {"bad": object()})


def test_default_cache_dir_from_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("HEALTHSYNC_CACHE_DIR", str(tmp_path))
    assert default_cache_dir() == tmp_path


@pytest.mark.parametrize("key", ["", ".", "..", "../outside", "a/b", "a\\b", "nul\x00"])
def test_unsafe_keys_rejected(persistence: DiskPersistence, key: str) -> None:
    with pytest.raises(ValueError, match="Invalid cache key"):
        persistence.write(key, {"v": 1})
    with pytest.raises(ValueError):
        persistence.read(key)
    assert list(persistence.cache_dir.parent.rglob("*.json")) == []
