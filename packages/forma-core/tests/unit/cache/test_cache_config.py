"""Unit tests for cache configuration."""

from __future__ import annotations

from pathlib import Path

from pydantic import ValidationError
import pytest

from forma_core.cache.config import CACHE_DIR_ENV_VAR, CacheSettings, create_cache, get_cache_dir
from forma_core.cache.core import DEFAULT_CACHE_DIR, DiskCache


class TestGetCacheDir:
    """Tests for the FORMA_CACHE_DIR fallback."""

    def test_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv(CACHE_DIR_ENV_VAR, raising=False)
        assert get_cache_dir() == Path(DEFAULT_CACHE_DIR)

    def test_env_var(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setenv(CACHE_DIR_ENV_VAR, str(tmp_path))
        assert get_cache_dir() == tmp_path
        assert CacheSettings().cache_dir == tmp_path


class TestCacheSettings:
    """Tests for CacheSettings validation."""

    def test_defaults(self) -> None:
        settings = CacheSettings()
        assert settings.max_size == 1000
        assert settings.ttl_seconds == 3600.0
        assert settings.disk_enabled is True

    def test_rejects_zero_size(self) -> None:
        with pytest.raises(ValidationError):
            CacheSettings(max_size=0)

    def test_rejects_unknown_field(self) -> None:
        with pytest.raises(ValidationError):
            CacheSettings(parallel=True)  # type: ignore[call-arg]


class TestCreateCache:
    """Tests for create_cache."""

    def test_memory_only(self) -> None:
        cache = create_cache(CacheSettings(max_size=3, disk_enabled=False))
        assert cache.disk is None
        assert cache.memory.max_size == 3

    def test_with_disk(self, tmp_path: Path) -> None:
        cache = create_cache(CacheSettings(cache_dir=tmp_path, ttl_seconds=None))
        assert isinstance(cache.disk, DiskCache)
        assert cache.disk.cache_dir == tmp_path
        assert cache.disk.ttl_seconds is None

    def test_shared_clock(self, tmp_path: Path) -> None:
        now = [0.0]
        cache = create_cache(
            CacheSettings(cache_dir=tmp_path, ttl_seconds=5),
            clock=lambda: now[0],
        )
        cache.put("k", "v")
        now[0] = 10.0
        assert cache.get("k") is None
