"""Cache configuration for forma-core.

Settings are plain pydantic models; the disk directory may also come from
the FORMA_CACHE_DIR environment variable.
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from forma_core.cache.core import (
    DEFAULT_CACHE_DIR,
    DEFAULT_MAX_SIZE,
    DEFAULT_TTL_SECONDS,
    Clock,
    DiskCache,
    LayeredCache,
    MemoryCache,
)

# Environment variable overriding the disk cache directory
CACHE_DIR_ENV_VAR = "FORMA_CACHE_DIR"


def get_cache_dir() -> Path:
    """Get the disk cache directory from the environment.

    Returns:
        Path from FORMA_CACHE_DIR, or ``.forma-cache``.
    """
    return Path(os.environ.get(CACHE_DIR_ENV_VAR, DEFAULT_CACHE_DIR))


class CacheSettings(BaseModel):
    """Cache configuration.

    Attributes:
        max_size: Maximum memory entries.
        ttl_seconds: Entry lifetime in seconds, or None for no expiry.
        disk_enabled: Whether to back the memory cache with a disk cache.
        cache_dir: Disk cache directory.

    Example:
        >>> settings = CacheSettings(max_size=500, disk_enabled=False)
        >>> cache = create_cache(settings)
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_size: int = Field(default=DEFAULT_MAX_SIZE, ge=1, description="Memory entries")
    ttl_seconds: float | None = Field(
        default=DEFAULT_TTL_SECONDS,
        gt=0,
        description="Entry lifetime in seconds",
    )
    disk_enabled: bool = Field(default=True, description="Enable disk layer")
    cache_dir: Path = Field(default_factory=get_cache_dir, description="Disk cache directory")


def create_cache(
    settings: CacheSettings | None = None,
    *,
    clock: Clock | None = None,
) -> LayeredCache:
    """Build a layered cache from settings.

    Args:
        settings: Cache settings; defaults are used when None.
        clock: Optional clock shared by both layers.

    Returns:
        LayeredCache with a disk layer when ``disk_enabled`` is set.
    """
    settings = settings or CacheSettings()
    clock_kwargs = {"clock": clock} if clock is not None else {}
    memory = MemoryCache(settings.max_size, settings.ttl_seconds, **clock_kwargs)
    disk = (
        DiskCache(settings.cache_dir, settings.ttl_seconds, **clock_kwargs)
        if settings.disk_enabled
        else None
    )
    return LayeredCache(memory, disk)
