"""Multi-layer cache for compiled artifacts.

This module provides:
- content_hash: Stable SHA-256 over JSON-compatible data
- BaseCache: The get/put/invalidate/clear/stats contract
- MemoryCache: Bounded LRU with lazy TTL expiry
- DiskCache: Sharded JSON files with the same TTL semantics, never raising
- LayeredCache: Memory in front of disk, promoting disk hits

A cache miss is reported as ``None``; ``None`` itself is therefore not a
cacheable value.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import OrderedDict
from collections.abc import Callable
import hashlib
import json
import os
from pathlib import Path
import tempfile
import threading
import time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field
import structlog

logger = structlog.get_logger(__name__)

# Default maximum number of entries held in memory
DEFAULT_MAX_SIZE = 1000

# Default time-to-live in seconds (one hour)
DEFAULT_TTL_SECONDS = 3600.0

# Default disk cache directory
DEFAULT_CACHE_DIR = ".forma-cache"

Clock = Callable[[], float]


def _json_default(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, set | frozenset):
        return sorted(value, key=str)
    if isinstance(value, Path):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not hashable content")


def content_hash(value: Any) -> str:
    """Compute a stable SHA-256 hex digest of JSON-compatible data.

    Mappings are hashed with sorted keys, so two equal dicts built in a
    different insertion order hash identically.

    Args:
        value: Data to hash. Pydantic models, sets and paths are accepted.

    Returns:
        64-character hex digest.

    Example:
        >>> content_hash({"b": 1, "a": 2}) == content_hash({"a": 2, "b": 1})
        True
    """
    payload = json.dumps(value, sort_keys=True, separators=(",", ":"), default=_json_default)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class CacheEntry(BaseModel):
    """A cached value with its write time.

    Attributes:
        key: Cache key.
        value: Cached value.
        timestamp: Wall-clock seconds when the value was stored.
        ttl: Time-to-live in seconds, or None for no expiry.
    """

    model_config = ConfigDict(frozen=True)

    key: str
    value: Any
    timestamp: float
    ttl: float | None = None

    def expired(self, now: float) -> bool:
        """Return True if the entry's TTL has elapsed at ``now``."""
        return self.ttl is not None and now - self.timestamp > self.ttl


class CacheStats(BaseModel):
    """Counters reported by a cache layer.

    Attributes:
        size: Entries currently stored.
        max_size: Capacity, or None when unbounded.
        hits: Successful lookups.
        misses: Failed lookups (including expired and unreadable entries).
        puts: Stored values.
        evictions: Entries evicted by LRU capacity.
        invalidations: Entries removed by explicit invalidation.
        clears: Calls to clear().
        expirations: Entries dropped because their TTL elapsed.
        errors: Swallowed I/O or decode failures.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    size: int = Field(default=0, ge=0)
    max_size: int | None = Field(default=None)
    hits: int = Field(default=0, ge=0)
    misses: int = Field(default=0, ge=0)
    puts: int = Field(default=0, ge=0)
    evictions: int = Field(default=0, ge=0)
    invalidations: int = Field(default=0, ge=0)
    clears: int = Field(default=0, ge=0)
    expirations: int = Field(default=0, ge=0)
    errors: int = Field(default=0, ge=0)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def hit_rate(self) -> float:
        """Fraction of lookups that were hits (0.0 when nothing was looked up)."""
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class BaseCache(ABC):
    """Contract shared by every cache layer."""

    @abstractmethod
    def get(self, key: str) -> Any | None:
        """Return the cached value, or None on a miss."""

    @abstractmethod
    def put(self, key: str, value: Any) -> None:
        """Store a value under ``key``."""

    @abstractmethod
    def invalidate(self, key: str) -> bool:
        """Remove ``key``; return True if an entry was removed."""

    @abstractmethod
    def clear(self) -> int:
        """Remove every entry; return how many were removed."""

    @abstractmethod
    def stats(self) -> CacheStats:
        """Return a snapshot of the layer's counters."""

    def invalidate_many(self, keys: list[str] | set[str]) -> int:
        """Invalidate several keys, returning how many entries were removed."""
        return sum(1 for key in keys if self.invalidate(key))


class MemoryCache(BaseCache):
    """Bounded LRU cache with lazy TTL expiry.

    ``get`` promotes a key to most-recently-used. ``put`` evicts the least
    recently used entry once the size exceeds ``max_size``. Expiry is only
    checked when an entry is read; nothing is swept in the background.

    Args:
        max_size: Maximum number of entries.
        ttl_seconds: Entry lifetime, or None for no expiry.
        clock: Wall-clock source, injectable for tests.

    Example:
        >>> cache = MemoryCache(max_size=2)
        >>> cache.put("k1", "v1")
        >>> cache.get("k1")
        'v1'
    """

    def __init__(
        self,
        max_size: int = DEFAULT_MAX_SIZE,
        ttl_seconds: float | None = DEFAULT_TTL_SECONDS,
        *,
        clock: Clock = time.time,
    ) -> None:
        if max_size < 1:
            raise ValueError(f"max_size must be at least 1, got {max_size}")
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0
        self._puts = 0
        self._evictions = 0
        self._invalidations = 0
        self._clears = 0
        self._expirations = 0

    def __len__(self) -> int:
        return len(self._entries)

    def keys(self) -> list[str]:
        """Return keys from least to most recently used."""
        with self._lock:
            return list(self._entries)

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if entry.expired(self._clock()):
                del self._entries[key]
                self._expirations += 1
                self._misses += 1
                return None
            self._entries.move_to_end(key)
            self._hits += 1
            return entry.value

    def put(self, key: str, value: Any) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(
                key=key,
                value=value,
                timestamp=self._clock(),
                ttl=self.ttl_seconds,
            )
            self._entries.move_to_end(key)
            self._puts += 1
            while len(self._entries) > self.max_size:
                evicted, _ = self._entries.popitem(last=False)
                self._evictions += 1
                logger.debug("cache_evicted", key=evicted)

    def invalidate(self, key: str) -> bool:
        with self._lock:
            if self._entries.pop(key, None) is None:
                return False
            self._invalidations += 1
            return True

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._clears += 1
            return count

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                size=len(self._entries),
                max_size=self.max_size,
                hits=self._hits,
                misses=self._misses,
                puts=self._puts,
                evictions=self._evictions,
                invalidations=self._invalidations,
                clears=self._clears,
                expirations=self._expirations,
            )


class DiskCache(BaseCache):
    """JSON-file cache sharded by hash prefix.

    Each key is stored at ``<cache_dir>/<sha[:2]>/<sha>.json``, where ``sha``
    is the content hash of the key. Values must be JSON-serializable. Any
    I/O or decode failure is logged, counted in ``stats().errors`` and
    reported as a miss; no method raises for storage problems.

    Args:
        cache_dir: Root directory (created lazily).
        ttl_seconds: Entry lifetime, or None for no expiry.
        clock: Wall-clock source, injectable for tests.
    """

    def __init__(
        self,
        cache_dir: Path | str = DEFAULT_CACHE_DIR,
        ttl_seconds: float | None = DEFAULT_TTL_SECONDS,
        *,
        clock: Clock = time.time,
    ) -> None:
        self.cache_dir = Path(cache_dir)
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0
        self._puts = 0
        self._invalidations = 0
        self._clears = 0
        self._expirations = 0
        self._errors = 0

    def path_for(self, key: str) -> Path:
        """Return the file that stores ``key``."""
        digest = content_hash(key)
        return self.cache_dir / digest[:2] / f"{digest}.json"

    def _record_error(self, operation: str, key: str | None, error: Exception) -> None:
        self._errors += 1
        logger.warning(
            "disk_cache_error",
            operation=operation,
            key=key,
            error=str(error),
            error_type=type(error).__name__,
        )

    def get(self, key: str) -> Any | None:
        path = self.path_for(key)
        with self._lock:
            try:
                if not path.exists():
                    self._misses += 1
                    return None
                entry = json.loads(path.read_text(encoding="utf-8"))
                timestamp = float(entry["timestamp"])
                value = entry["value"]
            except (OSError, ValueError, KeyError, TypeError) as e:
                self._record_error("get", key, e)
                self._misses += 1
                return None

            if self.ttl_seconds is not None and self._clock() - timestamp > self.ttl_seconds:
                try:
                    path.unlink(missing_ok=True)
                except OSError as e:
                    self._record_error("expire", key, e)
                self._expirations += 1
                self._misses += 1
                return None

            self._hits += 1
            return value

    def put(self, key: str, value: Any) -> None:
        path = self.path_for(key)
        entry = {"key": key, "value": value, "timestamp": self._clock()}
        with self._lock:
            tmp_name: str | None = None
            try:
                payload = json.dumps(entry)
                path.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                os.replace(tmp_name, path)
            except (OSError, TypeError, ValueError) as e:
                self._record_error("put", key, e)
                if tmp_name is not None:
                    Path(tmp_name).unlink(missing_ok=True)
                return
            self._puts += 1

    def invalidate(self, key: str) -> bool:
        path = self.path_for(key)
        with self._lock:
            try:
                if not path.exists():
                    return False
                path.unlink()
            except OSError as e:
                self._record_error("invalidate", key, e)
                return False
            self._invalidations += 1
            return True

    def _files(self) -> list[Path]:
        if not self.cache_dir.is_dir():
            return []
        return list(self.cache_dir.glob("*/*.json"))

    def clear(self) -> int:
        count = 0
        with self._lock:
            try:
                files = self._files()
            except OSError as e:
                self._record_error("clear", None, e)
                files = []
            for path in files:
                try:
                    path.unlink()
                except OSError as e:
                    self._record_error("clear", None, e)
                    continue
                count += 1
            self._clears += 1
        return count

    def stats(self) -> CacheStats:
        with self._lock:
            try:
                size = len(self._files())
            except OSError as e:
                self._record_error("stats", None, e)
                size = 0
            return CacheStats(
                size=size,
                hits=self._hits,
                misses=self._misses,
                puts=self._puts,
                invalidations=self._invalidations,
                clears=self._clears,
                expirations=self._expirations,
                errors=self._errors,
            )


class LayeredCache(BaseCache):
    """Memory cache in front of an optional disk cache.

    ``get`` tries memory first, then disk; a disk hit is copied back into
    memory. ``put``, ``invalidate`` and ``clear`` apply to both layers.

    Args:
        memory: Front layer.
        disk: Back layer, or None for memory only.

    Example:
        >>> cache = LayeredCache(MemoryCache(), DiskCache(tmp_path))
        >>> cache.put("k", {"a": 1})
        >>> cache.get("k")
        {'a': 1}
    """

    def __init__(self, memory: MemoryCache, disk: DiskCache | None = None) -> None:
        self.memory = memory
        self.disk = disk

    def get(self, key: str) -> Any | None:
        value = self.memory.get(key)
        if value is not None or self.disk is None:
            return value
        value = self.disk.get(key)
        if value is not None:
            self.memory.put(key, value)
        return value

    def put(self, key: str, value: Any) -> None:
        self.memory.put(key, value)
        if self.disk is not None:
            self.disk.put(key, value)

    def invalidate(self, key: str) -> bool:
        removed = self.memory.invalidate(key)
        if self.disk is not None:
            removed = self.disk.invalidate(key) or removed
        return removed

    def clear(self) -> int:
        count = self.memory.clear()
        if self.disk is not None:
            count = max(count, self.disk.clear())
        return count

    def stats(self) -> CacheStats:
        """Aggregate counters: hits from either layer, misses from the last layer tried."""
        mem = self.memory.stats()
        if self.disk is None:
            return mem
        disk = self.disk.stats()
        return CacheStats(
            size=mem.size,
            max_size=mem.max_size,
            hits=mem.hits + disk.hits,
            misses=disk.misses,
            puts=mem.puts,
            evictions=mem.evictions,
            invalidations=mem.invalidations,
            clears=mem.clears,
            expirations=mem.expirations + disk.expirations,
            errors=disk.errors,
        )

    def layer_stats(self) -> dict[str, CacheStats | None]:
        """Return per-layer counters keyed by "memory" and "disk"."""
        return {
            "memory": self.memory.stats(),
            "disk": self.disk.stats() if self.disk is not None else None,
        }
