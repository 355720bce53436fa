"""Caching for forma-core.

This package provides:
- MemoryCache / DiskCache / LayeredCache: cache layers
- CacheSettings / create_cache: configuration
- Key helpers for elements, tokens, files and graph nodes
"""

from __future__ import annotations

from forma_core.cache.config import CacheSettings, create_cache
from forma_core.cache.core import (
    BaseCache,
    CacheEntry,
    CacheStats,
    DiskCache,
    LayeredCache,
    MemoryCache,
    content_hash,
)
from forma_core.cache.keys import (
    compiled_key,
    element_cache_key,
    file_cache_key,
    hierarchy_cache_key,
    node_cache_key,
    token_cache_key,
)

__all__ = [
    "BaseCache",
    "CacheEntry",
    "CacheSettings",
    "CacheStats",
    "DiskCache",
    "LayeredCache",
    "MemoryCache",
    "compiled_key",
    "content_hash",
    "create_cache",
    "element_cache_key",
    "file_cache_key",
    "hierarchy_cache_key",
    "node_cache_key",
    "token_cache_key",
]
