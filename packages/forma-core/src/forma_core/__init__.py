"""forma-core: Data-driven element compiler for forma.

This package provides:
- Compiler / CachedCompiler: Compile element trees through a platform stack
- PlatformResolver: Resolve declarative YAML platform rule-sets
- MemoryCache / DiskCache / LayeredCache: Multi-layer compilation cache
- DependencyGraph / Invalidator / IncrementalBuilder: Incremental builds
- Pydantic schemas for elements, compiled tags, platforms and contexts
"""

from __future__ import annotations

__version__ = "0.1.0"

# Incremental builds
from forma_core.build import (
    ALL,
    BuildPlan,
    BuildResult,
    DependencyGraph,
    IncrementalBuilder,
    InvalidationStrategy,
    Invalidator,
)

# Caching
from forma_core.cache import (
    CacheSettings,
    DiskCache,
    LayeredCache,
    MemoryCache,
    create_cache,
)

# Compiler
from forma_core.compiler import (
    CachedCompiler,
    Compiler,
    PlatformResolver,
    RenderedFile,
    to_html,
    to_html_string,
)

# Error types
from forma_core.errors import (
    CircularDependencyError,
    ConfigurationError,
    ExtensionCycleError,
    FormaError,
    InvalidationError,
    PlatformNotFoundError,
)

# Schema models
from forma_core.schemas import (
    CompileContext,
    Element,
    ElementContract,
    PlatformConfig,
    Tag,
)

__all__ = [
    "__version__",
    # Compiler
    "CachedCompiler",
    "Compiler",
    "PlatformResolver",
    "RenderedFile",
    "to_html",
    "to_html_string",
    # Schemas
    "CompileContext",
    "Element",
    "ElementContract",
    "PlatformConfig",
    "Tag",
    # Cache
    "CacheSettings",
    "DiskCache",
    "LayeredCache",
    "MemoryCache",
    "create_cache",
    # Build
    "ALL",
    "BuildPlan",
    "BuildResult",
    "DependencyGraph",
    "IncrementalBuilder",
    "InvalidationStrategy",
    "Invalidator",
    # Errors
    "CircularDependencyError",
    "ConfigurationError",
    "ExtensionCycleError",
    "FormaError",
    "InvalidationError",
    "PlatformNotFoundError",
]
