"""Platform configuration resolver for forma-core.

This module loads named platform rule-sets and resolves their extension chains:
- PlatformResolver: Load, merge and memoize platform configs
- Three-tier file discovery (project, library, default) plus built-in platforms
- Environment variable fallback for the project context (FORMA_PROJECT)
- deep_merge: The merge used to fold a base platform under an extending one
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
import logging
import os
from pathlib import Path
from typing import Any

from forma_core.build.graph import DependencyGraph, file_node_id
from forma_core.cache.core import MemoryCache
from forma_core.errors import ExtensionCycleError, PlatformNotFoundError
from forma_core.schemas.platform_config import PlatformConfig, load_platform_document

logger = logging.getLogger(__name__)

# Environment variable for the default project context
PROJECT_ENV_VAR = "FORMA_PROJECT"

# Directory holding platform documents inside each tier
PLATFORM_DIR = "platforms"

# Accepted platform document suffixes, in lookup order
PLATFORM_SUFFIXES = (".yaml", ".yml")

# Platforms shipped with forma-core, consulted after the three tiers
BUILTIN_PLATFORM_DIR = Path(__file__).resolve().parent.parent / PLATFORM_DIR

# Bound on memoized (name, project) resolutions
DEFAULT_CONFIG_CACHE_SIZE = 256


def get_project_name() -> str | None:
    """Get the project context from the FORMA_PROJECT environment variable."""
    return os.environ.get(PROJECT_ENV_VAR) or None


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Merge ``override`` onto ``base``.

    Two mappings merge key by key, recursively; for any other pair of values
    the ``override`` side wins. Neither input is modified.

    Example:
        >>> deep_merge({"a": {"x": 1, "y": 2}, "b": [1]}, {"a": {"y": 3}, "b": [2]})
        {'a': {'x': 1, 'y': 3}, 'b': [2]}
    """
    merged: dict[str, Any] = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


class PlatformResolver:
    """Resolves named platforms into fully merged PlatformConfigs.

    Documents come from, in order: documents registered in memory, then
    ``<root>/projects/<project>/platforms/``, ``<root>/library/platforms/``,
    ``<root>/default/platforms/`` and finally the built-in platforms.
    Resolutions are memoized per ``(name, project)`` in a bounded cache.

    Attributes:
        root: Base directory of the three tiers.
        project: Default project context.
        graph: Optional dependency graph that records loaded platform files.

    Example:
        >>> resolver = PlatformResolver(Path("site"), project="dashboard")
        >>> css = resolver.resolve("css")
        >>> css.extends
        'html'

        >>> resolver.register({"name": "email", "extends": "html"})
        >>> [c.name for c in resolver.resolve_stack(["html", "email"])]
        ['html', 'email']
    """

    def __init__(
        self,
        root: Path | str | None = None,
        *,
        project: str | None = None,
        graph: DependencyGraph | None = None,
        include_builtin: bool = True,
        cache_size: int = DEFAULT_CONFIG_CACHE_SIZE,
    ) -> None:
        """Initialize the PlatformResolver.

        Args:
            root: Base directory of the tiers. Defaults to the working directory.
            project: Project context. If None, reads FORMA_PROJECT.
            graph: Dependency graph to record platform files and extends edges in.
            include_builtin: Whether the built-in platforms are the last tier.
            cache_size: Maximum number of memoized resolutions.
        """
        self.root = Path(root) if root is not None else Path()
        self.project = project if project is not None else get_project_name()
        self.graph = graph
        self.include_builtin = include_builtin
        self._documents: dict[str, dict[str, Any]] = {}
        self._cache = MemoryCache(max_size=cache_size, ttl_seconds=None)
        self._sources: dict[str, tuple[Path, ...]] = {}

    def register(self, document: Mapping[str, Any], name: str | None = None) -> None:
        """Register an in-memory platform document.

        Registered documents take precedence over files of the same name.

        Raises:
            ValueError: If no name is given and the document has none.
        """
        platform = name or document.get("name")
        if not platform:
            raise ValueError("Platform document requires a name")
        self._documents[str(platform)] = {**document, "name": platform}
        self.clear_cache()

    def tier_dirs(self, project: str | None = None) -> list[Path]:
        """Directories searched for platform documents, in resolution order."""
        dirs: list[Path] = []
        if project:
            dirs.append(self.root / "projects" / project / PLATFORM_DIR)
        dirs.append(self.root / "library" / PLATFORM_DIR)
        dirs.append(self.root / "default" / PLATFORM_DIR)
        if self.include_builtin:
            dirs.append(BUILTIN_PLATFORM_DIR)
        return dirs

    def find(self, name: str, project: str | None = None) -> Path:
        """Find the platform document for ``name``.

        Raises:
            PlatformNotFoundError: If no tier has a document for ``name``.
        """
        searched: list[str] = []
        for directory in self.tier_dirs(project):
            for suffix in PLATFORM_SUFFIXES:
                candidate = directory / f"{name}{suffix}"
                if candidate.is_file():
                    logger.debug("Found platform '%s' at %s", name, candidate)
                    return candidate
                searched.append(str(candidate))
        raise PlatformNotFoundError(name, searched)

    def discover(self, project: str | None = None) -> list[str]:
        """Names of every platform visible to ``project``."""
        project = project if project is not None else self.project
        names = set(self._documents)
        for directory in self.tier_dirs(project):
            if not directory.is_dir():
                continue
            for suffix in PLATFORM_SUFFIXES:
                names.update(p.stem for p in directory.glob(f"*{suffix}"))
        return sorted(names)

    def _load(
        self,
        name: str,
        project: str | None,
        sources: list[Path],
    ) -> tuple[dict[str, Any], Path | None]:
        if name in self._documents:
            return dict(self._documents[name]), None
        path = self.find(name, project)
        document = load_platform_document(path)
        document.setdefault("name", name)
        sources.append(path)
        if self.graph is not None:
            self.graph.track_file(path, {"platform": name})
        return document, path

    def _resolve_document(
        self,
        name: str,
        project: str | None,
        chain: tuple[str, ...],
        sources: list[Path],
    ) -> tuple[dict[str, Any], Path | None]:
        if name in chain:
            raise ExtensionCycleError([*chain, name])
        document, path = self._load(name, project, sources)
        parent = document.get("extends")
        if not parent:
            return document, path

        base, base_path = self._resolve_document(str(parent), project, (*chain, name), sources)
        if self.graph is not None and path is not None and base_path is not None:
            self.graph.add_edge(file_node_id(path), file_node_id(base_path))
        logger.debug("Platform '%s' extends '%s'", name, parent)
        return deep_merge(base, document), path

    def resolve(self, name: str, project: str | None = None) -> PlatformConfig:
        """Resolve ``name`` into a fully merged PlatformConfig.

        Args:
            name: Platform name.
            project: Project context; defaults to the resolver's project.

        Returns:
            Validated, merged PlatformConfig.

        Raises:
            PlatformNotFoundError: If the platform or a base cannot be found.
            ExtensionCycleError: If the extends chain revisits a platform.
            ConfigurationError: If a document is malformed.
        """
        project = project if project is not None else self.project
        key = f"{project or ''}\x00{name}"
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        sources: list[Path] = []
        document, path = self._resolve_document(name, project, (), sources)
        config = PlatformConfig.from_document(document, source=str(path) if path else name)
        self._cache.put(key, config)
        self._sources[key] = tuple(sources)
        logger.info("Resolved platform '%s' (project=%s)", name, project)
        return config

    def resolve_stack(
        self,
        names: Iterable[str],
        project: str | None = None,
    ) -> list[PlatformConfig]:
        """Resolve every platform of a stack, keeping the caller's order."""
        return [self.resolve(name, project) for name in names]

    def source_paths(self, name: str, project: str | None = None) -> tuple[Path, ...]:
        """Files read to resolve ``name``, the platform itself first, then its bases.

        In-memory documents contribute no path.
        """
        project = project if project is not None else self.project
        self.resolve(name, project)
        return self._sources.get(f"{project or ''}\x00{name}", ())

    def clear_cache(self) -> None:
        """Forget memoized resolutions."""
        self._cache.clear()
        self._sources.clear()
