"""Strategy-dispatched cache invalidation.

This module evicts cache entries for changed artifacts and everything that
depends on them:
- InvalidationStrategy: the registered strategies
- Invalidator: runs a strategy against a cache and a dependency graph
- InvalidationPolicy / apply_policy: declarative watch settings
- invalidation_summary: aggregate several results

Every strategy except ``global`` resolves to a set of node ids, expands it to
all transitive dependents, then evicts each node's namespaced cache entries
(``file-cache:``, ``token-cache:``, ``component-cache:``, ``element-cache:``),
its ``compiled:`` build output and every ``cache_key`` or ``cache_keys`` entry
recorded on the node.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from enum import Enum
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
import structlog

from forma_core.build.graph import (
    ChangeStrategy,
    DependencyGraph,
    DependencyNode,
    component_node_id,
    file_node_id,
    token_node_id,
)
from forma_core.cache.core import BaseCache
from forma_core.cache.keys import NODE_CACHE_PREFIXES, compiled_key, node_cache_key
from forma_core.errors import InvalidationError

logger = structlog.get_logger(__name__)


class InvalidationStrategy(str, Enum):
    """Registered invalidation strategies."""

    CONTENT_HASH = "content-hash"
    TIMESTAMP = "timestamp"
    DEPENDENCY_BASED = "dependency-based"
    PATTERN = "pattern"
    GLOBAL = "global"
    SELECTIVE = "selective"
    BATCH = "batch"


class InvalidationTarget(Enum):
    """Special invalidation targets."""

    ALL = "all"


# Invalidate everything (selects the global strategy)
ALL = InvalidationTarget.ALL

WILDCARD = "*"


class InvalidationResult(BaseModel):
    """Outcome of one invalidation.

    Attributes:
        invalidated: Node ids whose cache entries were evicted.
        strategy: Strategy that ran.
        metadata: Strategy-specific detail (matched files, evicted key count, ...).
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    invalidated: frozenset[str] = Field(default_factory=frozenset)
    strategy: InvalidationStrategy
    metadata: dict[str, Any] = Field(default_factory=dict)


class InvalidationPolicy(BaseModel):
    """When and how watched files are invalidated.

    Attributes:
        strategy: Change comparator for watched files.
        auto_invalidate: Whether apply_policy does anything.
        watch_dirs: Path prefixes of watched files.
        watch_patterns: Glob patterns a watched file must match.
        exclude: Glob patterns that remove a file from the watch.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    strategy: ChangeStrategy = "content-hash"
    auto_invalidate: bool = False
    watch_dirs: tuple[str, ...] = ("default/", "library/", "projects/")
    watch_patterns: tuple[str, ...] = ("*.yaml", "*.yml")
    exclude: tuple[str, ...] = ()


class StrategySummary(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    operations: int
    invalidated: int


class InvalidationSummary(BaseModel):
    """Aggregate of several invalidation results."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    total_operations: int
    total_invalidated: int
    by_strategy: dict[str, StrategySummary]


def _matches(pattern: str, value: str) -> bool:
    if WILDCARD in pattern:
        return fnmatchcase(value, pattern)
    return pattern in value


def _as_list(value: str | Path | Iterable[str | Path] | None) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str | Path):
        return [str(value)]
    return [str(v) for v in value]


class Invalidator:
    """Runs invalidation strategies against a cache and dependency graph.

    Args:
        cache: Cache holding compiled artifacts.
        graph: Dependency graph describing what depends on what.

    Example:
        >>> invalidator = Invalidator(cache, graph)
        >>> invalidator.invalidate("tokens.yaml").strategy
        <InvalidationStrategy.CONTENT_HASH: 'content-hash'>
        >>> invalidator.invalidate(ALL).strategy
        <InvalidationStrategy.GLOBAL: 'global'>
    """

    def __init__(self, cache: BaseCache, graph: DependencyGraph) -> None:
        self.cache = cache
        self.graph = graph
        self._strategies: dict[InvalidationStrategy, Callable[..., InvalidationResult]] = {
            InvalidationStrategy.CONTENT_HASH: self.by_content_hash,
            InvalidationStrategy.TIMESTAMP: self.by_timestamp,
            InvalidationStrategy.DEPENDENCY_BASED: self.by_dependencies,
            InvalidationStrategy.PATTERN: self.by_pattern,
            InvalidationStrategy.GLOBAL: self.invalidate_all,
            InvalidationStrategy.SELECTIVE: self.selective,
            InvalidationStrategy.BATCH: self.batch,
        }

    @staticmethod
    def select_strategy(what: Any) -> InvalidationStrategy:
        """Choose a strategy from the shape of an invalidation request.

        - ``ALL`` selects global
        - a mapping selects batch
        - a string containing ``*`` selects pattern
        - a node id (``file:``, ``token:``, ``component:`` or ``element:``
          prefixed) selects dependency-based
        - any other string, path or collection of paths selects content-hash
        """
        if what is ALL:
            return InvalidationStrategy.GLOBAL
        if isinstance(what, Mapping):
            return InvalidationStrategy.BATCH
        if isinstance(what, str):
            if WILDCARD in what:
                return InvalidationStrategy.PATTERN
            if what.startswith(tuple(NODE_CACHE_PREFIXES)):
                return InvalidationStrategy.DEPENDENCY_BASED
        return InvalidationStrategy.CONTENT_HASH

    def invalidate(
        self,
        what: Any,
        strategy: InvalidationStrategy | str | None = None,
        **options: Any,
    ) -> InvalidationResult:
        """Invalidate ``what`` with an explicit or automatically selected strategy.

        Args:
            what: A path, a collection of paths, ``ALL``, a node id, a
                pattern, or a mapping of batch targets.
            strategy: Strategy name; selected from ``what`` when None.
            **options: Passed to the strategy.

        Returns:
            InvalidationResult.

        Raises:
            InvalidationError: If the strategy is unknown.
        """
        if strategy is None:
            selected = self.select_strategy(what)
        else:
            try:
                selected = InvalidationStrategy(strategy)
            except ValueError:
                raise InvalidationError(
                    str(strategy), [s.value for s in InvalidationStrategy]
                ) from None

        handler = self._strategies[selected]
        if selected is InvalidationStrategy.GLOBAL:
            result = handler()
        elif selected in (InvalidationStrategy.SELECTIVE, InvalidationStrategy.BATCH):
            targets = dict(what) if isinstance(what, Mapping) else {"files": what}
            result = handler(**targets, **options)
        else:
            result = handler(what, **options)

        logger.info(
            "cache_invalidated",
            strategy=result.strategy.value,
            invalidated=len(result.invalidated),
        )
        return result

    def _cache_keys(self, node_id: str) -> set[str]:
        keys = {compiled_key(node_id)}
        namespaced = node_cache_key(node_id)
        if namespaced:
            keys.add(namespaced)
        node = self.graph.get_node(node_id)
        if node is not None:
            if node.metadata.get("cache_key"):
                keys.add(str(node.metadata["cache_key"]))
            keys.update(str(k) for k in node.metadata.get("cache_keys", ()))
        return keys

    def _evict(self, node_ids: Iterable[str]) -> tuple[frozenset[str], int]:
        affected = frozenset(self.graph.expand_dependents(node_ids))
        evicted = 0
        for node_id in affected:
            evicted += self.cache.invalidate_many(self._cache_keys(node_id))
        return affected, evicted

    def _by_file_change(
        self,
        paths: str | Path | Iterable[str | Path],
        comparator: ChangeStrategy,
        strategy: InvalidationStrategy,
    ) -> InvalidationResult:
        checked = _as_list(paths)
        changed = [p for p in checked if self.graph.file_changed(p, comparator)]
        affected, evicted = self._evict(file_node_id(p) for p in changed)
        for path in changed:
            self.graph.track_file(path)
        return InvalidationResult(
            invalidated=affected,
            strategy=strategy,
            metadata={
                "checked": len(checked),
                "changed_files": changed,
                "evicted_keys": evicted,
            },
        )

    def by_content_hash(self, paths: str | Path | Iterable[str | Path]) -> InvalidationResult:
        """Invalidate files whose content hash differs from the tracked one."""
        return self._by_file_change(paths, "content-hash", InvalidationStrategy.CONTENT_HASH)

    def by_timestamp(self, paths: str | Path | Iterable[str | Path]) -> InvalidationResult:
        """Invalidate files whose modification time differs from the tracked one."""
        return self._by_file_change(paths, "timestamp", InvalidationStrategy.TIMESTAMP)

    def by_dependencies(self, node_ids: str | Iterable[str]) -> InvalidationResult:
        """Invalidate the given nodes and their dependents unconditionally."""
        roots = _as_list(node_ids)
        affected, evicted = self._evict(roots)
        return InvalidationResult(
            invalidated=affected,
            strategy=InvalidationStrategy.DEPENDENCY_BASED,
            metadata={"roots": roots, "evicted_keys": evicted},
        )

    def matching_nodes(self, pattern: str) -> list[DependencyNode]:
        """Nodes whose id, path, ref or name matches ``pattern``.

        Patterns containing ``*`` are glob patterns; others match as substrings.
        """
        matched = []
        for node in self.graph.nodes():
            candidates = [node.id] + [
                str(node.metadata[k]) for k in ("path", "ref", "name") if node.metadata.get(k)
            ]
            if any(_matches(pattern, c) for c in candidates):
                matched.append(node)
        return matched

    def by_pattern(self, pattern: str) -> InvalidationResult:
        """Invalidate every node matching ``pattern`` and its dependents."""
        roots = [n.id for n in self.matching_nodes(pattern)]
        affected, evicted = self._evict(roots)
        return InvalidationResult(
            invalidated=affected,
            strategy=InvalidationStrategy.PATTERN,
            metadata={"pattern": pattern, "matched": sorted(roots), "evicted_keys": evicted},
        )

    def invalidate_all(self) -> InvalidationResult:
        """Clear the whole cache. Every tracked node counts as invalidated."""
        cleared = self.cache.clear()
        return InvalidationResult(
            invalidated=frozenset(n.id for n in self.graph.nodes()),
            strategy=InvalidationStrategy.GLOBAL,
            metadata={"cleared": cleared},
        )

    def _target_roots(
        self,
        files: Iterable[str | Path] | str | None,
        tokens: Iterable[str] | str | None,
        components: Iterable[str] | str | None,
    ) -> list[str]:
        return (
            [file_node_id(p) for p in _as_list(files)]
            + [token_node_id(t) for t in _as_list(tokens)]
            + [component_node_id(c) for c in _as_list(components)]
        )

    def selective(
        self,
        files: Iterable[str | Path] | str | None = None,
        tokens: Iterable[str] | str | None = None,
        components: Iterable[str] | str | None = None,
    ) -> InvalidationResult:
        """Invalidate named files, tokens and components unconditionally."""
        roots = self._target_roots(files, tokens, components)
        affected, evicted = self._evict(roots)
        return InvalidationResult(
            invalidated=affected,
            strategy=InvalidationStrategy.SELECTIVE,
            metadata={
                "files": len(_as_list(files)),
                "tokens": len(_as_list(tokens)),
                "components": len(_as_list(components)),
                "evicted_keys": evicted,
            },
        )

    def batch(
        self,
        files: Iterable[str | Path] | str | None = None,
        tokens: Iterable[str] | str | None = None,
        components: Iterable[str] | str | None = None,
        patterns: Iterable[str] | str | None = None,
        file_strategy: ChangeStrategy | None = "content-hash",
    ) -> InvalidationResult:
        """Invalidate a composite request in one deduplicated pass.

        Files are filtered through ``file_strategy`` (only changed files count)
        unless it is None, in which case every listed file is invalidated.
        Changed files are re-tracked afterwards.
        """
        file_list = _as_list(files)
        if file_strategy is not None:
            file_list = [p for p in file_list if self.graph.file_changed(p, file_strategy)]

        roots = set(self._target_roots(file_list, tokens, components))
        pattern_list = _as_list(patterns)
        for pattern in pattern_list:
            roots.update(n.id for n in self.matching_nodes(pattern))

        affected, evicted = self._evict(roots)
        if file_strategy is not None:
            for path in file_list:
                self.graph.track_file(path)
        return InvalidationResult(
            invalidated=affected,
            strategy=InvalidationStrategy.BATCH,
            metadata={
                "roots": len(roots),
                "files": file_list,
                "tokens": _as_list(tokens),
                "components": _as_list(components),
                "patterns": pattern_list,
                "evicted_keys": evicted,
            },
        )

    def watched_files(
        self,
        watch_dirs: Iterable[str],
        patterns: Iterable[str] = (WILDCARD,),
        exclude: Iterable[str] = (),
    ) -> list[str]:
        """Tracked file paths under ``watch_dirs`` matching ``patterns`` and not ``exclude``."""
        dirs = list(watch_dirs)
        pattern_list = list(patterns)
        exclude_list = list(exclude)
        found = []
        for node in self.graph.nodes("file"):
            path = str(node.metadata.get("path", ""))
            name = Path(path).name
            if not any(path.startswith(d) for d in dirs):
                continue
            if pattern_list and not any(
                fnmatchcase(name, p) or fnmatchcase(path, p) for p in pattern_list
            ):
                continue
            if any(_matches(p, path) for p in exclude_list):
                continue
            found.append(path)
        return sorted(found)

    def smart_invalidate(
        self,
        watch_dirs: Iterable[str],
        patterns: Iterable[str] = (WILDCARD,),
        exclude: Iterable[str] = (),
        strategy: ChangeStrategy = "content-hash",
    ) -> InvalidationResult:
        """Check every watched tracked file and invalidate the ones that changed."""
        files = self.watched_files(watch_dirs, patterns, exclude)
        if strategy == "timestamp":
            return self.by_timestamp(files)
        return self.by_content_hash(files)

    def apply_policy(self, policy: InvalidationPolicy) -> InvalidationResult | None:
        """Run smart invalidation per ``policy``; None when auto-invalidation is off."""
        if not policy.auto_invalidate:
            return None
        return self.smart_invalidate(
            policy.watch_dirs,
            policy.watch_patterns,
            policy.exclude,
            strategy=policy.strategy,
        )


def invalidation_summary(results: Iterable[InvalidationResult]) -> InvalidationSummary:
    """Aggregate results into totals per strategy."""
    counts: dict[str, list[int]] = {}
    total_operations = 0
    total_invalidated = 0
    for result in results:
        total_operations += 1
        total_invalidated += len(result.invalidated)
        ops, inv = counts.get(result.strategy.value, [0, 0])
        counts[result.strategy.value] = [ops + 1, inv + len(result.invalidated)]
    return InvalidationSummary(
        total_operations=total_operations,
        total_invalidated=total_invalidated,
        by_strategy={
            name: StrategySummary(operations=ops, invalidated=inv)
            for name, (ops, inv) in counts.items()
        },
    )
