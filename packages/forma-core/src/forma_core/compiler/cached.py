"""Cache-aware compilation.

CachedCompiler wraps the stack compiler with a cache keyed by element content
and the relevant context subset, and records what every compiled element
depends on in a DependencyGraph so invalidation can find it.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import structlog

from forma_core.build.graph import (
    DependencyGraph,
    component_node_id,
    element_node_id,
    extract_token_references,
    file_node_id,
)
from forma_core.build.invalidation import InvalidationResult, InvalidationStrategy, Invalidator
from forma_core.cache.core import BaseCache, MemoryCache
from forma_core.cache.keys import ELEMENT_CACHE_PREFIX, element_cache_key
from forma_core.compiler.compiler import Compiler, RenderedFile
from forma_core.schemas.context import CompileContext
from forma_core.schemas.element import Element, Tag

logger = structlog.get_logger(__name__)

# Hash characters used to name elements that carry no id property
ELEMENT_NAME_LENGTH = 12


class CachedCompiler:
    """Stack compiler with result caching and dependency tracking.

    A compiled element is stored under its element cache key as plain JSON,
    so disk-backed caches can hold it. The element is recorded as an
    ``element:`` node whose metadata carries that key; its edges point at
    the tokens it references, the component of its type when one is
    tracked, and every platform file its stack was resolved from.

    Attributes:
        compiler: Underlying stack compiler.
        cache: Cache for compiled elements.
        graph: Dependency graph receiving element nodes.
        invalidator: Invalidator bound to ``cache`` and ``graph``.

    Example:
        >>> cached = CachedCompiler()
        >>> first = cached.compile(button, ctx)
        >>> second = cached.compile(button, ctx)
        >>> first == second
        True
        >>> cached.cache.stats().hits
        1
    """

    def __init__(
        self,
        compiler: Compiler | None = None,
        cache: BaseCache | None = None,
        graph: DependencyGraph | None = None,
    ) -> None:
        self.compiler = compiler or Compiler()
        self.cache = cache if cache is not None else MemoryCache()
        self.graph = graph if graph is not None else DependencyGraph()
        if self.compiler.resolver.graph is None:
            self.compiler.resolver.graph = self.graph
        self.invalidator = Invalidator(self.cache, self.graph)

    def compile(
        self,
        element: Element,
        context: CompileContext | None = None,
        *,
        force: bool = False,
        track_dependencies: bool = True,
    ) -> Tag:
        """Compile ``element``, reusing a cached result when one exists.

        Args:
            element: Element to compile.
            context: Compilation context.
            force: Recompile even on a cache hit.
            track_dependencies: Record the element in the dependency graph.

        Returns:
            Compiled Tag.
        """
        context = context or CompileContext()
        key = element_cache_key(element, context)
        log = logger.bind(element_type=element.type, cache_key=key)

        if not force:
            cached = self.cache.get(key)
            if cached is not None:
                log.debug("element_cache_hit")
                return Tag.model_validate(cached)

        tag = self.compiler.compile(element, context)
        self.cache.put(key, tag.model_dump(mode="json"))
        log.debug("element_compiled", forced=force)
        if track_dependencies:
            self._track(element, context, key)
        return tag

    def compile_many(
        self,
        elements: Iterable[Element],
        context: CompileContext | None = None,
        *,
        force: bool = False,
    ) -> list[Tag]:
        return [self.compile(e, context, force=force) for e in elements]

    def render(
        self,
        elements: Element | Iterable[Element],
        context: CompileContext | None = None,
    ) -> str | list[list[Any]] | RenderedFile:
        """Compile through the cache, then serialize like Compiler.render."""
        context = context or CompileContext()
        items = [elements] if isinstance(elements, Element) else list(elements)
        tags = self.compile_many(items, context)
        return self.compiler.serialize(tags, context, self.compiler.configs_for(context))

    def _track(self, element: Element, context: CompileContext, key: str) -> None:
        name = str(element.properties.get("id") or "")
        if not name:
            name = key[len(ELEMENT_CACHE_PREFIX) :][:ELEMENT_NAME_LENGTH]
        node_id = element_node_id(name)
        previous = self.graph.get_node(node_id)
        keys = set(previous.metadata.get("cache_keys", ())) if previous is not None else set()
        keys.add(key)
        self.graph.add_node(
            node_id,
            "element",
            {"name": name, "type": element.type, "cache_key": key, "cache_keys": sorted(keys)},
        )
        self.graph.track_token_usage(node_id, extract_token_references(element.properties))

        component = component_node_id(element.type)
        if component in self.graph:
            self.graph.add_edge(node_id, component)

        resolver = self.compiler.resolver
        for platform in context.platform_stack:
            for path in resolver.source_paths(platform, context.project_name):
                self.graph.add_edge(node_id, file_node_id(path))

    def invalidate(
        self,
        what: Any,
        strategy: InvalidationStrategy | str | None = None,
        **options: Any,
    ) -> InvalidationResult:
        """Invalidate through the bound Invalidator.

        Memoized platform configs are dropped as well whenever a platform file
        node is among the invalidated nodes.
        """
        result = self.invalidator.invalidate(what, strategy, **options)
        platform_files = {
            n.id for n in self.graph.nodes("file") if n.metadata.get("platform") is not None
        }
        if result.strategy is InvalidationStrategy.GLOBAL or result.invalidated & platform_files:
            self.compiler.resolver.clear_cache()
        return result
