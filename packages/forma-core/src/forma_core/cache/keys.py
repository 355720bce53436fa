"""Cache key construction.

Content keys hash only the inputs that change an artifact, so unrelated
context churn does not cause misses. Namespaced keys tie cache entries to
dependency-graph nodes so invalidation can find them.
"""

from __future__ import annotations

from typing import Any

from forma_core.cache.core import content_hash
from forma_core.schemas.context import CompileContext
from forma_core.schemas.element import Element

FILE_CACHE_PREFIX = "file-cache:"
TOKEN_CACHE_PREFIX = "token-cache:"
COMPONENT_CACHE_PREFIX = "component-cache:"
ELEMENT_CACHE_PREFIX = "element-cache:"
COMPILED_PREFIX = "compiled:"

# Node-id prefix -> cache-key prefix
NODE_CACHE_PREFIXES = {
    "file:": FILE_CACHE_PREFIX,
    "token:": TOKEN_CACHE_PREFIX,
    "component:": COMPONENT_CACHE_PREFIX,
    "element:": ELEMENT_CACHE_PREFIX,
}


def element_cache_key(element: Element, context: CompileContext) -> str:
    """Key for a compiled element.

    Hierarchy levels, tokens, the platform and styling stacks, the project
    (which selects platform tier files) and template variables participate.
    The output format does not, since it only affects serialization.
    """
    return ELEMENT_CACHE_PREFIX + content_hash(
        [element.model_dump(mode="json"), context.cache_subset()]
    )


def hierarchy_cache_key(element_id: str, level: str, context: CompileContext) -> str:
    """Key for a resolved hierarchy level of one element."""
    relevant = {"project_name": context.project_name, "levels": context.hierarchy_levels}
    return content_hash([element_id, level, relevant])


def token_cache_key(token_ref: str, tokens: dict[str, Any]) -> str:
    """Key for a resolved token reference against a token registry."""
    return TOKEN_CACHE_PREFIX + content_hash([token_ref, tokens])


def file_cache_key(file_path: str, content: str) -> str:
    """Key for a generated file's content."""
    return FILE_CACHE_PREFIX + content_hash([file_path, content])


def compiled_key(node_id: str) -> str:
    """Key under which an incremental build stores a node's output."""
    return COMPILED_PREFIX + node_id


def node_cache_key(node_id: str) -> str | None:
    """Namespaced cache key for a dependency-graph node id.

    Example:
        >>> node_cache_key("token:$colors.primary")
        'token-cache:$colors.primary'
    """
    for node_prefix, cache_prefix in NODE_CACHE_PREFIXES.items():
        if node_id.startswith(node_prefix):
            return cache_prefix + node_id[len(node_prefix) :]
    return None
