"""Dependency graph for incremental builds.

This module tracks which artifacts depend on which:
- DependencyNode: a tracked file, token, component or compiled element
- DependencyGraph: nodes plus depends-on edges and their reverse mirror
- Node-id helpers and token-reference extraction

Edge ``(A, B)`` means "A depends on B". Reverse edges are maintained on every
mutation so dependents are a dictionary lookup away. All mutations hold a
re-entrant lock.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Mapping
import hashlib
from pathlib import Path
import threading
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
import structlog

logger = structlog.get_logger(__name__)

NodeKind = Literal["file", "token", "component", "element"]
ChangeStrategy = Literal["content-hash", "timestamp"]

# Prefix marking a string as a token reference (e.g., "$colors.primary")
TOKEN_REF_PREFIX = "$"

# Read size for hashing file contents
_HASH_CHUNK_SIZE = 65536


def file_node_id(path: str | Path) -> str:
    """Node id for a file path (``file:<posix path>``)."""
    return f"file:{Path(path).as_posix()}"


def token_node_id(token_ref: str) -> str:
    """Node id for a token reference (``token:<ref>``)."""
    return f"token:{token_ref}"


def component_node_id(name: str) -> str:
    """Node id for a component definition (``component:<name>``)."""
    return f"component:{name}"


def element_node_id(name: str) -> str:
    """Node id for a compiled element (``element:<name>``)."""
    return f"element:{name}"


def file_hash(path: str | Path) -> str | None:
    """SHA-256 of a file's bytes, or None if it cannot be read."""
    digest = hashlib.sha256()
    try:
        with Path(path).open("rb") as f:
            for chunk in iter(lambda: f.read(_HASH_CHUNK_SIZE), b""):
                digest.update(chunk)
    except OSError:
        return None
    return digest.hexdigest()


def file_timestamp(path: str | Path) -> float | None:
    """Modification time of a file, or None if it does not exist."""
    try:
        return Path(path).stat().st_mtime
    except OSError:
        return None


def extract_token_references(data: Any) -> set[str]:
    """Collect every ``$``-prefixed string found anywhere in nested data.

    Args:
        data: Any nesting of mappings, sequences, sets, pydantic models and scalars.

    Returns:
        Set of token reference strings.

    Example:
        >>> sorted(extract_token_references({"bg": "$colors.primary", "p": ["$spacing.md"]}))
        ['$colors.primary', '$spacing.md']
    """
    refs: set[str] = set()
    stack: list[Any] = [data]
    while stack:
        item = stack.pop()
        if isinstance(item, str):
            if item.startswith(TOKEN_REF_PREFIX):
                refs.add(item)
        elif isinstance(item, BaseModel):
            stack.append(item.model_dump())
        elif isinstance(item, Mapping):
            stack.extend(item.values())
        elif isinstance(item, list | tuple | set | frozenset):
            stack.extend(item)
    return refs


class DependencyNode(BaseModel):
    """A tracked artifact.

    Attributes:
        id: Node id (``file:``, ``token:``, ``component:`` or ``element:`` prefixed).
        kind: Artifact kind.
        metadata: Kind-specific data. File nodes carry path, hash and
            timestamp; token nodes ref, value and source_file; component nodes
            name, source_file and tokens.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(..., min_length=1)
    kind: NodeKind
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def label(self) -> str:
        """Human-readable name: path, ref or name, falling back to the id."""
        for key in ("path", "ref", "name"):
            if self.metadata.get(key):
                return str(self.metadata[key])
        return self.id


class DependencyCount(BaseModel):
    """A node and how many nodes depend on it directly."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    node_id: str
    dependent_count: int
    kind: NodeKind | None = None


class DependencyReport(BaseModel):
    """Summary statistics for a dependency graph."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    node_count: int
    edge_count: int
    nodes_by_kind: dict[str, int]
    most_depended_on: list[DependencyCount]


class DependencyGraph:
    """Directed depends-on graph over tracked artifacts.

    Edges may reference ids that are not (yet) registered as nodes; the
    mirror is kept consistent regardless.

    Example:
        >>> graph = DependencyGraph()
        >>> graph.track_token("$colors.primary", "#0af", source_file="tokens.yaml")
        >>> graph.get_dependents("file:tokens.yaml")
        {'token:$colors.primary'}
    """

    def __init__(self) -> None:
        self._nodes: dict[str, DependencyNode] = {}
        self._edges: dict[str, set[str]] = {}
        self._reverse_edges: dict[str, set[str]] = {}
        self._lock = threading.RLock()

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def add_node(
        self,
        node_id: str,
        kind: NodeKind,
        metadata: Mapping[str, Any] | None = None,
    ) -> DependencyNode:
        """Register or replace a node. Existing edges are kept."""
        node = DependencyNode(id=node_id, kind=kind, metadata=dict(metadata or {}))
        with self._lock:
            self._nodes[node_id] = node
        return node

    def get_node(self, node_id: str) -> DependencyNode | None:
        return self._nodes.get(node_id)

    def nodes(self, kind: NodeKind | None = None) -> list[DependencyNode]:
        """Return registered nodes, optionally filtered by kind."""
        with self._lock:
            return [n for n in self._nodes.values() if kind is None or n.kind == kind]

    def edges(self) -> list[tuple[str, str]]:
        """Return every ``(source, target)`` edge."""
        with self._lock:
            return [(src, tgt) for src, targets in self._edges.items() for tgt in sorted(targets)]

    def add_edge(self, source: str, target: str) -> None:
        """Record that ``source`` depends on ``target``."""
        with self._lock:
            self._edges.setdefault(source, set()).add(target)
            self._reverse_edges.setdefault(target, set()).add(source)

    def remove_edge(self, source: str, target: str) -> None:
        with self._lock:
            self._discard(self._edges, source, target)
            self._discard(self._reverse_edges, target, source)

    @staticmethod
    def _discard(index: dict[str, set[str]], key: str, value: str) -> None:
        values = index.get(key)
        if values is None:
            return
        values.discard(value)
        if not values:
            del index[key]

    def remove_node(self, node_id: str) -> None:
        """Remove a node and every edge that touches it, in both directions."""
        with self._lock:
            self._nodes.pop(node_id, None)
            for target in self._edges.pop(node_id, set()):
                self._discard(self._reverse_edges, target, node_id)
            for source in self._reverse_edges.pop(node_id, set()):
                self._discard(self._edges, source, node_id)

    def get_dependencies(self, node_id: str) -> set[str]:
        """Nodes that ``node_id`` depends on directly."""
        with self._lock:
            return set(self._edges.get(node_id, ()))

    def get_dependents(self, node_id: str) -> set[str]:
        """Nodes that depend on ``node_id`` directly."""
        with self._lock:
            return set(self._reverse_edges.get(node_id, ()))

    def get_transitive_dependents(self, node_id: str) -> set[str]:
        """Every node that depends on ``node_id`` directly or indirectly.

        The traversal keeps a visited set, so cycles terminate. The start
        node is only included if a cycle leads back to it.
        """
        with self._lock:
            found: set[str] = set()
            queue = deque(self._reverse_edges.get(node_id, ()))
            while queue:
                current = queue.popleft()
                if current in found:
                    continue
                found.add(current)
                queue.extend(self._reverse_edges.get(current, set()) - found)
            return found

    def expand_dependents(self, node_ids: Iterable[str]) -> set[str]:
        """The given nodes together with all of their transitive dependents."""
        expanded: set[str] = set()
        for node_id in node_ids:
            expanded.add(node_id)
            expanded |= self.get_transitive_dependents(node_id)
        return expanded

    def track_file(
        self,
        path: str | Path,
        metadata: Mapping[str, Any] | None = None,
    ) -> DependencyNode:
        """Record a file's current content hash and timestamp.

        A missing file is tracked with ``hash`` and ``timestamp`` set to None.
        Metadata recorded by earlier calls is kept unless overridden.
        """
        posix = Path(path).as_posix()
        previous = self.get_node(file_node_id(posix))
        data: dict[str, Any] = {
            **(previous.metadata if previous is not None else {}),
            "path": posix,
            "hash": file_hash(path),
            "timestamp": file_timestamp(path),
        }
        data.update(metadata or {})
        return self.add_node(file_node_id(posix), "file", data)

    def file_changed(self, path: str | Path, strategy: ChangeStrategy = "content-hash") -> bool:
        """Whether a file differs from its tracked state.

        Untracked files count as changed.

        Args:
            path: File path.
            strategy: "content-hash" compares content digests; "timestamp"
                compares modification times.

        Raises:
            ValueError: For an unknown strategy.
        """
        node = self.get_node(file_node_id(path))
        if node is None:
            return True
        if strategy == "content-hash":
            return file_hash(path) != node.metadata.get("hash")
        if strategy == "timestamp":
            return file_timestamp(path) != node.metadata.get("timestamp")
        raise ValueError(f"Unknown change detection strategy: {strategy}")

    def track_token(
        self,
        token_ref: str,
        value: Any,
        source_file: str | Path | None = None,
    ) -> DependencyNode:
        """Record a resolved token; it depends on the file that defines it."""
        node_id = token_node_id(token_ref)
        with self._lock:
            node = self.add_node(
                node_id,
                "token",
                {
                    "ref": token_ref,
                    "value": value,
                    "source_file": Path(source_file).as_posix() if source_file else None,
                },
            )
            if source_file:
                self.add_edge(node_id, file_node_id(source_file))
        return node

    def track_token_usage(self, node_id: str, token_refs: Iterable[str]) -> None:
        """Record that ``node_id`` depends on each of ``token_refs``."""
        with self._lock:
            for ref in token_refs:
                self.add_edge(node_id, token_node_id(ref))

    def track_component(
        self,
        name: str,
        definition: Any,
        source_file: str | Path | None = None,
    ) -> DependencyNode:
        """Record a component; it depends on its file and on every token it references."""
        node_id = component_node_id(name)
        tokens = extract_token_references(definition)
        with self._lock:
            node = self.add_node(
                node_id,
                "component",
                {
                    "name": name,
                    "source_file": Path(source_file).as_posix() if source_file else None,
                    "tokens": sorted(tokens),
                },
            )
            if source_file:
                self.add_edge(node_id, file_node_id(source_file))
            self.track_token_usage(node_id, tokens)
        return node

    def report(self, limit: int = 10) -> DependencyReport:
        """Summarize node and edge counts and the most depended-on nodes."""
        with self._lock:
            by_kind: dict[str, int] = {}
            for node in self._nodes.values():
                by_kind[node.kind] = by_kind.get(node.kind, 0) + 1
            ranked = sorted(
                self._reverse_edges.items(),
                key=lambda item: (-len(item[1]), item[0]),
            )[:limit]
            return DependencyReport(
                node_count=len(self._nodes),
                edge_count=sum(len(t) for t in self._edges.values()),
                nodes_by_kind=by_kind,
                most_depended_on=[
                    DependencyCount(
                        node_id=node_id,
                        dependent_count=len(sources),
                        kind=self._nodes[node_id].kind if node_id in self._nodes else None,
                    )
                    for node_id, sources in ranked
                ],
            )

    def visualize(self, node_id: str, max_depth: int = 3) -> str:
        """Render the dependencies of ``node_id`` as an indented text tree.

        Example:
            >>> print(graph.visualize("component:button"))
            - component: button
              - file: components/button.yaml
              - token: $colors.primary
        """
        lines: list[str] = []

        def render(current: str, depth: int, path: frozenset[str]) -> None:
            node = self.get_node(current)
            kind = node.kind if node else "unknown"
            label = node.label if node else current
            lines.append(f"{'  ' * depth}- {kind}: {label}")
            if depth >= max_depth or current in path:
                return
            for dep in sorted(self.get_dependencies(current)):
                render(dep, depth + 1, path | {current})

        render(node_id, 0, frozenset())
        return "\n".join(lines)
