"""Incremental build planning and execution.

This module recompiles only what changed:
- IncrementalBuilder.detect_changes: compare files with their tracked state
- IncrementalBuilder.plan: affected set and dependency-ordered build order
- IncrementalBuilder.execute: run a compile function per node, isolating failures
- IncrementalBuilder.build: plan, invalidate, execute
- format_build_stats / estimate_build_time: reporting helpers
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from datetime import UTC, datetime
from pathlib import Path
import time
import traceback
from typing import Any

import structlog

from forma_core.build.graph import ChangeStrategy, DependencyGraph, DependencyNode, file_node_id
from forma_core.build.invalidation import Invalidator
from forma_core.build.models import (
    AffectedNodes,
    BuildPlan,
    BuildResult,
    BuildStats,
    ChangeSet,
    CompilationState,
    NodeFailure,
    NodeStatus,
    PlanStats,
)
from forma_core.cache.core import BaseCache
from forma_core.cache.keys import compiled_key
from forma_core.errors import CircularDependencyError
from forma_core.observability import span

logger = structlog.get_logger(__name__)

# Fallback per-node compile time used by estimate_build_time
DEFAULT_NODE_COMPILE_MS = 10.0

FILE_PREFIX = "file:"

CompileFn = Callable[[str, DependencyNode | None], Any]
ProgressFn = Callable[[str, NodeStatus, int, int], None]


def topological_sort(graph: DependencyGraph, node_ids: Iterable[str]) -> list[str]:
    """Order ``node_ids`` so every node comes after its dependencies.

    Only dependencies inside ``node_ids`` constrain the order. Nodes that
    become ready together are emitted in sorted order.

    Args:
        graph: Dependency graph.
        node_ids: Nodes to order.

    Returns:
        Build order, dependencies first.

    Raises:
        CircularDependencyError: If nodes remain but none is ready.
    """
    subset = set(node_ids)
    remaining = set(subset)
    visited: set[str] = set()
    order: list[str] = []
    while remaining:
        ready = sorted(
            n
            for n in remaining
            if all(d in visited or d not in subset for d in graph.get_dependencies(n))
        )
        if not ready:
            raise CircularDependencyError(remaining, visited=visited, order=order)
        order.extend(ready)
        visited.update(ready)
        remaining.difference_update(ready)
    return order


class IncrementalBuilder:
    """Plans and executes incremental builds over a dependency graph.

    Args:
        cache: Cache holding ``compiled:<node>`` outputs.
        graph: Dependency graph with tracked files.

    Example:
        >>> builder = IncrementalBuilder(cache, graph)
        >>> result = builder.build(project_files, compile_node)
        >>> result.success
        True
    """

    def __init__(self, cache: BaseCache, graph: DependencyGraph) -> None:
        self.cache = cache
        self.graph = graph
        self.invalidator = Invalidator(cache, graph)
        self._log = logger.bind(component="incremental_builder")

    def detect_changes(
        self,
        file_paths: Iterable[str | Path],
        strategy: ChangeStrategy = "content-hash",
    ) -> ChangeSet:
        """Compare ``file_paths`` against tracked file nodes.

        ``file_paths`` is the complete set of project files: tracked files
        missing from it, or missing on disk, count as deleted. Untracked
        paths that do not exist are ignored.
        """
        checked = sorted({Path(p).as_posix() for p in file_paths})
        tracked = {
            str(n.metadata.get("path")) for n in self.graph.nodes("file") if n.metadata.get("path")
        }
        changed: list[str] = []
        unchanged: list[str] = []
        new: list[str] = []
        deleted = sorted(tracked.difference(checked))
        for path in checked:
            exists = Path(path).exists()
            if path not in tracked:
                if exists:
                    new.append(path)
            elif not exists:
                deleted.append(path)
            elif self.graph.file_changed(path, strategy):
                changed.append(path)
            else:
                unchanged.append(path)
        return ChangeSet(changed=changed, unchanged=unchanged, new=new, deleted=sorted(deleted))

    def compute_affected(self, file_paths: Iterable[str]) -> AffectedNodes:
        """File nodes of ``file_paths`` plus their transitive dependents."""
        direct = frozenset(file_node_id(p) for p in file_paths)
        everything = frozenset(self.graph.expand_dependents(direct))
        return AffectedNodes(direct=direct, transitive=everything - direct, all=everything)

    def plan(
        self,
        file_paths: Iterable[str | Path],
        strategy: ChangeStrategy = "content-hash",
        force_rebuild: Iterable[str] = (),
    ) -> BuildPlan:
        """Work out which nodes must be rebuilt and in what order.

        Deleted files are never rebuilt themselves; only their dependents are.

        Args:
            file_paths: Every project file.
            strategy: "content-hash" or "timestamp" change detection.
            force_rebuild: Node ids rebuilt regardless of changes.

        Returns:
            BuildPlan.

        Raises:
            CircularDependencyError: If the rebuild set contains a cycle.
        """
        changes = self.detect_changes(file_paths, strategy)
        gone = frozenset(file_node_id(p) for p in changes.deleted)
        affected = self.compute_affected(changes.modified)
        must_rebuild = (affected.all | frozenset(force_rebuild)) - gone
        all_nodes = frozenset(n.id for n in self.graph.nodes()) - gone
        can_skip = all_nodes - must_rebuild
        build_order = topological_sort(self.graph, must_rebuild)

        plan = BuildPlan(
            changes=changes,
            affected=affected,
            build_order=build_order,
            must_rebuild=must_rebuild,
            can_skip=can_skip,
            stats=PlanStats(
                total_nodes=len(all_nodes | must_rebuild),
                nodes_to_rebuild=len(must_rebuild),
                nodes_to_skip=len(can_skip),
                files_changed=len(changes.modified),
            ),
        )
        self._log.info(
            "build_planned",
            changed=len(changes.changed),
            new=len(changes.new),
            deleted=len(changes.deleted),
            nodes_to_rebuild=plan.stats.nodes_to_rebuild,
            nodes_to_skip=plan.stats.nodes_to_skip,
        )
        return plan

    def execute(
        self,
        plan: BuildPlan,
        compile_fn: CompileFn,
        on_progress: ProgressFn | None = None,
    ) -> BuildResult:
        """Walk the build order, compiling or skipping each node.

        A cached ``compiled:<node>`` output marks the node skipped. Otherwise
        ``compile_fn(node_id, node)`` runs (``node`` is None for files not yet
        tracked); a non-None result is cached and file nodes are re-tracked.
        An exception fails that node only; the rest of the plan still runs.
        Deleted files are removed from the graph once the order has run.

        Args:
            plan: Plan from ``plan()``.
            compile_fn: Compiles one node.
            on_progress: Called after each node with (node_id, status, index, total).

        Returns:
            BuildResult; ``success`` is False iff any node failed.
        """
        start_time = time.monotonic()
        started_at = datetime.now(UTC)
        state = CompilationState(started_at=started_at)
        for node_id in plan.build_order:
            state.mark_pending(node_id)

        compiled: list[str] = []
        skipped: list[str] = []
        failed: list[str] = []
        outputs: dict[str, Any] = {}
        total = len(plan.build_order)

        self._log.info("build_started", nodes=total)

        for index, node_id in enumerate(plan.build_order, start=1):
            key = compiled_key(node_id)
            if self.cache.get(key) is not None:
                state.mark_skipped(node_id)
                skipped.append(node_id)
            else:
                state.mark_in_progress(node_id)
                try:
                    output = compile_fn(node_id, self.graph.get_node(node_id))
                except Exception as e:
                    failure = NodeFailure(
                        node_id=node_id,
                        error=str(e),
                        error_type=type(e).__name__,
                        traceback=traceback.format_exc(),
                    )
                    state.mark_failed(node_id, failure)
                    failed.append(node_id)
                    self._log.warning(
                        "node_failed",
                        node_id=node_id,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                else:
                    if output is not None:
                        self.cache.put(key, output)
                        outputs[node_id] = output
                    if node_id.startswith(FILE_PREFIX):
                        self.graph.track_file(node_id[len(FILE_PREFIX) :])
                    state.mark_compiled(node_id)
                    compiled.append(node_id)

            if on_progress is not None:
                on_progress(node_id, state.status(node_id) or NodeStatus.PENDING, index, total)

        self._forget_deleted(plan.changes.deleted)

        finished_at = datetime.now(UTC)
        total_duration_ms = int((time.monotonic() - start_time) * 1000)
        stats = BuildStats(
            compiled=len(compiled),
            skipped=len(skipped),
            failed=len(failed),
            total=total,
            success=not failed,
        )

        self._log.info(
            "build_completed",
            compiled=stats.compiled,
            skipped=stats.skipped,
            failed=stats.failed,
            success=stats.success,
            total_duration_ms=total_duration_ms,
        )

        return BuildResult(
            plan=plan,
            compiled=compiled,
            skipped=skipped,
            failed=failed,
            errors=dict(state.errors),
            outputs=outputs,
            stats=stats,
            started_at=started_at,
            finished_at=finished_at,
            total_duration_ms=total_duration_ms,
        )

    def _forget_deleted(self, paths: Iterable[str]) -> None:
        """Drop deleted files from the graph along with their build outputs."""
        for path in paths:
            node_id = file_node_id(path)
            self.cache.invalidate_many([compiled_key(node_id)])
            self.graph.remove_node(node_id)
            self._log.debug("file_forgotten", path=path)

    def build(
        self,
        file_paths: Iterable[str | Path],
        compile_fn: CompileFn,
        strategy: ChangeStrategy = "content-hash",
        force_rebuild: Iterable[str] = (),
        on_progress: ProgressFn | None = None,
    ) -> BuildResult:
        """Plan, evict stale outputs of modified files and forced nodes, then execute."""
        paths = list(file_paths)
        forced = list(force_rebuild)
        with span("incremental_build", attributes={"build.files": len(paths)}):
            plan = self.plan(paths, strategy, forced)
            if plan.changes.modified:
                self.invalidator.batch(files=plan.changes.modified, file_strategy=None)
            if forced:
                self.invalidator.by_dependencies(forced)
            return self.execute(plan, compile_fn, on_progress)


def format_build_stats(result: BuildResult) -> str:
    """Render a build result as a short human-readable report."""
    changes = result.plan.changes
    stats = result.stats
    lines = [
        "=== Incremental Build Results ===",
        f"Status: {'SUCCESS' if stats.success else 'FAILED'}",
        f"Duration: {result.total_duration_ms}ms",
        "",
        "Changes:",
        f"  Changed: {len(changes.changed)} files",
        f"  New: {len(changes.new)} files",
        f"  Deleted: {len(changes.deleted)} files",
        "",
        "Compilation:",
        f"  Compiled: {stats.compiled} nodes",
        f"  Cached: {stats.skipped} nodes",
        f"  Failed: {stats.failed} nodes",
        f"  Total: {stats.total} nodes",
    ]
    if not stats.success:
        lines += ["", "Errors:"]
        lines += [f"  {node_id}: {failure.error}" for node_id, failure in result.errors.items()]
    return "\n".join(lines)


def estimate_build_time(
    plan: BuildPlan,
    previous_builds: Sequence[BuildResult] = (),
    avg_compile_ms: float = DEFAULT_NODE_COMPILE_MS,
) -> float:
    """Estimate a plan's duration in milliseconds.

    Uses the measured per-node average of ``previous_builds`` when they
    compiled anything, otherwise ``avg_compile_ms``.
    """
    total_ms = sum(b.total_duration_ms for b in previous_builds)
    total_nodes = sum(b.stats.compiled for b in previous_builds)
    per_node = total_ms / total_nodes if total_nodes else avg_compile_ms
    return len(plan.must_rebuild) * per_node
