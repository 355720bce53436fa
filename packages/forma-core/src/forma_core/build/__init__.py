"""Incremental build subsystem for forma-core.

This package provides:
- DependencyGraph: tracked files, tokens, components and elements
- Invalidator: strategy-dispatched cache invalidation
- IncrementalBuilder: change detection, planning and execution
"""

from __future__ import annotations

from forma_core.build.graph import (
    DependencyGraph,
    DependencyNode,
    DependencyReport,
    component_node_id,
    element_node_id,
    extract_token_references,
    file_node_id,
    token_node_id,
)
from forma_core.build.incremental import (
    IncrementalBuilder,
    estimate_build_time,
    format_build_stats,
    topological_sort,
)
from forma_core.build.invalidation import (
    ALL,
    InvalidationPolicy,
    InvalidationResult,
    InvalidationStrategy,
    Invalidator,
    invalidation_summary,
)
from forma_core.build.models import (
    AffectedNodes,
    BuildPlan,
    BuildResult,
    BuildStats,
    ChangeSet,
    CompilationState,
    NodeFailure,
    NodeStatus,
)

__all__ = [
    "ALL",
    "AffectedNodes",
    "BuildPlan",
    "BuildResult",
    "BuildStats",
    "ChangeSet",
    "CompilationState",
    "DependencyGraph",
    "DependencyNode",
    "DependencyReport",
    "IncrementalBuilder",
    "InvalidationPolicy",
    "InvalidationResult",
    "InvalidationStrategy",
    "Invalidator",
    "NodeFailure",
    "NodeStatus",
    "component_node_id",
    "element_node_id",
    "estimate_build_time",
    "extract_token_references",
    "file_node_id",
    "format_build_stats",
    "invalidation_summary",
    "token_node_id",
]
