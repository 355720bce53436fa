"""Incremental build models.

Models for change detection, build plans and build results.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class NodeStatus(str, Enum):
    """Status of a node within one build run.

    Attributes:
        PENDING: Planned, not yet visited
        IN_PROGRESS: Being compiled
        COMPILED: Compiled successfully
        FAILED: compile function raised
        SKIPPED: Served from the cache
    """

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPILED = "compiled"
    FAILED = "failed"
    SKIPPED = "skipped"


class ChangeSet(BaseModel):
    """Files compared against their tracked state.

    Attributes:
        changed: Tracked files whose content (or timestamp) differs.
        unchanged: Tracked files that still match.
        new: Files that were never tracked.
        deleted: Tracked files that no longer exist.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    changed: list[str] = Field(default_factory=list)
    unchanged: list[str] = Field(default_factory=list)
    new: list[str] = Field(default_factory=list)
    deleted: list[str] = Field(default_factory=list)

    @property
    def total_checked(self) -> int:
        return len(self.changed) + len(self.unchanged) + len(self.new) + len(self.deleted)

    @property
    def modified(self) -> list[str]:
        """Files whose dependents need rebuilding: changed, new and deleted."""
        return [*self.changed, *self.new, *self.deleted]


class AffectedNodes(BaseModel):
    """Node ids touched by a change.

    Attributes:
        direct: File nodes of the modified files.
        transitive: Everything depending on them, excluding ``direct``.
        all: Union of both.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    direct: frozenset[str] = Field(default_factory=frozenset)
    transitive: frozenset[str] = Field(default_factory=frozenset)
    all: frozenset[str] = Field(default_factory=frozenset)


class PlanStats(BaseModel):
    """Size of a build plan."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    total_nodes: int = Field(ge=0)
    nodes_to_rebuild: int = Field(ge=0)
    nodes_to_skip: int = Field(ge=0)
    files_changed: int = Field(ge=0)


class BuildPlan(BaseModel):
    """What an incremental build will do, and in which order.

    Attributes:
        changes: Change detection result.
        affected: Directly and transitively affected nodes.
        build_order: ``must_rebuild`` in dependency order (dependencies first).
        must_rebuild: Affected nodes plus forced nodes.
        can_skip: Every other registered node.
        stats: Counts for reporting.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    changes: ChangeSet
    affected: AffectedNodes
    build_order: list[str]
    must_rebuild: frozenset[str]
    can_skip: frozenset[str]
    stats: PlanStats


class NodeFailure(BaseModel):
    """Diagnostic detail for a node whose compile function raised.

    Attributes:
        node_id: Failed node.
        error: Exception message.
        error_type: Exception class name.
        traceback: Formatted traceback.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    node_id: str
    error: str
    error_type: str
    traceback: str = ""


class CompilationState(BaseModel):
    """Mutable per-run bookkeeping. Each node is in exactly one set.

    Created fresh for every build and discarded afterwards.
    """

    model_config = ConfigDict(extra="forbid")

    pending: set[str] = Field(default_factory=set)
    in_progress: set[str] = Field(default_factory=set)
    compiled: set[str] = Field(default_factory=set)
    failed: set[str] = Field(default_factory=set)
    skipped: set[str] = Field(default_factory=set)
    errors: dict[str, NodeFailure] = Field(default_factory=dict)
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def _move(self, node_id: str, target: set[str]) -> None:
        for bucket in (self.pending, self.in_progress, self.compiled, self.failed, self.skipped):
            bucket.discard(node_id)
        target.add(node_id)

    def mark_pending(self, node_id: str) -> None:
        self._move(node_id, self.pending)

    def mark_in_progress(self, node_id: str) -> None:
        self._move(node_id, self.in_progress)

    def mark_compiled(self, node_id: str) -> None:
        self._move(node_id, self.compiled)

    def mark_skipped(self, node_id: str) -> None:
        self._move(node_id, self.skipped)

    def mark_failed(self, node_id: str, failure: NodeFailure) -> None:
        self._move(node_id, self.failed)
        self.errors[node_id] = failure

    def status(self, node_id: str) -> NodeStatus | None:
        """Return the node's status, or None if the node is not part of this run."""
        for status, bucket in (
            (NodeStatus.PENDING, self.pending),
            (NodeStatus.IN_PROGRESS, self.in_progress),
            (NodeStatus.COMPILED, self.compiled),
            (NodeStatus.FAILED, self.failed),
            (NodeStatus.SKIPPED, self.skipped),
        ):
            if node_id in bucket:
                return status
        return None


class BuildStats(BaseModel):
    """Outcome counts of an executed build."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    compiled: int = Field(ge=0)
    skipped: int = Field(ge=0)
    failed: int = Field(ge=0)
    total: int = Field(ge=0)
    success: bool


class BuildResult(BaseModel):
    """Result of executing a build plan.

    A build with failed nodes still returns normally; ``success`` is False and
    ``errors`` holds one entry per failed node.

    Attributes:
        plan: The executed plan.
        compiled: Nodes compiled, in execution order.
        skipped: Nodes served from the cache, in execution order.
        failed: Nodes whose compile function raised, in execution order.
        errors: Failure detail per failed node.
        outputs: Compile results of the nodes compiled in this run.
        stats: Outcome counts.
        started_at: When execution started.
        finished_at: When execution finished.
        total_duration_ms: Wall-clock duration.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    plan: BuildPlan
    compiled: list[str]
    skipped: list[str]
    failed: list[str]
    errors: dict[str, NodeFailure]
    outputs: dict[str, Any] = Field(default_factory=dict)
    stats: BuildStats
    started_at: datetime
    finished_at: datetime
    total_duration_ms: int = Field(ge=0)

    @property
    def success(self) -> bool:
        return self.stats.success
