"""Unit tests for the incremental build planner.

This module tests:
- Change detection (changed, unchanged, new, deleted)
- Affected node computation and build planning
- Topological build order and cycle detection
- Execution with cache skips and failure isolation
- Build reports and time estimates
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from hypothesis import given, settings
from hypothesis import strategies as st
import pytest

from forma_core.build.graph import DependencyGraph, DependencyNode, element_node_id, file_node_id
from forma_core.build.incremental import (
    IncrementalBuilder,
    estimate_build_time,
    format_build_stats,
    topological_sort,
)
from forma_core.build.models import NodeStatus
from forma_core.cache.core import MemoryCache
from forma_core.cache.keys import compiled_key
from forma_core.errors import CircularDependencyError


@pytest.fixture
def cache() -> MemoryCache:
    return MemoryCache()


@pytest.fixture
def graph() -> DependencyGraph:
    return DependencyGraph()


@pytest.fixture
def builder(cache: MemoryCache, graph: DependencyGraph) -> IncrementalBuilder:
    return IncrementalBuilder(cache, graph)


@pytest.fixture
def project(tmp_path: Path, graph: DependencyGraph) -> dict[str, Path]:
    """Two tracked files: header depends on a.yaml, footer on b.yaml, page on header."""
    files = {"a": tmp_path / "a.yaml", "b": tmp_path / "b.yaml"}
    for name, path in files.items():
        path.write_text(f"{name}: 1\n")
        graph.track_file(path)
    graph.add_node(element_node_id("header"), "element")
    graph.add_node(element_node_id("footer"), "element")
    graph.add_node(element_node_id("page"), "element")
    graph.add_edge(element_node_id("header"), file_node_id(files["a"]))
    graph.add_edge(element_node_id("footer"), file_node_id(files["b"]))
    graph.add_edge(element_node_id("page"), element_node_id("header"))
    return files


def compile_node(node_id: str, node: DependencyNode | None) -> str:
    return f"built {node_id}"


class TestDetectChanges:
    """Tests for change detection."""

    def test_nothing_changed(self, builder: IncrementalBuilder, project: dict[str, Path]) -> None:
        changes = builder.detect_changes(project.values())
        assert changes.changed == []
        assert changes.unchanged == sorted(p.as_posix() for p in project.values())
        assert changes.total_checked == 2

    def test_changed_and_new(
        self,
        builder: IncrementalBuilder,
        project: dict[str, Path],
        tmp_path: Path,
    ) -> None:
        project["a"].write_text("a: 2\n")
        extra = tmp_path / "c.yaml"
        extra.write_text("c: 1\n")

        changes = builder.detect_changes([*project.values(), extra])
        assert changes.changed == [project["a"].as_posix()]
        assert changes.new == [extra.as_posix()]
        assert changes.modified == [project["a"].as_posix(), extra.as_posix()]

    def test_deleted(self, builder: IncrementalBuilder, project: dict[str, Path]) -> None:
        project["b"].unlink()
        changes = builder.detect_changes(project.values())
        assert changes.deleted == [project["b"].as_posix()]

    def test_tracked_but_not_listed_is_deleted(
        self,
        builder: IncrementalBuilder,
        project: dict[str, Path],
    ) -> None:
        changes = builder.detect_changes([project["a"]])
        assert changes.deleted == [project["b"].as_posix()]
        assert changes.unchanged == [project["a"].as_posix()]

    def test_missing_untracked_path_ignored(
        self,
        builder: IncrementalBuilder,
        project: dict[str, Path],
        tmp_path: Path,
    ) -> None:
        changes = builder.detect_changes([*project.values(), tmp_path / "ghost.yaml"])
        assert changes.new == []
        assert changes.deleted == []


class TestPlan:
    """Tests for build planning."""

    def test_changed_file_rebuilds_dependents_only(
        self,
        builder: IncrementalBuilder,
        project: dict[str, Path],
    ) -> None:
        """Changing a.yaml rebuilds a.yaml, header and page; b.yaml and footer are skipped."""
        project["a"].write_text("a: 2\n")
        plan = builder.plan(project.values())

        a_node = file_node_id(project["a"])
        assert plan.must_rebuild == {a_node, element_node_id("header"), element_node_id("page")}
        assert plan.can_skip == {file_node_id(project["b"]), element_node_id("footer")}
        assert plan.build_order == [a_node, element_node_id("header"), element_node_id("page")]
        assert plan.affected.direct == {a_node}
        assert plan.affected.transitive == {element_node_id("header"), element_node_id("page")}
        assert plan.stats.nodes_to_rebuild == 3
        assert plan.stats.nodes_to_skip == 2
        assert plan.stats.files_changed == 1
        assert plan.stats.total_nodes == 5

    def test_no_changes(self, builder: IncrementalBuilder, project: dict[str, Path]) -> None:
        plan = builder.plan(project.values())
        assert plan.must_rebuild == frozenset()
        assert plan.build_order == []
        assert plan.stats.nodes_to_skip == 5

    def test_force_rebuild(self, builder: IncrementalBuilder, project: dict[str, Path]) -> None:
        plan = builder.plan(project.values(), force_rebuild=[element_node_id("footer")])
        assert plan.must_rebuild == {element_node_id("footer")}

    def test_new_file_planned(
        self,
        builder: IncrementalBuilder,
        project: dict[str, Path],
        tmp_path: Path,
    ) -> None:
        extra = tmp_path / "c.yaml"
        extra.write_text("c: 1\n")
        plan = builder.plan([*project.values(), extra])
        assert plan.build_order == [file_node_id(extra)]
        assert plan.stats.total_nodes == 6

    def test_deleted_file_rebuilds_dependents_only(
        self,
        builder: IncrementalBuilder,
        project: dict[str, Path],
    ) -> None:
        project["b"].unlink()
        plan = builder.plan([project["a"]])
        assert plan.build_order == [element_node_id("footer")]
        assert plan.affected.direct == {file_node_id(project["b"])}
        assert file_node_id(project["b"]) not in plan.can_skip
        assert plan.stats.total_nodes == 4

    def test_cycle_in_rebuild_set(
        self,
        builder: IncrementalBuilder,
        graph: DependencyGraph,
        project: dict[str, Path],
    ) -> None:
        graph.add_edge(element_node_id("header"), element_node_id("page"))
        project["a"].write_text("a: 2\n")
        with pytest.raises(CircularDependencyError) as exc_info:
            builder.plan(project.values())
        assert exc_info.value.remaining == [element_node_id("header"), element_node_id("page")]
        assert exc_info.value.order == [file_node_id(project["a"])]


class TestTopologicalSort:
    """Tests for topological_sort."""

    def test_ready_nodes_sorted(self) -> None:
        graph = DependencyGraph()
        graph.add_edge("c", "a")
        graph.add_edge("b", "a")
        assert topological_sort(graph, ["c", "b", "a"]) == ["a", "b", "c"]

    def test_outside_dependencies_ignored(self) -> None:
        graph = DependencyGraph()
        graph.add_edge("b", "outside")
        assert topological_sort(graph, ["b"]) == ["b"]

    @given(
        edges=st.lists(
            st.tuples(st.integers(0, 9), st.integers(0, 9)).filter(lambda e: e[0] > e[1]),
            max_size=25,
        ),
        subset=st.sets(st.integers(0, 9), min_size=1),
    )
    @settings(max_examples=50)
    def test_dependencies_come_first(
        self,
        edges: list[tuple[int, int]],
        subset: set[int],
    ) -> None:
        """For every edge (A depends on B) inside the set, B is ordered before A."""
        graph = DependencyGraph()
        for source, target in edges:
            graph.add_edge(f"n{source}", f"n{target}")
        node_ids = {f"n{i}" for i in subset}

        order = topological_sort(graph, node_ids)

        assert sorted(order) == sorted(node_ids)
        position = {node_id: index for index, node_id in enumerate(order)}
        for source, target in edges:
            a, b = f"n{source}", f"n{target}"
            if a in node_ids and b in node_ids:
                assert position[b] < position[a]


class TestExecute:
    """Tests for plan execution."""

    def test_compiles_in_order_and_caches(
        self,
        builder: IncrementalBuilder,
        cache: MemoryCache,
        project: dict[str, Path],
    ) -> None:
        project["a"].write_text("a: 2\n")
        plan = builder.plan(project.values())
        seen: list[str] = []

        def record(node_id: str, node: DependencyNode | None) -> str:
            seen.append(node_id)
            return f"built {node_id}"

        result = builder.execute(plan, record)

        assert seen == plan.build_order
        assert result.compiled == plan.build_order
        assert result.success
        assert result.outputs[element_node_id("page")] == f"built {element_node_id('page')}"
        assert cache.get(compiled_key(element_node_id("page"))) is not None

    def test_file_nodes_retracked(
        self,
        builder: IncrementalBuilder,
        graph: DependencyGraph,
        project: dict[str, Path],
    ) -> None:
        project["a"].write_text("a: 2\n")
        builder.execute(builder.plan(project.values()), compile_node)
        assert graph.file_changed(project["a"]) is False
        assert builder.plan(project.values()).must_rebuild == frozenset()

    def test_cached_output_skips(
        self,
        builder: IncrementalBuilder,
        cache: MemoryCache,
        project: dict[str, Path],
    ) -> None:
        cache.put(compiled_key(element_node_id("header")), "cached")
        project["a"].write_text("a: 2\n")
        result = builder.execute(builder.plan(project.values()), compile_node)
        assert result.skipped == [element_node_id("header")]
        assert result.stats.skipped == 1
        assert result.stats.compiled == 2

    def test_failure_is_isolated(
        self,
        builder: IncrementalBuilder,
        project: dict[str, Path],
    ) -> None:
        def flaky(node_id: str, node: DependencyNode | None) -> str:
            if node_id == element_node_id("header"):
                raise RuntimeError("bad template")
            return "ok"

        project["a"].write_text("a: 2\n")
        result = builder.execute(builder.plan(project.values()), flaky)

        assert not result.success
        assert result.failed == [element_node_id("header")]
        assert result.compiled == [file_node_id(project["a"]), element_node_id("page")]
        failure = result.errors[element_node_id("header")]
        assert failure.error == "bad template"
        assert failure.error_type == "RuntimeError"
        assert "RuntimeError" in failure.traceback

    def test_none_output_not_cached(
        self,
        builder: IncrementalBuilder,
        cache: MemoryCache,
        project: dict[str, Path],
    ) -> None:
        project["b"].write_text("b: 2\n")
        result = builder.execute(builder.plan(project.values()), lambda node_id, node: None)
        assert result.stats.compiled == 2
        assert result.outputs == {}
        assert len(cache) == 0

    def test_progress_callback(
        self,
        builder: IncrementalBuilder,
        project: dict[str, Path],
    ) -> None:
        calls: list[tuple[str, NodeStatus, int, int]] = []
        project["b"].write_text("b: 2\n")
        builder.execute(
            builder.plan(project.values()),
            compile_node,
            on_progress=lambda *args: calls.append(args),
        )
        assert calls == [
            (file_node_id(project["b"]), NodeStatus.COMPILED, 1, 2),
            (element_node_id("footer"), NodeStatus.COMPILED, 2, 2),
        ]


class TestBuild:
    """Tests for the full plan-invalidate-execute cycle."""

    def test_stale_outputs_evicted_before_execution(
        self,
        builder: IncrementalBuilder,
        cache: MemoryCache,
        project: dict[str, Path],
    ) -> None:
        first = builder.build(project.values(), compile_node, force_rebuild=["element:page"])
        assert first.compiled == [element_node_id("page")]

        project["a"].write_text("a: 2\n")
        cache.put(compiled_key(element_node_id("footer")), "kept")
        second = builder.build(project.values(), compile_node)

        assert second.compiled == [
            file_node_id(project["a"]),
            element_node_id("header"),
            element_node_id("page"),
        ]
        assert second.skipped == []
        assert cache.get(compiled_key(element_node_id("footer"))) == "kept"

    def test_forced_node_recompiled_despite_cache(
        self,
        builder: IncrementalBuilder,
        cache: MemoryCache,
        project: dict[str, Path],
    ) -> None:
        cache.put(compiled_key(element_node_id("footer")), "stale")
        result = builder.build(project.values(), compile_node, force_rebuild=["element:footer"])
        assert result.compiled == [element_node_id("footer")]
        assert cache.get(compiled_key(element_node_id("footer"))) == "built element:footer"

    def test_deleted_file_settles_after_one_build(
        self,
        builder: IncrementalBuilder,
        graph: DependencyGraph,
        cache: MemoryCache,
        project: dict[str, Path],
    ) -> None:
        """A deleted file is never compiled and is forgotten once its dependents are rebuilt."""
        seen: list[str] = []

        def record(node_id: str, node: DependencyNode | None) -> str:
            seen.append(node_id)
            return f"built {node_id}"

        b_node = file_node_id(project["b"])
        cache.put(compiled_key(b_node), "stale")
        cache.put(compiled_key(element_node_id("footer")), "stale")
        project["b"].unlink()

        first = builder.build([project["a"]], record)
        assert first.success
        assert first.plan.changes.deleted == [project["b"].as_posix()]
        assert seen == [element_node_id("footer")]
        assert b_node not in graph
        assert cache.get(compiled_key(b_node)) is None

        seen.clear()
        second = builder.build([project["a"]], record)
        assert second.plan.changes.deleted == []
        assert second.plan.must_rebuild == frozenset()
        assert seen == []


class TestReporting:
    """Tests for format_build_stats and estimate_build_time."""

    def test_success_report(
        self,
        builder: IncrementalBuilder,
        project: dict[str, Path],
    ) -> None:
        project["a"].write_text("a: 2\n")
        report = format_build_stats(builder.build(project.values(), compile_node))
        lines = report.splitlines()
        assert lines[0] == "=== Incremental Build Results ==="
        assert lines[1] == "Status: SUCCESS"
        assert "  Changed: 1 files" in lines
        assert "  Compiled: 3 nodes" in lines
        assert "Errors:" not in lines

    def test_failure_report(
        self,
        builder: IncrementalBuilder,
        project: dict[str, Path],
    ) -> None:
        def broken(node_id: str, node: DependencyNode | None) -> Any:
            raise ValueError("boom")

        project["b"].write_text("b: 2\n")
        report = format_build_stats(builder.build(project.values(), broken))
        assert "Status: FAILED" in report
        assert f"  {element_node_id('footer')}: boom" in report

    def test_estimate_default(self, builder: IncrementalBuilder, project: dict[str, Path]) -> None:
        project["a"].write_text("a: 2\n")
        plan = builder.plan(project.values())
        assert estimate_build_time(plan) == 30.0
        assert estimate_build_time(plan, avg_compile_ms=2.0) == 6.0

    def test_estimate_from_history(
        self,
        builder: IncrementalBuilder,
        project: dict[str, Path],
    ) -> None:
        project["a"].write_text("a: 2\n")
        plan = builder.plan(project.values())
        previous = builder.execute(plan, compile_node).model_copy(
            update={"total_duration_ms": 60}
        )
        assert estimate_build_time(plan, [previous]) == 60.0
