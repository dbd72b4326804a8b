"""Tests for archlens.violations.cycles — bounded cycle search and visible mapping.

Tests cover:
- Simple, triangle and self-loop cycles
- Rotation dedup
- max_depth / max_cycles / max_steps truncation with diagnostics
- Mapping onto an abstracted graph (absorbed cycles, dedup, pruned edges)
"""

from __future__ import annotations

import pytest

from archlens.graph.hierarchy import build_hierarchy
from archlens.graph.model import CONTAINS, ComponentRelationship, NodeDescriptor, PathRecord
from archlens.graph.processor import GraphProcessor, ProcessingOptions
from archlens.violations.base import EdgeResolver
from archlens.violations.cycles import (
    CycleViolation,
    DependencyCycle,
    find_cycles,
    find_cycles_in_records,
    map_cycles_to_visible_graph,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _dep(rel_id: str, source: str, target: str) -> ComponentRelationship:
    return ComponentRelationship(id=rel_id, source=source, target=target, type="CALLS")


def _contains(source: str, target: str) -> ComponentRelationship:
    return ComponentRelationship(
        id=f"c_{source}_{target}", source=source, target=target, type=CONTAINS
    )


def _desc(node_id: str, depth: int) -> NodeDescriptor:
    label = {0: "Domain", 1: "Layer"}.get(depth, "Module")
    return NodeDescriptor(id=node_id, labels=(label,), properties={"depth": depth})


def _records(
    parent_of: dict[str, str],
    depths: dict[str, int],
    edges: list[ComponentRelationship],
) -> list[PathRecord]:
    """Containment records from each node's parent plus one record per dependency."""
    records = [
        PathRecord(
            source=_desc(parent, depths[parent]),
            relationships=(_contains(parent, child),),
            target=_desc(child, depths[child]),
        )
        for child, parent in parent_of.items()
    ]
    records.extend(
        PathRecord(
            source=_desc(e.source, depths[e.source]),
            relationships=(e,),
            target=_desc(e.target, depths[e.target]),
        )
        for e in edges
    )
    return records


# ---------------------------------------------------------------------------
# find_cycles
# ---------------------------------------------------------------------------


class TestFindCycles:
    def test_simple_cycle(self) -> None:
        result = find_cycles([_dep("e1", "a", "b"), _dep("e2", "b", "a")])
        assert len(result.cycles) == 1
        assert set(result.cycles[0].edge_ids) == {"e1", "e2"}
        assert not result.truncated

    def test_triangle_reported_once(self) -> None:
        edges = [_dep("e1", "x", "y"), _dep("e2", "y", "z"), _dep("e3", "z", "x")]
        result = find_cycles(edges)
        assert len(result.cycles) == 1
        cycle = result.cycles[0]
        assert set(cycle.node_ids) == {"x", "y", "z"}
        # edges chain: each target is the next source
        for current, nxt in zip(cycle.edges, (*cycle.edges[1:], cycle.edges[0])):
            assert current.target == nxt.source

    def test_self_loop(self) -> None:
        result = find_cycles([_dep("e1", "a", "a")])
        assert [c.edge_ids for c in result.cycles] == [("e1",)]

    def test_acyclic(self) -> None:
        result = find_cycles([_dep("e1", "a", "b"), _dep("e2", "b", "c")])
        assert result.cycles == []

    def test_containment_ignored(self) -> None:
        result = find_cycles([_contains("a", "b"), _dep("e1", "b", "a")])
        assert result.cycles == []

    def test_two_cycles_sharing_a_node(self) -> None:
        edges = [
            _dep("e1", "a", "b"), _dep("e2", "b", "a"),
            _dep("e3", "a", "c"), _dep("e4", "c", "a"),
        ]
        assert len(find_cycles(edges).cycles) == 2

    def test_max_depth_truncates(self, caplog: pytest.LogCaptureFixture) -> None:
        nodes = [f"n{i}" for i in range(6)]
        edges = [_dep(f"e{i}", nodes[i], nodes[(i + 1) % 6]) for i in range(6)]
        with caplog.at_level("WARNING"):
            result = find_cycles(edges, max_depth=3)
        assert result.cycles == []
        assert result.truncated
        assert result.diagnostics
        assert "max depth" in caplog.text

        assert len(find_cycles(edges, max_depth=6).cycles) == 1

    def test_max_cycles_keeps_found(self) -> None:
        edges = [
            _dep("e1", "a", "b"), _dep("e2", "b", "a"),
            _dep("e3", "c", "d"), _dep("e4", "d", "c"),
        ]
        result = find_cycles(edges, max_cycles=1)
        assert len(result.cycles) == 1
        assert result.truncated

    def test_dense_graph_stops_at_default_budget(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        nodes = [f"n{i}" for i in range(9)]
        edges = [_dep(f"{s}_{t}", s, t) for s in nodes for t in nodes if s != t]
        with caplog.at_level("WARNING"):
            result = find_cycles(edges)
        assert result.truncated
        assert result.cycles
        assert any("exploring" in d for d in result.diagnostics)
        assert "exploring" in caplog.text

    def test_max_steps_keeps_found(self) -> None:
        edges = [
            _dep("e1", "a", "b"), _dep("e2", "b", "a"),
            _dep("e3", "c", "d"), _dep("e4", "d", "c"),
        ]
        result = find_cycles(edges, max_steps=2)
        assert [c.edge_ids for c in result.cycles] == [("e1", "e2")]
        assert result.truncated
        assert not find_cycles(edges, max_steps=None).truncated

    def test_from_records(self) -> None:
        edges = [_dep("e1", "a", "b"), _dep("e2", "b", "a")]
        hierarchy = build_hierarchy(_records({}, {"a": 2, "b": 2}, edges))
        assert len(find_cycles_in_records(hierarchy.records).cycles) == 1


# ---------------------------------------------------------------------------
# map_cycles_to_visible_graph
# ---------------------------------------------------------------------------

# d -> l1 -> {x, y, z}, d -> l2 -> w
_PARENTS = {"l1": "d", "l2": "d", "x": "l1", "y": "l1", "z": "l1", "w": "l2"}
_DEPTHS = {"d": 0, "l1": 1, "l2": 1, "x": 2, "y": 2, "z": 2, "w": 2}


def _violations(
    edges: list[ComponentRelationship], max_depth: int | None
) -> list[CycleViolation]:
    hierarchy = build_hierarchy(_records(_PARENTS, _DEPTHS, edges))
    result = GraphProcessor(hierarchy).process(ProcessingOptions(max_depth=max_depth))
    resolver = EdgeResolver(hierarchy.nodes, result.graph, result.replace_map)
    cycles = find_cycles_in_records(hierarchy.records).cycles
    return map_cycles_to_visible_graph(cycles, resolver)


class TestMapCycles:
    def test_cycle_inside_abstracted_node_vanishes(self) -> None:
        edges = [_dep("e1", "x", "y"), _dep("e2", "y", "z"), _dep("e3", "z", "x")]
        assert _violations(edges, max_depth=1) == []

    def test_cycle_kept_without_abstraction(self) -> None:
        edges = [_dep("e1", "x", "y"), _dep("e2", "y", "z"), _dep("e3", "z", "x")]
        violations = _violations(edges, max_depth=None)
        assert len(violations) == 1
        assert set(violations[0].edge_ids) == {"e1", "e2", "e3"}
        assert violations[0].message.startswith("Circular dependency detected:")

    def test_cycles_collapsing_onto_same_edges_reported_once(self) -> None:
        edges = [
            _dep("e1", "x", "w"), _dep("e2", "w", "x"),
            _dep("e3", "y", "w"), _dep("e4", "w", "y"),
        ]
        violations = _violations(edges, max_depth=1)
        assert len(violations) == 1
        assert set(violations[0].node_ids) == {"l1", "l2"}
        assert len(violations[0].edge_ids) == 2

    def test_cycle_through_internal_edge_keeps_cross_edges(self) -> None:
        # x -> y stays inside l1; y -> w -> x crosses layers
        edges = [_dep("e1", "x", "y"), _dep("e2", "y", "w"), _dep("e3", "w", "x")]
        violations = _violations(edges, max_depth=1)
        assert len(violations) == 1
        assert set(violations[0].node_ids) == {"l1", "l2"}

    def test_cycle_with_pruned_edge_dropped(self) -> None:
        hierarchy = build_hierarchy(_records(_PARENTS, _DEPTHS, [_dep("e1", "x", "w")]))
        result = GraphProcessor(hierarchy).process()
        resolver = EdgeResolver(hierarchy.nodes, result.graph, result.replace_map)
        # the returning edge never made it into the visible graph
        cycle = DependencyCycle(edges=(_dep("e1", "x", "w"), _dep("gone", "w", "x")))
        assert map_cycles_to_visible_graph([cycle], resolver) == []
