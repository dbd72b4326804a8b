"""Dependency cycle detection and mapping onto the visible graph."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from archlens.graph.model import ComponentRelationship, NormalizedPath
    from archlens.violations.base import EdgeResolver

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 10
# Edge expansions one search may perform before it gives up.
DEFAULT_MAX_STEPS = 200_000


@dataclass(frozen=True)
class DependencyCycle:
    """An elementary cycle as an ordered sequence of dependency edges."""

    edges: tuple[ComponentRelationship, ...]

    @property
    def node_ids(self) -> tuple[str, ...]:
        return tuple(edge.source for edge in self.edges)

    @property
    def edge_ids(self) -> tuple[str, ...]:
        return tuple(edge.id for edge in self.edges)


@dataclass
class CycleSearchResult:
    """Cycles found by a bounded search, plus whether the bound was hit."""

    cycles: list[DependencyCycle] = field(default_factory=list)
    truncated: bool = False
    diagnostics: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class CycleViolation:
    """A cycle reported on the visible graph."""

    edge_ids: tuple[str, ...]
    node_ids: tuple[str, ...]

    @property
    def message(self) -> str:
        path = " → ".join([*self.node_ids, self.node_ids[0]]) if self.node_ids else ""
        return f"Circular dependency detected: {path}"


def _normalize_cycle(edge_ids: list[str]) -> tuple[str, ...]:
    """Rotate a cycle so that its smallest edge id comes first.

    This makes A->B->C->A and B->C->A->B the same cycle.
    """
    if not edge_ids:
        return ()
    min_idx = edge_ids.index(min(edge_ids))
    return tuple(edge_ids[min_idx:] + edge_ids[:min_idx])


def _build_adjacency(
    edges: Iterable[ComponentRelationship],
) -> dict[str, list[ComponentRelationship]]:
    adj: dict[str, list[ComponentRelationship]] = {}
    seen: set[str] = set()
    for edge in edges:
        if edge.is_containment or edge.id in seen:
            continue
        seen.add(edge.id)
        adj.setdefault(edge.source, []).append(edge)
    return adj


def _truncate(result: CycleSearchResult, msg: str) -> CycleSearchResult:
    logger.warning(msg)
    result.truncated = True
    result.diagnostics.append(msg)
    return result


def find_cycles(
    edges: Iterable[ComponentRelationship],
    *,
    max_depth: int = DEFAULT_MAX_DEPTH,
    max_cycles: int | None = None,
    max_steps: int | None = DEFAULT_MAX_STEPS,
) -> CycleSearchResult:
    """Enumerate elementary cycles with an iterative depth-first search.

    Paths longer than *max_depth* nodes are not extended, at most
    *max_cycles* cycles are collected and at most *max_steps* edges are
    expanded in total.  Hitting any bound marks the result as truncated
    and logs a warning; the cycles found so far are still returned.
    """
    adj = _build_adjacency(edges)
    all_nodes: set[str] = set(adj)
    for out_edges in adj.values():
        all_nodes.update(e.target for e in out_edges)

    result = CycleSearchResult()
    seen_cycles: set[tuple[str, ...]] = set()
    depth_hit = False
    steps = 0

    for start_node in sorted(all_nodes):
        # Stack entries: (current node, node path, edge path)
        stack: list[tuple[str, list[str], list[ComponentRelationship]]] = [
            (start_node, [start_node], [])
        ]
        while stack:
            current, path, edge_path = stack.pop()
            for edge in adj.get(current, []):
                steps += 1
                if max_steps is not None and steps > max_steps:
                    return _truncate(
                        result, f"Cycle search stopped after exploring {max_steps} edges"
                    )
                neighbor = edge.target
                if neighbor in path:
                    cycle_edges = [*edge_path[path.index(neighbor) :], edge]
                    normalized = _normalize_cycle([e.id for e in cycle_edges])
                    if normalized in seen_cycles:
                        continue
                    seen_cycles.add(normalized)
                    result.cycles.append(DependencyCycle(edges=tuple(cycle_edges)))
                    if max_cycles is not None and len(result.cycles) >= max_cycles:
                        return _truncate(
                            result, f"Cycle search stopped after {max_cycles} cycles"
                        )
                elif len(path) < max_depth:
                    stack.append((neighbor, [*path, neighbor], [*edge_path, edge]))
                else:
                    depth_hit = True

    if depth_hit:
        _truncate(
            result,
            f"Cycle search reached max depth {max_depth}; longer cycles were not explored",
        )
    return result


def find_cycles_in_records(
    records: Iterable[NormalizedPath],
    *,
    max_depth: int = DEFAULT_MAX_DEPTH,
    max_cycles: int | None = None,
    max_steps: int | None = DEFAULT_MAX_STEPS,
) -> CycleSearchResult:
    """Search the full dependency graph spanned by the original records."""
    edges = [edge for record in records for edge in record.dependency_edges]
    return find_cycles(edges, max_depth=max_depth, max_cycles=max_cycles, max_steps=max_steps)


def map_cycles_to_visible_graph(
    cycles: Iterable[DependencyCycle],
    resolver: EdgeResolver,
) -> list[CycleViolation]:
    """Express each cycle in visible edge ids.

    A cycle is discarded when it collapses into fewer than two visible
    nodes, or when one of its edges has no visible counterpart.  Cycles
    that end up on the same set of visible edges are reported once.
    """
    violations: list[CycleViolation] = []
    seen: set[frozenset[str]] = set()

    for cycle in cycles:
        visible_ids: list[str] = []
        node_ids: list[str] = []
        complete = True
        for edge in cycle.edges:
            endpoints = resolver.resolve_endpoints(edge)
            if endpoints is None:
                complete = False
                break
            source, target = endpoints
            if source not in node_ids:
                node_ids.append(source)
            visible = resolver.find_edge(source, target)
            if visible is None:
                if source == target:
                    continue
                complete = False
                break
            if visible.id not in visible_ids:
                visible_ids.append(visible.id)

        if not complete or len(node_ids) < 2:
            continue
        key = frozenset(visible_ids)
        if key in seen:
            continue
        seen.add(key)
        violations.append(CycleViolation(edge_ids=tuple(visible_ids), node_ids=tuple(node_ids)))

    logger.debug("Mapped cycles onto %d visible cycle violations", len(violations))
    return violations
