"""Shared violation plumbing: visible-edge resolution, flag marking, reports."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from archlens.graph.hierarchy import ancestors
from archlens.graph.mapset import MapSet
from archlens.graph.model import Graph

if TYPE_CHECKING:
    from collections.abc import Iterable

    from archlens.graph.model import ComponentNode, ComponentRelationship
    from archlens.violations.cycles import CycleViolation
    from archlens.violations.layers import LayerViolation


@dataclass
class ViolationReport:
    """Both violation lists, expressed in visible edge ids."""

    dependency_cycles: list[CycleViolation] = field(default_factory=list)
    sub_layers: list[LayerViolation] = field(default_factory=list)
    diagnostics: list[str] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.dependency_cycles) + len(self.sub_layers)


@dataclass
class GraphWithViolations:
    """Final graph together with its violation report."""

    graph: Graph
    violations: ViolationReport = field(default_factory=ViolationReport)


class EdgeResolver:
    """Find the visible edge that stands for a pre-abstraction edge.

    Endpoints go through the replacement map first, then up the
    containment chain to the nearest node present in the visible graph,
    the same way display edges were rewritten.
    """

    def __init__(
        self,
        arena: MapSet[ComponentNode],
        graph: Graph,
        replace_map: dict[str, str] | None = None,
    ) -> None:
        self.arena = arena
        self.graph = graph
        self.replace_map = replace_map or {}
        self._by_endpoints: dict[tuple[str, str], ComponentRelationship] = {}
        for edge in graph.edges:
            self._by_endpoints.setdefault(edge.endpoints, edge)
        self._node_cache: dict[str, str | None] = {}

    def resolve_node(self, node_id: str) -> str | None:
        """Return the visible node standing for *node_id*, if any."""
        if node_id in self._node_cache:
            return self._node_cache[node_id]
        mapped = self.replace_map.get(node_id, node_id)
        resolved: str | None = None
        if mapped in self.graph.nodes:
            resolved = mapped
        else:
            for ancestor in ancestors(self.arena, mapped):
                if ancestor.id in self.graph.nodes:
                    resolved = ancestor.id
                    break
        self._node_cache[node_id] = resolved
        return resolved

    def resolve_endpoints(self, edge: ComponentRelationship) -> tuple[str, str] | None:
        source = self.resolve_node(edge.source)
        target = self.resolve_node(edge.target)
        if source is None or target is None:
            return None
        return source, target

    def find_edge(self, source: str, target: str) -> ComponentRelationship | None:
        return self._by_endpoints.get((source, target))

    def remap_to_visible_graph(self, edge: ComponentRelationship) -> ComponentRelationship | None:
        """Return the visible edge for *edge*, or ``None`` when it was pruned."""
        endpoints = self.resolve_endpoints(edge)
        if endpoints is None:
            return None
        return self.find_edge(*endpoints)


def mark_edges(
    graph: Graph,
    edge_ids: Iterable[str],
    *,
    dependency_cycle: bool = False,
    sub_layer: bool = False,
) -> Graph:
    """Return a copy of *graph* with the given flags set on *edge_ids*."""
    targets = set(edge_ids)
    if not targets:
        return graph
    edges: MapSet[ComponentRelationship] = MapSet()
    for edge in graph.edges:
        if edge.id in targets:
            flags = dataclasses.replace(
                edge.violations,
                dependency_cycle=edge.violations.dependency_cycle or dependency_cycle,
                sub_layer=edge.violations.sub_layer or sub_layer,
            )
            edge = dataclasses.replace(edge, violations=flags)
        edges.add(edge)
    return Graph(name=graph.name, nodes=graph.nodes, edges=edges)
