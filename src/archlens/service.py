"""Visualization service: retrieve paths, build the visible graph, attach violations."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeVar

import anyio

from archlens.config import Config
from archlens.graph.hierarchy import build_hierarchy
from archlens.graph.merger import merge_graphs
from archlens.graph.model import DependencyCategory
from archlens.graph.processor import GraphProcessor, ProcessingOptions, Range
from archlens.store import MAX_CONTAINMENT_HOPS, RelationFilter, Scope
from archlens.violations.base import (
    EdgeResolver,
    GraphWithViolations,
    ViolationReport,
    mark_edges,
)
from archlens.violations.cycles import find_cycles_in_records, map_cycles_to_visible_graph
from archlens.violations.layers import LayerViolationDetector

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from archlens.graph.hierarchy import Hierarchy
    from archlens.graph.model import Graph, PathRecord
    from archlens.store import GraphSource

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Containment levels fetched below the selected node to resolve dependency chains.
CONTEXT_DEPTH = MAX_CONTAINMENT_HOPS + 1


@dataclass(frozen=True)
class QueryOptions:
    """What to show around the selected node."""

    id: str
    layer_depth: int = 1
    dependency_depth: int = 1
    show_selected_internal_relations: bool = False
    show_domain_internal_relations: bool = True
    show_external_relations: bool = True
    show_outgoing: bool = True
    show_incoming: bool = False
    outgoing_range: Range = field(default_factory=Range)
    incoming_range: Range = field(default_factory=Range)
    self_edges: bool = True
    show_weak_dependencies: bool = True
    show_strong_dependencies: bool = True
    show_entity_dependencies: bool = True

    @property
    def categories(self) -> frozenset[DependencyCategory]:
        selected: set[DependencyCategory] = set()
        if self.show_weak_dependencies:
            selected.add(DependencyCategory.WEAK)
        if self.show_strong_dependencies:
            selected.add(DependencyCategory.STRONG)
        if self.show_entity_dependencies:
            selected.add(DependencyCategory.ENTITY)
        return frozenset(selected)

    @property
    def relations(self) -> RelationFilter:
        return RelationFilter(
            selected_internal=self.show_selected_internal_relations,
            domain_internal=self.show_domain_internal_relations,
            external=self.show_external_relations,
        )


async def gather(*calls: Callable[[], Awaitable[T]]) -> list[T]:
    """Run *calls* concurrently and return their results in order.

    The first failure is re-raised as is once every call has finished.
    """
    results: list[T | None] = [None] * len(calls)
    errors: list[Exception] = []

    async def _run(idx: int, call: Callable[[], Awaitable[T]]) -> None:
        try:
            results[idx] = await call()
        except Exception as exc:  # noqa: BLE001
            errors.append(exc)

    async with anyio.create_task_group() as tg:
        for idx, call in enumerate(calls):
            tg.start_soon(_run, idx, call)

    if errors:
        raise errors[0]
    return results  # type: ignore[return-value]


class VisualizationService:
    """Build bounded dependency graphs around a selected node."""

    def __init__(self, source: GraphSource, config: Config | None = None) -> None:
        self.source = source
        self.config = config or Config()

    async def get_parents(self, node_id: str) -> Graph:
        records = await self.source.fetch_paths(Scope(kind="parents", node_id=node_id))
        hierarchy = build_hierarchy(records, node_id)
        return GraphProcessor(hierarchy).format_tree("All parents")

    async def get_children(self, node_id: str, depth: int) -> Graph:
        records = await self.source.fetch_paths(
            Scope(kind="children", node_id=node_id, depth=depth)
        )
        hierarchy = build_hierarchy(records, node_id)
        return GraphProcessor(hierarchy).format_tree("All sublayers and modules")

    async def get_graph_violations(
        self,
        hierarchy: Hierarchy,
        graph: Graph,
        replace_map: dict[str, str] | None = None,
    ) -> GraphWithViolations:
        """Run both detectors on the original records and flag the visible edges."""
        resolver = EdgeResolver(hierarchy.nodes, graph, replace_map)
        report = ViolationReport()

        search = await self.source.fetch_dependency_cycles()
        if search is None:
            search = find_cycles_in_records(
                hierarchy.records,
                max_depth=self.config.cycles.max_depth,
                max_cycles=self.config.cycles.max_cycles,
                max_steps=self.config.cycles.max_steps,
            )
        report.diagnostics.extend(search.diagnostics)
        report.dependency_cycles = map_cycles_to_visible_graph(search.cycles, resolver)

        detector = LayerViolationDetector(self.config.layer_policy, hierarchy.nodes)
        detector.mark_violations(hierarchy.records)
        report.sub_layers = detector.remap_to_visible_graph(resolver)

        graph = mark_edges(
            graph,
            (eid for cycle in report.dependency_cycles for eid in cycle.edge_ids),
            dependency_cycle=True,
        )
        graph = mark_edges(graph, (v.edge_id for v in report.sub_layers), sub_layer=True)
        return GraphWithViolations(graph=graph, violations=report)

    async def process_graph_and_get_violations(
        self,
        records: list[PathRecord],
        selected_id: str | None = None,
        options: ProcessingOptions | None = None,
        tree_graph: Graph | None = None,
    ) -> GraphWithViolations:
        hierarchy = build_hierarchy(records, selected_id, context=tree_graph)
        result = GraphProcessor(hierarchy).process(options or self.config.processing)
        return await self.get_graph_violations(hierarchy, result.graph, result.replace_map)

    def _processing_options(self, query: QueryOptions, tree_graph: Graph) -> ProcessingOptions:
        """Translate the query into processor options.

        ``layer_depth`` counts levels below the selected node, while the
        processor works with absolute depths.
        """
        selected = tree_graph.nodes.get(query.id)
        base_depth = selected.depth if selected is not None else 0
        return ProcessingOptions(
            max_depth=base_depth + query.layer_depth,
            outgoing_range=query.outgoing_range,
            incoming_range=query.incoming_range,
            self_edges=query.self_edges,
        )

    async def get_graph_from_selected_node(self, query: QueryOptions) -> GraphWithViolations:
        """Tree around the selected node merged with its dependency graph."""
        parents, children, subtree = await gather(
            lambda: self.get_parents(query.id),
            lambda: self.get_children(query.id, query.layer_depth),
            lambda: self.get_children(query.id, CONTEXT_DEPTH),
        )
        tree_graph = merge_graphs([parents, children])
        context = merge_graphs([parents, subtree])

        scopes = []
        if query.show_outgoing:
            scopes.append("outgoing")
        if query.show_incoming:
            scopes.append("incoming")

        def _fetch(kind: str) -> Callable[[], Awaitable[list[PathRecord]]]:
            scope = Scope(
                kind=kind,
                node_id=query.id,
                dependency_depth=query.dependency_depth,
                relations=query.relations,
                categories=query.categories,
            )
            return lambda: self.source.fetch_paths(scope)

        record_lists = await gather(*(_fetch(kind) for kind in scopes))
        records = [record for chunk in record_lists for record in chunk]
        logger.debug("Retrieved %d dependency records for %s", len(records), query.id)

        result = await self.process_graph_and_get_violations(
            records,
            query.id,
            self._processing_options(query, tree_graph),
            context,
        )
        graph = merge_graphs([tree_graph, result.graph], name="Dependency graph")
        return GraphWithViolations(graph=graph, violations=result.violations)
