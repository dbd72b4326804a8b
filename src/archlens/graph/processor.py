"""Graph processor: depth abstraction, range filtering, merging, pruning and projection.

Turns the normalized records of a :class:`~archlens.graph.hierarchy.Hierarchy`
into the visible graph.  The stages run in a fixed order:

1. abstraction (collapse nodes deeper than ``max_depth`` onto their ancestor)
2. relationship range filtering (outgoing, then incoming)
3. edge collection and merging
4. node pruning
5. projection of hidden endpoints onto visible ancestors
6. optional self-edge removal
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from archlens.graph.hierarchy import ancestors
from archlens.graph.mapset import MapSet
from archlens.graph.model import Graph

if TYPE_CHECKING:
    from collections.abc import Iterable

    from archlens.graph.hierarchy import Hierarchy
    from archlens.graph.model import ComponentNode, ComponentRelationship, NormalizedPath

logger = logging.getLogger(__name__)

VALID_DIRECTIONS: frozenset[str] = frozenset({"outgoing", "incoming"})


@dataclass(frozen=True)
class Range:
    """Inclusive bounds; ``None`` leaves a side open."""

    min: int | None = None
    max: int | None = None

    @property
    def is_open(self) -> bool:
        return self.min is None and self.max is None

    def contains(self, value: int) -> bool:
        if self.min is not None and value < self.min:
            return False
        return not (self.max is not None and value > self.max)


@dataclass(frozen=True)
class ProcessingOptions:
    """Per-invocation configuration of the graph processor."""

    max_depth: int | None = None
    outgoing_range: Range = field(default_factory=Range)
    incoming_range: Range = field(default_factory=Range)
    self_edges: bool = True


@dataclass
class ProcessingResult:
    """The visible graph plus the replacement map used to build it."""

    graph: Graph
    replace_map: dict[str, str]


def _unique(values: Iterable[Any]) -> tuple[Any, ...]:
    return tuple(dict.fromkeys(values))


def merge_edge_group(edges: list[ComponentRelationship]) -> ComponentRelationship:
    """Collapse edges with the same endpoints into the first one."""
    first = edges[0]
    if len(edges) == 1:
        return first
    violations = first.violations
    for edge in edges[1:]:
        violations = violations.union(edge.violations)
    return dataclasses.replace(
        first,
        categories=_unique(c for e in edges for c in e.categories),
        reference_types=_unique(t for e in edges for t in e.reference_types),
        reference_keys=_unique(k for e in edges for k in e.reference_keys),
        weight=sum(e.weight for e in edges),
        violations=violations,
    )


def merge_duplicate_edges(edges: Iterable[ComponentRelationship]) -> MapSet[ComponentRelationship]:
    """Merge edges sharing (source, target) into one representative edge."""
    groups: dict[tuple[str, str], list[ComponentRelationship]] = {}
    for edge in edges:
        groups.setdefault(edge.endpoints, []).append(edge)
    return MapSet(merge_edge_group(group) for group in groups.values())


def filter_self_edges(edges: MapSet[ComponentRelationship]) -> MapSet[ComponentRelationship]:
    """Drop edges whose source equals their target."""
    return edges.filter(lambda e: e.source != e.target)


class GraphProcessor:
    """Build the visible graph from one hierarchy pass."""

    def __init__(self, hierarchy: Hierarchy) -> None:
        self.original = hierarchy

    # -- abstraction --------------------------------------------------------

    def compute_abstraction_map(self, max_depth: int) -> dict[str, str]:
        """Map every node deeper than *max_depth* to its ancestor at *max_depth*.

        Nodes without such an ancestor stay unmapped.
        """
        nodes = self.original.nodes
        replace_map: dict[str, str] = {}
        for node in nodes:
            if node.depth <= max_depth:
                continue
            for ancestor in ancestors(nodes, node.id):
                if ancestor.depth == max_depth:
                    replace_map[node.id] = ancestor.id
                    break
        logger.debug("Abstraction at depth %d maps %d nodes", max_depth, len(replace_map))
        return replace_map

    @staticmethod
    def _rewrite(edge: ComponentRelationship, replace_map: dict[str, str]) -> ComponentRelationship:
        source = replace_map.get(edge.source, edge.source)
        target = replace_map.get(edge.target, edge.target)
        if (source, target) == edge.endpoints:
            return edge
        return dataclasses.replace(edge, source=source, target=target)

    def apply_abstraction(
        self,
        records: list[NormalizedPath],
        replace_map: dict[str, str],
    ) -> list[NormalizedPath]:
        """Rewrite dependency-edge endpoints through *replace_map*.

        Containment runs are left untouched and rewritten edges are not
        merged here.
        """
        result: list[NormalizedPath] = []
        for record in records:
            chunks = tuple(
                chunk
                if chunk and chunk[0].is_containment
                else tuple(self._rewrite(edge, replace_map) for edge in chunk)
                for chunk in record.dependency_chunks
            )
            result.append(
                dataclasses.replace(
                    record,
                    dependency_chunks=chunks,
                    origin_id=replace_map.get(record.origin_id, record.origin_id),
                )
            )
        return result

    # -- range filtering ----------------------------------------------------

    def apply_relationship_range_filter(
        self,
        records: list[NormalizedPath],
        direction: str,
        min_relationships: int | None = None,
        max_relationships: int | None = None,
    ) -> list[NormalizedPath]:
        """Drop records whose origin node has too few or too many neighbours.

        Neighbours are distinct nodes reached over dependency edges in
        *direction* (``"outgoing"`` or ``"incoming"``); several edges to the
        same neighbour count once.
        """
        if direction not in VALID_DIRECTIONS:
            msg = f"invalid direction '{direction}', must be one of {sorted(VALID_DIRECTIONS)}"
            raise ValueError(msg)
        bounds = Range(min_relationships, max_relationships)
        if bounds.is_open:
            return records

        neighbours: dict[str, set[str]] = {}
        for record in records:
            for edge in record.dependency_edges:
                if edge.source == edge.target:
                    continue
                if direction == "outgoing":
                    neighbours.setdefault(edge.source, set()).add(edge.target)
                else:
                    neighbours.setdefault(edge.target, set()).add(edge.source)

        kept = [r for r in records if bounds.contains(len(neighbours.get(r.origin_id, ())))]
        logger.debug(
            "Range filter %s [%s, %s] kept %d of %d records",
            direction,
            min_relationships,
            max_relationships,
            len(kept),
            len(records),
        )
        return kept

    # -- edges --------------------------------------------------------------

    @staticmethod
    def collect_edges(records: Iterable[NormalizedPath]) -> MapSet[ComponentRelationship]:
        """Flatten the dependency edges of all records, unique by id."""
        edges: MapSet[ComponentRelationship] = MapSet()
        for record in records:
            for edge in record.dependency_edges:
                edges.setdefault(edge)
        return edges

    # -- visibility ---------------------------------------------------------

    @staticmethod
    def _displayable(node: ComponentNode, max_depth: int | None) -> bool:
        return max_depth is None or node.depth <= max_depth

    def prune_unreferenced_nodes(
        self,
        nodes: MapSet[ComponentNode],
        edges: MapSet[ComponentRelationship],
        max_depth: int | None = None,
    ) -> MapSet[ComponentNode]:
        """Keep edge endpoints, the selected node and the ancestors linking them.

        Ancestors are only kept strictly below the selected node, so the
        selected subtree stays connected without pulling in the scope above.
        """
        selected_id = self.original.selected_id
        keep: set[str] = set()
        for edge in edges:
            for node_id in edge.endpoints:
                node = nodes.get(node_id)
                if node is not None and self._displayable(node, max_depth):
                    keep.add(node_id)

        if selected_id is not None and selected_id in nodes:
            keep.add(selected_id)
            for node_id in list(keep):
                chain = ancestors(nodes, node_id)
                chain_ids = [a.id for a in chain]
                if selected_id not in chain_ids:
                    continue
                keep.update(chain_ids[: chain_ids.index(selected_id)])

        return nodes.filter(lambda n: n.id in keep)

    def project_onto_visible_ancestors(
        self,
        nodes: MapSet[ComponentNode],
        edges: MapSet[ComponentRelationship],
        max_depth: int | None = None,
    ) -> tuple[MapSet[ComponentNode], MapSet[ComponentRelationship]]:
        """Rewrite hidden endpoints to their nearest visible ancestor.

        An ancestor qualifies when it is already visible or is displayable at
        *max_depth*; it is then added to the node set.  Edges with an endpoint
        that has no qualifying ancestor are dropped.
        """
        arena = self.original.nodes
        visible = set(nodes.ids())
        resolved: dict[str, str | None] = {}

        def resolve(node_id: str) -> str | None:
            if node_id in visible:
                return node_id
            if node_id not in resolved:
                resolved[node_id] = None
                for ancestor in ancestors(arena, node_id):
                    if ancestor.id in visible or self._displayable(ancestor, max_depth):
                        visible.add(ancestor.id)
                        resolved[node_id] = ancestor.id
                        break
            return resolved[node_id]

        projected: list[ComponentRelationship] = []
        dropped = 0
        for edge in edges:
            source = resolve(edge.source)
            target = resolve(edge.target)
            if source is None or target is None:
                dropped += 1
                continue
            if (source, target) == edge.endpoints:
                projected.append(edge)
            else:
                projected.append(dataclasses.replace(edge, source=source, target=target))
        if dropped:
            logger.debug("Projection dropped %d edges without a visible ancestor", dropped)

        new_nodes = arena.filter(lambda n: n.id in visible)
        return new_nodes, merge_duplicate_edges(projected)

    # -- pipeline -----------------------------------------------------------

    def process(
        self,
        options: ProcessingOptions | None = None,
        name: str = "Dependency graph",
    ) -> ProcessingResult:
        """Run all stages in order and return the visible graph."""
        options = options or ProcessingOptions()
        records = self.original.records

        replace_map: dict[str, str] = {}
        if options.max_depth is not None:
            replace_map = self.compute_abstraction_map(options.max_depth)
        if replace_map:
            records = self.apply_abstraction(records, replace_map)

        records = self.apply_relationship_range_filter(
            records, "outgoing", options.outgoing_range.min, options.outgoing_range.max
        )
        records = self.apply_relationship_range_filter(
            records, "incoming", options.incoming_range.min, options.incoming_range.max
        )

        edges = merge_duplicate_edges(self.collect_edges(records))
        nodes = self.prune_unreferenced_nodes(self.original.nodes, edges, options.max_depth)
        nodes, edges = self.project_onto_visible_ancestors(nodes, edges, options.max_depth)

        if not options.self_edges:
            edges = filter_self_edges(edges)

        logger.debug("Visible graph '%s': %d nodes, %d edges", name, len(nodes), len(edges))
        graph = Graph(name=name, nodes=nodes, edges=edges)
        return ProcessingResult(graph=graph, replace_map=replace_map)

    def format_tree(self, name: str) -> Graph:
        """Return all nodes with the containment edges of the records."""
        nodes = self.original.nodes
        edges: MapSet[ComponentRelationship] = MapSet()
        for record in self.original.records:
            for edge in record.containment_edges:
                if edge.source in nodes and edge.target in nodes:
                    edges.setdefault(edge)
            for chunk in record.dependency_chunks:
                for edge in chunk:
                    if edge.is_containment and edge.source in nodes and edge.target in nodes:
                        edges.setdefault(edge)
        return Graph(name=name, nodes=nodes.copy(), edges=edges)
