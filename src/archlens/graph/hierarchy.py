"""Hierarchy builder: unique nodes, containment links and footprint rollup."""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from archlens.graph.mapset import MapSet
from archlens.graph.model import EMPTY_FOOTPRINT, ComponentNode, Footprint
from archlens.graph.normalizer import dedupe_longest_paths, split_into_chunks

if TYPE_CHECKING:
    from collections.abc import Iterable

    from archlens.graph.model import ComponentRelationship, Graph, NormalizedPath, PathRecord

logger = logging.getLogger(__name__)


@dataclass
class ContainmentIndex:
    """Lookup tables over every observed ``CONTAINS`` relationship."""

    source_to_targets: dict[str, list[str]] = field(default_factory=dict)
    target_to_source: dict[str, str] = field(default_factory=dict)

    def add(self, rel: ComponentRelationship) -> None:
        if not rel.is_containment or rel.source == rel.target:
            return
        self.target_to_source[rel.target] = rel.source
        targets = self.source_to_targets.setdefault(rel.source, [])
        if rel.target not in targets:
            targets.append(rel.target)

    @classmethod
    def from_relationships(cls, relationships: Iterable[ComponentRelationship]) -> ContainmentIndex:
        index = cls()
        for rel in relationships:
            index.add(rel)
        return index

    @classmethod
    def from_records(cls, records: Iterable[PathRecord]) -> ContainmentIndex:
        """Build the index in one pass over the raw chains."""
        return cls.from_relationships(rel for record in records for rel in record.relationships)


@dataclass
class Hierarchy:
    """Output of the hierarchy builder for one processing pass."""

    nodes: MapSet[ComponentNode]
    records: list[NormalizedPath]
    index: ContainmentIndex
    selected_id: str | None = None

    @property
    def selected_node(self) -> ComponentNode | None:
        return self.nodes.get(self.selected_id)


def build_nodes(
    records: Iterable[PathRecord],
    context: Graph | None = None,
) -> MapSet[ComponentNode]:
    """Collect every source/target node; the first occurrence of an id wins.

    Nodes of the optional *context* graph are appended as copies so that
    relationships pointing outside the records can still be resolved.
    """
    nodes: MapSet[ComponentNode] = MapSet()
    for record in records:
        for descriptor in (record.source, record.target):
            if descriptor.id not in nodes:
                nodes.add(ComponentNode.from_descriptor(descriptor))
    if context is not None:
        for node in context.nodes:
            if node.id not in nodes:
                nodes.add(dataclasses.replace(node, parent_id=None, children_ids=[]))
    return nodes


def link_hierarchy(nodes: MapSet[ComponentNode], index: ContainmentIndex) -> None:
    """Assign parent and children ids from the containment index.

    Links to ids outside *nodes* are skipped.  A node without an incoming
    containment edge is a root.
    """
    skipped = 0
    for node in nodes:
        parent_id = index.target_to_source.get(node.id)
        if parent_id is not None and parent_id not in nodes:
            skipped += 1
            parent_id = None
        node.parent_id = parent_id
        node.children_ids = [
            child for child in index.source_to_targets.get(node.id, []) if child in nodes
        ]
    if skipped:
        logger.debug("Skipped %d containment links to unknown nodes", skipped)


def _sum_footprints(footprints: Iterable[Footprint]) -> Footprint:
    total = list(EMPTY_FOOTPRINT)
    for fp in footprints:
        for i, value in enumerate(fp):
            total[i] += value
    return total[0], total[1], total[2], total[3]


def rollup_footprint(nodes: MapSet[ComponentNode]) -> None:
    """Compute each non-leaf footprint as the sum of its children's.

    Works frontier by frontier from the leaves upward.  A parent joins the
    next frontier once all of its children are done, so every node is
    computed exactly once.
    """
    pending: dict[str, int] = {node.id: len(node.children_ids) for node in nodes}
    frontier = [node for node in nodes if node.is_leaf]
    done = len(frontier)

    while frontier:
        parents: MapSet[ComponentNode] = MapSet()
        for node in frontier:
            parent = nodes.get(node.parent_id)
            if parent is None:
                continue
            pending[parent.id] -= 1
            if pending[parent.id] == 0:
                parents.add(parent)
        for parent in parents:
            children = [nodes.get(child) for child in parent.children_ids]
            parent.footprint = _sum_footprints(c.footprint for c in children if c is not None)
        done += len(parents)
        frontier = parents.values()

    if done < len(nodes):
        logger.warning(
            "Footprint rollup skipped %d nodes: containment is not a forest",
            len(nodes) - done,
        )


def ancestors(nodes: MapSet[ComponentNode], node_id: str) -> list[ComponentNode]:
    """Return the ancestors of *node_id*, nearest first."""
    result: list[ComponentNode] = []
    seen = {node_id}
    node = nodes.get(node_id)
    while node is not None and node.parent_id is not None and node.parent_id not in seen:
        seen.add(node.parent_id)
        node = nodes.get(node.parent_id)
        if node is not None:
            result.append(node)
    return result


def build_hierarchy(
    records: list[PathRecord],
    selected_id: str | None = None,
    context: Graph | None = None,
) -> Hierarchy:
    """Run the full hierarchy pass: index, nodes, links, rollup, normalization."""
    index = ContainmentIndex.from_records(records)
    if context is not None:
        for edge in context.edges:
            index.add(edge)

    nodes = build_nodes(records, context)
    link_hierarchy(nodes, index)
    rollup_footprint(nodes)

    normalized = dedupe_longest_paths(split_into_chunks(records, selected_id))
    logger.debug(
        "Hierarchy built: %d nodes, %d normalized paths from %d records",
        len(nodes),
        len(normalized),
        len(records),
    )
    return Hierarchy(nodes=nodes, records=normalized, index=index, selected_id=selected_id)
