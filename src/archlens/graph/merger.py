"""Graph merger: union several partial graphs by id."""

from __future__ import annotations

from typing import TYPE_CHECKING

from archlens.graph.model import Graph

if TYPE_CHECKING:
    from collections.abc import Iterable


def merge_graphs(graphs: Iterable[Graph], name: str | None = None) -> Graph:
    """Merge *graphs* into one graph without duplicate ids.

    Later graphs override the attributes of earlier ones on id collision,
    while iteration keeps the order in which ids were first seen.  The
    result is named after *name*, or the first graph when omitted.
    """
    merged: Graph | None = None
    for graph in graphs:
        if merged is None:
            merged = Graph(
                name=name or graph.name,
                nodes=graph.nodes.copy(),
                edges=graph.edges.copy(),
            )
            continue
        merged.nodes = merged.nodes.union(graph.nodes)
        merged.edges = merged.edges.union(graph.edges)
    if merged is None:
        return Graph(name=name or "Empty graph")
    return merged


def merge(*graphs: Graph) -> Graph:
    """Variadic form of :func:`merge_graphs`."""
    return merge_graphs(graphs)
