"""Path normalizer: split relationship chains into runs and drop shallow duplicates."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from archlens.graph.model import NormalizedPath

if TYPE_CHECKING:
    from collections.abc import Iterable

    from archlens.graph.model import ComponentRelationship, PathRecord

logger = logging.getLogger(__name__)


def _chunk_by_type(
    relationships: Iterable[ComponentRelationship],
) -> list[tuple[ComponentRelationship, ...]]:
    """Cut a chain into maximal runs of the same relationship type."""
    chunks: list[list[ComponentRelationship]] = []
    for rel in relationships:
        if chunks and chunks[-1][0].type == rel.type:
            chunks[-1].append(rel)
        else:
            chunks.append([rel])
    return [tuple(chunk) for chunk in chunks]


def walk_nodes(record: PathRecord, selected_id: str | None = None) -> list[str]:
    """Return the node ids visited by the chain, in chain order.

    The walk starts at *selected_id* when the first relationship touches it.
    Otherwise it starts at the source when the first relationship touches it,
    then at the target (incoming queries return the selected node as
    target), then at the first relationship's start node.
    """
    rels = record.relationships
    if not rels:
        return [record.source.id]

    first = rels[0]
    if selected_id is not None and selected_id in first.endpoints:
        current = selected_id
    elif record.source.id in first.endpoints:
        current = record.source.id
    elif record.target.id in first.endpoints:
        current = record.target.id
    else:
        current = first.source

    visited = [current]
    for rel in rels:
        if rel.source == current:
            current = rel.target
        elif rel.target == current:
            current = rel.source
        else:
            # Broken chain; continue from the relationship's far end.
            current = rel.target
        visited.append(current)
    return visited


def normalize_record(record: PathRecord, selected_id: str | None = None) -> NormalizedPath:
    """Split one record into leading containment, dependency and trailing containment runs.

    A single-dependency record reads the same for both query directions, so
    *selected_id* decides where the walk, and thus the origin, starts.
    """
    chunks = _chunk_by_type(record.relationships)

    leading: tuple[ComponentRelationship, ...] = ()
    trailing: tuple[ComponentRelationship, ...] = ()
    if chunks and chunks[0][0].is_containment:
        leading = chunks.pop(0)
    if chunks and chunks[-1][0].is_containment:
        trailing = tuple(reversed(chunks.pop()))

    visited = walk_nodes(record, selected_id)
    origin_id = visited[len(leading)] if len(visited) > len(leading) else visited[-1]

    return NormalizedPath(
        record=record,
        contain_source_edges=leading,
        dependency_chunks=tuple(chunks),
        contain_target_edges=trailing,
        origin_id=origin_id,
        target_depth=len(trailing),
    )


def split_into_chunks(
    records: Iterable[PathRecord], selected_id: str | None = None
) -> list[NormalizedPath]:
    """Normalize every record; see :func:`normalize_record`."""
    return [normalize_record(record, selected_id) for record in records]


def dedupe_longest_paths(records: list[NormalizedPath]) -> list[NormalizedPath]:
    """Keep only the deepest variant of each dependency edge sequence.

    The same dependency sequence comes back once per containment level of
    its target.  Only the records whose target depth equals the maximum
    seen for their sequence survive, otherwise relationship counts would
    include every ancestor level.
    """
    max_depth: dict[str, int] = {}
    for record in records:
        key = record.sequence_id
        max_depth[key] = max(max_depth.get(key, 0), record.target_depth)

    kept = [r for r in records if r.target_depth == max_depth[r.sequence_id]]
    logger.debug("Kept %d of %d normalized paths", len(kept), len(records))
    return kept
