"""Input retrieval: the graph-store interface and a snapshot-backed implementation.

The pipeline only ever sees :class:`~archlens.graph.model.PathRecord` lists
returned by :meth:`GraphSource.fetch_paths`.  :class:`SnapshotGraphSource`
answers the same scopes from a YAML/JSON dump of nodes and relationships::

    nodes:
      - elementId: d1
        labels: [Domain]
        properties: {simpleName: Billing, depth: 0}
    relationships:
      - elementId: r1
        type: CONTAINS
        startNodeElementId: d1
        endNodeElementId: l1
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

import yaml

from archlens.graph.model import (
    DependencyCategory,
    LayerKind,
    PathRecord,
    parse_node,
    parse_relationship,
)
from archlens.violations.cycles import DEFAULT_MAX_DEPTH, DEFAULT_MAX_STEPS, find_cycles

if TYPE_CHECKING:
    from pathlib import Path

    from archlens.graph.model import ComponentRelationship, NodeDescriptor
    from archlens.violations.cycles import CycleSearchResult

logger = logging.getLogger(__name__)

VALID_SCOPE_KINDS: frozenset[str] = frozenset({"parents", "children", "outgoing", "incoming"})

# Upper bound of containment hops walked above/below a node.
MAX_CONTAINMENT_HOPS = 4


class StoreError(Exception):
    """Raised when the graph store cannot be read."""


@dataclass(frozen=True)
class RelationFilter:
    """Which dependencies to keep relative to the selected node."""

    selected_internal: bool = False
    domain_internal: bool = True
    external: bool = True


@dataclass(frozen=True)
class Scope:
    """What to retrieve around a node."""

    kind: str
    node_id: str
    depth: int = MAX_CONTAINMENT_HOPS + 1
    dependency_depth: int = 1
    relations: RelationFilter = field(default_factory=RelationFilter)
    categories: frozenset[DependencyCategory] | None = None

    def __post_init__(self) -> None:
        if self.kind not in VALID_SCOPE_KINDS:
            msg = f"invalid scope kind '{self.kind}', must be one of {sorted(VALID_SCOPE_KINDS)}"
            raise ValueError(msg)


class GraphSource(Protocol):
    """Narrow interface to the external graph store."""

    async def fetch_paths(self, scope: Scope) -> list[PathRecord]:
        """Return the path records for *scope*."""
        ...

    async def fetch_dependency_cycles(self) -> CycleSearchResult | None:
        """Return the store's dependency cycles, or ``None`` if unsupported."""
        ...


class SnapshotGraphSource:
    """In-memory graph store over a snapshot of nodes and relationships."""

    def __init__(
        self,
        nodes: list[NodeDescriptor],
        relationships: list[ComponentRelationship],
        *,
        cycle_max_depth: int = DEFAULT_MAX_DEPTH,
        cycle_max_cycles: int | None = None,
        cycle_max_steps: int = DEFAULT_MAX_STEPS,
    ) -> None:
        self.nodes: dict[str, NodeDescriptor] = {n.id: n for n in nodes}
        self.relationships = relationships
        self.cycle_max_depth = cycle_max_depth
        self.cycle_max_cycles = cycle_max_cycles
        self.cycle_max_steps = cycle_max_steps

        self._parent_rel: dict[str, ComponentRelationship] = {}
        self._child_rels: dict[str, list[ComponentRelationship]] = {}
        self._out_deps: dict[str, list[ComponentRelationship]] = {}
        self._in_deps: dict[str, list[ComponentRelationship]] = {}
        for rel in relationships:
            if rel.source not in self.nodes or rel.target not in self.nodes:
                logger.warning("Relationship %s references an unknown node; ignored", rel.id)
                continue
            if rel.is_containment:
                self._parent_rel[rel.target] = rel
                self._child_rels.setdefault(rel.source, []).append(rel)
            else:
                self._out_deps.setdefault(rel.source, []).append(rel)
                self._in_deps.setdefault(rel.target, []).append(rel)

    # -- construction -------------------------------------------------------

    @classmethod
    def from_data(cls, data: object, **kwargs: Any) -> SnapshotGraphSource:
        if not isinstance(data, dict):
            msg = "snapshot must be a mapping with 'nodes' and 'relationships'"
            raise StoreError(msg)
        try:
            nodes = [parse_node(n) for n in data.get("nodes") or []]
            rels = [parse_relationship(r) for r in data.get("relationships") or []]
        except ValueError as exc:
            msg = f"malformed snapshot: {exc}"
            raise StoreError(msg) from exc
        return cls(nodes, rels, **kwargs)

    @classmethod
    def from_file(cls, path: Path, **kwargs: Any) -> SnapshotGraphSource:
        """Load a YAML (or JSON) snapshot file."""
        try:
            with path.open("r", encoding="utf-8") as fh:
                data = yaml.safe_load(fh)
        except OSError as exc:
            msg = f"cannot read snapshot {path}: {exc}"
            raise StoreError(msg) from exc
        except yaml.YAMLError as exc:
            msg = f"cannot parse snapshot {path}: {exc}"
            raise StoreError(msg) from exc
        return cls.from_data(data, **kwargs)

    # -- traversal helpers --------------------------------------------------

    def _node(self, node_id: str) -> NodeDescriptor:
        try:
            return self.nodes[node_id]
        except KeyError:
            msg = f"node '{node_id}' not found in snapshot"
            raise StoreError(msg) from None

    def _up_chain(self, node_id: str, hops: int) -> list[tuple[str, list[ComponentRelationship]]]:
        """Ancestors within *hops*, each with the edges walked from *node_id* upward."""
        result: list[tuple[str, list[ComponentRelationship]]] = [(node_id, [])]
        chain: list[ComponentRelationship] = []
        current = node_id
        seen = {node_id}
        while len(chain) < hops:
            rel = self._parent_rel.get(current)
            if rel is None or rel.source in seen:
                break
            chain.append(rel)
            current = rel.source
            seen.add(current)
            result.append((current, list(chain)))
        return result

    def _down_chains(
        self, node_id: str, hops: int
    ) -> list[tuple[str, list[ComponentRelationship]]]:
        """Descendants within *hops*, each with the edges walked downward."""
        result: list[tuple[str, list[ComponentRelationship]]] = [(node_id, [])]
        stack: list[tuple[str, list[ComponentRelationship]]] = [(node_id, [])]
        while stack:
            current, chain = stack.pop()
            if len(chain) >= hops:
                continue
            for rel in self._child_rels.get(current, []):
                next_chain = [*chain, rel]
                result.append((rel.target, next_chain))
                stack.append((rel.target, next_chain))
        return result

    def _dependency_trails(
        self, start: str, max_len: int, *, outgoing: bool
    ) -> list[tuple[str, list[ComponentRelationship]]]:
        """Walks of 0..max_len dependency edges that never reuse a relationship."""
        adjacency = self._out_deps if outgoing else self._in_deps
        result: list[tuple[str, list[ComponentRelationship]]] = [(start, [])]
        stack: list[tuple[str, list[ComponentRelationship]]] = [(start, [])]
        while stack:
            current, trail = stack.pop()
            if len(trail) >= max_len:
                continue
            used = {r.id for r in trail}
            for rel in adjacency.get(current, []):
                if rel.id in used:
                    continue
                nxt = rel.target if outgoing else rel.source
                next_trail = [*trail, rel]
                result.append((nxt, next_trail))
                stack.append((nxt, next_trail))
        return result

    def _is_descendant(self, node_id: str, ancestor_id: str) -> bool:
        current = node_id
        seen: set[str] = set()
        while current in self._parent_rel and current not in seen:
            seen.add(current)
            current = self._parent_rel[current].source
            if current == ancestor_id:
                return True
        return False

    def _domain_of(self, node_id: str) -> str | None:
        for ancestor_id, _ in self._up_chain(node_id, MAX_CONTAINMENT_HOPS):
            labels = self.nodes[ancestor_id].labels
            if LayerKind.DOMAIN.value in labels:
                return ancestor_id
        return None

    def _relation_allowed(self, scope: Scope, selected: str, domain: str | None, dep: str) -> bool:
        rf = scope.relations
        in_domain = domain is not None and self._is_descendant(dep, domain)
        if rf.selected_internal and not rf.domain_internal and self._is_descendant(dep, selected):
            return True
        if rf.domain_internal and in_domain:
            return True
        return rf.external and not in_domain

    @staticmethod
    def _categories_allowed(scope: Scope, trail: list[ComponentRelationship]) -> bool:
        allowed = scope.categories
        if allowed is None or allowed >= set(DependencyCategory):
            return True
        return any(all(cat in rel.categories for rel in trail) for cat in allowed)

    # -- queries ------------------------------------------------------------

    def _parents(self, scope: Scope) -> list[PathRecord]:
        selected = self._node(scope.node_id)
        return [
            PathRecord(source=selected, relationships=tuple(chain), target=self.nodes[ancestor])
            for ancestor, chain in self._up_chain(scope.node_id, scope.depth)
        ]

    def _children(self, scope: Scope) -> list[PathRecord]:
        selected = self._node(scope.node_id)
        return [
            PathRecord(source=selected, relationships=tuple(chain), target=self.nodes[child])
            for child, chain in self._down_chains(scope.node_id, scope.depth)
        ]

    def _dependencies(self, scope: Scope, *, outgoing: bool) -> list[PathRecord]:
        selected = self._node(scope.node_id)
        domain = self._domain_of(scope.node_id)
        records: list[PathRecord] = []
        seen: set[tuple[str, tuple[str, ...], str]] = set()

        for module_or_layer, down in self._down_chains(scope.node_id, MAX_CONTAINMENT_HOPS):
            trails = self._dependency_trails(
                module_or_layer, scope.dependency_depth, outgoing=outgoing
            )
            for dependency, trail in trails:
                dep_node = self.nodes[dependency]
                if LayerKind.from_label(dep_node.longest_label) is not LayerKind.MODULE:
                    continue
                if not self._relation_allowed(scope, scope.node_id, domain, dependency):
                    continue
                if not self._categories_allowed(scope, trail):
                    continue
                for parent, up in self._up_chain(dependency, MAX_CONTAINMENT_HOPS):
                    chain = (*down, *trail, *up)
                    if outgoing:
                        source, target = selected, self.nodes[parent]
                    else:
                        source, target = self.nodes[parent], selected
                    key = (source.id, tuple(r.id for r in chain), target.id)
                    if key in seen:
                        continue
                    seen.add(key)
                    records.append(PathRecord(source=source, relationships=chain, target=target))
        return records

    async def fetch_paths(self, scope: Scope) -> list[PathRecord]:
        if scope.kind == "parents":
            records = self._parents(scope)
        elif scope.kind == "children":
            records = self._children(scope)
        else:
            records = self._dependencies(scope, outgoing=scope.kind == "outgoing")
        logger.debug("Scope %s of %s returned %d records", scope.kind, scope.node_id, len(records))
        return records

    async def fetch_dependency_cycles(self) -> CycleSearchResult | None:
        return find_cycles(
            self.relationships,
            max_depth=self.cycle_max_depth,
            max_cycles=self.cycle_max_cycles,
            max_steps=self.cycle_max_steps,
        )
