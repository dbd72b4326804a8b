"""Component graph model: nodes, relationships, path records and graphs."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from archlens.graph.mapset import MapSet

if TYPE_CHECKING:
    from collections.abc import Mapping

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

CONTAINS = "CONTAINS"

# Slot order of the dependency footprint vector.
FOOTPRINT_SLOTS: tuple[str, ...] = ("hidden", "inbound", "outbound", "transit")
EMPTY_FOOTPRINT: tuple[int, int, int, int] = (0, 0, 0, 0)

Footprint = tuple[int, int, int, int]


class LayerKind(str, Enum):
    """Structural level of a component, ordered by containment depth."""

    DOMAIN = "Domain"
    APPLICATION = "Application"
    LAYER = "Layer"
    MODULE = "Module"

    @property
    def rank(self) -> int:
        return _LAYER_KIND_ORDER.index(self)

    @classmethod
    def from_label(cls, label: str) -> LayerKind:
        """Map a store label (``Domain``, ``Sublayer``, ...) to a kind."""
        if label == cls.DOMAIN.value:
            return cls.DOMAIN
        if label == cls.APPLICATION.value:
            return cls.APPLICATION
        if label.lower().endswith(cls.LAYER.value.lower()):
            return cls.LAYER
        return cls.MODULE


_LAYER_KIND_ORDER: tuple[LayerKind, ...] = tuple(LayerKind)


class DependencyCategory(str, Enum):
    """Strength of a dependency relationship."""

    WEAK = "WEAK"
    STRONG = "STRONG"
    ENTITY = "ENTITY"

    @classmethod
    def parse(cls, raw: object) -> DependencyCategory | None:
        if raw is None or raw == "":
            return None
        try:
            return cls(str(raw).upper())
        except ValueError:
            return None


# ---------------------------------------------------------------------------
# Wire-level descriptors
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NodeDescriptor:
    """A node exactly as the graph store returned it."""

    id: str
    labels: tuple[str, ...]
    properties: Mapping[str, Any]

    @property
    def longest_label(self) -> str:
        if not self.labels:
            return LayerKind.MODULE.value
        return sorted(self.labels, key=len, reverse=True)[0]


@dataclass(frozen=True)
class ViolationFlags:
    """Violation markers carried by every edge."""

    dependency_cycle: bool = False
    sub_layer: bool = False

    @property
    def any(self) -> bool:
        return self.dependency_cycle or self.sub_layer

    def union(self, other: ViolationFlags) -> ViolationFlags:
        return ViolationFlags(
            dependency_cycle=self.dependency_cycle or other.dependency_cycle,
            sub_layer=self.sub_layer or other.sub_layer,
        )


@dataclass(frozen=True)
class ComponentRelationship:
    """A containment or dependency edge between two components."""

    id: str
    source: str
    target: str
    type: str
    categories: tuple[DependencyCategory, ...] = ()
    reference_types: tuple[str, ...] = ()
    reference_keys: tuple[str, ...] = ()
    weight: int = 1
    violations: ViolationFlags = field(default_factory=ViolationFlags)

    @property
    def is_containment(self) -> bool:
        return self.type == CONTAINS

    @property
    def endpoints(self) -> tuple[str, str]:
        return self.source, self.target


@dataclass
class ComponentNode:
    """A domain, application, layer or module.

    ``parent_id`` and ``children_ids`` reference other nodes of the same
    arena by id; they are filled once per processing pass by the hierarchy
    builder.
    """

    id: str
    name: str
    full_name: str
    layer_kind: LayerKind
    layer_label: str
    depth: int
    color: str | None = None
    layer_name: str | None = None
    footprint: Footprint = EMPTY_FOOTPRINT
    parent_id: str | None = None
    children_ids: list[str] = field(default_factory=list)

    @classmethod
    def from_descriptor(cls, descriptor: NodeDescriptor) -> ComponentNode:
        props = descriptor.properties
        label = descriptor.longest_label
        layer_name = props.get("layerName")
        color = props.get("color")
        return cls(
            id=descriptor.id,
            name=str(props.get("simpleName") or descriptor.id),
            full_name=str(props.get("fullName") or props.get("simpleName") or descriptor.id),
            layer_kind=LayerKind.from_label(label),
            layer_label=label,
            depth=_to_int(props.get("depth"), default=0),
            color=str(color) if color is not None else None,
            layer_name=str(layer_name) if layer_name else None,
            footprint=leaf_footprint(props),
        )

    @property
    def is_leaf(self) -> bool:
        return not self.children_ids


@dataclass(frozen=True)
class PathRecord:
    """One raw traversal result: source node, relationship chain, target node."""

    source: NodeDescriptor
    relationships: tuple[ComponentRelationship, ...]
    target: NodeDescriptor


@dataclass(frozen=True)
class NormalizedPath:
    """A path record split into homogeneous relationship runs.

    ``contain_target_edges`` is ordered top-down: from the record's target
    ancestor towards the deepest dependency target.
    """

    record: PathRecord
    contain_source_edges: tuple[ComponentRelationship, ...]
    dependency_chunks: tuple[tuple[ComponentRelationship, ...], ...]
    contain_target_edges: tuple[ComponentRelationship, ...]
    origin_id: str
    target_depth: int

    @property
    def dependency_edges(self) -> list[ComponentRelationship]:
        return [
            edge
            for chunk in self.dependency_chunks
            for edge in chunk
            if not edge.is_containment
        ]

    @property
    def sequence_id(self) -> str:
        """Identify the dependency edge sequence; empty for pure containment."""
        return ",".join(edge.id for edge in self.dependency_edges)

    @property
    def containment_edges(self) -> list[ComponentRelationship]:
        return [*self.contain_source_edges, *self.contain_target_edges]


@dataclass
class Graph:
    """A named node/edge collection."""

    name: str
    nodes: MapSet[ComponentNode] = field(default_factory=MapSet)
    edges: MapSet[ComponentRelationship] = field(default_factory=MapSet)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _to_int(value: object, *, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)  # type: ignore[call-overload]
    except (TypeError, ValueError):
        return default


def leaf_footprint(properties: Mapping[str, Any]) -> Footprint:
    """Return the footprint a node contributes when it has no children.

    An explicit ``dependencyProfile`` list of four numbers wins; otherwise
    the ``dependencyProfileCategory`` property selects one slot.
    """
    explicit = properties.get("dependencyProfile")
    if isinstance(explicit, (list, tuple)) and len(explicit) == len(FOOTPRINT_SLOTS):
        values = [_to_int(v, default=0) for v in explicit]
        return values[0], values[1], values[2], values[3]

    category = properties.get("dependencyProfileCategory")
    if isinstance(category, str) and category.lower() in FOOTPRINT_SLOTS:
        idx = FOOTPRINT_SLOTS.index(category.lower())
        slots = [0, 0, 0, 0]
        slots[idx] = 1
        return slots[0], slots[1], slots[2], slots[3]
    return EMPTY_FOOTPRINT


def _require(data: Mapping[str, Any], key: str, context: str) -> Any:
    if key not in data or data[key] is None:
        msg = f"{context}: missing required key '{key}'"
        raise ValueError(msg)
    return data[key]


def parse_node(data: Mapping[str, Any]) -> NodeDescriptor:
    """Parse a store node mapping into a :class:`NodeDescriptor`."""
    if not isinstance(data, dict):
        msg = "node must be a mapping"
        raise ValueError(msg)
    node_id = str(_require(data, "elementId", "node"))
    labels_raw = data.get("labels") or []
    if not isinstance(labels_raw, list):
        msg = f"node '{node_id}': labels must be a list"
        raise ValueError(msg)
    props = data.get("properties") or {}
    if not isinstance(props, dict):
        msg = f"node '{node_id}': properties must be a mapping"
        raise ValueError(msg)
    return NodeDescriptor(id=node_id, labels=tuple(str(lb) for lb in labels_raw), properties=props)


def parse_relationship(data: Mapping[str, Any]) -> ComponentRelationship:
    """Parse a store relationship mapping into a :class:`ComponentRelationship`."""
    if not isinstance(data, dict):
        msg = "relationship must be a mapping"
        raise ValueError(msg)
    rel_id = str(_require(data, "elementId", "relationship"))
    context = f"relationship '{rel_id}'"
    rel_type = str(_require(data, "type", context))
    props = data.get("properties") or {}
    if not isinstance(props, dict):
        msg = f"{context}: properties must be a mapping"
        raise ValueError(msg)

    category = DependencyCategory.parse(props.get("dependencyType"))
    reference_type = props.get("referenceType")
    reference_id = props.get("id")
    is_containment = rel_type == CONTAINS
    return ComponentRelationship(
        id=rel_id,
        source=str(_require(data, "startNodeElementId", context)),
        target=str(_require(data, "endNodeElementId", context)),
        type=rel_type,
        categories=(category,) if category is not None and not is_containment else (),
        reference_types=(str(reference_type),) if reference_type else (),
        reference_keys=(str(reference_id).split("__")[0],) if reference_id else (),
    )


def parse_path_record(data: Mapping[str, Any]) -> PathRecord:
    """Parse a ``{source, path, target}`` mapping into a :class:`PathRecord`."""
    if not isinstance(data, dict):
        msg = "path record must be a mapping"
        raise ValueError(msg)
    path_raw = data.get("path")
    if path_raw is None:
        path_raw = []
    elif isinstance(path_raw, dict):
        path_raw = [path_raw]
    elif not isinstance(path_raw, list):
        msg = "path record: 'path' must be a list of relationships"
        raise ValueError(msg)
    return PathRecord(
        source=parse_node(_require(data, "source", "path record")),
        relationships=tuple(parse_relationship(rel) for rel in path_raw),
        target=parse_node(_require(data, "target", "path record")),
    )
