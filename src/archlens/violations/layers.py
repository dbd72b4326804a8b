"""Layer violation detection: enforce dependency direction between architectural layers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import yaml

from archlens.graph.hierarchy import ancestors

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

    from archlens.graph.mapset import MapSet
    from archlens.graph.model import (
        ComponentNode,
        ComponentRelationship,
        LayerKind,
        NormalizedPath,
    )
    from archlens.violations.base import EdgeResolver

logger = logging.getLogger(__name__)

VALID_LAYER_ENFORCEMENTS: frozenset[str] = frozenset({"top-down"})

# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LayerDef:
    """A named layer matched by the ``layerName`` property of nodes."""

    name: str
    layer: str


@dataclass(frozen=True)
class LayerPolicy:
    """Allowed dependency direction between ordered layers.

    Layers are ordered top (index 0) to bottom.  Upper layers may depend on
    lower layers but not the reverse.  When ``allow_skip`` is ``False`` a
    layer may only depend on the layer directly below it.
    """

    layers: tuple[LayerDef, ...]
    enforce: str = "top-down"
    allow_skip: bool = True

    def index_of(self, layer_name: str | None) -> int | None:
        if layer_name is None:
            return None
        for idx, layer_def in enumerate(self.layers):
            if layer_def.layer == layer_name:
                return idx
        return None

    def check(self, source_layer: str | None, target_layer: str | None) -> str | None:
        """Return ``"direction"`` or ``"skip"`` for a violating pair, else ``None``.

        Pairs where either side is outside every configured layer pass.
        """
        src_idx = self.index_of(source_layer)
        dst_idx = self.index_of(target_layer)
        if src_idx is None or dst_idx is None or src_idx == dst_idx:
            return None
        if self.enforce == "top-down" and src_idx > dst_idx:
            return "direction"
        if not self.allow_skip and (dst_idx - src_idx) > 1:
            return "skip"
        return None


def parse_layer_policy(data: dict[str, object], context: str = "layers") -> LayerPolicy:
    """Parse a ``{layers, enforce, allow_skip}`` mapping into a :class:`LayerPolicy`.

    Raises ``ValueError`` on schema errors.
    """
    layers_raw = data.get("layers")
    if not isinstance(layers_raw, list):
        msg = f"{context}: 'layers' must be a list"
        raise ValueError(msg)
    if len(layers_raw) < 2:
        msg = f"{context}: 'layers' must contain at least 2 layer definitions"
        raise ValueError(msg)

    layer_defs: list[LayerDef] = []
    for idx, layer_data in enumerate(layers_raw):
        if not isinstance(layer_data, dict):
            msg = f"{context}: layer at index {idx} must be a mapping"
            raise ValueError(msg)
        layer_name = layer_data.get("name")
        if not isinstance(layer_name, str) or not layer_name.strip():
            msg = f"{context}: layer at index {idx} missing required 'name' field"
            raise ValueError(msg)
        layer_value = layer_data.get("layer", layer_name)
        if not isinstance(layer_value, str) or not layer_value.strip():
            msg = f"{context}: layer at index {idx} has an empty 'layer' field"
            raise ValueError(msg)
        layer_defs.append(LayerDef(name=layer_name, layer=layer_value))

    enforce = str(data.get("enforce", "top-down"))
    if enforce not in VALID_LAYER_ENFORCEMENTS:
        msg = (
            f"{context}: invalid enforce value '{enforce}', "
            f"must be one of {sorted(VALID_LAYER_ENFORCEMENTS)}"
        )
        raise ValueError(msg)

    return LayerPolicy(
        layers=tuple(layer_defs),
        enforce=enforce,
        allow_skip=bool(data.get("allow_skip", True)),
    )


def load_layer_policy(path: Path) -> LayerPolicy:
    """Read a standalone layer policy YAML file."""
    with path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    if not isinstance(data, dict):
        msg = f"{path.name} must be a YAML mapping"
        raise ValueError(msg)
    return parse_layer_policy(data, context=path.name)


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LayerViolation:
    """A dependency that goes against the layer policy.

    ``source_kind``/``target_kind`` are the structural kinds of the edge
    endpoints; the layer names come from the policy.
    """

    edge_id: str
    source_layer: str
    target_layer: str
    reason: str  # "direction" | "skip"
    raw_edge_ids: tuple[str, ...] = ()
    source_kind: LayerKind | None = None
    target_kind: LayerKind | None = None

    @property
    def message(self) -> str:
        if self.reason == "skip":
            return (
                f"Layer skip violation: '{self.source_layer}' depends on "
                f"'{self.target_layer}'. Skipping layers is not allowed."
            )
        return (
            f"Layer violation: '{self.source_layer}' depends on '{self.target_layer}'. "
            f"Lower layers must not depend on upper layers."
        )


class LayerViolationDetector:
    """Mark layer violations on the full record set, then report them.

    A node's layer is its ``layer_name``, inherited from the nearest
    ancestor when the node has none.
    """

    def __init__(self, policy: LayerPolicy | None, nodes: MapSet[ComponentNode]) -> None:
        self.policy = policy
        self.nodes = nodes
        self._layer_cache: dict[str, str | None] = {}
        self._marked: dict[str, tuple[ComponentRelationship, str, str, str]] = {}

    def layer_of(self, node_id: str) -> str | None:
        if node_id not in self._layer_cache:
            layer: str | None = None
            node = self.nodes.get(node_id)
            if node is not None:
                layer = node.layer_name
                if layer is None:
                    for ancestor in ancestors(self.nodes, node_id):
                        if ancestor.layer_name is not None:
                            layer = ancestor.layer_name
                            break
            self._layer_cache[node_id] = layer
        return self._layer_cache[node_id]

    def kind_of(self, node_id: str) -> LayerKind | None:
        node = self.nodes.get(node_id)
        return node.layer_kind if node is not None else None

    def mark_violations(self, records: Iterable[NormalizedPath]) -> set[str]:
        """Evaluate every dependency edge and remember the violating ones.

        Returns the ids of the violating edges.
        """
        if self.policy is None:
            return set()
        for record in records:
            for edge in record.dependency_edges:
                if edge.id in self._marked:
                    continue
                source_layer = self.layer_of(edge.source)
                target_layer = self.layer_of(edge.target)
                reason = self.policy.check(source_layer, target_layer)
                if reason is None or source_layer is None or target_layer is None:
                    continue
                self._marked[edge.id] = (edge, source_layer, target_layer, reason)
        if self._marked:
            logger.debug("Marked %d layer-violating edges", len(self._marked))
        return set(self._marked)

    def extract_violations(self) -> list[LayerViolation]:
        """Return one violation per distinct violating raw edge."""
        return [
            LayerViolation(
                edge_id=edge.id,
                source_layer=source_layer,
                target_layer=target_layer,
                reason=reason,
                raw_edge_ids=(edge.id,),
                source_kind=self.kind_of(edge.source),
                target_kind=self.kind_of(edge.target),
            )
            for edge, source_layer, target_layer, reason in self._marked.values()
        ]

    def remap_to_visible_graph(self, resolver: EdgeResolver) -> list[LayerViolation]:
        """Substitute visible edge ids; violations on pruned edges are dropped.

        Raw edges that land on the same visible edge with the same layer pair
        are grouped into one entry.
        """
        grouped: dict[tuple[str, str, str], LayerViolation] = {}
        for edge, source_layer, target_layer, reason in self._marked.values():
            visible = resolver.remap_to_visible_graph(edge)
            if visible is None:
                continue
            key = (visible.id, source_layer, target_layer)
            existing = grouped.get(key)
            if existing is None:
                grouped[key] = LayerViolation(
                    edge_id=visible.id,
                    source_layer=source_layer,
                    target_layer=target_layer,
                    reason=reason,
                    raw_edge_ids=(edge.id,),
                    source_kind=self.kind_of(visible.source),
                    target_kind=self.kind_of(visible.target),
                )
            else:
                grouped[key] = LayerViolation(
                    edge_id=existing.edge_id,
                    source_layer=source_layer,
                    target_layer=target_layer,
                    reason=existing.reason,
                    raw_edge_ids=(*existing.raw_edge_ids, edge.id),
                    source_kind=existing.source_kind,
                    target_kind=existing.target_kind,
                )
        return list(grouped.values())
