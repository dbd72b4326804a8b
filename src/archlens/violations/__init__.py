"""Violations domain: dependency cycles and layer rules on the visible graph."""

from archlens.violations.base import (
    EdgeResolver,
    GraphWithViolations,
    ViolationReport,
    mark_edges,
)
from archlens.violations.cycles import (
    CycleSearchResult,
    CycleViolation,
    DependencyCycle,
    find_cycles,
    find_cycles_in_records,
    map_cycles_to_visible_graph,
)
from archlens.violations.layers import (
    LayerDef,
    LayerPolicy,
    LayerViolation,
    LayerViolationDetector,
    load_layer_policy,
    parse_layer_policy,
)

__all__ = [
    "CycleSearchResult",
    "CycleViolation",
    "DependencyCycle",
    "EdgeResolver",
    "GraphWithViolations",
    "LayerDef",
    "LayerPolicy",
    "LayerViolation",
    "LayerViolationDetector",
    "ViolationReport",
    "find_cycles",
    "find_cycles_in_records",
    "load_layer_policy",
    "map_cycles_to_visible_graph",
    "mark_edges",
    "parse_layer_policy",
]
