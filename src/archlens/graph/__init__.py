"""Graph domain: model, path normalizer, hierarchy builder, processor, merger."""

from archlens.graph.hierarchy import (
    ContainmentIndex,
    Hierarchy,
    ancestors,
    build_hierarchy,
    build_nodes,
    link_hierarchy,
    rollup_footprint,
)
from archlens.graph.mapset import MapSet
from archlens.graph.merger import merge, merge_graphs
from archlens.graph.model import (
    CONTAINS,
    FOOTPRINT_SLOTS,
    ComponentNode,
    ComponentRelationship,
    DependencyCategory,
    Graph,
    LayerKind,
    NodeDescriptor,
    NormalizedPath,
    PathRecord,
    ViolationFlags,
    parse_path_record,
)
from archlens.graph.normalizer import dedupe_longest_paths, split_into_chunks
from archlens.graph.processor import (
    GraphProcessor,
    ProcessingOptions,
    ProcessingResult,
    Range,
    filter_self_edges,
    merge_duplicate_edges,
)

__all__ = [
    "CONTAINS",
    "FOOTPRINT_SLOTS",
    "ComponentNode",
    "ComponentRelationship",
    "ContainmentIndex",
    "DependencyCategory",
    "Graph",
    "GraphProcessor",
    "Hierarchy",
    "LayerKind",
    "MapSet",
    "NodeDescriptor",
    "NormalizedPath",
    "PathRecord",
    "ProcessingOptions",
    "ProcessingResult",
    "Range",
    "ViolationFlags",
    "ancestors",
    "build_hierarchy",
    "build_nodes",
    "dedupe_longest_paths",
    "filter_self_edges",
    "link_hierarchy",
    "merge",
    "merge_duplicate_edges",
    "merge_graphs",
    "parse_path_record",
    "rollup_footprint",
    "split_into_chunks",
]
