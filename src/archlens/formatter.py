"""Presentation adapter: cytoscape-style payloads and violation report formatters."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from archlens.graph.model import FOOTPRINT_SLOTS

if TYPE_CHECKING:
    from archlens.graph.model import ComponentNode, ComponentRelationship
    from archlens.violations.base import GraphWithViolations

# ---------------------------------------------------------------------------
# Graph payload
# ---------------------------------------------------------------------------


def to_node_data(node: ComponentNode, selected_id: str | None = None) -> dict[str, object]:
    """Format a node as a cytoscape ``data`` mapping."""
    return {
        "id": node.id,
        "label": node.name,
        "properties": {
            "fullName": node.full_name,
            "kind": node.layer_name,
            "layer": node.layer_label,
            "color": node.color,
            "depth": node.depth,
            "selected": node.id == selected_id,
            "dependencyProfile": dict(zip(FOOTPRINT_SLOTS, node.footprint)),
        },
    }


def to_edge_data(edge: ComponentRelationship) -> dict[str, object]:
    """Format a relationship as a cytoscape ``data`` mapping."""
    return {
        "id": edge.id,
        "source": edge.source,
        "target": edge.target,
        "interaction": edge.type.lower(),
        "properties": {
            "referenceKeys": list(edge.reference_keys),
            "referenceTypes": list(edge.reference_types),
            "dependencyTypes": [category.value for category in edge.categories],
            "weight": edge.weight,
            "violations": {
                "subLayer": edge.violations.sub_layer,
                "dependencyCycle": edge.violations.dependency_cycle,
                "any": edge.violations.any,
            },
        },
    }


def to_payload(result: GraphWithViolations, selected_id: str | None = None) -> dict[str, object]:
    """Build the full ``{name, nodes, edges, violations}`` payload."""
    graph = result.graph
    report = result.violations
    return {
        "name": graph.name,
        "nodes": [{"data": to_node_data(node, selected_id)} for node in graph.nodes],
        "edges": [{"data": to_edge_data(edge)} for edge in graph.edges],
        "violations": {
            "dependencyCycles": [
                {"edgeIds": list(v.edge_ids), "nodeIds": list(v.node_ids), "message": v.message}
                for v in report.dependency_cycles
            ],
            "subLayers": [
                {
                    "edgeId": v.edge_id,
                    "sourceLayer": v.source_layer,
                    "targetLayer": v.target_layer,
                    "sourceKind": v.source_kind.value if v.source_kind else None,
                    "targetKind": v.target_kind.value if v.target_kind else None,
                    "rawEdgeIds": list(v.raw_edge_ids),
                    "message": v.message,
                }
                for v in report.sub_layers
            ],
        },
    }


# ---------------------------------------------------------------------------
# Violation report formatters
# ---------------------------------------------------------------------------


def format_rich(result: GraphWithViolations) -> str:
    """Format the violation report as human-readable text.

    Example output::

        Graph: Dependency graph (5 nodes, 4 edges)

        ✗ dependency cycle
          Circular dependency detected: m1 → m2 → m1

        ✗ layer violation (e7)
          Layer violation: 'Logic' depends on 'UI'. Lower layers must not depend on upper layers.

        2 violations found
    """
    graph = result.graph
    report = result.violations
    lines: list[str] = [
        f"Graph: {graph.name} ({len(graph.nodes)} nodes, {len(graph.edges)} edges)",
        "",
    ]
    for note in report.diagnostics:
        lines.append(f"! {note}")
    if report.diagnostics:
        lines.append("")

    for cycle in report.dependency_cycles:
        lines.append("✗ dependency cycle")
        lines.append(f"  {cycle.message}")
        lines.append("")
    for layer in report.sub_layers:
        lines.append(f"✗ layer violation ({layer.edge_id})")
        lines.append(f"  {layer.message}")
        lines.append("")

    if report.count:
        lines.append(f"{report.count} violations found")
    else:
        lines.append("✓ No violations found")
    return "\n".join(lines)


def format_json(result: GraphWithViolations) -> str:
    """Format the violation report as JSON with a ``summary`` object."""
    report = result.violations
    violations = to_payload(result)["violations"]
    output: dict[str, object] = {
        "violations": violations,
        "diagnostics": list(report.diagnostics),
        "summary": {
            "nodes": len(result.graph.nodes),
            "edges": len(result.graph.edges),
            "dependency_cycles": len(report.dependency_cycles),
            "sub_layers": len(report.sub_layers),
            "violations_count": report.count,
        },
    }
    return json.dumps(output, indent=2)


def format_porcelain(result: GraphWithViolations) -> str:
    """One line per violation.

    Formats: ``cycle:<edge ids>:<node ids>`` and
    ``layer:<edge id>:<source layer>:<target layer>:<reason>``, ids joined
    with commas.  Returns an empty string when there are no violations.
    """
    report = result.violations
    lines: list[str] = []
    for cycle in report.dependency_cycles:
        lines.append(f"cycle:{','.join(cycle.edge_ids)}:{','.join(cycle.node_ids)}")
    for layer in report.sub_layers:
        lines.append(
            f"layer:{layer.edge_id}:{layer.source_layer}:{layer.target_layer}:{layer.reason}"
        )
    return "\n".join(lines)
