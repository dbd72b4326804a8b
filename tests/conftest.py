"""Shared test fixtures for Archlens."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest
import yaml

if TYPE_CHECKING:
    from pathlib import Path


def _wire_node(
    node_id: str, label: str, depth: int, layer_name: str | None = None
) -> dict[str, Any]:
    props: dict[str, Any] = {
        "simpleName": node_id.upper(),
        "fullName": f"org.example.{node_id}",
        "depth": depth,
        "color": "#aaaaaa",
    }
    if layer_name is not None:
        props["layerName"] = layer_name
    return {"elementId": node_id, "labels": [label], "properties": props}


def _wire_rel(
    rel_id: str, rel_type: str, source: str, target: str, category: str | None = None
) -> dict[str, Any]:
    props: dict[str, Any] = {"id": f"{source}-{target}__{rel_id}", "referenceType": "import"}
    if category is not None:
        props["dependencyType"] = category
    return {
        "elementId": rel_id,
        "type": rel_type,
        "startNodeElementId": source,
        "endNodeElementId": target,
        "properties": props,
    }


@pytest.fixture()
def layered_snapshot() -> dict[str, Any]:
    """One domain, two layers (UI above Logic), one module each, a 2-cycle between modules.

    ``d1`` (m1 -> m2) goes down the layers, ``d2`` (m2 -> m1) goes up.
    """
    return {
        "nodes": [
            _wire_node("d", "Domain", 0),
            _wire_node("l1", "Layer", 1, layer_name="UI"),
            _wire_node("l2", "Layer", 1, layer_name="Logic"),
            _wire_node("m1", "Module", 2),
            _wire_node("m2", "Module", 2),
        ],
        "relationships": [
            _wire_rel("c1", "CONTAINS", "d", "l1"),
            _wire_rel("c2", "CONTAINS", "d", "l2"),
            _wire_rel("c3", "CONTAINS", "l1", "m1"),
            _wire_rel("c4", "CONTAINS", "l2", "m2"),
            _wire_rel("d1", "CALLS", "m1", "m2", "WEAK"),
            _wire_rel("d2", "CALLS", "m2", "m1", "STRONG"),
        ],
    }


@pytest.fixture()
def layer_config_data() -> dict[str, Any]:
    """Config mapping with a two-layer top-down policy (UI above Logic)."""
    return {
        "layers": {
            "enforce": "top-down",
            "layers": [
                {"name": "presentation", "layer": "UI"},
                {"name": "logic", "layer": "Logic"},
            ],
        },
    }


@pytest.fixture()
def snapshot_file(tmp_path: Path, layered_snapshot: dict[str, Any]) -> Path:
    path = tmp_path / "snapshot.yml"
    path.write_text(yaml.safe_dump(layered_snapshot), encoding="utf-8")
    return path


@pytest.fixture()
def config_file(tmp_path: Path, layer_config_data: dict[str, Any]) -> Path:
    path = tmp_path / "config.yml"
    path.write_text(yaml.safe_dump(layer_config_data), encoding="utf-8")
    return path
