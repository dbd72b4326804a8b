"""Tests for archlens.graph.model — wire parsing, kinds, footprints."""

from __future__ import annotations

import pytest

from archlens.graph.model import (
    EMPTY_FOOTPRINT,
    ComponentNode,
    DependencyCategory,
    LayerKind,
    ViolationFlags,
    leaf_footprint,
    parse_node,
    parse_path_record,
    parse_relationship,
)


def _node(node_id: str, labels: list[str], **props: object) -> dict[str, object]:
    return {"elementId": node_id, "labels": labels, "properties": props}


class TestLayerKind:
    @pytest.mark.parametrize(
        ("label", "kind"),
        [
            ("Domain", LayerKind.DOMAIN),
            ("Application", LayerKind.APPLICATION),
            ("Layer", LayerKind.LAYER),
            ("Sublayer", LayerKind.LAYER),
            ("SubLayer", LayerKind.LAYER),
            ("Module", LayerKind.MODULE),
            ("Whatever", LayerKind.MODULE),
        ],
    )
    def test_from_label(self, label: str, kind: LayerKind) -> None:
        assert LayerKind.from_label(label) is kind

    def test_rank_follows_containment(self) -> None:
        ranks = [k.rank for k in (LayerKind.DOMAIN, LayerKind.APPLICATION,
                                  LayerKind.LAYER, LayerKind.MODULE)]
        assert ranks == sorted(ranks)


class TestParseNode:
    def test_longest_label_wins(self) -> None:
        desc = parse_node(_node("n1", ["Layer", "Sublayer"], simpleName="core", depth="3"))
        node = ComponentNode.from_descriptor(desc)
        assert node.layer_label == "Sublayer"
        assert node.layer_kind is LayerKind.LAYER
        assert node.depth == 3
        assert node.name == "core"

    def test_missing_element_id(self) -> None:
        with pytest.raises(ValueError, match="elementId"):
            parse_node({"labels": []})

    def test_bad_labels(self) -> None:
        with pytest.raises(ValueError, match="labels"):
            parse_node({"elementId": "x", "labels": "Module"})

    def test_name_falls_back_to_id(self) -> None:
        node = ComponentNode.from_descriptor(parse_node(_node("n1", ["Module"])))
        assert node.name == "n1"
        assert node.layer_name is None
        assert node.footprint == EMPTY_FOOTPRINT


class TestParseRelationship:
    def test_dependency(self) -> None:
        rel = parse_relationship({
            "elementId": "r1",
            "type": "CALLS",
            "startNodeElementId": "a",
            "endNodeElementId": "b",
            "properties": {"id": "a.b__17", "referenceType": "import", "dependencyType": "strong"},
        })
        assert rel.endpoints == ("a", "b")
        assert rel.categories == (DependencyCategory.STRONG,)
        assert rel.reference_keys == ("a.b",)
        assert rel.reference_types == ("import",)
        assert not rel.is_containment
        assert rel.violations == ViolationFlags()

    def test_containment_has_no_category(self) -> None:
        rel = parse_relationship({
            "elementId": "r1",
            "type": "CONTAINS",
            "startNodeElementId": "a",
            "endNodeElementId": "b",
            "properties": {"dependencyType": "WEAK"},
        })
        assert rel.is_containment
        assert rel.categories == ()

    def test_unknown_category_ignored(self) -> None:
        rel = parse_relationship({
            "elementId": "r1",
            "type": "USES",
            "startNodeElementId": "a",
            "endNodeElementId": "b",
            "properties": {"dependencyType": "bogus"},
        })
        assert rel.categories == ()

    def test_missing_endpoint(self) -> None:
        with pytest.raises(ValueError, match="endNodeElementId"):
            parse_relationship({"elementId": "r1", "type": "USES", "startNodeElementId": "a"})


class TestParsePathRecord:
    def test_full_record(self) -> None:
        record = parse_path_record({
            "source": _node("a", ["Module"]),
            "path": [{
                "elementId": "r1",
                "type": "USES",
                "startNodeElementId": "a",
                "endNodeElementId": "b",
            }],
            "target": _node("b", ["Module"]),
        })
        assert record.source.id == "a"
        assert record.target.id == "b"
        assert [r.id for r in record.relationships] == ["r1"]

    def test_single_relationship_mapping(self) -> None:
        record = parse_path_record({
            "source": _node("a", ["Module"]),
            "path": {
                "elementId": "r1",
                "type": "USES",
                "startNodeElementId": "a",
                "endNodeElementId": "b",
            },
            "target": _node("b", ["Module"]),
        })
        assert len(record.relationships) == 1

    def test_missing_target(self) -> None:
        with pytest.raises(ValueError, match="target"):
            parse_path_record({"source": _node("a", ["Module"]), "path": []})


class TestLeafFootprint:
    def test_explicit_profile(self) -> None:
        assert leaf_footprint({"dependencyProfile": [1, "2", 3, 4]}) == (1, 2, 3, 4)

    def test_category_one_hot(self) -> None:
        assert leaf_footprint({"dependencyProfileCategory": "Outbound"}) == (0, 0, 1, 0)

    def test_default_zero(self) -> None:
        assert leaf_footprint({"dependencyProfileCategory": "weird"}) == EMPTY_FOOTPRINT


class TestViolationFlags:
    def test_union_and_any(self) -> None:
        flags = ViolationFlags(dependency_cycle=True).union(ViolationFlags(sub_layer=True))
        assert flags == ViolationFlags(dependency_cycle=True, sub_layer=True)
        assert flags.any
        assert not ViolationFlags().any
