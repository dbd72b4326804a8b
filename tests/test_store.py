"""Tests for archlens.store — snapshot-backed graph source."""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Any

import anyio
import pytest

from archlens.graph.model import DependencyCategory, PathRecord
from archlens.store import RelationFilter, Scope, SnapshotGraphSource, StoreError

if TYPE_CHECKING:
    from pathlib import Path


def _fetch(source: SnapshotGraphSource, scope: Scope) -> list[PathRecord]:
    return anyio.run(source.fetch_paths, scope)


def _dependency_ids(records: list[PathRecord]) -> set[str]:
    return {rel.id for r in records for rel in r.relationships if not rel.is_containment}


@pytest.fixture()
def source(layered_snapshot: dict[str, Any]) -> SnapshotGraphSource:
    return SnapshotGraphSource.from_data(layered_snapshot)


class TestLoading:
    def test_from_file(self, snapshot_file: Path) -> None:
        loaded = SnapshotGraphSource.from_file(snapshot_file)
        assert set(loaded.nodes) == {"d", "l1", "l2", "m1", "m2"}

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(StoreError, match="cannot read"):
            SnapshotGraphSource.from_file(tmp_path / "missing.yml")

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yml"
        path.write_text("nodes: [unclosed\n", encoding="utf-8")
        with pytest.raises(StoreError, match="cannot parse"):
            SnapshotGraphSource.from_file(path)

    def test_not_a_mapping(self) -> None:
        with pytest.raises(StoreError, match="mapping"):
            SnapshotGraphSource.from_data(["nodes"])

    def test_malformed_relationship(self, layered_snapshot: dict[str, Any]) -> None:
        data = copy.deepcopy(layered_snapshot)
        del data["relationships"][0]["type"]
        with pytest.raises(StoreError, match="malformed snapshot"):
            SnapshotGraphSource.from_data(data)

    def test_dangling_relationship_ignored(
        self, layered_snapshot: dict[str, Any], caplog: pytest.LogCaptureFixture
    ) -> None:
        data = copy.deepcopy(layered_snapshot)
        data["relationships"].append({
            "elementId": "dangling",
            "type": "CALLS",
            "startNodeElementId": "m1",
            "endNodeElementId": "ghost",
        })
        with caplog.at_level("WARNING"):
            loaded = SnapshotGraphSource.from_data(data)
        assert "dangling" in caplog.text
        records = _fetch(loaded, Scope(kind="outgoing", node_id="m1"))
        assert "dangling" not in _dependency_ids(records)


class TestScopes:
    def test_invalid_kind(self) -> None:
        with pytest.raises(ValueError, match="invalid scope kind"):
            Scope(kind="siblings", node_id="d")

    def test_unknown_node(self, source: SnapshotGraphSource) -> None:
        with pytest.raises(StoreError, match="not found"):
            _fetch(source, Scope(kind="parents", node_id="ghost"))

    def test_parents(self, source: SnapshotGraphSource) -> None:
        records = _fetch(source, Scope(kind="parents", node_id="m1"))
        assert [r.target.id for r in records] == ["m1", "l1", "d"]
        assert all(r.source.id == "m1" for r in records)
        assert [len(r.relationships) for r in records] == [0, 1, 2]

    def test_children_respect_depth(self, source: SnapshotGraphSource) -> None:
        shallow = _fetch(source, Scope(kind="children", node_id="d", depth=1))
        assert {r.target.id for r in shallow} == {"d", "l1", "l2"}
        deep = _fetch(source, Scope(kind="children", node_id="d", depth=2))
        assert {r.target.id for r in deep} == {"d", "l1", "l2", "m1", "m2"}

    def test_outgoing(self, source: SnapshotGraphSource) -> None:
        records = _fetch(source, Scope(kind="outgoing", node_id="l1"))
        with_dep = [r for r in records if _dependency_ids([r])]
        assert _dependency_ids(records) == {"d1"}
        assert all(r.source.id == "l1" for r in records)
        # one record per ancestor level of the dependency target
        assert {r.target.id for r in with_dep} == {"m2", "l2", "d"}

    def test_incoming(self, source: SnapshotGraphSource) -> None:
        records = _fetch(source, Scope(kind="incoming", node_id="l1"))
        assert _dependency_ids(records) == {"d2"}
        assert all(r.target.id == "l1" for r in records)

    def test_dependency_depth(self, source: SnapshotGraphSource) -> None:
        one = _fetch(source, Scope(kind="outgoing", node_id="m1", dependency_depth=1))
        assert _dependency_ids(one) == {"d1"}
        two = _fetch(source, Scope(kind="outgoing", node_id="m1", dependency_depth=2))
        assert _dependency_ids(two) == {"d1", "d2"}

    def test_domain_internal_excluded(self, source: SnapshotGraphSource) -> None:
        scope = Scope(
            kind="outgoing",
            node_id="l1",
            relations=RelationFilter(domain_internal=False, external=True),
        )
        assert _dependency_ids(_fetch(source, scope)) == set()

    def test_category_filter(self, source: SnapshotGraphSource) -> None:
        strong_only = Scope(
            kind="outgoing", node_id="l1", categories=frozenset({DependencyCategory.STRONG})
        )
        assert _dependency_ids(_fetch(source, strong_only)) == set()
        weak_only = Scope(
            kind="outgoing", node_id="l1", categories=frozenset({DependencyCategory.WEAK})
        )
        assert _dependency_ids(_fetch(source, weak_only)) == {"d1"}


class TestStoreCycles:
    def test_dependency_cycles(self, source: SnapshotGraphSource) -> None:
        result = anyio.run(source.fetch_dependency_cycles)
        assert result is not None
        assert [set(c.edge_ids) for c in result.cycles] == [{"d1", "d2"}]

    def test_exploration_budget(self, layered_snapshot: dict[str, Any]) -> None:
        bounded = SnapshotGraphSource.from_data(layered_snapshot, cycle_max_steps=1)
        result = anyio.run(bounded.fetch_dependency_cycles)
        assert result is not None
        assert result.truncated
        assert result.cycles == []


class TestDependencyTargets:
    def test_sublayer_target_yields_no_record(self) -> None:
        source = SnapshotGraphSource.from_data({
            "nodes": [
                {"elementId": "d", "labels": ["Domain"], "properties": {"depth": 0}},
                {"elementId": "s1", "labels": ["Sublayer"], "properties": {"depth": 1}},
                {"elementId": "s2", "labels": ["Sublayer"], "properties": {"depth": 1}},
                {"elementId": "m1", "labels": ["Module"], "properties": {"depth": 2}},
            ],
            "relationships": [
                {"elementId": "c1", "type": "CONTAINS",
                 "startNodeElementId": "d", "endNodeElementId": "s1"},
                {"elementId": "c2", "type": "CONTAINS",
                 "startNodeElementId": "d", "endNodeElementId": "s2"},
                {"elementId": "c3", "type": "CONTAINS",
                 "startNodeElementId": "s1", "endNodeElementId": "m1"},
                {"elementId": "x", "type": "CALLS",
                 "startNodeElementId": "m1", "endNodeElementId": "s2"},
            ],
        })
        records = _fetch(source, Scope(kind="outgoing", node_id="d"))
        assert _dependency_ids(records) == set()
