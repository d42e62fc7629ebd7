from __future__ import annotations

import networkx as nx
import pytest

from src.supplychain.catalog import NodeCatalog, default_catalog, load_node_catalog
from src.supplychain.schema import NodeConfig
from tests.helpers import node, workload


@pytest.fixture(scope="module")
def catalog():
    return default_catalog()


def test_default_catalog_loads(catalog):
    assert len(catalog) == 32
    assert len(set(catalog.ids)) == len(catalog)
    assert nx.is_directed_acyclic_graph(catalog.graph)
    assert len(catalog.by_kind("workload_driver")) == 5
    assert {n.id for n in catalog.by_kind("compute_stock")} == {"gpu_datacenter", "gpu_inference"}


def test_processing_order(catalog):
    order = catalog.processing_order("gpu_datacenter")
    assert order[:2] == ["gpu_datacenter", "gpu_inference"]
    assert not any(catalog.get(n).kind == "workload_driver" for n in order)
    assert len(order) == len(catalog) - 5

    position = {node_id: i for i, node_id in enumerate(order)}
    for node_id in order:
        for parent in catalog.parents(node_id):
            if parent in position:
                assert position[parent] < position[node_id], f"{parent} must clear before {node_id}"


def test_primary_node_leads_processing_order(catalog):
    assert catalog.processing_order("gpu_inference")[0] == "gpu_inference"


def test_children_and_parents(catalog):
    assert "euv_tools" in catalog.children("advanced_wafers")
    assert catalog.parents("euv_tools") == ["advanced_wafers"]
    with pytest.raises(KeyError):
        catalog.get("missing")


def test_cycle_is_rejected():
    with pytest.raises(ValueError, match="cycle"):
        NodeCatalog([node("a", parent_node_ids=["b"]), node("b", parent_node_ids=["a"])])


def test_unknown_parent_is_rejected():
    with pytest.raises(ValueError, match="unknown parent"):
        NodeCatalog([node("a", parent_node_ids=["ghost"])])


def test_duplicate_id_is_rejected():
    with pytest.raises(ValueError, match="Duplicate"):
        NodeCatalog([node("a"), node("a")])


def test_workload_driver_needs_base_rate():
    with pytest.raises(ValueError):
        NodeConfig(id="w", name="w", group="A", unit="u", kind="workload_driver")
    assert workload("w", "inference", "consumer", 1.0).is_market_node is False


def test_expansion_dates_are_validated():
    with pytest.raises(ValueError):
        node("n", committed_expansions=[{"date": "2026-13", "capacity_add": 10}])


def test_with_overrides_patches_copy(catalog):
    patched = catalog.with_overrides(
        {
            "cowos_capacity": {"starting_capacity": 60000, "committed_expansions": []},
            "ghost_node": {"starting_capacity": 1},
        }
    )
    assert patched.get("cowos_capacity").starting_capacity == 60000
    assert patched.get("cowos_capacity").committed_expansions == []
    assert catalog.get("cowos_capacity").starting_capacity == 120000, "Base catalog is unchanged"
    assert "ghost_node" not in patched


def test_with_overrides_invalid_patch_keeps_base(catalog):
    patched = catalog.with_overrides({"cowos_capacity": {"max_capacity_utilization": 3.0}})
    assert patched.get("cowos_capacity") == catalog.get("cowos_capacity")


def test_missing_catalog_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_node_catalog(str(tmp_path / "nodes.yaml"))
