"""Builders for small hand-made catalogs used across the test modules."""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from src.supplychain.catalog import NodeCatalog, default_catalog
from src.supplychain.schema import NodeConfig


def workload(node_id: str, category: str, segment: str, base_rate: float) -> NodeConfig:
    return NodeConfig(
        id=node_id,
        name=node_id,
        group="A",
        unit="units/month",
        kind="workload_driver",
        workload={"category": category, "segment": segment},
        base_rate=base_rate,
    )


def node(node_id: str, kind: str = "derived_flow", **fields: Any) -> NodeConfig:
    record: Dict[str, Any] = {"id": node_id, "name": node_id, "group": "X", "unit": "units/month", "kind": kind}
    record.update(fields)
    return NodeConfig(**record)


def small_catalog(extra: Sequence[NodeConfig] = (), gpu_fields: Optional[Dict[str, Any]] = None) -> NodeCatalog:
    """Workload drivers from the default catalog, one primary compute-stock node, plus `extra`."""
    drivers: List[NodeConfig] = default_catalog().by_kind("workload_driver")
    gpu = node(
        "gpu_datacenter",
        kind="compute_stock",
        parent_node_ids=[d.id for d in drivers],
        starting_capacity=600000,
        yield_simple_loss=0.05,
        **(gpu_fields or {}),
    )
    return NodeCatalog([*drivers, gpu, *extra])
