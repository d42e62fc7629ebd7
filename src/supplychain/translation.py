"""
Demand translation: workload volumes -> accelerator-hours -> required compute stock -> component demand.

Inference:
    hours = tokens / (tokens_per_sec × 3600) × M_inference × Intensity / (S_inference × H)
Training:
    hours = runs × accel_hours_per_run × M_training / (S_training × H)
Required stock:
    base = hours / (hours_per_month × target_utilization)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Mapping, Optional

from src.utils.logging_utils import WarningLedger

from .compounding import CompoundingCache
from .schema import CalibrationParams, NodeConfig

SECONDS_PER_HOUR = 3600.0

DEFAULT_TOKENS_PER_SEC = 25.0
DEFAULT_HOURS_PER_RUN = {"frontier": 50e6, "midtier": 200000.0}


@dataclass
class WorkloadVolumes:
    inference_tokens: Dict[str, float] = field(default_factory=dict)
    training_runs: Dict[str, float] = field(default_factory=dict)
    by_node: Dict[str, float] = field(default_factory=dict)


def workload_volumes(workload_nodes: Iterable[NodeConfig], cache: CompoundingCache, month: int) -> WorkloadVolumes:
    """Grow each workload driver's base volume by its compounded demand growth."""
    volumes = WorkloadVolumes()
    for node in workload_nodes:
        ref = node.workload
        volume = (node.base_rate or 0.0) * cache.demand_growth(ref.category, ref.segment, month)
        volumes.by_node[node.id] = volume
        bucket = volumes.inference_tokens if ref.category == "inference" else volumes.training_runs
        bucket[ref.segment] = bucket.get(ref.segment, 0.0) + volume
    return volumes


def inference_accel_hours(tokens_by_segment: Mapping[str, float], month: int, cache: CompoundingCache) -> float:
    eff = cache.efficiency(month)
    intensity = cache.intensity(month)
    hours = 0.0
    for segment, tokens in tokens_by_segment.items():
        tps = cache.assumptions.get(f"translation.tokens_per_sec_per_accelerator.{segment}", DEFAULT_TOKENS_PER_SEC)
        hours += tokens / (max(tps, 1e-12) * SECONDS_PER_HOUR)
    return hours * eff.m_inference * intensity / (eff.s_inference * eff.h)


def training_accel_hours(runs_by_segment: Mapping[str, float], month: int, cache: CompoundingCache) -> float:
    eff = cache.efficiency(month)
    hours = 0.0
    for segment, runs in runs_by_segment.items():
        per_run = cache.assumptions.get(
            f"translation.accel_hours_per_run.{segment}", DEFAULT_HOURS_PER_RUN.get(segment, 0.0)
        )
        hours += runs * per_run
    return hours * eff.m_training / (eff.s_training * eff.h)


def raw_accel_hours(volumes: WorkloadVolumes, month: int, cache: CompoundingCache) -> float:
    """Uncalibrated accelerator-hours for one month of workload."""
    return (
        inference_accel_hours(volumes.inference_tokens, month, cache)
        + training_accel_hours(volumes.training_runs, month, cache)
    )


def calibration_multiplier(raw_month0_hours: float, calibration: CalibrationParams, epsilon: float) -> float:
    """
    Single global multiplier making month-0 required stock equal the target installed base.
    """
    target_hours = calibration.target_installed_base * calibration.hours_per_month * calibration.target_utilization
    return target_hours / (raw_month0_hours + epsilon)


def required_stock(accel_hours: float, calibration: CalibrationParams) -> float:
    return accel_hours / (calibration.hours_per_month * calibration.target_utilization)


def derived_demand(
    node: NodeConfig,
    purchases: Mapping[str, float],
    demand: Mapping[str, float],
    ledger: Optional[WarningLedger] = None,
) -> float:
    """
    Demand for a derived-flow node this month.

    ``purchases`` basis sums the deliveries of compute-stock parents (units
    actually manufactured this month); ``parent_demand`` sums the demand
    already resolved for upstream nodes this month. A parent with nothing to
    contribute on the node's basis (a workload driver, or a derived node
    under ``purchases``) adds zero and is reported once through `ledger`.
    """
    source = purchases if node.demand_basis == "purchases" else demand
    driver = 0.0
    for pid in node.parent_node_ids:
        if pid in source:
            driver += source[pid]
        elif ledger is not None:
            ledger.warn_once(
                node.id,
                f"unresolved_parent:{pid}",
                f"Node {node.id}: parent {pid} has no {node.demand_basis.replace('_', ' ')} to drive demand; contributes 0",
            )
    return driver * node.input_intensity
