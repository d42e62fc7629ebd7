"""
Simulation orchestrator: drives the monthly loop and assembles the result.

Each month:
    1. compound workload volumes and translate them into a required compute stock
       (scaled by the month-0 calibration multiplier)
    2. clear compute-stock nodes (primary first); their deliveries are purchases
    3. clear derived-flow nodes in topological order, demand from purchases or
       from upstream demand
    4. record shortage/glut persistence flags and run the expansion trigger

A run is a pure function of (catalog, assumptions, scenario, params). All
mutable state lives in per-run `NodeState`s and the run's `CompoundingCache`.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

import pandas as pd

from src.config import Config
from src.utils.logging_utils import WarningLedger, get_logger

from .assumptions import AssumptionSet, build_assumption_set, format_month
from .capacity import node_capacity, node_yield, producible_supply
from .catalog import NodeCatalog, default_catalog
from .compounding import CompoundingCache
from .expansion import maybe_schedule_expansion
from .metrics import Summary, analyze_results
from .model import NodeState, persistent, step_compute_stock, step_derived_flow
from .schema import NodeConfig, ScenarioConfig, SimulationParams
from .translation import (
    calibration_multiplier,
    derived_demand,
    raw_accel_hours,
    required_stock,
    workload_volumes,
)

logger = get_logger(__name__)

SERIES_FIELDS = (
    "demand",
    "supply",
    "supply_potential",
    "capacity",
    "yield_rate",
    "inventory",
    "backlog",
    "tightness",
    "price_index",
    "installed_base",
    "required_base",
    "purchases",
    "shortage",
    "glut",
)
FLAG_FIELDS = ("shortage", "glut")


@dataclass
class NodeSeries:
    """Per-node parallel arrays indexed by month."""
    node_id: str
    kind: str
    group: str
    demand: List[float] = field(default_factory=list)
    supply: List[float] = field(default_factory=list)
    supply_potential: List[float] = field(default_factory=list)
    capacity: List[float] = field(default_factory=list)
    yield_rate: List[float] = field(default_factory=list)
    inventory: List[float] = field(default_factory=list)
    backlog: List[float] = field(default_factory=list)
    tightness: List[float] = field(default_factory=list)
    price_index: List[float] = field(default_factory=list)
    installed_base: List[float] = field(default_factory=list)
    required_base: List[float] = field(default_factory=list)
    purchases: List[float] = field(default_factory=list)
    shortage: List[int] = field(default_factory=list)
    glut: List[int] = field(default_factory=list)
    # state entering month 0, for the tightness round trip
    initial_inventory: float = 0.0
    initial_backlog: float = 0.0

    def record(self, **values: float) -> None:
        for name in SERIES_FIELDS:
            getattr(self, name).append(values.get(name, 0 if name in FLAG_FIELDS else 0.0))

    def __len__(self) -> int:
        return len(self.demand)


@dataclass
class SimulationResult:
    scenario_name: str
    primary_node_id: str
    months: List[int]
    month_labels: List[str]
    nodes: Dict[str, NodeSeries]
    summary: Summary
    warnings: List[str] = field(default_factory=list)
    calibration_multiplier: float = 1.0
    assumptions_fingerprint: str = ""
    dynamic_expansions: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)

    @property
    def horizon_months(self) -> int:
        return len(self.months)

    def to_dict(self) -> Dict[str, Any]:
        """Plain, JSON-safe nested records."""
        return {
            "scenario_name": self.scenario_name,
            "primary_node_id": self.primary_node_id,
            "months": list(self.months),
            "month_labels": list(self.month_labels),
            "nodes": {node_id: asdict(series) for node_id, series in self.nodes.items()},
            "summary": self.summary.to_dict(),
            "warnings": list(self.warnings),
            "calibration_multiplier": self.calibration_multiplier,
            "assumptions_fingerprint": self.assumptions_fingerprint,
            "dynamic_expansions": {k: [dict(e) for e in v] for k, v in self.dynamic_expansions.items()},
        }

    def to_frame(self) -> pd.DataFrame:
        """Long frame, one row per node-month."""
        frames = []
        for node_id, series in self.nodes.items():
            frame = pd.DataFrame({name: getattr(series, name) for name in SERIES_FIELDS})
            frame.insert(0, "month", self.months)
            frame.insert(1, "label", self.month_labels)
            frame.insert(0, "group", series.group)
            frame.insert(0, "kind", series.kind)
            frame.insert(0, "node_id", node_id)
            frames.append(frame)
        if not frames:
            return pd.DataFrame(columns=["node_id", "kind", "group", "month", "label", *SERIES_FIELDS])
        return pd.concat(frames, ignore_index=True)


def _resolve_primary(catalog: NodeCatalog, params: SimulationParams, ledger: WarningLedger) -> Optional[str]:
    stock = catalog.by_kind("compute_stock")
    primary = params.primary_node_id
    if primary in catalog and catalog.get(primary).kind == "compute_stock":
        return primary
    if not stock:
        ledger.warn_once("__run__", "no_compute_stock", "Catalog has no compute-stock node; required base is unused")
        return None
    fallback = stock[0].id
    ledger.warn_once(
        "__run__",
        "primary_missing",
        f"Primary node {primary} is not a compute-stock node; using {fallback}",
    )
    return fallback


def _component_cap(
    node: NodeConfig,
    producible: Mapping[str, float],
    ledger: WarningLedger,
) -> float:
    """Units of `node` the declared components can support this month (inf if unbounded)."""
    caps = [
        producible[cid] / per_unit
        for cid, per_unit in node.component_constraints.items()
        if cid in producible
    ]
    if not caps:
        ledger.warn_once(
            node.id,
            "component_constraint_missing",
            f"Node {node.id}: no declared component constrains production; treating as unbounded",
        )
        return float("inf")
    return min(caps)


def _initial_state(
    node: NodeConfig,
    primary_id: Optional[str],
    params: SimulationParams,
    scenario: Optional[ScenarioConfig],
) -> NodeState:
    state = NodeState(
        node_id=node.id,
        inventory=node.inventory_buffer_target * node.starting_capacity / 4.0,
        lifetime_months=node.lifetime_months,
    )
    starting = scenario.starting_state if scenario is not None else None
    if node.kind == "compute_stock":
        state.installed_base = params.calibration.target_installed_base * node.required_base_share
        if node.id == primary_id and starting is not None and starting.installed_base is not None:
            state.installed_base = starting.installed_base
    if starting is not None and node.id in starting.backlog_by_node:
        state.backlog = starting.backlog_by_node[node.id]
    return state


def run_simulation(
    catalog: NodeCatalog,
    assumptions: AssumptionSet,
    scenario: Optional[ScenarioConfig] = None,
    params: Optional[SimulationParams] = None,
    cache: Optional[CompoundingCache] = None,
) -> SimulationResult:
    """Run one full monthly pass and analyze it."""
    if params is None:
        params = scenario.params if scenario is not None else SimulationParams()
    if cache is None or not cache.matches(assumptions, params.max_efficiency_gain):
        cache = CompoundingCache(assumptions, params.max_efficiency_gain)

    name = scenario.name if scenario is not None else "base"
    shock = scenario.supply_shock if scenario is not None else None
    eps = params.epsilon
    horizon = params.horizon_months
    ledger = WarningLedger(logger)

    primary_id = _resolve_primary(catalog, params, ledger)
    workloads = catalog.by_kind("workload_driver")
    order = catalog.processing_order(primary_id)

    if scenario is not None and scenario.starting_state is not None:
        for node_id in scenario.starting_state.backlog_by_node:
            if node_id not in catalog or not catalog.get(node_id).is_market_node:
                ledger.warn_once(node_id, "unknown_backlog_node", f"Ignoring starting backlog for unknown node {node_id}")
    if shock is not None:
        for node_id in shock.affected_nodes:
            if node_id not in catalog:
                ledger.warn_once(node_id, "unknown_shock_node", f"Supply shock names unknown node {node_id}")

    raw0 = raw_accel_hours(workload_volumes(workloads, cache, 0), 0, cache)
    multiplier = calibration_multiplier(raw0, params.calibration, eps)
    logger.info(f"Running scenario '{name}': {len(catalog)} nodes, {horizon} months, calibration x{multiplier:.4g}")

    states: Dict[str, NodeState] = {}
    series: Dict[str, NodeSeries] = {}
    for node in catalog:
        series[node.id] = NodeSeries(node_id=node.id, kind=node.kind, group=node.group)
        if node.is_market_node:
            state = _initial_state(node, primary_id, params, scenario)
            states[node.id] = state
            series[node.id].initial_inventory = state.inventory
            series[node.id].initial_backlog = state.backlog

    thresholds = params.thresholds
    for month in range(horizon):
        volumes = workload_volumes(workloads, cache, month)
        for node in workloads:
            volume = volumes.by_node[node.id]
            series[node.id].record(
                demand=volume, supply=volume, supply_potential=volume, capacity=volume,
                yield_rate=1.0, tightness=1.0, price_index=1.0,
            )

        hours = raw_accel_hours(volumes, month, cache) * multiplier
        required = required_stock(hours, params.calibration)

        capacity: Dict[str, float] = {}
        yields: Dict[str, float] = {}
        producible: Dict[str, float] = {}
        for node_id in order:
            node = catalog.get(node_id)
            capacity[node_id] = node_capacity(node, month, params, states[node_id].dynamic_expansions, shock)
            yields[node_id] = node_yield(node, month)
            producible[node_id] = producible_supply(node, capacity[node_id], yields[node_id])

        purchases: Dict[str, float] = {}
        demand: Dict[str, float] = {}
        for node_id in order:
            node = catalog.get(node_id)
            state = states[node_id]
            available = producible[node_id]

            if node.kind == "compute_stock":
                if node.component_constraints:
                    available = min(available, _component_cap(node, producible, ledger))
                node_required = required * node.required_base_share
                res = step_compute_stock(state, node_required, available, month, params, ledger)
                purchases[node_id] = res.supply
            else:
                node_demand = derived_demand(node, purchases, demand, ledger)
                res = step_derived_flow(state, node_demand, available, node.substitutability_score, month, params, ledger)
                node_required = 0.0
            demand[node_id] = res.demand

            history = state.tightness_history
            shortage = persistent(history, thresholds.persistence_soft, lambda t: t > thresholds.shortage)
            glut = persistent(history, thresholds.persistence_soft, lambda t: t < thresholds.glut_soft)
            series[node_id].record(
                demand=res.demand,
                supply=res.supply,
                supply_potential=res.supply_potential,
                capacity=capacity[node_id],
                yield_rate=yields[node_id],
                inventory=res.inventory,
                backlog=res.backlog,
                tightness=res.tightness,
                price_index=res.price_index,
                installed_base=res.installed_base,
                required_base=node_required,
                purchases=purchases.get(node_id, 0.0),
                shortage=1 if shortage else 0,
                glut=1 if glut else 0,
            )

            maybe_schedule_expansion(state, node, month, capacity[node_id], node_id == primary_id, params)

    summary = analyze_results(series, catalog, thresholds)
    result = SimulationResult(
        scenario_name=name,
        primary_node_id=primary_id or params.primary_node_id,
        months=list(range(horizon)),
        month_labels=[format_month(m, params.start_year, params.start_month) for m in range(horizon)],
        nodes=series,
        summary=summary,
        warnings=list(ledger.messages),
        calibration_multiplier=multiplier,
        assumptions_fingerprint=assumptions.fingerprint,
        dynamic_expansions={
            node_id: [asdict(e) for e in state.dynamic_expansions]
            for node_id, state in states.items()
            if state.dynamic_expansions
        },
    )
    logger.info(
        f"Scenario '{name}' done: {len(summary.shortages)} shortages, {len(summary.gluts)} gluts, "
        f"{len(summary.bottlenecks)} bottlenecks, {len(result.warnings)} warnings"
    )
    return result


def resolve_inputs(
    cfg: ScenarioConfig,
    catalog: Optional[NodeCatalog] = None,
    override_document: Optional[Mapping[str, Any]] = None,
    max_change_pct: Optional[float] = None,
    previous_document: Optional[Mapping[str, Any]] = None,
) -> Tuple[NodeCatalog, AssumptionSet]:
    """Catalog with the scenario's node patches, and the layered assumption set."""
    catalog = catalog if catalog is not None else default_catalog()
    catalog = catalog.with_overrides(cfg.node_overrides)
    pct = Config.MAX_CHANGE_PCT if max_change_pct is None else max_change_pct
    assumptions = build_assumption_set(override_document, cfg, pct, previous_document=previous_document)
    return catalog, assumptions


def run_scenario(
    cfg: ScenarioConfig,
    catalog: Optional[NodeCatalog] = None,
    override_document: Optional[Mapping[str, Any]] = None,
    previous_document: Optional[Mapping[str, Any]] = None,
) -> SimulationResult:
    catalog, assumptions = resolve_inputs(cfg, catalog, override_document, previous_document=previous_document)
    return run_simulation(catalog, assumptions, cfg)
