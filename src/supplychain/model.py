from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from src.utils.logging_utils import WarningLedger

from .capacity import DynamicExpansion
from .schema import PriceIndexParams, SimulationParams


@dataclass
class NodeState:
    node_id: str
    inventory: float = 0.0
    backlog: float = 0.0
    installed_base: float = 0.0
    lifetime_months: int = 48
    sub_share: float = 0.0
    price_history: List[float] = field(default_factory=lambda: [1.0])
    tightness_history: List[float] = field(default_factory=list)
    plan_tightness_history: List[float] = field(default_factory=list)
    dynamic_expansions: List[DynamicExpansion] = field(default_factory=list)
    last_expansion_month: Optional[int] = None


@dataclass
class StepResult:
    demand: float
    supply: float  # cleared deliveries
    supply_potential: float  # producible
    inventory_in: float
    backlog_in: float
    inventory: float
    backlog: float
    tightness: float
    plan_tightness: float
    price_index: float
    installed_base: float = 0.0
    retirements: float = 0.0


def tightness_ratio(demand: float, backlog: float, supply: float, inventory: float, eps: float) -> float:
    return (demand + backlog) / (supply + inventory + eps)


def price_index(tightness: float, p: PriceIndexParams) -> float:
    if tightness <= 1.0:
        price = max(tightness, 0.0) ** 0.5
    else:
        price = 1.0 + p.a * (tightness - 1.0) ** p.b
    return min(max(price, p.min_price), p.max_price)


def sma(values: Sequence[float], window: int) -> float:
    if not values:
        return 0.0
    tail = values[-window:]
    return sum(tail) / len(tail)


def substitution_share(current: float, price_signal: float, sub_max: float, sensitivity: float, speed: float) -> float:
    target = min(sub_max, sensitivity * max(0.0, price_signal - 1.0))
    return current + speed * (target - current)


def persistent(history: Sequence[float], months: int, predicate) -> bool:
    """True if the last `months` values all satisfy `predicate`."""
    if len(history) < months:
        return False
    return all(predicate(t) for t in history[-months:])


def clamp_non_negative(raw: float, state: NodeState, what: str, month: int, ledger: Optional[WarningLedger]) -> float:
    if raw >= 0.0:
        return raw
    if ledger is not None:
        ledger.warn_once(
            state.node_id,
            f"negative_{what}",
            f"Node {state.node_id}: negative {what} {raw:.6g} at month {month} clamped to 0",
        )
    return 0.0


def _settle(
    state: NodeState,
    demand: float,
    producible: float,
    month: int,
    params: SimulationParams,
    ledger: Optional[WarningLedger],
) -> StepResult:
    eps = params.epsilon
    inventory_in = state.inventory
    backlog_in = state.backlog

    tight = tightness_ratio(demand, backlog_in, producible, inventory_in, eps)
    plan_tight = demand / (producible + eps)
    deliveries = min(producible + inventory_in, demand + backlog_in)

    state.inventory = clamp_non_negative(inventory_in + producible - deliveries, state, "inventory", month, ledger)
    state.backlog = clamp_non_negative(backlog_in + demand - deliveries, state, "backlog", month, ledger)

    price = price_index(tight, params.price_index)
    state.price_history.append(price)
    state.tightness_history.append(tight)
    state.plan_tightness_history.append(plan_tight)

    return StepResult(
        demand=demand,
        supply=deliveries,
        supply_potential=producible,
        inventory_in=inventory_in,
        backlog_in=backlog_in,
        inventory=state.inventory,
        backlog=state.backlog,
        tightness=tight,
        plan_tightness=plan_tight,
        price_index=price,
    )


def step_compute_stock(
    state: NodeState,
    required_base: float,
    producible: float,
    month: int,
    params: SimulationParams,
    ledger: Optional[WarningLedger] = None,
) -> StepResult:
    """
    Clear a compute-stock node for one month.

    Demand is purchases: the gap to the required base plus replacement of
    retiring units. Deliveries join the installed base.
    """
    retirements = state.installed_base / state.lifetime_months
    gap = max(0.0, required_base - state.installed_base)
    demand = gap + retirements

    res = _settle(state, demand, producible, month, params, ledger)

    state.installed_base = max(0.0, state.installed_base + res.supply - retirements)
    res.installed_base = state.installed_base
    res.retirements = retirements
    return res


def step_derived_flow(
    state: NodeState,
    demand: float,
    producible: float,
    substitutability: float,
    month: int,
    params: SimulationParams,
    ledger: Optional[WarningLedger] = None,
) -> StepResult:
    """
    Clear a derived-flow node for one month.

    When the node is substitutable and the pre-substitution market is tight,
    the substitution share moves toward its price-driven target and the
    recorded demand is the demand left after substitution.
    """
    demand = max(demand, 0.0)
    if substitutability > 0:
        eps = params.epsilon
        pre_tight = tightness_ratio(demand, state.backlog, producible, state.inventory, eps)
        if pre_tight > 1.0:
            sub = params.substitution
            signal = sma(state.price_history + [price_index(pre_tight, params.price_index)], sub.price_signal_sma_months)
            state.sub_share = substitution_share(
                state.sub_share, signal, substitutability, sub.sensitivity, sub.adjustment_speed
            )
            demand *= 1.0 - state.sub_share
    return _settle(state, demand, producible, month, params, ledger)
