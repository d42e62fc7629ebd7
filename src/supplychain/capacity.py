"""Capacity (staged + ramped + triggered expansions) and yield per node and month."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Optional

from .schema import NodeConfig, SimulationParams, SupplyShock
from .shocks import capacity_shock_multiplier


@dataclass(frozen=True)
class DynamicExpansion:
    """Capacity increment scheduled by the expansion trigger."""
    trigger_month: int
    effective_month: int
    capacity_add: float
    ramp_months: int


def date_to_month(date: str, start_year: int, start_month: int) -> int:
    """'YYYY-MM' -> month index relative to the simulation start (may be negative)."""
    year, month = (int(part) for part in date.split("-"))
    return (year - start_year) * 12 + (month - start_month)


def ramp_fraction(profile: str, elapsed: float, duration: float) -> float:
    """Share of an increment available `elapsed` months after it takes effect."""
    if elapsed < 0:
        return 0.0
    if profile == "step" or duration <= 0:
        return 1.0
    progress = elapsed / duration
    if profile == "s-curve":
        return 1.0 / (1.0 + math.exp(-10.0 * (progress - 0.5)))
    return min(progress, 1.0)


def apply_ramp(increment: float, elapsed: float, profile: str, duration: float) -> float:
    return increment * ramp_fraction(profile, elapsed, duration)


def node_capacity(
    node: NodeConfig,
    month: int,
    params: SimulationParams,
    dynamic_expansions: Iterable[DynamicExpansion] = (),
    shock: Optional[SupplyShock] = None,
) -> float:
    """Starting capacity + ramped committed and triggered expansions, times any shock multiplier."""
    capacity = node.starting_capacity

    for expansion in node.committed_expansions:
        effective = date_to_month(expansion.date, params.start_year, params.start_month) + expansion.lead_time_months
        if month >= effective:
            capacity += apply_ramp(expansion.capacity_add, month - effective, node.ramp_profile, expansion.ramp_months)

    for expansion in dynamic_expansions:
        if month >= expansion.effective_month:
            capacity += apply_ramp(
                expansion.capacity_add, month - expansion.effective_month, node.ramp_profile, expansion.ramp_months
            )

    return capacity * capacity_shock_multiplier(node.id, month, shock)


def node_yield(node: NodeConfig, month: int) -> float:
    """Fraction of output that is good, in [0, 1]."""
    if node.yield_model == "stacked":
        value = node.yield_target - (node.yield_target - node.yield_initial) * 2.0 ** (-month / node.yield_halflife_months)
    else:
        value = 1.0 - node.yield_simple_loss
    return min(max(value, 0.0), 1.0)


def producible_supply(node: NodeConfig, capacity: float, yield_rate: float) -> float:
    return capacity * node.max_capacity_utilization * yield_rate
