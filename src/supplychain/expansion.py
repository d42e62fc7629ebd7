from __future__ import annotations

from typing import Optional

from src.utils.logging_utils import get_logger

from .capacity import DynamicExpansion
from .model import NodeState, sma
from .schema import NodeConfig, SimulationParams

logger = get_logger(__name__)


def maybe_schedule_expansion(
    state: NodeState,
    node: NodeConfig,
    month: int,
    capacity: float,
    is_primary: bool,
    params: SimulationParams,
) -> Optional[DynamicExpansion]:
    """
    Schedule a capacity increment after sustained plan tightness.

    The signal is the trailing average of demand / producible (the flow
    plan), not the backlog-inclusive tightness, so an overhang that is
    already being worked down does not trigger new builds. Nothing fires
    until a full window of history exists.
    """
    cfg = params.expansion
    if not cfg.enabled or capacity <= 0:
        return None
    if len(state.dynamic_expansions) >= cfg.max_dynamic_expansions:
        return None
    if state.last_expansion_month is not None and month - state.last_expansion_month < cfg.cooldown_months:
        return None

    history = state.plan_tightness_history
    if len(history) < cfg.window_months:
        return None

    signal = sma(history, cfg.window_months)
    threshold = cfg.threshold_primary if is_primary else cfg.threshold_other
    if signal <= threshold:
        return None

    expansion = DynamicExpansion(
        trigger_month=month,
        effective_month=month + node.lead_time_debottleneck,
        capacity_add=capacity * cfg.expansion_fraction,
        ramp_months=cfg.ramp_months,
    )
    state.dynamic_expansions.append(expansion)
    state.last_expansion_month = month
    logger.debug(
        f"Expansion triggered for {node.id} at month {month}: +{expansion.capacity_add:.4g} "
        f"effective month {expansion.effective_month} (plan tightness {signal:.3f})"
    )
    return expansion
