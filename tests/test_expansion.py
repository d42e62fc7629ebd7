from __future__ import annotations

import pytest

from src.supplychain.expansion import maybe_schedule_expansion
from src.supplychain.model import NodeState
from src.supplychain.schema import ExpansionTriggerParams, SimulationParams
from tests.helpers import node

PARAMS = SimulationParams()
NODE = node("cowos", starting_capacity=1000, lead_time_debottleneck=6)


def state_with(plan_tightness, **kwargs) -> NodeState:
    state = NodeState(node_id="cowos", **kwargs)
    state.plan_tightness_history = list(plan_tightness)
    return state


def test_no_trigger_without_full_window():
    state = state_with([2.0] * 5)
    assert maybe_schedule_expansion(state, NODE, 4, 1000.0, False, PARAMS) is None
    assert state.dynamic_expansions == []


def test_trigger_after_sustained_plan_tightness():
    state = state_with([1.2] * 6)
    expansion = maybe_schedule_expansion(state, NODE, 5, 1000.0, False, PARAMS)

    assert expansion is not None
    assert expansion.trigger_month == 5
    assert expansion.effective_month == 11
    assert expansion.capacity_add == pytest.approx(100.0)
    assert expansion.ramp_months == PARAMS.expansion.ramp_months
    assert state.last_expansion_month == 5
    assert state.dynamic_expansions == [expansion]


def test_primary_node_uses_lower_threshold():
    history = [1.07] * 6
    assert maybe_schedule_expansion(state_with(history), NODE, 5, 1000.0, True, PARAMS) is not None
    assert maybe_schedule_expansion(state_with(history), NODE, 5, 1000.0, False, PARAMS) is None


def test_only_recent_window_counts():
    state = state_with([0.5] * 20 + [1.3] * 6)
    assert maybe_schedule_expansion(state, NODE, 25, 1000.0, False, PARAMS) is not None


def test_cooldown_between_expansions():
    state = state_with([1.5] * 6)
    assert maybe_schedule_expansion(state, NODE, 5, 1000.0, False, PARAMS) is not None

    state.plan_tightness_history.extend([1.5] * 6)
    assert maybe_schedule_expansion(state, NODE, 11, 1000.0, False, PARAMS) is None, "Still cooling down"

    state.plan_tightness_history.extend([1.5] * 6)
    assert maybe_schedule_expansion(state, NODE, 17, 1000.0, False, PARAMS) is not None


def test_expansion_count_is_capped():
    params = SimulationParams(expansion=ExpansionTriggerParams(max_dynamic_expansions=1, cooldown_months=0))
    state = state_with([1.5] * 6)
    assert maybe_schedule_expansion(state, NODE, 5, 1000.0, False, params) is not None
    assert maybe_schedule_expansion(state, NODE, 6, 1100.0, False, params) is None
    assert len(state.dynamic_expansions) == 1


def test_backlog_overhang_alone_does_not_trigger():
    state = state_with([0.9] * 6)
    state.tightness_history = [3.0] * 6
    assert maybe_schedule_expansion(state, NODE, 5, 1000.0, False, PARAMS) is None


def test_trigger_can_be_disabled():
    params = SimulationParams(expansion=ExpansionTriggerParams(enabled=False))
    assert maybe_schedule_expansion(state_with([3.0] * 6), NODE, 5, 1000.0, True, params) is None
