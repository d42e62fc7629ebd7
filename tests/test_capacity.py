from __future__ import annotations

import math

import pytest

from src.supplychain.capacity import (
    DynamicExpansion,
    date_to_month,
    node_capacity,
    node_yield,
    producible_supply,
    ramp_fraction,
)
from src.supplychain.schema import SimulationParams, SupplyShock
from src.supplychain.shocks import capacity_shock_multiplier
from tests.helpers import node

PARAMS = SimulationParams()


def test_date_to_month():
    assert date_to_month("2026-01", 2026, 1) == 0
    assert date_to_month("2027-07", 2026, 1) == 18
    assert date_to_month("2025-06", 2026, 1) == -7


@pytest.mark.parametrize(
    "profile,elapsed,duration,expected",
    [
        ("step", 0, 6, 1.0),
        ("linear", 0, 6, 0.0),
        ("linear", 3, 6, 0.5),
        ("linear", 12, 6, 1.0),
        ("s-curve", 3, 6, 0.5),
        ("s-curve", 0, 6, 1.0 / (1.0 + math.exp(5.0))),
        ("linear", 4, 0, 1.0),
        ("s-curve", -1, 6, 0.0),
    ],
)
def test_ramp_fraction(profile, elapsed, duration, expected):
    assert ramp_fraction(profile, elapsed, duration) == pytest.approx(expected)


def test_committed_expansion_ramps_in_linearly():
    n = node(
        "n",
        starting_capacity=1000,
        ramp_profile="linear",
        committed_expansions=[{"date": "2026-07", "capacity_add": 600, "ramp_months": 6}],
    )
    assert node_capacity(n, 5, PARAMS) == 1000
    assert node_capacity(n, 6, PARAMS) == 1000
    assert node_capacity(n, 9, PARAMS) == pytest.approx(1300)
    assert node_capacity(n, 12, PARAMS) == pytest.approx(1600)
    assert node_capacity(n, 30, PARAMS) == pytest.approx(1600)


def test_expansion_lead_time_delays_effective_month():
    n = node(
        "n",
        starting_capacity=1000,
        ramp_profile="step",
        committed_expansions=[{"date": "2026-07", "capacity_add": 500, "lead_time_months": 3}],
    )
    assert node_capacity(n, 8, PARAMS) == 1000
    assert node_capacity(n, 9, PARAMS) == 1500


def test_past_expansion_is_fully_ramped_at_start():
    n = node(
        "n",
        starting_capacity=1000,
        ramp_profile="linear",
        committed_expansions=[{"date": "2025-01", "capacity_add": 600, "ramp_months": 6}],
    )
    assert node_capacity(n, 0, PARAMS) == pytest.approx(1600)


def test_dynamic_expansions_add_capacity():
    n = node("n", starting_capacity=1000, ramp_profile="linear")
    dynamic = [DynamicExpansion(trigger_month=10, effective_month=16, capacity_add=100, ramp_months=0)]
    assert node_capacity(n, 15, PARAMS, dynamic) == 1000
    assert node_capacity(n, 16, PARAMS, dynamic) == pytest.approx(1100)


def test_shock_steps_down_and_recovers_linearly():
    shock = SupplyShock(affected_nodes=["n"], shock_month=24, capacity_reduction=0.5, recovery_months=36)
    assert capacity_shock_multiplier("n", 23, shock) == 1.0
    assert capacity_shock_multiplier("n", 24, shock) == pytest.approx(0.5)
    assert capacity_shock_multiplier("n", 42, shock) == pytest.approx(0.75)
    assert capacity_shock_multiplier("n", 60, shock) == pytest.approx(1.0)
    assert capacity_shock_multiplier("n", 100, shock) == pytest.approx(1.0)
    assert capacity_shock_multiplier("other", 24, shock) == 1.0
    assert capacity_shock_multiplier("n", 24, None) == 1.0

    n = node("n", starting_capacity=1000)
    assert node_capacity(n, 24, PARAMS, shock=shock) == pytest.approx(500)


def test_simple_yield_is_constant():
    n = node("n", yield_model="simple", yield_simple_loss=0.05)
    assert {node_yield(n, m) for m in range(0, 240, 12)} == {pytest.approx(0.95)}


def test_stacked_yield_approaches_target():
    n = node("n", yield_model="stacked", yield_initial=0.65, yield_target=0.85, yield_halflife_months=18)
    values = [node_yield(n, m) for m in range(241)]

    assert values[0] == pytest.approx(0.65)
    assert all(b >= a for a, b in zip(values, values[1:])), "Stacked yield must be non-decreasing"
    assert all(0.0 <= v <= 0.85 for v in values), "Stacked yield must never exceed target"
    assert 0.849 < values[180] <= 0.85


def test_producible_supply():
    n = node("n", starting_capacity=450000, max_capacity_utilization=0.95, yield_simple_loss=0.05)
    capacity = node_capacity(n, 0, PARAMS)
    assert producible_supply(n, capacity, node_yield(n, 0)) == pytest.approx(450000 * 0.95 * 0.95)
