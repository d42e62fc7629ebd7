"""
Month-by-month cumulative multipliers for demand growth, efficiency and intensity.

Every series starts at 1.0 in month 0 and is extended by multiplying the
previous month's value with the monthly equivalent ``(1 ± annual)^(1/12)`` of
the rate active in that month's assumption block. Compounding from month 0
keeps the series continuous across block boundaries.

A `CompoundingCache` belongs to exactly one `AssumptionSet`; its `key` is
the set's content fingerprint, so two runs with different assumptions can
never read each other's values.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from src.utils.logging_utils import get_logger

from .assumptions import AssumptionSet

logger = get_logger(__name__)

# Annual factors are floored here so an extreme rate (e.g. 100% efficiency gain
# or -100% growth) still yields a positive multiplier.
MIN_ANNUAL_FACTOR = 1e-9

DEFAULT_GROWTH = {"inference": 0.40, "training": 0.25}
DEFAULT_INTENSITY_GROWTH = 0.25

# metric -> (group, name, direction, default annual rate)
# direction -1: compute per unit of work falls; +1: throughput rises
EFFICIENCY_METRICS: Dict[str, Tuple[str, str, int, float]] = {
    "m_inference": ("model_efficiency", "m_inference", -1, 0.40),
    "m_training": ("model_efficiency", "m_training", -1, 0.20),
    "s_inference": ("systems_efficiency", "s_inference", 1, 0.25),
    "s_training": ("systems_efficiency", "s_training", 1, 0.15),
    "h": ("hardware_efficiency", "h", 1, 0.30),
}


def monthly_factor(annual_rate: float, direction: int = 1) -> float:
    """Monthly multiplier equivalent to one year at `annual_rate`."""
    return max(1.0 + direction * annual_rate, MIN_ANNUAL_FACTOR) ** (1.0 / 12.0)


@dataclass(frozen=True)
class EfficiencyMultipliers:
    m_inference: float
    m_training: float
    s_inference: float
    s_training: float
    h: float


class CompoundingCache:
    """Per-run memo of cumulative multipliers for one assumption set."""

    def __init__(self, assumptions: AssumptionSet, max_efficiency_gain: Optional[float] = None):
        self.assumptions = assumptions
        self.max_efficiency_gain = max_efficiency_gain
        self.key: Tuple[str, Optional[float]] = (assumptions.fingerprint, max_efficiency_gain)
        self._growth: Dict[Tuple[str, str], List[float]] = {}
        self._efficiency: Dict[str, List[float]] = {metric: [1.0] for metric in EFFICIENCY_METRICS}
        self._capped_at: Dict[str, int] = {}
        self._intensity: List[float] = [1.0]

    def matches(self, assumptions: AssumptionSet, max_efficiency_gain: Optional[float] = None) -> bool:
        return self.key == (assumptions.fingerprint, max_efficiency_gain)

    # ----------------------------------------
    # Demand growth
    # ----------------------------------------
    def demand_growth(self, category: str, segment: str, month: int) -> float:
        series = self._growth.setdefault((category, segment), [1.0])
        group = f"{category}_growth"
        default = DEFAULT_GROWTH.get(category, 0.0)
        for m in range(len(series), month + 1):
            rate = self.assumptions.rate("demand", m, group, segment, default)
            series.append(series[m - 1] * monthly_factor(rate))
        return series[month]

    # ----------------------------------------
    # Compute intensity (context length, reasoning, agent loops)
    # ----------------------------------------
    def intensity(self, month: int) -> float:
        series = self._intensity
        for m in range(len(series), month + 1):
            rate = self.assumptions.rate("demand", m, "intensity_growth", None, DEFAULT_INTENSITY_GROWTH)
            series.append(series[m - 1] * monthly_factor(rate))
        return series[month]

    # ----------------------------------------
    # Efficiency
    # ----------------------------------------
    def _extend_efficiency(self, metric: str, month: int) -> None:
        group, name, direction, default = EFFICIENCY_METRICS[metric]
        series = self._efficiency[metric]
        ceiling = self.max_efficiency_gain
        for m in range(len(series), month + 1):
            prev = series[m - 1]
            if metric in self._capped_at:
                series.append(prev)
                continue
            rate = self.assumptions.rate("efficiency", m, group, name, default)
            value = prev * monthly_factor(rate, direction)
            if ceiling is not None:
                gain = 1.0 / value if direction < 0 else value
                if gain >= ceiling:
                    value = 1.0 / ceiling if direction < 0 else ceiling
                    self._capped_at[metric] = m
                    logger.debug(f"Efficiency metric {metric} reached {ceiling}x ceiling at month {m}")
            series.append(value)

    def efficiency_metric(self, metric: str, month: int) -> float:
        self._extend_efficiency(metric, month)
        return self._efficiency[metric][month]

    def efficiency(self, month: int) -> EfficiencyMultipliers:
        return EfficiencyMultipliers(**{metric: self.efficiency_metric(metric, month) for metric in EFFICIENCY_METRICS})

    def capped_month(self, metric: str) -> Optional[int]:
        """First month at which `metric` hit the efficiency ceiling, if it has so far."""
        return self._capped_at.get(metric)
