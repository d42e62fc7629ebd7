from __future__ import annotations

from typing import Optional

from .schema import SupplyShock


def capacity_shock_multiplier(node_id: str, month: int, shock: Optional[SupplyShock]) -> float:
    """
    Capacity multiplier for a regional supply disruption.

    Capacity steps down by `capacity_reduction` at `shock_month` and recovers
    linearly to full over `recovery_months`.
    """
    if shock is None or node_id not in shock.affected_nodes or month < shock.shock_month:
        return 1.0
    recovered = min(1.0, (month - shock.shock_month) / shock.recovery_months)
    return 1.0 - shock.capacity_reduction * (1.0 - recovered)
