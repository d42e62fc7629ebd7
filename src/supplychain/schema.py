"""Schema validation for node catalogs, simulation parameters and scenario files."""

import re
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


RampProfile = Literal["step", "linear", "s-curve"]
NodeKind = Literal["compute_stock", "derived_flow", "workload_driver"]

_DATE_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


class CommittedExpansion(BaseModel):
    """A scheduled capacity addition."""
    model_config = ConfigDict(frozen=True)

    date: str = Field(..., description="Launch date (YYYY-MM)")
    capacity_add: float = Field(..., ge=0, description="Capacity added once fully ramped")
    ramp_months: int = Field(default=6, ge=0, description="Ramp duration in months")
    lead_time_months: int = Field(default=0, ge=0, description="Months between launch date and first output")
    type: Literal["committed", "optional"] = Field(default="committed", description="Committed vs optional")
    source: Optional[str] = Field(default=None, description="Source note")

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: str) -> str:
        """Dates are year-month strings."""
        if not _DATE_RE.match(v):
            raise ValueError(f"Expansion date must be YYYY-MM, got {v!r}")
        return v


class WorkloadRef(BaseModel):
    """Which compounded demand-growth series drives a workload node."""
    model_config = ConfigDict(frozen=True)

    category: Literal["inference", "training"]
    segment: str


class NodeConfig(BaseModel):
    """Static definition of one supply-chain node."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Unique node id")
    name: str = Field(..., description="Display name")
    group: str = Field(..., description="Group/category letter")
    unit: str = Field(..., description="Unit of measurement")
    kind: NodeKind = Field(..., description="compute_stock, derived_flow or workload_driver")
    description: Optional[str] = Field(default=None, description="Node description")

    # Supply
    starting_capacity: float = Field(default=0.0, ge=0, description="Capacity at month 0 (units/month)")
    committed_expansions: List[CommittedExpansion] = Field(default_factory=list)
    ramp_profile: RampProfile = Field(default="linear", description="Ramp shape for capacity additions")
    max_capacity_utilization: float = Field(default=0.95, ge=0, le=1)
    lead_time_debottleneck: int = Field(default=6, ge=0, description="Months before a triggered expansion produces")
    lead_time_new_build: Optional[int] = Field(default=None, ge=0)

    # Yield
    yield_model: Literal["simple", "stacked"] = Field(default="simple")
    yield_simple_loss: float = Field(default=0.0, ge=0, le=1)
    yield_initial: float = Field(default=0.65, ge=0, le=1)
    yield_target: float = Field(default=0.85, ge=0, le=1)
    yield_halflife_months: float = Field(default=18.0, gt=0)

    # Demand
    parent_node_ids: List[str] = Field(default_factory=list)
    input_intensity: float = Field(default=1.0, ge=0, description="Units consumed per unit of the driver")
    demand_basis: Literal["purchases", "parent_demand"] = Field(
        default="parent_demand",
        description="Drive demand from compute-stock purchases or from upstream demand",
    )
    workload: Optional[WorkloadRef] = Field(default=None, description="Growth series for workload drivers")
    base_rate: Optional[float] = Field(default=None, ge=0, description="Workload volume at month 0")

    # Stock nodes
    lifetime_months: int = Field(default=48, gt=0, description="Service life of installed units")
    required_base_share: float = Field(default=1.0, ge=0, description="Share of the required compute stock")
    component_constraints: Dict[str, float] = Field(
        default_factory=dict,
        description="Component node id -> component units needed per unit produced",
    )

    # Market mechanics
    substitutability_score: float = Field(default=0.0, ge=0, le=1)
    inventory_buffer_target: float = Field(default=0.0, ge=0)

    # Informational metadata
    elasticity_short: Optional[float] = None
    elasticity_mid: Optional[float] = None
    elasticity_long: Optional[float] = None
    supplier_concentration: Optional[int] = None
    contracting_regime: Optional[str] = None
    geo_risk_flag: bool = False
    export_control_sensitivity: Optional[str] = None

    @model_validator(mode="after")
    def validate_kind_fields(self):
        """Workload drivers need a growth series and a base volume."""
        if self.kind == "workload_driver" and (self.workload is None or self.base_rate is None):
            raise ValueError(f"Workload driver {self.id} needs both workload and base_rate")
        if self.yield_model == "stacked" and self.yield_initial > self.yield_target:
            raise ValueError(f"Node {self.id}: yield_initial must not exceed yield_target")
        for cid, per_unit in self.component_constraints.items():
            if per_unit <= 0:
                raise ValueError(f"Node {self.id}: component requirement for {cid} must be positive")
        return self

    @property
    def is_market_node(self) -> bool:
        return self.kind != "workload_driver"


class PriceIndexParams(BaseModel):
    """Price index shape."""
    a: float = Field(default=2.0, gt=0)
    b: float = Field(default=1.5, gt=0)
    min_price: float = Field(default=0.5, ge=0)
    max_price: float = Field(default=5.0, gt=0)

    @model_validator(mode="after")
    def validate_bounds(self):
        if self.min_price > self.max_price:
            raise ValueError("min_price must not exceed max_price")
        return self


class ThresholdParams(BaseModel):
    """Shortage / glut detection thresholds."""
    shortage: float = Field(default=1.05, gt=0)
    glut_soft: float = Field(default=0.95, gt=0)
    glut_hard: float = Field(default=0.80, gt=0)
    persistence_soft: int = Field(default=3, ge=1)
    persistence_hard: int = Field(default=2, ge=1)


class SubstitutionParams(BaseModel):
    """Substitution damping."""
    price_signal_sma_months: int = Field(default=4, ge=1)
    adjustment_speed: float = Field(default=0.15, ge=0, le=1)
    sensitivity: float = Field(default=0.2, ge=0)


class ExpansionTriggerParams(BaseModel):
    """Endogenous capacity expansion trigger."""
    enabled: bool = True
    window_months: int = Field(default=6, ge=1)
    threshold_primary: float = Field(default=1.05, gt=0)
    threshold_other: float = Field(default=1.10, gt=0)
    expansion_fraction: float = Field(default=0.10, ge=0)
    cooldown_months: int = Field(default=12, ge=0)
    max_dynamic_expansions: int = Field(default=5, ge=0)
    ramp_months: int = Field(default=6, ge=0)


class CalibrationParams(BaseModel):
    """Month-0 calibration of translated accelerator-hours."""
    target_installed_base: float = Field(default=2_000_000, ge=0)
    target_utilization: float = Field(default=0.70, gt=0, le=1)
    hours_per_month: float = Field(default=720.0, gt=0)


class SimulationParams(BaseModel):
    """Global model parameters (everything that is not an assumption table)."""
    horizon_years: int = Field(default=20, ge=1)
    start_year: int = Field(default=2026)
    start_month: int = Field(default=1, ge=1, le=12)
    epsilon: float = Field(default=1e-10, gt=0)
    primary_node_id: str = Field(default="gpu_datacenter")
    max_efficiency_gain: Optional[float] = Field(default=117.0, gt=1)

    price_index: PriceIndexParams = Field(default_factory=PriceIndexParams)
    thresholds: ThresholdParams = Field(default_factory=ThresholdParams)
    substitution: SubstitutionParams = Field(default_factory=SubstitutionParams)
    expansion: ExpansionTriggerParams = Field(default_factory=ExpansionTriggerParams)
    calibration: CalibrationParams = Field(default_factory=CalibrationParams)

    @property
    def horizon_months(self) -> int:
        return self.horizon_years * 12


class SupplyShock(BaseModel):
    """Capacity step-down at `shock_month`, recovering linearly over `recovery_months`."""
    affected_nodes: List[str] = Field(..., description="Node ids hit by the shock")
    shock_month: int = Field(default=24, ge=0)
    capacity_reduction: float = Field(default=0.5, ge=0, le=1)
    recovery_months: int = Field(default=36, gt=0)


class StartingState(BaseModel):
    """Month-0 state overrides."""
    installed_base: Optional[float] = Field(default=None, ge=0, description="Primary compute-stock installed base")
    backlog_by_node: Dict[str, float] = Field(default_factory=dict)

    @field_validator("backlog_by_node")
    @classmethod
    def validate_backlogs(cls, v: Dict[str, float]) -> Dict[str, float]:
        for node_id, amount in v.items():
            if amount < 0:
                raise ValueError(f"Starting backlog for {node_id} must be non-negative")
        return v


class ScenarioConfig(BaseModel):
    """Schema for scenario configuration files."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Scenario name")
    description: Optional[str] = Field(default=None, description="Scenario description")

    overrides: Dict[str, Any] = Field(
        default_factory=dict,
        description="Sparse assumption document (demand/efficiency/supply/translation)",
    )
    deltas: Dict[str, float] = Field(
        default_factory=dict,
        description="Additive adjustments, e.g. 'demand.inference_growth.consumer': 0.1 (all blocks)",
    )
    node_overrides: Dict[str, Dict[str, Any]] = Field(default_factory=dict, description="Per-node catalog patches")
    supply_shock: Optional[SupplyShock] = Field(default=None)
    starting_state: Optional[StartingState] = Field(default=None)
    params: SimulationParams = Field(default_factory=SimulationParams)

    @field_validator("overrides")
    @classmethod
    def validate_override_tables(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        allowed = {"demand", "efficiency", "supply", "translation"}
        unknown = set(v) - allowed
        if unknown:
            raise ValueError(f"Unknown assumption tables in overrides: {sorted(unknown)}")
        return v


def load_scenario(path: str) -> ScenarioConfig:
    """Load and validate scenario from YAML file."""
    scenario_path = Path(path)
    if not scenario_path.exists():
        raise FileNotFoundError(f"Scenario file not found: {path}")
    
    with open(scenario_path, "r") as f:
        data = yaml.safe_load(f) or {}
    
    if "name" not in data:
        data["name"] = scenario_path.stem
    
    return ScenarioConfig(**data)
