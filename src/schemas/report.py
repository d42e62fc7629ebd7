"""Run report schema for scenario execution results."""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any


class RunReport(BaseModel):
    """Report of a scenario run with parameters, metrics, ranked events, and artifacts."""
    
    scenario_name: str = Field(..., description="Scenario name")
    scenario_path: Optional[str] = Field(default=None, description="Path to scenario YAML file")
    assumptions_fingerprint: str = Field(..., description="Content hash of the assumption set used")
    calibration_multiplier: float = Field(..., description="Global accelerator-hours calibration multiplier")
    metrics: Dict[str, Any] = Field(..., description="Computed scalar metrics")
    summary: Dict[str, List[Dict[str, Any]]] = Field(..., description="Ranked shortages, gluts and bottlenecks")
    warnings: List[str] = Field(default_factory=list, description="Non-fatal run warnings")
    artifacts: List[str] = Field(default_factory=list, description="List of artifact file paths")
