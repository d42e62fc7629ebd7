"""
FastAPI application for the supply chain forecasting engine.

This module provides HTTP endpoints for listing and running scenarios. It
wraps the system dynamics engine with a REST API interface; every request
gets its own engine instance.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field
from src.config import Config
from src.utils.logging_utils import get_logger, setup_logger
from src.supplychain.schema import ScenarioConfig, load_scenario
from src.supplychain.metrics import compute_metrics
from src.supplychain.system_dynamics import SystemDynamicsModel

# Set up logging
setup_logger(__name__, Config.LOG_LEVEL)
logger = get_logger(__name__)

# Create FastAPI app
app = FastAPI(
    title="AI Supply Chain Forecasting API",
    description="API for running supply/demand system dynamics scenarios",
    version="0.1.0"
)


# Request/Response models
class SimulationRequest(BaseModel):
    """Request model for a scenario run."""
    scenario: Optional[str] = Field(
        default=None,
        description="Scenario name (file stem under SCENARIOS_DIR) or path to a scenario YAML",
    )
    scenario_config: Optional[Dict[str, Any]] = Field(
        default=None, description="Inline scenario document (used when scenario is not given)"
    )
    override_document: Optional[Dict[str, Any]] = Field(
        default=None, description="Persistent assumption override layer, or a new update pass when previous_override_document is set"
    )
    previous_override_document: Optional[Dict[str, Any]] = Field(
        default=None, description="Layer in force before this pass; override moves are clamped against it"
    )
    include_series: bool = Field(default=False, description="Include per-node monthly series in the response")
    nodes: Optional[List[str]] = Field(default=None, description="Restrict returned series to these node ids")


class SimulationResponse(BaseModel):
    """Response model for a scenario run."""
    scenario_name: str = Field(..., description="Scenario name")
    assumptions_fingerprint: str = Field(..., description="Content hash of the assumption set")
    metrics: Dict[str, Any] = Field(..., description="Scalar run metrics")
    summary: Dict[str, List[Dict[str, Any]]] = Field(..., description="Ranked shortages, gluts and bottlenecks")
    warnings: List[str] = Field(default_factory=list, description="Non-fatal run warnings")
    month_labels: Optional[List[str]] = Field(default=None, description="Month labels when series are included")
    series: Optional[Dict[str, Dict[str, Any]]] = Field(default=None, description="Per-node monthly series")


def _resolve_scenario_path(name: str) -> Path:
    path = Path(name)
    if path.suffix in (".yaml", ".yml"):
        return path
    return Config.SCENARIOS_DIR / f"{name}.yaml"


def _load_request_scenario(req: SimulationRequest) -> ScenarioConfig:
    if req.scenario:
        return load_scenario(str(_resolve_scenario_path(req.scenario)))
    doc = dict(req.scenario_config or {})
    doc.setdefault("name", "inline")
    return ScenarioConfig(**doc)


@app.get("/")
async def root() -> dict[str, Any]:
    """Root endpoint."""
    return {
        "message": "AI Supply Chain Forecasting API",
        "version": "0.1.0",
        "endpoints": ["/scenarios", "/simulate"]
    }


@app.get("/health")
async def health() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/scenarios")
async def list_scenarios() -> dict[str, List[str]]:
    """List scenario names available under SCENARIOS_DIR."""
    if not Config.SCENARIOS_DIR.exists():
        return {"scenarios": []}
    return {"scenarios": sorted(p.stem for p in Config.SCENARIOS_DIR.glob("*.yaml"))}


@app.post("/simulate", response_model=SimulationResponse)
def simulate_endpoint(req: SimulationRequest) -> SimulationResponse:
    """
    Run one scenario and return its summary.

    This endpoint:
    1) Loads the named scenario (or validates the inline document)
    2) Runs it on a fresh engine instance
    3) Returns metrics, ranked events, warnings and optionally the series

    Raises:
        HTTPException: 404 for a missing scenario file, 400 for invalid
            input, 500 for anything else
    """
    logger.info(f"Received simulation request: scenario={req.scenario or 'inline'}")

    try:
        cfg = _load_request_scenario(req)
    except FileNotFoundError as e:
        logger.error(f"Scenario file not found: {req.scenario}")
        raise HTTPException(status_code=404, detail=f"Scenario not found: {req.scenario}. Error: {str(e)}")
    except ValueError as e:
        # pydantic.ValidationError is a ValueError
        logger.error(f"Invalid scenario: {e}")
        raise HTTPException(status_code=400, detail=f"Invalid scenario: {str(e)}")

    try:
        model = SystemDynamicsModel(
            override_document=req.override_document,
            previous_document=req.previous_override_document,
        )
        result = model.run(cfg)
        metrics = compute_metrics(result)
        logger.info(f"Simulation completed: {cfg.name}, {len(result.warnings)} warnings")

        series = None
        labels = None
        if req.include_series:
            wanted = req.nodes or list(result.nodes)
            unknown = [n for n in wanted if n not in result.nodes]
            if unknown:
                raise ValueError(f"Unknown node ids: {unknown}")
            full = result.to_dict()["nodes"]
            series = {node_id: full[node_id] for node_id in wanted}
            labels = result.month_labels

        return SimulationResponse(
            scenario_name=result.scenario_name,
            assumptions_fingerprint=result.assumptions_fingerprint,
            metrics=metrics,
            summary=result.summary.to_dict(),
            warnings=result.warnings,
            month_labels=labels,
            series=series,
        )

    except FileNotFoundError as e:
        logger.error(f"File not found: {e}")
        raise HTTPException(status_code=404, detail=f"File not found: {str(e)}")
    except ValueError as e:
        logger.error(f"Validation error: {e}")
        raise HTTPException(status_code=400, detail=f"Validation error: {str(e)}")
    except Exception as e:
        logger.error(f"Simulation error: {e}")
        raise HTTPException(status_code=500, detail=f"Simulation failed: {str(e)}")


if __name__ == "__main__":
    import uvicorn

    logger.info(f"Starting AI Supply Chain Forecasting API on {Config.API_HOST}:{Config.API_PORT}")
    uvicorn.run(
        "src.api:app",
        host=Config.API_HOST,
        port=Config.API_PORT,
        reload=Config.API_DEBUG
    )
