"""AI infrastructure supply chain system dynamics engine."""
from .catalog import NodeCatalog, load_node_catalog
from .schema import ScenarioConfig, SimulationParams, load_scenario
from .simulate import SimulationResult, run_scenario, run_simulation
from .system_dynamics import SystemDynamicsModel

__all__ = [
    "NodeCatalog",
    "ScenarioConfig",
    "SimulationParams",
    "SimulationResult",
    "SystemDynamicsModel",
    "load_node_catalog",
    "load_scenario",
    "run_scenario",
    "run_simulation",
]
