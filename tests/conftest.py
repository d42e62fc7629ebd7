from __future__ import annotations

import pytest

from src.supplychain.schema import ScenarioConfig
from src.supplychain.system_dynamics import SystemDynamicsModel


@pytest.fixture(scope="session")
def base_result():
    """One full default run shared by the read-only simulation tests."""
    return SystemDynamicsModel().run(ScenarioConfig(name="base"))
