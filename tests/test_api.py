from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from src.api import app


@pytest.fixture(scope="module")
def client():
    return TestClient(app)


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_list_scenarios(client):
    response = client.get("/scenarios")
    assert response.status_code == 200
    assert "base" in response.json()["scenarios"]


def test_simulate_named_scenario(client):
    response = client.post("/simulate", json={"scenario": "base"})
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["scenario_name"] == "base"
    assert set(body["summary"]) == {"shortages", "gluts", "bottlenecks"}
    assert body["series"] is None
    assert "peak_tightness" in body["metrics"]


def test_simulate_inline_scenario_with_series(client):
    response = client.post(
        "/simulate",
        json={
            "scenario_config": {"name": "inline_short", "params": {"horizon_years": 1}},
            "include_series": True,
            "nodes": ["gpu_datacenter"],
        },
    )
    assert response.status_code == 200, response.text
    body = response.json()
    assert list(body["series"]) == ["gpu_datacenter"]
    assert len(body["series"]["gpu_datacenter"]["tightness"]) == 12
    assert body["month_labels"][0] == "Jan 2026"


def test_missing_scenario_is_404(client):
    response = client.post("/simulate", json={"scenario": "does_not_exist"})
    assert response.status_code == 404


def test_invalid_inline_scenario_is_400(client):
    response = client.post("/simulate", json={"scenario_config": {"name": "bad", "overrides": {"pricing": {}}}})
    assert response.status_code == 400


def test_unknown_series_node_is_400(client):
    response = client.post(
        "/simulate",
        json={
            "scenario_config": {"name": "short", "params": {"horizon_years": 1}},
            "include_series": True,
            "nodes": ["ghost"],
        },
    )
    assert response.status_code == 400
