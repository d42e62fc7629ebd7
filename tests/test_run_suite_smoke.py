from __future__ import annotations

from pathlib import Path

from scripts.run_suite import run_suite


def test_run_suite_smoke(tmp_path):
    """Smoke test: run suite on all scenarios and verify outputs."""
    scenarios_dir = Path("scenarios")

    summary_df = run_suite(scenarios_dir, tmp_path)

    assert len(summary_df) == 6, f"Expected 6 scenarios, got {len(summary_df)}"

    required_cols = ["scenario", "scenario_file", "peak_tightness", "avg_price_index", "total_shortage_months"]
    for col in required_cols:
        assert col in summary_df.columns, f"Summary must have column: {col}"

    expected_scenarios = {
        "base",
        "high_demand_slow_efficiency",
        "high_demand_fast_efficiency",
        "demand_slowdown",
        "geopolitical_shock",
        "tight_2026",
    }
    actual_scenarios = set(summary_df["scenario"].values)
    assert actual_scenarios == expected_scenarios, (
        f"Expected scenarios {expected_scenarios}, got {actual_scenarios}"
    )

    for col in ["peak_tightness", "avg_price_index", "total_shortage_months"]:
        assert summary_df[col].notna().all(), f"Column {col} must not have NaN values"
        assert (summary_df[col].abs() < float("inf")).all(), f"Column {col} must have finite values"

    if "error" in summary_df.columns:
        errors = summary_df[summary_df["error"].notna()]
        assert len(errors) == 0, f"Some scenarios had errors: {errors[['scenario', 'error']].to_dict('records')}"

    suite_dirs = list(tmp_path.glob("suite_*"))
    assert len(suite_dirs) == 1
    assert (suite_dirs[0] / "summary.csv").exists()
    for name in expected_scenarios:
        assert (suite_dirs[0] / name / "metrics.json").exists(), f"{name} metrics should be written"
