#!/usr/bin/env python3
"""
Batch runner: every scenario YAML in a directory, one engine instance each.

Writes `<output>/suite_<timestamp>/<scenario>/{timeseries.csv,metrics.json,summary.json}`
and a `summary.csv` comparing scenarios side by side. A scenario that fails
to load or run is recorded with its error and the suite moves on.
"""
from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List

import pandas as pd

from src.config import Config
from src.supplychain.metrics import compute_metrics
from src.supplychain.schema import load_scenario
from src.supplychain.system_dynamics import SystemDynamicsModel
from src.utils.logging_utils import get_logger

logger = get_logger(__name__)


def find_scenarios(scenarios_dir: Path) -> List[Path]:
    if not scenarios_dir.exists():
        raise FileNotFoundError(f"Scenarios directory not found: {scenarios_dir}")
    return sorted(scenarios_dir.glob("*.yaml"))


def run_one(scenario_path: Path, suite_dir: Path) -> Dict[str, Any]:
    """Run a single scenario into `suite_dir/<name>` and return its summary row."""
    cfg = load_scenario(str(scenario_path))
    result = SystemDynamicsModel().run(cfg)
    metrics = compute_metrics(result)

    out = suite_dir / cfg.name
    out.mkdir(parents=True, exist_ok=True)
    result.to_frame().to_csv(out / "timeseries.csv", index=False)
    (out / "metrics.json").write_text(json.dumps(metrics, indent=2, sort_keys=True), encoding="utf-8")
    (out / "summary.json").write_text(json.dumps(result.summary.to_dict(), indent=2), encoding="utf-8")

    logger.info(
        f"{cfg.name}: peak tightness {metrics['peak_tightness']:.3f}, "
        f"{metrics['shortage_event_count']} shortage events"
    )
    return {"scenario": cfg.name, "scenario_file": scenario_path.name, **metrics}


def run_suite(
    scenarios_dir: Path = Config.SCENARIOS_DIR,
    output_base: Path = Config.RUNS_DIR,
    fail_fast: bool = False,
) -> pd.DataFrame:
    """
    Run all scenarios and return the comparison frame (one row per scenario).

    Args:
        scenarios_dir: Directory containing scenario YAML files
        output_base: Base directory for outputs; a fresh `suite_<timestamp>` is created in it
        fail_fast: Re-raise the first scenario error instead of recording it
    """
    scenario_files = find_scenarios(scenarios_dir)
    if not scenario_files:
        raise ValueError(f"No scenario files found in {scenarios_dir}")

    suite_dir = output_base / f"suite_{datetime.now().strftime('%Y%m%d_%H%M%S')}"
    suite_dir.mkdir(parents=True, exist_ok=True)

    rows: List[Dict[str, Any]] = []
    for scenario_path in scenario_files:
        try:
            rows.append(run_one(scenario_path, suite_dir))
        except Exception as e:
            if fail_fast:
                raise
            logger.error(f"Error running {scenario_path.name}: {e}")
            rows.append({"scenario": scenario_path.stem, "scenario_file": scenario_path.name, "error": str(e)})

    summary_df = pd.DataFrame(rows)
    summary_path = suite_dir / "summary.csv"
    summary_df.to_csv(summary_path, index=False)

    logger.info(f"Suite complete: {len(summary_df)} scenarios, summary at {summary_path}")
    return summary_df


def main() -> int:
    import argparse

    parser = argparse.ArgumentParser(description="Run every scenario YAML and compare the results")
    parser.add_argument("--scenarios-dir", type=str, default=str(Config.SCENARIOS_DIR),
                        help="Directory containing scenario YAML files")
    parser.add_argument("--output-dir", type=str, default=str(Config.RUNS_DIR),
                        help="Base output directory")
    parser.add_argument("--fail-fast", action="store_true",
                        help="Stop at the first scenario that fails")
    args = parser.parse_args()

    Config.ensure_directories()
    summary_df = run_suite(Path(args.scenarios_dir), Path(args.output_dir), fail_fast=args.fail_fast)

    columns = [c for c in ("scenario", "peak_tightness", "avg_price_index", "total_shortage_months",
                           "top_bottleneck", "error") if c in summary_df.columns]
    print(summary_df[columns].to_string(index=False))
    return 1 if "error" in summary_df.columns and summary_df["error"].notna().any() else 0


if __name__ == "__main__":
    raise SystemExit(main())
