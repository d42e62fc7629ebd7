#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
from pathlib import Path
from datetime import datetime
from typing import Any, Dict, Optional

import yaml

from src.config import Config
from src.schemas.report import RunReport
from src.supplychain.metrics import compute_metrics
from src.supplychain.schema import load_scenario
from src.supplychain.system_dynamics import SystemDynamicsModel


def load_override_document(path: Optional[str]) -> Optional[Dict[str, Any]]:
    """Load a persistent override layer (YAML or JSON)."""
    if not path:
        return None
    override_path = Path(path)
    if not override_path.exists():
        raise FileNotFoundError(f"Override document not found: {path}")
    with open(override_path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def main() -> int:
    parser = argparse.ArgumentParser(description="Run an AI supply chain scenario.")
    parser.add_argument("--scenario", required=True, help="Path to scenario YAML.")
    parser.add_argument("--overrides", type=str, default=None,
                       help="Optional assumption override layer (YAML/JSON)")
    parser.add_argument("--previous-overrides", type=str, default=None,
                       help="Layer in force before --overrides; moves beyond MAX_CHANGE_PCT from it are clamped")
    parser.add_argument("--out-dir", dest="out_dir", type=str, default=None,
                       help="Output directory (if not provided, uses runs/<scenario>/<timestamp>/)")
    parser.add_argument("--no-csv", action="store_true", help="Skip writing timeseries.csv")
    args = parser.parse_args()

    cfg = load_scenario(args.scenario)
    model = SystemDynamicsModel(
        override_document=load_override_document(args.overrides),
        previous_document=load_override_document(args.previous_overrides),
    )
    result = model.run(cfg)
    metrics = compute_metrics(result)

    # Determine output directory
    if args.out_dir:
        out_dir = Path(args.out_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
    else:
        Config.ensure_directories()
        ts = datetime.now().strftime("%Y%m%d_%H%M%S")
        out_dir = Config.RUNS_DIR / cfg.name / ts
        out_dir.mkdir(parents=True, exist_ok=True)

    artifacts = []
    if not args.no_csv:
        result.to_frame().to_csv(out_dir / "timeseries.csv", index=False)
        artifacts.append(str(out_dir / "timeseries.csv"))
    with open(out_dir / "metrics.json", "w", encoding="utf-8") as f:
        json.dump(metrics, f, indent=2, sort_keys=True)
    artifacts.append(str(out_dir / "metrics.json"))

    report = RunReport(
        scenario_name=cfg.name,
        scenario_path=args.scenario,
        assumptions_fingerprint=result.assumptions_fingerprint,
        calibration_multiplier=result.calibration_multiplier,
        metrics=metrics,
        summary=result.summary.to_dict(),
        warnings=result.warnings,
        artifacts=artifacts,
    )
    with open(out_dir / "report.json", "w", encoding="utf-8") as f:
        f.write(report.model_dump_json(indent=2))

    # Print summary
    print(f"Scenario: {cfg.name}")
    print(f"Horizon: {result.month_labels[0]} to {result.month_labels[-1]} ({result.horizon_months} months)")
    for k in ("peak_tightness", "total_shortage_months", "final_installed_base", "calibration_multiplier"):
        if metrics.get(k) is not None:
            print(f"{k}: {metrics[k]:.6g}")
    print(f"top_bottleneck: {metrics.get('top_bottleneck')}")
    for event in result.summary.shortages[:5]:
        print(
            f"  shortage {event.node_id}: {result.month_labels[event.start_month]} "
            f"for {event.duration} months, peak {event.peak_tightness:.2f}"
        )
    if result.warnings:
        print(f"Warnings: {len(result.warnings)}")
    print(f"Outputs: {out_dir}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
