from __future__ import annotations

import json
import subprocess
import sys

import yaml


def run_clamp(*args: str) -> subprocess.CompletedProcess:
    return subprocess.run(
        [sys.executable, "-m", "scripts.clamp_overrides", *args],
        capture_output=True,
        text=True,
        check=True,
    )


def test_clamp_overrides_writes_bounded_document(tmp_path):
    current = tmp_path / "overrides.yaml"
    proposed = tmp_path / "proposed.yaml"
    current.write_text(yaml.safe_dump({"demand": {"year1": {"inference_growth": {"consumer": 0.40}}}}))
    proposed.write_text(
        yaml.safe_dump(
            {
                "demand": {"year1": {"inference_growth": {"consumer": 0.80, "agentic": 1.2}}},
                "node_overrides": {"cowos_capacity": {"starting_capacity": 100000}},
            }
        )
    )

    result = run_clamp("--current", str(current), "--proposed", str(proposed), "--out", str(tmp_path / "out.json"))
    assert "Clamped demand.year1.inference_growth.consumer" in result.stdout

    merged = json.loads((tmp_path / "out.json").read_text())
    growth = merged["demand"]["year1"]["inference_growth"]
    assert growth["consumer"] == 0.46
    assert growth["agentic"] == 1.2, "New keys pass through unclamped"
    assert merged["node_overrides"]["cowos_capacity"]["starting_capacity"] == 100000


def test_clamp_overrides_dry_run_leaves_files(tmp_path):
    proposed = tmp_path / "proposed.yaml"
    proposed.write_text(yaml.safe_dump({"translation": {"tokens_per_sec_per_accelerator": {"consumer": 50}}}))
    current = tmp_path / "missing.yaml"

    result = run_clamp("--current", str(current), "--proposed", str(proposed), "--dry-run")
    assert "No clamping needed." in result.stdout
    assert not current.exists()
