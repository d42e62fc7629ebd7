#!/usr/bin/env python3
"""
Apply a proposed assumption/node override document under the bounded-update contract.

Every numeric leaf present in both the current and the proposed document is
limited to ±MAX_CHANGE_PCT of its current value; clamps are logged. The
clamped proposal is deep-merged into the current document and written out.
"""
from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any, Dict

import yaml

from src.config import Config
from src.supplychain.overrides import merge_override_pass
from src.utils.logging_utils import get_logger

logger = get_logger(__name__)


def read_document(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def main() -> int:
    parser = argparse.ArgumentParser(description="Clamp and merge a proposed override document.")
    parser.add_argument("--current", required=True, help="Current override document (YAML/JSON; may not exist yet)")
    parser.add_argument("--proposed", required=True, help="Proposed override document (YAML/JSON)")
    parser.add_argument("--out", type=str, default=None, help="Output path (defaults to --current)")
    parser.add_argument("--max-change-pct", type=float, default=Config.MAX_CHANGE_PCT,
                       help="Max %% any leaf may move in one pass")
    parser.add_argument("--dry-run", action="store_true", help="Print the merged document instead of writing it")
    args = parser.parse_args()

    proposed_path = Path(args.proposed)
    if not proposed_path.exists():
        raise FileNotFoundError(f"Proposed override document not found: {proposed_path}")

    current = read_document(Path(args.current))
    proposed = read_document(proposed_path)

    merged, clamps = merge_override_pass(current, proposed, args.max_change_pct)
    if clamps:
        print(f"Change magnitude clamping (>{args.max_change_pct:.0f}% moves capped):")
        for message in clamps:
            print(f"  {message}")
    else:
        print("No clamping needed.")

    logger.info(f"Merged {len(proposed)} proposed tables into the override layer, {len(clamps)} clamps")
    text = json.dumps(merged, indent=2, sort_keys=True) + "\n"
    if args.dry_run:
        print(text)
        return 0

    out_path = Path(args.out or args.current)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(text, encoding="utf-8")
    print(f"Wrote {out_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
