"""
Assumption store: time-segmented demand, efficiency and supply tables.

Raw assumption documents are nested mappings whose leaves are either bare
numbers or value records ``{"value": x, "confidence": ..., "source": ...}``.
`AssumptionSet.from_document` resolves them once into a flat table of
canonical floats keyed by dotted path, with provenance kept in a separate
side table that never feeds the numbers.
"""

from __future__ import annotations

import copy
import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from src.schemas.provenance import Provenance
from src.utils.logging_utils import get_logger

from .overrides import (
    apply_override_document,
    apply_patches,
    delta_patches,
    is_number,
    is_value_record,
    patches_from_document,
)
from .schema import ScenarioConfig

logger = get_logger(__name__)

MONTH_NAMES = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


@dataclass(frozen=True)
class AssumptionSegment:
    key: str
    label: str
    start_month: int
    end_month: int

    def contains(self, month: int) -> bool:
        return self.start_month <= month <= self.end_month


SEGMENTS: List[AssumptionSegment] = [
    AssumptionSegment("year1", "Year 1", 0, 11),
    AssumptionSegment("year2", "Year 2", 12, 23),
    AssumptionSegment("year3", "Year 3", 24, 35),
    AssumptionSegment("year4", "Year 4", 36, 47),
    AssumptionSegment("year5", "Year 5", 48, 59),
    AssumptionSegment("years6_10", "Years 6-10", 60, 119),
    AssumptionSegment("years11_15", "Years 11-15", 120, 179),
    AssumptionSegment("years16_20", "Years 16-20", 180, 239),
]
SEGMENT_KEYS = [s.key for s in SEGMENTS]
FIRST_FIVE_YEAR_KEYS = SEGMENT_KEYS[:5]


def block_key_for_month(month: int) -> str:
    """Resolve a month to its assumption block. Months past the horizon use the last block."""
    if month < 0:
        return SEGMENTS[0].key
    for segment in SEGMENTS:
        if segment.contains(month):
            return segment.key
    return SEGMENTS[-1].key


def format_month(month: int, start_year: int = 2026, start_month: int = 1) -> str:
    """Month index -> 'Jan 2026' style label."""
    absolute = (start_month - 1) + month
    return f"{MONTH_NAMES[absolute % 12]} {start_year + absolute // 12}"


def segment_label(segment: AssumptionSegment, start_year: int = 2026, start_month: int = 1) -> str:
    first = format_month(segment.start_month, start_year, start_month)
    last = format_month(segment.end_month, start_year, start_month)
    return f"{segment.label} ({first}-{last})"


def _v(value: float, confidence: str, source: str, low: Optional[float] = None, high: Optional[float] = None) -> Dict[str, Any]:
    record: Dict[str, Any] = {"value": value, "confidence": confidence, "source": source}
    if low is not None and high is not None:
        record["historical_range"] = [low, high]
    return record


# ============================================
# DEMAND
# ============================================

_DEMAND_TEMPLATE = {
    "inference_growth": {
        "consumer": _v(0.80, "medium", "Usage growth + consumer adoption", 0.25, 1.50),
        "enterprise": _v(1.00, "medium", "Enterprise AI adoption + cloud earnings", 0.35, 1.50),
        "agentic": _v(1.50, "low", "Emerging category, rapid adoption from small base", 0.50, 3.00),
    },
    "training_growth": {
        "frontier": _v(0.50, "medium", "Supply-constrained demand unlocking", 0.10, 1.00),
        "midtier": _v(0.80, "low", "Fine-tuning proliferation", 0.30, 1.50),
    },
    "intensity_growth": _v(0.40, "medium", "Reasoning models, agent loops, tool use", 0.25, 0.60),
}

# (consumer, enterprise, agentic, frontier, midtier, intensity)
_DEMAND_RATES = {
    "year1": (0.80, 1.00, 1.50, 0.50, 0.80, 0.40),
    "year2": (0.60, 0.80, 1.20, 0.40, 0.60, 0.40),
    "year3": (0.40, 0.50, 0.80, 0.30, 0.40, 0.40),
    "year4": (0.30, 0.35, 0.50, 0.20, 0.30, 0.40),
    "year5": (0.20, 0.25, 0.35, 0.15, 0.20, 0.40),
    "years6_10": (0.25, 0.35, 0.60, 0.15, 0.30, 0.20),
    "years11_15": (0.15, 0.20, 0.30, 0.10, 0.20, 0.15),
    "years16_20": (0.10, 0.15, 0.20, 0.08, 0.15, 0.10),
}


def default_demand_blocks() -> Dict[str, Any]:
    blocks = {}
    for segment in SEGMENTS:
        block = copy.deepcopy(_DEMAND_TEMPLATE)
        consumer, enterprise, agentic, frontier, midtier, intensity = _DEMAND_RATES[segment.key]
        block["label"] = segment_label(segment)
        block["inference_growth"]["consumer"]["value"] = consumer
        block["inference_growth"]["enterprise"]["value"] = enterprise
        block["inference_growth"]["agentic"]["value"] = agentic
        block["training_growth"]["frontier"]["value"] = frontier
        block["training_growth"]["midtier"]["value"] = midtier
        block["intensity_growth"]["value"] = intensity
        blocks[segment.key] = block
    return blocks


# ============================================
# EFFICIENCY
# ============================================

_EFFICIENCY_TEMPLATE = {
    "model_efficiency": {
        "m_inference": _v(0.18, "medium", "Deployed model efficiency (rollout lag)", 0.10, 0.30),
        "m_training": _v(0.10, "low", "Optimizer + architecture improvements", 0.05, 0.20),
    },
    "systems_efficiency": {
        "s_inference": _v(0.10, "medium", "Batching/scheduling/compiler gains", 0.06, 0.18),
        "s_training": _v(0.08, "medium", "Distributed training optimizations", 0.05, 0.15),
    },
    "hardware_efficiency": {
        "h": _v(0.15, "high", "Blended fleet gen-over-gen", 0.10, 0.25),
        "h_memory": _v(0.12, "medium", "HBM generation improvements", 0.08, 0.20),
    },
}

# (m_inference, m_training, s_inference, s_training, h, h_memory); diminishing returns
_EFFICIENCY_LATE = {
    "years6_10": (0.14, 0.08, 0.08, 0.06, 0.12, 0.10),
    "years11_15": (0.10, 0.06, 0.06, 0.05, 0.08, 0.07),
    "years16_20": (0.08, 0.05, 0.05, 0.04, 0.06, 0.05),
}


def default_efficiency_blocks() -> Dict[str, Any]:
    blocks = {}
    for segment in SEGMENTS:
        block = copy.deepcopy(_EFFICIENCY_TEMPLATE)
        block["label"] = segment_label(segment)
        if segment.key in _EFFICIENCY_LATE:
            m_inf, m_trn, s_inf, s_trn, h, h_mem = _EFFICIENCY_LATE[segment.key]
            block["model_efficiency"]["m_inference"]["value"] = m_inf
            block["model_efficiency"]["m_training"]["value"] = m_trn
            block["systems_efficiency"]["s_inference"]["value"] = s_inf
            block["systems_efficiency"]["s_training"]["value"] = s_trn
            block["hardware_efficiency"]["h"]["value"] = h
            block["hardware_efficiency"]["h_memory"]["value"] = h_mem
        blocks[segment.key] = block
    return blocks


# ============================================
# SUPPLY
# ============================================

_SUPPLY_TEMPLATE = {
    "expansion_rates": {
        "packaging": _v(0.35, "high", "CoWoS expansion plans + OSAT commitments"),
        "foundry": _v(0.15, "high", "Advanced-node fab construction schedules"),
        "memory": _v(0.25, "medium", "HBM capacity expansion announcements"),
        "datacenter": _v(0.20, "medium", "Hyperscaler capex guidance"),
        "power": _v(0.08, "medium", "Utility capex + transformer constraints"),
    }
}

# (packaging, foundry, memory, datacenter, power)
_SUPPLY_LATE = {
    "years6_10": (0.20, 0.10, 0.18, 0.15, 0.10),
    "years11_15": (0.12, 0.08, 0.12, 0.10, 0.08),
    "years16_20": (0.08, 0.05, 0.08, 0.08, 0.06),
}


def default_supply_blocks() -> Dict[str, Any]:
    blocks = {}
    for segment in SEGMENTS:
        block = copy.deepcopy(_SUPPLY_TEMPLATE)
        block["label"] = segment_label(segment)
        if segment.key in _SUPPLY_LATE:
            rates = block["expansion_rates"]
            for name, value in zip(("packaging", "foundry", "memory", "datacenter", "power"), _SUPPLY_LATE[segment.key]):
                rates[name]["value"] = value
        blocks[segment.key] = block
    return blocks


def default_translation() -> Dict[str, Any]:
    """Physical conversion constants (not time-segmented)."""
    return {
        # Real-world serving throughput, not theoretical peak FLOPs
        "tokens_per_sec_per_accelerator": {
            "consumer": _v(40, "medium", "Blended model mix, moderate latency", 20, 80),
            "enterprise": _v(25, "medium", "Frontier models, strict latency SLAs", 10, 50),
            "agentic": _v(15, "low", "Multi-step reasoning, long context, tool use", 5, 40),
        },
        "accel_hours_per_run": {
            "frontier": _v(50e6, "medium", "Frontier pre-training run"),
            "midtier": _v(200000, "low", "Fine-tuning / mid-scale run"),
        },
    }


def default_assumption_document() -> Dict[str, Any]:
    return {
        "demand": default_demand_blocks(),
        "efficiency": default_efficiency_blocks(),
        "supply": default_supply_blocks(),
        "translation": default_translation(),
    }


# ============================================
# CANONICAL SET
# ============================================

def _flatten(node: Any, prefix: str, values: Dict[str, float], provenance: Dict[str, Provenance]) -> None:
    if is_value_record(node):
        if is_number(node["value"]):
            values[prefix] = float(node["value"])
            hist = node.get("historical_range")
            provenance[prefix] = Provenance(
                confidence=node.get("confidence"),
                source=node.get("source"),
                historical_range=tuple(hist) if isinstance(hist, (list, tuple)) and len(hist) == 2 else None,
            )
        return
    if is_number(node):
        values[prefix] = float(node)
        return
    if isinstance(node, dict):
        for key, child in node.items():
            _flatten(child, f"{prefix}.{key}" if prefix else str(key), values, provenance)


@dataclass(frozen=True)
class AssumptionSet:
    """Canonical numeric assumptions plus a provenance side table."""

    values: Mapping[str, float]
    provenance: Mapping[str, Provenance] = field(default_factory=dict, compare=False)

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "AssumptionSet":
        values: Dict[str, float] = {}
        provenance: Dict[str, Provenance] = {}
        _flatten(dict(doc), "", values, provenance)
        return cls(values=dict(sorted(values.items())), provenance=provenance)

    @property
    def fingerprint(self) -> str:
        """Content hash of the numeric values (provenance excluded)."""
        payload = json.dumps(self.values, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    def get(self, path: str, default: Optional[float] = None) -> Optional[float]:
        return self.values.get(path, default)

    def rate(self, table: str, month: int, group: str, name: Optional[str] = None, default: float = 0.0) -> float:
        """Value of `table.<block for month>.group[.name]`."""
        path = f"{table}.{block_key_for_month(month)}.{group}"
        if name is not None:
            path = f"{path}.{name}"
        return self.values.get(path, default)

    def to_document(self) -> Dict[str, Any]:
        """Nested plain-number view of the canonical values."""
        doc: Dict[str, Any] = {}
        for path, value in self.values.items():
            node = doc
            *parents, leaf = path.split(".")
            for key in parents:
                node = node.setdefault(key, {})
            node[leaf] = value
        return doc


def build_assumption_document(
    override_document: Optional[Mapping[str, Any]] = None,
    scenario: Optional[ScenarioConfig] = None,
    max_change_pct: Optional[float] = None,
    base: Optional[Mapping[str, Any]] = None,
    previous_document: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Layer the assumption document: base -> persistent override layer -> scenario patches.

    The persistent layer is applied as written. When `previous_document` is
    given, `override_document` is a new update pass on top of it and is bounded
    by `max_change_pct` against the previous layer's values. Scenario overrides
    and deltas are deliberate what-ifs and are never clamped.
    """
    doc = copy.deepcopy(dict(base)) if base is not None else default_assumption_document()
    if override_document or previous_document:
        doc = apply_override_document(doc, override_document or {}, max_change_pct, previous_document)
    if scenario is not None:
        if scenario.overrides:
            doc = apply_patches(doc, patches_from_document(scenario.overrides))
        if scenario.deltas:
            doc = apply_patches(doc, delta_patches(doc, scenario.deltas))
    return doc


def build_assumption_set(
    override_document: Optional[Mapping[str, Any]] = None,
    scenario: Optional[ScenarioConfig] = None,
    max_change_pct: Optional[float] = None,
    base: Optional[Mapping[str, Any]] = None,
    previous_document: Optional[Mapping[str, Any]] = None,
) -> AssumptionSet:
    doc = build_assumption_document(override_document, scenario, max_change_pct, base, previous_document)
    assumptions = AssumptionSet.from_document(doc)
    logger.debug(f"Built assumption set {assumptions.fingerprint[:12]} ({len(assumptions.values)} values)")
    return assumptions
