from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from src.config import Config
from src.utils.data_validation import validate_dataframe

from .schema import ThresholdParams

if TYPE_CHECKING:
    from .catalog import NodeCatalog
    from .simulate import SimulationResult


@dataclass
class ShortageEvent:
    node_id: str
    node_name: str
    group: str
    start_month: int
    end_month: int
    duration: int
    peak_tightness: float
    severity: float


@dataclass
class GlutEvent:
    node_id: str
    node_name: str
    group: str
    start_month: int
    end_month: int
    duration: int
    min_tightness: float
    severity: float
    is_hard_glut: bool


@dataclass
class Bottleneck:
    node_id: str
    node_name: str
    group: str
    avg_tightness: float
    max_tightness: float
    shortage_months: int
    downstream_impact: float
    score: float


@dataclass
class Summary:
    shortages: List[ShortageEvent] = field(default_factory=list)
    gluts: List[GlutEvent] = field(default_factory=list)
    bottlenecks: List[Bottleneck] = field(default_factory=list)

    def to_dict(self) -> Dict[str, List[Dict[str, Any]]]:
        return {
            "shortages": [asdict(e) for e in self.shortages],
            "gluts": [asdict(e) for e in self.gluts],
            "bottlenecks": [asdict(b) for b in self.bottlenecks],
        }


def _runs(values: Sequence[float], predicate: Callable[[float], bool]) -> Iterator[Tuple[int, int]]:
    """Yield inclusive (start, end) index pairs of maximal runs where `predicate` holds."""
    start: Optional[int] = None
    for i, v in enumerate(values):
        if predicate(v):
            if start is None:
                start = i
        elif start is not None:
            yield start, i - 1
            start = None
    # a run still open at the horizon is closed there
    if start is not None:
        yield start, len(values) - 1


def _longest_streak(values: Sequence[float], predicate: Callable[[float], bool]) -> int:
    return max((end - start + 1 for start, end in _runs(values, predicate)), default=0)


def persistence_flags(tightness: Sequence[float], months: int, predicate: Callable[[float], bool]) -> List[int]:
    """
    1 at month m when the `months` values ending at m all satisfy `predicate`.

    Early months without a full window are never flagged.
    """
    flags = []
    streak = 0
    for t in tightness:
        streak = streak + 1 if predicate(t) else 0
        flags.append(1 if streak >= months else 0)
    return flags


def find_shortage_events(
    node_id: str,
    tightness: Sequence[float],
    thresholds: ThresholdParams,
    node_name: str = "",
    group: str = "",
) -> List[ShortageEvent]:
    events = []
    for start, end in _runs(tightness, lambda t: t > thresholds.shortage):
        duration = end - start + 1
        if duration < thresholds.persistence_soft:
            continue
        peak = float(max(tightness[start:end + 1]))
        events.append(
            ShortageEvent(
                node_id=node_id,
                node_name=node_name or node_id,
                group=group,
                start_month=start,
                end_month=end,
                duration=duration,
                peak_tightness=peak,
                severity=peak * duration,
            )
        )
    return events


def find_glut_events(
    node_id: str,
    tightness: Sequence[float],
    thresholds: ThresholdParams,
    node_name: str = "",
    group: str = "",
) -> List[GlutEvent]:
    """
    Runs below the soft glut threshold.

    A run counts when it lasts at least the soft persistence window, or when
    it contains a hard-glut streak (below the hard threshold) at least the
    hard persistence window long.
    """
    events = []
    for start, end in _runs(tightness, lambda t: t < thresholds.glut_soft):
        window = tightness[start:end + 1]
        duration = end - start + 1
        is_hard = _longest_streak(window, lambda t: t < thresholds.glut_hard) >= thresholds.persistence_hard
        if duration < thresholds.persistence_soft and not is_hard:
            continue
        low = float(min(window))
        events.append(
            GlutEvent(
                node_id=node_id,
                node_name=node_name or node_id,
                group=group,
                start_month=start,
                end_month=end,
                duration=duration,
                min_tightness=low,
                severity=(1.0 - low) * duration,
                is_hard_glut=is_hard,
            )
        )
    return events


def bottleneck_score(avg_tightness: float, shortage_months: int, child_count: int) -> Tuple[float, float]:
    """Return (score, downstream impact)."""
    downstream_impact = child_count * avg_tightness
    return avg_tightness * shortage_months * (1.0 + downstream_impact / 10.0), downstream_impact


def analyze_results(
    series: Mapping[str, Any],
    catalog: "NodeCatalog",
    thresholds: ThresholdParams,
    top_n_shortages: Optional[int] = None,
    top_n_gluts: Optional[int] = None,
    top_n_bottlenecks: Optional[int] = None,
) -> Summary:
    """
    Scan every market node's tightness series for persistent events and rank bottlenecks.

    `series` maps node id to an object with ``tightness`` and ``shortage``
    sequences; workload drivers are skipped.
    """
    top_n_shortages = Config.TOP_N_SHORTAGES if top_n_shortages is None else top_n_shortages
    top_n_gluts = Config.TOP_N_GLUTS if top_n_gluts is None else top_n_gluts
    top_n_bottlenecks = Config.TOP_N_BOTTLENECKS if top_n_bottlenecks is None else top_n_bottlenecks

    summary = Summary()
    for node_id, data in series.items():
        if node_id not in catalog:
            continue
        node = catalog.get(node_id)
        if not node.is_market_node:
            continue

        tightness = list(data.tightness)
        if not tightness:
            continue
        summary.shortages.extend(find_shortage_events(node_id, tightness, thresholds, node.name, node.group))
        summary.gluts.extend(find_glut_events(node_id, tightness, thresholds, node.name, node.group))

        shortage_months = int(sum(data.shortage))
        if shortage_months > 0:
            avg = float(np.mean(tightness))
            score, impact = bottleneck_score(avg, shortage_months, len(catalog.children(node_id)))
            summary.bottlenecks.append(
                Bottleneck(
                    node_id=node_id,
                    node_name=node.name,
                    group=node.group,
                    avg_tightness=avg,
                    max_tightness=float(max(tightness)),
                    shortage_months=shortage_months,
                    downstream_impact=impact,
                    score=score,
                )
            )

    summary.shortages.sort(key=lambda e: e.severity, reverse=True)
    summary.gluts.sort(key=lambda e: e.severity, reverse=True)
    summary.bottlenecks.sort(key=lambda b: b.score, reverse=True)
    summary.shortages = summary.shortages[:top_n_shortages]
    summary.gluts = summary.gluts[:top_n_gluts]
    summary.bottlenecks = summary.bottlenecks[:top_n_bottlenecks]
    return summary


def compute_metrics(result: "SimulationResult") -> Dict[str, Any]:
    # Long frame: one row per market node-month
    df = result.to_frame()
    validate_dataframe(
        df,
        required_columns=["node_id", "kind", "tightness", "price_index", "shortage", "glut"],
        min_rows=0,
        non_negative=["inventory", "backlog", "installed_base"],
    )
    df = df[df["kind"] != "workload_driver"]

    metrics: Dict[str, Any] = {
        "peak_tightness": float(df["tightness"].max()) if len(df) else 0.0,
        "avg_price_index": float(df["price_index"].mean()) if len(df) else 0.0,
        "total_shortage_months": int(df["shortage"].sum()),
        "total_glut_months": int(df["glut"].sum()),
        "shortage_event_count": len(result.summary.shortages),
        "glut_event_count": len(result.summary.gluts),
        "calibration_multiplier": result.calibration_multiplier,
        "warning_count": len(result.warnings),
    }

    primary = result.primary_node_id
    if primary in result.nodes:
        series = result.nodes[primary]
        metrics["final_installed_base"] = float(series.installed_base[-1])
        metrics["final_required_base"] = float(series.required_base[-1])
        metrics["primary_peak_tightness"] = float(max(series.tightness))
        metrics["primary_final_capacity"] = float(series.capacity[-1])

    if result.summary.bottlenecks:
        top = result.summary.bottlenecks[0]
        metrics["top_bottleneck"] = top.node_id
        metrics["top_bottleneck_score"] = top.score
    else:
        metrics["top_bottleneck"] = None
        metrics["top_bottleneck_score"] = 0.0

    return metrics
