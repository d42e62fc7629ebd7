from __future__ import annotations

from types import SimpleNamespace

import pytest

from src.supplychain.catalog import NodeCatalog
from src.supplychain.metrics import (
    analyze_results,
    bottleneck_score,
    find_glut_events,
    find_shortage_events,
    persistence_flags,
)
from src.supplychain.schema import ThresholdParams
from tests.helpers import node, workload

TH = ThresholdParams()


def test_shortage_run_open_at_horizon_is_closed():
    events = find_shortage_events("n", [1.0, 1.1, 1.2, 1.3], TH)
    assert len(events) == 1
    event = events[0]
    assert (event.start_month, event.end_month, event.duration) == (1, 3, 3)
    assert event.peak_tightness == pytest.approx(1.3)
    assert event.severity == pytest.approx(3.9)


def test_transient_shortage_is_ignored():
    assert find_shortage_events("n", [1.0, 1.2, 1.2, 1.0, 1.0], TH) == []


def test_threshold_is_strict():
    assert find_shortage_events("n", [1.05] * 10, TH) == []


def test_separate_shortage_runs():
    tightness = [1.1, 1.1, 1.1, 1.0, 1.2, 1.2, 1.2, 1.2]
    events = find_shortage_events("n", tightness, TH)
    assert [(e.start_month, e.duration) for e in events] == [(0, 3), (4, 4)]


def test_soft_glut_event():
    events = find_glut_events("n", [0.9, 0.9, 0.9, 1.0], TH)
    assert len(events) == 1
    assert not events[0].is_hard_glut
    assert events[0].severity == pytest.approx(0.1 * 3)


def test_short_hard_glut_still_counts():
    events = find_glut_events("n", [0.7, 0.7, 1.0], TH)
    assert len(events) == 1
    assert events[0].is_hard_glut
    assert events[0].min_tightness == pytest.approx(0.7)
    assert events[0].severity == pytest.approx(0.6)


def test_short_mild_glut_is_ignored():
    assert find_glut_events("n", [0.9, 0.7, 1.0], TH) == []


def test_persistence_flags():
    flags = persistence_flags([1.1, 1.1, 1.1, 1.0, 1.1, 1.1, 1.1, 1.1], 3, lambda t: t > 1.05)
    assert flags == [0, 0, 1, 0, 0, 0, 1, 1]


def test_bottleneck_score():
    score, impact = bottleneck_score(1.2, 2, 2)
    assert impact == pytest.approx(2.4)
    assert score == pytest.approx(1.2 * 2 * 1.24)


def _catalog() -> NodeCatalog:
    return NodeCatalog(
        [
            workload("w", "inference", "consumer", 1.0),
            node("g", kind="compute_stock", parent_node_ids=["w"]),
            node("c1", parent_node_ids=["g"]),
            node("c2", parent_node_ids=["g"]),
            node("c3", parent_node_ids=["c1"]),
        ]
    )


def _series(tightness):
    flags = persistence_flags(tightness, TH.persistence_soft, lambda t: t > TH.shortage)
    return SimpleNamespace(tightness=tightness, shortage=flags)


def test_analyze_results_ranks_bottlenecks():
    series = {
        "w": _series([5.0] * 6),
        "g": _series([1.2] * 6),
        "c1": _series([1.5] * 6),
        "c2": _series([1.0] * 6),
        "c3": _series([2.0] * 6),
    }
    summary = analyze_results(series, _catalog(), TH)

    ids = [b.node_id for b in summary.bottlenecks]
    assert "w" not in ids, "Workload drivers are not markets"
    assert "c2" not in ids, "No shortage months, no bottleneck"
    scores = [b.score for b in summary.bottlenecks]
    assert scores == sorted(scores, reverse=True)

    g = next(b for b in summary.bottlenecks if b.node_id == "g")
    assert g.shortage_months == 4
    assert g.downstream_impact == pytest.approx(2.4)
    assert g.score == pytest.approx(1.2 * 4 * 1.24)

    assert [e.node_id for e in summary.shortages] == ["c3", "c1", "g"], "Sorted by severity"


def test_analyze_results_truncates_lists():
    series = {nid: _series([1.5] * 6) for nid in ("g", "c1", "c2", "c3")}
    summary = analyze_results(series, _catalog(), TH, top_n_shortages=2, top_n_gluts=1, top_n_bottlenecks=3)
    assert len(summary.shortages) == 2
    assert len(summary.bottlenecks) == 3
    assert summary.gluts == []
