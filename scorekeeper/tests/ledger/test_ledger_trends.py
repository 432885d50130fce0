from datetime import datetime, timedelta, timezone

import pytest

from scorekeeper.app.ledger import (
    InMemoryPerformanceLedger,
    category_trend,
    effective_history,
    latest_metrics,
    moving_average,
)
from scorekeeper.app.schemas.audit_run import BreakdownMetrics, RunMetrics
from scorekeeper.app.schemas.ledger import PerformanceLedgerEntry


_T0 = datetime(2026, 10, 1, tzinfo=timezone.utc)


def _entry(run_id, *, precision, recall=0.5, supersedes=None, per_category=None, agent="sol"):
    return PerformanceLedgerEntry(
        agent_id=agent,
        audit_run_id=run_id,
        contest_id=f"contest-{run_id}",
        metrics=RunMetrics(
            precision=precision,
            recall=recall,
            f1=None if precision is None else 0.5,
            per_category=per_category or {},
        ),
        recorded_at=_T0 + timedelta(hours=len(run_id)),
        supersedes=supersedes,
    )


@pytest.fixture
def ledger():
    return InMemoryPerformanceLedger()


def test_superseded_entries_are_excluded_from_history(ledger):
    ledger.append(_entry("r1", precision=0.2))
    ledger.append(_entry("r2", precision=0.4))
    ledger.append(_entry("r1-fix", precision=0.6, supersedes="r1"))

    history = effective_history(ledger, "sol")
    assert [e.audit_run_id for e in history] == ["r2", "r1-fix"]

    # Nothing was removed from the underlying ledger.
    assert len(ledger.entries("sol")) == 3


def test_moving_average_uses_last_window_runs(ledger):
    for i, precision in enumerate([0.1, 0.2, 0.3, 0.4, 0.5, 0.6]):
        ledger.append(_entry(f"r{i}", precision=precision))

    summary = moving_average(ledger, "sol", "precision", window=3)
    assert summary.audit_run_ids == ("r3", "r4", "r5")
    assert summary.values == (0.4, 0.5, 0.6)
    assert summary.moving_average == pytest.approx(0.5)


def test_moving_average_skips_null_values(ledger):
    ledger.append(_entry("r1", precision=0.4))
    ledger.append(_entry("r2", precision=None))
    ledger.append(_entry("r3", precision=0.8))

    summary = moving_average(ledger, "sol", "precision", window=5)
    assert summary.values == (0.4, None, 0.8)
    assert summary.moving_average == pytest.approx(0.6)

    assert moving_average(ledger, "sol", "f1").moving_average == pytest.approx(0.5)


def test_moving_average_of_unknown_agent_is_null(ledger):
    summary = moving_average(ledger, "nobody")
    assert summary.audit_run_ids == ()
    assert summary.moving_average is None
    assert latest_metrics(ledger, "nobody") is None


def test_correction_changes_the_trend(ledger):
    ledger.append(_entry("r1", precision=0.0))
    ledger.append(_entry("r2", precision=1.0))
    before = moving_average(ledger, "sol").moving_average

    ledger.append(_entry("r1-fix", precision=0.5, supersedes="r1"))
    after = moving_average(ledger, "sol").moving_average

    assert before == pytest.approx(0.5)
    assert after == pytest.approx(0.75)
    assert latest_metrics(ledger, "sol").precision == 0.5


def test_category_trend_only_counts_runs_with_the_category(ledger):
    reentrancy = {"reentrancy": BreakdownMetrics(precision=1.0, recall=0.5, actual_total=2)}
    oracle = {"oracle-manipulation": BreakdownMetrics(precision=0.0, recall=0.0, actual_total=1)}
    ledger.append(_entry("r1", precision=0.5, per_category=reentrancy))
    ledger.append(_entry("r2", precision=0.5, per_category=oracle))
    ledger.append(_entry("r3", precision=0.5, per_category={
        "reentrancy": BreakdownMetrics(precision=1.0, recall=1.0, actual_total=1),
    }))

    summary = category_trend(ledger, "sol", "reentrancy", "recall", window=5)
    assert summary.metric == "reentrancy.recall"
    assert summary.audit_run_ids == ("r1", "r3")
    assert summary.moving_average == pytest.approx(0.75)


@pytest.mark.parametrize("metric, window", [("accuracy", 5), ("recall", 0)])
def test_invalid_trend_queries_raise(ledger, metric, window):
    with pytest.raises(ValueError):
        moving_average(ledger, "sol", metric, window)
