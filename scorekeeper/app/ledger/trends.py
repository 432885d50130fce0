"""
Read-only trend queries over the performance ledger.

Superseded entries are excluded: once a run has been corrected, only the
correcting entry counts towards an agent's history.
"""

from __future__ import annotations

import math
from typing import Optional, Tuple

from scorekeeper.app.ledger.ledger import PerformanceLedger
from scorekeeper.app.schemas.audit_run import RunMetrics
from scorekeeper.app.schemas.ledger import PerformanceLedgerEntry, TrendSummary


TREND_METRICS = ("precision", "recall", "f1")


def effective_history(
    ledger: PerformanceLedger,
    agent_id: str,
) -> Tuple[PerformanceLedgerEntry, ...]:
    """Entries of one agent in append order, minus superseded ones."""
    entries = ledger.entries(agent_id)
    superseded = {e.supersedes for e in entries if e.supersedes is not None}
    return tuple(e for e in entries if e.audit_run_id not in superseded)


def moving_average(
    ledger: PerformanceLedger,
    agent_id: str,
    metric: str = "precision",
    window: int = 5,
) -> TrendSummary:
    """
    Mean of one metric over the agent's last `window` effective runs.

    Runs where the metric is undefined (null) stay in the window but do
    not contribute to the mean.
    """
    _check_query(metric, window)
    recent = effective_history(ledger, agent_id)[-window:]
    return _summarize(
        agent_id,
        metric,
        window,
        recent,
        tuple(getattr(e.metrics, metric) for e in recent),
    )


def category_trend(
    ledger: PerformanceLedger,
    agent_id: str,
    category: str,
    metric: str = "recall",
    window: int = 5,
) -> TrendSummary:
    """
    Moving average of a per-category metric.

    Only runs where the category occurs (on either side) are considered.
    """
    _check_query(metric, window)
    relevant = tuple(
        e for e in effective_history(ledger, agent_id)
        if category in e.metrics.per_category
    )[-window:]
    return _summarize(
        agent_id,
        f"{category}.{metric}",
        window,
        relevant,
        tuple(getattr(e.metrics.per_category[category], metric) for e in relevant),
    )


def latest_metrics(ledger: PerformanceLedger, agent_id: str) -> Optional[RunMetrics]:
    history = effective_history(ledger, agent_id)
    return history[-1].metrics if history else None


def _check_query(metric: str, window: int) -> None:
    if metric not in TREND_METRICS:
        raise ValueError(
            f"Unsupported trend metric '{metric}'. Allowed values: {list(TREND_METRICS)}"
        )
    if window < 1:
        raise ValueError("Trend window must be at least 1")


def _summarize(
    agent_id: str,
    metric: str,
    window: int,
    entries: Tuple[PerformanceLedgerEntry, ...],
    values: Tuple[Optional[float], ...],
) -> TrendSummary:
    defined = [v for v in values if v is not None]
    return TrendSummary(
        agent_id=agent_id,
        metric=metric,
        window=window,
        audit_run_ids=tuple(e.audit_run_id for e in entries),
        values=values,
        moving_average=(math.fsum(defined) / len(defined)) if defined else None,
    )
