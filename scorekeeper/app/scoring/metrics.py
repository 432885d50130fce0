"""
Metrics calculator.

precision = sum(credit over predicted-side matches) / |P|   (null if |P| = 0)
recall    = sum(credit over actual-side matches)    / |A|   (null if |A| = 0)
f1        = 2PR / (P + R), 0 when both are 0, null when either is null

Breakdowns repeat the three numbers restricted to one category or one
severity: the predicted side is filtered by the predicted finding's value,
the actual side by the actual finding's value. Categories are listed
alphabetically, severities most severe first.
"""

from __future__ import annotations

import math
from typing import Any, Callable, Dict, Iterable, Optional, Sequence

from scorekeeper.app.schemas.audit_run import (
    BreakdownMetrics,
    MatchKind,
    MatchResult,
    RunMetrics,
)
from scorekeeper.app.schemas.findings import FindingRecord, Severity


def ratio(numerator: float, denominator: int) -> Optional[float]:
    if denominator == 0:
        return None
    return min(1.0, numerator / denominator)


def f1_score(precision: Optional[float], recall: Optional[float]) -> Optional[float]:
    if precision is None or recall is None:
        return None
    if precision + recall == 0:
        return 0.0
    return min(1.0, 2 * precision * recall / (precision + recall))


def compute_metrics(
    results: Sequence[MatchResult],
    predicted: Sequence[FindingRecord],
    actual: Sequence[FindingRecord],
) -> RunMetrics:
    pairs = [r for r in results if r.is_pair]

    precision = ratio(math.fsum(r.credit_weight for r in pairs), len(predicted))
    recall = ratio(math.fsum(r.credit_weight for r in pairs), len(actual))

    return RunMetrics(
        precision=precision,
        recall=recall,
        f1=f1_score(precision, recall),
        predicted_total=len(predicted),
        actual_total=len(actual),
        exact=sum(1 for r in pairs if r.kind == MatchKind.EXACT),
        partial=sum(1 for r in pairs if r.kind == MatchKind.PARTIAL),
        false_positives=sum(1 for r in results if r.kind == MatchKind.FALSE_POSITIVE),
        false_negatives=sum(1 for r in results if r.kind == MatchKind.FALSE_NEGATIVE),
        per_category=_breakdown(pairs, predicted, actual, lambda f: f.category),
        per_severity=_breakdown(
            pairs,
            predicted,
            actual,
            lambda f: f.severity.value,
            order=lambda value: -Severity(value).rank,
        ),
    )


def _breakdown(
    pairs: Iterable[MatchResult],
    predicted: Sequence[FindingRecord],
    actual: Sequence[FindingRecord],
    key: Callable[[FindingRecord], str],
    *,
    order: Optional[Callable[[str], Any]] = None,
) -> Dict[str, BreakdownMetrics]:
    """Breakdown keyed by `key`, in `order` (alphabetical by default)."""
    predicted_by_id = {f.finding_id: f for f in predicted}
    actual_by_id = {f.finding_id: f for f in actual}

    predicted_credit: Dict[str, list] = {}
    actual_credit: Dict[str, list] = {}
    for r in pairs:
        predicted_credit.setdefault(key(predicted_by_id[r.predicted_id]), []).append(r.credit_weight)
        actual_credit.setdefault(key(actual_by_id[r.actual_id]), []).append(r.credit_weight)

    predicted_counts: Dict[str, int] = {}
    for f in predicted:
        predicted_counts[key(f)] = predicted_counts.get(key(f), 0) + 1
    actual_counts: Dict[str, int] = {}
    for f in actual:
        actual_counts[key(f)] = actual_counts.get(key(f), 0) + 1

    breakdown: Dict[str, BreakdownMetrics] = {}
    for value in sorted(set(predicted_counts) | set(actual_counts), key=order):
        p_total = predicted_counts.get(value, 0)
        a_total = actual_counts.get(value, 0)
        precision = ratio(math.fsum(predicted_credit.get(value, ())), p_total)
        recall = ratio(math.fsum(actual_credit.get(value, ())), a_total)
        breakdown[value] = BreakdownMetrics(
            precision=precision,
            recall=recall,
            f1=f1_score(precision, recall),
            predicted_total=p_total,
            actual_total=a_total,
        )
    return breakdown
