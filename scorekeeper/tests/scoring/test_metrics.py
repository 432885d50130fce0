import pytest

from scorekeeper.app.schemas.audit_run import CREDIT_WEIGHTS, MatchKind, MatchResult
from scorekeeper.app.schemas.findings import FindingOrigin, FindingRecord, Severity
from scorekeeper.app.scoring.metrics import compute_metrics, f1_score, ratio


def _finding(finding_id, origin, category, severity=Severity.HIGH):
    return FindingRecord(
        finding_id=finding_id,
        origin=origin,
        category=category,
        severity=severity,
    )


def _pair(pid, aid, kind, category):
    return MatchResult(
        predicted_id=pid,
        actual_id=aid,
        kind=kind,
        credit_weight=CREDIT_WEIGHTS[kind],
        category=category,
    )


def test_ratio_is_null_on_empty_denominator():
    assert ratio(0.0, 0) is None
    assert ratio(1.5, 3) == 0.5


@pytest.mark.parametrize(
    "precision, recall, expected",
    [
        (None, 0.0, None),
        (0.5, None, None),
        (0.0, 0.0, 0.0),
        (1.0, 1.0, 1.0),
        (0.25, 0.25, 0.25),
    ],
)
def test_f1(precision, recall, expected):
    assert f1_score(precision, recall) == expected


def test_partial_credit_counts_half():
    predicted = [
        _finding("P-1", FindingOrigin.PREDICTED, "reentrancy"),
        _finding("P-2", FindingOrigin.PREDICTED, "unknown", Severity.GAS),
    ]
    actual = [
        _finding("A-1", FindingOrigin.ACTUAL, "reentrancy"),
        _finding("A-2", FindingOrigin.ACTUAL, "access-control", Severity.MEDIUM),
    ]
    results = [
        _pair("P-1", "A-1", MatchKind.PARTIAL, "reentrancy"),
        MatchResult(predicted_id="P-2", kind=MatchKind.FALSE_POSITIVE, credit_weight=0.0, category="unknown"),
        MatchResult(actual_id="A-2", kind=MatchKind.FALSE_NEGATIVE, credit_weight=0.0, category="access-control"),
    ]

    metrics = compute_metrics(results, predicted, actual)

    assert metrics.precision == 0.25
    assert metrics.recall == 0.25
    assert metrics.f1 == 0.25
    assert (metrics.exact, metrics.partial) == (0, 1)
    assert (metrics.false_positives, metrics.false_negatives) == (1, 1)

    reentrancy = metrics.per_category["reentrancy"]
    assert (reentrancy.precision, reentrancy.recall) == (0.5, 0.5)

    access = metrics.per_category["access-control"]
    assert access.precision is None
    assert access.recall == 0.0
    assert access.f1 is None

    unknown = metrics.per_category["unknown"]
    assert unknown.precision == 0.0
    assert unknown.recall is None

    assert list(metrics.per_severity) == ["high", "medium", "gas"]
    assert metrics.per_severity["high"].recall == 0.5


def test_empty_inputs_report_nulls():
    metrics = compute_metrics([], [], [])
    assert metrics.precision is None
    assert metrics.recall is None
    assert metrics.f1 is None
    assert metrics.per_category == {}


def test_severity_rank_orders_most_severe_highest():
    ranked = sorted(Severity, key=lambda s: s.rank, reverse=True)
    assert ranked[0] == Severity.CRITICAL
    assert ranked[-1] == Severity.GAS
    assert Severity.HIGH.rank > Severity.MEDIUM.rank > Severity.LOW.rank
