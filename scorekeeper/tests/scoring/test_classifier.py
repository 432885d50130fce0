import pytest

from scorekeeper.app.schemas.audit_run import (
    MatchCandidate,
    MatchingOutcome,
    MatchKind,
    MatchResult,
)
from scorekeeper.app.schemas.findings import FindingOrigin, FindingRecord
from scorekeeper.app.scoring.classifier import MatchClassifier


def _candidate(pid="P-1", aid="A-1", *, category_match=True, location=1.0, root=1.0):
    return MatchCandidate(
        predicted_id=pid,
        actual_id=aid,
        similarity=round(0.4 * category_match + 0.3 * location + 0.3 * root, 12),
        category_match=category_match,
        location_overlap=location == 1.0,
        location_score=location,
        root_cause_similarity=root,
    )


def _records(origin, *ids, category="reentrancy"):
    return {
        i: FindingRecord(finding_id=i, origin=origin, category=category)
        for i in ids
    }


@pytest.fixture
def classifier():
    return MatchClassifier(exact_match_threshold=0.7)


def test_exact_requires_category_location_and_mechanism(classifier):
    assert classifier.credit(_candidate(root=0.7)) == MatchKind.EXACT


@pytest.mark.parametrize(
    "location, root",
    [
        (1.0, 0.2),   # same site, different mechanism
        (0.5, 1.0),   # same mechanism, neighbouring site
        (0.0, 0.9),   # same mechanism, unrelated site
    ],
)
def test_partial_when_location_or_mechanism_differs(classifier, location, root):
    assert classifier.credit(_candidate(location=location, root=root)) == MatchKind.PARTIAL


def test_category_mismatch_gets_no_credit(classifier):
    assert classifier.credit(_candidate(category_match=False)) is None


def test_demoted_pair_becomes_false_positive_and_false_negative(classifier):
    outcome = MatchingOutcome(pairs=(_candidate(category_match=False),))
    results = classifier.classify(
        outcome,
        _records(FindingOrigin.PREDICTED, "P-1", category="arithmetic"),
        _records(FindingOrigin.ACTUAL, "A-1"),
    )
    assert [(r.kind, r.predicted_id, r.actual_id) for r in results] == [
        (MatchKind.FALSE_POSITIVE, "P-1", None),
        (MatchKind.FALSE_NEGATIVE, None, "A-1"),
    ]
    assert results[0].category == "arithmetic"
    assert results[1].category == "reentrancy"


def test_classification_is_total_and_ordered(classifier):
    outcome = MatchingOutcome(
        pairs=(
            _candidate("P-3", "A-2", location=0.0, root=0.5),
            _candidate("P-1", "A-1"),
        ),
        unmatched_predicted=("P-2",),
        unmatched_actual=("A-3",),
    )
    results = classifier.classify(
        outcome,
        _records(FindingOrigin.PREDICTED, "P-1", "P-2", "P-3"),
        _records(FindingOrigin.ACTUAL, "A-1", "A-2", "A-3"),
    )
    assert [(r.kind, r.credit_weight) for r in results] == [
        (MatchKind.EXACT, 1.0),
        (MatchKind.PARTIAL, 0.5),
        (MatchKind.FALSE_POSITIVE, 0.0),
        (MatchKind.FALSE_NEGATIVE, 0.0),
    ]
    assert [r.predicted_id for r in results[:2]] == ["P-1", "P-3"]


def test_match_result_rejects_inconsistent_weights():
    with pytest.raises(ValueError):
        MatchResult(
            predicted_id="P-1",
            actual_id="A-1",
            kind=MatchKind.PARTIAL,
            credit_weight=1.0,
            category="reentrancy",
        )
    with pytest.raises(ValueError):
        MatchResult(kind=MatchKind.FALSE_NEGATIVE, credit_weight=0.0, category="unknown")
