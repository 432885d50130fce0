"""
End-to-end scoring scenarios through the coordinator.
"""

from datetime import datetime, timezone

import pytest

from scorekeeper.app.errors import DuplicateFindingIdError
from scorekeeper.app.ledger import InMemoryPerformanceLedger
from scorekeeper.app.schemas.audit_run import MatchKind
from scorekeeper.tests.fixtures.findings_factory import (
    UNRELATED_PREDICTION,
    copied_predictions,
    different_mechanism_prediction,
    ground_truth,
    make_coordinator,
)


_SCORED_AT = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Reference scenarios
# ---------------------------------------------------------------------------

def test_all_findings_restated_plus_one_unrelated():
    run = make_coordinator().score(
        "merkl",
        "sol",
        copied_predictions() + [UNRELATED_PREDICTION],
        ground_truth(),
    )

    assert run.metrics.exact == 5
    assert run.metrics.partial == 0
    assert run.metrics.precision == pytest.approx(5 / 6)
    assert run.metrics.recall == 1.0
    assert run.metrics.f1 == pytest.approx(10 / 11)
    assert [f.finding_id for f in run.false_positives()] == ["P-06"]
    assert run.false_negatives() == ()

    pairs = {(m.predicted_id, m.actual_id) for m in run.pairs()}
    assert pairs == {
        ("P-01", "H-01"),
        ("P-02", "H-02"),
        ("P-03", "M-01"),
        ("P-04", "M-02"),
        ("P-05", "L-01"),
    }


def test_right_site_wrong_mechanism_earns_partial_credit():
    actual = ground_truth()[:2]
    run = make_coordinator().score(
        "merkl",
        "sol",
        [different_mechanism_prediction(), UNRELATED_PREDICTION],
        actual,
    )

    [pair] = run.pairs()
    assert (pair.predicted_id, pair.actual_id) == ("P-01", "H-01")
    assert pair.kind == MatchKind.PARTIAL
    assert pair.credit_weight == 0.5

    assert run.metrics.precision == pytest.approx(0.25)
    assert run.metrics.recall == pytest.approx(0.25)
    assert [f.finding_id for f in run.false_negatives()] == ["H-02"]


def test_empty_prediction_set():
    run = make_coordinator().score("merkl", "sol", [], ground_truth())

    assert run.metrics.precision is None
    assert run.metrics.recall == 0.0
    assert run.metrics.f1 is None
    assert run.metrics.false_negatives == 5


def test_empty_ground_truth():
    run = make_coordinator().score("merkl", "sol", copied_predictions(), [])

    assert run.metrics.precision == 0.0
    assert run.metrics.recall is None
    assert run.metrics.false_positives == 5


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------

def test_scoring_is_deterministic_for_fixed_id_and_timestamp():
    coordinator = make_coordinator()
    predicted = copied_predictions() + [UNRELATED_PREDICTION, different_mechanism_prediction("P-07")]

    first = coordinator.score("merkl", "sol", predicted, ground_truth(), audit_run_id="run-1", scored_at=_SCORED_AT)
    second = coordinator.score(
        "merkl",
        "sol",
        list(reversed(predicted)),
        list(reversed(ground_truth())),
        audit_run_id="run-1",
        scored_at=_SCORED_AT,
    )

    assert first.matches == second.matches
    assert first.metrics == second.metrics
    assert first.content_digest == second.content_digest


def test_content_digest_ignores_run_id_and_timestamp():
    coordinator = make_coordinator()
    a = coordinator.score("merkl", "sol", copied_predictions(), ground_truth())
    b = coordinator.score("merkl", "sol", copied_predictions(), ground_truth())

    assert a.audit_run_id != b.audit_run_id
    assert a.content_digest == b.content_digest
    assert a.content_digest.startswith("SHA-256:")


def test_conservation_and_cardinality():
    predicted = copied_predictions()[:3] + [UNRELATED_PREDICTION, different_mechanism_prediction("P-09")]
    run = make_coordinator().score("merkl", "sol", predicted, ground_truth())

    pairs = run.pairs()
    fps = [m for m in run.matches if m.kind == MatchKind.FALSE_POSITIVE]
    fns = [m for m in run.matches if m.kind == MatchKind.FALSE_NEGATIVE]

    assert len(pairs) <= min(len(run.predicted), len(run.actual))
    assert len(pairs) + len(fps) == len(run.predicted)
    assert len(pairs) + len(fns) == len(run.actual)

    for value in (run.metrics.precision, run.metrics.recall, run.metrics.f1):
        assert 0.0 <= value <= 1.0


def test_restating_one_finding_twice_earns_credit_once():
    duplicate = copied_predictions()[0]
    duplicate["id"] = "P-99"
    run = make_coordinator().score(
        "merkl",
        "sol",
        [copied_predictions()[0], duplicate],
        ground_truth()[:1],
    )

    assert run.metrics.exact == 1
    assert run.metrics.precision == 0.5
    assert run.metrics.recall == 1.0


@pytest.mark.parametrize("side", ["predicted", "actual"])
def test_duplicate_ids_are_rejected_before_scoring(side):
    ledger = InMemoryPerformanceLedger()
    coordinator = make_coordinator(ledger=ledger)

    findings = ground_truth()
    findings[1]["id"] = findings[0]["id"]
    predicted, actual = (findings, ground_truth()) if side == "predicted" else (copied_predictions(), findings)

    with pytest.raises(DuplicateFindingIdError) as excinfo:
        coordinator.score("merkl", "sol", predicted, actual)

    assert excinfo.value.origin == side
    assert excinfo.value.duplicate_ids == ("H-01",)
    assert len(ledger) == 0


def test_malformed_findings_do_not_abort_the_batch():
    run = make_coordinator().score(
        "merkl",
        "sol",
        copied_predictions()[:1] + [None, 17, {"severity": "High"}],
        ground_truth()[:1],
    )

    assert run.metrics.exact == 1
    assert run.metrics.false_positives == 3
    assert [f.finding_id for f in run.predicted] == ["P-01", "P-002", "P-003", "P-004"]


def test_scoring_appends_one_ledger_entry_per_run():
    ledger = InMemoryPerformanceLedger()
    coordinator = make_coordinator(ledger=ledger)

    first = coordinator.score("merkl", "sol", copied_predictions(), ground_truth())
    second = coordinator.score(
        "merkl",
        "sol",
        copied_predictions(),
        ground_truth(),
        supersedes=first.audit_run_id,
    )

    entries = ledger.entries("sol")
    assert [e.audit_run_id for e in entries] == [first.audit_run_id, second.audit_run_id]
    assert entries[1].supersedes == first.audit_run_id
    assert entries[1].metrics == second.metrics


def test_levenshtein_backend_scores_the_same_scenario():
    run = make_coordinator(SIMILARITY_BACKEND="levenshtein").score(
        "merkl",
        "sol",
        copied_predictions() + [UNRELATED_PREDICTION],
        ground_truth(),
    )
    assert run.metrics.exact == 5
    assert run.metrics.precision == pytest.approx(5 / 6)


def test_finding_without_id_next_to_explicit_positional_id_is_scored():
    run = make_coordinator().score(
        "merkl",
        "sol",
        [
            {"text": "Reentrancy in Vault.withdraw( drains eth"},
            {"id": "P-001", "text": "Oracle spot price manipulation"},
        ],
        [],
    )

    assert sorted(f.finding_id for f in run.predicted) == ["P-001", "P-002"]
    assert run.metrics.false_positives == 2
