from datetime import datetime, timezone

from scorekeeper.app.ledger import InMemoryPerformanceLedger
from scorekeeper.app.reporting.performance_summary import (
    build_performance_summary,
    render_performance_summary,
)
from scorekeeper.tests.fixtures.findings_factory import (
    UNRELATED_PREDICTION,
    copied_predictions,
    ground_truth,
    make_coordinator,
)


_AS_OF = datetime(2026, 10, 18, tzinfo=timezone.utc)


def test_empty_history_renders_header_only():
    text = render_performance_summary("vera", [], _AS_OF)
    assert "**Last Updated:** October 18, 2026" in text
    assert "**Audit runs:** 0" in text
    assert "## Moving averages" not in text


def test_summary_reflects_effective_history():
    ledger = InMemoryPerformanceLedger()
    coordinator = make_coordinator(ledger=ledger)

    first = coordinator.score(
        "merkl", "sol", [], ground_truth(), audit_run_id="run-1", scored_at=_AS_OF
    )
    coordinator.score(
        "merkl",
        "sol",
        copied_predictions() + [UNRELATED_PREDICTION],
        ground_truth(),
        audit_run_id="run-2",
        scored_at=_AS_OF,
        supersedes=first.audit_run_id,
    )

    text = build_performance_summary(ledger, "sol", _AS_OF, window=3)

    assert "**Audit runs:** 1" in text
    assert "- precision: 83.3% (last 1 runs)" in text
    assert "- recall: 100.0% (last 1 runs)" in text
    assert "| 2026-10-18 | merkl | run-2 | 83.3% | 100.0% | 90.9% | 5 | 0 | 1 | 0 |" in text
    assert "run-1" not in text
