"""
Scoring coordinator.

The coordinator is the single mutating entry point of the engine:

    score(contest_id, agent_id, predicted, actual) -> AuditRun

It MUST NOT:
- interpret finding text itself
- mutate a previously produced AuditRun
- write anywhere except the configured ledger

Its sole responsibilities are:
- enforcing execution order (normalize, validate, match, classify, measure)
- rejecting invalid input before any scoring happens
- constructing the immutable AuditRun
- appending exactly one ledger entry per run
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Sequence, Tuple
from uuid import uuid4

from scorekeeper.app.config import ScorekeeperConfig
from scorekeeper.app.errors import DuplicateFindingIdError
from scorekeeper.app.ledger.ledger import PerformanceLedger
from scorekeeper.app.schemas.audit_run import AuditRun, MatchResult, RunMetrics
from scorekeeper.app.schemas.findings import FindingOrigin, FindingRecord
from scorekeeper.app.schemas.ledger import PerformanceLedgerEntry
from scorekeeper.app.scoring.classifier import MatchClassifier
from scorekeeper.app.scoring.matcher import FindingMatcher
from scorekeeper.app.scoring.metrics import compute_metrics
from scorekeeper.app.scoring.normalizer import FindingNormalizer
from scorekeeper.app.scoring.similarity import build_similarity
from scorekeeper.app.taxonomy.taxonomy import CategoryTaxonomy
from scorekeeper.app.utils.hashing import canonical_json_bytes, compute_digest


logger = logging.getLogger(__name__)


class ScoringCoordinator:
    """
    Central scoring coordinator.

    Execution order:
        1. Normalization (tolerant, never raises)
        2. Id uniqueness gate (raises before scoring)
        3. Matching (maximum-weight, deterministic)
        4. Classification (credit weights)
        5. Metrics
        6. Ledger append (optional)
    """

    def __init__(
        self,
        normalizer: FindingNormalizer,
        matcher: FindingMatcher,
        classifier: MatchClassifier,
        ledger: Optional[PerformanceLedger] = None,
    ) -> None:
        """
        Direct constructor.

        Intended for tests and explicit wiring. A coordinator without a
        ledger scores runs without persisting them.
        """
        self._normalizer = normalizer
        self._matcher = matcher
        self._classifier = classifier
        self._ledger = ledger

    # ------------------------------------------------------------------
    # Integration constructor (composition root)
    # ------------------------------------------------------------------

    @classmethod
    def from_config(
        cls,
        config: ScorekeeperConfig,
        ledger: Optional[PerformanceLedger] = None,
    ) -> "ScoringCoordinator":
        taxonomy = (
            CategoryTaxonomy.load(config.TAXONOMY_PATH)
            if config.TAXONOMY_PATH is not None
            else CategoryTaxonomy.default()
        )

        return cls(
            normalizer=FindingNormalizer(
                taxonomy,
                root_cause_max_tokens=config.ROOT_CAUSE_MAX_TOKENS,
            ),
            matcher=FindingMatcher(
                build_similarity(config.SIMILARITY_BACKEND),
                candidate_floor=config.CANDIDATE_FLOOR,
            ),
            classifier=MatchClassifier(
                exact_match_threshold=config.EXACT_MATCH_THRESHOLD,
            ),
            ledger=ledger,
        )

    @property
    def ledger(self) -> Optional[PerformanceLedger]:
        return self._ledger

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def score(
        self,
        contest_id: str,
        agent_id: str,
        predicted: Iterable[Any],
        actual: Iterable[Any],
        *,
        audit_run_id: Optional[str] = None,
        scored_at: Optional[datetime] = None,
        supersedes: Optional[str] = None,
    ) -> AuditRun:
        """
        Score one agent's predicted findings against a contest's ground truth.

        Raises DuplicateFindingIdError before scoring when either side
        repeats an id, and LedgerConflictError when audit_run_id is
        already recorded.
        """
        audit_run_id = audit_run_id or str(uuid4())
        scored_at = scored_at or datetime.now(timezone.utc)

        predicted_records = self._normalizer.normalize_all(
            predicted, origin=FindingOrigin.PREDICTED
        )
        actual_records = self._normalizer.normalize_all(
            actual, origin=FindingOrigin.ACTUAL
        )

        # --------------------------------------------------------------
        # Validation gate (nothing is scored past a failure here)
        # --------------------------------------------------------------
        _reject_duplicate_ids(predicted_records, FindingOrigin.PREDICTED)
        _reject_duplicate_ids(actual_records, FindingOrigin.ACTUAL)

        logger.info(
            "scoring: run %s agent=%s contest=%s predicted=%d actual=%d",
            audit_run_id,
            agent_id,
            contest_id,
            len(predicted_records),
            len(actual_records),
        )

        outcome = self._matcher.match(predicted_records, actual_records)
        matches = self._classifier.classify(
            outcome,
            {f.finding_id: f for f in predicted_records},
            {f.finding_id: f for f in actual_records},
        )
        metrics = compute_metrics(matches, predicted_records, actual_records)

        run = AuditRun(
            audit_run_id=audit_run_id,
            contest_id=contest_id,
            agent_id=agent_id,
            scored_at=scored_at,
            taxonomy_version=self._normalizer.taxonomy.version,
            predicted=predicted_records,
            actual=actual_records,
            matches=matches,
            metrics=metrics,
            supersedes=supersedes,
            content_digest=_content_digest(
                self._normalizer.taxonomy.version,
                predicted_records,
                actual_records,
                matches,
                metrics,
            ),
        )

        logger.info(
            "scoring: run %s precision=%s recall=%s f1=%s (exact=%d partial=%d fp=%d fn=%d)",
            audit_run_id,
            _fmt(metrics.precision),
            _fmt(metrics.recall),
            _fmt(metrics.f1),
            metrics.exact,
            metrics.partial,
            metrics.false_positives,
            metrics.false_negatives,
        )

        if self._ledger is not None:
            self._ledger.append(PerformanceLedgerEntry.from_audit_run(run))

        return run


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _reject_duplicate_ids(
    records: Sequence[FindingRecord],
    origin: FindingOrigin,
) -> None:
    counts = Counter(r.finding_id for r in records)
    duplicates = [finding_id for finding_id, n in counts.items() if n > 1]
    if duplicates:
        logger.error(
            "scoring: rejected %s findings with duplicate ids %s",
            origin.value,
            sorted(duplicates),
        )
        raise DuplicateFindingIdError(origin.value, duplicates)


def _content_digest(
    taxonomy_version: str,
    predicted: Tuple[FindingRecord, ...],
    actual: Tuple[FindingRecord, ...],
    matches: Tuple[MatchResult, ...],
    metrics: RunMetrics,
) -> str:
    payload = {
        "taxonomy_version": taxonomy_version,
        "predicted": sorted(
            (f.model_dump(mode="json") for f in predicted),
            key=lambda f: f["finding_id"],
        ),
        "actual": sorted(
            (f.model_dump(mode="json") for f in actual),
            key=lambda f: f["finding_id"],
        ),
        "matches": [m.model_dump(mode="json") for m in matches],
        "metrics": metrics.model_dump(mode="json"),
    }
    return compute_digest(canonical_json_bytes(payload))


def _fmt(value: Optional[float]) -> str:
    return "null" if value is None else f"{value:.3f}"
