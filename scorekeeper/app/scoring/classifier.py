"""
Match classifier.

Converts a resolved matching into credit-weighted MatchResults:

- exact (1.0): same category, same location, root-cause similarity at or
  above the exact-match threshold
- partial (0.5): same category, but the location or the mechanism differs
- none: the pair is discarded and demoted to one false positive plus one
  false negative, so it cannot consume an actual finding that was missed

Unmatched predicted findings are false positives and unmatched actual
findings are false negatives. Classification is a total function.
"""

from __future__ import annotations

import logging
from typing import List, Mapping, Tuple

from scorekeeper.app.schemas.audit_run import (
    CREDIT_WEIGHTS,
    MatchCandidate,
    MatchingOutcome,
    MatchKind,
    MatchResult,
)
from scorekeeper.app.schemas.findings import FindingRecord


logger = logging.getLogger(__name__)


class MatchClassifier:

    def __init__(self, *, exact_match_threshold: float = 0.7) -> None:
        self._exact_match_threshold = exact_match_threshold

    def credit(self, candidate: MatchCandidate) -> MatchKind | None:
        """Credit kind for one matched pair; None means the pair is demoted."""
        if not candidate.category_match:
            return None
        if (
            candidate.location_overlap
            and candidate.root_cause_similarity >= self._exact_match_threshold
        ):
            return MatchKind.EXACT
        return MatchKind.PARTIAL

    def classify(
        self,
        outcome: MatchingOutcome,
        predicted: Mapping[str, FindingRecord],
        actual: Mapping[str, FindingRecord],
    ) -> Tuple[MatchResult, ...]:
        """
        Classify a matching.

        Result order: credited pairs by predicted id, then false positives
        by predicted id, then false negatives by actual id.
        """
        pairs: List[MatchResult] = []
        false_positive_ids = list(outcome.unmatched_predicted)
        false_negative_ids = list(outcome.unmatched_actual)

        for candidate in outcome.pairs:
            kind = self.credit(candidate)
            if kind is None:
                logger.debug(
                    "classifier: demoting pair %s/%s (similarity %.3f, categories differ)",
                    candidate.predicted_id,
                    candidate.actual_id,
                    candidate.similarity,
                )
                false_positive_ids.append(candidate.predicted_id)
                false_negative_ids.append(candidate.actual_id)
                continue

            pairs.append(
                MatchResult(
                    predicted_id=candidate.predicted_id,
                    actual_id=candidate.actual_id,
                    kind=kind,
                    credit_weight=CREDIT_WEIGHTS[kind],
                    similarity=candidate.similarity,
                    category=actual[candidate.actual_id].category,
                )
            )

        pairs.sort(key=lambda r: (r.predicted_id, r.actual_id))

        false_positives = [
            MatchResult(
                predicted_id=pid,
                kind=MatchKind.FALSE_POSITIVE,
                credit_weight=CREDIT_WEIGHTS[MatchKind.FALSE_POSITIVE],
                category=predicted[pid].category,
            )
            for pid in sorted(false_positive_ids)
        ]
        false_negatives = [
            MatchResult(
                actual_id=aid,
                kind=MatchKind.FALSE_NEGATIVE,
                credit_weight=CREDIT_WEIGHTS[MatchKind.FALSE_NEGATIVE],
                category=actual[aid].category,
            )
            for aid in sorted(false_negative_ids)
        ]

        return tuple(pairs + false_positives + false_negatives)
