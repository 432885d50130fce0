"""
Finding matcher.

Computes a similarity score for every predicted x actual pair and resolves
the candidates into a maximum-weight one-to-one correspondence.

Pair similarity combines three signals with fixed weights:

    0.4 * category equality
  + 0.3 * location-key overlap (1.0 same key, 0.5 same component or same
          entry point, 0.0 otherwise or when either key is absent)
  + 0.3 * root-cause text similarity

Pairs below the candidate floor are discarded before matching and can
never be paired, whatever the assignment outcome.

Resolution uses the Hungarian algorithm. Ties in total weight are broken
in favour of lexicographically smaller (predicted_id, actual_id) pairs, so
re-running on identical input (in any order) yields the same matching.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Sequence, Tuple

import numpy as np
from scipy.optimize import linear_sum_assignment

from scorekeeper.app.schemas.audit_run import MatchCandidate, MatchingOutcome
from scorekeeper.app.schemas.findings import (
    FindingRecord,
    UNKNOWN_CATEGORY,
    split_location_key,
)
from scorekeeper.app.scoring.similarity import TextSimilarity


logger = logging.getLogger(__name__)

CATEGORY_WEIGHT = 0.4
LOCATION_WEIGHT = 0.3
ROOT_CAUSE_WEIGHT = 0.3

# Similarities are quantized before assignment; values closer than
# 1 / SIMILARITY_SCALE count as equal and fall through to the id tie-break.
SIMILARITY_SCALE = 10 ** 6


def location_score(left: str | None, right: str | None) -> float:
    """Null-safe overlap of two location keys."""
    if not left or not right:
        return 0.0
    if left == right:
        return 1.0

    left_component, left_entry = split_location_key(left)
    right_component, right_entry = split_location_key(right)

    if left_component and left_component == right_component:
        return 0.5
    if left_entry and left_entry == right_entry:
        return 0.5
    return 0.0


class FindingMatcher:
    """
    Scores and resolves predicted/actual finding pairs.
    """

    def __init__(
        self,
        similarity: TextSimilarity,
        *,
        candidate_floor: float = 0.35,
    ) -> None:
        self._similarity = similarity
        self._candidate_floor = candidate_floor

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def score_pair(
        self,
        predicted: FindingRecord,
        actual: FindingRecord,
    ) -> MatchCandidate:
        category_match = (
            predicted.category == actual.category
            and predicted.category != UNKNOWN_CATEGORY
        )
        loc = location_score(predicted.location_key, actual.location_key)
        root = _clamp(
            self._similarity.score(
                predicted.root_cause_summary,
                actual.root_cause_summary,
            )
        )

        similarity = _clamp(
            CATEGORY_WEIGHT * (1.0 if category_match else 0.0)
            + LOCATION_WEIGHT * loc
            + ROOT_CAUSE_WEIGHT * root
        )

        return MatchCandidate(
            predicted_id=predicted.finding_id,
            actual_id=actual.finding_id,
            similarity=similarity,
            category_match=category_match,
            location_overlap=loc == 1.0,
            location_score=loc,
            root_cause_similarity=root,
        )

    def candidates(
        self,
        predicted: Sequence[FindingRecord],
        actual: Sequence[FindingRecord],
    ) -> List[MatchCandidate]:
        """All pairs at or above the candidate floor, ordered by id pair."""
        result = []
        for p in sorted(predicted, key=lambda f: f.finding_id):
            for a in sorted(actual, key=lambda f: f.finding_id):
                candidate = self.score_pair(p, a)
                if candidate.similarity >= self._candidate_floor:
                    result.append(candidate)
        return result

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def match(
        self,
        predicted: Sequence[FindingRecord],
        actual: Sequence[FindingRecord],
    ) -> MatchingOutcome:
        predicted_ids = sorted(f.finding_id for f in predicted)
        actual_ids = sorted(f.finding_id for f in actual)

        candidates = self.candidates(predicted, actual)
        logger.debug(
            "matcher: %d candidates above floor %.2f for %d x %d findings",
            len(candidates),
            self._candidate_floor,
            len(predicted_ids),
            len(actual_ids),
        )

        pairs = _resolve(predicted_ids, actual_ids, candidates)

        paired_predicted = {c.predicted_id for c in pairs}
        paired_actual = {c.actual_id for c in pairs}

        return MatchingOutcome(
            pairs=tuple(pairs),
            unmatched_predicted=tuple(
                i for i in predicted_ids if i not in paired_predicted
            ),
            unmatched_actual=tuple(
                i for i in actual_ids if i not in paired_actual
            ),
        )


def _resolve(
    predicted_ids: List[str],
    actual_ids: List[str],
    candidates: List[MatchCandidate],
) -> List[MatchCandidate]:
    """
    Maximum-weight matching over the candidate pairs.

    The optimal total is found first. Predicted ids are then settled in
    ascending order: each takes the smallest actual id that still admits a
    matching with the optimal total, so among equal-total matchings the
    lexicographically smallest one wins.
    """
    if not candidates:
        return []

    n = len(predicted_ids)
    m = len(actual_ids)
    p_index: Dict[str, int] = {pid: i for i, pid in enumerate(predicted_ids)}
    a_index: Dict[str, int] = {aid: j for j, aid in enumerate(actual_ids)}

    weights = np.zeros((n, m), dtype=np.int64)
    by_cell: Dict[Tuple[int, int], MatchCandidate] = {}
    for candidate in candidates:
        i = p_index[candidate.predicted_id]
        j = a_index[candidate.actual_id]
        weights[i, j] = max(1, int(round(candidate.similarity * SIMILARITY_SCALE)))
        by_cell[(i, j)] = candidate

    free_rows = list(range(n))
    free_cols = list(range(m))
    target, assignment = _assign(weights, free_rows, free_cols)

    settled_total = 0
    chosen: List[MatchCandidate] = []
    for i in range(n):
        free_rows.remove(i)
        current = assignment.get(i)

        for j in free_cols:
            if current is not None and j >= current:
                break
            if (i, j) not in by_cell:
                continue
            rest_total, rest = _assign(
                weights, free_rows, [c for c in free_cols if c != j]
            )
            if settled_total + int(weights[i, j]) + rest_total == target:
                current = j
                assignment = rest
                break

        if current is not None:
            settled_total += int(weights[i, current])
            free_cols.remove(current)
            chosen.append(by_cell[(i, current)])

    return chosen


def _assign(
    weights: np.ndarray,
    rows: List[int],
    cols: List[int],
) -> Tuple[int, Dict[int, int]]:
    """Optimal total and row -> column assignment over a sub-matrix."""
    if not rows or not cols:
        return 0, {}

    sub = weights[np.ix_(rows, cols)]
    row_ind, col_ind = linear_sum_assignment(sub, maximize=True)

    total = 0
    assignment: Dict[int, int] = {}
    for r, c in zip(row_ind, col_ind):
        # Zero cells are non-candidates the solver used as filler.
        if sub[r, c] > 0:
            total += int(sub[r, c])
            assignment[rows[int(r)]] = cols[int(c)]
    return total, assignment


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, round(float(value), 12)))
