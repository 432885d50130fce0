"""
AuditRun schema.

Defines the record produced by one scoring of one persona's predicted
findings against one contest's ground truth.

The record captures:
- the normalized predicted and actual findings,
- the resolved correspondence (exact, partial, false positive, false negative),
- the derived precision / recall / F1 metrics and their breakdowns.

An AuditRun is created once per scoring call and is immutable. Re-scoring
produces a new AuditRun with a new identifier.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

from scorekeeper.app.schemas.findings import FindingRecord, FindingOrigin


# ---------------------------------------------------------------------------
# Enumerations (FROZEN CONTRACTS)
# ---------------------------------------------------------------------------


class MatchKind(str, Enum):
    """Outcome of resolving one finding (or one pair of findings)."""

    EXACT = "exact"
    PARTIAL = "partial"
    FALSE_POSITIVE = "false_positive"
    FALSE_NEGATIVE = "false_negative"


CREDIT_WEIGHTS: Dict[MatchKind, float] = {
    MatchKind.EXACT: 1.0,
    MatchKind.PARTIAL: 0.5,
    MatchKind.FALSE_POSITIVE: 0.0,
    MatchKind.FALSE_NEGATIVE: 0.0,
}


# ---------------------------------------------------------------------------
# Matching (INTERNAL CONTRACTS, never persisted)
# ---------------------------------------------------------------------------


class MatchCandidate(BaseModel):
    """
    A scored pairing possibility between one predicted and one actual
    finding. Only pairs at or above the candidate floor are materialized.
    """

    predicted_id: str
    actual_id: str
    similarity: float = Field(..., ge=0.0, le=1.0)
    category_match: bool
    location_overlap: bool
    location_score: float = Field(..., ge=0.0, le=1.0)
    root_cause_similarity: float = Field(..., ge=0.0, le=1.0)

    model_config = ConfigDict(frozen=True, extra="forbid")


class MatchingOutcome(BaseModel):
    """Resolved one-to-one pairing plus the ids left unpaired on each side."""

    pairs: Tuple[MatchCandidate, ...] = ()
    unmatched_predicted: Tuple[str, ...] = ()
    unmatched_actual: Tuple[str, ...] = ()

    model_config = ConfigDict(frozen=True, extra="forbid")


# ---------------------------------------------------------------------------
# Classified results (PUBLIC, FROZEN)
# ---------------------------------------------------------------------------


class MatchResult(BaseModel):
    """
    One entry of the resolved correspondence.

    Exactly one of predicted_id / actual_id may be null (false positive or
    false negative), never both.
    """

    predicted_id: Optional[str] = None
    actual_id: Optional[str] = None
    kind: MatchKind
    credit_weight: float = Field(..., ge=0.0, le=1.0)

    similarity: Optional[float] = Field(
        None,
        ge=0.0,
        le=1.0,
        description="Pair similarity (matched pairs only)",
    )

    category: str = Field(
        ...,
        description="Category of the finding(s) this result refers to",
    )

    @model_validator(mode="after")
    def enforce_result_invariants(self):
        if self.predicted_id is None and self.actual_id is None:
            raise ValueError("MatchResult needs at least one finding id")

        if self.kind in (MatchKind.EXACT, MatchKind.PARTIAL):
            if self.predicted_id is None or self.actual_id is None:
                raise ValueError(f"{self.kind.value} result requires both ids")
        elif self.kind == MatchKind.FALSE_POSITIVE:
            if self.actual_id is not None:
                raise ValueError("false_positive result must not carry actual_id")
        elif self.predicted_id is not None:
            raise ValueError("false_negative result must not carry predicted_id")

        if self.credit_weight != CREDIT_WEIGHTS[self.kind]:
            raise ValueError(
                f"{self.kind.value} result must carry weight "
                f"{CREDIT_WEIGHTS[self.kind]}, got {self.credit_weight}"
            )
        return self

    @property
    def is_pair(self) -> bool:
        return self.kind in (MatchKind.EXACT, MatchKind.PARTIAL)

    model_config = ConfigDict(frozen=True, extra="forbid")


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------


class BreakdownMetrics(BaseModel):
    """Precision / recall / F1 restricted to one category or severity."""

    precision: Optional[float] = Field(None, ge=0.0, le=1.0)
    recall: Optional[float] = Field(None, ge=0.0, le=1.0)
    f1: Optional[float] = Field(None, ge=0.0, le=1.0)
    predicted_total: int = Field(0, ge=0)
    actual_total: int = Field(0, ge=0)

    model_config = ConfigDict(frozen=True, extra="forbid")


class RunMetrics(BaseModel):
    """
    Metrics derived from one audit run.

    precision is null when nothing was predicted and recall is null when
    the ground truth is empty; neither is ever reported as a misleading
    0 or 1 in those cases.
    """

    precision: Optional[float] = Field(None, ge=0.0, le=1.0)
    recall: Optional[float] = Field(None, ge=0.0, le=1.0)
    f1: Optional[float] = Field(None, ge=0.0, le=1.0)

    predicted_total: int = Field(0, ge=0)
    actual_total: int = Field(0, ge=0)
    exact: int = Field(0, ge=0)
    partial: int = Field(0, ge=0)
    false_positives: int = Field(0, ge=0)
    false_negatives: int = Field(0, ge=0)

    per_category: Dict[str, BreakdownMetrics] = Field(default_factory=dict)
    per_severity: Dict[str, BreakdownMetrics] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True, extra="forbid")


# ---------------------------------------------------------------------------
# Audit Run (PUBLIC, FROZEN)
# ---------------------------------------------------------------------------


class AuditRun(BaseModel):
    """
    One complete scoring of one persona's predictions against one
    contest's ground truth.
    """

    audit_run_id: str = Field(..., min_length=1)
    contest_id: str = Field(..., min_length=1)
    agent_id: str = Field(..., min_length=1)
    scored_at: datetime

    taxonomy_version: str = Field(
        ...,
        description="Version of the category taxonomy used for normalization",
    )

    predicted: Tuple[FindingRecord, ...] = ()
    actual: Tuple[FindingRecord, ...] = ()
    matches: Tuple[MatchResult, ...] = ()
    metrics: RunMetrics

    supersedes: Optional[str] = Field(
        None,
        description="audit_run_id of an earlier run this one corrects",
    )

    content_digest: str = Field(
        ...,
        description=(
            "SHA-256 digest of the canonical inputs, matches and metrics. "
            "Identical for identical inputs regardless of id or timestamp."
        ),
    )

    # ------------------------------------------------------------------
    # Invariants
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def enforce_conservation(self):
        """
        Every predicted id and every actual id appears in exactly one
        MatchResult:

        - |pairs| + |false positives| == |P|
        - |pairs| + |false negatives| == |A|
        """
        if any(f.origin != FindingOrigin.PREDICTED for f in self.predicted):
            raise ValueError("predicted findings must have origin 'predicted'")
        if any(f.origin != FindingOrigin.ACTUAL for f in self.actual):
            raise ValueError("actual findings must have origin 'actual'")

        predicted_ids = [m.predicted_id for m in self.matches if m.predicted_id]
        actual_ids = [m.actual_id for m in self.matches if m.actual_id]

        if sorted(predicted_ids) != sorted(f.finding_id for f in self.predicted):
            raise ValueError(
                "Each predicted finding must appear in exactly one match result"
            )
        if sorted(actual_ids) != sorted(f.finding_id for f in self.actual):
            raise ValueError(
                "Each actual finding must appear in exactly one match result"
            )
        return self

    # ------------------------------------------------------------------
    # Convenience views
    # ------------------------------------------------------------------

    def pairs(self) -> Tuple[MatchResult, ...]:
        return tuple(m for m in self.matches if m.is_pair)

    def false_positives(self) -> Tuple[FindingRecord, ...]:
        """Predicted findings with no credited counterpart."""
        ids = {
            m.predicted_id
            for m in self.matches
            if m.kind == MatchKind.FALSE_POSITIVE
        }
        return tuple(f for f in self.predicted if f.finding_id in ids)

    def false_negatives(self) -> Tuple[FindingRecord, ...]:
        """Ground-truth findings the persona missed."""
        ids = {
            m.actual_id
            for m in self.matches
            if m.kind == MatchKind.FALSE_NEGATIVE
        }
        return tuple(f for f in self.actual if f.finding_id in ids)

    model_config = ConfigDict(frozen=True, extra="forbid")
