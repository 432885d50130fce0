"""
Performance ledger schemas.

A ledger entry is the durable trace of one scored audit run. Entries are
append-only: corrections are new entries that name the run they supersede.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from scorekeeper.app.schemas.audit_run import AuditRun, RunMetrics


TrendMetric = Literal["precision", "recall", "f1"]


class PerformanceLedgerEntry(BaseModel):
    """One appended audit-run outcome for one agent."""

    agent_id: str = Field(..., min_length=1)
    audit_run_id: str = Field(..., min_length=1)
    contest_id: str = Field(..., min_length=1)
    metrics: RunMetrics
    recorded_at: datetime

    supersedes: Optional[str] = Field(
        None,
        description="audit_run_id of the earlier entry this one corrects",
    )

    @classmethod
    def from_audit_run(cls, run: AuditRun) -> "PerformanceLedgerEntry":
        return cls(
            agent_id=run.agent_id,
            audit_run_id=run.audit_run_id,
            contest_id=run.contest_id,
            metrics=run.metrics,
            recorded_at=run.scored_at,
            supersedes=run.supersedes,
        )

    model_config = ConfigDict(frozen=True, extra="forbid")


class TrendSummary(BaseModel):
    """Moving average of one metric over an agent's most recent runs."""

    agent_id: str
    metric: str
    window: int = Field(..., ge=1)

    audit_run_ids: Tuple[str, ...] = Field(
        default_factory=tuple,
        description="Runs inside the window, oldest first",
    )

    values: Tuple[Optional[float], ...] = Field(
        default_factory=tuple,
        description="Metric value per run in the window (null if undefined)",
    )

    moving_average: Optional[float] = Field(
        None,
        description="Mean of the non-null values, null if there are none",
    )

    model_config = ConfigDict(frozen=True, extra="forbid")
