"""
FastAPI entrypoint for the scoring engine.

This module defines the HTTP interface: one mutating operation that scores
an agent's predicted findings against a contest's ground truth, and
read-only queries over the performance ledger.

Scoring handlers are synchronous and run in the server's worker threads;
independent runs are scored in parallel while ledger appends are
serialized by the ledger itself.
"""

from __future__ import annotations

import json
import logging
from typing import Any, List, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.responses import Response

from scorekeeper.app.config import ScorekeeperConfig
from scorekeeper.app.coordinator.coordinator import ScoringCoordinator
from scorekeeper.app.errors import (
    DuplicateFindingIdError,
    LedgerConflictError,
    LedgerError,
)
from scorekeeper.app.ledger import (
    SqlitePerformanceLedger,
    category_trend,
    effective_history,
    moving_average,
)
from scorekeeper.app.schemas.audit_run import AuditRun
from scorekeeper.app.schemas.ledger import PerformanceLedgerEntry, TrendSummary


logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Presentation helpers (presentation-only)
# ---------------------------------------------------------------------------

def pretty_json(data: Any) -> str:
    """
    Pretty-print JSON for human-readable output.

    PRESENTATION ONLY: digests are computed over canonical JSON, never
    over this rendering.
    """
    return json.dumps(
        data,
        ensure_ascii=False,
        allow_nan=False,
        indent=2,
        separators=(", ", ": "),
    )


class PrettyJSONResponse(Response):
    """Pretty-printed JSON response for human-readable console output."""

    media_type = "application/json"

    def render(self, content: Any) -> bytes:
        return pretty_json(content).encode("utf-8")


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class ScoreRequest(BaseModel):
    """
    Scoring request.

    Individual findings are accepted in any shape; malformed entries are
    normalized to default fields rather than rejected.
    """

    contest_id: str = Field(..., min_length=1)
    agent_id: str = Field(..., min_length=1)
    predicted: List[Any] = Field(default_factory=list)
    actual: List[Any] = Field(default_factory=list)
    supersedes: Optional[str] = Field(
        None,
        description="audit_run_id of an earlier run of the same agent to correct",
    )

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------------
# Application setup
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Scorekeeper",
    description="Finding correspondence and scoring engine for shadow audits",
    version="0.3.0",
)


# ---------------------------------------------------------------------------
# Startup / Shutdown
# ---------------------------------------------------------------------------

@app.on_event("startup")
def startup_event() -> None:
    """
    Application startup hook.

    Configuration is loaded once and treated as immutable for the lifetime
    of the process. The ledger and the coordinator are wired explicitly.
    """
    config = ScorekeeperConfig.from_env()

    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    ledger = SqlitePerformanceLedger(config.LEDGER_PATH)
    coordinator = ScoringCoordinator.from_config(config, ledger=ledger)

    logger.info("startup: ledger at %s", config.LEDGER_PATH)

    app.state.config = config
    app.state.ledger = ledger
    app.state.coordinator = coordinator


# ---------------------------------------------------------------------------
# API Routes
# ---------------------------------------------------------------------------

@app.post(
    "/audit-runs",
    response_model=AuditRun,
    response_class=PrettyJSONResponse,
    status_code=201,
    summary="Score predicted findings against ground truth",
)
def create_audit_run(request: ScoreRequest) -> AuditRun:
    """
    Score one agent's predictions for one contest and record the outcome.
    """
    coordinator: ScoringCoordinator = app.state.coordinator

    try:
        return coordinator.score(
            request.contest_id,
            request.agent_id,
            request.predicted,
            request.actual,
            supersedes=request.supersedes,
        )
    except DuplicateFindingIdError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except LedgerConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except LedgerError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@app.get(
    "/agents/{agent_id}/history",
    response_model=List[PerformanceLedgerEntry],
    summary="Ledger entries of one agent, oldest first",
)
def agent_history(
    agent_id: str,
    include_superseded: bool = Query(False),
) -> List[PerformanceLedgerEntry]:
    ledger = app.state.ledger
    if include_superseded:
        return list(ledger.entries(agent_id))
    return list(effective_history(ledger, agent_id))


@app.get(
    "/agents/{agent_id}/trend",
    response_model=TrendSummary,
    summary="Moving average of a metric over an agent's recent runs",
)
def agent_trend(
    agent_id: str,
    metric: str = Query("precision"),
    window: Optional[int] = Query(None, ge=1),
    category: Optional[str] = Query(None),
) -> TrendSummary:
    config: ScorekeeperConfig = app.state.config
    ledger = app.state.ledger
    window = window or config.TREND_WINDOW

    try:
        if category:
            return category_trend(ledger, agent_id, category, metric, window)
        return moving_average(ledger, agent_id, metric, window)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


# ---------------------------------------------------------------------------
# Health Check
# ---------------------------------------------------------------------------

@app.get(
    "/health",
    summary="Service health check",
)
def health_check() -> JSONResponse:
    """Simple health check endpoint."""
    return JSONResponse(
        content={
            "status": "ok",
            "service": "scorekeeper",
        }
    )
