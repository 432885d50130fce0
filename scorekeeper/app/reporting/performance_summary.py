"""
Agent performance summary.

Renders an agent's effective ledger history as a Markdown document with a
"Last Updated" stamp, window averages and one row per audit run.

PRESENTATION ONLY:
- derived entirely from ledger entries
- never read back as a source of truth
- written only to a caller-chosen path
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Sequence

from scorekeeper.app.ledger.ledger import PerformanceLedger
from scorekeeper.app.ledger.trends import (
    TREND_METRICS,
    effective_history,
    moving_average,
)
from scorekeeper.app.schemas.ledger import PerformanceLedgerEntry


def _pct(value: Optional[float]) -> str:
    return "n/a" if value is None else f"{value * 100:.1f}%"


def render_performance_summary(
    agent_id: str,
    entries: Sequence[PerformanceLedgerEntry],
    as_of: datetime,
    *,
    averages: Optional[dict] = None,
) -> str:
    lines: List[str] = [
        f"# {agent_id} performance",
        "",
        f"**Last Updated:** {as_of.strftime('%B %d, %Y')}",
        f"**Audit runs:** {len(entries)}",
        "",
    ]

    if averages:
        lines.append("## Moving averages")
        lines.append("")
        for metric, summary in averages.items():
            lines.append(
                f"- {metric}: {_pct(summary.moving_average)} "
                f"(last {len(summary.audit_run_ids)} runs)"
            )
        lines.append("")

    lines.extend(
        [
            "## Audit runs",
            "",
            "| Date | Contest | Run | Precision | Recall | F1 | Exact | Partial | FP | FN |",
            "|------|---------|-----|-----------|--------|----|-------|---------|----|----|",
        ]
    )
    for entry in entries:
        m = entry.metrics
        lines.append(
            f"| {entry.recorded_at.date().isoformat()} "
            f"| {entry.contest_id} "
            f"| {entry.audit_run_id} "
            f"| {_pct(m.precision)} "
            f"| {_pct(m.recall)} "
            f"| {_pct(m.f1)} "
            f"| {m.exact} | {m.partial} | {m.false_positives} | {m.false_negatives} |"
        )

    return "\n".join(lines) + "\n"


def build_performance_summary(
    ledger: PerformanceLedger,
    agent_id: str,
    as_of: datetime,
    *,
    window: int = 5,
) -> str:
    """Render the summary straight from the ledger's effective history."""
    averages = {
        metric: moving_average(ledger, agent_id, metric, window)
        for metric in TREND_METRICS
    }
    return render_performance_summary(
        agent_id,
        effective_history(ledger, agent_id),
        as_of,
        averages=averages,
    )
