"""
Command-line interface.

    scorekeeper score   --agent sol --contest merkl --predicted p.yaml --actual a.yaml
    scorekeeper history --agent sol
    scorekeeper trend   --agent sol --metric recall --window 5
    scorekeeper summary --agent sol --output agents/sol/performance-summary.md

Every subcommand reads configuration from SCOREKEEPER_* environment
variables; --ledger overrides the ledger location.
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Sequence

from scorekeeper.app.config import ScorekeeperConfig
from scorekeeper.app.coordinator.coordinator import ScoringCoordinator
from scorekeeper.app.errors import LedgerError
from scorekeeper.app.inputs import load_findings
from scorekeeper.app.ledger import (
    SqlitePerformanceLedger,
    category_trend,
    effective_history,
    moving_average,
)
from scorekeeper.app.reporting.performance_summary import build_performance_summary
from scorekeeper.app.schemas.audit_run import AuditRun
from scorekeeper.app.schemas.findings import FindingRecord


logger = logging.getLogger("scorekeeper")


def _pct(value: Optional[float]) -> str:
    return "n/a" if value is None else f"{value * 100:.1f}%"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="scorekeeper",
        description="Score shadow-audit findings against published ground truth",
    )
    parser.add_argument("--ledger", type=Path, help="Override SCOREKEEPER_LEDGER_PATH")
    sub = parser.add_subparsers(dest="command", required=True)

    score = sub.add_parser("score", help="Score one agent's findings for one contest")
    score.add_argument("--agent", required=True)
    score.add_argument("--contest", required=True)
    score.add_argument("--predicted", type=Path, required=True)
    score.add_argument("--actual", type=Path, required=True)
    score.add_argument("--run-id", help="Explicit audit run id (default: random)")
    score.add_argument("--supersedes", help="Audit run id this run corrects")
    score.add_argument("--output", type=Path, help="Write the AuditRun JSON here")

    history = sub.add_parser("history", help="List an agent's ledger entries")
    history.add_argument("--agent", required=True)
    history.add_argument(
        "--all",
        action="store_true",
        help="Include superseded entries",
    )

    trend = sub.add_parser("trend", help="Moving average of a metric")
    trend.add_argument("--agent", required=True)
    trend.add_argument("--metric", default="precision", choices=["precision", "recall", "f1"])
    trend.add_argument("--window", type=int)
    trend.add_argument("--category")

    summary = sub.add_parser("summary", help="Render a Markdown performance summary")
    summary.add_argument("--agent", required=True)
    summary.add_argument("--window", type=int)
    summary.add_argument("--output", type=Path, help="Write Markdown here (default: stdout)")

    return parser


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------

def _by_severity(findings: Sequence[FindingRecord]) -> List[FindingRecord]:
    """Most severe first, then by id."""
    return sorted(findings, key=lambda f: (-f.severity.rank, f.finding_id))


def _print_run(run: AuditRun) -> None:
    m = run.metrics
    print(f"Audit run {run.audit_run_id} ({run.agent_id} / {run.contest_id})")
    print(f"  precision: {_pct(m.precision)}")
    print(f"  recall:    {_pct(m.recall)}")
    print(f"  f1:        {_pct(m.f1)}")
    print(
        f"  exact={m.exact} partial={m.partial} "
        f"false_positives={m.false_positives} false_negatives={m.false_negatives}"
    )

    false_positives = _by_severity(run.false_positives())
    if false_positives:
        print("False positives to review:")
        for f in false_positives:
            print(f"  - {f.finding_id} [{f.category}/{f.severity.value}] {f.title or ''}".rstrip())

    missed = _by_severity(run.false_negatives())
    if missed:
        print("Missed findings to study:")
        for f in missed:
            print(f"  - {f.finding_id} [{f.category}/{f.severity.value}] {f.title or ''}".rstrip())


def _cmd_score(args: argparse.Namespace, config: ScorekeeperConfig) -> int:
    predicted = load_findings(args.predicted)
    actual = load_findings(args.actual)

    coordinator = ScoringCoordinator.from_config(
        config,
        ledger=SqlitePerformanceLedger(config.LEDGER_PATH),
    )
    run = coordinator.score(
        args.contest,
        args.agent,
        predicted,
        actual,
        audit_run_id=args.run_id,
        supersedes=args.supersedes,
    )

    if args.output:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(run.model_dump_json(indent=2), encoding="utf-8")
        logger.info("wrote audit run to %s", args.output)

    _print_run(run)
    return 0


def _cmd_history(args: argparse.Namespace, config: ScorekeeperConfig) -> int:
    ledger = SqlitePerformanceLedger(config.LEDGER_PATH)
    entries = ledger.entries(args.agent) if args.all else effective_history(ledger, args.agent)
    for e in entries:
        note = f" supersedes={e.supersedes}" if e.supersedes else ""
        print(
            f"{e.recorded_at.isoformat()} {e.contest_id} {e.audit_run_id} "
            f"precision={_pct(e.metrics.precision)} recall={_pct(e.metrics.recall)} "
            f"f1={_pct(e.metrics.f1)}{note}"
        )
    return 0


def _cmd_trend(args: argparse.Namespace, config: ScorekeeperConfig) -> int:
    ledger = SqlitePerformanceLedger(config.LEDGER_PATH)
    window = args.window or config.TREND_WINDOW
    if args.category:
        summary = category_trend(ledger, args.agent, args.category, args.metric, window)
    else:
        summary = moving_average(ledger, args.agent, args.metric, window)
    print(
        f"{summary.agent_id} {summary.metric} over last {len(summary.audit_run_ids)} "
        f"run(s): {_pct(summary.moving_average)}"
    )
    return 0


def _cmd_summary(args: argparse.Namespace, config: ScorekeeperConfig) -> int:
    ledger = SqlitePerformanceLedger(config.LEDGER_PATH)
    text = build_performance_summary(
        ledger,
        args.agent,
        datetime.now(timezone.utc),
        window=args.window or config.TREND_WINDOW,
    )
    if args.output:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(text, encoding="utf-8")
        logger.info("wrote performance summary to %s", args.output)
    else:
        sys.stdout.write(text)
    return 0


_COMMANDS = {
    "score": _cmd_score,
    "history": _cmd_history,
    "trend": _cmd_trend,
    "summary": _cmd_summary,
}


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    try:
        config = ScorekeeperConfig.from_env()
        if args.ledger is not None:
            config = config.model_copy(update={"LEDGER_PATH": args.ledger})
    except ValueError as exc:
        print(f"error: invalid configuration: {exc}", file=sys.stderr)
        return 1

    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        return _COMMANDS[args.command](args, config)
    except (LedgerError, ValueError) as exc:
        # DuplicateFindingIdError, FindingsFileError and TaxonomyError are ValueErrors.
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
