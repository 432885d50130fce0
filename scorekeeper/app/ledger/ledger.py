"""
Performance ledger.

Append-only store of audit-run outcomes per agent. The ledger is the union
of all appended entries and is never rewritten:

- append is atomic and never overwrites an existing audit_run_id
- there is no update or delete operation
- a correction is a new entry that names the run it supersedes

Concurrent appends are serialized by an in-process lock and, for the
SQLite backend, by an immediate write transaction, so entries are never
interleaved or lost.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Protocol, Tuple

from scorekeeper.app.errors import LedgerConflictError, LedgerError
from scorekeeper.app.schemas.ledger import PerformanceLedgerEntry


logger = logging.getLogger(__name__)


class PerformanceLedger(Protocol):
    """
    Interface for the append-only performance ledger.

    Implementations must:
    - reject an audit_run_id that is already recorded (LedgerConflictError)
    - reject supersede references to unknown, foreign or already
      superseded runs (LedgerError)
    - return entries in append order
    """

    def append(self, entry: PerformanceLedgerEntry) -> None:
        ...

    def get(self, audit_run_id: str) -> Optional[PerformanceLedgerEntry]:
        ...

    def entries(self, agent_id: Optional[str] = None) -> Tuple[PerformanceLedgerEntry, ...]:
        ...

    def __len__(self) -> int:
        ...


def _validate_supersedes(
    entry: PerformanceLedgerEntry,
    target: Optional[PerformanceLedgerEntry],
    target_already_superseded: bool,
) -> None:
    if entry.supersedes is None:
        return
    if target is None:
        raise LedgerError(
            f"Audit run '{entry.audit_run_id}' supersedes unknown run "
            f"'{entry.supersedes}'"
        )
    if target.agent_id != entry.agent_id:
        raise LedgerError(
            f"Audit run '{entry.audit_run_id}' of agent '{entry.agent_id}' "
            f"cannot supersede run '{target.audit_run_id}' of agent "
            f"'{target.agent_id}'"
        )
    if target_already_superseded:
        raise LedgerError(
            f"Audit run '{entry.supersedes}' has already been superseded"
        )


# ---------------------------------------------------------------------------
# In-memory ledger
# ---------------------------------------------------------------------------


class InMemoryPerformanceLedger:
    """
    Process-local ledger.

    Used by tests and by callers that only need trend queries over the
    current process lifetime.
    """

    def __init__(self) -> None:
        self._entries: List[PerformanceLedgerEntry] = []
        self._lock = threading.Lock()

    def append(self, entry: PerformanceLedgerEntry) -> None:
        with self._lock:
            if any(e.audit_run_id == entry.audit_run_id for e in self._entries):
                logger.error(
                    "ledger: conflicting append for audit run %s",
                    entry.audit_run_id,
                )
                raise LedgerConflictError(entry.audit_run_id)

            target = next(
                (e for e in self._entries if e.audit_run_id == entry.supersedes),
                None,
            )
            _validate_supersedes(
                entry,
                target,
                any(e.supersedes == entry.supersedes for e in self._entries),
            )
            self._entries.append(entry)

    def get(self, audit_run_id: str) -> Optional[PerformanceLedgerEntry]:
        with self._lock:
            return next(
                (e for e in self._entries if e.audit_run_id == audit_run_id),
                None,
            )

    def entries(self, agent_id: Optional[str] = None) -> Tuple[PerformanceLedgerEntry, ...]:
        with self._lock:
            return tuple(
                e for e in self._entries
                if agent_id is None or e.agent_id == agent_id
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


# ---------------------------------------------------------------------------
# SQLite ledger
# ---------------------------------------------------------------------------


_SCHEMA = """
CREATE TABLE IF NOT EXISTS performance_ledger (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    audit_run_id TEXT NOT NULL UNIQUE,
    agent_id TEXT NOT NULL,
    contest_id TEXT NOT NULL,
    supersedes TEXT,
    recorded_at TEXT NOT NULL,
    entry_json TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS performance_ledger_agent
    ON performance_ledger (agent_id, seq);

CREATE TRIGGER IF NOT EXISTS performance_ledger_no_update
BEFORE UPDATE ON performance_ledger
BEGIN
    SELECT RAISE(ABORT, 'performance ledger is append-only');
END;

CREATE TRIGGER IF NOT EXISTS performance_ledger_no_delete
BEFORE DELETE ON performance_ledger
BEGIN
    SELECT RAISE(ABORT, 'performance ledger is append-only');
END;
"""


class SqlitePerformanceLedger:
    """
    Ledger persisted in a SQLite file.

    Append-only is enforced twice: the class exposes no mutation besides
    append, and triggers abort any UPDATE or DELETE issued against the
    table directly.
    """

    def __init__(self, db_path: Path) -> None:
        db_path = Path(db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path = db_path
        self._lock = threading.Lock()

        with self.connection() as conn:
            conn.execute("PRAGMA journal_mode = WAL")
            conn.executescript(_SCHEMA)

    def _connect(self) -> sqlite3.Connection:
        # Autocommit mode; write transactions are opened explicitly.
        conn = sqlite3.connect(
            self.db_path,
            timeout=30.0,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA busy_timeout = 30000")
        return conn

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Append
    # ------------------------------------------------------------------

    def append(self, entry: PerformanceLedgerEntry) -> None:
        with self._lock, self.connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                existing = conn.execute(
                    "SELECT 1 FROM performance_ledger WHERE audit_run_id = ?",
                    (entry.audit_run_id,),
                ).fetchone()
                if existing is not None:
                    raise LedgerConflictError(entry.audit_run_id)

                if entry.supersedes is not None:
                    target = self._fetch(conn, entry.supersedes)
                    already = conn.execute(
                        "SELECT 1 FROM performance_ledger WHERE supersedes = ?",
                        (entry.supersedes,),
                    ).fetchone()
                    _validate_supersedes(entry, target, already is not None)

                conn.execute(
                    """
                    INSERT INTO performance_ledger
                        (audit_run_id, agent_id, contest_id, supersedes,
                         recorded_at, entry_json)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        entry.audit_run_id,
                        entry.agent_id,
                        entry.contest_id,
                        entry.supersedes,
                        entry.recorded_at.isoformat(),
                        entry.model_dump_json(),
                    ),
                )
            except sqlite3.IntegrityError as exc:
                conn.execute("ROLLBACK")
                logger.error(
                    "ledger: conflicting append for audit run %s",
                    entry.audit_run_id,
                )
                raise LedgerConflictError(entry.audit_run_id) from exc
            except LedgerConflictError:
                conn.execute("ROLLBACK")
                logger.error(
                    "ledger: conflicting append for audit run %s",
                    entry.audit_run_id,
                )
                raise
            except Exception:
                conn.execute("ROLLBACK")
                raise
            else:
                conn.execute("COMMIT")

        logger.info(
            "ledger: appended audit run %s for agent %s",
            entry.audit_run_id,
            entry.agent_id,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    def _fetch(
        conn: sqlite3.Connection, audit_run_id: str
    ) -> Optional[PerformanceLedgerEntry]:
        row = conn.execute(
            "SELECT entry_json FROM performance_ledger WHERE audit_run_id = ?",
            (audit_run_id,),
        ).fetchone()
        if row is None:
            return None
        return PerformanceLedgerEntry.model_validate_json(row["entry_json"])

    def get(self, audit_run_id: str) -> Optional[PerformanceLedgerEntry]:
        with self.connection() as conn:
            return self._fetch(conn, audit_run_id)

    def entries(self, agent_id: Optional[str] = None) -> Tuple[PerformanceLedgerEntry, ...]:
        with self.connection() as conn:
            if agent_id is None:
                rows = conn.execute(
                    "SELECT entry_json FROM performance_ledger ORDER BY seq"
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT entry_json FROM performance_ledger "
                    "WHERE agent_id = ? ORDER BY seq",
                    (agent_id,),
                ).fetchall()
        return tuple(
            PerformanceLedgerEntry.model_validate_json(row["entry_json"])
            for row in rows
        )

    def __len__(self) -> int:
        with self.connection() as conn:
            row = conn.execute("SELECT COUNT(*) FROM performance_ledger").fetchone()
        return int(row[0])
