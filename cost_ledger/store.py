"""
Period snapshot store.

One row per (project_id, period_start). The uniqueness constraint lives in
the table definition, so a second writer for the same key either waits on
the SQLite lock or fails; it can never add a duplicate.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Protocol, Sequence

from cost_ledger.config import SNAPSHOT_FIELD_LABELS
from cost_ledger.errors import SnapshotWriteError

logger = logging.getLogger(__name__)

SNAPSHOT_FIELDS = ("budget", "forecast", "actual", "committed", "spent", "variance")
DEFAULT_BUSY_TIMEOUT = 30.0

SCHEMA = """
CREATE TABLE IF NOT EXISTS project_financials (
    id                 INTEGER PRIMARY KEY AUTOINCREMENT,
    project_id         TEXT NOT NULL,
    period_start       TEXT NOT NULL,
    period_end         TEXT NOT NULL,
    budget             REAL,
    forecast           REAL,
    actual             REAL,
    committed          REAL,
    spent              REAL,
    variance           REAL,
    raw_values         TEXT NOT NULL,
    source_file        TEXT,
    source_date        TEXT,
    job_number         TEXT,
    project_identifier TEXT,
    match_type         TEXT,
    created_at         TEXT NOT NULL,
    updated_at         TEXT NOT NULL,
    UNIQUE (project_id, period_start)
);
CREATE INDEX IF NOT EXISTS idx_project_financials_period
    ON project_financials (period_start);
"""

UPSERT_SQL = """
INSERT INTO project_financials (
    project_id, period_start, period_end,
    budget, forecast, actual, committed, spent, variance,
    raw_values, source_file, source_date, job_number, project_identifier,
    match_type, created_at, updated_at
) VALUES (
    :project_id, :period_start, :period_end,
    :budget, :forecast, :actual, :committed, :spent, :variance,
    :raw_values, :source_file, :source_date, :job_number, :project_identifier,
    :match_type, :created_at, :updated_at
)
ON CONFLICT (project_id, period_start) DO UPDATE SET
    period_end         = excluded.period_end,
    budget             = excluded.budget,
    forecast           = excluded.forecast,
    actual             = excluded.actual,
    committed          = excluded.committed,
    spent              = excluded.spent,
    variance           = excluded.variance,
    raw_values         = excluded.raw_values,
    source_file        = excluded.source_file,
    source_date        = excluded.source_date,
    job_number         = excluded.job_number,
    project_identifier = excluded.project_identifier,
    match_type         = excluded.match_type,
    updated_at         = excluded.updated_at
"""


@dataclass
class PeriodFinancialSnapshot:
    project_id: str
    period_start: date
    period_end: date
    budget: Optional[float] = None
    forecast: Optional[float] = None
    actual: Optional[float] = None
    committed: Optional[float] = None
    spent: Optional[float] = None
    variance: Optional[float] = None
    raw_values: dict[str, Any] = field(default_factory=dict)
    source_file: Optional[str] = None
    source_date: Optional[date] = None
    job_number: Optional[str] = None
    project_identifier: Optional[str] = None
    match_type: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "projectId": self.project_id,
            "periodStart": self.period_start.isoformat(),
            "periodEnd": self.period_end.isoformat(),
            "budget": self.budget,
            "forecast": self.forecast,
            "actual": self.actual,
            "committed": self.committed,
            "spent": self.spent,
            "variance": self.variance,
            "rawValues": self.raw_values,
            "sourceFile": self.source_file,
            "sourceDate": self.source_date.isoformat() if self.source_date else None,
            "jobNumber": self.job_number,
            "projectNumber": self.project_identifier,
            "matchType": self.match_type,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


def snapshot_fields_from_financials(financials: Mapping[str, Optional[float]]) -> dict[str, Optional[float]]:
    """
    Pick the six typed snapshot fields out of verbatim column labels.

    Each field walks its label list in order (case-insensitively) and takes
    the first label holding a value; labels that are present but null are
    passed over.
    """
    lowered: dict[str, Optional[float]] = {}
    for label, value in financials.items():
        key = label.strip().lower()
        if key not in lowered or lowered[key] is None:
            lowered[key] = value

    fields_out: dict[str, Optional[float]] = {}
    for name in SNAPSHOT_FIELDS:
        fields_out[name] = None
        for label in SNAPSHOT_FIELD_LABELS[name]:
            value = lowered.get(label.lower())
            if value is not None:
                fields_out[name] = value
                break
    return fields_out


class SnapshotStore(Protocol):
    def upsert_snapshots(self, snapshots: Sequence[PeriodFinancialSnapshot]) -> int:
        ...

    def get_snapshot(self, project_id: str, period_start: date) -> Optional[PeriodFinancialSnapshot]:
        ...

    def list_snapshots(
        self,
        project_id: Optional[str] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
        project_ids: Optional[Iterable[str]] = None,
    ) -> list[PeriodFinancialSnapshot]:
        ...

    def latest_snapshot(self, project_id: str) -> Optional[PeriodFinancialSnapshot]:
        ...


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def _to_params(snapshot: PeriodFinancialSnapshot) -> dict:
    return {
        "project_id": snapshot.project_id,
        "period_start": snapshot.period_start.isoformat(),
        "period_end": snapshot.period_end.isoformat(),
        "budget": snapshot.budget,
        "forecast": snapshot.forecast,
        "actual": snapshot.actual,
        "committed": snapshot.committed,
        "spent": snapshot.spent,
        "variance": snapshot.variance,
        "raw_values": json.dumps(snapshot.raw_values, ensure_ascii=False, sort_keys=True),
        "source_file": snapshot.source_file,
        "source_date": _iso(snapshot.source_date),
        "job_number": snapshot.job_number,
        "project_identifier": snapshot.project_identifier,
        "match_type": snapshot.match_type,
        "created_at": snapshot.created_at,
        "updated_at": snapshot.updated_at,
    }


def _from_row(row: sqlite3.Row) -> PeriodFinancialSnapshot:
    return PeriodFinancialSnapshot(
        project_id=row["project_id"],
        period_start=date.fromisoformat(row["period_start"]),
        period_end=date.fromisoformat(row["period_end"]),
        budget=row["budget"],
        forecast=row["forecast"],
        actual=row["actual"],
        committed=row["committed"],
        spent=row["spent"],
        variance=row["variance"],
        raw_values=json.loads(row["raw_values"] or "{}"),
        source_file=row["source_file"],
        source_date=date.fromisoformat(row["source_date"]) if row["source_date"] else None,
        job_number=row["job_number"],
        project_identifier=row["project_identifier"],
        match_type=row["match_type"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class SqliteSnapshotStore:
    """
    SQLite-backed snapshot store.

    ``path`` may be ":memory:" for throwaway runs. The connection is opened
    in autocommit mode and every batch write runs inside an explicit
    ``BEGIN IMMEDIATE`` so the write lock is taken before the first row.
    """

    def __init__(self, path: "str | Path", busy_timeout: float = DEFAULT_BUSY_TIMEOUT):
        self.path = str(path)
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self.path, timeout=busy_timeout, isolation_level=None)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(SCHEMA)

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "SqliteSnapshotStore":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def upsert_snapshots(self, snapshots: Sequence[PeriodFinancialSnapshot]) -> int:
        """Write every snapshot or none of them; returns the number written."""
        if not snapshots:
            return 0
        cursor = self._conn.cursor()
        try:
            cursor.execute("BEGIN IMMEDIATE")
            for snapshot in snapshots:
                cursor.execute(UPSERT_SQL, _to_params(snapshot))
            cursor.execute("COMMIT")
        except sqlite3.Error as exc:
            if self._conn.in_transaction:
                self._conn.rollback()
            logger.error("Snapshot upsert rolled back after error: %s", exc)
            raise SnapshotWriteError(
                f"Could not write {len(snapshots)} snapshot(s): {exc}",
                attempted=len(snapshots),
            ) from exc
        except Exception:
            if self._conn.in_transaction:
                self._conn.rollback()
            logger.error("Snapshot upsert rolled back after an unexpected error")
            raise
        finally:
            cursor.close()
        logger.info("Upserted %d snapshot(s) into %s", len(snapshots), self.path)
        return len(snapshots)

    def get_snapshot(self, project_id: str, period_start: date) -> Optional[PeriodFinancialSnapshot]:
        row = self._conn.execute(
            "SELECT * FROM project_financials WHERE project_id = ? AND period_start = ?",
            (project_id, period_start.isoformat()),
        ).fetchone()
        return _from_row(row) if row else None

    def list_snapshots(
        self,
        project_id: Optional[str] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
        project_ids: Optional[Iterable[str]] = None,
    ) -> list[PeriodFinancialSnapshot]:
        clauses: list[str] = []
        params: list[Any] = []
        if project_id is not None:
            clauses.append("project_id = ?")
            params.append(project_id)
        if project_ids is not None:
            ids = list(project_ids)
            if not ids:
                return []
            clauses.append(f"project_id IN ({', '.join('?' for _ in ids)})")
            params.extend(ids)
        if start is not None:
            clauses.append("period_start >= ?")
            params.append(start.isoformat())
        if end is not None:
            clauses.append("period_start <= ?")
            params.append(end.isoformat())

        sql = "SELECT * FROM project_financials"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY period_start ASC, project_id ASC"
        return [_from_row(row) for row in self._conn.execute(sql, params).fetchall()]

    def latest_snapshot(self, project_id: str) -> Optional[PeriodFinancialSnapshot]:
        row = self._conn.execute(
            "SELECT * FROM project_financials WHERE project_id = ? "
            "ORDER BY period_start DESC LIMIT 1",
            (project_id,),
        ).fetchone()
        return _from_row(row) if row else None

    def count(self) -> int:
        return self._conn.execute("SELECT COUNT(*) FROM project_financials").fetchone()[0]
