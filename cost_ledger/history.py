"""Read-only history queries over the snapshot store, snapped to reporting weeks."""

from __future__ import annotations

import logging
from datetime import date
from typing import Iterable, Optional

from cost_ledger.contracts import build_contract
from cost_ledger.periods import DateLike, to_date, week_end, week_start
from cost_ledger.store import PeriodFinancialSnapshot, SnapshotStore

logger = logging.getLogger(__name__)


def financials_by_date_range(
    store: SnapshotStore,
    project_id: str,
    start: DateLike,
    end: DateLike,
) -> list[PeriodFinancialSnapshot]:
    """Snapshots whose period starts between the Monday of ``start`` and the Sunday of ``end``."""
    lower = week_start(to_date(start))
    upper = week_end(to_date(end))
    snapshots = store.list_snapshots(project_id=project_id, start=lower, end=upper)
    logger.debug("Found %d snapshot(s) for %s between %s and %s", len(snapshots), project_id, lower, upper)
    return snapshots


def financials_for_period(
    store: SnapshotStore,
    project_id: str,
    period: DateLike,
) -> Optional[PeriodFinancialSnapshot]:
    return store.get_snapshot(project_id, week_start(to_date(period)))


def project_history(store: SnapshotStore, project_id: str) -> list[PeriodFinancialSnapshot]:
    return store.list_snapshots(project_id=project_id)


def latest_financials(store: SnapshotStore, project_id: str) -> Optional[PeriodFinancialSnapshot]:
    return store.latest_snapshot(project_id)


def all_projects_by_date_range(
    store: SnapshotStore,
    start: DateLike,
    end: DateLike,
    project_ids: Optional[Iterable[str]] = None,
) -> dict[str, list[PeriodFinancialSnapshot]]:
    """Snapshots in the range grouped by project, each list in period order."""
    snapshots = store.list_snapshots(
        start=week_start(to_date(start)),
        end=week_end(to_date(end)),
        project_ids=list(project_ids) if project_ids is not None else None,
    )
    grouped: dict[str, list[PeriodFinancialSnapshot]] = {}
    for snapshot in snapshots:
        grouped.setdefault(snapshot.project_id, []).append(snapshot)
    return grouped


def history_payload(
    project_id: str,
    snapshots: list[PeriodFinancialSnapshot],
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> dict:
    return {
        "contract": build_contract("cost_ledger.history"),
        "projectId": project_id,
        "start": start.isoformat() if start else None,
        "end": end.isoformat() if end else None,
        "periods": [snapshot.to_dict() for snapshot in snapshots],
    }
