"""
ingest.py — cost-report ingestion entry point

Pipeline:
    buffer -> loader -> header row -> column mapping -> registry (read once)
           -> per row: parse -> match -> aggregate -> snapshot upsert

Usage:
    result = ingest_cost_report(buffer, registry, store, IngestOptions(period_start="2025-10-13"))
    result.summary.matched_projects
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Optional, Sequence

from cost_ledger.aggregator import Aggregator, ProjectAggregate, UnmatchedRowRecord
from cost_ledger.columns import ColumnMapping, detect_columns, find_header_row
from cost_ledger.config import DEFAULT_SECTION_HEADER_PATTERNS
from cost_ledger.contracts import build_contract, utc_now_iso
from cost_ledger.errors import IngestOptionsError
from cost_ledger.loader import load_workbook_rows
from cost_ledger.matcher import match_row
from cost_ledger.periods import extract_date_from_filename, parse_period_start, period_end, to_date
from cost_ledger.registry import ProjectRegistry, VariantIndex
from cost_ledger.rows import compile_section_patterns, parse_row
from cost_ledger.store import PeriodFinancialSnapshot, SnapshotStore, snapshot_fields_from_financials

logger = logging.getLogger(__name__)


@dataclass
class IngestOptions:
    period_start: Optional[Any] = None
    dry_run: bool = False
    source_file_name: Optional[str] = None
    source_date: Optional[Any] = None
    job_hints: Optional[Sequence[str]] = None
    name_hints: Optional[Sequence[str]] = None
    financial_hints: Optional[Sequence[str]] = None
    section_header_patterns: Sequence[str] = DEFAULT_SECTION_HEADER_PATTERNS


@dataclass
class IngestSummary:
    matched_projects: int = 0
    matched_by_identifier: int = 0
    unmatched: int = 0
    ambiguous_rows: int = 0
    financial_columns: list[str] = field(default_factory=list)
    total_rows: int = 0
    projects_updated: int = 0
    total_excel_rows: int = 0
    skipped_rows: int = 0
    total_projects_in_registry: int = 0

    def to_dict(self) -> dict:
        return {
            "matchedProjects": self.matched_projects,
            "matchedByIdentifier": self.matched_by_identifier,
            "unmatched": self.unmatched,
            "ambiguousRows": self.ambiguous_rows,
            "financialColumns": list(self.financial_columns),
            "totalRows": self.total_rows,
            "projectsUpdated": self.projects_updated,
            "totalExcelRows": self.total_excel_rows,
            "skippedRows": self.skipped_rows,
            "totalProjectsInRegistry": self.total_projects_in_registry,
        }


@dataclass
class IngestResult:
    summary: IngestSummary
    rows: list[ProjectAggregate]
    unmatched_rows: list[UnmatchedRowRecord]
    snapshots: list[PeriodFinancialSnapshot]
    mapping: ColumnMapping
    period_start: Optional[date]
    dry_run: bool
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "contract": build_contract("cost_ledger.ingest"),
            "period_start": self.period_start.isoformat() if self.period_start else None,
            "period_end": period_end(self.period_start).isoformat() if self.period_start else None,
            "dry_run": self.dry_run,
            "columns": self.mapping.to_dict(),
            "summary": self.summary.to_dict(),
            "rows": [aggregate.to_record() for aggregate in self.rows],
            "unmatchedRows": [record.to_record() for record in self.unmatched_rows],
            "snapshots": [snapshot.to_dict() for snapshot in self.snapshots],
            "warnings": list(self.warnings),
        }


def _resolve_source_date(options: IngestOptions) -> Optional[date]:
    if options.source_date not in (None, ""):
        return to_date(options.source_date)
    return extract_date_from_filename(options.source_file_name)


def build_snapshot(
    aggregate: ProjectAggregate,
    period_start: date,
    source_file: Optional[str],
    source_date: Optional[date],
    timestamp: str,
) -> PeriodFinancialSnapshot:
    record = aggregate.to_record()
    raw_values: dict[str, Any] = dict(aggregate.financials)
    raw_values["_sourceMeta"] = record["sourceMeta"]
    raw_values["_aggregated"] = True
    raw_values["_projectNumbers"] = list(aggregate.project_identifiers)
    if aggregate.ambiguous:
        raw_values["_ambiguous"] = True

    return PeriodFinancialSnapshot(
        project_id=aggregate.project_id,
        period_start=period_start,
        period_end=period_end(period_start),
        raw_values=raw_values,
        source_file=source_file,
        source_date=source_date,
        job_number=record["jobNumber"],
        project_identifier=record["projectNumber"],
        match_type=aggregate.match_type,
        created_at=timestamp,
        updated_at=timestamp,
        **snapshot_fields_from_financials(aggregate.financials),
    )


def ingest_cost_report(
    buffer: bytes,
    registry: ProjectRegistry,
    store: Optional[SnapshotStore] = None,
    options: Optional[IngestOptions] = None,
) -> IngestResult:
    """
    Ingest one cost-report buffer.

    Raises (nothing is written in any of these cases):
        IngestOptionsError     period_start missing or invalid on a real run
        SpreadsheetParseError  unreadable buffer
        HeaderNotFoundError    no header row in the first 10 rows
        ColumnDetectionError   no job and no name column
        SnapshotWriteError     the upsert transaction failed and rolled back
    """
    options = options or IngestOptions()
    period_start = parse_period_start(options.period_start)
    if not options.dry_run:
        if period_start is None:
            raise IngestOptionsError("period_start is required when dry_run is false")
        if store is None:
            raise IngestOptionsError("A snapshot store is required when dry_run is false")
    source_date = _resolve_source_date(options)

    logger.info(
        "Starting cost report ingestion (dry_run=%s, period_start=%s, source=%s, %d bytes)",
        options.dry_run,
        period_start,
        options.source_file_name,
        len(buffer),
    )

    sheet = load_workbook_rows(buffer, options.source_file_name)
    warnings = list(sheet.warnings)

    header_index = find_header_row(sheet.rows)
    mapping = detect_columns(
        sheet.rows[header_index],
        job_hints=options.job_hints,
        name_hints=options.name_hints,
        financial_hints=options.financial_hints,
    )
    mapping.require_identifying_column()
    logger.info(
        "Header at row %d; job col %s, name col %s, project number col %s, %d financial col(s)",
        header_index + 1,
        mapping.job_col,
        mapping.name_col,
        mapping.identifier_col,
        len(mapping.financial_cols),
    )
    if not mapping.financial_cols:
        message = "No financial columns detected; aggregates will have no values"
        logger.warning(message)
        warnings.append(message)

    projects = registry.list_projects()
    index = VariantIndex.build(projects)
    if not projects:
        message = "Project registry is empty; every row will be unmatched"
        logger.warning(message)
        warnings.append(message)

    patterns = compile_section_patterns(options.section_header_patterns)
    aggregator = Aggregator()
    total_excel_rows = 0
    skipped_rows = 0

    for offset, cells in enumerate(sheet.rows[header_index + 1:]):
        row_number = header_index + offset + 2
        outcome = parse_row(cells, mapping, row_number, patterns)
        if outcome.counts_as_data:
            total_excel_rows += 1
        if outcome.row is None:
            skipped_rows += 1
            continue
        aggregator.add(match_row(outcome.row, index))

    aggregates = aggregator.projects()
    if aggregator.ambiguous_rows:
        warnings.append(
            f"{aggregator.ambiguous_rows} row(s) matched more than one project; "
            "their values were added to every matched project"
        )

    snapshots: list[PeriodFinancialSnapshot] = []
    if period_start is not None:
        timestamp = utc_now_iso()
        snapshots = [
            build_snapshot(aggregate, period_start, options.source_file_name, source_date, timestamp)
            for aggregate in aggregates
        ]

    projects_updated = 0
    if not options.dry_run and snapshots:
        logger.info("Upserting %d snapshot(s) for period %s", len(snapshots), period_start)
        projects_updated = store.upsert_snapshots(snapshots)

    summary = IngestSummary(
        matched_projects=len(aggregates),
        matched_by_identifier=aggregator.matched_rows,
        unmatched=len(aggregator.unmatched),
        ambiguous_rows=aggregator.ambiguous_rows,
        financial_columns=mapping.financial_labels,
        total_rows=len(aggregates),
        projects_updated=projects_updated,
        total_excel_rows=total_excel_rows,
        skipped_rows=skipped_rows,
        total_projects_in_registry=len(projects),
    )
    logger.info(
        "Ingestion summary: %d project(s) matched from %d row(s), %d unmatched, %d skipped, %d updated",
        summary.matched_projects,
        summary.total_excel_rows,
        summary.unmatched,
        summary.skipped_rows,
        summary.projects_updated,
    )

    return IngestResult(
        summary=summary,
        rows=aggregates,
        unmatched_rows=list(aggregator.unmatched),
        snapshots=snapshots,
        mapping=mapping,
        period_start=period_start,
        dry_run=options.dry_run,
        warnings=warnings,
    )
