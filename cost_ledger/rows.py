"""Turn raw data rows into typed SpreadsheetRow records, or a skip reason."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

from cost_ledger.cells import Cell, cell_at, cell_text, non_empty_count, parse_numeric
from cost_ledger.columns import ColumnMapping
from cost_ledger.config import DEFAULT_SECTION_HEADER_PATTERNS

SKIP_EMPTY = "empty"
SKIP_SECTION_HEADER = "section_header"
SKIP_NO_IDENTITY = "no_identity"

JOB_PLACEHOLDERS = {"n/a", ""}
IDENTIFIER_PLACEHOLDERS = {"n/a", "na", "-", "--", "tbd", "none"}


@dataclass
class SpreadsheetRow:
    row_number: int
    job_number: Optional[str]
    project_identifier: Optional[str]
    project_name: Optional[str]
    financial_values: dict[str, Optional[float]] = field(default_factory=dict)

    @property
    def match_identifier(self) -> Optional[str]:
        """The string used for registry matching: project number, else job number."""
        return self.project_identifier or self.job_number

    def to_dict(self) -> dict:
        return {
            "row_number": self.row_number,
            "job_number": self.job_number,
            "project_identifier": self.project_identifier,
            "project_name": self.project_name,
            "financials": dict(self.financial_values),
        }


@dataclass
class RowOutcome:
    row: Optional[SpreadsheetRow] = None
    skip_reason: Optional[str] = None

    @property
    def skipped(self) -> bool:
        return self.row is None

    @property
    def counts_as_data(self) -> bool:
        """Empty rows and section banners are not report rows; everything else is."""
        return self.skip_reason not in (SKIP_EMPTY, SKIP_SECTION_HEADER)


def compile_section_patterns(patterns: Optional[Iterable[str]] = None) -> list[re.Pattern]:
    return [re.compile(pattern, re.IGNORECASE) for pattern in (patterns or DEFAULT_SECTION_HEADER_PATTERNS)]


def is_section_header(cells: Sequence[Cell], patterns: Sequence[re.Pattern]) -> bool:
    first = cell_text(cell_at(list(cells), 0))
    if not first:
        return False
    return any(pattern.search(first) for pattern in patterns)


def extract_financials(cells: Sequence[Cell], mapping: ColumnMapping) -> dict[str, Optional[float]]:
    values: dict[str, Optional[float]] = {}
    for index, label in mapping.financial_cols.items():
        values[label] = parse_numeric(cell_at(list(cells), index))
    return values


def parse_row(
    cells: Sequence[Cell],
    mapping: ColumnMapping,
    row_number: int,
    section_patterns: Optional[Sequence[re.Pattern]] = None,
) -> RowOutcome:
    """
    Parse one data row against a column mapping.

    Skip order: blank row, section banner in the first cell, then rows with
    no job and no name. A job cell of "n/a" only keeps the row alive when a
    project number is present; the job is then treated as absent.
    """
    cells = list(cells)
    if non_empty_count(cells) == 0:
        return RowOutcome(skip_reason=SKIP_EMPTY)

    patterns = section_patterns if section_patterns is not None else compile_section_patterns()
    if is_section_header(cells, patterns):
        return RowOutcome(skip_reason=SKIP_SECTION_HEADER)

    job_number = cell_text(cell_at(cells, mapping.job_col))
    project_identifier = cell_text(cell_at(cells, mapping.identifier_col))
    project_name = cell_text(cell_at(cells, mapping.name_col))

    if project_identifier is not None and project_identifier.lower() in IDENTIFIER_PLACEHOLDERS:
        project_identifier = None

    if not job_number and not project_name:
        return RowOutcome(skip_reason=SKIP_NO_IDENTITY)

    if job_number is not None and job_number.lower() in JOB_PLACEHOLDERS:
        if not project_identifier:
            return RowOutcome(skip_reason=SKIP_NO_IDENTITY)
        job_number = None

    return RowOutcome(
        row=SpreadsheetRow(
            row_number=row_number,
            job_number=job_number,
            project_identifier=project_identifier,
            project_name=project_name,
            financial_values=extract_financials(cells, mapping),
        )
    )
