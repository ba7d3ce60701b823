"""
Header-row location and heuristic column detection.

The cost-report summary has a few banner rows (company, title, report date)
above the real header, so the header is the first row near the top that has
enough populated cells. Columns are then assigned by substring hints.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

from cost_ledger.cells import Cell, cell_text, non_empty_count
from cost_ledger.config import (
    DEFAULT_FINANCIAL_HINTS,
    DEFAULT_JOB_HINTS,
    DEFAULT_NAME_HINTS,
    HEADER_MIN_CELLS,
    HEADER_SCAN_ROWS,
)
from cost_ledger.errors import ColumnDetectionError, HeaderNotFoundError

logger = logging.getLogger(__name__)

IDENTIFIER_HEADER_HINTS = ("project number", "project #", "proj number")
CONVENTIONAL_IDENTIFIER_COL = 1


@dataclass
class ColumnMapping:
    job_col: Optional[int] = None
    name_col: Optional[int] = None
    identifier_col: Optional[int] = None
    financial_cols: dict[int, str] = field(default_factory=dict)

    @property
    def claimed(self) -> set[int]:
        return {col for col in (self.job_col, self.name_col, self.identifier_col) if col is not None}

    @property
    def financial_labels(self) -> list[str]:
        return list(self.financial_cols.values())

    def require_identifying_column(self) -> None:
        if self.job_col is None and self.name_col is None:
            raise ColumnDetectionError(
                "Could not detect job number or project name column in spreadsheet"
            )

    def to_dict(self) -> dict:
        return {
            "job_col": self.job_col,
            "name_col": self.name_col,
            "identifier_col": self.identifier_col,
            "financial_cols": {str(index): label for index, label in self.financial_cols.items()},
        }


@dataclass(frozen=True)
class _Header:
    index: int
    value: str
    original: str


def find_header_row(
    rows: Sequence[Sequence[Cell]],
    scan_limit: int = HEADER_SCAN_ROWS,
    min_cells: int = HEADER_MIN_CELLS,
) -> int:
    for index, row in enumerate(rows[:scan_limit]):
        if non_empty_count(list(row)) >= min_cells:
            return index
    raise HeaderNotFoundError(
        f"No header row found in the first {scan_limit} rows "
        f"(need at least {min_cells} populated cells)"
    )


def _normalise_headers(header_cells: Sequence[Cell]) -> list[_Header]:
    headers = []
    for index, cell in enumerate(header_cells):
        original = cell_text(cell) or ""
        headers.append(_Header(index=index, value=original.lower(), original=original))
    return headers


def _lowered(hints: Iterable[str]) -> list[str]:
    return [hint.strip().lower() for hint in hints if hint and hint.strip()]


def _first_match(headers: list[_Header], hints: list[str], exclude: set[int]) -> Optional[_Header]:
    for header in headers:
        if not header.value or header.index in exclude:
            continue
        if any(hint in header.value for hint in hints):
            return header
    return None


def _first_identifier_header(headers: list[_Header], exclude: set[int]) -> Optional[_Header]:
    for header in headers:
        if not header.value or header.index in exclude:
            continue
        squashed = header.value.replace(" ", "").replace("_", "")
        for hint in IDENTIFIER_HEADER_HINTS:
            if hint in header.value or hint.replace(" ", "") in squashed:
                return header
    return None


def detect_columns(
    header_cells: Sequence[Cell],
    job_hints: Optional[Iterable[str]] = None,
    name_hints: Optional[Iterable[str]] = None,
    financial_hints: Optional[Iterable[str]] = None,
) -> ColumnMapping:
    """
    Assign job, name, identifier and financial columns from one header row.

    Financial columns keep their original header text; that label is the
    aggregation and storage key downstream.
    """
    headers = _normalise_headers(header_cells)
    mapping = ColumnMapping()

    job = _first_match(headers, _lowered(job_hints or DEFAULT_JOB_HINTS), set())
    if job is not None:
        mapping.job_col = job.index
        logger.debug("Found job number column at index %d: %r", job.index, job.original)

    # "Project Number" contains the name hint "project"; keep it for the identifier.
    identifier = _first_identifier_header(headers, mapping.claimed)
    reserved = mapping.claimed | ({identifier.index} if identifier is not None else set())

    name = _first_match(headers, _lowered(name_hints or DEFAULT_NAME_HINTS), reserved)
    if name is not None:
        mapping.name_col = name.index
        logger.debug("Found project name column at index %d: %r", name.index, name.original)

    if identifier is not None:
        mapping.identifier_col = identifier.index
        logger.debug("Found project number column at index %d: %r", identifier.index, identifier.original)
    elif (
        mapping.job_col == 0
        and len(headers) > CONVENTIONAL_IDENTIFIER_COL
        and mapping.name_col != CONVENTIONAL_IDENTIFIER_COL
    ):
        mapping.identifier_col = CONVENTIONAL_IDENTIFIER_COL
        logger.debug("Assuming project number column at index 1 (column B)")

    financial_hints_lowered = _lowered(financial_hints or DEFAULT_FINANCIAL_HINTS)
    for header in headers:
        if not header.value or header.index in mapping.claimed:
            continue
        if any(hint in header.value for hint in financial_hints_lowered):
            mapping.financial_cols[header.index] = header.original
            logger.debug("Found financial column at index %d: %r", header.index, header.original)

    return mapping
