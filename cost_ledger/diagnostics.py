"""
diagnostics.py — match-confidence review for cost-report rows

Read-only: loads the registry, walks every data row and records which
heuristic links it to which project. Nothing is written to the snapshot
store. Use this to see why a row did or did not match before re-running
an ingestion.

Heuristics, per project, first hit wins:
    high    job number equal; extracted job number equal;
            project number contains the project code (or the reverse)
    medium  project code inside the job number; two or more shared name tokens
    low     one shared name token; one name contains the other
"""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

from cost_ledger.columns import ColumnMapping, detect_columns, find_header_row
from cost_ledger.contracts import build_contract
from cost_ledger.errors import ColumnDetectionError
from cost_ledger.loader import load_workbook_rows
from cost_ledger.registry import CanonicalProject, ProjectRegistry
from cost_ledger.rows import SpreadsheetRow, compile_section_patterns, parse_row

logger = logging.getLogger(__name__)

REPORT_SAMPLE_SIZE = 10

JOB_NUMBER_PATTERNS = (
    re.compile(r"\d{1,2}-\d{1,2}-\d{2,4}(?:-\w+)?"),
    re.compile(r"\d{3,8}"),
)
PUNCTUATION_RE = re.compile(r"[^\w\s]")
NAME_SPLIT_RE = re.compile(r"[\s\-]+")
SDC_PREFIX_RE = re.compile(r"sdc-", re.IGNORECASE)


class Confidence(str, enum.Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    NONE = "none"

    @property
    def rank(self) -> int:
        return {"high": 3, "medium": 2, "low": 1, "none": 0}[self.value]


@dataclass(frozen=True)
class Hit:
    reason: str
    confidence: Confidence


@dataclass
class PotentialMatch:
    project: CanonicalProject
    reason: str
    confidence: Confidence

    def to_dict(self) -> dict:
        return {
            "projectId": self.project.id,
            "projectCode": self.project.code,
            "projectName": self.project.display_name,
            "jobNumber": self.project.job_number,
            "matchReason": self.reason,
            "confidence": self.confidence.value,
        }


@dataclass
class DiagnosticMatch:
    excel_row: SpreadsheetRow
    potential_matches: list[PotentialMatch] = field(default_factory=list)

    @property
    def best_match(self) -> Optional[PotentialMatch]:
        best: Optional[PotentialMatch] = None
        for candidate in self.potential_matches:
            if best is None or candidate.confidence.rank > best.confidence.rank:
                best = candidate
        return best

    @property
    def confidence(self) -> Confidence:
        best = self.best_match
        return best.confidence if best else Confidence.NONE

    def to_dict(self) -> dict:
        best = self.best_match
        return {
            "excelRow": {
                "rowNumber": self.excel_row.row_number,
                "jobNumber": self.excel_row.job_number,
                "projectNumber": self.excel_row.project_identifier,
                "projectName": self.excel_row.project_name,
            },
            "potentialMatches": [match.to_dict() for match in self.potential_matches],
            "bestMatch": best.to_dict() if best else None,
        }


@dataclass
class DiagnosticsResult:
    total_excel_rows: int
    total_registry_projects: int
    diagnostics: list[DiagnosticMatch]
    mapping: ColumnMapping
    warnings: list[str] = field(default_factory=list)

    def rows_at(self, confidence: Confidence) -> list[DiagnosticMatch]:
        return [item for item in self.diagnostics if item.confidence == confidence]

    @property
    def summary(self) -> dict[str, int]:
        return {
            "highConfidenceMatches": len(self.rows_at(Confidence.HIGH)),
            "mediumConfidenceMatches": len(self.rows_at(Confidence.MEDIUM)),
            "lowConfidenceMatches": len(self.rows_at(Confidence.LOW)),
            "noMatches": len(self.rows_at(Confidence.NONE)),
        }

    @property
    def needs_review(self) -> bool:
        summary = self.summary
        return bool(summary["lowConfidenceMatches"] or summary["noMatches"])

    def to_dict(self) -> dict:
        return {
            "contract": build_contract("cost_ledger.diagnostics"),
            "totalExcelRows": self.total_excel_rows,
            "totalRegistryProjects": self.total_registry_projects,
            "columns": self.mapping.to_dict(),
            "summary": self.summary,
            "diagnostics": [item.to_dict() for item in self.diagnostics],
            "warnings": list(self.warnings),
        }


# ══════════════════════════════════════════════════════════════════════════════
# TEXT HELPERS
# ══════════════════════════════════════════════════════════════════════════════

def normalize_text(value: Optional[str]) -> str:
    """Lowercase, drop punctuation, collapse whitespace."""
    if not value:
        return ""
    return " ".join(PUNCTUATION_RE.sub("", value.lower()).split())


def extract_job_number(text: Optional[str]) -> Optional[str]:
    """
    First job-number-looking group in free text.

    "25-8-131-quie6 Ashburn" -> "25-8-131-quie6"; "Job 4471 (2024)" -> "4471".
    A bare four-digit year between 2010 and 2030 is not a job number.
    """
    if not text:
        return None
    value = str(text).strip()
    if not value:
        return None
    for pattern in JOB_NUMBER_PATTERNS:
        for match in pattern.finditer(value):
            number = match.group(0)
            if len(number) == 4 and number.isdigit() and 2010 <= int(number) <= 2030:
                continue
            return number
    return None


def name_tokens(value: Optional[str]) -> list[str]:
    if not value:
        return []
    stripped = SDC_PREFIX_RE.sub("", value.lower())
    tokens = []
    for part in NAME_SPLIT_RE.split(stripped):
        token = PUNCTUATION_RE.sub("", part)
        if len(token) > 1 and token not in tokens:
            tokens.append(token)
    return tokens


def _shared_tokens(row: SpreadsheetRow, project: CanonicalProject) -> list[str]:
    project_tokens = set(name_tokens(project.display_name))
    return [token for token in name_tokens(row.project_name) if token in project_tokens]


# ══════════════════════════════════════════════════════════════════════════════
# HEURISTICS
# ══════════════════════════════════════════════════════════════════════════════

Heuristic = Callable[[SpreadsheetRow, CanonicalProject], Optional[Hit]]


def job_exact(row: SpreadsheetRow, project: CanonicalProject) -> Optional[Hit]:
    row_job = normalize_text(row.job_number)
    if row_job and row_job == normalize_text(project.job_number):
        return Hit(f'Job number exact match: "{row.job_number}" === "{project.job_number}"', Confidence.HIGH)
    return None


def job_extracted(row: SpreadsheetRow, project: CanonicalProject) -> Optional[Hit]:
    row_job = extract_job_number(row.job_number)
    project_job = extract_job_number(project.job_number)
    if row_job and project_job and normalize_text(row_job) == normalize_text(project_job):
        return Hit(f'Job number extracted match: "{row_job}" === "{project_job}"', Confidence.HIGH)
    return None


def code_in_identifier(row: SpreadsheetRow, project: CanonicalProject) -> Optional[Hit]:
    identifier = normalize_text(row.project_identifier)
    code = normalize_text(project.code)
    if identifier and code and (code in identifier or identifier in code):
        return Hit(
            f'Project code match: "{row.project_identifier}" contains "{project.code}" or vice versa',
            Confidence.HIGH,
        )
    return None


def code_in_job(row: SpreadsheetRow, project: CanonicalProject) -> Optional[Hit]:
    job = normalize_text(row.job_number)
    code = normalize_text(project.code)
    if job and code and code in job:
        return Hit(f'Project code in job number: "{row.job_number}" contains "{project.code}"', Confidence.MEDIUM)
    return None


def name_tokens_shared(row: SpreadsheetRow, project: CanonicalProject) -> Optional[Hit]:
    common = _shared_tokens(row, project)
    if not common:
        return None
    confidence = Confidence.MEDIUM if len(common) >= 2 else Confidence.LOW
    return Hit(f'Name parts match: "{", ".join(common)}" in both names', confidence)


def name_substring(row: SpreadsheetRow, project: CanonicalProject) -> Optional[Hit]:
    row_name = normalize_text(row.project_name)
    project_name = normalize_text(project.display_name)
    if row_name and project_name and (row_name in project_name or project_name in row_name):
        return Hit(f'Name substring match: "{row.project_name}" and "{project.display_name}"', Confidence.LOW)
    return None


DEFAULT_HEURISTICS: tuple[Heuristic, ...] = (
    job_exact,
    job_extracted,
    code_in_identifier,
    code_in_job,
    name_tokens_shared,
    name_substring,
)


def classify_row(
    row: SpreadsheetRow,
    projects: Sequence[CanonicalProject],
    heuristics: Sequence[Heuristic] = DEFAULT_HEURISTICS,
) -> DiagnosticMatch:
    diagnostic = DiagnosticMatch(excel_row=row)
    for project in projects:
        for heuristic in heuristics:
            hit = heuristic(row, project)
            if hit is not None:
                diagnostic.potential_matches.append(
                    PotentialMatch(project=project, reason=hit.reason, confidence=hit.confidence)
                )
                break
    return diagnostic


# ══════════════════════════════════════════════════════════════════════════════
# PUBLIC API
# ══════════════════════════════════════════════════════════════════════════════

def diagnose_cost_report(
    buffer: bytes,
    registry: ProjectRegistry,
    file_name: Optional[str] = None,
    section_header_patterns: Optional[Sequence[str]] = None,
) -> DiagnosticsResult:
    projects = registry.list_projects()
    sheet = load_workbook_rows(buffer, file_name)
    warnings = list(sheet.warnings)

    header_index = find_header_row(sheet.rows)
    mapping = detect_columns(sheet.rows[header_index])
    try:
        mapping.require_identifying_column()
    except ColumnDetectionError:
        mapping = ColumnMapping(job_col=0, identifier_col=1, name_col=2, financial_cols=mapping.financial_cols)
        message = "Column detection failed; assuming job in A, project number in B, name in C"
        logger.warning(message)
        warnings.append(message)

    patterns = compile_section_patterns(section_header_patterns)
    diagnostics: list[DiagnosticMatch] = []
    for offset, cells in enumerate(sheet.rows[header_index + 1:]):
        outcome = parse_row(cells, mapping, header_index + offset + 2, patterns)
        if outcome.row is None:
            continue
        diagnostics.append(classify_row(outcome.row, projects))

    result = DiagnosticsResult(
        total_excel_rows=len(diagnostics),
        total_registry_projects=len(projects),
        diagnostics=diagnostics,
        mapping=mapping,
        warnings=warnings,
    )
    logger.info("Diagnosed %d row(s) against %d project(s): %s", len(diagnostics), len(projects), result.summary)
    return result


def _describe_row(row: SpreadsheetRow) -> list[str]:
    return [
        "Excel Row:",
        f"  Row: {row.row_number}",
        f"  Job Number: {row.job_number or 'N/A'}",
        f"  Project Number: {row.project_identifier or 'N/A'}",
        f"  Project Name: {row.project_name or 'N/A'}",
    ]


def render_matching_report(result: DiagnosticsResult) -> str:
    summary = result.summary
    lines = [
        "=== Cost Report Matching Diagnostics ===",
        "",
        f"Total Excel Rows: {result.total_excel_rows}",
        f"Total Registry Projects: {result.total_registry_projects}",
        "",
        "Summary:",
        f"  - High Confidence Matches: {summary['highConfidenceMatches']}",
        f"  - Medium Confidence Matches: {summary['mediumConfidenceMatches']}",
        f"  - Low Confidence Matches: {summary['lowConfidenceMatches']}",
        f"  - No Matches: {summary['noMatches']}",
        "",
        "=== Unmatched Rows ===",
        "",
    ]
    for item in result.rows_at(Confidence.NONE)[:REPORT_SAMPLE_SIZE]:
        lines.extend(_describe_row(item.excel_row))
        lines.extend(["  Status: NO MATCH FOUND", ""])

    lines.extend(["=== Low Confidence Matches (Review Needed) ===", ""])
    for item in result.rows_at(Confidence.LOW)[:REPORT_SAMPLE_SIZE]:
        best = item.best_match
        lines.extend(_describe_row(item.excel_row))
        lines.extend(
            [
                "Matched To:",
                f"  Project Code: {best.project.code or 'N/A'}",
                f"  Project Name: {best.project.display_name}",
                f"  Reason: {best.reason}",
                "  Confidence: LOW - REVIEW NEEDED",
                "",
            ]
        )
    return "\n".join(lines)
