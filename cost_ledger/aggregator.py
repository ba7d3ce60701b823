"""Per-project accumulation of matched rows."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from cost_ledger.matcher import MatchResult, MatchType
from cost_ledger.registry import CanonicalProject

logger = logging.getLogger(__name__)


def _add_unique(items: list[str], value: Optional[str]) -> None:
    if value and value not in items:
        items.append(value)


@dataclass
class ProjectAggregate:
    project: CanonicalProject
    job_numbers: list[str] = field(default_factory=list)
    project_identifiers: list[str] = field(default_factory=list)
    financials: dict[str, Optional[float]] = field(default_factory=dict)
    match_types: list[str] = field(default_factory=list)
    matched_keys: list[str] = field(default_factory=list)
    row_numbers: list[int] = field(default_factory=list)
    ambiguous: bool = False

    @property
    def project_id(self) -> str:
        return self.project.id

    @property
    def match_type(self) -> str:
        if MatchType.EXACT.value in self.match_types:
            return MatchType.EXACT.value
        return MatchType.VARIANT.value

    def absorb(self, result: MatchResult) -> None:
        row = result.row
        _add_unique(self.job_numbers, row.job_number)
        _add_unique(self.project_identifiers, row.project_identifier)
        _add_unique(self.match_types, result.match_type.value)
        for key in result.matched_keys:
            _add_unique(self.matched_keys, key)
        self.row_numbers.append(row.row_number)
        if result.is_ambiguous:
            self.ambiguous = True

        for label, value in row.financial_values.items():
            if value is not None:
                current = self.financials.get(label)
                self.financials[label] = (current if current is not None else 0.0) + value
            elif label not in self.financials:
                self.financials[label] = value

    def to_record(self) -> dict:
        return {
            "projectId": self.project.id,
            "projectName": self.project.display_name,
            "projectCode": self.project.code,
            "jobNumber": ", ".join(self.job_numbers) or None,
            "projectNumber": ", ".join(self.project_identifiers) or None,
            "matchType": self.match_type,
            "ambiguous": self.ambiguous,
            "financials": dict(self.financials),
            "sourceMeta": {
                "matchedProjectNumbers": list(self.project_identifiers),
                "matchedJobNumbers": list(self.job_numbers),
                "matchTypes": list(self.match_types),
                "matchedKeys": list(self.matched_keys),
                "rowNumbers": list(self.row_numbers),
            },
        }


@dataclass
class UnmatchedRowRecord:
    row_number: int
    job_number: Optional[str]
    project_identifier: Optional[str]
    project_name: Optional[str]
    financials: dict[str, Optional[float]]

    def to_record(self) -> dict:
        return {
            "rowNumber": self.row_number,
            "jobNumber": self.job_number,
            "projectNumber": self.project_identifier,
            "projectName": self.project_name,
            "financials": dict(self.financials),
        }


class Aggregator:
    """
    Accumulate match results in spreadsheet order.

    Numeric values add into a running total; a null only lands when the label
    has not been seen yet, so it never lowers or replaces a total.
    """

    def __init__(self) -> None:
        self.aggregates: dict[str, ProjectAggregate] = {}
        self.unmatched: list[UnmatchedRowRecord] = []
        self.matched_rows = 0
        self.ambiguous_rows = 0

    def add(self, result: MatchResult) -> None:
        if not result.matched:
            row = result.row
            self.unmatched.append(
                UnmatchedRowRecord(
                    row_number=row.row_number,
                    job_number=row.job_number,
                    project_identifier=row.project_identifier,
                    project_name=row.project_name,
                    financials=dict(row.financial_values),
                )
            )
            return

        self.matched_rows += 1
        if result.is_ambiguous:
            self.ambiguous_rows += 1
            logger.warning(
                "Row %d identifier %r matches %d projects (%s); values fan out to each",
                result.row.row_number,
                result.row.match_identifier,
                len(result.matched_projects),
                ", ".join(project.id for project in result.matched_projects),
            )
        for project in result.matched_projects:
            aggregate = self.aggregates.get(project.id)
            if aggregate is None:
                aggregate = ProjectAggregate(project=project)
                self.aggregates[project.id] = aggregate
            aggregate.absorb(result)

    def extend(self, results: Iterable[MatchResult]) -> "Aggregator":
        for result in results:
            self.add(result)
        return self

    def projects(self) -> list[ProjectAggregate]:
        return list(self.aggregates.values())
