"""
Resolve a parsed row to zero, one or several canonical projects.

Strategies run in order and the first one that returns a result wins:

    exact_alias       a primary row form equals a primary alias form
    variant_lookup    a row variant is a registry variant; lowest
                      (score, alias length) wins
    prefix_containment  a registry variant is a prefix of a row variant, or
                      the reverse; lowest (score, key length) wins
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

from cost_ledger.identifiers import canonicalize, identifier_variants, primary_forms
from cost_ledger.registry import CanonicalProject, VariantIndex
from cost_ledger.rows import SpreadsheetRow

logger = logging.getLogger(__name__)

PREFIX_PENALTY = 100
MIN_PREFIX_KEY_LENGTH = 3


class MatchType(str, enum.Enum):
    EXACT = "exact"
    VARIANT = "variant"
    NONE = "none"


@dataclass
class MatchResult:
    row: SpreadsheetRow
    matched_projects: list[CanonicalProject] = field(default_factory=list)
    match_type: MatchType = MatchType.NONE
    rank_score: Optional[int] = None
    matched_keys: list[str] = field(default_factory=list)
    strategy: Optional[str] = None

    @property
    def matched(self) -> bool:
        return bool(self.matched_projects)

    @property
    def is_ambiguous(self) -> bool:
        return len({project.id for project in self.matched_projects}) > 1


@dataclass(frozen=True)
class Candidates:
    """Row-side forms of the identifier being matched."""

    raw: str
    primary: frozenset[str]
    variants: frozenset[str]

    @classmethod
    def for_row(cls, row: SpreadsheetRow) -> Optional["Candidates"]:
        raw = row.match_identifier
        if not raw:
            return None
        variants = identifier_variants(raw)
        if not variants:
            return None
        return cls(raw=raw, primary=primary_forms(raw), variants=variants)


Strategy = Callable[[SpreadsheetRow, Candidates, VariantIndex], Optional[MatchResult]]


def _merge_owners(table: dict[str, list[CanonicalProject]], keys: Sequence[str]) -> list[CanonicalProject]:
    merged: list[CanonicalProject] = []
    seen: set[str] = set()
    for key in keys:
        for project in table.get(key, ()):
            if project.id not in seen:
                seen.add(project.id)
                merged.append(project)
    return merged


def exact_alias(row: SpreadsheetRow, candidates: Candidates, index: VariantIndex) -> Optional[MatchResult]:
    hits = sorted(form for form in candidates.primary if form in index.by_primary)
    if not hits:
        return None
    return MatchResult(
        row=row,
        matched_projects=_merge_owners(index.by_primary, hits),
        match_type=MatchType.EXACT,
        rank_score=0,
        matched_keys=hits,
        strategy="exact_alias",
    )


def variant_score(variant: str, canonical: str) -> int:
    if variant == canonical:
        return 0
    return abs(len(variant) - len(canonical)) + PREFIX_PENALTY


def variant_lookup(row: SpreadsheetRow, candidates: Candidates, index: VariantIndex) -> Optional[MatchResult]:
    """
    Shared-variant match, keeping only the best-ranked owners.

    Each (variant, owner) pair ranks by (variant_score, length of the owner's
    shortest alias producing that variant). Several owners survive only on
    an equal rank.
    """
    canonical = canonicalize(candidates.raw)
    best: Optional[tuple[int, int]] = None
    best_owners: list[CanonicalProject] = []
    best_keys: list[str] = []
    for variant in sorted(candidates.variants):
        for owner in index.by_variant.get(variant, ()):
            rank = (variant_score(variant, canonical), index.alias_length(variant, owner))
            if best is None or rank < best:
                best = rank
                best_owners = [owner]
                best_keys = [variant]
            elif rank == best:
                if all(kept.id != owner.id for kept in best_owners):
                    best_owners.append(owner)
                if variant not in best_keys:
                    best_keys.append(variant)

    if best is None:
        return None
    return MatchResult(
        row=row,
        matched_projects=best_owners,
        match_type=MatchType.VARIANT,
        rank_score=best[0],
        matched_keys=best_keys,
        strategy="variant_lookup",
    )


def prefix_score(candidate: str, key: str) -> Optional[int]:
    if len(candidate) < MIN_PREFIX_KEY_LENGTH or len(key) < MIN_PREFIX_KEY_LENGTH:
        return None
    if not (candidate.startswith(key) or key.startswith(candidate)):
        return None
    if len(candidate) == len(key):
        return 0
    return abs(len(candidate) - len(key)) + PREFIX_PENALTY


def prefix_containment(row: SpreadsheetRow, candidates: Candidates, index: VariantIndex) -> Optional[MatchResult]:
    best: Optional[tuple[int, int]] = None
    best_keys: list[str] = []
    for candidate in sorted(candidates.variants):
        for key in index.by_variant:
            score = prefix_score(candidate, key)
            if score is None:
                continue
            rank = (score, len(key))
            if best is None or rank < best:
                best = rank
                best_keys = [key]
            elif rank == best and key not in best_keys:
                best_keys.append(key)

    if best is None:
        return None
    logger.debug(
        "Partial match for %r: registry key(s) %s at score %d",
        candidates.raw,
        ", ".join(best_keys),
        best[0],
    )
    return MatchResult(
        row=row,
        matched_projects=_merge_owners(index.by_variant, best_keys),
        match_type=MatchType.VARIANT,
        rank_score=best[0],
        matched_keys=best_keys,
        strategy="prefix_containment",
    )


DEFAULT_STRATEGIES: tuple[Strategy, ...] = (exact_alias, variant_lookup, prefix_containment)


def match_row(
    row: SpreadsheetRow,
    index: VariantIndex,
    strategies: Sequence[Strategy] = DEFAULT_STRATEGIES,
) -> MatchResult:
    candidates = Candidates.for_row(row)
    if candidates is None:
        logger.debug("Row %d has no identifier to match on", row.row_number)
        return MatchResult(row=row)

    for strategy in strategies:
        result = strategy(row, candidates, index)
        if result is not None and result.matched_projects:
            logger.debug(
                "Row %d %r matched %s via %s",
                row.row_number,
                candidates.raw,
                ", ".join(project.id for project in result.matched_projects),
                result.strategy,
            )
            return result

    logger.debug("No project found for row %d identifier %r", row.row_number, candidates.raw)
    return MatchResult(row=row)
