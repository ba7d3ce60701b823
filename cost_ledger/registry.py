"""
Canonical project registry port and the variant index built from it.

The registry is read once per ingestion or diagnostics run; the index maps
every alias variant to the projects owning it, in registry order.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional, Protocol

from cost_ledger.errors import RegistryError
from cost_ledger.identifiers import canonicalize, identifier_variants, primary_forms

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CanonicalProject:
    id: str
    display_name: str
    code: Optional[str] = None
    aliases: frozenset[str] = frozenset()
    job_number: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.display_name,
            "code": self.code,
            "jobNumber": self.job_number,
            "aliases": sorted(self.aliases),
        }


class ProjectRegistry(Protocol):
    def list_projects(self) -> list[CanonicalProject]:
        ...


class InMemoryProjectRegistry:
    def __init__(self, projects: Iterable[CanonicalProject] = ()):
        self._projects = list(projects)

    def list_projects(self) -> list[CanonicalProject]:
        return list(self._projects)


def _project_from_record(record: object, position: int) -> CanonicalProject:
    if not isinstance(record, dict):
        raise RegistryError(f"Registry entry {position} must be an object")
    project_id = record.get("id")
    if project_id in (None, ""):
        raise RegistryError(f"Registry entry {position} has no 'id'")

    aliases: list[str] = []
    primary = record.get("projectNumber")
    if primary:
        aliases.append(str(primary))
    for key in ("projectNumbers", "aliases"):
        extra = record.get(key) or []
        if isinstance(extra, str):
            extra = [extra]
        if not isinstance(extra, list):
            raise RegistryError(f"Registry entry {position}: '{key}' must be a list")
        for item in extra:
            # {"projectNumber": "..."} rows as exported from the project table
            if isinstance(item, dict):
                item = item.get("projectNumber")
            if item:
                aliases.append(str(item))

    return CanonicalProject(
        id=str(project_id),
        display_name=str(record.get("name") or record.get("displayName") or project_id),
        code=str(record["code"]) if record.get("code") else None,
        aliases=frozenset(aliases),
        job_number=str(record["jobNumber"]) if record.get("jobNumber") else None,
    )


class JsonProjectRegistry:
    """Projects read from a JSON list, or an object with a "projects" list."""

    def __init__(self, path: "str | Path"):
        self.path = Path(path)

    def list_projects(self) -> list[CanonicalProject]:
        if not self.path.exists():
            raise RegistryError(f"Registry file not found: {self.path}")
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise RegistryError(f"Could not read registry {self.path}: {exc}") from exc

        if isinstance(payload, dict):
            payload = payload.get("projects")
        if not isinstance(payload, list):
            raise RegistryError(f"Registry {self.path} must contain a list of projects")
        projects = [_project_from_record(record, index) for index, record in enumerate(payload)]
        logger.debug("Read %d projects from %s", len(projects), self.path)
        return projects


@dataclass
class VariantIndex:
    projects: list[CanonicalProject]
    by_variant: dict[str, list[CanonicalProject]] = field(default_factory=dict)
    by_primary: dict[str, list[CanonicalProject]] = field(default_factory=dict)
    # (variant, project id) -> length of the shortest alias producing the variant
    alias_lengths: dict[tuple[str, str], int] = field(default_factory=dict)

    @classmethod
    def build(cls, projects: Iterable[CanonicalProject]) -> "VariantIndex":
        index = cls(projects=list(projects))
        for project in index.projects:
            for alias in project.aliases:
                for form in primary_forms(alias):
                    _add_owner(index.by_primary, form, project)
                alias_length = len(canonicalize(alias))
                for variant in identifier_variants(alias):
                    _add_owner(index.by_variant, variant, project)
                    key = (variant, project.id)
                    if alias_length < index.alias_lengths.get(key, alias_length + 1):
                        index.alias_lengths[key] = alias_length

        mappings = sum(len(owners) for owners in index.by_variant.values())
        logger.info(
            "Loaded %d projects for matching (%d unique variants, %d total mappings)",
            len(index.projects),
            len(index.by_variant),
            mappings,
        )
        return index

    def owners(self, variant: str) -> list[CanonicalProject]:
        return list(self.by_variant.get(variant, ()))

    def alias_length(self, variant: str, project: CanonicalProject) -> int:
        return self.alias_lengths.get((variant, project.id), len(variant))

    def __len__(self) -> int:
        return len(self.by_variant)


def _add_owner(table: dict[str, list[CanonicalProject]], key: str, project: CanonicalProject) -> None:
    owners = table.setdefault(key, [])
    if all(owner.id != project.id for owner in owners):
        owners.append(project)
