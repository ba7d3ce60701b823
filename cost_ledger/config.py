"""Configuration defaults, settings loading and logging setup."""

from __future__ import annotations

import json
import logging
import os
import sys
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

DEFAULT_JOB_HINTS = ("job", "job #", "job number", "job id", "project id", "proj #")
DEFAULT_NAME_HINTS = ("project", "name", "title", "project name")
DEFAULT_FINANCIAL_HINTS = (
    "budget",
    "forecast",
    "actual",
    "committed",
    "spent",
    "variance",
    "cost",
    "eac",
    "hard cost",
    "soft cost",
    "total budget",
    "forecasted cost",
    "cost to complete",
)

# Region banners such as "SDC Ashburn" divide the summary sheet into sections.
DEFAULT_SECTION_HEADER_PATTERNS = (r"^SDC\s+",)

# Ordered label lists: the first label present in a project's aggregate wins.
SNAPSHOT_FIELD_LABELS = {
    "budget": ("Total Budget", "budget", "Hard Cost Budget"),
    "forecast": (
        "Forecasted Cost @ Completion",
        "Forecasted Cost @ Completion (EAC)",
        "forecast",
        "eac",
    ),
    "actual": ("Actual Costs Invoiced", "actual"),
    "committed": ("Committed Costs", "committed"),
    "spent": ("Spent", "spent"),
    "variance": ("Variance (Over)/Under", "variance"),
}

HEADER_SCAN_ROWS = 10
HEADER_MIN_CELLS = 3

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_LEVELS = {"debug", "info", "warning", "error"}

ENV_DATABASE = "COST_LEDGER_DB"
ENV_REGISTRY = "COST_LEDGER_REGISTRY"
ENV_LOG_LEVEL = "COST_LEDGER_LOG_LEVEL"

STARTER_CONFIG = {
    "database_path": "cost-ledger.sqlite3",
    "registry_path": "projects.json",
    "log_level": "info",
    "job_hints": list(DEFAULT_JOB_HINTS),
    "name_hints": list(DEFAULT_NAME_HINTS),
    "financial_hints": list(DEFAULT_FINANCIAL_HINTS),
    "section_header_patterns": list(DEFAULT_SECTION_HEADER_PATTERNS),
}


@dataclass
class Settings:
    database_path: Path | None = None
    registry_path: Path | None = None
    log_level: str = "warning"
    job_hints: tuple[str, ...] = DEFAULT_JOB_HINTS
    name_hints: tuple[str, ...] = DEFAULT_NAME_HINTS
    financial_hints: tuple[str, ...] = DEFAULT_FINANCIAL_HINTS
    section_header_patterns: tuple[str, ...] = DEFAULT_SECTION_HEADER_PATTERNS
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "Settings":
        env = os.environ if environ is None else environ
        settings = cls()
        if env.get(ENV_DATABASE):
            settings.database_path = Path(env[ENV_DATABASE])
        if env.get(ENV_REGISTRY):
            settings.registry_path = Path(env[ENV_REGISTRY])
        if env.get(ENV_LOG_LEVEL):
            settings.log_level = validate_log_level(env[ENV_LOG_LEVEL])
        return settings

    @classmethod
    def from_file(cls, path: Path, base: "Settings | None" = None) -> "Settings":
        """Overlay a JSON config file on top of ``base`` (or the defaults)."""
        try:
            payload = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise ValueError(f"Could not read config {path}: {exc}") from exc
        if not isinstance(payload, dict):
            raise ValueError(f"Config root must be an object: {path}")

        settings = base or cls()
        known = {item.name for item in fields(cls)} - {"extra"}
        for key, value in payload.items():
            if key not in known:
                settings.extra[key] = value
            elif key in {"database_path", "registry_path"}:
                setattr(settings, key, Path(value) if value else None)
            elif key == "log_level":
                settings.log_level = validate_log_level(value)
            else:
                if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
                    raise ValueError(f"Config key '{key}' must be a list of strings")
                setattr(settings, key, tuple(value))
        return settings


def validate_log_level(value: str) -> str:
    level = str(value).strip().lower()
    if level == "warn":
        level = "warning"
    if level not in LOG_LEVELS:
        raise ValueError(f"Unknown log level '{value}'. Use one of: {', '.join(sorted(LOG_LEVELS))}")
    return level


def configure_logging(level: str = "warning") -> None:
    root = logging.getLogger("cost_ledger")
    root.setLevel(getattr(logging, validate_log_level(level).upper()))
    if not any(getattr(handler, "_cost_ledger", False) for handler in root.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._cost_ledger = True  # type: ignore[attr-defined]
        root.addHandler(handler)
