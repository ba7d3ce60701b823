"""Shared versioned contracts for cost-ledger JSON outputs."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

CONTRACT_VERSIONS = {
    "cost_ledger.ingest": "1.0.0",
    "cost_ledger.diagnostics": "1.0.0",
    "cost_ledger.history": "1.0.0",
}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def build_contract(name: str) -> dict[str, str]:
    version = CONTRACT_VERSIONS[name]
    return {"name": name, "version": version}


def build_run_summary(
    *,
    command: str,
    source_file: str | None,
    status: str = "ok",
    dry_run: bool = False,
    metrics: dict[str, Any] | None = None,
    warnings: list[str] | None = None,
) -> dict[str, Any]:
    return {
        "tool": "cost-ledger",
        "command": command,
        "status": status,
        "generated_at": utc_now_iso(),
        "source_file": source_file,
        "dry_run": dry_run,
        "warnings_count": len(warnings or []),
        "warnings": list(warnings or []),
        "metrics": metrics or {},
    }
