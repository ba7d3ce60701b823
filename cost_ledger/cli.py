from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from cost_ledger import __version__ as TOOL_VERSION
from cost_ledger.config import STARTER_CONFIG, Settings, configure_logging
from cost_ledger.contracts import build_run_summary
from cost_ledger.diagnostics import diagnose_cost_report, render_matching_report
from cost_ledger.errors import IngestOptionsError, RegistryError, SnapshotWriteError
from cost_ledger.history import (
    financials_by_date_range,
    history_payload,
    latest_financials,
    project_history,
)
from cost_ledger.ingest import IngestOptions, IngestResult, ingest_cost_report
from cost_ledger.loader import read_buffer
from cost_ledger.periods import to_date, week_end, week_start
from cost_ledger.registry import JsonProjectRegistry
from cost_ledger.store import PeriodFinancialSnapshot, SqliteSnapshotStore

EXIT_SUCCESS = 0
EXIT_COMMAND_ERROR = 1
EXIT_PARSE_FAILED = 2
EXIT_NEEDS_REVIEW = 3
EXIT_WRITE_FAILED = 4


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class CostLedgerArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True)


def write_text(path: Path, payload: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(payload, encoding="utf-8")


def maybe_emit_json_stdout(payload: Any, enabled: bool) -> None:
    if enabled:
        print(json_dumps(payload))


def safe_output_path(explicit: str | None) -> Path | None:
    if not explicit:
        return None
    path = Path(explicit)
    if path.exists():
        raise CliError(f"Refusing to overwrite existing output: {path}", EXIT_COMMAND_ERROR)
    return path


def classify_exception(exc: Exception) -> int:
    if isinstance(exc, CliError):
        return exc.code
    if isinstance(exc, SnapshotWriteError):
        return EXIT_WRITE_FAILED
    if isinstance(exc, (IngestOptionsError, RegistryError, FileNotFoundError)):
        return EXIT_COMMAND_ERROR
    if isinstance(exc, (ImportError, UnicodeDecodeError)):
        return EXIT_PARSE_FAILED
    if isinstance(exc, ValueError):
        return EXIT_PARSE_FAILED
    return EXIT_COMMAND_ERROR


def log_level_for(args: argparse.Namespace, settings: Settings) -> str:
    if getattr(args, "verbose", False):
        return "debug"
    if getattr(args, "quiet", False):
        return "error"
    return settings.log_level


def load_settings(args: argparse.Namespace) -> Settings:
    try:
        settings = Settings.from_env()
        if getattr(args, "config", None):
            settings = Settings.from_file(Path(args.config), base=settings)
    except ValueError as exc:
        raise CliError(str(exc), EXIT_COMMAND_ERROR) from exc
    if getattr(args, "registry", None):
        settings.registry_path = Path(args.registry)
    if getattr(args, "db", None):
        settings.database_path = Path(args.db)
    return settings


def require_registry(settings: Settings) -> JsonProjectRegistry:
    if settings.registry_path is None:
        raise CliError("A project registry is required: pass --registry or set COST_LEDGER_REGISTRY")
    return JsonProjectRegistry(settings.registry_path)


def require_database(settings: Settings) -> Path:
    if settings.database_path is None:
        raise CliError("A snapshot database is required: pass --db or set COST_LEDGER_DB")
    return settings.database_path


def format_amount(value: Any) -> str:
    if isinstance(value, (int, float)):
        return f"{value:,.2f}"
    return "-"


def render_ingest_text(result: IngestResult) -> str:
    summary = result.summary
    lines = [
        "=== Cost Report Ingestion ===",
        f"Period: {result.period_start.isoformat() if result.period_start else 'not set'}"
        + (" (dry run)" if result.dry_run else ""),
        f"Report rows: {summary.total_excel_rows} (skipped {summary.skipped_rows})",
        f"Matched projects: {summary.matched_projects} from {summary.matched_by_identifier} row(s)",
        f"Unmatched rows: {summary.unmatched}",
        f"Ambiguous rows: {summary.ambiguous_rows}",
        f"Projects updated: {summary.projects_updated}",
        f"Registry projects: {summary.total_projects_in_registry}",
        f"Financial columns: {', '.join(summary.financial_columns) or 'none'}",
    ]
    if result.unmatched_rows:
        lines.append("")
        lines.append("Unmatched (first 10):")
        for record in result.unmatched_rows[:10]:
            lines.append(
                f"  row {record.row_number}: job={record.job_number or 'N/A'} "
                f"project number={record.project_identifier or 'N/A'} name={record.project_name or 'N/A'}"
            )
    for warning in result.warnings:
        lines.append(f"Warning: {warning}")
    return "\n".join(lines)


def render_history_text(project_id: str, snapshots: list[PeriodFinancialSnapshot]) -> str:
    if not snapshots:
        return f"No snapshots for project {project_id}"
    lines = [f"=== Financial history: {project_id} ==="]
    for snapshot in snapshots:
        lines.append(
            f"{snapshot.period_start.isoformat()} .. {snapshot.period_end.isoformat()}  "
            f"budget={format_amount(snapshot.budget)}  forecast={format_amount(snapshot.forecast)}  "
            f"variance={format_amount(snapshot.variance)}  source={snapshot.source_file or '-'}"
        )
    return "\n".join(lines)


def add_common_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", help="JSON config file")
    parser.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    parser.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logs on stderr")


def build_parser() -> argparse.ArgumentParser:
    parser = CostLedgerArgumentParser(
        prog="cost-ledger",
        description="Ingest cost-report spreadsheets into weekly project financial snapshots.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    ingest = subparsers.add_parser("ingest", help="Match a cost report to projects and store the period snapshot.")
    ingest.add_argument("input", help="Cost report path (.xlsx, .xlsm, .xls, .csv, .tsv)")
    ingest.add_argument("--registry", help="Project registry JSON")
    ingest.add_argument("--db", help="Snapshot SQLite database")
    ingest.add_argument("--period-start", dest="period_start", help="Reporting week (YYYY-MM-DD, snapped to Monday)")
    ingest.add_argument("--source-date", dest="source_date", help="Report date (defaults to the date in the file name)")
    ingest.add_argument("--dry-run", action="store_true", help="Run matching and aggregation without writing")
    ingest.add_argument("--output", help="Write the JSON result to this path")
    add_common_flags(ingest)

    diagnose = subparsers.add_parser("diagnose", help="Classify match confidence for every row without writing.")
    diagnose.add_argument("input", help="Cost report path")
    diagnose.add_argument("--registry", help="Project registry JSON")
    diagnose.add_argument("--output", help="Write the JSON result to this path")
    add_common_flags(diagnose)

    history = subparsers.add_parser("history", help="Show stored snapshots for a project.")
    history.add_argument("project_id", help="Canonical project id")
    history.add_argument("--db", help="Snapshot SQLite database")
    history.add_argument("--start", help="First week (YYYY-MM-DD)")
    history.add_argument("--end", help="Last week (YYYY-MM-DD)")
    history.add_argument("--latest", action="store_true", help="Only the most recent period")
    add_common_flags(history)

    config = subparsers.add_parser("config", help="Generate configuration.")
    config_subparsers = config.add_subparsers(dest="config_command", required=True)
    config_init = config_subparsers.add_parser("init", help="Write a starter config file.")
    config_init.add_argument("--path", default="cost-ledger.json", help="Config output path")

    subparsers.add_parser("version", help="Print version")
    return parser


def run_ingest(args: argparse.Namespace) -> int:
    input_path = Path(args.input)
    if not input_path.exists():
        eprint(f"File not found: {input_path}")
        return EXIT_COMMAND_ERROR

    store = None
    try:
        settings = load_settings(args)
        configure_logging(log_level_for(args, settings))
        output_path = safe_output_path(args.output)
        registry = require_registry(settings)
        if not args.dry_run:
            if not args.period_start:
                raise CliError("--period-start is required unless --dry-run is set")
            store = SqliteSnapshotStore(require_database(settings))

        options = IngestOptions(
            period_start=args.period_start,
            dry_run=args.dry_run,
            source_file_name=input_path.name,
            source_date=args.source_date,
            job_hints=settings.job_hints,
            name_hints=settings.name_hints,
            financial_hints=settings.financial_hints,
            section_header_patterns=settings.section_header_patterns,
        )
        result = ingest_cost_report(read_buffer(input_path), registry, store, options)

        payload = result.to_dict()
        payload["run_summary"] = build_run_summary(
            command="ingest",
            source_file=str(input_path),
            status="review" if result.summary.unmatched else "ok",
            dry_run=args.dry_run,
            metrics=result.summary.to_dict(),
            warnings=result.warnings,
        )
        if output_path is not None:
            write_text(output_path, json_dumps(payload))
        if args.json:
            maybe_emit_json_stdout(payload, True)
        else:
            emit_human(render_ingest_text(result), quiet=args.quiet)
            if output_path is not None:
                emit_human(f"Result written: {output_path}", quiet=args.quiet)
        return EXIT_NEEDS_REVIEW if result.summary.unmatched else EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)
    finally:
        if store is not None:
            store.close()


def run_diagnose(args: argparse.Namespace) -> int:
    input_path = Path(args.input)
    if not input_path.exists():
        eprint(f"File not found: {input_path}")
        return EXIT_COMMAND_ERROR

    try:
        settings = load_settings(args)
        configure_logging(log_level_for(args, settings))
        output_path = safe_output_path(args.output)
        registry = require_registry(settings)
        result = diagnose_cost_report(
            read_buffer(input_path),
            registry,
            file_name=input_path.name,
            section_header_patterns=settings.section_header_patterns,
        )
        payload = result.to_dict()
        payload["run_summary"] = build_run_summary(
            command="diagnose",
            source_file=str(input_path),
            status="review" if result.needs_review else "ok",
            metrics=result.summary,
            warnings=result.warnings,
        )
        if output_path is not None:
            write_text(output_path, json_dumps(payload))
        if args.json:
            maybe_emit_json_stdout(payload, True)
        else:
            print(render_matching_report(result).rstrip())
            if output_path is not None:
                emit_human(f"Result written: {output_path}", quiet=args.quiet)
        return EXIT_NEEDS_REVIEW if result.needs_review else EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)


def run_history(args: argparse.Namespace) -> int:
    store = None
    try:
        settings = load_settings(args)
        configure_logging(log_level_for(args, settings))
        database = require_database(settings)
        if not database.exists():
            raise CliError(f"Database not found: {database}")
        store = SqliteSnapshotStore(database)

        start = to_date(args.start) if args.start else None
        end = to_date(args.end) if args.end else None
        if args.latest:
            latest = latest_financials(store, args.project_id)
            snapshots = [latest] if latest else []
        elif start and end:
            snapshots = financials_by_date_range(store, args.project_id, start, end)
        elif start or end:
            snapshots = store.list_snapshots(
                project_id=args.project_id,
                start=week_start(start) if start else None,
                end=week_end(end) if end else None,
            )
        else:
            snapshots = project_history(store, args.project_id)

        if args.json:
            maybe_emit_json_stdout(history_payload(args.project_id, snapshots, start, end), True)
        else:
            print(render_history_text(args.project_id, snapshots))
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)
    finally:
        if store is not None:
            store.close()


def run_config_init(args: argparse.Namespace) -> int:
    config_path = Path(args.path)
    if config_path.exists():
        eprint(f"Refusing to overwrite existing config: {config_path}")
        return EXIT_COMMAND_ERROR
    write_text(config_path, json_dumps(STARTER_CONFIG) + "\n")
    emit_human(f"Config written: {config_path}")
    return EXIT_SUCCESS


def run_version() -> int:
    print(TOOL_VERSION)
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        if args.command == "ingest":
            return run_ingest(args)
        if args.command == "diagnose":
            return run_diagnose(args)
        if args.command == "history":
            return run_history(args)
        if args.command == "config":
            if args.config_command == "init":
                return run_config_init(args)
        if args.command == "version":
            return run_version()
        raise CliError(f"Unknown command: {args.command}", EXIT_COMMAND_ERROR)
    except CliError as exc:
        eprint(str(exc))
        return exc.code


if __name__ == "__main__":
    raise SystemExit(main())
