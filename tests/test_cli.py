from __future__ import annotations

import json
import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path

from cost_ledger import __version__
from cost_ledger.cli import EXIT_COMMAND_ERROR, EXIT_WRITE_FAILED, classify_exception, main
from cost_ledger.errors import SnapshotWriteError, SpreadsheetParseError

from cost_report_fixtures import cost_report_bytes, simple_report_bytes, write_registry

ROOT = Path(__file__).resolve().parents[1]
CLI = [sys.executable, "-m", "cost_ledger.cli"]
REPORT_NAME = "Cost Report Summary 10.15.25.xlsx"


def run_cli(*args: str, env: dict[str, str] | None = None, cwd: Path = ROOT) -> subprocess.CompletedProcess[str]:
    merged_env = {key: value for key, value in os.environ.items() if not key.startswith("COST_LEDGER_")}
    merged_env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(ROOT), os.environ.get("PYTHONPATH")]))
    if env:
        merged_env.update(env)
    return subprocess.run(
        [*CLI, *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        env=merged_env,
    )


class CostLedgerCliTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.root = Path(self.tmpdir.name)
        self.report = self.root / REPORT_NAME
        self.report.write_bytes(cost_report_bytes())
        self.registry = write_registry(self.root / "projects.json")
        self.db = self.root / "ledger.sqlite3"

    def tearDown(self):
        self.tmpdir.cleanup()

    def ingest(self, *extra: str) -> subprocess.CompletedProcess[str]:
        return run_cli(
            "ingest",
            str(self.report),
            "--registry",
            str(self.registry),
            "--db",
            str(self.db),
            *extra,
        )

    def test_ingest_with_unmatched_rows_returns_exit_3(self):
        proc = self.ingest("--period-start", "2025-10-15")
        self.assertEqual(proc.returncode, 3, proc.stderr)
        self.assertIn("Matched projects: 2", proc.stderr)
        self.assertIn("Period: 2025-10-13", proc.stderr)
        self.assertIn("row 11:", proc.stderr)
        self.assertTrue(self.db.exists())

    def test_ingest_fully_matched_returns_exit_0(self):
        self.report.write_bytes(simple_report_bytes([["24001", "24-5-072", "Ashburn", 100]]))
        proc = self.ingest("--period-start", "2025-10-13")
        self.assertEqual(proc.returncode, 0, proc.stderr)

    def test_ingest_json_stdout_contains_only_json(self):
        proc = self.ingest("--period-start", "2025-10-13", "--json")
        self.assertEqual(proc.returncode, 3, proc.stderr)
        payload = json.loads(proc.stdout)
        self.assertEqual(payload["contract"]["name"], "cost_ledger.ingest")
        self.assertEqual(payload["summary"]["matchedProjects"], 2)
        self.assertEqual(payload["run_summary"]["status"], "review")
        self.assertEqual(payload["run_summary"]["command"], "ingest")

    def test_ingest_requires_period_start_unless_dry_run(self):
        proc = self.ingest()
        self.assertEqual(proc.returncode, 1)
        self.assertIn("--period-start is required", proc.stderr)
        self.assertFalse(self.db.exists())

    def test_dry_run_writes_nothing(self):
        proc = self.ingest("--dry-run", "--json")
        self.assertEqual(proc.returncode, 3, proc.stderr)
        payload = json.loads(proc.stdout)
        self.assertTrue(payload["dry_run"])
        self.assertEqual(payload["summary"]["projectsUpdated"], 0)
        self.assertFalse(self.db.exists())

    def test_output_file_is_written_and_never_overwritten(self):
        output = self.root / "result.json"
        proc = self.ingest("--period-start", "2025-10-13", "--output", str(output))
        self.assertEqual(proc.returncode, 3, proc.stderr)
        self.assertIn("Result written:", proc.stderr)
        self.assertEqual(json.loads(output.read_text())["summary"]["unmatched"], 1)

        proc = self.ingest("--period-start", "2025-10-13", "--output", str(output))
        self.assertEqual(proc.returncode, 1)
        self.assertIn("Refusing to overwrite", proc.stderr)

    def test_unreadable_input_returns_exit_2(self):
        self.report.write_bytes(b"not a workbook")
        proc = self.ingest("--period-start", "2025-10-13")
        self.assertEqual(proc.returncode, 2)

    def test_missing_registry_returns_exit_1(self):
        proc = run_cli("ingest", str(self.report), "--dry-run")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("project registry is required", proc.stderr)

    def test_registry_and_database_from_environment(self):
        proc = run_cli(
            "ingest",
            str(self.report),
            "--period-start",
            "2025-10-13",
            env={"COST_LEDGER_REGISTRY": str(self.registry), "COST_LEDGER_DB": str(self.db)},
        )
        self.assertEqual(proc.returncode, 3, proc.stderr)
        self.assertTrue(self.db.exists())

    def test_diagnose_returns_exit_3_when_rows_need_review(self):
        proc = run_cli("diagnose", str(self.report), "--registry", str(self.registry))
        self.assertEqual(proc.returncode, 3, proc.stderr)
        self.assertIn("=== Cost Report Matching Diagnostics ===", proc.stdout)
        self.assertIn("No Matches: 1", proc.stdout)
        self.assertFalse(self.db.exists())

    def test_diagnose_json(self):
        proc = run_cli("diagnose", str(self.report), "--registry", str(self.registry), "--json")
        self.assertEqual(proc.returncode, 3, proc.stderr)
        payload = json.loads(proc.stdout)
        self.assertEqual(payload["summary"]["highConfidenceMatches"], 1)
        self.assertEqual(payload["run_summary"]["command"], "diagnose")

    def test_history_after_two_periods(self):
        self.assertEqual(self.ingest("--period-start", "2025-10-13").returncode, 3)
        self.assertEqual(self.ingest("--period-start", "2025-10-20").returncode, 3)

        proc = run_cli("history", "P-ASH", "--db", str(self.db), "--json")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        payload = json.loads(proc.stdout)
        self.assertEqual([item["periodStart"] for item in payload["periods"]], ["2025-10-13", "2025-10-20"])

        proc = run_cli("history", "P-ASH", "--db", str(self.db), "--start", "2025-10-22", "--json")
        self.assertEqual([item["periodStart"] for item in json.loads(proc.stdout)["periods"]], ["2025-10-20"])

        proc = run_cli("history", "P-ASH", "--db", str(self.db), "--latest")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertIn("2025-10-20 .. 2025-10-26", proc.stdout)
        self.assertIn("budget=1,500.00", proc.stdout)

    def test_history_missing_database(self):
        proc = run_cli("history", "P-ASH", "--db", str(self.root / "missing.sqlite3"))
        self.assertEqual(proc.returncode, 1)
        self.assertIn("Database not found", proc.stderr)

    def test_config_init_writes_file_once(self):
        config_path = self.root / "cost-ledger.json"
        proc = run_cli("config", "init", "--path", str(config_path))
        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertEqual(json.loads(config_path.read_text())["log_level"], "info")

        proc = run_cli("config", "init", "--path", str(config_path))
        self.assertEqual(proc.returncode, 1)
        self.assertIn("Refusing to overwrite", proc.stderr)

    def test_version_prints_version(self):
        proc = run_cli("version")
        self.assertEqual(proc.returncode, 0)
        self.assertEqual(proc.stdout.strip(), __version__)


class CliInProcessTests(unittest.TestCase):
    def test_bad_arguments_return_exit_1(self):
        self.assertEqual(main(["ingest"]), EXIT_COMMAND_ERROR)
        self.assertEqual(main(["nope"]), EXIT_COMMAND_ERROR)

    def test_exception_classification(self):
        self.assertEqual(classify_exception(SnapshotWriteError("boom")), EXIT_WRITE_FAILED)
        self.assertEqual(classify_exception(SpreadsheetParseError("bad")), 2)
        self.assertEqual(classify_exception(FileNotFoundError("gone")), EXIT_COMMAND_ERROR)


if __name__ == "__main__":
    unittest.main()
