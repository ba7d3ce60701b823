from __future__ import annotations

import json
import re
import unittest

from cost_ledger.contracts import CONTRACT_VERSIONS, build_contract, build_run_summary, utc_now_iso
from cost_ledger.diagnostics import diagnose_cost_report
from cost_ledger.ingest import IngestOptions, ingest_cost_report
from cost_ledger.store import SqliteSnapshotStore

from cost_report_fixtures import cost_report_bytes, registry


class ContractTests(unittest.TestCase):
    def test_every_contract_has_a_semver(self):
        for name in CONTRACT_VERSIONS:
            contract = build_contract(name)
            self.assertEqual(contract["name"], name)
            self.assertRegex(contract["version"], r"^\d+\.\d+\.\d+$")

    def test_unknown_contract_is_rejected(self):
        with self.assertRaises(KeyError):
            build_contract("cost_ledger.unknown")

    def test_timestamps_are_utc_seconds(self):
        self.assertRegex(utc_now_iso(), r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z$")

    def test_run_summary_counts_warnings(self):
        summary = build_run_summary(
            command="ingest",
            source_file="report.xlsx",
            status="review",
            metrics={"unmatched": 1},
            warnings=["one", "two"],
        )
        self.assertEqual(summary["tool"], "cost-ledger")
        self.assertEqual(summary["warnings_count"], 2)
        self.assertFalse(summary["dry_run"])
        self.assertEqual(summary["metrics"], {"unmatched": 1})

    def test_ingest_payload_is_json_serialisable(self):
        with SqliteSnapshotStore(":memory:") as store:
            result = ingest_cost_report(
                cost_report_bytes(),
                registry(),
                store,
                IngestOptions(period_start="2025-10-13", source_file_name="Cost Report Summary 10.15.25.xlsx"),
            )
        payload = json.loads(json.dumps(result.to_dict()))
        self.assertEqual(payload["contract"], build_contract("cost_ledger.ingest"))
        self.assertEqual(len(payload["snapshots"]), 2)
        self.assertEqual(payload["unmatchedRows"][0]["projectNumber"], "77-7-777")
        self.assertTrue(re.match(r"^\d{4}-", payload["snapshots"][0]["createdAt"]))

    def test_diagnostics_payload_is_json_serialisable(self):
        result = diagnose_cost_report(cost_report_bytes(), registry(), "report.xlsx")
        payload = json.loads(json.dumps(result.to_dict()))
        self.assertEqual(payload["contract"], build_contract("cost_ledger.diagnostics"))
        self.assertIn("summary", payload)


if __name__ == "__main__":
    unittest.main()
