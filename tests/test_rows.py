import unittest

from cost_ledger.cells import to_cells
from cost_ledger.columns import detect_columns
from cost_ledger.rows import (
    SKIP_EMPTY,
    SKIP_NO_IDENTITY,
    SKIP_SECTION_HEADER,
    compile_section_patterns,
    parse_row,
)

from cost_report_fixtures import HEADER


class ParseRowTests(unittest.TestCase):
    def setUp(self):
        self.mapping = detect_columns(to_cells(HEADER))

    def parse(self, values, patterns=None):
        return parse_row(to_cells(values), self.mapping, row_number=7, section_patterns=patterns)

    def test_typed_row(self):
        outcome = self.parse(["24001", "24-5-072-QUIE1", " Ashburn ", "Design", "$1,000.00", "1,100", "(100.00)"])
        row = outcome.row
        self.assertEqual(row.job_number, "24001")
        self.assertEqual(row.project_identifier, "24-5-072-QUIE1")
        self.assertEqual(row.project_name, "Ashburn")
        self.assertEqual(
            row.financial_values,
            {"Total Budget": 1000.0, "Forecasted Cost @ Completion": 1100.0, "Variance (Over)/Under": -100.0},
        )
        self.assertEqual(row.match_identifier, "24-5-072-QUIE1")

    def test_blank_row_is_skipped(self):
        outcome = self.parse([None, "", "  "])
        self.assertTrue(outcome.skipped)
        self.assertEqual(outcome.skip_reason, SKIP_EMPTY)
        self.assertFalse(outcome.counts_as_data)

    def test_section_banner_is_skipped(self):
        outcome = self.parse(["SDC Ashburn", None, None])
        self.assertEqual(outcome.skip_reason, SKIP_SECTION_HEADER)
        self.assertEqual(self.parse(["sdc   reston"]).skip_reason, SKIP_SECTION_HEADER)

    def test_sdc_prefix_without_space_is_not_a_banner(self):
        outcome = self.parse(["SDC-101", "24-5-072", "Ashburn"])
        self.assertFalse(outcome.skipped)

    def test_custom_section_patterns(self):
        patterns = compile_section_patterns([r"^Region:"])
        self.assertEqual(self.parse(["Region: East"], patterns).skip_reason, SKIP_SECTION_HEADER)
        self.assertFalse(self.parse(["SDC Ashburn", "24-5-072"], patterns).skipped)

    def test_row_without_job_or_name_is_skipped(self):
        outcome = self.parse([None, "24-5-072", None, None, 10])
        self.assertEqual(outcome.skip_reason, SKIP_NO_IDENTITY)
        self.assertTrue(outcome.counts_as_data)

    def test_na_job_with_na_identifier_and_no_name_is_skipped(self):
        outcome = self.parse(["n/a", "n/a", None, None, 10])
        self.assertEqual(outcome.skip_reason, SKIP_NO_IDENTITY)

    def test_na_job_without_identifier_is_skipped_even_with_a_name(self):
        outcome = self.parse(["N/A", None, "Reston Data Hall"])
        self.assertEqual(outcome.skip_reason, SKIP_NO_IDENTITY)

    def test_na_job_with_identifier_is_kept_and_job_cleared(self):
        outcome = self.parse(["n/a", "25-8-131", "Reston Data Hall", None, 2000, "--", "-"])
        row = outcome.row
        self.assertIsNone(row.job_number)
        self.assertEqual(row.project_identifier, "25-8-131")
        self.assertEqual(row.financial_values["Total Budget"], 2000.0)
        self.assertIsNone(row.financial_values["Forecasted Cost @ Completion"])
        self.assertIsNone(row.financial_values["Variance (Over)/Under"])

    def test_job_number_is_the_match_identifier_without_project_number(self):
        row = self.parse(["24001", None, "Ashburn"]).row
        self.assertIsNone(row.project_identifier)
        self.assertEqual(row.match_identifier, "24001")

    def test_short_rows_read_missing_cells_as_empty(self):
        row = self.parse(["24001", "24-5-072"]).row
        self.assertEqual(row.financial_values, {label: None for label in self.mapping.financial_labels})


if __name__ == "__main__":
    unittest.main()
