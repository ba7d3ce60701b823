import unittest

from cost_ledger.cells import to_cells
from cost_ledger.columns import detect_columns, find_header_row
from cost_ledger.errors import ColumnDetectionError, HeaderNotFoundError
from cost_ledger.loader import load_workbook_rows

from cost_report_fixtures import HEADER, cost_report_bytes


class HeaderRowTests(unittest.TestCase):
    def test_header_found_below_banner_rows(self):
        sheet = load_workbook_rows(cost_report_bytes(), "report.xlsx")
        self.assertEqual(find_header_row(sheet.rows), 4)

    def test_no_header_in_first_ten_rows(self):
        rows = [to_cells(["only", "two"]) for _ in range(12)]
        rows.append(to_cells(["Job", "Name", "Budget"]))
        with self.assertRaises(HeaderNotFoundError):
            find_header_row(rows)


class DetectColumnsTests(unittest.TestCase):
    def test_cost_report_header(self):
        mapping = detect_columns(to_cells(HEADER))
        self.assertEqual(mapping.job_col, 0)
        self.assertEqual(mapping.identifier_col, 1)
        self.assertEqual(mapping.name_col, 2)
        self.assertEqual(
            mapping.financial_cols,
            {4: "Total Budget", 5: "Forecasted Cost @ Completion", 6: "Variance (Over)/Under"},
        )

    def test_squashed_project_number_header_is_the_identifier(self):
        mapping = detect_columns(to_cells(["Job", "ProjectNumber", "Name", "Budget", "EAC", "Variance"]))
        self.assertEqual(mapping.identifier_col, 1)
        self.assertEqual(mapping.name_col, 2)
        self.assertEqual(list(mapping.financial_cols.values()), ["Budget", "EAC", "Variance"])

    def test_column_b_is_assumed_when_job_is_column_a(self):
        mapping = detect_columns(to_cells(["Job #", "Ref", "Title", "Committed Costs"]))
        self.assertEqual(mapping.job_col, 0)
        self.assertEqual(mapping.identifier_col, 1)
        self.assertEqual(mapping.name_col, 2)
        self.assertEqual(mapping.financial_cols, {3: "Committed Costs"})

    def test_no_column_b_default_when_job_is_elsewhere(self):
        mapping = detect_columns(to_cells(["Region", "Job Number", "Description", "Spent"]))
        self.assertEqual(mapping.job_col, 1)
        self.assertIsNone(mapping.identifier_col)

    def test_financial_labels_are_kept_verbatim(self):
        mapping = detect_columns(to_cells(["Job", "Name", "  Hard Cost BUDGET "]))
        self.assertEqual(mapping.financial_labels, ["Hard Cost BUDGET"])

    def test_custom_hints(self):
        mapping = detect_columns(
            to_cells(["WBS", "Facility", "Amount"]),
            job_hints=["wbs"],
            name_hints=["facility"],
            financial_hints=["amount"],
        )
        self.assertEqual((mapping.job_col, mapping.name_col), (0, 1))
        self.assertEqual(mapping.financial_cols, {2: "Amount"})

    def test_missing_identifying_columns_is_fatal(self):
        mapping = detect_columns(to_cells(["Region", "Budget", "Forecast"]))
        self.assertEqual(mapping.financial_labels, ["Budget", "Forecast"])
        with self.assertRaises(ColumnDetectionError):
            mapping.require_identifying_column()


if __name__ == "__main__":
    unittest.main()
