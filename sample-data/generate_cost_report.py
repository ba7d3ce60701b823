#!/usr/bin/env python3
"""
Generates sample-data/Cost Report Summary 10.15.25.xlsx, a weekly cost-report
summary shaped like the exports cost-ledger ingests.

Run from the repo root:
    python sample-data/generate_cost_report.py

Then try:
    cost-ledger diagnose "sample-data/Cost Report Summary 10.15.25.xlsx" --registry sample-data/projects.json
    cost-ledger ingest "sample-data/Cost Report Summary 10.15.25.xlsx" \
        --registry sample-data/projects.json --db /tmp/ledger.sqlite3 --period-start 2025-10-13

What is baked in:
  - Three banner rows and a blank row above the header
  - Region banners ("SDC Ashburn", "SDC Leesburg") between data rows
  - One project split across several rows with site suffixes (-QUIE1, -QUIE2)
  - Currency strings, thousands separators and accounting negatives "(1,250.00)"
  - "n/a" job numbers, with and without a project number
  - A dash placeholder in a financial cell
  - A row whose project number is not in the registry
"""

from pathlib import Path
import openpyxl
from openpyxl.styles import Font

OUTPUT = Path(__file__).parent / "Cost Report Summary 10.15.25.xlsx"

HEADER = [
    "Job",
    "Project Number",
    "Project Name",
    "Total Budget",
    "Forecasted Cost @ Completion",
    "Actual Costs Invoiced",
    "Committed Costs",
    "Variance (Over)/Under",
]

ROWS = [
    ["SDC Ashburn"],
    ["24001", "24-5-072-QUIE1", "SDC-Ashburn Campus Phase 1", "$1,200,000.00", "1,250,000", 600000, 900000, "(50,000.00)"],
    ["24001", "24-5-072-QUIE2", "SDC-Ashburn Campus Phase 1", 800000, 790000, 410000, 700000, 10000],
    ["24002", "24-5-072", "Ashburn Campus Phase 1 Fitout", 150000, 150000, 0, 25000, "-"],
    ["n/a", "n/a", None, 10, 10, 0, 0, 0],
    [],
    ["SDC Leesburg"],
    ["n/a", "25-8-131", "SDC-Leesburg Data Hall 3", 3400000, 3380000, 1200000, 2900000, 20000],
    ["25-8-140", "25-8-140-LDH4", "Leesburg Data Hall 4", 2100000, "2,350,000.00", 300000, 1800000, "(250,000.00)"],
    ["99999", "77-7-777", "Unknown Warehouse", 300, 300, 0, 0, 0],
]

wb = openpyxl.Workbook()
ws = wb.active
ws.title = "Summary"

ws.append(["Acme Data Centers"])
ws.append(["Cost Report Summary"])
ws.append(["Report Date: 10/15/2025"])
ws.append([])
ws.append(HEADER)
for cell in ws[ws.max_row]:
    cell.font = Font(bold=True)

for row in ROWS:
    ws.append(row)
    if len(row) == 1:
        ws.cell(row=ws.max_row, column=1).font = Font(bold=True, italic=True)

for column, width in zip("ABCDEFGH", (10, 18, 32, 16, 28, 22, 18, 22)):
    ws.column_dimensions[column].width = width

wb.save(OUTPUT)
print(f"Saved: {OUTPUT}")
