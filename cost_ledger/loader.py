"""
loader.py — spreadsheet buffer loader for cost-ledger

Supports: .xlsx .xlsm (openpyxl), .xls (pandas + xlrd), .csv .tsv .txt (pandas)

Public API:
    sheet = load_workbook_rows(buffer, file_name="Cost Report Summary 10.15.25.xlsx")
    sheet.rows  -> list[list[Cell]]

The loader reads raw rows without assuming where the header is; header and
column detection happen downstream.
"""

from __future__ import annotations

import csv
import io
import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import chardet
import pandas as pd
from openpyxl import load_workbook

from cost_ledger.cells import Cell, non_empty_count, to_cells
from cost_ledger.errors import SpreadsheetParseError

logger = logging.getLogger(__name__)

# ── Format groups ──────────────────────────────────────────────────────────────
TEXT_FORMATS = {".csv", ".tsv", ".txt"}
OOXML_FORMATS = {".xlsx", ".xlsm"}
LEGACY_FORMATS = {".xls"}
ALL_FORMATS = TEXT_FORMATS | OOXML_FORMATS | LEGACY_FORMATS

ZIP_MAGIC = b"PK\x03\x04"
OLE2_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"


@dataclass
class LoadedSheet:
    rows: list[list[Cell]]
    sheet_name: Optional[str]
    sheet_names: list[str]
    detected_format: str
    detected_encoding: Optional[str] = None
    warnings: list[str] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)


# ══════════════════════════════════════════════════════════════════════════════
# FORMAT DETECTION
# ══════════════════════════════════════════════════════════════════════════════

def detect_format(buffer: bytes, file_name: Optional[str] = None) -> str:
    """Pick a reader from the magic bytes, falling back to the file suffix."""
    if buffer.startswith(ZIP_MAGIC):
        return "xlsx"
    if buffer.startswith(OLE2_MAGIC):
        return "xls"
    suffix = Path(file_name).suffix.lower() if file_name else ""
    if suffix in OOXML_FORMATS or suffix in LEGACY_FORMATS:
        # The suffix promises a workbook but the bytes are not one.
        raise SpreadsheetParseError(
            f"Could not read workbook: {file_name} is not a valid {suffix} file"
        )
    if suffix == ".tsv":
        return "tsv"
    return "csv"


# ══════════════════════════════════════════════════════════════════════════════
# TEXT DECODING
# ══════════════════════════════════════════════════════════════════════════════

def _detect_encoding(raw: bytes) -> str:
    result = chardet.detect(raw[:200_000])
    encoding = result.get("encoding") or "utf-8"
    return encoding


def _read_text_safely(raw: bytes, preferred_encoding: str) -> str:
    """
    Decode raw bytes line-by-line.

    Each line tries UTF-8, then the detected encoding, then latin-1, and
    finally CP1252 with replacement so decoding never fails outright.
    """
    decoded_lines: list[str] = []
    for raw_line in raw.split(b"\n"):
        decoded: str | None = None
        for enc in ("utf-8", preferred_encoding, "latin-1"):
            if not enc:
                continue
            try:
                decoded = raw_line.decode(enc)
                break
            except (LookupError, UnicodeDecodeError):
                continue
        if decoded is None:
            decoded = raw_line.decode("cp1252", errors="replace")
        decoded_lines.append(decoded.replace("\x00", "").lstrip("\ufeff"))
    return "\n".join(decoded_lines)


def _multi_field_rows(lines: list[str], delimiter: str) -> list[list[str]]:
    return [
        row
        for row in csv.reader(io.StringIO("\n".join(lines)), delimiter=delimiter)
        if sum(1 for cell in row if cell.strip()) > 1
    ]


def _detect_delimiter(text: str) -> str:
    """
    Infer the delimiter from sample lines.

    csv.Sniffer gets the first try and is kept when it splits at least two
    lines into several fields; otherwise each candidate is scored by the
    width and consistency of its multi-field rows, so banner lines above
    the header do not drag the score down.
    """
    sample_lines = [line for line in text.splitlines() if line.strip()][:50]
    sample = "\n".join(sample_lines[:25])

    if sample:
        try:
            sniffed = csv.Sniffer().sniff(sample, delimiters=",;\t|").delimiter
        except csv.Error:
            sniffed = None
        if sniffed and len(_multi_field_rows(sample_lines, sniffed)) >= 2:
            return sniffed

    best_delim = ","
    best_score = float("-inf")
    for delim in (",", ";", "\t", "|"):
        rows = _multi_field_rows(sample_lines, delim)
        if len(rows) < 2:
            continue
        mode_width, mode_count = Counter(len(row) for row in rows).most_common(1)[0]
        score = (mode_width * 2.0) + (mode_count / len(rows)) * mode_width
        if score > best_score:
            best_score = score
            best_delim = delim
    return best_delim


# ══════════════════════════════════════════════════════════════════════════════
# FORMAT LOADERS
# ══════════════════════════════════════════════════════════════════════════════

def _has_data(rows: list[list[Any]]) -> bool:
    """First-sheet rule: at least two columns and two rows of content."""
    populated = [row for row in rows if any(value not in (None, "") for value in row)]
    if len(populated) < 2:
        return False
    return max(len(row) for row in populated) > 1


def _load_ooxml(buffer: bytes) -> LoadedSheet:
    try:
        workbook = load_workbook(io.BytesIO(buffer), read_only=True, data_only=True)
    except Exception as exc:
        raise SpreadsheetParseError(f"Could not read workbook: {exc}") from exc

    warnings: list[str] = []
    try:
        sheet_names = list(workbook.sheetnames)
        for name in sheet_names:
            raw_rows = [list(row) for row in workbook[name].iter_rows(values_only=True)]
            if _has_data(raw_rows):
                if name != sheet_names[0]:
                    warnings.append(f"Skipped empty leading sheet(s); using '{name}'")
                return LoadedSheet(
                    rows=[to_cells(row) for row in raw_rows],
                    sheet_name=name,
                    sheet_names=sheet_names,
                    detected_format="xlsx",
                    warnings=warnings,
                )
    finally:
        workbook.close()
    raise SpreadsheetParseError("No data sheet found in workbook")


def _load_legacy(buffer: bytes) -> LoadedSheet:
    try:
        import xlrd  # noqa: F401
    except ImportError:
        raise ImportError(".xls files require xlrd — run: pip install xlrd")

    try:
        with pd.ExcelFile(io.BytesIO(buffer)) as xf:
            sheet_names = list(xf.sheet_names)
            for name in sheet_names:
                df = pd.read_excel(xf, sheet_name=name, header=None)
                raw_rows = df.astype(object).where(df.notna(), None).values.tolist()
                if _has_data(raw_rows):
                    return LoadedSheet(
                        rows=[to_cells(row) for row in raw_rows],
                        sheet_name=name,
                        sheet_names=sheet_names,
                        detected_format="xls",
                    )
    except ImportError:
        raise
    except Exception as exc:
        raise SpreadsheetParseError(f"Could not read workbook: {exc}") from exc
    raise SpreadsheetParseError("No data sheet found in workbook")


def _load_text(buffer: bytes, fmt: str) -> LoadedSheet:
    if not buffer.strip():
        raise SpreadsheetParseError("Spreadsheet buffer is empty")
    encoding = _detect_encoding(buffer)
    text = _read_text_safely(buffer, encoding)
    delimiter = "\t" if fmt == "tsv" else _detect_delimiter(text)

    sep = r"\|" if delimiter == "|" else delimiter
    # Banner lines and trailing note fields make rows ragged; size the frame
    # to the widest row so no line is dropped.
    try:
        width = max(
            (len(row) for row in csv.reader(io.StringIO(text), delimiter=delimiter)),
            default=1,
        )
        df = pd.read_csv(
            io.StringIO(text),
            header=None,
            names=list(range(max(width, 1))),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=False,
            sep=sep,
            engine="python",
        )
    except Exception as exc:
        raise SpreadsheetParseError(f"Could not parse {fmt} buffer: {exc}") from exc

    rows = [to_cells(row) for row in df.values.tolist()]
    if not any(non_empty_count(row) > 1 for row in rows):
        raise SpreadsheetParseError(
            f"{fmt} buffer does not appear to contain delimited/tabular data"
        )
    return LoadedSheet(
        rows=rows,
        sheet_name=None,
        sheet_names=[],
        detected_format=fmt,
        detected_encoding=encoding,
    )


# ══════════════════════════════════════════════════════════════════════════════
# PUBLIC API
# ══════════════════════════════════════════════════════════════════════════════

def load_workbook_rows(buffer: bytes, file_name: Optional[str] = None) -> LoadedSheet:
    """
    Load the first data-bearing sheet of a spreadsheet buffer.

    Raises:
        SpreadsheetParseError  if the buffer is not a readable workbook/table.
        ImportError            if an optional reader (xlrd) is missing.
    """
    if not buffer:
        raise SpreadsheetParseError("Spreadsheet buffer is empty")

    fmt = detect_format(buffer, file_name)
    if fmt == "xlsx":
        sheet = _load_ooxml(buffer)
    elif fmt == "xls":
        sheet = _load_legacy(buffer)
    else:
        sheet = _load_text(buffer, fmt)

    logger.info(
        "Loaded %s sheet %r with %d raw rows",
        sheet.detected_format,
        sheet.sheet_name,
        sheet.row_count,
    )
    return sheet


def read_buffer(path: "str | Path") -> bytes:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    suffix = path.suffix.lower()
    if suffix and suffix not in ALL_FORMATS:
        supported = ", ".join(sorted(ALL_FORMATS))
        raise SpreadsheetParseError(f"Unsupported format '{suffix}'. Supported: {supported}")
    return path.read_bytes()
