"""
Spreadsheet cell values and numeric normalization.

Every raw value coming out of a workbook or CSV reader is converted once into
a small tagged union (EmptyCell, NumberCell, TextCell). Parsing routines match
on that union instead of inspecting loader-specific runtime types.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, Union

import pandas as pd

PLACEHOLDER_TEXTS = {"", "-", "--", "---", "n/a", "na", "none", "null", "nil", "nan", "tbd"}
CURRENCY_SYMBOLS = ("$", "€", "£", "¥", "₹")
CURRENCY_CODE_RE = re.compile(r"^(?:USD|EUR|GBP|CAD|AUD)\s*|\s*(?:USD|EUR|GBP|CAD|AUD)$", re.IGNORECASE)
NUMBER_RE = re.compile(r"(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")


@dataclass(frozen=True)
class EmptyCell:
    def __str__(self) -> str:
        return ""


@dataclass(frozen=True)
class NumberCell:
    value: float

    def __str__(self) -> str:
        return format_number(self.value)


@dataclass(frozen=True)
class TextCell:
    text: str

    def __str__(self) -> str:
        return self.text


Cell = Union[EmptyCell, NumberCell, TextCell]
EMPTY = EmptyCell()


def to_cell(value: Any) -> Cell:
    if value is None:
        return EMPTY
    if isinstance(value, (EmptyCell, NumberCell, TextCell)):
        return value
    if isinstance(value, bool):
        return TextCell("TRUE" if value else "FALSE")
    if isinstance(value, (int, float)):
        if isinstance(value, float) and math.isnan(value):
            return EMPTY
        return NumberCell(float(value))
    if isinstance(value, datetime):
        return TextCell(value.strftime("%Y-%m-%d %H:%M:%S"))
    if isinstance(value, date):
        return TextCell(value.strftime("%Y-%m-%d"))
    if isinstance(value, time):
        return TextCell(value.strftime("%H:%M:%S"))
    # numpy scalars and pandas NA both land here
    try:
        if pd.isna(value):
            return EMPTY
    except (TypeError, ValueError):
        pass
    if hasattr(value, "item") and not isinstance(value, str):
        try:
            return to_cell(value.item())
        except (TypeError, ValueError):
            pass
    text = str(value).replace("\x00", "")
    if not text.strip():
        return EMPTY
    return TextCell(text)


def to_cells(values: list[Any]) -> list[Cell]:
    return [to_cell(value) for value in values]


def is_empty(cell: Cell) -> bool:
    return isinstance(cell, EmptyCell)


def format_number(value: float) -> str:
    if math.isfinite(value) and value == int(value):
        return str(int(value))
    return repr(value)


def cell_text(cell: Cell) -> str | None:
    """Trimmed text of a cell, or None when the cell holds nothing."""
    if isinstance(cell, EmptyCell):
        return None
    if isinstance(cell, NumberCell):
        if math.isnan(cell.value):
            return None
        return format_number(cell.value)
    text = cell.text.strip()
    return text or None


def cell_at(cells: list[Cell], index: int | None) -> Cell:
    if index is None or index < 0 or index >= len(cells):
        return EMPTY
    return cells[index]


def non_empty_count(cells: list[Cell]) -> int:
    return sum(1 for cell in cells if not is_empty(cell))


def is_placeholder(text: str | None) -> bool:
    if text is None:
        return True
    return text.strip().lower() in PLACEHOLDER_TEXTS


def parse_numeric(cell: Cell) -> float | None:
    """
    Convert a cell to a float.

    "$1,234.56" -> 1234.56, "$(400.00)" -> -400.0, "1.5E+06" -> 1500000.0,
    "--" / "-" / "" -> None.
    Text that is still not a plain number after cleanup yields None.
    """
    if isinstance(cell, EmptyCell):
        return None
    if isinstance(cell, NumberCell):
        return None if math.isnan(cell.value) else cell.value
    return parse_numeric_text(cell.text)


def parse_numeric_text(raw: str) -> float | None:
    text = raw.strip()
    if is_placeholder(text):
        return None

    text = CURRENCY_CODE_RE.sub("", text)
    for symbol in CURRENCY_SYMBOLS:
        text = text.replace(symbol, "")
    text = text.replace(",", "").replace(" ", "").replace("\u00a0", "")

    negative = False
    if text.startswith("-"):
        negative = True
        text = text[1:]
    elif text.startswith("+"):
        text = text[1:]
    # Currency is already gone, so "$(400.00)" and "($400.00)" both land here.
    if text.startswith("(") and text.endswith(")"):
        negative = True
        text = text[1:-1]

    if not NUMBER_RE.fullmatch(text):
        return None
    number = float(text)
    return -number if negative else number
