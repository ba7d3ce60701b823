"""Reporting-week helpers: Monday period starts, Sunday period ends, file-name dates."""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from typing import Optional, Union

from cost_ledger.errors import IngestOptionsError

PERIOD_LENGTH_DAYS = 6

ISO_NAME_DATE_RE = re.compile(r"(?<!\d)(\d{4})[.\-/_](\d{1,2})[.\-/_](\d{1,2})(?!\d)")
US_NAME_DATE_RE = re.compile(r"(?<!\d)(\d{1,2})[.\-/_](\d{1,2})[.\-/_](\d{2}|\d{4})(?!\d)")

DateLike = Union[date, datetime, str]


def week_start(value: date) -> date:
    """Monday of the week containing ``value``."""
    if isinstance(value, datetime):
        value = value.date()
    return value - timedelta(days=value.weekday())


def week_end(value: date) -> date:
    """Sunday of the week containing ``value``."""
    return week_start(value) + timedelta(days=PERIOD_LENGTH_DAYS)


def period_end(period_start: date) -> date:
    return period_start + timedelta(days=PERIOD_LENGTH_DAYS)


def to_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError as exc:
        raise IngestOptionsError(f"Invalid date: {value!r} (expected YYYY-MM-DD)") from exc


def parse_period_start(value: Optional[DateLike]) -> Optional[date]:
    """
    Normalize a period start to the Monday of its week.

    Returns None for None; anything unparseable raises IngestOptionsError.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return week_start(to_date(value))


def extract_date_from_filename(file_name: Optional[str]) -> Optional[date]:
    """
    Pull a report date out of names like "Cost Report Summary 10.15.25.xlsx".

    Four-digit leading years ("2025.10.15") are read year-first; everything
    else is read US month-first, with two-digit years placed in the 2000s.
    """
    if not file_name:
        return None

    for match in ISO_NAME_DATE_RE.finditer(file_name):
        year, month, day = (int(part) for part in match.groups())
        try:
            return date(year, month, day)
        except ValueError:
            continue

    for match in US_NAME_DATE_RE.finditer(file_name):
        month, day, year = (int(part) for part in match.groups())
        if year < 100:
            year += 2000
        try:
            return date(year, month, day)
        except ValueError:
            continue
    return None
