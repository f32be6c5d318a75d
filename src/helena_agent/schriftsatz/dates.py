"""German date parsing and deadline arithmetic."""

from __future__ import annotations

import calendar
import re
from datetime import date, datetime, timedelta

_GERMAN_DATE = re.compile(r"^(\d{1,2})\.(\d{1,2})\.(\d{4})$")
_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")


def parse_date_string(value: object) -> date | None:
    """Parse `TT.MM.JJJJ` or ISO `JJJJ-MM-TT`; anything else yields None."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    match = _GERMAN_DATE.match(text)
    if match:
        day, month, year = (int(part) for part in match.groups())
    else:
        match = _ISO_DATE.match(text)
        if not match:
            return None
        year, month, day = (int(part) for part in match.groups())
    try:
        return date(year, month, day)
    except ValueError:
        return None


def format_date(value: date) -> str:
    return value.strftime("%d.%m.%Y")


def add_months(value: date, months: int) -> date:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def add_days(value: date, days: int) -> date:
    return value + timedelta(days=days)


def days_until(deadline: date, today: date | None = None) -> int:
    """Whole days from `today` to `deadline`; negative once it has passed."""
    return (deadline - (today or date.today())).days
