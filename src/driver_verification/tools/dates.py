from __future__ import annotations

import logging
import re
from datetime import date, datetime
from typing import Optional

from dateutil import parser as date_parser

LOGGER = logging.getLogger(__name__)

# Sentinel age for a document whose date could not be read; always "too old".
UNKNOWN_AGE_DAYS: int = 999

MONTHS = {
    "january": 1, "february": 2, "march": 3, "april": 4,
    "may": 5, "june": 6, "july": 7, "august": 8,
    "september": 9, "october": 10, "november": 11, "december": 12,
}
_SHORT_MONTHS = {name[:3]: number for name, number in MONTHS.items()}

# "14 July 2025" / "14 July 2025 10:32"
_RECORD_DATE_RE = re.compile(r"^(\d{1,2})\s+([A-Za-z]+)\s+(\d{4})(?:\s+\d{1,2}:\d{2})?$")
_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}")
# dateutil fills missing parts from this; a year of 1 means no year was given.
_NO_YEAR = datetime(1, 1, 1)

# Any date token the driving record or a bill may print.
DATE_TOKEN = r"\d{1,2}\s+[A-Za-z]{3,9}\s+\d{4}|\d{1,2}/\d{1,2}/\d{2,4}|\d{4}-\d{2}-\d{2}"


def parse_record_date(text: Optional[str]) -> Optional[date]:
    """Parse 'D Month YYYY[ HH:MM]' (month name case-insensitive), else fall back to dateutil."""
    if not text or not isinstance(text, str):
        return None
    cleaned = " ".join(text.split())
    match = _RECORD_DATE_RE.match(cleaned)
    if match:
        day, month_name, year = match.groups()
        month_name = month_name.lower()
        month = MONTHS.get(month_name) or _SHORT_MONTHS.get(month_name[:3])
        if month:
            try:
                return date(int(year), month, int(day))
            except ValueError:
                return None
    if _ISO_DATE_RE.match(cleaned):
        try:
            return date.fromisoformat(cleaned[:10])
        except ValueError:
            return None
    try:
        parsed = date_parser.parse(cleaned, dayfirst=True, default=_NO_YEAR)
    except (ValueError, OverflowError):
        parsed = None
    if parsed is None or parsed.year == _NO_YEAR.year:
        LOGGER.warning("Could not parse record date: %r", text)
        return None
    return parsed.date()


def days_since(then: Optional[date], today: date) -> int:
    if then is None:
        return UNKNOWN_AGE_DAYS
    return (today - then).days


def months_before(today: date, months: int) -> date:
    """Same calendar day `months` earlier, clamped to the month's last day."""
    year, month = divmod(today.year * 12 + (today.month - 1) - months, 12)
    month += 1
    day = today.day
    while day > 28:
        try:
            return date(year, month, day)
        except ValueError:
            day -= 1
    return date(year, month, day)
