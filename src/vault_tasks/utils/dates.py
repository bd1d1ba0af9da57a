"""
Date parsing and formatting utilities.

Pure functions, no external dependencies. Only calendar dates are handled;
any time-of-day or timezone component is discarded.
"""

import re
from datetime import date, datetime
from typing import Optional

_ISO_DATE = re.compile(r"^([0-9]{4})-([0-9]{2})-([0-9]{2})$")

_FALLBACK_FORMATS = (
    "%Y/%m/%d",
    "%Y.%m.%d",
    "%B %d, %Y",
    "%b %d, %Y",
    "%B %d %Y",
    "%b %d %Y",
)


def parse_iso_date(date_str: str) -> Optional[date]:
    """
    Parse a strict ISO 8601 calendar date ("2026-02-15").

    Returns None for anything else, including impossible dates like
    "2026-02-30".
    """
    m = _ISO_DATE.match(date_str or "")
    if not m:
        return None
    try:
        return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    except ValueError:
        return None


def parse_date(date_str: str) -> Optional[date]:
    """
    Parse a loosely formatted date into a calendar date.

    Supports:
    - ISO 8601 date: "2026-02-15"
    - ISO 8601 date-time: "2026-02-15T09:30", "2026-02-15 09:30:00+02:00"
    - Slashed/dotted: "2026/02/15", "2026.02.15"
    - Month names: "February 15, 2026", "Feb 15 2026"

    Returns:
        The date, or None if the text is not a valid calendar date
    """
    if not date_str:
        return None

    date_str = date_str.strip()

    parsed = parse_iso_date(date_str)
    if parsed:
        return parsed

    try:
        return datetime.fromisoformat(date_str.replace("Z", "+00:00")).date()
    except ValueError:
        pass

    for fmt in _FALLBACK_FORMATS:
        try:
            return datetime.strptime(date_str, fmt).date()
        except ValueError:
            continue

    return None


def format_date(value: date) -> str:
    """Canonical write-back format: YYYY-MM-DD, no time, no timezone."""
    return value.strftime("%Y-%m-%d")


def today() -> date:
    return datetime.now().date()
