# datafeed/parsers.py
"""
Field grammars used by the order history decoder.

All functions are pure: the reference "now" for year-less dates is always passed in,
never read from the clock.
"""
from __future__ import annotations

import re
from datetime import datetime, timedelta
from typing import Optional, Tuple
from urllib.parse import parse_qs, urlsplit

from ledger.errors import UnparsableAmount, UnparsableDate

# "19 Oct, 7:56 pm", "3 Jan 2024, 10:05 AM", "19 Oct 2024 7:56pm"
_DATE_RE = re.compile(
    r"^(\d{1,2})\s([A-Za-z]{3}),?\s*(\d{4})?,?\s*(\d{1,2}):(\d{2})\s?([AaPp][Mm])$"
)

_MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}

_AMOUNT_RE = re.compile(r"^[+-]?\d+$")

RUPEE = "₹"

# year-less dates further ahead than this are assumed to belong to last year
FUTURE_SLACK = timedelta(hours=24)


def parse_date(text: str, now: datetime) -> datetime:
    """
    Parse an order date such as "19 Oct, 7:56 pm" relative to `now`.

    The result carries now's tzinfo. When the year is missing it defaults to now.year
    and is rolled back one year if that puts the order more than 24h in the future.
    Raises UnparsableDate on anything else.
    """
    if text is None:
        raise UnparsableDate("", "empty date")
    m = _DATE_RE.match(text.strip())
    if not m:
        raise UnparsableDate(text)

    day_s, mon_s, year_s, hour_s, minute_s, meridiem = m.groups()
    month = _MONTHS.get(mon_s.lower())
    if month is None:
        raise UnparsableDate(text, "unknown month")

    hour, minute = int(hour_s), int(minute_s)
    if not 1 <= hour <= 12 or minute > 59:
        raise UnparsableDate(text, "invalid clock time")
    hour = hour % 12
    if meridiem.lower() == "pm":
        hour += 12

    year_explicit = year_s is not None
    year = int(year_s) if year_explicit else now.year

    try:
        parsed = datetime(year, month, int(day_s), hour, minute, tzinfo=now.tzinfo)
        if not year_explicit and parsed > now + FUTURE_SLACK:
            # 29 Feb in a non-leap year spills over to 1 Mar
            parsed = datetime(year - 1, month, 1, hour, minute, tzinfo=now.tzinfo) + timedelta(days=int(day_s) - 1)
    except ValueError as e:
        raise UnparsableDate(text, f"invalid calendar date ({e})") from e
    return parsed


def parse_amount_rupees(text: str) -> int:
    """Parse "₹1,234" into 1234. Fractional or non-numeric amounts raise UnparsableAmount."""
    if text is None:
        raise UnparsableAmount("", "empty amount")
    clean = text.strip()
    if clean.startswith(RUPEE):
        clean = clean[len(RUPEE):]
    clean = clean.replace(",", "").strip()
    if not clean:
        raise UnparsableAmount(text, "empty amount")
    if not _AMOUNT_RE.match(clean):
        raise UnparsableAmount(text)
    return int(clean)


def parse_deeplink(raw: Optional[str], fallback_order_id: str = "") -> Tuple[str, str]:
    """
    Recover (order_id, cart_id) from a deep-link like
    "grofers://widgetized/order_details_v2?order_id=123&cart_id=999".

    The deep-link order id only fills in when `fallback_order_id` is empty.
    Absent or unparsable links give (fallback_order_id, "").
    """
    if not raw:
        return fallback_order_id, ""
    try:
        query = parse_qs(urlsplit(raw).query)
    except ValueError:
        return fallback_order_id, ""
    order_id = (query.get("order_id") or [""])[0]
    cart_id = (query.get("cart_id") or [""])[0]
    return fallback_order_id or order_id, cart_id
