# tests/test_parsers.py
from datetime import datetime, timedelta, timezone

import pytest

from datafeed.parsers import parse_amount_rupees, parse_date, parse_deeplink
from ledger.errors import UnparsableAmount, UnparsableDate

UTC = timezone.utc
NOW = datetime(2025, 12, 20, 12, 0, tzinfo=UTC)


def test_parse_date_without_year_uses_reference_year():
    assert parse_date("19 Oct, 7:56 pm", NOW) == datetime(2025, 10, 19, 19, 56, tzinfo=UTC)


@pytest.mark.parametrize("text,expected", [
    ("3 Jan 2024, 10:05 AM", datetime(2024, 1, 3, 10, 5, tzinfo=UTC)),
    ("19 Oct 2024 7:56pm", datetime(2024, 10, 19, 19, 56, tzinfo=UTC)),
    ("  5 mar, 12:30 am ", datetime(2025, 3, 5, 0, 30, tzinfo=UTC)),
    ("5 MAR, 12:15 PM", datetime(2025, 3, 5, 12, 15, tzinfo=UTC)),
])
def test_parse_date_variants(text, expected):
    assert parse_date(text, NOW) == expected


def test_parse_date_keeps_reference_timezone():
    ist = timezone(timedelta(hours=5, minutes=30))
    parsed = parse_date("19 Oct, 7:56 pm", NOW.astimezone(ist))
    assert parsed.tzinfo == ist
    assert (parsed.hour, parsed.minute) == (19, 56)


def test_parse_date_rolls_back_year_across_new_year():
    now = datetime(2026, 1, 2, 9, 0, tzinfo=UTC)
    assert parse_date("30 Dec, 9:00 pm", now) == datetime(2025, 12, 30, 21, 0, tzinfo=UTC)


def test_parse_date_leap_day_rolled_into_common_year_spills_to_march():
    now = datetime(2024, 2, 1, 12, 0, tzinfo=UTC)
    assert parse_date("29 Feb, 10:00 am", now) == datetime(2023, 3, 1, 10, 0, tzinfo=UTC)


def test_parse_date_within_a_day_ahead_is_not_rolled_back():
    now = datetime(2025, 10, 19, 12, 0, tzinfo=UTC)
    assert parse_date("20 Oct, 9:00 am", now).year == 2025


def test_parse_date_explicit_year_is_never_rolled_back():
    now = datetime(2025, 1, 1, 0, 0, tzinfo=UTC)
    assert parse_date("31 Dec 2025, 11:00 pm", now).year == 2025


@pytest.mark.parametrize("text", [
    "",
    "yesterday",
    "19 Foo, 7:56 pm",
    "19 Oct, 13:00 pm",
    "19 Oct, 0:30 am",
    "19 Oct, 7:60 pm",
    "32 Oct, 7:56 pm",
    "29 Feb 2023, 1:00 pm",
    "19 Oct, 7:56",
])
def test_parse_date_rejects(text):
    with pytest.raises(UnparsableDate):
        parse_date(text, NOW)


@pytest.mark.parametrize("text,expected", [
    ("₹1,234", 1234),
    ("₹493", 493),
    (" ₹ 1,00,000 ", 100000),
    ("57", 57),
    ("₹-20", -20),
])
def test_parse_amount(text, expected):
    assert parse_amount_rupees(text) == expected


@pytest.mark.parametrize("text", ["₹12.50", "", "₹", "free", "₹12 rupees"])
def test_parse_amount_rejects(text):
    with pytest.raises(UnparsableAmount):
        parse_amount_rupees(text)


def test_parse_deeplink_reads_order_and_cart():
    link = "grofers://widgetized/order_details_v2?order_id=123&cart_id=999"
    assert parse_deeplink(link) == ("123", "999")


def test_parse_deeplink_tracking_id_takes_precedence():
    link = "grofers://widgetized/order_details_v2?order_id=123&cart_id=999"
    assert parse_deeplink(link, "555") == ("555", "999")


@pytest.mark.parametrize("link", ["", None, "not a link", "http://[broken"])
def test_parse_deeplink_without_query_keeps_fallback(link):
    assert parse_deeplink(link, "777") == ("777", "")
