from datetime import date, datetime

from helena_agent.schriftsatz.dates import add_days, add_months, days_until, format_date, parse_date_string


def test_parse_german_and_iso_dates() -> None:
    assert parse_date_string("03.02.2025") == date(2025, 2, 3)
    assert parse_date_string("3.2.2025") == date(2025, 2, 3)
    assert parse_date_string("2025-02-03") == date(2025, 2, 3)
    assert parse_date_string("2025-02-03T10:00:00Z") == date(2025, 2, 3)
    assert parse_date_string(datetime(2025, 2, 3, 12, 0)) == date(2025, 2, 3)


def test_parse_rejects_invalid_input() -> None:
    assert parse_date_string("31.02.2025") is None
    assert parse_date_string("morgen") is None
    assert parse_date_string(None) is None
    assert parse_date_string(20250203) is None


def test_month_arithmetic_clamps_to_month_end() -> None:
    assert add_months(date(2025, 1, 31), 1) == date(2025, 2, 28)
    assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert add_months(date(2025, 11, 15), 2) == date(2026, 1, 15)


def test_days_until_and_format() -> None:
    today = date(2025, 3, 20)
    assert days_until(add_days(today, 5), today) == 5
    assert days_until(date(2025, 3, 18), today) == -2
    assert format_date(date(2025, 3, 5)) == "05.03.2025"
