"""Unit tests for date arithmetic helpers and settings parsing."""

import pytest
from datetime import date, datetime
from decimal import Decimal

from contractflow.core.config import Settings
from contractflow.utils.datetime_helpers import (
    add_days,
    apply_uplift,
    format_datetime_to_iso,
    to_day,
)


class TestToDay:
    @pytest.mark.parametrize("value, expected", [
        (datetime(2024, 3, 1, 23, 59), date(2024, 3, 1)),
        (date(2024, 3, 1), date(2024, 3, 1)),
        ("2024-03-01T10:00:00Z", date(2024, 3, 1)),
        (None, None),
    ])
    def test_truncates_time_of_day(self, value, expected):
        assert to_day(value) == expected


def test_add_days_crosses_year():
    assert add_days(date(2024, 12, 31), 1) == date(2025, 1, 1)
    assert add_days(date(2024, 3, 1), -1) == date(2024, 2, 29)


def test_apply_uplift_rounds_to_cents():
    assert apply_uplift(Decimal("1000"), 10) == Decimal("1100.00")
    assert apply_uplift(999.99, Decimal("2.5")) == Decimal("1024.99")
    assert apply_uplift(None, 10) == Decimal("0.00")
    assert apply_uplift(Decimal("500"), -20) == Decimal("400.00")


def test_format_datetime_to_iso():
    assert format_datetime_to_iso(datetime(2025, 1, 9, 10, 30)) == "2025-01-09T10:30:00Z"
    assert format_datetime_to_iso(None) is None


def test_reminder_days_from_comma_separated_env(monkeypatch):
    monkeypatch.setenv("RENEWAL_REMINDER_DAYS", "60, 14")
    assert Settings().RENEWAL_REMINDER_DAYS == [60, 14]


def test_mail_configured_needs_credentials():
    assert not Settings(MAIL_USERNAME=None, MAIL_PASSWORD=None).mail_configured
    assert Settings(MAIL_USERNAME="bot@acme.test", MAIL_PASSWORD="secret").mail_configured
