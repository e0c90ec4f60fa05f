"""Tests for RateProvider: the daily silver rate history."""

from datetime import date
from decimal import Decimal

import pytest

from silver_kernel.exceptions import InvalidRateError, SilverRateNotFoundError
from silver_kernel.services.rate_service import parse_rate


class TestSetRate:

    def test_create(self, rate_provider, test_actor_id):
        rate, created = rate_provider.set_rate(date(2024, 1, 1), "75.5", test_actor_id)
        assert created is True
        assert rate.rate_per_gram == Decimal("75.5000")
        assert rate.is_active is True

    def test_same_date_overwrites(self, rate_provider, test_actor_id):
        first, _ = rate_provider.set_rate(date(2024, 1, 1), 75, test_actor_id)
        second, created = rate_provider.set_rate(date(2024, 1, 1), 78, test_actor_id)
        assert created is False
        assert second.id == first.id
        assert rate_provider.get_current_rate(date(2024, 1, 1)).rate_per_gram == Decimal("78.0000")

    @pytest.mark.parametrize("value", [0, "-1", "abc", None, True])
    def test_invalid_rate(self, rate_provider, test_actor_id, value):
        with pytest.raises(InvalidRateError):
            rate_provider.set_rate(date(2024, 1, 1), value, test_actor_id)

    def test_logs_rate_set(self, rate_provider, test_actor_id, captured_logs):
        rate_provider.set_rate(date(2024, 1, 1), 75, test_actor_id)
        events = [r for r in captured_logs() if r["message"] == "silver_rate_set"]
        assert events and events[0]["rate_created"] is True


class TestCurrentRate:

    def test_none_when_empty(self, rate_provider):
        assert rate_provider.get_current_rate() is None

    def test_require_raises_when_empty(self, rate_provider):
        with pytest.raises(SilverRateNotFoundError) as exc_info:
            rate_provider.require_current_rate(date(2024, 1, 1))
        assert exc_info.value.as_of == "2024-01-01"

    def test_latest_on_or_before(self, rate_provider, test_actor_id):
        rate_provider.set_rate(date(2023, 12, 30), 74, test_actor_id)
        rate_provider.set_rate(date(2023, 12, 31), 76, test_actor_id)
        rate_provider.set_rate(date(2024, 1, 2), 80, test_actor_id)

        assert rate_provider.get_current_rate(date(2024, 1, 1)).rate_per_gram == Decimal("76.0000")
        assert rate_provider.get_current_rate(date(2024, 1, 2)).rate_per_gram == Decimal("80.0000")

    def test_defaults_to_clock_business_day(self, rate_provider, test_actor_id):
        rate_provider.set_rate(date(2024, 1, 1), 75, test_actor_id)
        rate_provider.set_rate(date(2024, 1, 2), 99, test_actor_id)
        # Deterministic clock is on 2024-01-01
        assert rate_provider.get_current_rate().rate_per_gram == Decimal("75.0000")

    def test_deactivated_rate_is_skipped(self, rate_provider, test_actor_id):
        rate_provider.set_rate(date(2023, 12, 31), 74, test_actor_id)
        rate_provider.set_rate(date(2024, 1, 1), 75, test_actor_id)
        rate_provider.deactivate_rate(date(2024, 1, 1), test_actor_id)
        assert rate_provider.get_current_rate().rate_per_gram == Decimal("74.0000")

    def test_deactivate_missing_rate(self, rate_provider, test_actor_id):
        with pytest.raises(SilverRateNotFoundError):
            rate_provider.deactivate_rate(date(2024, 1, 1), test_actor_id)


def test_history_newest_first(rate_provider, test_actor_id):
    for day, value in [(1, 70), (3, 72), (2, 71)]:
        rate_provider.set_rate(date(2024, 1, day), value, test_actor_id)
    history = rate_provider.list_history(limit=2)
    assert [r.rate_date for r in history] == [date(2024, 1, 3), date(2024, 1, 2)]


def test_parse_rate_rounds_to_four_places():
    assert parse_rate("75.123456") == Decimal("75.1235")
