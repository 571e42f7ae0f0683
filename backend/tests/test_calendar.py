"""Tests for the planning calendar."""

from datetime import date

from core.config import get_settings
from planning.calendar import SEASONAL_FACTORS, is_festival_season, is_rest_day, seasonal_factor, weekday_factor


class TestCalendar:
    def test_every_month_has_a_factor(self):
        assert sorted(SEASONAL_FACTORS) == list(range(1, 13))

    def test_seasonal_factor(self):
        assert seasonal_factor(date(2026, 11, 2)) == 1.5
        assert seasonal_factor(date(2026, 7, 20)) == 0.8

    def test_rest_days(self):
        assert is_rest_day(date(2026, 6, 13))  # Saturday
        assert is_rest_day(date(2026, 6, 14))  # Sunday
        assert not is_rest_day(date(2026, 6, 15))

    def test_custom_rest_days(self):
        friday = date(2026, 6, 12)
        assert is_rest_day(friday, frozenset({4}))
        assert weekday_factor(friday, frozenset({4}), 0.4) == 0.4

    def test_rest_days_follow_reloaded_settings(self, monkeypatch):
        friday = date(2026, 6, 12)
        monkeypatch.setenv("FORECAST_REST_DAYS", "[4]")
        get_settings.cache_clear()
        try:
            assert is_rest_day(friday)
            assert not is_rest_day(date(2026, 6, 13))
        finally:
            monkeypatch.delenv("FORECAST_REST_DAYS")
            get_settings.cache_clear()
        assert not is_rest_day(friday)

    def test_weekday_factor(self):
        assert weekday_factor(date(2026, 6, 10)) == 1.0
        assert weekday_factor(date(2026, 6, 13)) == 0.55

    def test_festival_window(self):
        assert is_festival_season(date(2026, 10, 1))
        assert not is_festival_season(date(2026, 6, 1))
        assert is_festival_season(date(2026, 6, 1), months=[6])
