"""
Planning Calendar — seasonal demand curve, rest days and festival windows.

Paint demand in the network follows a strong yearly cycle:
  - Jan/Feb slow after the wedding season
  - Apr/May pre-summer and construction peak
  - Jul/Aug monsoon trough
  - Oct/Nov Navratri, Dussehra and Diwali repainting surge

Weekly pattern: dealers and sites are mostly closed on rest days, so
those days carry a fixed fraction of a normal day's demand.
"""

from collections.abc import Collection
from datetime import date

from core.config import get_settings

# Month (1-12) → demand multiplier used by the forecast generator.
SEASONAL_FACTORS: dict[int, float] = {
    1: 0.70,
    2: 0.75,
    3: 0.90,
    4: 1.20,
    5: 1.30,
    6: 1.10,
    7: 0.80,
    8: 0.85,
    9: 1.00,
    10: 1.40,
    11: 1.50,
    12: 0.90,
}


def seasonal_factor(day: date) -> float:
    return SEASONAL_FACTORS.get(day.month, 1.0)


def is_rest_day(day: date, rest_days: Collection[int] | None = None) -> bool:
    """True on designated rest days (date.weekday() numbering)."""
    days = rest_days if rest_days is not None else get_settings().forecast_rest_days
    return day.weekday() in days


def weekday_factor(day: date, rest_days: Collection[int] | None = None, rest_factor: float | None = None) -> float:
    if not is_rest_day(day, rest_days):
        return 1.0
    return rest_factor if rest_factor is not None else get_settings().forecast_rest_day_factor


def is_festival_season(day: date, months: list[int] | None = None) -> bool:
    """Festival window (Navratri → Diwali) used for the seasonal notice."""
    window = months if months is not None else get_settings().festival_months
    return day.month in window
