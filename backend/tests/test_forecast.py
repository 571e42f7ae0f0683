"""
Tests for the Forecast Generator.

Covers:
  - Demand profile (average, default, trend clamp)
  - Confidence decay and bounds
  - Daily curve (seasonality, rest days, half-up rounding)
  - Replace-set regeneration (no accumulation across runs)
  - Duplicate sale rows summed per date
  - SKU / region filters
"""

from datetime import date, timedelta

import pandas as pd
import pytest
from sqlalchemy import func, select

from core.exceptions import NotFoundError, ValidationError
from db.models import ActivityLogEntry, Forecast, HistoricalSale
from planning.forecast import (
    DemandProfile,
    build_profile,
    daily_totals,
    forecast_confidence,
    forecast_curve,
    generate_forecast,
    round_half_up,
)

# A Wednesday in June: no festival window.
TODAY = date(2026, 6, 10)


# ── Demand Profile ─────────────────────────────────────────────────────


class TestBuildProfile:
    def test_no_history_uses_default(self):
        profile = build_profile([])
        assert profile.avg_daily_demand == 20.0
        assert profile.trend_factor == 1.0
        assert profile.sample_size == 0

    def test_average_of_daily_totals(self):
        profile = build_profile([10, 20, 30])
        assert profile.avg_daily_demand == 20.0
        assert profile.trend_factor == 1.0  # too few points for a trend

    def test_trend_clamped_to_ceiling(self):
        profile = build_profile([10] * 4 + [20] * 4)
        assert profile.avg_daily_demand == 15.0
        assert profile.trend_factor == 1.3

    def test_trend_clamped_to_floor(self):
        profile = build_profile([20] * 4 + [5] * 4)
        assert profile.trend_factor == 0.8

    def test_trend_within_band(self):
        profile = build_profile([10] * 4 + [11] * 4)
        assert profile.trend_factor == pytest.approx(1.1)

    def test_odd_count_split_at_floor_half(self):
        # n=7 → first half is 3 points, second half 4
        profile = build_profile([10, 10, 10, 12, 12, 12, 12])
        assert profile.trend_factor == pytest.approx(1.2)

    def test_zero_first_half_keeps_neutral_trend(self):
        profile = build_profile([0] * 4 + [10] * 4)
        assert profile.trend_factor == 1.0


class TestDailyTotals:
    def test_duplicate_dates_are_summed(self):
        frame = pd.DataFrame(
            {
                "sale_date": [date(2026, 6, 1), date(2026, 6, 1), date(2026, 6, 2)],
                "quantity": [10, 20, 30],
            }
        )
        assert daily_totals(frame) == [30.0, 30.0]

    def test_empty_frame(self):
        assert daily_totals(pd.DataFrame(columns=["sale_date", "quantity"])) == []


# ── Confidence + Curve ─────────────────────────────────────────────────


class TestConfidence:
    def test_decays_with_horizon(self):
        assert forecast_confidence(1, 0) == 84.5
        assert forecast_confidence(30, 0) == 70.0

    def test_more_samples_raise_confidence(self):
        assert forecast_confidence(1, 14) > forecast_confidence(1, 0)

    def test_bounds(self):
        assert forecast_confidence(200, 0) == 65.0
        assert forecast_confidence(1, 100) == 95.0


class TestForecastCurve:
    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(12.5) == 13
        assert round_half_up(12.49) == 12

    def test_default_curve(self):
        curve = forecast_curve(DemandProfile(20.0, 1.0, 0), TODAY, 30)
        assert len(curve) == 30
        first_date, first_demand, first_conf = curve[0]
        assert first_date == TODAY + timedelta(days=1)
        assert first_demand == 22  # 20 × June 1.10
        assert first_conf == 84.5

    def test_rest_day_factor(self):
        curve = dict((d, q) for d, q, _ in forecast_curve(DemandProfile(20.0, 1.0, 0), TODAY, 7))
        assert curve[date(2026, 6, 13)] == 12  # Saturday: 20 × 1.10 × 0.55 = 12.1

    def test_month_boundary_switches_season(self):
        curve = dict((d, q) for d, q, _ in forecast_curve(DemandProfile(20.0, 1.0, 0), TODAY, 30))
        assert curve[date(2026, 7, 10)] == 16  # July Friday: 20 × 0.80

    def test_never_below_one(self):
        curve = forecast_curve(DemandProfile(0.1, 1.0, 5), TODAY, 5)
        assert all(q >= 1 for _, q, _ in curve)


# ── Generation ─────────────────────────────────────────────────────────


@pytest.mark.asyncio
class TestGenerateForecast:
    async def test_generates_full_horizon_per_region(self, test_db, seeded_db):
        result = await generate_forecast(test_db, today=TODAY)
        # one product × {North, South} × 30 days
        assert result["forecasts_generated"] == 60
        assert result["products_processed"] == 1
        assert result["regions_processed"] == 2

    async def test_regeneration_replaces_rows(self, test_db, seeded_db):
        await generate_forecast(test_db, today=TODAY)
        second = await generate_forecast(test_db, today=TODAY)
        count = await test_db.scalar(select(func.count(Forecast.forecast_id)))
        assert count == 60
        run_ids = (await test_db.execute(select(Forecast.run_id).distinct())).scalars().all()
        assert [str(r) for r in run_ids] == [second["run_id"]]

    async def test_duplicate_sales_summed(self, test_db, seeded_db):
        product_id = seeded_db["product_id"]
        test_db.add_all(
            [
                HistoricalSale(product_id=product_id, region="North", sale_date=TODAY - timedelta(days=2), quantity=10),
                HistoricalSale(product_id=product_id, region="North", sale_date=TODAY - timedelta(days=2), quantity=20),
                HistoricalSale(product_id=product_id, region="North", sale_date=TODAY - timedelta(days=1), quantity=30),
            ]
        )
        await test_db.commit()

        await generate_forecast(test_db, region="North", today=TODAY)
        row = (
            await test_db.execute(
                select(Forecast).where(
                    Forecast.region == "North",
                    Forecast.forecast_date == TODAY + timedelta(days=1),
                )
            )
        ).scalar_one()
        # avg 30/day × June 1.10
        assert row.predicted_demand == 33
        assert row.confidence == 85.5

    async def test_history_outside_window_ignored(self, test_db, seeded_db):
        test_db.add(
            HistoricalSale(
                product_id=seeded_db["product_id"],
                region="North",
                sale_date=TODAY - timedelta(days=40),
                quantity=1000,
            )
        )
        await test_db.commit()

        await generate_forecast(test_db, region="North", today=TODAY)
        demand = await test_db.scalar(
            select(Forecast.predicted_demand).where(Forecast.forecast_date == TODAY + timedelta(days=1))
        )
        assert demand == 22

    async def test_region_filter_leaves_other_regions(self, test_db, seeded_db):
        await generate_forecast(test_db, today=TODAY)
        await generate_forecast(test_db, region="North", today=TODAY)
        south = await test_db.scalar(select(func.count(Forecast.forecast_id)).where(Forecast.region == "South"))
        north = await test_db.scalar(select(func.count(Forecast.forecast_id)).where(Forecast.region == "North"))
        assert south == 30
        assert north == 30

    async def test_sku_filter(self, test_db, seeded_db):
        result = await generate_forecast(test_db, sku="PF-INT-001", today=TODAY)
        assert result["products_processed"] == 1

    async def test_unknown_sku_raises(self, test_db, seeded_db):
        with pytest.raises(NotFoundError):
            await generate_forecast(test_db, sku="NOPE-999", today=TODAY)

    async def test_blank_filter_raises(self, test_db, seeded_db):
        with pytest.raises(ValidationError):
            await generate_forecast(test_db, region="   ", today=TODAY)

    async def test_empty_catalog_uses_default_regions(self, test_db):
        result = await generate_forecast(test_db, today=TODAY)
        assert result["forecasts_generated"] == 0
        assert result["regions_processed"] == 5

    async def test_logs_activity(self, test_db, seeded_db):
        await generate_forecast(test_db, user_name="Priya", today=TODAY)
        entry = (
            await test_db.execute(select(ActivityLogEntry).where(ActivityLogEntry.action == "forecast_run"))
        ).scalar_one()
        assert entry.user_name == "Priya"
        assert entry.details["forecasts_generated"] == 60
