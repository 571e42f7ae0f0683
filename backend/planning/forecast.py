"""
Forecast Generator — Heuristic daily demand curve per (product, region).

Algorithm:
  1. Daily totals over the trailing history window (duplicate rows summed)
  2. avg = mean(daily totals), or a fixed default when there is no history
  3. trend = mean(second half) / mean(first half), clamped, only with enough points
  4. predicted(day) = max(1, round(avg × seasonal(month) × trend × weekday))
  5. confidence(day) = clamp(85 − 0.5·day + 0.5·samples, 65, 95)

Regeneration is a replace-set: every forecast for the scoped
(product, region) pairs is deleted and the new curve inserted under a fresh
run_id in the same transaction, so re-running never accumulates rows.
This stage never touches inventory.
"""

import math
import uuid
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any

import pandas as pd
import structlog
from sqlalchemy import delete, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from core.exceptions import NotFoundError, ValidationError
from db.activity import record_activity
from db.models import Dealer, Forecast, HistoricalSale, Product, Warehouse
from planning.calendar import seasonal_factor, weekday_factor

logger = structlog.get_logger()

CONFIDENCE_BASE = 85.0
CONFIDENCE_DECAY_PER_DAY = 0.5
CONFIDENCE_PER_SAMPLE = 0.5
CONFIDENCE_FLOOR = 65.0
CONFIDENCE_CEILING = 95.0


@dataclass
class DemandProfile:
    """Summary of recent demand that drives the forward curve."""

    avg_daily_demand: float
    trend_factor: float
    sample_size: int


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values (Python's round() is banker's)."""
    return int(math.floor(value + 0.5))


def daily_totals(sales: pd.DataFrame) -> list[float]:
    """Collapse sale rows to one total per date, oldest first."""
    if sales.empty:
        return []
    grouped = sales.groupby("sale_date", sort=True)["quantity"].sum()
    return [float(v) for v in grouped.tolist()]


def build_profile(
    totals: list[float],
    default_demand: float | None = None,
    min_trend_points: int | None = None,
    trend_floor: float | None = None,
    trend_ceiling: float | None = None,
) -> DemandProfile:
    settings = get_settings()
    default_demand = settings.forecast_default_daily_demand if default_demand is None else default_demand
    min_trend_points = settings.forecast_trend_min_points if min_trend_points is None else min_trend_points
    trend_floor = settings.forecast_trend_floor if trend_floor is None else trend_floor
    trend_ceiling = settings.forecast_trend_ceiling if trend_ceiling is None else trend_ceiling

    n = len(totals)
    if n == 0:
        return DemandProfile(avg_daily_demand=float(default_demand), trend_factor=1.0, sample_size=0)

    avg = sum(totals) / n

    trend = 1.0
    if n >= min_trend_points:
        mid = n // 2
        first, second = totals[:mid], totals[mid:]
        avg_first = sum(first) / len(first)
        avg_second = sum(second) / len(second)
        if avg_first > 0:
            trend = max(trend_floor, min(trend_ceiling, avg_second / avg_first))

    return DemandProfile(avg_daily_demand=avg, trend_factor=trend, sample_size=n)


def forecast_confidence(day_offset: int, sample_size: int) -> float:
    raw = CONFIDENCE_BASE - CONFIDENCE_DECAY_PER_DAY * day_offset + CONFIDENCE_PER_SAMPLE * sample_size
    return round(min(CONFIDENCE_CEILING, max(CONFIDENCE_FLOOR, raw)), 1)


def forecast_curve(profile: DemandProfile, today: date, horizon_days: int) -> list[tuple[date, int, float]]:
    """(date, predicted_demand, confidence) for day 1..horizon after today."""
    curve = []
    for day in range(1, horizon_days + 1):
        target = today + timedelta(days=day)
        raw = profile.avg_daily_demand * seasonal_factor(target) * profile.trend_factor * weekday_factor(target)
        predicted = max(1, round_half_up(raw))
        curve.append((target, predicted, forecast_confidence(day, profile.sample_size)))
    return curve


async def resolve_regions(db: AsyncSession, region: str | None = None) -> list[str]:
    """The region filter, else every region in the catalog, else the configured defaults."""
    if region is not None:
        return [region]
    wh_regions = (await db.execute(select(Warehouse.region).distinct())).scalars().all()
    dealer_regions = (await db.execute(select(Dealer.region).distinct())).scalars().all()
    regions = sorted({r for r in [*wh_regions, *dealer_regions] if r})
    return regions or list(get_settings().planning_regions)


async def _load_history(
    db: AsyncSession,
    product_ids: list[uuid.UUID],
    regions: list[str],
    since: date,
    today: date,
) -> pd.DataFrame:
    result = await db.execute(
        select(HistoricalSale.product_id, HistoricalSale.region, HistoricalSale.sale_date, HistoricalSale.quantity)
        .where(
            HistoricalSale.product_id.in_(product_ids),
            HistoricalSale.region.in_(regions),
            HistoricalSale.sale_date >= since,
            HistoricalSale.sale_date <= today,
        )
        .order_by(HistoricalSale.sale_date.asc())
    )
    rows = result.all()
    if not rows:
        return pd.DataFrame(columns=["product_id", "region", "sale_date", "quantity"])
    return pd.DataFrame(
        [
            {
                "product_id": row.product_id,
                "region": row.region,
                "sale_date": row.sale_date,
                "quantity": int(row.quantity or 0),
            }
            for row in rows
        ]
    )


def _validate_filter(name: str, value: str | None) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"Malformed {name} filter: {value!r}")
    return value.strip()


async def generate_forecast(
    db: AsyncSession,
    sku: str | None = None,
    region: str | None = None,
    user_name: str | None = None,
    today: date | None = None,
) -> dict[str, Any]:
    """
    Regenerate the forecast horizon for every (product, region) in scope.

    Returns counts plus the run_id that tags the inserted rows.
    """
    settings = get_settings()
    sku = _validate_filter("sku", sku)
    region = _validate_filter("region", region)
    today = today or date.today()
    run_id = uuid.uuid4()

    query = select(Product).order_by(Product.sku)
    if sku:
        query = query.where(Product.sku == sku)
    products = (await db.execute(query)).scalars().all()
    if sku and not products:
        raise NotFoundError(f"Product with SKU '{sku}' not found")

    regions = await resolve_regions(db, region)
    logger.info(
        "forecast.started",
        run_id=str(run_id),
        products=len(products),
        regions=len(regions),
        horizon_days=settings.forecast_horizon_days,
    )

    product_ids = [p.product_id for p in products]
    history = await _load_history(
        db,
        product_ids,
        regions,
        since=today - timedelta(days=settings.forecast_history_days),
        today=today,
    )
    grouped = (
        {key: frame for key, frame in history.groupby(["product_id", "region"], sort=False)}
        if not history.empty
        else {}
    )

    rows: list[dict[str, Any]] = []
    for product in products:
        for reg in regions:
            frame = grouped.get((product.product_id, reg))
            totals = daily_totals(frame) if frame is not None else []
            profile = build_profile(totals)
            for forecast_date, predicted, confidence in forecast_curve(profile, today, settings.forecast_horizon_days):
                rows.append(
                    {
                        "forecast_id": uuid.uuid4(),
                        "run_id": run_id,
                        "product_id": product.product_id,
                        "region": reg,
                        "forecast_date": forecast_date,
                        "predicted_demand": predicted,
                        "confidence": confidence,
                    }
                )

    if product_ids:
        await db.execute(
            delete(Forecast)
            .where(
                Forecast.product_id.in_(product_ids),
                Forecast.region.in_(regions),
            )
            .execution_options(synchronize_session=False)
        )
    if rows:
        await db.execute(insert(Forecast), rows)

    record_activity(
        db,
        "forecast_run",
        user_name=user_name,
        entity_type="forecast",
        details={
            "run_id": str(run_id),
            "products_count": len(products),
            "regions": len(regions),
            "forecasts_generated": len(rows),
        },
    )
    await db.commit()

    summary = {
        "run_id": str(run_id),
        "forecasts_generated": len(rows),
        "products_processed": len(products),
        "regions_processed": len(regions),
    }
    logger.info("forecast.generated", **summary)
    return summary
