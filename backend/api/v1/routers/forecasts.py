"""
Forecasts Router — Demand forecast endpoints.
"""

from datetime import date, datetime
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import Page, get_db, paginate
from db.models import Forecast, Product

router = APIRouter(prefix="/api/v1/forecasts", tags=["forecasts"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class ForecastResponse(BaseModel):
    forecast_id: UUID
    run_id: UUID
    product_id: UUID
    sku: str
    region: str
    forecast_date: date
    predicted_demand: int
    confidence: float | None
    created_at: datetime


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/", response_model=list[ForecastResponse])
async def list_forecasts(
    sku: str | None = None,
    region: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    page: Page = Depends(paginate(100, 1000)),
    db: AsyncSession = Depends(get_db),
):
    """List forecasts with optional SKU, region and date-range filters."""
    query = select(Forecast, Product.sku).join(Product, Product.product_id == Forecast.product_id)
    if sku:
        query = query.where(Product.sku == sku)
    if region:
        query = query.where(Forecast.region == region)
    if start_date:
        query = query.where(Forecast.forecast_date >= start_date)
    if end_date:
        query = query.where(Forecast.forecast_date <= end_date)
    query = page.apply(query.order_by(Forecast.forecast_date, Product.sku, Forecast.region))
    result = await db.execute(query)
    return [
        ForecastResponse(
            forecast_id=fc.forecast_id,
            run_id=fc.run_id,
            product_id=fc.product_id,
            sku=product_sku,
            region=fc.region,
            forecast_date=fc.forecast_date,
            predicted_demand=fc.predicted_demand,
            confidence=fc.confidence,
            created_at=fc.created_at,
        )
        for fc, product_sku in result.all()
    ]
