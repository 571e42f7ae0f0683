"""
Planning Router — Pipeline triggers.

  forecast → plan → (approve/reject via /recommendations) → execute

Each endpoint is one short unit of work; scheduling is left to the caller
(cron, Celery, an operator clicking a button).
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_db
from planning.forecast import generate_forecast
from planning.projection import simulate_plan
from planning.recommendations import generate_plan
from supply_chain.execution import execute_plan

router = APIRouter(prefix="/api/v1/planning", tags=["planning"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class ActorRequest(BaseModel):
    user_name: str | None = None


class ForecastRequest(ActorRequest):
    sku: str | None = None
    region: str | None = None


class ForecastRunResponse(BaseModel):
    run_id: str
    forecasts_generated: int
    products_processed: int
    regions_processed: int


class PlanRunResponse(BaseModel):
    run_id: str
    recommendations_generated: int
    projections_generated: int


class ExecutionResponse(BaseModel):
    executed: int
    total: int
    errors: list[str]
    message: str


class SimulatedProjection(BaseModel):
    warehouse_id: str
    warehouse: str | None
    product_id: str
    sku: str | None
    current_stock_l: float
    incoming_l: float
    outgoing_l: float
    projected_stock_l: float


class SimulationResponse(BaseModel):
    mode: str
    horizon_days: int
    movements: int
    projections: list[SimulatedProjection]


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.post("/forecast", response_model=ForecastRunResponse)
async def run_forecast(
    body: ForecastRequest | None = None,
    db: AsyncSession = Depends(get_db),
):
    """Regenerate the demand forecast (optionally for one SKU and/or region)."""
    body = body or ForecastRequest()
    return await generate_forecast(db, sku=body.sku, region=body.region, user_name=body.user_name)


@router.post("/plan", response_model=PlanRunResponse)
async def run_plan(
    body: ActorRequest | None = None,
    db: AsyncSession = Depends(get_db),
):
    """Replace pending recommendations and refresh projections."""
    body = body or ActorRequest()
    return await generate_plan(db, user_name=body.user_name)


@router.post("/execute", response_model=ExecutionResponse)
async def run_execution(
    body: ActorRequest | None = None,
    db: AsyncSession = Depends(get_db),
):
    """Apply every approved planned action to inventory. Partial success is reported, not raised."""
    body = body or ActorRequest()
    return await execute_plan(db, user_name=body.user_name)


@router.post("/simulate", response_model=SimulationResponse)
async def run_simulation(db: AsyncSession = Depends(get_db)):
    """What-if projection of the in-flight plan in litres. Persists nothing."""
    return await simulate_plan(db)
