"""
Alerts Router — Alert evaluation and listing.
"""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from alerts.engine import evaluate_alerts
from api.deps import Page, get_db, paginate
from db.models import Alert

router = APIRouter(prefix="/api/v1/alerts", tags=["alerts"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class AlertResponse(BaseModel):
    alert_id: UUID
    alert_type: str
    severity: str
    title: str
    description: str | None
    region: str | None
    sku: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class AlertSummary(BaseModel):
    total: int
    critical: int
    warning: int
    info: int


class EvaluateRequest(BaseModel):
    user_name: str | None = None


class EvaluateResponse(BaseModel):
    alerts_generated: int
    pruned: int
    by_type: dict[str, int]


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.post("/evaluate", response_model=EvaluateResponse)
async def run_alert_evaluation(
    body: EvaluateRequest | None = None,
    db: AsyncSession = Depends(get_db),
):
    """Prune old alerts and evaluate every rule against current data."""
    body = body or EvaluateRequest()
    return await evaluate_alerts(db, user_name=body.user_name)


@router.get("/", response_model=list[AlertResponse])
async def list_alerts(
    severity: str | None = None,
    alert_type: str | None = None,
    region: str | None = None,
    page: Page = Depends(paginate(50, 200)),
    db: AsyncSession = Depends(get_db),
):
    """List alerts, newest first."""
    query = select(Alert)
    if severity:
        query = query.where(Alert.severity == severity)
    if alert_type:
        query = query.where(Alert.alert_type == alert_type)
    if region:
        query = query.where(Alert.region == region)
    query = page.apply(query.order_by(Alert.created_at.desc()))
    result = await db.execute(query)
    return result.scalars().all()


@router.get("/summary", response_model=AlertSummary)
async def get_alert_summary(db: AsyncSession = Depends(get_db)):
    """Alert counts by severity."""
    result = await db.execute(select(Alert.severity, func.count(Alert.alert_id)).group_by(Alert.severity))
    counts = {row[0]: row[1] for row in result.all()}
    return AlertSummary(
        total=sum(counts.values()),
        critical=counts.get("critical", 0),
        warning=counts.get("warning", 0),
        info=counts.get("info", 0),
    )
