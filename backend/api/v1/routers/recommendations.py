"""
Recommendations Router — Review queue for proposed actions.

The human-in-the-loop step of the planning workflow:
  1. Planner proposes → status='pending'
  2. Reviewer approves or rejects
  3. Approved actions wait for the next execute run → status='executed'

Decisions are guarded on the current status; deciding twice returns 409.
"""

from datetime import datetime
from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import Page, get_db, paginate
from db.models import Product, Recommendation
from inventory.packaging import format_packaging
from supply_chain.execution import decide_recommendation

router = APIRouter(prefix="/api/v1/recommendations", tags=["recommendations"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class RecommendationResponse(BaseModel):
    recommendation_id: UUID
    run_id: UUID
    action_type: str
    product_id: UUID
    sku: str | None = None
    from_location: str | None
    to_location: str
    quantity: int
    packaging: str | None = None
    reason: str | None
    priority: str
    confidence: float | None
    status: str
    created_at: datetime
    approved_at: datetime | None
    executed_at: datetime | None

    model_config = {"from_attributes": True}


class RecommendationSummary(BaseModel):
    total: int
    pending: int
    approved: int
    rejected: int
    executed: int
    high_priority_pending: int


class DecisionRequest(BaseModel):
    action: Literal["approve", "reject"]
    user_name: str | None = None


class DecisionResponse(BaseModel):
    recommendation_id: UUID
    status: str
    message: str | None = None


# ─── Helpers ─────────────────────────────────────────────────────────────────


def _to_response(rec: Recommendation, product: Product | None) -> RecommendationResponse:
    item = RecommendationResponse.model_validate(rec)
    if product is not None:
        item.sku = product.sku
        item.packaging = format_packaging(rec.quantity, product)
    return item


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/", response_model=list[RecommendationResponse])
async def list_recommendations(
    status: str | None = None,
    action_type: str | None = None,
    priority: str | None = None,
    page: Page = Depends(paginate(50, 200)),
    db: AsyncSession = Depends(get_db),
):
    """List recommendations, newest first."""
    query = select(Recommendation, Product).join(Product, Product.product_id == Recommendation.product_id)
    if status:
        query = query.where(Recommendation.status == status)
    if action_type:
        query = query.where(Recommendation.action_type == action_type)
    if priority:
        query = query.where(Recommendation.priority == priority)
    query = page.apply(query.order_by(Recommendation.created_at.desc())).execution_options(populate_existing=True)
    result = await db.execute(query)
    return [_to_response(rec, product) for rec, product in result.all()]


@router.get("/summary", response_model=RecommendationSummary)
async def get_recommendation_summary(db: AsyncSession = Depends(get_db)):
    """Counts by status."""
    result = await db.execute(
        select(Recommendation.status, func.count(Recommendation.recommendation_id)).group_by(Recommendation.status)
    )
    counts = {row[0]: row[1] for row in result.all()}
    high = await db.scalar(
        select(func.count(Recommendation.recommendation_id)).where(
            Recommendation.status == "pending",
            Recommendation.priority == "high",
        )
    )
    return RecommendationSummary(
        total=sum(counts.values()),
        pending=counts.get("pending", 0),
        approved=counts.get("approved", 0),
        rejected=counts.get("rejected", 0),
        executed=counts.get("executed", 0),
        high_priority_pending=high or 0,
    )


@router.get("/{recommendation_id}", response_model=RecommendationResponse)
async def get_recommendation(
    recommendation_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """Get a single recommendation by ID."""
    rec = await db.get(Recommendation, recommendation_id, populate_existing=True)
    if not rec:
        raise HTTPException(status_code=404, detail="Recommendation not found")
    product = await db.get(Product, rec.product_id)
    return _to_response(rec, product)


@router.post("/{recommendation_id}/decision", response_model=DecisionResponse)
async def decide(
    recommendation_id: UUID,
    body: DecisionRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Approve or reject a pending recommendation.

    Approval only stages the action; stock moves on /planning/execute.
    """
    return await decide_recommendation(db, recommendation_id, body.action, user_name=body.user_name)
