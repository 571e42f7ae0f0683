"""
Activity Router — Read-only audit trail.
"""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import Page, get_db, paginate
from db.models import ActivityLogEntry

router = APIRouter(prefix="/api/v1/activity", tags=["activity"])


class ActivityResponse(BaseModel):
    entry_id: UUID
    user_name: str | None
    action: str
    entity_type: str | None
    entity_id: UUID | None
    details: dict | None
    created_at: datetime

    model_config = {"from_attributes": True}


@router.get("/", response_model=list[ActivityResponse])
async def list_activity(
    action: str | None = None,
    entity_type: str | None = None,
    page: Page = Depends(paginate(50, 500)),
    db: AsyncSession = Depends(get_db),
):
    """Audit entries, newest first."""
    query = select(ActivityLogEntry)
    if action:
        query = query.where(ActivityLogEntry.action == action)
    if entity_type:
        query = query.where(ActivityLogEntry.entity_type == entity_type)
    query = page.apply(query.order_by(ActivityLogEntry.created_at.desc()))
    result = await db.execute(query)
    return result.scalars().all()
