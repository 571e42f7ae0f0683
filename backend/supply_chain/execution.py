"""
Plan Execution — Approval workflow and the only path that moves stock.

State machine (one-way):
  pending → approved → executed
  pending → rejected

Every transition is a conditional UPDATE guarded on the expected current
status, so a second caller racing on the same record matches zero rows and
becomes a no-op instead of a double-apply.

Execution walks approved planned actions oldest first. Each action is its
own transaction:
  1. Claim it (approved → executed)
  2. Apply the ledger movement for its kind
       - transfer: debit source, credit destination
       - reorder:  credit destination (supplier receipt, no debit)
       - order:    debit the dealer's warehouse, write a dealer order
  3. Record the movement, flip the recommendation, log activity, commit

A failing action is rolled back on its own and reported; the rest of the
batch still runs.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import NotFoundError, PlanningError, StateConflictError, ValidationError
from db.activity import SYSTEM_USER, record_activity
from db.models import DealerOrder, InventoryMovement, PlannedAction, Recommendation
from inventory import ledger

logger = structlog.get_logger()

DECISIONS = {"approve": "approved", "reject": "rejected"}


def _coerce_uuid(value: Any) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError as exc:
        raise ValidationError(f"Malformed recommendation_id: {value!r}") from exc


async def decide_recommendation(
    db: AsyncSession,
    recommendation_id: uuid.UUID | str | None,
    decision: str | None,
    user_name: str | None = None,
) -> dict[str, Any]:
    """
    Approve or reject a pending recommendation together with its planned action.

    Approval only stages the action; inventory moves on execute_plan.
    """
    if not recommendation_id or not decision:
        raise ValidationError("Missing recommendation_id or action")
    if decision not in DECISIONS:
        raise ValidationError(f"Invalid action '{decision}'")

    rec_id = _coerce_uuid(recommendation_id)
    rec = (
        await db.execute(
            select(
                Recommendation.action_type,
                Recommendation.product_id,
                Recommendation.quantity,
                Recommendation.status,
            ).where(Recommendation.recommendation_id == rec_id)
        )
    ).one_or_none()
    if rec is None:
        raise NotFoundError("Recommendation not found")

    new_status = DECISIONS[decision]
    actor = user_name or SYSTEM_USER
    now = datetime.utcnow()

    rec_values: dict[str, Any] = {"status": new_status}
    action_values: dict[str, Any] = {"status": new_status}
    if new_status == "approved":
        rec_values["approved_at"] = now
        action_values.update(approved_by=actor, approved_at=now)

    guarded = await db.execute(
        update(Recommendation)
        .where(
            Recommendation.recommendation_id == rec_id,
            Recommendation.status == "pending",
        )
        .values(**rec_values)
        .execution_options(synchronize_session="evaluate")
    )
    if guarded.rowcount == 0:
        current = await db.scalar(select(Recommendation.status).where(Recommendation.recommendation_id == rec_id))
        await db.rollback()
        logger.info("recommendation.decision_conflict", recommendation_id=str(rec_id), current_status=current)
        raise StateConflictError(f"Recommendation already {current}", current_status=current)

    await db.execute(
        update(PlannedAction)
        .where(
            PlannedAction.recommendation_id == rec_id,
            PlannedAction.status == "pending",
        )
        .values(**action_values)
        .execution_options(synchronize_session="evaluate")
    )

    details: dict[str, Any] = {"type": rec.action_type, "product_id": rec.product_id}
    if new_status == "approved":
        details.update(quantity=rec.quantity, note="Plan approved, awaiting execution")
    record_activity(
        db,
        "plan_approved" if new_status == "approved" else "recommendation_rejected",
        user_name=actor,
        entity_type="recommendation",
        entity_id=rec_id,
        details=details,
    )
    await db.commit()

    logger.info("recommendation.decided", recommendation_id=str(rec_id), status=new_status, user=actor)
    result = {"recommendation_id": str(rec_id), "status": new_status}
    if new_status == "approved":
        result["message"] = "Plan approved. Use Execute Plan to apply changes to inventory."
    return result


@dataclass
class ActionSnapshot:
    """Plain copy of an approved action; survives the session rollbacks between items."""

    action_id: uuid.UUID
    recommendation_id: uuid.UUID | None
    action_type: str
    product_id: uuid.UUID
    quantity: int
    source_warehouse_id: uuid.UUID | None
    destination_warehouse_id: uuid.UUID | None
    dealer_id: uuid.UUID | None
    from_location: str | None
    to_location: str

    @classmethod
    def from_action(cls, action: PlannedAction) -> "ActionSnapshot":
        return cls(
            action_id=action.action_id,
            recommendation_id=action.recommendation_id,
            action_type=action.action_type,
            product_id=action.product_id,
            quantity=action.quantity,
            source_warehouse_id=action.source_warehouse_id,
            destination_warehouse_id=action.destination_warehouse_id,
            dealer_id=action.dealer_id,
            from_location=action.from_location,
            to_location=action.to_location,
        )


async def _claim(db: AsyncSession, snap: ActionSnapshot, actor: str, now: datetime) -> bool:
    result = await db.execute(
        update(PlannedAction)
        .where(
            PlannedAction.action_id == snap.action_id,
            PlannedAction.status == "approved",
        )
        .values(status="executed", executed_by=actor, executed_at=now)
        .execution_options(synchronize_session="evaluate")
    )
    return result.rowcount == 1


async def _apply_transfer(db: AsyncSession, snap: ActionSnapshot) -> dict[str, Any]:
    if not snap.source_warehouse_id or not snap.destination_warehouse_id:
        raise NotFoundError(f"warehouse not found for {snap.from_location} → {snap.to_location}")
    await ledger.transfer(db, snap.source_warehouse_id, snap.destination_warehouse_id, snap.product_id, snap.quantity)
    db.add(
        InventoryMovement(
            recommendation_id=snap.recommendation_id,
            action_id=snap.action_id,
            source_warehouse_id=snap.source_warehouse_id,
            destination_warehouse_id=snap.destination_warehouse_id,
            product_id=snap.product_id,
            quantity=snap.quantity,
            movement_type="transfer",
        )
    )
    return {"from": snap.from_location, "to": snap.to_location}


async def _apply_reorder(db: AsyncSession, snap: ActionSnapshot) -> dict[str, Any]:
    if not snap.destination_warehouse_id:
        raise NotFoundError(f"warehouse {snap.to_location} not found")
    await ledger.credit(db, snap.destination_warehouse_id, snap.product_id, snap.quantity)
    db.add(
        InventoryMovement(
            recommendation_id=snap.recommendation_id,
            action_id=snap.action_id,
            destination_warehouse_id=snap.destination_warehouse_id,
            product_id=snap.product_id,
            quantity=snap.quantity,
            movement_type="reorder",
        )
    )
    return {"warehouse": snap.to_location}


async def _apply_order(db: AsyncSession, snap: ActionSnapshot) -> dict[str, Any]:
    if not snap.dealer_id or not snap.source_warehouse_id:
        raise NotFoundError(f"dealer {snap.to_location} not found or has no supplying warehouse")
    await ledger.debit(db, snap.source_warehouse_id, snap.product_id, snap.quantity)
    db.add(
        DealerOrder(
            dealer_id=snap.dealer_id,
            warehouse_id=snap.source_warehouse_id,
            product_id=snap.product_id,
            recommendation_id=snap.recommendation_id,
            quantity=snap.quantity,
            status="fulfilled",
        )
    )
    db.add(
        InventoryMovement(
            recommendation_id=snap.recommendation_id,
            action_id=snap.action_id,
            source_warehouse_id=snap.source_warehouse_id,
            product_id=snap.product_id,
            quantity=snap.quantity,
            movement_type="order",
        )
    )
    return {"dealer": snap.to_location}


# Action kind → (ledger handler, activity action)
HANDLERS = {
    "transfer": (_apply_transfer, "transfer_executed"),
    "reorder": (_apply_reorder, "reorder_executed"),
    "order": (_apply_order, "order_placed"),
}


async def _execute_one(db: AsyncSession, snap: ActionSnapshot, actor: str) -> bool:
    """Run one action in its own transaction. False when another caller already claimed it."""
    handler = HANDLERS.get(snap.action_type)
    if handler is None:
        raise ValidationError(f"Unknown action type '{snap.action_type}'")
    apply, activity = handler

    now = datetime.utcnow()
    if not await _claim(db, snap, actor, now):
        await db.rollback()
        return False

    details = await apply(db, snap)

    if snap.recommendation_id:
        await db.execute(
            update(Recommendation)
            .where(
                Recommendation.recommendation_id == snap.recommendation_id,
                Recommendation.status == "approved",
            )
            .values(status="executed", executed_at=now)
            .execution_options(synchronize_session="evaluate")
        )

    record_activity(
        db,
        activity,
        user_name=actor,
        entity_type="planned_action",
        entity_id=snap.action_id,
        details={"product_id": snap.product_id, "quantity": snap.quantity, **details},
    )
    await db.commit()
    return True


async def _record_failure(db: AsyncSession, snap: ActionSnapshot, actor: str, message: str) -> None:
    record_activity(
        db,
        "plan_action_failed",
        user_name=actor,
        entity_type="planned_action",
        entity_id=snap.action_id,
        details={"type": snap.action_type, "product_id": snap.product_id, "error": message},
    )
    await db.commit()


async def execute_plan(db: AsyncSession, user_name: str | None = None) -> dict[str, Any]:
    """
    Execute every approved planned action, oldest first.

    Returns {executed, total, errors, message}. Per-item failures never
    abort the batch; an action already claimed elsewhere is skipped.
    """
    actor = user_name or SYSTEM_USER
    result = await db.execute(
        select(PlannedAction)
        .where(PlannedAction.status == "approved")
        .order_by(PlannedAction.created_at.asc(), PlannedAction.planned_execution_date.asc())
    )
    snapshots = [ActionSnapshot.from_action(a) for a in result.scalars().all()]

    if not snapshots:
        return {"executed": 0, "total": 0, "errors": [], "message": "No approved plans to execute."}

    logger.info("plan.execute_started", total=len(snapshots), user=actor)

    executed = 0
    skipped = 0
    errors: list[str] = []
    for snap in snapshots:
        try:
            if await _execute_one(db, snap, actor):
                executed += 1
            else:
                skipped += 1
                logger.info("plan.action_skipped", action_id=str(snap.action_id))
        except PlanningError as exc:
            await db.rollback()
            message = f"{snap.action_type.capitalize()} failed: {exc}"
            errors.append(message)
            logger.warning("plan.action_failed", action_id=str(snap.action_id), error=str(exc))
            await _record_failure(db, snap, actor, message)
        except SQLAlchemyError as exc:
            await db.rollback()
            message = f"Plan {snap.action_id}: {exc.__class__.__name__}"
            errors.append(message)
            logger.error("plan.action_storage_error", action_id=str(snap.action_id), exc_info=True)
            await _record_failure(db, snap, actor, message)

    total = len(snapshots)
    record_activity(
        db,
        "plan_executed",
        user_name=actor,
        entity_type="plan",
        details={"executed": executed, "total": total, "errors": len(errors)},
    )
    await db.commit()

    logger.info("plan.executed", executed=executed, total=total, skipped=skipped, errors=len(errors))
    return {
        "executed": executed,
        "total": total,
        "errors": errors,
        "message": f"Executed {executed}/{total} planned actions.",
    }
