"""
Recommendation Planner — Turns forecasts and stock into corrective actions.

Rules:
  Warehouse pass (warehouses by name × products by SKU), when stock < min_stock:
    deficit = 2 × min_stock − stock
    - First other warehouse holding more than 2 × min_stock (after what this
      run already committed from it) → transfer min(deficit, batch cap)
    - No such source                → reorder the full deficit from a supplier
    - priority high when stock < 0.3 × min_stock, else medium

  Dealer pass, per dealer:
    - Top N products by positive 7-day regional demand
    - demand > 0.5 × min_stock → order round(demand × 5/7) (five days' supply)
    - priority high when demand > min_stock, else medium

Candidates are stable-sorted by priority and cut to the top M. The
confidence score is an advisory random draw from a band per action kind.

Regenerating discards every still-pending recommendation (and its planned
action); approved, rejected and executed rows are kept.
"""

import random
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from db.activity import record_activity
from db.models import Dealer, PlannedAction, Product, Recommendation, Warehouse
from inventory.ledger import StockKey, load_stock_map
from planning.forecast import round_half_up
from planning.projection import (
    aggregate_demand,
    build_projections,
    load_forecast_rows,
    load_in_flight_flows,
    replace_projections,
)

logger = structlog.get_logger()

PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}

# Action kind → (low, high) bounds of the advisory confidence score
CONFIDENCE_BANDS = {
    "transfer": (85, 95),
    "reorder": (80, 95),
    "order": (78, 95),
}

HIGH_PRIORITY_STOCK_RATIO = 0.3
DEALER_DEMAND_RATIO = 0.5


@dataclass
class Candidate:
    """A recommendation before it is persisted."""

    action_type: str
    product_id: uuid.UUID
    quantity: int
    priority: str
    confidence: int
    reason: str
    to_location: str
    from_location: str | None = None
    source_warehouse_id: uuid.UUID | None = None
    destination_warehouse_id: uuid.UUID | None = None
    dealer_id: uuid.UUID | None = None


def draw_confidence(action_type: str, rng: random.Random) -> int:
    low, high = CONFIDENCE_BANDS[action_type]
    return round_half_up(low + rng.random() * (high - low))


def _find_transfer_source(warehouse, product, warehouses, stock, committed):
    threshold = product.min_stock * 2
    for other in warehouses:
        if other.warehouse_id == warehouse.warehouse_id:
            continue
        key = (other.warehouse_id, product.product_id)
        if stock.get(key, 0) - committed.get(key, 0) > threshold:
            return other
    return None


def build_recommendations(
    warehouses: list,
    products: list,
    dealers: list,
    stock: dict[StockKey, int],
    demand: dict[tuple[uuid.UUID, str], int],
    rng: random.Random | None = None,
    transfer_cap: int | None = None,
    max_recommendations: int | None = None,
    dealer_top_products: int | None = None,
    supply_days: int | None = None,
    window_days: int | None = None,
) -> list[Candidate]:
    """
    Pure planning pass. `warehouses` should be in name order and `products`
    in SKU order; the first qualifying transfer source wins.
    """
    settings = get_settings()
    rng = rng or random.Random()
    transfer_cap = transfer_cap or settings.plan_transfer_batch_cap
    max_recommendations = max_recommendations or settings.plan_max_recommendations
    dealer_top_products = dealer_top_products or settings.plan_dealer_top_products
    supply_days = supply_days or settings.plan_dealer_supply_days
    window_days = window_days or settings.plan_demand_window_days

    candidates: list[Candidate] = []
    committed: dict[StockKey, int] = {}

    for warehouse in warehouses:
        for product in products:
            current = stock.get((warehouse.warehouse_id, product.product_id), 0)
            safety = product.min_stock
            if current >= safety:
                continue

            deficit = safety * 2 - current
            priority = "high" if current < safety * HIGH_PRIORITY_STOCK_RATIO else "medium"
            source = _find_transfer_source(warehouse, product, warehouses, stock, committed)

            if source is not None:
                quantity = min(deficit, transfer_cap)
                key = (source.warehouse_id, product.product_id)
                committed[key] = committed.get(key, 0) + quantity
                candidates.append(
                    Candidate(
                        action_type="transfer",
                        product_id=product.product_id,
                        quantity=quantity,
                        priority=priority,
                        confidence=draw_confidence("transfer", rng),
                        reason=(
                            f"{product.name} at {current} units (safety: {safety}). "
                            f"Surplus available at {source.name}."
                        ),
                        from_location=source.name,
                        to_location=warehouse.name,
                        source_warehouse_id=source.warehouse_id,
                        destination_warehouse_id=warehouse.warehouse_id,
                    )
                )
            else:
                regional = demand.get((product.product_id, warehouse.region), 0)
                candidates.append(
                    Candidate(
                        action_type="reorder",
                        product_id=product.product_id,
                        quantity=deficit,
                        priority=priority,
                        confidence=draw_confidence("reorder", rng),
                        reason=(
                            f"Stock at {current}/{safety}. "
                            f"Forecasted {regional} units demand in {window_days} days."
                        ),
                        to_location=warehouse.name,
                        destination_warehouse_id=warehouse.warehouse_id,
                    )
                )

    for dealer in dealers:
        ranked = sorted(
            (p for p in products if demand.get((p.product_id, dealer.region), 0) > 0),
            key=lambda p: demand[(p.product_id, dealer.region)],
            reverse=True,
        )[:dealer_top_products]

        for product in ranked:
            weekly = demand[(product.product_id, dealer.region)]
            if weekly <= product.min_stock * DEALER_DEMAND_RATIO:
                continue
            quantity = round_half_up(weekly * supply_days / window_days)
            if quantity <= 0:
                continue
            candidates.append(
                Candidate(
                    action_type="order",
                    product_id=product.product_id,
                    quantity=quantity,
                    priority="high" if weekly > product.min_stock else "medium",
                    confidence=draw_confidence("order", rng),
                    reason=(
                        f"High demand predicted in {dealer.region}: {weekly} units/week. "
                        "Order to avoid stockout."
                    ),
                    to_location=dealer.name,
                    source_warehouse_id=dealer.warehouse_id,
                    dealer_id=dealer.dealer_id,
                )
            )

    # sorted() is stable: ties keep discovery order
    ranked = sorted(candidates, key=lambda c: PRIORITY_ORDER.get(c.priority, 2))
    return ranked[:max_recommendations]


async def generate_plan(
    db: AsyncSession,
    user_name: str | None = None,
    rng: random.Random | None = None,
    today: date | None = None,
) -> dict[str, Any]:
    """
    Replace the pending recommendation set and refresh projections.

    One transaction: discard pending rows, insert the new recommendations
    with their planned actions, rebuild projections, log, commit.
    """
    settings = get_settings()
    today = today or date.today()
    run_id = uuid.uuid4()

    warehouses = (await db.execute(select(Warehouse).order_by(Warehouse.name))).scalars().all()
    products = (await db.execute(select(Product).order_by(Product.sku))).scalars().all()
    dealers = (await db.execute(select(Dealer).order_by(Dealer.name))).scalars().all()
    stock = await load_stock_map(db)
    forecast_rows = await load_forecast_rows(db, today, settings.plan_demand_window_days)
    demand = aggregate_demand(forecast_rows, today, settings.plan_demand_window_days)

    logger.info(
        "plan.started",
        run_id=str(run_id),
        warehouses=len(warehouses),
        products=len(products),
        dealers=len(dealers),
    )

    candidates = build_recommendations(warehouses, products, dealers, stock, demand, rng=rng)

    discarded_actions = await db.execute(
        delete(PlannedAction)
        .where(PlannedAction.status == "pending")
        .execution_options(synchronize_session=False)
    )
    discarded = await db.execute(
        delete(Recommendation)
        .where(Recommendation.status == "pending")
        .execution_options(synchronize_session=False)
    )

    now = datetime.utcnow()
    execution_date = today + timedelta(days=settings.plan_execution_lead_days)
    for position, candidate in enumerate(candidates):
        # Microsecond offsets keep plan order for oldest-first execution
        created_at = now + timedelta(microseconds=position)
        rec = Recommendation(
            recommendation_id=uuid.uuid4(),
            run_id=run_id,
            action_type=candidate.action_type,
            product_id=candidate.product_id,
            source_warehouse_id=candidate.source_warehouse_id,
            destination_warehouse_id=candidate.destination_warehouse_id,
            dealer_id=candidate.dealer_id,
            from_location=candidate.from_location,
            to_location=candidate.to_location,
            quantity=candidate.quantity,
            reason=candidate.reason,
            priority=candidate.priority,
            confidence=candidate.confidence,
            status="pending",
            created_at=created_at,
        )
        db.add(rec)
        db.add(
            PlannedAction(
                action_id=uuid.uuid4(),
                run_id=run_id,
                recommendation_id=rec.recommendation_id,
                action_type=candidate.action_type,
                product_id=candidate.product_id,
                source_warehouse_id=candidate.source_warehouse_id,
                destination_warehouse_id=candidate.destination_warehouse_id,
                dealer_id=candidate.dealer_id,
                from_location=candidate.from_location,
                to_location=candidate.to_location,
                quantity=candidate.quantity,
                status="pending",
                planned_execution_date=execution_date,
                created_at=created_at,
            )
        )
    await db.flush()

    flows = await load_in_flight_flows(db)
    projections = await build_projections(db, flows, today)
    projections_generated = await replace_projections(db, projections, run_id)

    record_activity(
        db,
        "recommendations_generated",
        user_name=user_name,
        entity_type="recommendation",
        details={
            "run_id": str(run_id),
            "count": len(candidates),
            "discarded_pending": discarded.rowcount,
            "projections": projections_generated,
        },
    )
    await db.commit()

    summary = {
        "run_id": str(run_id),
        "recommendations_generated": len(candidates),
        "projections_generated": projections_generated,
    }
    logger.info(
        "plan.generated",
        discarded_pending=discarded.rowcount,
        discarded_actions=discarded_actions.rowcount,
        **summary,
    )
    return summary
