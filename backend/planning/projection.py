"""
Projection Engine — Plan-aware projected stock per (warehouse, product, horizon).

    projected = max(0, current + planned_inbound − planned_outbound − forecast demand)

Planned flows come from the recommendation set the planner just produced
plus any approved-but-unexecuted planned actions. They are matched to
warehouses by id captured at recommendation time:
  - transfer: outbound at source, inbound at destination
  - reorder:  inbound at destination
  - order:    outbound at the dealer's warehouse (recorded as the source)

Forecast demand is the warehouse region's forecast summed over the horizon.
The result assumes every proposed action executes; it is an estimate, not
a guarantee. Rows are replaced wholesale on each planning run.
"""

import uuid
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import asdict, dataclass
from datetime import date, timedelta
from typing import Any

import structlog
from sqlalchemy import delete, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from db.models import Forecast, InventoryProjection, PlannedAction, Product, Recommendation, Warehouse
from inventory.ledger import StockKey, load_stock_map
from inventory.packaging import to_litres

logger = structlog.get_logger()

DemandKey = tuple[uuid.UUID, str]  # (product_id, region)


@dataclass
class PlannedFlow:
    action_type: str
    product_id: uuid.UUID
    quantity: int
    source_warehouse_id: uuid.UUID | None = None
    destination_warehouse_id: uuid.UUID | None = None


@dataclass
class ProjectionRow:
    warehouse_id: uuid.UUID
    product_id: uuid.UUID
    horizon_days: int
    projected_date: date
    current_quantity: int
    planned_inbound: int
    planned_outbound: int
    forecasted_demand: int
    projected_quantity: int
    based_on_plan: bool


def aggregate_demand(
    forecasts: Iterable[tuple[uuid.UUID, str, date, int]],
    today: date,
    days: int,
) -> dict[DemandKey, int]:
    """Sum predicted demand per (product, region) for dates in [today, today + days]."""
    end = today + timedelta(days=days)
    totals: dict[DemandKey, int] = defaultdict(int)
    for product_id, region, forecast_date, demand in forecasts:
        if today <= forecast_date <= end:
            totals[(product_id, region)] += int(demand)
    return dict(totals)


def planned_flow_maps(flows: Iterable[PlannedFlow]) -> tuple[dict[StockKey, int], dict[StockKey, int]]:
    """(inbound, outbound) keyed by (warehouse_id, product_id)."""
    inbound: dict[StockKey, int] = defaultdict(int)
    outbound: dict[StockKey, int] = defaultdict(int)
    for flow in flows:
        if flow.action_type == "transfer":
            if flow.source_warehouse_id:
                outbound[(flow.source_warehouse_id, flow.product_id)] += flow.quantity
            if flow.destination_warehouse_id:
                inbound[(flow.destination_warehouse_id, flow.product_id)] += flow.quantity
        elif flow.action_type == "reorder":
            if flow.destination_warehouse_id:
                inbound[(flow.destination_warehouse_id, flow.product_id)] += flow.quantity
        elif flow.action_type == "order":
            if flow.source_warehouse_id:
                outbound[(flow.source_warehouse_id, flow.product_id)] += flow.quantity
    return dict(inbound), dict(outbound)


def project_inventory(
    warehouses: list[tuple[uuid.UUID, str]],
    product_ids: list[uuid.UUID],
    stock: dict[StockKey, int],
    demand_by_horizon: dict[int, dict[DemandKey, int]],
    flows: Iterable[PlannedFlow],
    today: date,
) -> list[ProjectionRow]:
    """Project every (warehouse, product) pair for each horizon in demand_by_horizon."""
    inbound, outbound = planned_flow_maps(flows)
    rows = []
    for horizon, demand in sorted(demand_by_horizon.items()):
        projected_date = today + timedelta(days=horizon)
        for warehouse_id, region in warehouses:
            for product_id in product_ids:
                key = (warehouse_id, product_id)
                current = stock.get(key, 0)
                incoming = inbound.get(key, 0)
                outgoing = outbound.get(key, 0)
                forecasted = demand.get((product_id, region), 0)
                rows.append(
                    ProjectionRow(
                        warehouse_id=warehouse_id,
                        product_id=product_id,
                        horizon_days=horizon,
                        projected_date=projected_date,
                        current_quantity=current,
                        planned_inbound=incoming,
                        planned_outbound=outgoing,
                        forecasted_demand=forecasted,
                        projected_quantity=max(0, current + incoming - outgoing - forecasted),
                        based_on_plan=bool(incoming or outgoing),
                    )
                )
    return rows


# ──────────────────────────────────────────────────────────────────────────
# Database helpers
# ──────────────────────────────────────────────────────────────────────────


async def load_forecast_rows(db: AsyncSession, today: date, days: int) -> list[tuple[uuid.UUID, str, date, int]]:
    result = await db.execute(
        select(Forecast.product_id, Forecast.region, Forecast.forecast_date, Forecast.predicted_demand).where(
            Forecast.forecast_date >= today,
            Forecast.forecast_date <= today + timedelta(days=days),
        )
    )
    return [(row.product_id, row.region, row.forecast_date, int(row.predicted_demand)) for row in result.all()]


async def load_in_flight_flows(db: AsyncSession) -> list[PlannedFlow]:
    """Pending recommendations plus approved planned actions not yet executed."""
    flows = []
    pending = await db.execute(select(Recommendation).where(Recommendation.status == "pending"))
    for rec in pending.scalars().all():
        flows.append(
            PlannedFlow(
                action_type=rec.action_type,
                product_id=rec.product_id,
                quantity=rec.quantity,
                source_warehouse_id=rec.source_warehouse_id,
                destination_warehouse_id=rec.destination_warehouse_id,
            )
        )
    approved = await db.execute(select(PlannedAction).where(PlannedAction.status == "approved"))
    for action in approved.scalars().all():
        flows.append(
            PlannedFlow(
                action_type=action.action_type,
                product_id=action.product_id,
                quantity=action.quantity,
                source_warehouse_id=action.source_warehouse_id,
                destination_warehouse_id=action.destination_warehouse_id,
            )
        )
    return flows


async def build_projections(
    db: AsyncSession,
    flows: list[PlannedFlow],
    today: date,
    horizons: list[int] | None = None,
) -> list[ProjectionRow]:
    horizons = horizons or list(get_settings().projection_horizons)
    warehouses = [
        (row.warehouse_id, row.region)
        for row in (await db.execute(select(Warehouse.warehouse_id, Warehouse.region).order_by(Warehouse.name))).all()
    ]
    product_ids = list((await db.execute(select(Product.product_id).order_by(Product.sku))).scalars().all())
    stock = await load_stock_map(db)
    forecast_rows = await load_forecast_rows(db, today, max(horizons))
    demand_by_horizon = {h: aggregate_demand(forecast_rows, today, h) for h in horizons}
    return project_inventory(warehouses, product_ids, stock, demand_by_horizon, flows, today)


async def replace_projections(db: AsyncSession, rows: list[ProjectionRow], run_id: uuid.UUID) -> int:
    """Swap the projection set for this run's rows. Caller commits."""
    await db.execute(delete(InventoryProjection).execution_options(synchronize_session=False))
    if rows:
        await db.execute(
            insert(InventoryProjection),
            [{"projection_id": uuid.uuid4(), "run_id": run_id, **asdict(row)} for row in rows],
        )
    return len(rows)


async def simulate_plan(db: AsyncSession, today: date | None = None, horizon_days: int | None = None) -> dict[str, Any]:
    """
    Read-only what-if: project the in-flight plan and report it in litres.

    Nothing is persisted; the real projection table is left untouched.
    """
    today = today or date.today()
    horizon = horizon_days or get_settings().plan_demand_window_days
    flows = await load_in_flight_flows(db)
    rows = await build_projections(db, flows, today, horizons=[horizon])

    products = {p.product_id: p for p in (await db.execute(select(Product))).scalars().all()}
    names = {
        row.warehouse_id: row.name for row in (await db.execute(select(Warehouse.warehouse_id, Warehouse.name))).all()
    }

    projections = []
    for row in rows:
        product = products.get(row.product_id)
        projections.append(
            {
                "warehouse_id": str(row.warehouse_id),
                "warehouse": names.get(row.warehouse_id),
                "product_id": str(row.product_id),
                "sku": product.sku if product else None,
                "current_stock_l": to_litres(row.current_quantity, product),
                "incoming_l": to_litres(row.planned_inbound, product),
                "outgoing_l": to_litres(row.planned_outbound + row.forecasted_demand, product),
                "projected_stock_l": to_litres(row.projected_quantity, product),
            }
        )

    logger.info("simulation.completed", projections=len(projections), movements=len(flows), horizon_days=horizon)
    return {
        "mode": "virtual_simulation",
        "horizon_days": horizon,
        "movements": len(flows),
        "projections": projections,
    }
