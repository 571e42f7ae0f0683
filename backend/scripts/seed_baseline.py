"""
Seed Baseline — Populates a realistic paint-network baseline for development.

  - Catalog (created when empty): products across four categories and all
    four pack sizes, one warehouse per region, dealers tied to the warehouse
    of their region
  - Inventory with a deliberate mix: critical, below safety, optimal, overstock
  - 90 days of daily sales shaped by season, region, weekday, festivals and noise
  - Optionally chains forecast → plan → alerts

Everything except the catalog is cleared first, so re-running gives a fresh
baseline.

Run (from backend/): PYTHONPATH=. python scripts/seed_baseline.py [--no-chain] [--seed 42]
"""

import argparse
import asyncio
import random
import uuid
from datetime import date, datetime, timedelta
from typing import Any

import structlog
from sqlalchemy import delete, func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from alerts.engine import evaluate_alerts
from core.config import get_settings
from db.models import (
    ActivityLogEntry,
    Alert,
    Dealer,
    DealerOrder,
    Forecast,
    HistoricalSale,
    InventoryMovement,
    InventoryProjection,
    InventoryRecord,
    PlannedAction,
    Product,
    Recommendation,
    Warehouse,
)
from db.session import Base, build_engine, build_session_factory
from planning.forecast import generate_forecast, round_half_up
from planning.recommendations import generate_plan

logger = structlog.get_logger()

SEED_USER = "System (Auto-Seed)"
HISTORY_DAYS = 90

# Month → sales shape for the synthetic history (monsoon trough, festival peak)
HISTORY_SEASONALITY = {
    1: 0.70,
    2: 0.75,
    3: 0.90,
    4: 1.15,
    5: 1.25,
    6: 0.65,
    7: 0.55,
    8: 0.60,
    9: 0.95,
    10: 1.40,
    11: 1.55,
    12: 1.00,
}

REGION_MULTIPLIERS = {"North": 1.1, "South": 1.2, "East": 0.85, "West": 1.15, "Central": 0.9}
CATEGORY_BIAS = {"Interior": 1.3, "Exterior": 1.0, "Industrial": 0.7, "Specialty": 0.5}

CATEGORIES = ["Interior", "Exterior", "Industrial", "Specialty"]
COLORS = ["Arctic White", "Royal Blue", "Forest Green", "Sunset Orange", "Charcoal Grey", "Ivory Cream"]
PAINT_TYPES = ["Emulsion", "Enamel", "Distemper", "Texture", "Lacquer", "Epoxy"]
PACK_SIZES = [1, 4, 10, 20]

WAREHOUSES = [
    ("Central Hub Warehouse", "Central", 50000),
    ("Northern Distribution Center", "North", 35000),
    ("Southern Distribution Center", "South", 35000),
    ("Eastern Depot", "East", 25000),
    ("Western Depot", "West", 30000),
]

DEALERS = [
    ("Patel Paint House", "West"),
    ("Singh Color World", "North"),
    ("Gupta Hardware & Paints", "Central"),
    ("Sharma Decor Hub", "North"),
    ("Reddy Paint Mart", "South"),
    ("Nair Color Studio", "South"),
    ("Joshi Paint Palace", "West"),
    ("Das Home Finishes", "East"),
    ("Mehta Paint Pro", "Central"),
    ("Khan Color Corner", "East"),
]

PLANNING_TABLES = [
    PlannedAction,
    InventoryProjection,
    Recommendation,
    Alert,
    InventoryMovement,
    DealerOrder,
    Forecast,
    HistoricalSale,
    ActivityLogEntry,
    InventoryRecord,
]


def history_weekday_factor(day: date) -> float:
    if day.weekday() == 6:
        return 0.35
    if day.weekday() == 5:
        return 0.55
    return 1.0


def festival_boost(day: date) -> float:
    """Holi (mid-March) and Diwali (late Oct to early Nov) paint surges."""
    if day.month == 3 and 12 <= day.day <= 18:
        return 1.6
    if (day.month == 10 and day.day >= 20) or (day.month == 11 and day.day <= 10):
        return 1.8
    return 1.0


def seed_quantity(min_stock: int, category: str, region: str, rng: random.Random) -> int:
    """Draw an opening stock level from the critical/low/optimal/overstock mix."""
    bias = CATEGORY_BIAS.get(category, 1.0)
    region_bias = REGION_MULTIPLIERS.get(region, 1.0)
    roll = rng.random()
    if roll < 0.12:
        qty = min_stock * 0.15 * (0.5 + rng.random())
    elif roll < 0.28:
        qty = min_stock * (0.4 + rng.random() * 0.5)
    elif roll < 0.82:
        qty = min_stock * (1.2 + rng.random() * 1.8) * bias * region_bias
    else:
        qty = min_stock * (4 + rng.random() * 3) * bias
    return max(1, int(qty))


async def ensure_catalog(db: AsyncSession, rng: random.Random) -> dict[str, int]:
    """Create products, warehouses and dealers when the catalog is empty."""
    created = {"products": 0, "warehouses": 0, "dealers": 0}

    if not await db.scalar(select(func.count(Product.product_id))):
        for i in range(12):
            category = CATEGORIES[i % len(CATEGORIES)]
            db.add(
                Product(
                    sku=f"PF-{category[:3].upper()}-{i + 1:03d}",
                    name=f"{COLORS[i % len(COLORS)]} {PAINT_TYPES[i % len(PAINT_TYPES)]}",
                    category=category,
                    pack_size_litres=PACK_SIZES[i % len(PACK_SIZES)],
                    unit_price=round(150 + rng.random() * 850, 2),
                    min_stock=50 + rng.randrange(150),
                )
            )
            created["products"] += 1

    if not await db.scalar(select(func.count(Warehouse.warehouse_id))):
        for name, region, capacity in WAREHOUSES:
            db.add(Warehouse(name=name, region=region, capacity=capacity))
            created["warehouses"] += 1
    await db.flush()

    if not await db.scalar(select(func.count(Dealer.dealer_id))):
        by_region = {
            w.region: w.warehouse_id for w in (await db.execute(select(Warehouse).order_by(Warehouse.name))).scalars()
        }
        for name, region in DEALERS:
            db.add(Dealer(name=name, region=region, warehouse_id=by_region.get(region)))
            created["dealers"] += 1
    await db.flush()
    return created


async def seed_baseline(
    db: AsyncSession,
    chain: bool = True,
    rng: random.Random | None = None,
    today: date | None = None,
) -> dict[str, Any]:
    """
    Reset the planning tables to a fresh baseline.

    Returns counts of seeded rows plus the chained run summaries.
    """
    rng = rng or random.Random()
    today = today or date.today()
    regions = list(get_settings().planning_regions)

    catalog = await ensure_catalog(db, rng)

    for model in PLANNING_TABLES:
        await db.execute(delete(model).execution_options(synchronize_session=False))

    products = (await db.execute(select(Product).order_by(Product.sku))).scalars().all()
    warehouses = (await db.execute(select(Warehouse).order_by(Warehouse.name))).scalars().all()

    now = datetime.utcnow()
    inventory_rows = [
        {
            "inventory_id": uuid.uuid4(),
            "warehouse_id": wh.warehouse_id,
            "product_id": product.product_id,
            "quantity": seed_quantity(product.min_stock, product.category, wh.region, rng),
            "last_updated": now,
        }
        for wh in warehouses
        for product in products
    ]
    if inventory_rows:
        await db.execute(insert(InventoryRecord), inventory_rows)

    sales_rows = []
    for product in products:
        category_mult = CATEGORY_BIAS.get(product.category, 1.0)
        for region in regions:
            base = (12 + rng.random() * 45) * category_mult * REGION_MULTIPLIERS.get(region, 1.0)
            for day_offset in range(HISTORY_DAYS, 0, -1):
                day = today - timedelta(days=day_offset)
                trend = 1.0 + (HISTORY_DAYS - day_offset) * 0.001
                noise = 0.65 + rng.random() * 0.7
                qty = base * HISTORY_SEASONALITY[day.month] * history_weekday_factor(day) * trend
                qty *= festival_boost(day) * noise
                sales_rows.append(
                    {
                        "sale_id": uuid.uuid4(),
                        "product_id": product.product_id,
                        "region": region,
                        "sale_date": day,
                        "quantity": max(1, round_half_up(qty)),
                        "created_at": now,
                    }
                )
    for start in range(0, len(sales_rows), 1000):
        await db.execute(insert(HistoricalSale), sales_rows[start : start + 1000])

    await db.commit()

    summary: dict[str, Any] = {
        "catalog_created": catalog,
        "inventory": len(inventory_rows),
        "historical_sales": len(sales_rows),
        "chained": None,
    }
    logger.info("seed.baseline_complete", inventory=len(inventory_rows), historical_sales=len(sales_rows))

    if chain:
        forecast = await generate_forecast(db, user_name=SEED_USER, today=today)
        plan = await generate_plan(db, user_name=SEED_USER, rng=rng, today=today)
        alerts = await evaluate_alerts(db, user_name=SEED_USER, today=today)
        summary["chained"] = {"forecast": forecast, "plan": plan, "alerts": alerts}

    return summary


async def main(chain: bool, seed: int | None) -> None:
    settings = get_settings()
    engine = build_engine(settings.database_url, pooled=False)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        async with build_session_factory(engine)() as db:
            summary = await seed_baseline(db, chain=chain, rng=random.Random(seed))
        print(summary)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed a DepotPlan baseline")
    parser.add_argument("--no-chain", action="store_true", help="Skip forecast → plan → alerts")
    parser.add_argument("--seed", type=int, default=None, help="Random seed for a reproducible baseline")
    args = parser.parse_args()
    asyncio.run(main(chain=not args.no_chain, seed=args.seed))
