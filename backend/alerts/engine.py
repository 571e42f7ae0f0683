"""
Alert Engine — Rule-based risk notices over stock, projections and sales.

Patterns used: rule-based detection, bounded retention window, Redis pub/sub

Alert Types:
  - stockout_risk:      stock < 0.3 × min (critical) or < min (warning)
  - overstock:          stock > 5 × min (info)
  - projected_stockout: projected stock < 0.3 × min at a future date (warning)
  - demand_spike:       last 7 days' sales up > 30 % on the 7 days before (warning)
  - seasonal:           festival window is active (info)

Each run prunes all but the most recent alerts, then inserts a capped batch
ordered by severity. Advisory only: inventory and recommendations are never
touched.
"""

import json
import uuid
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Any

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from db.activity import record_activity
from db.models import Alert, HistoricalSale, InventoryProjection, InventoryRecord, Product, Warehouse
from planning.calendar import is_festival_season

logger = structlog.get_logger()

CRITICAL_STOCK_RATIO = 0.3
OVERSTOCK_RATIO = 5
PROJECTED_STOCKOUT_RATIO = 0.3
DEFAULT_REGION = "Central"

SEVERITY_ORDER = {"critical": 0, "warning": 1, "info": 2}

# ──────────────────────────────────────────────────────────────────────────
# Detection Rules
# ──────────────────────────────────────────────────────────────────────────


def classify_stock_severity(quantity: int, min_stock: int) -> str | None:
    """critical / warning for stock below the safety threshold, else None."""
    if quantity < min_stock * CRITICAL_STOCK_RATIO:
        return "critical"
    if quantity < min_stock:
        return "warning"
    return None


def is_overstocked(quantity: int, min_stock: int) -> bool:
    return min_stock > 0 and quantity > min_stock * OVERSTOCK_RATIO


def demand_change_pct(recent: int, previous: int) -> float | None:
    """Percent growth of recent over previous; None when there is no baseline."""
    if previous == 0:
        return None
    return (recent - previous) / previous * 100


def stock_alerts(rows: list[tuple[Product, Warehouse, int]]) -> list[dict[str, Any]]:
    """Stockout and overstock rules over (product, warehouse, quantity) rows."""
    alerts = []
    for product, warehouse, quantity in rows:
        location = warehouse.name if warehouse else "warehouse"
        region = warehouse.region if warehouse else DEFAULT_REGION
        severity = classify_stock_severity(quantity, product.min_stock)

        if severity == "critical":
            alerts.append(
                {
                    "alert_type": "stockout_risk",
                    "severity": "critical",
                    "title": f"Critical Stockout: {product.name}",
                    "description": (
                        f"Only {quantity} units remaining at {location} (min: {product.min_stock}). "
                        "Immediate action required."
                    ),
                    "region": region,
                    "sku": product.sku,
                }
            )
        elif severity == "warning":
            alerts.append(
                {
                    "alert_type": "stockout_risk",
                    "severity": "warning",
                    "title": f"Low Stock: {product.name}",
                    "description": f"{quantity} units at {location}, below safety stock of {product.min_stock}.",
                    "region": region,
                    "sku": product.sku,
                }
            )

        if is_overstocked(quantity, product.min_stock):
            excess_pct = round((quantity / product.min_stock - 1) * 100)
            alerts.append(
                {
                    "alert_type": "overstock",
                    "severity": "info",
                    "title": f"Overstock: {product.name}",
                    "description": f"{quantity} units at {location} exceeds optimal levels by {excess_pct}%.",
                    "region": region,
                    "sku": product.sku,
                }
            )
    return alerts


def projection_alerts(rows: list[tuple[Product, Warehouse, int, date]], today: date) -> list[dict[str, Any]]:
    """Projected stockouts over (product, warehouse, projected_quantity, projected_date) rows."""
    alerts = []
    for product, warehouse, projected, projected_date in rows:
        if projected_date <= today:
            continue
        if projected >= product.min_stock * PROJECTED_STOCKOUT_RATIO:
            continue
        location = warehouse.name if warehouse else "warehouse"
        alerts.append(
            {
                "alert_type": "projected_stockout",
                "severity": "warning",
                "title": f"Projected Stockout: {product.name} by {projected_date.isoformat()}",
                "description": (
                    f"Projected to {projected} units at {location} by {projected_date.isoformat()}. "
                    "Plan actions to prevent."
                ),
                "region": warehouse.region if warehouse else DEFAULT_REGION,
                "sku": product.sku,
            }
        )
    return alerts


def spike_alerts(
    windows: dict[tuple[uuid.UUID, str], dict[str, int]],
    products: dict[uuid.UUID, Product],
    threshold_pct: float,
) -> list[dict[str, Any]]:
    """Demand spikes over {(product_id, region): {"recent": n, "previous": m}}."""
    alerts = []
    for (product_id, region), window in windows.items():
        product = products.get(product_id)
        if product is None:
            continue
        change = demand_change_pct(window["recent"], window["previous"])
        if change is None or change <= threshold_pct:
            continue
        alerts.append(
            {
                "alert_type": "demand_spike",
                "severity": "warning",
                "title": f"Demand Spike: {product.name}",
                "description": f"{round(change)}% increase in demand in {region} region over last 7 days.",
                "region": region,
                "sku": product.sku,
            }
        )
    return alerts


def seasonal_alerts(today: date, festival_months: list[int] | None = None) -> list[dict[str, Any]]:
    if not is_festival_season(today, festival_months):
        return []
    return [
        {
            "alert_type": "seasonal",
            "severity": "info",
            "title": "Festival Season Active",
            "description": "Diwali/festival season driving higher interior paint demand across all regions.",
            "region": DEFAULT_REGION,
            "sku": None,
        }
    ]


# ──────────────────────────────────────────────────────────────────────────
# Data loading
# ──────────────────────────────────────────────────────────────────────────


async def _load_stock_rows(db: AsyncSession) -> list[tuple[Product, Warehouse, int]]:
    result = await db.execute(
        select(Product, Warehouse, InventoryRecord.quantity)
        .join(Product, Product.product_id == InventoryRecord.product_id)
        .join(Warehouse, Warehouse.warehouse_id == InventoryRecord.warehouse_id)
        .order_by(Warehouse.name, Product.sku)
    )
    return [(row[0], row[1], int(row[2])) for row in result.all()]


async def _load_projection_rows(db: AsyncSession) -> list[tuple[Product, Warehouse, int, date]]:
    result = await db.execute(
        select(Product, Warehouse, InventoryProjection.projected_quantity, InventoryProjection.projected_date)
        .join(Product, Product.product_id == InventoryProjection.product_id)
        .join(Warehouse, Warehouse.warehouse_id == InventoryProjection.warehouse_id)
        .order_by(InventoryProjection.projected_date, Warehouse.name, Product.sku)
    )
    return [(row[0], row[1], int(row[2]), row[3]) for row in result.all()]


async def _load_sales_windows(db: AsyncSession, today: date) -> dict[tuple[uuid.UUID, str], dict[str, int]]:
    recent_start = today - timedelta(days=7)
    result = await db.execute(
        select(HistoricalSale.product_id, HistoricalSale.region, HistoricalSale.sale_date, HistoricalSale.quantity)
        .where(HistoricalSale.sale_date >= today - timedelta(days=14))
    )
    windows: dict[tuple[uuid.UUID, str], dict[str, int]] = defaultdict(lambda: {"recent": 0, "previous": 0})
    for row in result.all():
        bucket = "recent" if row.sale_date >= recent_start else "previous"
        windows[(row.product_id, row.region)][bucket] += int(row.quantity or 0)
    return dict(windows)


async def prune_alerts(db: AsyncSession, keep: int) -> int:
    """Delete everything but the `keep` most recent alerts. Caller commits."""
    stale = (
        await db.execute(select(Alert.alert_id).order_by(Alert.created_at.desc()).offset(keep))
    ).scalars().all()
    if not stale:
        return 0
    await db.execute(delete(Alert).where(Alert.alert_id.in_(stale)).execution_options(synchronize_session=False))
    return len(stale)


# ──────────────────────────────────────────────────────────────────────────
# Alert Creation + Publishing
# ──────────────────────────────────────────────────────────────────────────


async def publish_alerts(alerts: list[Alert]) -> int:
    """
    Publish new alerts to Redis pub/sub for real-time subscribers.
    Returns number of subscribers notified.
    """
    if not alerts:
        return 0

    redis = aioredis.from_url(get_settings().redis_url)
    try:
        total_subs = 0
        for alert in alerts:
            payload = json.dumps(
                {
                    "type": "alert",
                    "payload": {
                        "alert_id": str(alert.alert_id),
                        "alert_type": alert.alert_type,
                        "severity": alert.severity,
                        "title": alert.title,
                        "region": alert.region,
                        "sku": alert.sku,
                        "created_at": alert.created_at.isoformat(),
                    },
                }
            )
            total_subs += await redis.publish(f"alerts:{alert.severity}", payload)
        return total_subs
    finally:
        await redis.aclose()


async def evaluate_alerts(
    db: AsyncSession,
    user_name: str | None = None,
    today: date | None = None,
) -> dict[str, Any]:
    """
    Full alert pipeline:
    1. Prune to the retention window
    2. Run every rule
    3. Persist a severity-ordered, capped batch
    4. Publish via Redis (when enabled)
    """
    settings = get_settings()
    today = today or date.today()

    pruned = await prune_alerts(db, settings.alert_retention)

    stock_rows = await _load_stock_rows(db)
    products = {p.product_id: p for p in (await db.execute(select(Product))).scalars().all()}
    candidates = (
        stock_alerts(stock_rows)
        + projection_alerts(await _load_projection_rows(db), today)
        + spike_alerts(await _load_sales_windows(db, today), products, settings.alert_spike_threshold_pct)
        + seasonal_alerts(today, settings.festival_months)
    )
    candidates.sort(key=lambda a: SEVERITY_ORDER[a["severity"]])
    batch = candidates[: settings.alert_batch_cap]

    now = datetime.utcnow()
    created = []
    for position, data in enumerate(batch):
        # Later positions are older so "most recent" keeps the most severe
        alert = Alert(created_at=now - timedelta(microseconds=position), **data)
        db.add(alert)
        created.append(alert)

    record_activity(
        db,
        "alerts_evaluated",
        user_name=user_name,
        entity_type="alert",
        details={"alerts_generated": len(created), "candidates": len(candidates), "pruned": pruned},
    )
    await db.commit()

    counts: dict[str, int] = defaultdict(int)
    for alert in created:
        counts[alert.alert_type] += 1

    logger.info(
        "alerts.evaluated",
        alerts_generated=len(created),
        candidates=len(candidates),
        pruned=pruned,
        **counts,
    )

    if settings.alert_publish_enabled:
        try:
            await publish_alerts(created)
        except RedisError:
            logger.warning("alerts.publish_failed", alerts=len(created), exc_info=True)

    return {"alerts_generated": len(created), "pruned": pruned, "by_type": dict(counts)}
