"""
Inventory Router — Current stock levels and projected stock.

Quantities are packs; litre figures are derived from each product's pack size.
"""

from datetime import date, datetime
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import and_, case, literal, select
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import Page, get_db, paginate
from db.models import InventoryProjection, InventoryRecord, Product, Warehouse
from inventory.packaging import format_packaging, format_packaging_short, to_litres, total_litres, total_value

router = APIRouter(prefix="/api/v1/inventory", tags=["inventory"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class InventoryItemResponse(BaseModel):
    warehouse_id: UUID
    warehouse_name: str
    region: str
    product_id: UUID
    product_name: str
    category: str | None
    sku: str
    quantity: int
    litres: float
    packaging: str
    min_stock: int
    status: str  # "ok", "low", "critical", "out_of_stock", "overstock"
    last_updated: datetime


class InventorySummary(BaseModel):
    total_items: int
    in_stock: int
    low_stock: int
    critical: int
    out_of_stock: int
    overstock: int
    total_litres: float
    total_value: float


class ProjectionResponse(BaseModel):
    warehouse_id: UUID
    warehouse_name: str
    product_id: UUID
    sku: str
    horizon_days: int
    projected_date: date
    current_quantity: int
    planned_inbound: int
    planned_outbound: int
    forecasted_demand: int
    projected_quantity: int
    projected_display: str
    based_on_plan: bool


# ─── Helpers ─────────────────────────────────────────────────────────────────


def _status_case_expression():
    """SQL CASE expression that computes inventory status against min_stock."""
    return case(
        (InventoryRecord.quantity == 0, literal("out_of_stock")),
        (InventoryRecord.quantity < Product.min_stock * 0.3, literal("critical")),
        (InventoryRecord.quantity < Product.min_stock, literal("low")),
        (
            and_(Product.min_stock > 0, InventoryRecord.quantity > Product.min_stock * 5),
            literal("overstock"),
        ),
        else_=literal("ok"),
    ).label("status")


def _inventory_query(warehouse_id: UUID | None = None):
    query = (
        select(InventoryRecord, Product, Warehouse, _status_case_expression())
        .join(Product, Product.product_id == InventoryRecord.product_id)
        .join(Warehouse, Warehouse.warehouse_id == InventoryRecord.warehouse_id)
        .execution_options(populate_existing=True)
    )
    if warehouse_id:
        query = query.where(InventoryRecord.warehouse_id == warehouse_id)
    return query


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/summary", response_model=InventorySummary)
async def get_inventory_summary(
    warehouse_id: UUID | None = None,
    db: AsyncSession = Depends(get_db),
):
    """High-level status counts plus network litres and value."""
    rows = (await db.execute(_inventory_query(warehouse_id))).all()
    statuses = [row.status for row in rows]
    items = [(record.quantity, product) for record, product, _, _ in rows]

    total = len(statuses)
    return InventorySummary(
        total_items=total,
        in_stock=total - statuses.count("out_of_stock") - statuses.count("critical") - statuses.count("low"),
        low_stock=statuses.count("low"),
        critical=statuses.count("critical"),
        out_of_stock=statuses.count("out_of_stock"),
        overstock=statuses.count("overstock"),
        total_litres=total_litres(items),
        total_value=total_value(items),
    )


@router.get("/", response_model=list[InventoryItemResponse])
async def list_inventory(
    warehouse_id: UUID | None = None,
    status: str | None = None,
    category: str | None = None,
    page: Page = Depends(paginate(50, 500)),
    db: AsyncSession = Depends(get_db),
):
    """List current inventory with product/warehouse details."""
    query = _inventory_query(warehouse_id)
    if category:
        query = query.where(Product.category == category)
    if status:
        query = query.where(_status_case_expression() == status)
    query = page.apply(query.order_by(Warehouse.name, Product.sku))

    result = await db.execute(query)
    return [
        InventoryItemResponse(
            warehouse_id=warehouse.warehouse_id,
            warehouse_name=warehouse.name,
            region=warehouse.region,
            product_id=product.product_id,
            product_name=product.name,
            category=product.category,
            sku=product.sku,
            quantity=record.quantity,
            litres=to_litres(record.quantity, product),
            packaging=format_packaging(record.quantity, product),
            min_stock=product.min_stock,
            status=row_status,
            last_updated=record.last_updated,
        )
        for record, product, warehouse, row_status in result.all()
    ]


@router.get("/projections", response_model=list[ProjectionResponse])
async def list_projections(
    warehouse_id: UUID | None = None,
    sku: str | None = None,
    horizon_days: int | None = None,
    page: Page = Depends(paginate(100, 1000)),
    db: AsyncSession = Depends(get_db),
):
    """Plan-aware projected stock from the latest planning run."""
    query = (
        select(InventoryProjection, Warehouse.name, Product)
        .join(Warehouse, Warehouse.warehouse_id == InventoryProjection.warehouse_id)
        .join(Product, Product.product_id == InventoryProjection.product_id)
    )
    if warehouse_id:
        query = query.where(InventoryProjection.warehouse_id == warehouse_id)
    if sku:
        query = query.where(Product.sku == sku)
    if horizon_days:
        query = query.where(InventoryProjection.horizon_days == horizon_days)
    query = page.apply(query.order_by(InventoryProjection.horizon_days, Warehouse.name, Product.sku))

    result = await db.execute(query)
    return [
        ProjectionResponse(
            warehouse_id=proj.warehouse_id,
            warehouse_name=warehouse_name,
            product_id=proj.product_id,
            sku=product.sku,
            horizon_days=proj.horizon_days,
            projected_date=proj.projected_date,
            current_quantity=proj.current_quantity,
            planned_inbound=proj.planned_inbound,
            planned_outbound=proj.planned_outbound,
            forecasted_demand=proj.forecasted_demand,
            projected_quantity=proj.projected_quantity,
            projected_display=format_packaging_short(proj.projected_quantity, product),
            based_on_plan=proj.based_on_plan,
        )
        for proj, warehouse_name, product in result.all()
    ]
