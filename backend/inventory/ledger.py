"""
Inventory Ledger — the authoritative store of packs per (warehouse, product).

Every mutation is a single conditional UPDATE so the read-check-write happens
inside the database:
  - credit: increment, inserting the row on first receipt
  - debit:  decrement only WHERE quantity >= requested (never goes negative)
  - transfer: debit source, then credit destination, in the caller's transaction

Callers own the transaction boundary. A transfer whose debit fails raises
before the credit is issued; a failure after the debit must be rolled back by
the caller so the pair is applied together or not at all.
"""

import uuid
from datetime import datetime

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import InsufficientStockError, ValidationError
from db.models import InventoryRecord

logger = structlog.get_logger()

StockKey = tuple[uuid.UUID, uuid.UUID]  # (warehouse_id, product_id)


async def get_quantity(db: AsyncSession, warehouse_id: uuid.UUID, product_id: uuid.UUID) -> int:
    result = await db.execute(
        select(InventoryRecord.quantity).where(
            InventoryRecord.warehouse_id == warehouse_id,
            InventoryRecord.product_id == product_id,
        )
    )
    return int(result.scalar_one_or_none() or 0)


async def load_stock_map(db: AsyncSession) -> dict[StockKey, int]:
    """Snapshot of every inventory row keyed by (warehouse_id, product_id)."""
    result = await db.execute(
        select(InventoryRecord.warehouse_id, InventoryRecord.product_id, InventoryRecord.quantity)
    )
    return {(row.warehouse_id, row.product_id): int(row.quantity) for row in result.all()}


def _check_quantity(quantity: int) -> None:
    if quantity is None or int(quantity) <= 0:
        raise ValidationError(f"Movement quantity must be positive, got {quantity}")


async def credit(db: AsyncSession, warehouse_id: uuid.UUID, product_id: uuid.UUID, quantity: int) -> None:
    """Add packs to a warehouse, creating the inventory row if needed."""
    _check_quantity(quantity)
    now = datetime.utcnow()
    result = await db.execute(
        update(InventoryRecord)
        .where(
            InventoryRecord.warehouse_id == warehouse_id,
            InventoryRecord.product_id == product_id,
        )
        .values(quantity=InventoryRecord.quantity + quantity, last_updated=now)
        .execution_options(synchronize_session="evaluate")
    )
    if result.rowcount == 0:
        db.add(
            InventoryRecord(
                warehouse_id=warehouse_id,
                product_id=product_id,
                quantity=quantity,
                last_updated=now,
            )
        )
        await db.flush()

    logger.debug("ledger.credit", warehouse_id=str(warehouse_id), product_id=str(product_id), quantity=quantity)


async def debit(db: AsyncSession, warehouse_id: uuid.UUID, product_id: uuid.UUID, quantity: int) -> None:
    """Remove packs from a warehouse. Raises InsufficientStockError instead of going negative."""
    _check_quantity(quantity)
    result = await db.execute(
        update(InventoryRecord)
        .where(
            InventoryRecord.warehouse_id == warehouse_id,
            InventoryRecord.product_id == product_id,
            InventoryRecord.quantity >= quantity,
        )
        .values(quantity=InventoryRecord.quantity - quantity, last_updated=datetime.utcnow())
        .execution_options(synchronize_session="evaluate")
    )
    if result.rowcount == 0:
        available = await get_quantity(db, warehouse_id, product_id)
        raise InsufficientStockError(
            f"Insufficient stock: requested {quantity}, available {available} "
            f"(warehouse {warehouse_id}, product {product_id})"
        )

    logger.debug("ledger.debit", warehouse_id=str(warehouse_id), product_id=str(product_id), quantity=quantity)


async def transfer(
    db: AsyncSession,
    source_warehouse_id: uuid.UUID,
    destination_warehouse_id: uuid.UUID,
    product_id: uuid.UUID,
    quantity: int,
) -> None:
    """Move packs between warehouses. Conserves the product's network total."""
    if source_warehouse_id == destination_warehouse_id:
        raise ValidationError("Transfer source and destination must differ")
    await debit(db, source_warehouse_id, product_id, quantity)
    await credit(db, destination_warehouse_id, product_id, quantity)
