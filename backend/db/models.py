"""
DepotPlan Database Models

13 tables for the multi-warehouse demand-planning engine.

Tables:
  Catalog (reference data):
  1. products               - SKUs with pack size (litres) and safety threshold
  2. warehouses             - Regional stocking locations
  3. dealers                - Downstream resellers, optionally tied to a warehouse

  Ledger:
  4. inventory              - Current packs per (warehouse, product); one row per pair
  5. historical_sales       - Daily sales per (product, region); append-only

  Planning outputs (regenerated per run, tagged with run_id):
  6. forecasts              - Predicted daily demand per (product, region)
  7. recommendations        - Proposed transfer / reorder / dealer order
  8. planned_actions        - Execution-side mirror of each recommendation
  9. inventory_projections  - Plan-aware projected stock per horizon

  Execution & audit:
  10. inventory_movements   - Every executed stock movement
  11. dealer_orders         - Fulfilment records for executed dealer orders
  12. alerts                - Severity-classified risk notices (bounded window)
  13. activity_log          - Append-only audit trail
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    types,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID


class GUID(TypeDecorator):
    """Platform-independent UUID type.

    Uses PostgreSQL UUID when available, stores as CHAR(36) on SQLite.
    """

    impl = types.String(36)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PG_UUID(as_uuid=True))
        return dialect.type_descriptor(types.String(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if dialect.name == "postgresql":
            return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
        return str(value) if isinstance(value, uuid.UUID) else value

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(str(value))


def UUID(as_uuid=True):
    return GUID()


from sqlalchemy.orm import relationship

from db.session import Base

ACTION_KINDS = ("transfer", "reorder", "order")
PRIORITIES = ("high", "medium", "low")
PLAN_STATUSES = ("pending", "approved", "rejected", "executed")
ALERT_TYPES = ("stockout_risk", "overstock", "projected_stockout", "demand_spike", "seasonal")
ALERT_SEVERITIES = ("critical", "warning", "info")


def _one_of(column: str, values: tuple[str, ...]) -> str:
    return f"{column} IN (" + ", ".join(f"'{v}'" for v in values) + ")"


# ─── 1. Products ────────────────────────────────────────────────────────────


class Product(Base):
    __tablename__ = "products"

    product_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    sku = Column(String(100), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    category = Column(String(100))
    pack_size_litres = Column(Float, nullable=False, default=1.0)
    unit_price = Column(Float, nullable=False, default=0.0)  # per pack
    min_stock = Column(Integer, nullable=False, default=0)  # safety threshold, packs
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_products_category", "category"),
        CheckConstraint("pack_size_litres > 0", name="ck_product_pack_size_positive"),
        CheckConstraint("unit_price >= 0", name="ck_product_price_positive"),
        CheckConstraint("min_stock >= 0", name="ck_product_min_stock_positive"),
    )

    inventory_records = relationship("InventoryRecord", back_populates="product")


# ─── 2. Warehouses ──────────────────────────────────────────────────────────


class Warehouse(Base):
    __tablename__ = "warehouses"

    warehouse_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False, unique=True)
    region = Column(String(50), nullable=False)
    capacity = Column(Integer)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (Index("ix_warehouses_region", "region"),)

    inventory_records = relationship("InventoryRecord", back_populates="warehouse")
    dealers = relationship("Dealer", back_populates="warehouse")


# ─── 3. Dealers ─────────────────────────────────────────────────────────────


class Dealer(Base):
    __tablename__ = "dealers"

    dealer_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False, unique=True)
    region = Column(String(50), nullable=False)
    warehouse_id = Column(UUID(as_uuid=True), ForeignKey("warehouses.warehouse_id"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (Index("ix_dealers_region", "region"),)

    warehouse = relationship("Warehouse", back_populates="dealers")


# ─── 4. Inventory ───────────────────────────────────────────────────────────


class InventoryRecord(Base):
    __tablename__ = "inventory"

    inventory_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    warehouse_id = Column(UUID(as_uuid=True), ForeignKey("warehouses.warehouse_id"), nullable=False)
    product_id = Column(UUID(as_uuid=True), ForeignKey("products.product_id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=0)  # packs
    last_updated = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("warehouse_id", "product_id", name="uq_inventory_warehouse_product"),
        CheckConstraint("quantity >= 0", name="ck_inventory_qty_positive"),
    )

    warehouse = relationship("Warehouse", back_populates="inventory_records")
    product = relationship("Product", back_populates="inventory_records")


# ─── 5. Historical Sales ────────────────────────────────────────────────────


class HistoricalSale(Base):
    """Daily sales per (product, region). Several rows per key are summed."""

    __tablename__ = "historical_sales"

    sale_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    product_id = Column(UUID(as_uuid=True), ForeignKey("products.product_id"), nullable=False)
    region = Column(String(50), nullable=False)
    sale_date = Column(Date, nullable=False)
    quantity = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_sales_product_region_date", "product_id", "region", "sale_date"),
        CheckConstraint("quantity >= 0", name="ck_sale_qty_positive"),
    )


# ─── 6. Forecasts ───────────────────────────────────────────────────────────


class Forecast(Base):
    __tablename__ = "forecasts"

    forecast_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    run_id = Column(UUID(as_uuid=True), nullable=False)
    product_id = Column(UUID(as_uuid=True), ForeignKey("products.product_id"), nullable=False)
    region = Column(String(50), nullable=False)
    forecast_date = Column(Date, nullable=False)
    predicted_demand = Column(Integer, nullable=False)
    confidence = Column(Float)  # 0-100
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("product_id", "region", "forecast_date", name="uq_forecast_product_region_date"),
        Index("ix_forecast_region_date", "region", "forecast_date"),
        CheckConstraint("predicted_demand >= 0", name="ck_forecast_demand_positive"),
        CheckConstraint("confidence >= 0 AND confidence <= 100", name="ck_forecast_confidence_range"),
    )


# ─── 7. Recommendations ─────────────────────────────────────────────────────


class Recommendation(Base):
    """A proposed corrective action awaiting human review.

    Locations are captured as foreign keys at creation time; the
    from_location / to_location names are display copies only.
    """

    __tablename__ = "recommendations"

    recommendation_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    run_id = Column(UUID(as_uuid=True), nullable=False)
    action_type = Column(String(20), nullable=False)  # transfer, reorder, order
    product_id = Column(UUID(as_uuid=True), ForeignKey("products.product_id"), nullable=False)
    source_warehouse_id = Column(UUID(as_uuid=True), ForeignKey("warehouses.warehouse_id"), nullable=True)
    destination_warehouse_id = Column(UUID(as_uuid=True), ForeignKey("warehouses.warehouse_id"), nullable=True)
    dealer_id = Column(UUID(as_uuid=True), ForeignKey("dealers.dealer_id"), nullable=True)
    from_location = Column(String(255))
    to_location = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False)
    reason = Column(Text)
    priority = Column(String(10), nullable=False, default="medium")
    confidence = Column(Float)
    status = Column(String(20), nullable=False, default="pending")
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    approved_at = Column(DateTime)
    executed_at = Column(DateTime)

    __table_args__ = (
        Index("ix_recommendations_status", "status"),
        CheckConstraint("quantity > 0", name="ck_recommendation_quantity_positive"),
        CheckConstraint(_one_of("action_type", ACTION_KINDS), name="ck_recommendation_action_type"),
        CheckConstraint(_one_of("priority", PRIORITIES), name="ck_recommendation_priority"),
        CheckConstraint(_one_of("status", PLAN_STATUSES), name="ck_recommendation_status"),
    )

    planned_action = relationship("PlannedAction", back_populates="recommendation", uselist=False)


# ─── 8. Planned Actions ─────────────────────────────────────────────────────


class PlannedAction(Base):
    """Execution-side mirror of a recommendation (1:1).

    Survives pruning of its recommendation so an approved action can still
    be executed; carries approver/execution metadata.
    """

    __tablename__ = "planned_actions"

    action_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    run_id = Column(UUID(as_uuid=True), nullable=False)
    recommendation_id = Column(
        UUID(as_uuid=True),
        ForeignKey("recommendations.recommendation_id", ondelete="SET NULL"),
        nullable=True,
    )
    action_type = Column(String(20), nullable=False)
    product_id = Column(UUID(as_uuid=True), ForeignKey("products.product_id"), nullable=False)
    source_warehouse_id = Column(UUID(as_uuid=True), ForeignKey("warehouses.warehouse_id"), nullable=True)
    destination_warehouse_id = Column(UUID(as_uuid=True), ForeignKey("warehouses.warehouse_id"), nullable=True)
    dealer_id = Column(UUID(as_uuid=True), ForeignKey("dealers.dealer_id"), nullable=True)
    from_location = Column(String(255))
    to_location = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    planned_execution_date = Column(Date)
    approved_by = Column(String(255))
    approved_at = Column(DateTime)
    executed_by = Column(String(255))
    executed_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_planned_actions_status_created", "status", "created_at"),
        CheckConstraint("quantity > 0", name="ck_planned_action_quantity_positive"),
        CheckConstraint(_one_of("action_type", ACTION_KINDS), name="ck_planned_action_type"),
        CheckConstraint(_one_of("status", PLAN_STATUSES), name="ck_planned_action_status"),
    )

    recommendation = relationship("Recommendation", back_populates="planned_action")


# ─── 9. Inventory Projections ───────────────────────────────────────────────


class InventoryProjection(Base):
    __tablename__ = "inventory_projections"

    projection_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    run_id = Column(UUID(as_uuid=True), nullable=False)
    warehouse_id = Column(UUID(as_uuid=True), ForeignKey("warehouses.warehouse_id"), nullable=False)
    product_id = Column(UUID(as_uuid=True), ForeignKey("products.product_id"), nullable=False)
    horizon_days = Column(Integer, nullable=False)
    projected_date = Column(Date, nullable=False)
    current_quantity = Column(Integer, nullable=False, default=0)
    planned_inbound = Column(Integer, nullable=False, default=0)
    planned_outbound = Column(Integer, nullable=False, default=0)
    forecasted_demand = Column(Integer, nullable=False, default=0)
    projected_quantity = Column(Integer, nullable=False, default=0)
    based_on_plan = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_projection_warehouse_product", "warehouse_id", "product_id", "projected_date"),
        CheckConstraint("projected_quantity >= 0", name="ck_projection_qty_positive"),
    )


# ─── 10. Inventory Movements ────────────────────────────────────────────────


class InventoryMovement(Base):
    """Executed stock movement. Reorders have no source; dealer orders no destination."""

    __tablename__ = "inventory_movements"

    movement_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    recommendation_id = Column(UUID(as_uuid=True), nullable=True)
    action_id = Column(UUID(as_uuid=True), nullable=True)
    source_warehouse_id = Column(UUID(as_uuid=True), ForeignKey("warehouses.warehouse_id"), nullable=True)
    destination_warehouse_id = Column(UUID(as_uuid=True), ForeignKey("warehouses.warehouse_id"), nullable=True)
    product_id = Column(UUID(as_uuid=True), ForeignKey("products.product_id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    movement_type = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default="completed")
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_movements_product_created", "product_id", "created_at"),
        CheckConstraint("quantity > 0", name="ck_movement_quantity_positive"),
        CheckConstraint(_one_of("movement_type", ACTION_KINDS), name="ck_movement_type"),
    )


# ─── 11. Dealer Orders ──────────────────────────────────────────────────────


class DealerOrder(Base):
    __tablename__ = "dealer_orders"

    order_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    dealer_id = Column(UUID(as_uuid=True), ForeignKey("dealers.dealer_id"), nullable=False)
    warehouse_id = Column(UUID(as_uuid=True), ForeignKey("warehouses.warehouse_id"), nullable=False)
    product_id = Column(UUID(as_uuid=True), ForeignKey("products.product_id"), nullable=False)
    recommendation_id = Column(UUID(as_uuid=True), nullable=True)
    quantity = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default="fulfilled")
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_dealer_orders_dealer", "dealer_id"),
        CheckConstraint("quantity > 0", name="ck_dealer_order_quantity_positive"),
    )


# ─── 12. Alerts ─────────────────────────────────────────────────────────────


class Alert(Base):
    __tablename__ = "alerts"

    alert_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    alert_type = Column(String(50), nullable=False)
    severity = Column(String(20), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    region = Column(String(50))
    sku = Column(String(100))
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_alerts_created", "created_at"),
        CheckConstraint(_one_of("alert_type", ALERT_TYPES), name="ck_alert_type"),
        CheckConstraint(_one_of("severity", ALERT_SEVERITIES), name="ck_alert_severity"),
    )


# ─── 13. Activity Log ───────────────────────────────────────────────────────


class ActivityLogEntry(Base):
    __tablename__ = "activity_log"

    entry_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_name = Column(String(255))
    action = Column(String(50), nullable=False)
    entity_type = Column(String(50))
    entity_id = Column(UUID(as_uuid=True), nullable=True)
    details = Column(JSON, default=dict)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (Index("ix_activity_created", "created_at"),)
