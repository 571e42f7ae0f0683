"""
Tests for the Alert Engine.

Covers:
  - Stock severity rules and overstock guard
  - Projected stockout only for future dates
  - Demand spike threshold (strictly greater, no baseline → no alert)
  - Festival season notice
  - Retention pruning and batch cap ordered by severity
  - Redis publishing
"""

import json
import uuid
from datetime import date, datetime, timedelta
from types import SimpleNamespace

import pytest
from sqlalchemy import func, select

from alerts import engine
from alerts.engine import (
    classify_stock_severity,
    demand_change_pct,
    evaluate_alerts,
    is_overstocked,
    projection_alerts,
    publish_alerts,
    seasonal_alerts,
    spike_alerts,
    stock_alerts,
)
from db.models import Alert, HistoricalSale, InventoryRecord, Product

JUNE = date(2026, 6, 10)
OCTOBER = date(2026, 10, 15)


def _product(min_stock=100, sku="PF-INT-001"):
    return SimpleNamespace(product_id=uuid.uuid4(), sku=sku, name="Arctic White Emulsion", min_stock=min_stock)


def _warehouse(name="Alpha Depot", region="North"):
    return SimpleNamespace(warehouse_id=uuid.uuid4(), name=name, region=region)


class TestStockRules:
    @pytest.mark.parametrize(
        "quantity,expected",
        [(0, "critical"), (29, "critical"), (30, "warning"), (99, "warning"), (100, None), (600, None)],
    )
    def test_classify(self, quantity, expected):
        assert classify_stock_severity(quantity, 100) == expected

    def test_overstock_needs_positive_min(self):
        assert is_overstocked(501, 100) is True
        assert is_overstocked(500, 100) is False
        assert is_overstocked(10, 0) is False

    def test_stock_alert_payloads(self):
        product, wh = _product(), _warehouse()
        alerts = stock_alerts([(product, wh, 10), (product, wh, 600)])

        assert [a["alert_type"] for a in alerts] == ["stockout_risk", "overstock"]
        critical, overstock = alerts
        assert critical["severity"] == "critical"
        assert critical["title"] == "Critical Stockout: Arctic White Emulsion"
        assert "Only 10 units remaining at Alpha Depot" in critical["description"]
        assert critical["region"] == "North"
        assert overstock["severity"] == "info"
        assert "by 500%" in overstock["description"]


class TestProjectionRules:
    def test_future_low_projection_alerts(self):
        product, wh = _product(), _warehouse()
        alerts = projection_alerts([(product, wh, 10, JUNE + timedelta(days=7))], JUNE)
        assert len(alerts) == 1
        assert alerts[0]["alert_type"] == "projected_stockout"
        assert alerts[0]["severity"] == "warning"
        assert "2026-06-17" in alerts[0]["title"]

    def test_today_or_past_is_ignored(self):
        product, wh = _product(), _warehouse()
        assert projection_alerts([(product, wh, 0, JUNE)], JUNE) == []

    def test_healthy_projection_is_ignored(self):
        product, wh = _product(), _warehouse()
        assert projection_alerts([(product, wh, 30, JUNE + timedelta(days=7))], JUNE) == []


class TestSpikeRules:
    def test_change_pct(self):
        assert demand_change_pct(140, 100) == 40.0
        assert demand_change_pct(50, 0) is None

    def test_spike_above_threshold(self):
        product = _product()
        windows = {(product.product_id, "South"): {"recent": 140, "previous": 100}}
        alerts = spike_alerts(windows, {product.product_id: product}, 30.0)
        assert len(alerts) == 1
        assert alerts[0]["description"] == "40% increase in demand in South region over last 7 days."

    def test_threshold_is_strict(self):
        product = _product()
        windows = {(product.product_id, "South"): {"recent": 130, "previous": 100}}
        assert spike_alerts(windows, {product.product_id: product}, 30.0) == []

    def test_no_baseline_no_alert(self):
        product = _product()
        windows = {(product.product_id, "South"): {"recent": 500, "previous": 0}}
        assert spike_alerts(windows, {product.product_id: product}, 30.0) == []


class TestSeasonalRule:
    def test_festival_month(self):
        alerts = seasonal_alerts(OCTOBER, [9, 10, 11])
        assert len(alerts) == 1
        assert alerts[0]["title"] == "Festival Season Active"
        assert alerts[0]["region"] == "Central"
        assert alerts[0]["sku"] is None

    def test_off_season(self):
        assert seasonal_alerts(JUNE, [9, 10, 11]) == []


@pytest.mark.asyncio
class TestEvaluateAlerts:
    async def test_seeded_network_in_june(self, test_db, seeded_db):
        result = await evaluate_alerts(test_db, today=JUNE)

        assert result["alerts_generated"] == 1
        assert result["by_type"] == {"stockout_risk": 1}
        alert = (await test_db.execute(select(Alert))).scalar_one()
        assert alert.severity == "critical"
        assert alert.sku == "PF-INT-001"

    async def test_festival_adds_seasonal_notice(self, test_db, seeded_db):
        result = await evaluate_alerts(test_db, today=OCTOBER)
        assert result["by_type"] == {"stockout_risk": 1, "seasonal": 1}

    async def test_demand_spike_from_sales(self, test_db, seeded_db):
        product_id = seeded_db["product_id"]
        test_db.add_all(
            [
                HistoricalSale(product_id=product_id, region="South", sale_date=JUNE - timedelta(days=2), quantity=150),
                HistoricalSale(product_id=product_id, region="South", sale_date=JUNE - timedelta(days=10), quantity=100),
            ]
        )
        await test_db.commit()

        result = await evaluate_alerts(test_db, today=JUNE)
        assert result["by_type"]["demand_spike"] == 1

    async def test_prunes_to_retention(self, test_db, seeded_db):
        base = datetime.utcnow() - timedelta(days=1)
        test_db.add_all(
            [
                Alert(
                    alert_type="overstock",
                    severity="info",
                    title=f"Old alert {i}",
                    created_at=base - timedelta(minutes=i),
                )
                for i in range(60)
            ]
        )
        await test_db.commit()

        result = await evaluate_alerts(test_db, today=JUNE)

        assert result["pruned"] == 10
        assert await test_db.scalar(select(func.count(Alert.alert_id))) == 51
        oldest_kept = await test_db.scalar(select(Alert.title).where(Alert.title == "Old alert 59"))
        assert oldest_kept is None

    async def test_batch_capped_most_severe_first(self, test_db, seeded_db):
        alpha_id = seeded_db["alpha_id"]
        for i in range(30):
            product = Product(sku=f"PF-EXT-{i:03d}", name=f"Exterior {i}", pack_size_litres=4, min_stock=50)
            test_db.add(product)
            await test_db.flush()
            test_db.add(InventoryRecord(warehouse_id=alpha_id, product_id=product.product_id, quantity=0))
        await test_db.commit()

        result = await evaluate_alerts(test_db, today=OCTOBER)

        assert result["alerts_generated"] == 25
        severities = (await test_db.execute(select(Alert.severity))).scalars().all()
        assert set(severities) == {"critical"}

    async def test_does_not_touch_inventory(self, test_db, seeded_db, read_stock):
        await evaluate_alerts(test_db, today=JUNE)
        assert await read_stock(seeded_db["alpha_id"], seeded_db["product_id"]) == 10


class FakeRedis:
    def __init__(self):
        self.published = []
        self.closed = False

    async def publish(self, channel, message):
        self.published.append((channel, json.loads(message)))
        return 2

    async def aclose(self):
        self.closed = True


@pytest.mark.asyncio
class TestPublishAlerts:
    async def test_publishes_per_severity_channel(self, monkeypatch):
        fake = FakeRedis()
        monkeypatch.setattr(engine.aioredis, "from_url", lambda url: fake)
        alert = Alert(
            alert_id=uuid.uuid4(),
            alert_type="stockout_risk",
            severity="critical",
            title="Critical Stockout: Arctic White Emulsion",
            region="North",
            sku="PF-INT-001",
            created_at=datetime(2026, 6, 10, 9, 0),
        )

        subscribers = await publish_alerts([alert])

        assert subscribers == 2
        channel, message = fake.published[0]
        assert channel == "alerts:critical"
        assert message["type"] == "alert"
        assert message["payload"]["sku"] == "PF-INT-001"
        assert fake.closed is True

    async def test_nothing_to_publish(self):
        assert await publish_alerts([]) == 0
