"""
Tests for the Projection Engine.

Covers:
  - Planned flow attribution per action kind
  - Demand summed over the horizon window
  - Floor at zero and the based_on_plan flag
  - Virtual simulation (litres, nothing persisted)
"""

import uuid
from datetime import date, timedelta

import pytest
from sqlalchemy import func, select

from db.models import Forecast, InventoryProjection, Recommendation
from planning.projection import (
    PlannedFlow,
    aggregate_demand,
    planned_flow_maps,
    project_inventory,
    simulate_plan,
)

TODAY = date(2026, 6, 10)


class TestPlannedFlowMaps:
    def test_transfer_both_sides(self):
        src, dst, product = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
        inbound, outbound = planned_flow_maps([PlannedFlow("transfer", product, 40, src, dst)])
        assert inbound == {(dst, product): 40}
        assert outbound == {(src, product): 40}

    def test_reorder_inbound_only(self):
        dst, product = uuid.uuid4(), uuid.uuid4()
        inbound, outbound = planned_flow_maps([PlannedFlow("reorder", product, 25, None, dst)])
        assert inbound == {(dst, product): 25}
        assert outbound == {}

    def test_order_outbound_at_dealer_warehouse(self):
        wh, product = uuid.uuid4(), uuid.uuid4()
        inbound, outbound = planned_flow_maps([PlannedFlow("order", product, 30, wh, None)])
        assert inbound == {}
        assert outbound == {(wh, product): 30}

    def test_unresolved_dealer_contributes_nothing(self):
        inbound, outbound = planned_flow_maps([PlannedFlow("order", uuid.uuid4(), 30)])
        assert inbound == {} and outbound == {}

    def test_flows_accumulate(self):
        dst, product = uuid.uuid4(), uuid.uuid4()
        inbound, _ = planned_flow_maps(
            [PlannedFlow("reorder", product, 10, None, dst), PlannedFlow("reorder", product, 15, None, dst)]
        )
        assert inbound[(dst, product)] == 25


class TestAggregateDemand:
    def test_window_is_inclusive(self):
        product = uuid.uuid4()
        rows = [
            (product, "North", TODAY, 5),
            (product, "North", TODAY + timedelta(days=7), 7),
            (product, "North", TODAY + timedelta(days=8), 100),
            (product, "South", TODAY + timedelta(days=1), 3),
        ]
        totals = aggregate_demand(rows, TODAY, 7)
        assert totals == {(product, "North"): 12, (product, "South"): 3}


class TestProjectInventory:
    def test_projection_formula_and_floor(self):
        wh_a, wh_b, product = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
        stock = {(wh_a, product): 50, (wh_b, product): 20}
        demand = {7: {(product, "North"): 30, (product, "South"): 80}}
        flows = [PlannedFlow("reorder", product, 40, None, wh_a)]

        rows = project_inventory([(wh_a, "North"), (wh_b, "South")], [product], stock, demand, flows, TODAY)
        by_wh = {r.warehouse_id: r for r in rows}

        assert by_wh[wh_a].projected_quantity == 60  # 50 + 40 − 30
        assert by_wh[wh_a].based_on_plan is True
        assert by_wh[wh_a].projected_date == TODAY + timedelta(days=7)
        assert by_wh[wh_b].projected_quantity == 0  # 20 − 80 floored
        assert by_wh[wh_b].based_on_plan is False

    def test_one_row_per_horizon(self):
        wh, product = uuid.uuid4(), uuid.uuid4()
        rows = project_inventory([(wh, "North")], [product], {}, {7: {}, 30: {}}, [], TODAY)
        assert [r.horizon_days for r in rows] == [7, 30]
        assert all(r.current_quantity == 0 for r in rows)


@pytest.mark.asyncio
class TestSimulatePlan:
    async def test_reports_litres_and_persists_nothing(self, test_db, seeded_db):
        test_db.add(
            Recommendation(
                run_id=uuid.uuid4(),
                action_type="transfer",
                product_id=seeded_db["product_id"],
                source_warehouse_id=seeded_db["beta_id"],
                destination_warehouse_id=seeded_db["alpha_id"],
                from_location="Beta Depot",
                to_location="Alpha Depot",
                quantity=190,
                status="pending",
            )
        )
        test_db.add(
            Forecast(
                run_id=uuid.uuid4(),
                product_id=seeded_db["product_id"],
                region="North",
                forecast_date=TODAY + timedelta(days=2),
                predicted_demand=5,
                confidence=80,
            )
        )
        await test_db.commit()

        result = await simulate_plan(test_db, today=TODAY)

        assert result["mode"] == "virtual_simulation"
        assert result["horizon_days"] == 7
        assert result["movements"] == 1
        by_wh = {p["warehouse"]: p for p in result["projections"]}
        alpha = by_wh["Alpha Depot"]
        assert alpha["current_stock_l"] == 100.0  # 10 packs × 10L
        assert alpha["incoming_l"] == 1900.0
        assert alpha["outgoing_l"] == 50.0
        assert alpha["projected_stock_l"] == 1950.0
        assert by_wh["Beta Depot"]["projected_stock_l"] == 3100.0

        assert await test_db.scalar(select(func.count(InventoryProjection.projection_id))) == 0
