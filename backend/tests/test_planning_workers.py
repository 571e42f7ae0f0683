import asyncio
from types import SimpleNamespace

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from db.session import Base
from workers.planning import evaluate_alerts, execute_plan, generate_forecast, generate_plan


def _seed_network(db_url: str) -> None:
    from db.models import InventoryRecord, Product, Warehouse

    async def _seed() -> None:
        engine = create_async_engine(db_url, echo=False)
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
            async with session_factory() as db:
                product = Product(sku="PF-INT-001", name="Arctic White Emulsion", pack_size_litres=10, min_stock=100)
                alpha = Warehouse(name="Alpha Depot", region="North")
                beta = Warehouse(name="Beta Depot", region="South")
                db.add_all([product, alpha, beta])
                await db.flush()
                db.add_all(
                    [
                        InventoryRecord(warehouse_id=alpha.warehouse_id, product_id=product.product_id, quantity=10),
                        InventoryRecord(warehouse_id=beta.warehouse_id, product_id=product.product_id, quantity=500),
                    ]
                )
                await db.commit()
        finally:
            await engine.dispose()

    asyncio.run(_seed())


def _count(db_url: str, column) -> int:
    async def _query() -> int:
        engine = create_async_engine(db_url, echo=False)
        try:
            session_factory = async_sessionmaker(engine, class_=AsyncSession)
            async with session_factory() as db:
                return await db.scalar(select(func.count(column)))
        finally:
            await engine.dispose()

    return asyncio.run(_query())


def test_pipeline_tasks_run_against_their_own_engine(tmp_path, monkeypatch):
    from db.models import Forecast, Recommendation

    db_url = f"sqlite+aiosqlite:///{tmp_path / 'planning.db'}"
    _seed_network(db_url)
    monkeypatch.setattr("core.config.get_settings", lambda: SimpleNamespace(database_url=db_url))

    forecast = generate_forecast.run(user_name="Ops")
    assert forecast["status"] == "success"
    assert forecast["forecasts_generated"] == 60
    assert _count(db_url, Forecast.forecast_id) == 60

    plan = generate_plan.run(user_name="Ops")
    assert plan["status"] == "success"
    assert plan["recommendations_generated"] == 1
    assert _count(db_url, Recommendation.recommendation_id) == 1

    alerts = evaluate_alerts.run()
    assert alerts["status"] == "success"
    assert alerts["by_type"]["stockout_risk"] == 1


def test_execute_task_with_nothing_approved(tmp_path, monkeypatch):
    db_url = f"sqlite+aiosqlite:///{tmp_path / 'execute.db'}"
    _seed_network(db_url)
    monkeypatch.setattr("core.config.get_settings", lambda: SimpleNamespace(database_url=db_url))

    result = execute_plan.run(user_name="Ops")
    assert result == {
        "status": "success",
        "executed": 0,
        "total": 0,
        "errors": [],
        "message": "No approved plans to execute.",
    }
