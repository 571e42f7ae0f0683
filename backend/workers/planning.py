"""
Planning Workers — Celery wrappers around each pipeline operation.

Every task opens its own engine so it can run in a fresh worker process,
then disposes it. Failures are logged and retried; the operations are
idempotent, so a retry after a partial run is safe.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from db.session import build_engine, build_session_factory
from workers.celery_app import celery_app

logger = structlog.get_logger()


def _run(operation: Callable[[AsyncSession], Awaitable[dict[str, Any]]]) -> dict[str, Any]:
    from core.config import get_settings

    async def _execute():
        settings = get_settings()
        engine = build_engine(settings.database_url, pooled=False)
        try:
            async with build_session_factory(engine)() as db:
                return await operation(db)
        finally:
            await engine.dispose()

    return asyncio.run(_execute())


@celery_app.task(
    name="workers.planning.generate_forecast",
    bind=True,
    max_retries=2,
    default_retry_delay=60,
)
def generate_forecast(self, sku: str | None = None, region: str | None = None, user_name: str | None = None):
    """Regenerate the demand forecast."""
    from planning.forecast import generate_forecast as run_forecast

    try:
        result = _run(lambda db: run_forecast(db, sku=sku, region=region, user_name=user_name))
        return {"status": "success", **result}
    except Exception as exc:  # noqa: BLE001
        logger.error("worker.forecast_failed", sku=sku, region=region, error=str(exc), exc_info=True)
        raise self.retry(exc=exc)


@celery_app.task(
    name="workers.planning.generate_plan",
    bind=True,
    max_retries=2,
    default_retry_delay=60,
)
def generate_plan(self, user_name: str | None = None):
    """Replace pending recommendations and refresh projections."""
    from planning.recommendations import generate_plan as run_plan

    try:
        result = _run(lambda db: run_plan(db, user_name=user_name))
        return {"status": "success", **result}
    except Exception as exc:  # noqa: BLE001
        logger.error("worker.plan_failed", error=str(exc), exc_info=True)
        raise self.retry(exc=exc)


@celery_app.task(
    name="workers.planning.evaluate_alerts",
    bind=True,
    max_retries=2,
    default_retry_delay=60,
)
def evaluate_alerts(self, user_name: str | None = None):
    """Prune and re-evaluate alerts."""
    from alerts.engine import evaluate_alerts as run_alerts

    try:
        result = _run(lambda db: run_alerts(db, user_name=user_name))
        return {"status": "success", **result}
    except Exception as exc:  # noqa: BLE001
        logger.error("worker.alerts_failed", error=str(exc), exc_info=True)
        raise self.retry(exc=exc)


@celery_app.task(
    name="workers.planning.execute_plan",
    bind=True,
    max_retries=1,
    default_retry_delay=120,
    acks_late=True,
)
def execute_plan(self, user_name: str | None = None):
    """Execute approved planned actions. Per-item failures are part of the result, not retried."""
    from supply_chain.execution import execute_plan as run_execution

    try:
        result = _run(lambda db: run_execution(db, user_name=user_name))
        return {"status": "success", **result}
    except Exception as exc:  # noqa: BLE001
        logger.error("worker.execute_failed", error=str(exc), exc_info=True)
        raise self.retry(exc=exc)
