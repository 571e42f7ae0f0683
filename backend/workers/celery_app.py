"""
Celery Application Configuration

Queues:
  planning   forecast, plan and alert runs (safe to retry)
  execution  execute_plan only, so stock movements never queue behind a
             long forecast run

Planning tasks are triggered externally (API, cron, operator); there is no
beat schedule here.
"""

from celery import Celery

from core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "depotplan",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["workers.planning"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    result_expires=24 * 3600,
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    worker_prefetch_multiplier=1,
    task_default_queue="planning",
    task_routes={
        "workers.planning.execute_plan": {"queue": "execution"},
        "workers.planning.*": {"queue": "planning"},
    },
)
