"""
Celery Application Configuration
"""

from celery import Celery
from celery.schedules import crontab

from core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "shelfsense",
    broker=settings.redis_url,
    backend=settings.redis_url,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    worker_prefetch_multiplier=1,
    task_routes={
        "workers.replenishment.*": {"queue": "replenishment"},
    },
    # ── Celery Beat Schedule ─────────────────────────────────────────
    beat_schedule={
        "replenishment-sweep-nightly": {
            "task": "workers.replenishment.run_replenishment_sweep",
            "schedule": crontab(hour=settings.sweep_hour_utc, minute=0),
            "options": {"queue": "replenishment"},
        },
    },
)

# Auto-discover tasks
celery_app.autodiscover_tasks(["workers"])
