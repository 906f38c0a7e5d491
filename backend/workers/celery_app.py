"""
Celery Application Configuration
"""

from celery import Celery
from celery.schedules import crontab

from core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "bazaar_reputation",
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
        "workers.reputation.*": {"queue": "reputation"},
    },
    # ── Celery Beat Schedule ─────────────────────────────────────────
    beat_schedule={
        # Full cycle: expire, reconcile, evaluate every active vendor
        "reputation-check-daily": {
            "task": "workers.reputation.run_reputation_check",
            "schedule": crontab(hour=1, minute=30),
            "options": {"queue": "reputation"},
        },
        # Lift lapsed suspensions between daily runs
        "expire-vendor-suspensions-hourly": {
            "task": "workers.reputation.expire_vendor_suspensions",
            "schedule": crontab(minute=15),
            "options": {"queue": "reputation"},
        },
    },
)

# Auto-discover tasks
celery_app.autodiscover_tasks(["workers"], related_name="reputation")
