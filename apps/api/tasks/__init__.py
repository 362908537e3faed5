"""
Celery application for Couchproof background work.

The API enqueues through `celery_app`; apps/worker/main.py runs it.
"""
from celery import Celery

from core.config import settings

celery_app = Celery(
    "couchproof",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

# Syncs are long and rate limited by Strava: one task per worker process at
# a time, acknowledged only once finished so a crashed worker's sync reruns.
celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    enable_utc=True,
    timezone="UTC",
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    result_expires=24 * 60 * 60,
    task_soft_time_limit=25 * 60,
    task_time_limit=30 * 60,
)

from tasks import strava_tasks  # noqa: E402,F401

__all__ = ["celery_app"]
