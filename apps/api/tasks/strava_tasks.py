"""
Celery tasks for Strava synchronization.

These tasks run in the background worker to keep long syncs off the
request path.
"""
import logging
from typing import Dict, Optional
from uuid import UUID

from celery import Task
from sqlalchemy.orm import Session

from core.database import get_db_sync
from models import User
from services.strava_service import StravaNotConnected, StravaRateLimitError, StravaReconnectRequired
from services.strava_sync import sync_user_activities
from tasks import celery_app

logger = logging.getLogger(__name__)

MIN_RETRY_COUNTDOWN_S = 60
MAX_RETRY_COUNTDOWN_S = 60 * 60


def retry_countdown(retry_after_s: Optional[int]) -> int:
    """Seconds to wait before retrying after a 429, bounded to 1m..60m."""
    return max(MIN_RETRY_COUNTDOWN_S, min(int(retry_after_s or 900), MAX_RETRY_COUNTDOWN_S))


@celery_app.task(name="tasks.sync_strava_activities", bind=True, max_retries=5)
def sync_strava_activities_task(self: Task, user_id: str, full: bool = False, limit: Optional[int] = None) -> Dict:
    """
    Background task to sync Strava activities for a user.

    Rate limits are not slept through in the worker: the task is retried
    after Strava's retry-after window instead. Rows committed before the
    429 are kept, so the retry picks up where this run stopped.

    Returns the sync result dict, or {"success": False, "error": ...}.
    """
    db: Session = get_db_sync()
    try:
        user = db.get(User, UUID(user_id))
        if user is None:
            return {"success": False, "error": f"User {user_id} not found"}

        try:
            result = sync_user_activities(db, user, full=full, limit=limit, allow_rate_limit_sleep=False)
        except StravaRateLimitError as e:
            countdown = retry_countdown(e.retry_after_s)
            logger.warning(
                "Strava rate limit during background sync, deferring",
                extra={"extra_fields": {"user_id": user_id, "countdown_s": countdown}},
            )
            raise self.retry(exc=e, countdown=countdown)
        except (StravaNotConnected, StravaReconnectRequired) as e:
            logger.info(f"Background sync skipped for user {user_id}: {e}")
            return {"success": False, "error": str(e)}

        return result.to_dict()
    finally:
        db.close()
