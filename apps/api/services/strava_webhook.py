"""
Strava Webhook Service

Subscription management against Strava's push_subscriptions endpoint and
processing of pushed events.

Strava retries any delivery that does not get a 2xx, so handle_event never
raises: failures are logged and reported in the returned body only.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import requests
from sqlalchemy.orm import Session

from core.cache import invalidate_user_stats
from core.config import settings
from models import Activity, User
from services import strava_service
from services.strava_sync import find_strava_activity, upsert_strava_activity

logger = logging.getLogger(__name__)

PUSH_SUBSCRIPTIONS_URL = f"{strava_service.STRAVA_API_BASE}/push_subscriptions"


def verify_subscription(mode: Optional[str], verify_token: Optional[str]) -> bool:
    """Handshake check for GET callbacks."""
    expected = settings.STRAVA_WEBHOOK_VERIFY_TOKEN
    return bool(expected) and mode == "subscribe" and verify_token == expected


def _client_credentials() -> Dict[str, str]:
    if not settings.STRAVA_CLIENT_ID or not settings.STRAVA_CLIENT_SECRET:
        raise ValueError("Strava credentials not configured")
    return {
        "client_id": settings.STRAVA_CLIENT_ID,
        "client_secret": settings.STRAVA_CLIENT_SECRET,
    }


def subscribe_to_webhooks(callback_url: str) -> Dict:
    """
    Register callback_url with Strava. Strava immediately calls it back with
    the GET handshake, so the API must already be reachable there.
    """
    params = {
        **_client_credentials(),
        "callback_url": callback_url,
        "verify_token": settings.STRAVA_WEBHOOK_VERIFY_TOKEN,
    }
    response = requests.post(PUSH_SUBSCRIPTIONS_URL, params=params, timeout=settings.EXTERNAL_API_TIMEOUT)
    response.raise_for_status()
    return response.json()


def list_webhook_subscriptions() -> Dict:
    response = requests.get(PUSH_SUBSCRIPTIONS_URL, params=_client_credentials(), timeout=settings.EXTERNAL_API_TIMEOUT)
    response.raise_for_status()
    return response.json()


def delete_webhook_subscription(subscription_id: int) -> bool:
    response = requests.delete(
        f"{PUSH_SUBSCRIPTIONS_URL}/{subscription_id}",
        params=_client_credentials(),
        timeout=settings.EXTERNAL_API_TIMEOUT,
    )
    return response.status_code == 204


def _deauthorize(db: Session, user: User) -> None:
    user.strava_access_token = None
    user.strava_refresh_token = None
    user.strava_token_expires_at = None
    db.commit()
    logger.info(f"Strava access revoked by athlete, tokens cleared for user {user.id}")


# Webhook deliveries must be answered within seconds: a 429 raises
# StravaRateLimitError instead of waiting, and the next sync picks it up.
NO_WAIT = {"allow_rate_limit_sleep": False}


def _create_activity(db: Session, user: User, object_id: int) -> None:
    detail = strava_service.get_activity_details(user, object_id, **NO_WAIT)
    markers = {"details_fetched_at": datetime.now(timezone.utc)}
    streams_result = strava_service.get_activity_streams(user, object_id, **NO_WAIT)
    streams = streams_result.data if streams_result.outcome == "success" else None
    if streams_result.outcome != "failed":
        markers["streams_checked_at"] = datetime.now(timezone.utc)
    upsert_strava_activity(db, user, detail, streams, markers=markers, **NO_WAIT)
    db.commit()


def _update_activity(db: Session, user: User, object_id: int) -> None:
    existing = find_strava_activity(db, user.id, object_id)
    if existing is None:
        # Update for something we never stored (created before the link)
        _create_activity(db, user, object_id)
        return
    detail = strava_service.get_activity_details(user, object_id, **NO_WAIT)
    markers = {"details_fetched_at": datetime.now(timezone.utc)}
    upsert_strava_activity(db, user, detail, existing=existing, markers=markers, **NO_WAIT)
    db.commit()


def _delete_activity(db: Session, user: User, object_id: int) -> int:
    deleted = (
        db.query(Activity)
        .filter(
            Activity.user_id == user.id,
            Activity.source == "strava",
            Activity.strava_id == str(object_id),
        )
        .delete(synchronize_session=False)
    )
    db.commit()
    return deleted


def handle_event(db: Session, event: Dict[str, Any]) -> Dict[str, Any]:
    """
    Apply one pushed event: {object_type, object_id, aspect_type, owner_id, updates?}.

    Returns the body for the 200 response.
    """
    object_type = event.get("object_type")
    aspect_type = event.get("aspect_type")
    object_id = event.get("object_id")
    owner_id = event.get("owner_id")

    logger.info(
        "Strava webhook event",
        extra={"extra_fields": {
            "object_type": object_type,
            "aspect_type": aspect_type,
            "object_id": object_id,
            "owner_id": owner_id,
        }},
    )

    try:
        user = db.query(User).filter(User.strava_id == owner_id).first() if owner_id is not None else None

        if object_type != "activity":
            updates = event.get("updates") or {}
            if object_type == "athlete" and str(updates.get("authorized")) == "false" and user is not None:
                _deauthorize(db, user)
            return {"success": True}

        if user is None:
            logger.warning(f"Webhook event for unknown Strava athlete {owner_id}")
            return {"success": True}

        if aspect_type == "create":
            _create_activity(db, user, object_id)
        elif aspect_type == "update":
            _update_activity(db, user, object_id)
        elif aspect_type == "delete":
            deleted = _delete_activity(db, user, object_id)
            logger.info(f"Deleted {deleted} activity row(s) for Strava activity {object_id}")
        else:
            logger.info(f"Ignoring webhook aspect type: {aspect_type}")
            return {"success": True}

        invalidate_user_stats(user.id)
        return {"success": True}
    except Exception as e:
        db.rollback()
        logger.exception(f"Strava webhook processing failed for object {object_id}: {e}")
        return {"success": False, "error": "Processing failed"}
