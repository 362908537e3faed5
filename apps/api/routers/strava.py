"""
Strava Integration Router

OAuth connect/callback, disconnect, and activity sync (inline or queued).
"""
import json
import logging
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urlencode

import requests
from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.orm import Session

from core.auth import get_current_user, get_optional_user
from core.cache import get_redis_client
from core.config import settings
from core.database import get_db
from core.exceptions import UpstreamServiceError
from models import User
from schemas import SyncResponse
from services.oauth_state import DEFAULT_RETURN_TO, build_connect_state, is_safe_return_path, read_connect_state
from services.strava_account import connect_strava_account, disconnect_strava_account
from services.strava_service import (
    RECONNECT_MESSAGE,
    StravaNotConnected,
    StravaRateLimitError,
    StravaReconnectRequired,
    exchange_code_for_token,
    get_auth_url,
)
from services.strava_sync import sync_user_activities

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/strava", tags=["strava"])

SYNC_TASK_TTL_S = 3600


def _web_redirect(path: str, **params) -> RedirectResponse:
    sep = "&" if "?" in path else "?"
    query = f"{sep}{urlencode(params)}" if params else ""
    return RedirectResponse(url=f"{settings.WEB_APP_BASE_URL}{path}{query}", status_code=302)


def _state_for(user: Optional[User], return_to: str) -> str:
    return build_connect_state(str(user.id) if user is not None else None, return_to)


@router.get("/status")
def get_strava_status(current_user: User = Depends(get_current_user)):
    return {
        "connected": current_user.is_strava_connected,
        "strava_id": current_user.strava_id,
        "last_sync": current_user.last_strava_sync.isoformat() if current_user.last_strava_sync else None,
    }


@router.get("/auth")
def get_strava_auth_url(
    return_to: str = Query(DEFAULT_RETURN_TO, description="UI path to return to after OAuth"),
    current_user: User = Depends(get_current_user),
):
    """
    Authorization URL for linking Strava to the signed-in user.
    """
    if not is_safe_return_path(return_to):
        raise HTTPException(status_code=400, detail="Invalid return_to")
    try:
        return {"url": get_auth_url(state=_state_for(current_user, return_to))}
    except ValueError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/connect")
def connect_strava(
    return_to: str = Query("/settings", description="UI path to return to after OAuth"),
    current_user: Optional[User] = Depends(get_optional_user),
):
    """
    Browser entry point: redirects to Strava. Links to the signed-in user
    when a token is present, otherwise the callback signs in by athlete.
    """
    if not is_safe_return_path(return_to):
        return_to = DEFAULT_RETURN_TO
    try:
        return RedirectResponse(url=get_auth_url(state=_state_for(current_user, return_to)), status_code=302)
    except ValueError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/callback")
def strava_callback(
    code: Optional[str] = Query(None, description="Authorization code from Strava"),
    state: Optional[str] = Query(None, description="Signed state token"),
    error: Optional[str] = Query(None, description="Set by Strava when the athlete declines"),
    db: Session = Depends(get_db),
):
    """
    Handle Strava OAuth callback.

    Always answers with a redirect into the web app; failures carry an
    error query parameter instead of a JSON body.
    """
    if error:
        logger.info(f"Strava authorization declined: {error}")
        return _web_redirect(DEFAULT_RETURN_TO, error="strava_denied")
    if not code:
        return _web_redirect(DEFAULT_RETURN_TO, error="missing_code")

    return_to = DEFAULT_RETURN_TO
    link_user_id = None
    if state:
        connect_state = read_connect_state(state)
        if connect_state is None:
            logger.warning("Strava callback with invalid or expired state")
            return _web_redirect(DEFAULT_RETURN_TO, error="invalid_state")
        return_to = connect_state.return_to
        link_user_id = connect_state.user_id

    try:
        token_data = exchange_code_for_token(code)
        connect_strava_account(db, token_data, link_user_id=link_user_id)
    except Exception as e:
        db.rollback()
        logger.exception(f"Strava callback failed: {e}")
        return _web_redirect(DEFAULT_RETURN_TO, error="strava_callback_failed")

    return _web_redirect(return_to, connected="strava")


@router.post("/disconnect")
def disconnect_strava(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    disconnect_strava_account(db, current_user)
    return {"success": True}


@router.post("/sync", response_model=SyncResponse)
def sync_strava(
    full: bool = Query(False, description="Re-scan the last 365 days"),
    limit: Optional[int] = Query(None, ge=0, description="Max activities to process; 0 means no limit"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Run a sync pass inline and return its counts.

    A full sync stops after `limit` activities (30 by default) and reports
    has_more; call again until has_more is false. A Strava 429 is returned
    as-is with Retry-After instead of being waited out in the request.
    """
    try:
        result = sync_user_activities(db, current_user, full=full, limit=limit, allow_rate_limit_sleep=False)
    except StravaNotConnected as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StravaReconnectRequired:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=RECONNECT_MESSAGE)
    except StravaRateLimitError as e:
        return JSONResponse(
            status_code=429,
            content={"error": "Strava rate limit reached. Try again later.", "retry_after": e.retry_after_s},
            headers={"Retry-After": str(e.retry_after_s)},
        )
    except requests.RequestException as e:
        raise UpstreamServiceError("Strava", str(e))
    return result.to_dict()


@router.post("/sync/background")
def queue_strava_sync(
    full: bool = Query(False),
    limit: Optional[int] = Query(None, ge=0),
    current_user: User = Depends(get_current_user),
):
    """
    Queue a sync on the Celery worker. Returns task ID for checking status.
    """
    if not current_user.is_strava_connected:
        raise HTTPException(status_code=400, detail="User not connected to Strava")

    from tasks.strava_tasks import sync_strava_activities_task

    task = sync_strava_activities_task.delay(str(current_user.id), full=full, limit=limit)

    # Celery reports PENDING for unknown ids too; remember ours
    redis = get_redis_client()
    if redis:
        redis.setex(
            f"strava_sync_task:{task.id}",
            SYNC_TASK_TTL_S,
            json.dumps({"user_id": str(current_user.id), "created_at": datetime.now(timezone.utc).isoformat()}),
        )

    return {"status": "queued", "message": "Strava sync task queued", "task_id": task.id}


@router.get("/sync/status/{task_id}")
def get_sync_status(task_id: str, current_user: User = Depends(get_current_user)):
    """
    Check the status of a queued sync.
    """
    from tasks import celery_app

    task = celery_app.AsyncResult(task_id)
    redis = get_redis_client()
    key = f"strava_sync_task:{task_id}"
    task_known = bool(redis and redis.get(key))

    if task.state == "PENDING":
        if task_known:
            return {"task_id": task_id, "status": "pending", "message": "Task is waiting to be processed"}
        return {"task_id": task_id, "status": "unknown", "message": "Task not found or expired"}
    if task.state in ("STARTED", "RETRY"):
        return {"task_id": task_id, "status": task.state.lower(), "message": "Task is being processed"}

    if redis:
        redis.delete(key)
    if task.state == "SUCCESS":
        return {"task_id": task_id, "status": "success", "result": task.result}
    return {"task_id": task_id, "status": "error", "error": str(task.info) if task.info else "Unknown error"}
