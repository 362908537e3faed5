"""
Strava Webhook Router

GET answers Strava's subscription handshake; POST receives pushed events.
"""
import json
import logging

from fastapi import APIRouter, Depends, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from core.database import get_db
from services.strava_webhook import handle_event, verify_subscription

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/strava", tags=["strava-webhook"])


@router.get("/webhook")
def verify_webhook(
    hub_mode: str = Query(None, alias="hub.mode"),
    hub_verify_token: str = Query(None, alias="hub.verify_token"),
    hub_challenge: str = Query(None, alias="hub.challenge"),
):
    if verify_subscription(hub_mode, hub_verify_token) and hub_challenge is not None:
        logger.info("Strava webhook subscription verified")
        return {"hub.challenge": hub_challenge}
    logger.warning("Strava webhook verification failed")
    return JSONResponse(status_code=400, content={"error": "Invalid request"})


@router.post("/webhook")
async def receive_webhook(request: Request, db: Session = Depends(get_db)):
    """
    Receive a Strava event. Always 200 so Strava does not retry; the body
    says whether processing succeeded.

    Event handling does blocking Strava and database I/O, so it runs in the
    threadpool rather than on the event loop.
    """
    try:
        event = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.warning("Strava webhook with unparseable body")
        return {"success": False, "error": "Processing failed"}
    if not isinstance(event, dict):
        return {"success": False, "error": "Processing failed"}
    return await run_in_threadpool(handle_event, db, event)
