"""
AI Router

Roasts, hype, narratives, personality profiles and per-activity summaries.
Each fresh generation costs one daily credit; cached summaries are free.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from core.auth import get_current_user
from core.database import get_db
from core.exceptions import GenerationUnavailableError, UpstreamServiceError
from models import User
from schemas import AIGenerateRequest, AIStyleRequest, AISummaryRequest
from services import ai_config
from services.activity_queries import get_user_activity
from services.ai_avoidance import check_credits, get_generation_stats
from services.ai_client import AIGenerationError, get_provider_info
from services.ai_generate import (
    AIRepetitionError,
    generate_activity_summary,
    generate_hype,
    generate_narrative,
    generate_personality,
    generate_roast,
    load_user_stats,
)
from services.ai_prompts import STYLES

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ai", tags=["ai"])


def _next_reset(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(days=1)


def _out_of_credits(credits: Dict[str, Any], now: datetime) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={
            "error": "Daily generation limit reached",
            "limit": credits["limit"],
            "remaining": 0,
            "reset_time": _next_reset(now).isoformat(),
        },
    )


def _validate_style(generation_type: str, style: Optional[str]) -> None:
    if style is not None and style not in STYLES.get(generation_type, {}):
        raise HTTPException(status_code=400, detail=f"Unknown {generation_type} style: {style}")


def _generate(db: Session, user: User, run: Callable[[], Dict[str, Any]]):
    """Credit check, generation, and error translation shared by every route."""
    now = datetime.now(timezone.utc)
    credits = check_credits(db, user, now)
    if not credits["has_credits"]:
        return _out_of_credits(credits, now)

    try:
        result = run()
    except AIRepetitionError as e:
        raise GenerationUnavailableError(str(e))
    except AIGenerationError as e:
        raise UpstreamServiceError("AI provider", str(e))

    return {**result, "credits": check_credits(db, user)}


@router.get("/generate")
def get_generation_info(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return {
        "credits": check_credits(db, current_user),
        "stats": get_generation_stats(db, current_user.id),
        "available_types": list(ai_config.REQUESTABLE_TYPES),
        "styles": {kind: list(styles) for kind, styles in STYLES.items()},
        "provider": get_provider_info(),
    }


@router.post("/generate")
def generate(
    request: AIGenerateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    generation_type = request.type
    if generation_type not in ai_config.REQUESTABLE_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid type. Expected one of: {', '.join(ai_config.REQUESTABLE_TYPES)}",
        )
    _validate_style(generation_type, request.style)

    activity = None
    if generation_type == "narrative" and request.activity_id is not None:
        activity = get_user_activity(db, current_user.id, request.activity_id)
        if activity is None:
            raise HTTPException(status_code=404, detail="Activity not found")

    def run():
        stats = load_user_stats(db, current_user)
        if generation_type == "roast":
            return generate_roast(db, current_user, stats, request.style)
        if generation_type == "hype":
            return generate_hype(db, current_user, stats, request.style)
        if generation_type == "narrative":
            return generate_narrative(db, current_user, stats, activity)
        return generate_personality(db, current_user, stats)

    return _generate(db, current_user, run)


@router.post("/hype")
def hype(
    request: Optional[AIStyleRequest] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    style = request.style if request is not None else None
    _validate_style("hype", style)
    return _generate(
        db, current_user,
        lambda: generate_hype(db, current_user, load_user_stats(db, current_user), style),
    )


@router.post("/personality")
def personality(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _generate(
        db, current_user,
        lambda: generate_personality(db, current_user, load_user_stats(db, current_user)),
    )


@router.post("/summary")
def create_summary(
    request: AISummaryRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    activity = get_user_activity(db, current_user.id, request.activity_id)
    if activity is None:
        raise HTTPException(status_code=404, detail="Activity not found")

    if activity.ai_summary:
        return generate_activity_summary(db, current_user, activity)
    return _generate(db, current_user, lambda: generate_activity_summary(db, current_user, activity))


@router.get("/summary")
def get_summary(
    activity_id: UUID = Query(..., description="Activity to read the summary for"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    activity = get_user_activity(db, current_user.id, activity_id)
    if activity is None:
        raise HTTPException(status_code=404, detail="Activity not found")
    return {
        "content": activity.ai_summary,
        "generated_at": activity.ai_summary_generated_at,
        "exists": bool(activity.ai_summary),
    }
