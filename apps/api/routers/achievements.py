"""
Achievements Router
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from core.auth import get_current_user
from core.database import get_db
from models import User
from schemas import AchievementCheckRequest
from services.achievements import (
    award_achievements,
    get_achievement,
    get_achievement_stats,
    get_all_progress,
    get_close_achievements,
    get_next_milestone,
    get_recent_unlocks,
    get_unlocked,
)
from services.activity_queries import get_user_activity, load_recent_activities

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/achievements", tags=["achievements"])


@router.get("")
def list_achievements(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Every achievement with the user's progress toward it."""
    activities = load_recent_activities(db, current_user.id)
    items = get_all_progress(activities, get_unlocked(db, current_user))
    stats = get_achievement_stats(items)
    return {
        "achievements": items,
        "total": stats["total"],
        "unlocked": stats["unlocked"],
        "stats": stats,
        "next_milestone": get_next_milestone(items),
        "close": get_close_achievements(items),
        "recent": [
            {
                "id": get_achievement(row.achievement.code).id,
                "name": row.achievement.name,
                "icon": row.achievement.icon,
                "unlocked_at": row.unlocked_at.isoformat(),
            }
            for row in get_recent_unlocks(db, current_user)
            if get_achievement(row.achievement.code) is not None
        ],
    }


@router.post("")
def check_user_achievements(
    request: Optional[AchievementCheckRequest] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Evaluate the user's history, optionally around one new activity."""
    new_activity = None
    if request is not None and request.activity_id is not None:
        new_activity = get_user_activity(db, current_user.id, request.activity_id)
        if new_activity is None:
            raise HTTPException(status_code=404, detail="Activity not found")

    saved = award_achievements(db, current_user, new_activity=new_activity)
    return {
        "new_achievements": [
            {**u.achievement.to_dict(), "activity_id": str(u.activity_id) if u.activity_id else None}
            for u in saved
        ],
        "count": len(saved),
    }


@router.get("/{achievement_id}")
def get_achievement_detail(
    achievement_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    definition = get_achievement(achievement_id)
    if definition is None:
        raise HTTPException(status_code=404, detail="Achievement not found")

    activities = load_recent_activities(db, current_user.id)
    items = get_all_progress(activities, get_unlocked(db, current_user))
    return next(item for item in items if item["achievement"]["id"] == definition.id)
