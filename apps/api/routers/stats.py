"""
Stats Router

Dashboard aggregates, cached per user in Redis.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.auth import get_current_user
from core.cache import get_cache, set_cache, stats_cache_key
from core.config import settings
from core.database import get_db
from models import AthleteStats, User
from services.activity_queries import load_recent_activities
from services.stats import (
    calculate_activity_timing,
    calculate_personality_traits,
    calculate_user_stats,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/stats", tags=["stats"])


def _athlete_stats(row: Optional[AthleteStats]) -> Optional[Dict[str, Any]]:
    if row is None:
        return None
    return {
        "biggest_ride_distance": row.biggest_ride_distance,
        "biggest_climb_elevation_gain": row.biggest_climb_elevation_gain,
        "recent_totals": row.recent_totals,
        "ytd_totals": row.ytd_totals,
        "all_totals": row.all_totals,
        "last_updated": row.last_updated.isoformat() if row.last_updated else None,
    }


@router.get("")
def get_stats(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    key = stats_cache_key(current_user.id)
    cached = get_cache(key)
    if cached is not None:
        return cached

    activities = load_recent_activities(db, current_user.id)
    athlete_stats = db.query(AthleteStats).filter(AthleteStats.user_id == current_user.id).first()

    payload = {
        "stats": calculate_user_stats(activities).to_dict(),
        "traits": calculate_personality_traits(activities).to_dict(),
        "timing": calculate_activity_timing(activities).to_dict(),
        "athlete_stats": _athlete_stats(athlete_stats),
        "activity_count": len(activities),
    }
    set_cache(key, payload, ttl=settings.CACHE_TTL_STATS)
    return payload
