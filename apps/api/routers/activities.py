"""
Activities Router

List, read and manually log activities.
"""
import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session, joinedload

from core.auth import get_current_user
from core.cache import invalidate_user_stats
from core.database import get_db
from models import Activity, Gear, User
from schemas import ActivityCreate, ActivityDetailResponse, ActivityListResponse, ActivityResponse
from services.achievements import award_achievements

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/activities", tags=["activities"])


@router.get("", response_model=ActivityListResponse)
def list_activities(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    type: Optional[str] = Query(None, description="Filter by activity type, e.g. Ride"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = db.query(Activity).filter(Activity.user_id == current_user.id)
    if type:
        query = query.filter(Activity.type == type)

    total = query.count()
    activities = (
        query.options(joinedload(Activity.gear))
        .order_by(Activity.start_date.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return {
        "activities": [ActivityResponse.model_validate(a) for a in activities],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


@router.post("", status_code=201)
def create_activity(
    payload: ActivityCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if payload.gear_id is not None:
        gear = db.query(Gear).filter(Gear.id == payload.gear_id, Gear.user_id == current_user.id).first()
        if gear is None:
            raise HTTPException(status_code=400, detail="Unknown gear")

    data = payload.model_dump()
    data["start_date_local"] = data["start_date_local"] or data["start_date"].replace(tzinfo=None)
    if data["elapsed_time"] is None:
        data["elapsed_time"] = data["moving_time"]
    if data["distance"] and data["moving_time"]:
        data["average_speed"] = data["distance"] / data["moving_time"]
    data["has_heartrate"] = data["average_heartrate"] is not None
    data["manual"] = True

    activity = Activity(user_id=current_user.id, **data)
    db.add(activity)
    db.commit()
    db.refresh(activity)

    invalidate_user_stats(current_user.id)
    unlocked = award_achievements(db, current_user, new_activity=activity)
    logger.info(
        "Manual activity created",
        extra={"extra_fields": {"user_id": str(current_user.id), "activity_id": str(activity.id)}},
    )
    return {
        "success": True,
        "activity": ActivityResponse.model_validate(activity),
        "new_achievements": [u.achievement.to_dict() for u in unlocked],
    }


@router.get("/{activity_id}")
def get_activity(
    activity_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    activity = (
        db.query(Activity)
        .options(joinedload(Activity.gear))
        .filter(Activity.id == activity_id, Activity.user_id == current_user.id)
        .first()
    )
    if activity is None:
        raise HTTPException(status_code=404, detail="Activity not found")
    return {"activity": ActivityDetailResponse.model_validate(activity)}
