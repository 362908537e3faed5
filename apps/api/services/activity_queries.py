"""Activity loading shared by stats, achievements and AI routes."""
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from models import Activity, Gear
from services.stats import MAX_ACTIVITIES


def load_recent_activities(db: Session, user_id: UUID, limit: Optional[int] = MAX_ACTIVITIES) -> List[Activity]:
    """Most recent first."""
    query = (
        db.query(Activity)
        .filter(Activity.user_id == user_id)
        .order_by(Activity.start_date.desc())
    )
    if limit:
        query = query.limit(limit)
    return query.all()


def load_user_gear(db: Session, user_id: UUID) -> List[Gear]:
    return db.query(Gear).filter(Gear.user_id == user_id).order_by(Gear.name).all()


def get_user_activity(db: Session, user_id: UUID, activity_id: UUID) -> Optional[Activity]:
    return (
        db.query(Activity)
        .filter(Activity.id == activity_id, Activity.user_id == user_id)
        .first()
    )
