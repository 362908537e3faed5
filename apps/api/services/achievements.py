"""
Achievement catalog and evaluation.

Every definition names a metric and a numeric target. A single pass over
the user's activities computes every metric (AchievementContext); unlock
checks and progress bars both read from it, so a badge shows 100% exactly
when it unlocks.

Unlocks are append-only: save_achievements inserts a UserAchievement only
when none exists for (user, achievement), and nothing ever deletes one.
"""
import logging
from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Set

from sqlalchemy.orm import Session

from models import Achievement, User, UserAchievement
from services.activity_queries import load_recent_activities
from services.stats import (
    activity_date,
    count_emojis,
    current_streak,
    is_creative_name,
    is_holiday,
    local_start,
    longest_break,
    unique_dates,
)

logger = logging.getLogger(__name__)

CATEGORY_ORDER = ["couchproof", "milestone", "streak", "quirky"]
TIER_POINTS = {"bronze": 10, "silver": 25, "gold": 50}
COUCHPROOF_BONUS = 5


def achievement_score(tier: str, category: str) -> int:
    bonus = COUCHPROOF_BONUS if category == "couchproof" else 0
    return TIER_POINTS.get(tier, 0) + bonus


@dataclass(frozen=True)
class AchievementDefinition:
    id: str
    code: str
    name: str
    description: str
    icon: str
    category: str
    tier: str
    requirement_type: str
    requirement_value: float
    metric: str
    sort_order: int
    activity_type: Optional[str] = None

    @property
    def points(self) -> int:
        return achievement_score(self.tier, self.category)

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "icon": self.icon,
            "category": self.category,
            "tier": self.tier,
            "requirement": {
                "type": self.requirement_type,
                "value": self.requirement_value,
                "activity_type": self.activity_type,
            },
            "sort_order": self.sort_order,
            "points": self.points,
        }


def _d(*args, **kwargs) -> AchievementDefinition:
    return AchievementDefinition(*args, **kwargs)


ACHIEVEMENTS: List[AchievementDefinition] = [
    # milestone
    _d("first_activity", "FIRST_ACTIVITY", "First Step", "Complete your first activity", "🎯",
       "milestone", "bronze", "activity_count", 1, "activity_count", 1),
    _d("century_ride", "CENTURY_RIDE", "Century Club", "Complete a 100mi/160km ride in a single activity", "💯",
       "milestone", "gold", "single_activity_distance", 160934, "longest_ride", 10, activity_type="Ride"),
    _d("marathon", "MARATHON", "Marathoner", "Run 26.2 miles in one activity", "🏃",
       "milestone", "gold", "single_activity_distance", 42195, "longest_run", 11, activity_type="Run"),
    _d("everest", "EVEREST", "Everesting", "Climb 8849m total elevation gain", "🏔️",
       "milestone", "gold", "total_elevation", 8849, "total_elevation", 20),
    _d("1000km", "THOUSAND_K", "Thousand K Club", "Log 1000km total distance across all activities", "🌍",
       "milestone", "silver", "total_distance", 1_000_000, "total_distance", 30),
    _d("100_activities", "TRIPLE_DIGITS", "Triple Digits", "Complete 100 activities", "💪",
       "milestone", "silver", "activity_count", 100, "activity_count", 40),
    # quirky
    _d("pre_dawn", "PRE_DAWN_WARRIOR", "Pre-Dawn Warrior", "Start an activity before 5am", "🌅",
       "quirky", "bronze", "time_based", 1, "pre_dawn", 100),
    _d("night_owl", "NIGHT_OWL", "Night Owl", "Complete activity after 11pm", "🦉",
       "quirky", "bronze", "time_based", 1, "late_night", 101),
    _d("holiday_hero", "HOLIDAY_HERO", "Holiday Hero", "Exercise on a major holiday", "🎉",
       "quirky", "bronze", "special_day", 1, "holiday", 102),
    _d("double_day", "DOUBLE_DIPPER", "Double Dipper", "Complete two activities in one day", "🔄",
       "quirky", "bronze", "activities_per_day", 2, "max_per_day", 103),
    _d("emoji_artist", "EMOJI_ARTIST", "Emoji Artist", "Use emojis in 5 activity names", "😎",
       "quirky", "bronze", "emoji_in_name", 5, "emoji_names", 104),
    _d("naming_convention", "NAMING_WIZARD", "Naming Wizard", "Create 10 creative activity names", "✨",
       "quirky", "silver", "creative_names", 10, "creative_names", 105),
    # streak
    _d("week_streak", "WEEK_WARRIOR", "Week Warrior", "Maintain a 7 day activity streak", "📅",
       "streak", "bronze", "streak_days", 7, "current_streak", 200),
    _d("month_streak", "MONTHLY_MANIAC", "Monthly Maniac", "Maintain a 30 day activity streak", "🔥",
       "streak", "silver", "streak_days", 30, "current_streak", 201),
    _d("quarter_streak", "QUARTERLY_QUEEN", "Quarterly Queen", "Maintain a 90 day activity streak", "👑",
       "streak", "gold", "streak_days", 90, "current_streak", 202),
    _d("comeback_kid", "COMEBACK_KID", "Comeback Kid", "Return to activity after a 30+ day break", "🎊",
       "streak", "bronze", "comeback", 30, "longest_break", 203),
    # couchproof
    _d("officially_not_a_couch_potato", "NOT_A_COUCH_POTATO", "Officially Not a Couch Potato",
       "Complete any activity", "🛋️", "couchproof", "bronze", "activity_count", 1, "activity_count", 300),
    _d("proof_of_movement", "PROOF_OF_MOVEMENT", "Proof of Movement", "Complete 10 activities total", "🚶",
       "couchproof", "bronze", "activity_count", 10, "activity_count", 301),
    _d("couch_destroyer", "COUCH_DESTROYER", "Couch Destroyer", "Complete 50 activities total", "🔨",
       "couchproof", "silver", "activity_count", 50, "activity_count", 302),
    _d("couch_annihilator", "COUCH_ANNIHILATOR", "Couch Annihilator", "Complete 100 activities total", "💥",
       "couchproof", "gold", "activity_count", 100, "activity_count", 303),
]

ACHIEVEMENTS_BY_ID: Dict[str, AchievementDefinition] = {a.id: a for a in ACHIEVEMENTS}
ACHIEVEMENTS_BY_CODE: Dict[str, AchievementDefinition] = {a.code: a for a in ACHIEVEMENTS}

# Metrics judged on the triggering activity alone when one is given
PER_ACTIVITY_METRICS = {"pre_dawn", "late_night", "holiday", "max_per_day"}


def get_achievement(achievement_id: str) -> Optional[AchievementDefinition]:
    return ACHIEVEMENTS_BY_ID.get(achievement_id) or ACHIEVEMENTS_BY_CODE.get(achievement_id)


@dataclass
class Unlock:
    achievement: AchievementDefinition
    activity_id: Optional[object] = None


class AchievementContext:
    """
    Current value of every metric for a set of activities, plus the
    activity that first satisfied each activity-bound metric.
    """

    def __init__(self, activities: Sequence, today: Optional[date] = None):
        self.activities = sorted(activities, key=local_start, reverse=True)
        today = today or date.today()
        dates = unique_dates(self.activities)
        per_day = Counter(activity_date(a) for a in self.activities)

        rides = [a for a in self.activities if a.type == "Ride"]
        runs = [a for a in self.activities if a.type == "Run"]

        self.values: Dict[str, float] = {
            "activity_count": len(self.activities),
            "longest_ride": max((a.distance or 0 for a in rides), default=0),
            "longest_run": max((a.distance or 0 for a in runs), default=0),
            "total_elevation": sum(a.total_elevation_gain or 0 for a in self.activities),
            "total_distance": sum(a.distance or 0 for a in self.activities),
            "pre_dawn": sum(1 for a in self.activities if local_start(a).hour < 5),
            "late_night": sum(1 for a in self.activities if local_start(a).hour >= 23),
            "holiday": sum(1 for a in self.activities if is_holiday(local_start(a))),
            "max_per_day": max(per_day.values(), default=0),
            "emoji_names": sum(1 for a in self.activities if count_emojis(a.name) > 0),
            "creative_names": sum(1 for a in self.activities if is_creative_name(a.name)),
            "current_streak": current_streak(dates, today),
            "longest_break": longest_break(dates),
        }
        self._per_day = per_day

    def value(self, definition: AchievementDefinition) -> float:
        return self.values.get(definition.metric, 0)

    def evidence(self, definition: AchievementDefinition, pool: Optional[Iterable] = None):
        """The activity that earned an activity-bound achievement, if any."""
        # oldest first: credit goes to the activity that got there first
        pool = sorted(pool if pool is not None else self.activities, key=local_start)
        target = definition.requirement_value
        metric = definition.metric

        def matches(a) -> bool:
            start = local_start(a)
            if metric in ("longest_ride", "longest_run"):
                return a.type == definition.activity_type and (a.distance or 0) >= target
            if metric == "pre_dawn":
                return start.hour < 5
            if metric == "late_night":
                return start.hour >= 23
            if metric == "holiday":
                return is_holiday(start)
            if metric == "max_per_day":
                return self._per_day.get(activity_date(a), 0) >= target
            return True

        if metric == "activity_count" and definition.id == "first_activity":
            return pool[0] if pool else None
        if metric in ("longest_ride", "longest_run") or metric in PER_ACTIVITY_METRICS:
            return next((a for a in pool if matches(a)), None)
        return None


def calculate_progress(definition: AchievementDefinition, context: AchievementContext) -> Dict:
    current = context.value(definition)
    target = definition.requirement_value
    percentage = round(current / target * 100) if target > 0 else 100
    return {
        "current_value": current,
        "target_value": target,
        "percentage": max(0, min(100, percentage)),
    }


def check_achievements(
    activities: Sequence,
    unlocked_ids: Optional[Set[str]] = None,
    new_activity=None,
    today: Optional[date] = None,
) -> List[Unlock]:
    """
    Definitions whose target is met and that are not in unlocked_ids.

    With new_activity, the time/holiday/double-day quirks are judged on
    that activity alone; without it, on the whole history.
    """
    unlocked_ids = unlocked_ids or set()
    context = AchievementContext(activities, today=today)
    results: Dict[str, Unlock] = {}

    for definition in ACHIEVEMENTS:
        if definition.id in unlocked_ids:
            continue

        if new_activity is not None and definition.metric in PER_ACTIVITY_METRICS:
            earned_by = context.evidence(definition, pool=[new_activity])
            if earned_by is not None:
                results[definition.id] = Unlock(definition, getattr(earned_by, "id", None))
            continue

        if context.value(definition) >= definition.requirement_value:
            earned_by = context.evidence(definition)
            results[definition.id] = Unlock(definition, getattr(earned_by, "id", None) if earned_by else None)

    return list(results.values())


def sync_catalog(db: Session) -> Dict[str, Achievement]:
    """Upsert catalog rows by code; returns code -> row."""
    rows = {row.code: row for row in db.query(Achievement).all()}
    for definition in ACHIEVEMENTS:
        row = rows.get(definition.code)
        if row is None:
            row = Achievement(code=definition.code)
            db.add(row)
            rows[definition.code] = row
        row.name = definition.name
        row.description = definition.description
        row.icon = definition.icon
        row.category = definition.category
        row.tier = definition.tier
        row.requirement_type = definition.requirement_type
        row.requirement_value = definition.requirement_value
        row.sort_order = definition.sort_order
    db.flush()
    return rows


def get_unlocked(db: Session, user: User) -> Dict[str, UserAchievement]:
    """Achievement definition id -> unlock row for the user."""
    unlocked: Dict[str, UserAchievement] = {}
    for row in db.query(UserAchievement).filter(UserAchievement.user_id == user.id).all():
        definition = ACHIEVEMENTS_BY_CODE.get(row.achievement.code)
        if definition is not None:
            unlocked[definition.id] = row
    return unlocked


def save_achievements(db: Session, user: User, unlocks: Sequence[Unlock]) -> List[Unlock]:
    """Insert unlock rows that do not exist yet. Returns the ones inserted."""
    if not unlocks:
        return []

    catalog = sync_catalog(db)
    saved: List[Unlock] = []
    for unlock in unlocks:
        row = catalog[unlock.achievement.code]
        exists = (
            db.query(UserAchievement)
            .filter(UserAchievement.user_id == user.id, UserAchievement.achievement_id == row.id)
            .first()
        )
        if exists is not None:
            continue
        db.add(UserAchievement(
            user_id=user.id,
            achievement_id=row.id,
            activity_id=unlock.activity_id,
            unlocked_at=datetime.now(timezone.utc),
        ))
        saved.append(unlock)

    db.commit()
    if saved:
        logger.info(
            "Achievements unlocked",
            extra={"extra_fields": {"user_id": str(user.id), "achievements": [u.achievement.id for u in saved]}},
        )
    return saved


def award_achievements(db: Session, user: User, new_activity=None) -> List[Unlock]:
    """Check the user's recent history and store whatever is newly earned."""
    activities = load_recent_activities(db, user.id)
    unlocked = get_unlocked(db, user)
    unlocks = check_achievements(activities, set(unlocked), new_activity=new_activity)
    return save_achievements(db, user, unlocks)


def _sort_key(definition: AchievementDefinition):
    return (CATEGORY_ORDER.index(definition.category), definition.sort_order)


def get_all_progress(
    activities: Sequence,
    unlocked: Dict[str, UserAchievement],
    today: Optional[date] = None,
) -> List[Dict]:
    context = AchievementContext(activities, today=today)
    items = []
    for definition in sorted(ACHIEVEMENTS, key=_sort_key):
        row = unlocked.get(definition.id)
        progress = calculate_progress(definition, context)
        if row is not None:
            # Streaks can lapse after unlocking; an unlock stays complete
            progress["percentage"] = 100
        items.append({
            "achievement": definition.to_dict(),
            "progress": {
                **progress,
                "is_unlocked": row is not None,
                "unlocked_at": row.unlocked_at.isoformat() if row is not None else None,
            },
        })
    return items


def get_next_milestone(progress_items: List[Dict]) -> Optional[Dict]:
    """Locked achievement closest to completion."""
    locked = [p for p in progress_items if not p["progress"]["is_unlocked"]]
    if not locked:
        return None
    return max(locked, key=lambda p: p["progress"]["percentage"])


def get_close_achievements(progress_items: List[Dict], min_percentage: int = 50) -> List[Dict]:
    close = [
        p for p in progress_items
        if not p["progress"]["is_unlocked"] and p["progress"]["percentage"] >= min_percentage
    ]
    return sorted(close, key=lambda p: p["progress"]["percentage"], reverse=True)


def get_recent_unlocks(db: Session, user: User, days: int = 30) -> List[UserAchievement]:
    since = datetime.now(timezone.utc) - timedelta(days=days)
    return (
        db.query(UserAchievement)
        .filter(UserAchievement.user_id == user.id, UserAchievement.unlocked_at >= since)
        .order_by(UserAchievement.unlocked_at.desc())
        .all()
    )


def get_achievement_stats(progress_items: List[Dict]) -> Dict:
    by_category: Dict[str, Dict[str, int]] = {}
    by_tier: Dict[str, Dict[str, int]] = {}
    score = 0
    unlocked = 0
    for item in progress_items:
        a = item["achievement"]
        is_unlocked = item["progress"]["is_unlocked"]
        for bucket, key in ((by_category, a["category"]), (by_tier, a["tier"])):
            entry = bucket.setdefault(key, {"total": 0, "unlocked": 0})
            entry["total"] += 1
            entry["unlocked"] += int(is_unlocked)
        if is_unlocked:
            unlocked += 1
            score += a["points"]

    total = len(progress_items)
    return {
        "total": total,
        "unlocked": unlocked,
        "completion_percentage": round(unlocked / total * 100) if total else 0,
        "score": score,
        "by_category": by_category,
        "by_tier": by_tier,
    }
