"""
Activity statistics.

Pure functions over a list of activity-like objects (Activity rows or
anything with the same attributes). Nothing here touches the database;
routers load the activities and pass them in.

Day-based figures use start_date_local so an early-morning run counts on
the athlete's calendar day, not the UTC one.
"""
import re
from dataclasses import dataclass, asdict, field
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

# Upper bound on activities loaded for a stats request (most recent first)
MAX_ACTIVITIES = 1000

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

# (month, day)
HOLIDAYS = {(1, 1), (7, 4), (12, 25), (11, 24), (11, 25)}

_EMOJI_RE = re.compile(
    "[\U0001F600-\U0001F64F"
    "\U0001F300-\U0001F5FF"
    "\U0001F680-\U0001F6FF"
    "\U0001F700-\U0001FAFF"
    "☀-⛿"
    "✀-➿]"
)
_DEFAULT_NAME_RES = (
    re.compile(r"^(Morning|Afternoon|Evening|Night|Lunch)\s+(Run|Ride|Swim|Walk|Hike)$", re.IGNORECASE),
    re.compile(r"^(Run|Ride|Swim|Walk|Hike)$", re.IGNORECASE),
)


@dataclass
class UserStats:
    total_activities: int = 0
    total_distance: float = 0
    total_duration: int = 0
    total_elevation: float = 0
    average_pace: float = 0  # seconds per meter
    average_distance: float = 0
    longest_run: float = 0
    current_streak: int = 0
    longest_streak: int = 0
    active_days: int = 0
    weekly_distance: float = 0

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class ActivityTiming:
    preferred_day_of_week: List[str] = field(default_factory=list)
    preferred_time_of_day: str = "morning"
    weekend_warrior: bool = False
    early_bird: bool = False
    night_owl: bool = False

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class PersonalityTraits:
    """Heuristic 0-100 scores."""
    consistency: int = 0
    intensity: int = 0
    versatility: int = 0
    endurance: int = 0
    dedication: int = 0

    def to_dict(self) -> Dict:
        return asdict(self)


def local_start(activity) -> datetime:
    return activity.start_date_local or activity.start_date


def activity_date(activity) -> date:
    return local_start(activity).date()


def unique_dates(activities: Iterable) -> List[date]:
    """Distinct activity dates, newest first."""
    return sorted({activity_date(a) for a in activities}, reverse=True)


def current_streak(dates: Sequence[date], today: date) -> int:
    """
    Consecutive active days ending today.

    If there is nothing today the streak may still end yesterday; an
    athlete who has not trained yet today has not broken it.
    """
    active = set(dates)
    if today in active:
        cursor = today
    elif today - timedelta(days=1) in active:
        cursor = today - timedelta(days=1)
    else:
        return 0

    streak = 0
    while cursor in active:
        streak += 1
        cursor -= timedelta(days=1)
    return streak


def longest_streak(dates: Sequence[date]) -> int:
    if not dates:
        return 0
    ordered = sorted(set(dates))
    longest = run = 1
    for prev, cur in zip(ordered, ordered[1:]):
        if (cur - prev).days == 1:
            run += 1
            longest = max(longest, run)
        else:
            run = 1
    return longest


def longest_break(dates: Sequence[date]) -> int:
    """Largest gap in days between consecutive active dates."""
    ordered = sorted(set(dates))
    return max(((cur - prev).days for prev, cur in zip(ordered, ordered[1:])), default=0)


def calculate_user_stats(activities: Sequence, today: Optional[date] = None) -> UserStats:
    if not activities:
        return UserStats()

    today = today or date.today()
    total_distance = sum(a.distance or 0 for a in activities)
    total_duration = sum(a.moving_time or 0 for a in activities)
    dates = unique_dates(activities)
    week_start = today - timedelta(days=6)

    return UserStats(
        total_activities=len(activities),
        total_distance=total_distance,
        total_duration=total_duration,
        total_elevation=sum(a.total_elevation_gain or 0 for a in activities),
        average_pace=total_duration / total_distance if total_distance > 0 else 0,
        average_distance=total_distance / len(activities),
        longest_run=max(a.distance or 0 for a in activities),
        current_streak=current_streak(dates, today),
        longest_streak=longest_streak(dates),
        active_days=len(dates),
        weekly_distance=sum(
            a.distance or 0 for a in activities if week_start <= activity_date(a) <= today
        ),
    )


def time_of_day(hour: int) -> str:
    if 5 <= hour < 12:
        return "morning"
    if 12 <= hour < 17:
        return "afternoon"
    if 17 <= hour < 21:
        return "evening"
    return "night"


def day_name(value: datetime) -> str:
    # weekday() is Monday=0; names are Sunday-first
    return DAY_NAMES[(value.weekday() + 1) % 7]


def calculate_activity_timing(activities: Sequence) -> ActivityTiming:
    if not activities:
        return ActivityTiming()

    day_counts: Dict[str, int] = {}
    slot_counts = {"morning": 0, "afternoon": 0, "evening": 0, "night": 0}
    weekend = weekday = early = late = 0

    for a in activities:
        start = local_start(a)
        day_counts[day_name(start)] = day_counts.get(day_name(start), 0) + 1
        slot_counts[time_of_day(start.hour)] += 1
        if start.weekday() >= 5:
            weekend += 1
        else:
            weekday += 1
        if 5 <= start.hour < 9:
            early += 1
        if start.hour >= 21 or start.hour < 5:
            late += 1

    top_day_count = max(day_counts.values())
    preferred_days = [d for d in DAY_NAMES if day_counts.get(d) == top_day_count]

    preferred_slot = "morning"
    for slot, count in slot_counts.items():
        if count > slot_counts[preferred_slot]:
            preferred_slot = slot

    total = len(activities)
    return ActivityTiming(
        preferred_day_of_week=preferred_days,
        preferred_time_of_day=preferred_slot,
        weekend_warrior=weekend > weekday,
        early_bird=early / total > 0.5,
        night_owl=late / total > 0.3,
    )


def _clamp(value: float, low: float = 0, high: float = 100) -> float:
    return max(low, min(high, value))


def calculate_personality_traits(activities: Sequence) -> PersonalityTraits:
    if not activities:
        return PersonalityTraits()

    starts = sorted(local_start(a) for a in activities)
    if len(starts) < 2:
        consistency = 50
    else:
        gaps = [int((cur - prev).total_seconds() // 86400) for prev, cur in zip(starts, starts[1:])]
        consistency = round(_clamp(100 - (sum(gaps) / len(gaps)) * 5))

    # seconds per metre against a 600 floor
    paces = [
        a.moving_time / a.distance
        for a in activities
        if (a.distance or 0) > 0 and (a.moving_time or 0) > 0
    ]
    if paces:
        intensity = round(_clamp((1 - (sum(paces) / len(paces)) / 600) * 100))
    else:
        intensity = 50

    types = {a.type for a in activities}
    longest = max(a.distance or 0 for a in activities)

    return PersonalityTraits(
        consistency=consistency,
        intensity=intensity,
        versatility=min(100, len(types) * 25),
        endurance=round(min(100, longest / 42195 * 100)),
        dedication=min(100, len(activities)),
    )


def percent_change(old: float, new: float) -> float:
    if old == 0:
        return 100 if new > 0 else 0
    return (new - old) / old * 100


def trend_label(change: float) -> str:
    if change >= 50:
        return "crushing-it"
    if change >= 10:
        return "improving"
    if change >= -10:
        return "stable"
    if change >= -50:
        return "declining"
    return "couch-mode"


def is_holiday(value: datetime) -> bool:
    return (value.month, value.day) in HOLIDAYS


def count_emojis(text: Optional[str]) -> int:
    return len(_EMOJI_RE.findall(text or ""))


def is_creative_name(name: Optional[str]) -> bool:
    """Anything other than Strava's auto-generated names ("Morning Run")."""
    if not name or len(name) <= 5:
        return False
    return not any(pattern.match(name.strip()) for pattern in _DEFAULT_NAME_RES)
