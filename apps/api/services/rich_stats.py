"""
Rich stats payload for AI prompts.

calculate_rich_stats turns a user's history into a nested dict of volume
windows, comparisons, habits, records and quirks. Prompts quote from it,
so values are rounded to what reads well in a sentence.
"""
from collections import Counter
from datetime import date, datetime, timedelta, timezone
from statistics import mean, pstdev
from typing import Any, Dict, List, Optional, Sequence

from services.stats import (
    activity_date,
    calculate_personality_traits,
    count_emojis,
    current_streak,
    day_name,
    is_creative_name,
    is_holiday,
    local_start,
    longest_break,
    longest_streak,
    percent_change,
    trend_label,
    unique_dates,
)

RIDE_TYPES = {"Ride", "VirtualRide", "EBikeRide", "MountainBikeRide", "GravelRide"}
RUN_TYPES = {"Run", "VirtualRun", "TrailRun"}
SWIM_TYPES = {"Swim"}

EVEREST_M = 8849
MARATHON_M = 42195
EARTH_CIRCUMFERENCE_M = 40_075_000
EIFFEL_TOWER_M = 330
MOVIE_S = 2 * 3600
PIZZA_SLICE_KCAL = 285


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _volume(activities: Sequence, with_elevation: bool = True) -> Dict[str, float]:
    totals = {
        "activities": len(activities),
        "distance": round(sum(a.distance or 0 for a in activities), 1),
        "time": sum(a.moving_time or 0 for a in activities),
    }
    if with_elevation:
        totals["elevation"] = round(sum(a.total_elevation_gain or 0 for a in activities), 1)
    return totals


def _sport_volume(activities: Sequence) -> Dict[str, Dict[str, float]]:
    return {
        "rides": _volume([a for a in activities if a.type in RIDE_TYPES]),
        "runs": _volume([a for a in activities if a.type in RUN_TYPES]),
        "swims": _volume([a for a in activities if a.type in SWIM_TYPES], with_elevation=False),
        "total": _volume(activities),
    }


def _between(activities: Sequence, start: datetime, end: datetime) -> List:
    return [a for a in activities if start <= _utc(a.start_date) < end]


def _month_start(year: int, month: int) -> datetime:
    # month may run past 1..12 in either direction
    year += (month - 1) // 12
    month = (month - 1) % 12 + 1
    return datetime(year, month, 1, tzinfo=timezone.utc)


def _compare(old: Sequence, new: Sequence) -> Dict[str, Any]:
    distance_change = percent_change(sum(a.distance or 0 for a in old), sum(a.distance or 0 for a in new))
    return {
        "distance_change": round(distance_change, 1),
        "activities_change": round(percent_change(len(old), len(new)), 1),
        "trend": trend_label(distance_change),
    }


def _comparisons(activities: Sequence, now: datetime) -> Dict[str, Any]:
    this_month = _month_start(now.year, now.month)
    last_month = _month_start(now.year, now.month - 1)
    month_before = _month_start(now.year, now.month - 2)
    year_start = datetime(now.year, 1, 1, tzinfo=timezone.utc)
    last_year_start = datetime(now.year - 1, 1, 1, tzinfo=timezone.utc)
    a_year_ago = now - timedelta(days=365)
    same_month_last_year = _month_start(now.year - 1, now.month)

    return {
        "vs_last_month": _compare(
            _between(activities, month_before, last_month),
            _between(activities, last_month, this_month),
        ),
        "vs_last_year": _compare(
            _between(activities, last_year_start, a_year_ago),
            _between(activities, year_start, now),
        ),
        "vs_same_month_last_year": _compare(
            _between(activities, same_month_last_year, same_month_last_year + (now - this_month)),
            _between(activities, this_month, now),
        ),
    }


def _season(month: int) -> str:
    if month in (3, 4, 5):
        return "spring"
    if month in (6, 7, 8):
        return "summer"
    if month in (9, 10, 11):
        return "fall"
    return "winter"


def _time_slot(hour: int) -> str:
    if hour < 6:
        return "predawn"
    if hour < 12:
        return "morning"
    if hour < 18:
        return "afternoon"
    return "evening"


def _timing(activities: Sequence) -> Dict[str, Any]:
    days = Counter(day_name(local_start(a)) for a in activities)
    slots = Counter(_time_slot(local_start(a).hour) for a in activities)
    seasons = Counter(_season(local_start(a).month) for a in activities)
    weekend = sum(1 for a in activities if local_start(a).weekday() >= 5)
    weekday = len(activities) - weekend
    return {
        "day_distribution": dict(days),
        "time_slots": dict(slots),
        "seasons": dict(seasons),
        "favorite_day": days.most_common(1)[0][0] if days else None,
        "favorite_time_slot": slots.most_common(1)[0][0] if slots else None,
        "weekday_count": weekday,
        "weekend_count": weekend,
        "is_weekend_warrior": weekend > weekday * 0.6,
    }


def _consistency(dates: List[date], today: date) -> Dict[str, Any]:
    streak = current_streak(dates, today)
    recent_days = [d for d in dates if (today - d).days < 28]
    per_week = round(len(recent_days) / 4, 1)
    biggest_gap = longest_break(dates)
    current_gap = (today - dates[0]).days if dates else 0

    if streak >= 7:
        status = "on-fire"
    elif streak >= 3:
        status = "active"
    elif current_gap > 7:
        status = "broken"
    else:
        status = "none"

    return {
        "current_streak": streak,
        "longest_streak": longest_streak(dates),
        "active_days_per_week": per_week,
        "longest_break": biggest_gap,
        "current_break": current_gap,
        "streak_status": status,
        "is_coming_back": biggest_gap > 30 and current_gap < 7,
        "is_on_fire": streak >= 7 or per_week >= 5,
    }


def _record(activities: Sequence, attr: str, key=None) -> Optional[Dict[str, Any]]:
    key = key or (lambda a: getattr(a, attr) or 0)
    candidates = [a for a in activities if key(a)]
    if not candidates:
        return None
    best = max(candidates, key=key)
    return {
        "name": best.name,
        "type": best.type,
        "value": round(key(best), 2),
        "date": activity_date(best).isoformat(),
    }


def _records(activities: Sequence) -> Dict[str, Any]:
    return {
        "longest_distance": _record(activities, "distance"),
        "biggest_climb": _record(activities, "total_elevation_gain"),
        "fastest_pace": _record(activities, "average_speed"),
        "longest_duration": _record(activities, "moving_time"),
        "highest_power": _record(activities, "average_watts"),
        "highest_heart_rate": _record(activities, "max_heartrate"),
        "most_kudos": _record(activities, "kudos_count"),
    }


def _gear(gear: Sequence) -> Dict[str, Any]:
    def describe(items):
        return [
            {"name": g.name, "distance": round(g.distance or 0, 1), "primary": g.primary, "retired": g.retired}
            for g in items
        ]

    bikes = [g for g in gear if g.type == "bike"]
    shoes = [g for g in gear if g.type == "shoe"]
    active = [g for g in gear if not g.retired]
    if len(active) > 3:
        rotation = "varied"
    elif len(active) > 1:
        rotation = "focused"
    elif len(active) == 1:
        rotation = "single"
    else:
        rotation = "none"
    return {
        "bikes": describe(bikes),
        "shoes": describe(shoes),
        "gear_rotation": rotation,
        "is_n_plus_one_guy": len(bikes) >= 3,
    }


def _effort(activities: Sequence) -> Dict[str, Any]:
    speeds = [a.average_speed for a in activities if (a.average_speed or 0) > 0]
    avg_speed = mean(speeds) if speeds else 0
    cv = (pstdev(speeds) / avg_speed * 100) if len(speeds) > 1 and avg_speed else 0
    if cv < 10:
        variability = "very-consistent"
    elif cv < 20:
        variability = "consistent"
    elif cv < 40:
        variability = "variable"
    else:
        variability = "erratic"

    km = sum(a.distance or 0 for a in activities) / 1000
    climb_per_km = sum(a.total_elevation_gain or 0 for a in activities) / km if km else 0
    if climb_per_km > 50:
        terrain = "mountainous"
    elif climb_per_km > 25:
        terrain = "hilly"
    elif climb_per_km > 10:
        terrain = "rolling"
    else:
        terrain = "flat"

    return {
        "avg_speed": round(avg_speed, 2),
        "speed_variability": round(cv, 1),
        "pace_variability": variability,
        "elevation_per_km": round(climb_per_km, 1),
        "terrain_preference": terrain,
    }


def _exploration(activities: Sequence) -> Dict[str, Any]:
    located = [a for a in activities if a.start_lat is not None and a.start_lng is not None]
    areas = {(round(a.start_lat * 100), round(a.start_lng * 100)) for a in located}
    routes = Counter((round(a.start_lat * 1000), round(a.start_lng * 1000)) for a in located)
    top_repeats = routes.most_common(1)[0][1] if routes else 0
    return {
        "unique_start_locations": len(areas),
        "explorer_score": min(100, len(areas) * 2),
        "top_route_repeats": top_repeats,
        "route_repetition": round(top_repeats / len(located), 2) if located else 0,
    }


def _quirks(activities: Sequence) -> Dict[str, Any]:
    per_day = Counter(activity_date(a) for a in activities)
    names = [a.name for a in activities if a.name]
    creative = sum(1 for n in names if is_creative_name(n))
    ratio = creative / len(names) if names else 0
    if ratio > 0.7:
        naming = "creative"
    elif ratio > 0.3:
        naming = "mixed"
    elif ratio > 0.1:
        naming = "descriptive"
    else:
        naming = "default"
    return {
        "pre_dawn_count": sum(1 for a in activities if local_start(a).hour < 5),
        "late_night_count": sum(1 for a in activities if local_start(a).hour >= 23),
        "holiday_count": sum(1 for a in activities if is_holiday(local_start(a))),
        "double_day_count": sum(1 for c in per_day.values() if c >= 2),
        "emoji_count": sum(count_emojis(n) for n in names),
        "creative_name_count": creative,
        "naming_style": naming,
    }


def _fun_comparisons(activities: Sequence) -> Dict[str, Any]:
    distance = sum(a.distance or 0 for a in activities)
    elevation = sum(a.total_elevation_gain or 0 for a in activities)
    seconds = sum(a.moving_time or 0 for a in activities)
    calories = sum(a.calories or 0 for a in activities)
    return {
        "everests": round(elevation / EVEREST_M, 2),
        "marathons": round(distance / MARATHON_M, 1),
        "distance_equivalent": f"{distance / EARTH_CIRCUMFERENCE_M * 100:.2f}% of the way around the Earth",
        "elevation_equivalent": f"{elevation / EIFFEL_TOWER_M:.0f} Eiffel Towers stacked up",
        "time_equivalent": f"{seconds / MOVIE_S:.0f} feature-length movies",
        "calorie_equivalent": f"{calories / PIZZA_SLICE_KCAL:.0f} slices of pizza",
    }


def calculate_rich_stats(
    activities: Sequence,
    user,
    gear: Sequence = (),
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    today = now.date()
    dates = unique_dates(activities)
    ordered = sorted(activities, key=lambda a: _utc(a.start_date), reverse=True)

    joined = user.strava_created_at or user.created_at
    account_age_days = (now - _utc(joined)).days if joined else 0

    kudos = [a.kudos_count or 0 for a in activities]
    avg_kudos = round(mean(kudos), 1) if kudos else 0
    followers = user.strava_follower_count or 0
    if followers > 100 or avg_kudos > 20:
        social_type = "social-butterfly"
    elif followers > 20 or avg_kudos > 5:
        social_type = "balanced"
    elif followers < 10 and avg_kudos < 3:
        social_type = "lone-wolf"
    else:
        social_type = "unknown"

    types = Counter(a.type for a in activities)
    type_breakdown = {
        t: {
            "count": n,
            "distance": round(sum(a.distance or 0 for a in activities if a.type == t), 1),
            "time": sum(a.moving_time or 0 for a in activities if a.type == t),
        }
        for t, n in types.items()
    }
    weeks = max(1, (today - dates[-1]).days / 7) if dates else 1
    last = ordered[0] if ordered else None

    year_start = datetime(now.year, 1, 1, tzinfo=timezone.utc)
    month_start = _month_start(now.year, now.month)
    consistency = _consistency(dates, today)
    recent_prs = any(
        (a.pr_count or 0) > 0 and (now - _utc(a.start_date)).days <= 30 for a in activities
    )

    return {
        "identity": {
            "name": user.first_name or user.name,
            "account_age_days": account_age_days,
            "is_premium": bool(user.strava_premium),
            "ftp": user.ftp,
            "weight": user.weight,
            "measurement_preference": user.measurement_preference,
        },
        "social": {
            "followers": followers,
            "total_kudos": sum(kudos),
            "avg_kudos": avg_kudos,
            "most_kudosed": _record(activities, "kudos_count"),
            "social_type": social_type,
        },
        "volume": {
            "all_time": _sport_volume(activities),
            "ytd": _sport_volume(_between(activities, year_start, now + timedelta(seconds=1))),
            "recent_4_weeks": _sport_volume(_between(activities, now - timedelta(days=28), now + timedelta(seconds=1))),
            "this_month": _sport_volume(_between(activities, month_start, now + timedelta(seconds=1))),
        },
        "comparisons": _comparisons(activities, now),
        "activities": {
            "types": type_breakdown,
            "primary_type": types.most_common(1)[0][0] if types else None,
            "variety": len(types),
            "last_activity": {
                "name": last.name,
                "type": last.type,
                "date": activity_date(last).isoformat(),
                "distance": round(last.distance or 0, 1),
            } if last else None,
            "average_per_week": round(len(activities) / weeks, 1),
            "commute_count": sum(1 for a in activities if a.commute),
            "trainer_count": sum(1 for a in activities if a.trainer),
        },
        "timing": _timing(activities),
        "consistency": consistency,
        "records": _records(activities),
        "gear": _gear(gear),
        "effort": _effort(activities),
        "exploration": _exploration(activities),
        "quirks": _quirks(activities),
        "traits": calculate_personality_traits(activities).to_dict(),
        "fun_comparisons": _fun_comparisons(activities),
        "context": {
            "is_new_user": account_age_days < 30,
            "is_veteran": account_age_days > 365,
            "is_slumping": consistency["current_break"] > 14 and not consistency["is_coming_back"],
            "has_recent_pr": recent_prs,
            "is_couch_mode": consistency["current_break"] >= 14,
        },
    }
