"""
Strava activity payload -> Activity column values.

Sync, webhook create and webhook update all go through map_strava_activity
so the three paths can never drift apart.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from models import Gear


def parse_strava_datetime(value: Optional[str], *, local: bool = False) -> Optional[datetime]:
    """
    Parse Strava's ISO-8601 timestamps ("2024-03-01T06:30:00Z").

    start_date_local also carries a "Z" even though it is wall-clock time at
    the activity location, so local=True drops the offset entirely.
    """
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if local:
        return parsed.replace(tzinfo=None)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _latlng(value: Any, index: int) -> Optional[float]:
    if isinstance(value, (list, tuple)) and len(value) == 2:
        return value[index]
    return None


def map_strava_activity(activity: Dict[str, Any], streams: Optional[Dict[str, List]] = None) -> Dict[str, Any]:
    """
    Map a Strava summary or detailed activity to Activity attributes.

    Does not include user_id, source or gear_id; callers own those.
    Detail-only fields (calories, laps, splits, efforts) come through as None
    when given a summary payload.
    """
    start_latlng = activity.get("start_latlng")
    end_latlng = activity.get("end_latlng")
    activity_map = activity.get("map") or {}
    upload_id = activity.get("upload_id_str") or activity.get("upload_id")
    segment_efforts = activity.get("segment_efforts")

    return {
        "strava_id": str(activity["id"]),
        "upload_id": str(upload_id) if upload_id is not None else None,
        "external_id": activity.get("external_id"),
        "name": activity.get("name"),
        "description": activity.get("description"),
        "type": activity.get("type") or activity.get("sport_type") or "Workout",
        "sport_type": activity.get("sport_type") or activity.get("type"),
        "workout_type": activity.get("workout_type"),
        "start_date": parse_strava_datetime(activity.get("start_date")),
        "start_date_local": parse_strava_datetime(
            activity.get("start_date_local") or activity.get("start_date"), local=True
        ),
        "timezone": activity.get("timezone"),
        "distance": activity.get("distance") or 0,
        "moving_time": activity.get("moving_time") or 0,
        "elapsed_time": activity.get("elapsed_time") or 0,
        "total_elevation_gain": activity.get("total_elevation_gain") or 0,
        "elev_high": activity.get("elev_high"),
        "elev_low": activity.get("elev_low"),
        "average_speed": activity.get("average_speed"),
        "max_speed": activity.get("max_speed"),
        "has_heartrate": bool(activity.get("has_heartrate")),
        "average_heartrate": activity.get("average_heartrate"),
        "max_heartrate": activity.get("max_heartrate"),
        "average_watts": activity.get("average_watts"),
        "max_watts": activity.get("max_watts"),
        "weighted_average_watts": activity.get("weighted_average_watts"),
        "device_watts": bool(activity.get("device_watts")),
        "kilojoules": activity.get("kilojoules"),
        "average_cadence": activity.get("average_cadence"),
        "average_temp": activity.get("average_temp"),
        "start_lat": _latlng(start_latlng, 0),
        "start_lng": _latlng(start_latlng, 1),
        "end_lat": _latlng(end_latlng, 0),
        "end_lng": _latlng(end_latlng, 1),
        "location_city": activity.get("location_city"),
        "location_state": activity.get("location_state"),
        "location_country": activity.get("location_country"),
        "summary_polyline": activity_map.get("summary_polyline"),
        "kudos_count": activity.get("kudos_count") or 0,
        "comment_count": activity.get("comment_count") or 0,
        "photo_count": activity.get("photo_count") or 0,
        "total_photo_count": activity.get("total_photo_count") or 0,
        "athlete_count": activity.get("athlete_count") or 1,
        "has_kudoed": bool(activity.get("has_kudoed")),
        "trainer": bool(activity.get("trainer")),
        "commute": bool(activity.get("commute")),
        "manual": bool(activity.get("manual")),
        "private": bool(activity.get("private")),
        "flagged": bool(activity.get("flagged")),
        "hide_from_home": bool(activity.get("hide_from_home")),
        "device_name": activity.get("device_name"),
        "embed_token": activity.get("embed_token"),
        "calories": activity.get("calories"),
        "suffer_score": activity.get("suffer_score"),
        "achievement_count": activity.get("achievement_count") or 0,
        "pr_count": activity.get("pr_count") or 0,
        "splits_metric": activity.get("splits_metric"),
        "splits_standard": activity.get("splits_standard"),
        "laps": activity.get("laps"),
        "best_efforts": activity.get("best_efforts"),
        "segment_efforts": segment_efforts,
        "segment_effort_count": len(segment_efforts) if isinstance(segment_efforts, list) else 0,
        "streams": streams or None,
        "has_streams": bool(streams),
    }


def resolve_gear_id(db: Session, user_id, strava_gear_id: Optional[str]):
    """Local Gear.id for a Strava gear id, or None when we have not stored it."""
    if not strava_gear_id:
        return None
    gear = (
        db.query(Gear)
        .filter(Gear.user_id == user_id, Gear.strava_id == str(strava_gear_id))
        .first()
    )
    return gear.id if gear else None


def map_strava_gear(gear: Dict[str, Any], gear_type: str) -> Dict[str, Any]:
    """Strava athlete bikes/shoes entry -> Gear attributes."""
    return {
        "strava_id": str(gear["id"]),
        "name": gear.get("name") or gear.get("nickname"),
        "brand": gear.get("brand_name"),
        "model": gear.get("model_name"),
        "description": gear.get("description"),
        "type": gear_type,
        "frame_type": gear.get("frame_type"),
        "distance": gear.get("distance") or 0,
        "primary": bool(gear.get("primary")),
        "retired": bool(gear.get("retired")),
    }
