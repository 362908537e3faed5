"""
Linking and unlinking a Strava account.

connect_strava_account runs after the OAuth code exchange: it finds or
creates the User, stores tokens and profile fields, replaces AthleteStats
and upserts the athlete's bikes and shoes.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from models import AthleteStats, Gear, User
from services import strava_service
from services.strava_mapping import map_strava_gear, parse_strava_datetime
from services.token_encryption import encrypt_token

logger = logging.getLogger(__name__)

PLACEHOLDER_EMAIL_DOMAIN = "couchproof.app"

_TOTAL_FIELDS = ("count", "distance", "moving_time", "elevation_gain", "achievement_count")
_SWIM_FIELDS = ("count", "distance", "moving_time")
# Identity the user already chose is not replaced when linking
_KEEP_ON_LINK = ("name", "first_name", "last_name", "avatar_url")


def _totals(stats: Dict[str, Any], window: str) -> Dict[str, Dict[str, float]]:
    """Pick ride/run/swim totals for one window ("recent", "ytd", "all")."""
    def pick(sport: str, fields) -> Dict[str, float]:
        source = stats.get(f"{window}_{sport}_totals") or {}
        return {field: source.get(field) or 0 for field in fields}

    return {
        "ride": pick("ride", _TOTAL_FIELDS),
        "run": pick("run", _TOTAL_FIELDS),
        "swim": pick("swim", _SWIM_FIELDS),
    }


def replace_athlete_stats(db: Session, user: User, stats: Dict[str, Any]) -> AthleteStats:
    row = db.query(AthleteStats).filter(AthleteStats.user_id == user.id).first()
    if row is None:
        row = AthleteStats(user_id=user.id)
        db.add(row)
    row.biggest_ride_distance = stats.get("biggest_ride_distance")
    row.biggest_climb_elevation_gain = stats.get("biggest_climb_elevation_gain")
    row.recent_totals = _totals(stats, "recent")
    row.ytd_totals = _totals(stats, "ytd")
    row.all_totals = _totals(stats, "all")
    row.last_updated = datetime.now(timezone.utc)
    return row


def upsert_gear(db: Session, user: User, athlete: Dict[str, Any]) -> int:
    count = 0
    for key, gear_type in (("bikes", "bike"), ("shoes", "shoe")):
        for entry in athlete.get(key) or []:
            values = map_strava_gear(entry, gear_type)
            gear = db.query(Gear).filter(Gear.strava_id == values["strava_id"]).first()
            if gear is None:
                db.add(Gear(user_id=user.id, **values))
            else:
                for attr, value in values.items():
                    setattr(gear, attr, value)
                gear.user_id = user.id
            count += 1
    return count


def _profile_fields(athlete: Dict[str, Any]) -> Dict[str, Any]:
    first = athlete.get("firstname") or ""
    last = athlete.get("lastname") or ""
    return {
        "name": f"{first} {last}".strip() or None,
        "first_name": athlete.get("firstname"),
        "last_name": athlete.get("lastname"),
        "avatar_url": athlete.get("profile") or athlete.get("profile_medium"),
        "sex": athlete.get("sex"),
        "city": athlete.get("city"),
        "state": athlete.get("state"),
        "country": athlete.get("country"),
        "measurement_preference": "imperial" if athlete.get("measurement_preference") == "feet" else "metric",
    }


def _apply_strava_fields(user: User, token_data: Dict[str, Any], athlete: Dict[str, Any]) -> None:
    user.strava_id = athlete["id"]
    user.strava_access_token = encrypt_token(token_data["access_token"])
    user.strava_refresh_token = encrypt_token(token_data.get("refresh_token"))
    if token_data.get("expires_at"):
        user.strava_token_expires_at = datetime.fromtimestamp(token_data["expires_at"], tz=timezone.utc)
    user.strava_connected_at = datetime.now(timezone.utc)
    user.strava_scope = token_data.get("scope")
    user.strava_follower_count = athlete.get("follower_count")
    user.strava_friend_count = athlete.get("friend_count")
    user.ftp = athlete.get("ftp")
    user.weight = athlete.get("weight")
    user.strava_premium = bool(athlete.get("premium"))
    user.strava_summit = bool(athlete.get("summit"))
    user.strava_created_at = parse_strava_datetime(athlete.get("created_at"))


def connect_strava_account(
    db: Session,
    token_data: Dict[str, Any],
    link_user_id: Optional[str] = None,
) -> User:
    """
    Store a fresh Strava authorization.

    With link_user_id the tokens attach to that signed-in user and only
    empty profile fields are filled. Otherwise the user is found by Strava
    athlete id or created with a placeholder email.
    """
    summary = token_data.get("athlete") or {}
    if not summary.get("id"):
        raise ValueError("No athlete ID in Strava response")

    user = None
    if link_user_id:
        user = db.query(User).filter(User.id == UUID(str(link_user_id))).first()
        if user is None:
            raise ValueError("Linked user no longer exists")
    if user is None:
        user = db.query(User).filter(User.strava_id == summary["id"]).first()

    is_link = bool(link_user_id)
    if user is None:
        user = User(email=f"strava_{summary['id']}@{PLACEHOLDER_EMAIL_DOMAIN}")
        db.add(user)

    _apply_strava_fields(user, token_data, summary)

    # Full athlete carries weight, FTP and gear that the token summary omits
    athlete = summary
    try:
        athlete = strava_service.get_athlete(user)
        _apply_strava_fields(user, token_data, athlete)
    except Exception as e:
        logger.warning(f"Could not fetch full Strava athlete {summary['id']}: {e}")

    for field, value in _profile_fields(athlete).items():
        if is_link and field in _KEEP_ON_LINK and getattr(user, field, None):
            continue
        setattr(user, field, value)

    db.flush()

    try:
        stats = strava_service.get_athlete_stats(user, summary["id"])
        replace_athlete_stats(db, user, stats)
    except Exception as e:
        logger.warning(f"Could not fetch Strava stats for athlete {summary['id']}: {e}")

    upsert_gear(db, user, athlete)
    db.commit()
    logger.info(
        "Strava account connected",
        extra={"extra_fields": {"user_id": str(user.id), "strava_id": summary["id"], "linked": is_link}},
    )
    return user


def disconnect_strava_account(db: Session, user: User) -> None:
    """Forget tokens and Strava profile data. Activities stay."""
    user.strava_access_token = None
    user.strava_refresh_token = None
    user.strava_token_expires_at = None
    user.strava_connected_at = None
    user.strava_scope = None
    user.strava_id = None
    user.strava_follower_count = None
    user.strava_friend_count = None
    user.strava_premium = False
    user.strava_summit = False
    db.query(AthleteStats).filter(AthleteStats.user_id == user.id).delete(synchronize_session=False)
    db.commit()
    logger.info(f"Strava disconnected for user {user.id}")
