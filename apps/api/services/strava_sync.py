"""
Strava activity sync.

A run pages through the athlete's activities since a watermark and upserts
each one keyed by (user, "strava", strava_id). Rows whose detail and streams
Strava has already answered for (details_fetched_at, streams_checked_at, or
calories and streams present) are skipped without further API calls, so
re-running a sync over the same window only costs the list requests.

Full syncs look back a year but stop after a small batch to stay inside
Strava's 100-requests-per-15-minutes limit. The caller re-invokes while
has_more is true; no resume cursor is kept server-side because completed
rows are skipped on the next pass anyway.
"""
import logging
import time
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Union

from sqlalchemy.orm import Session

from core.cache import invalidate_user_stats
from core.config import settings
from models import Activity, Gear, User
from services import strava_service
from services.strava_mapping import map_strava_activity, map_strava_gear, resolve_gear_id
from services.strava_service import StravaNotConnected, StravaRateLimitError

logger = logging.getLogger(__name__)

PAGE_SIZE = 50
FULL_SYNC_LOOKBACK_DAYS = 365
REGULAR_SYNC_DEFAULT_DAYS = 30
FULL_SYNC_BATCH_LIMIT = 30

# Absent from list summaries; an update from a summary keeps the stored values
DETAIL_ONLY_FIELDS = frozenset({
    "description", "calories", "device_name", "embed_token",
    "splits_metric", "splits_standard", "laps", "best_efforts", "segment_efforts",
})


@dataclass
class SyncResult:
    full_sync: bool
    batch_limit: Union[int, str]
    synced: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    processed: int = 0
    has_more: bool = False
    last_activity_date: Optional[str] = None

    @property
    def message(self) -> str:
        if self.has_more:
            return f"Processed {self.processed} activities. Run again to continue."
        return f"Sync complete. {self.synced} new, {self.updated} updated, {self.skipped} skipped."

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["success"] = True
        data["message"] = self.message
        return data


def _pause(seconds: float) -> None:
    if seconds > 0:
        time.sleep(seconds)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def find_strava_activity(db: Session, user_id, strava_id) -> Optional[Activity]:
    return (
        db.query(Activity)
        .filter(
            Activity.user_id == user_id,
            Activity.source == "strava",
            Activity.strava_id == str(strava_id),
        )
        .first()
    )


def ensure_gear(db: Session, user: User, strava_gear_id: Optional[str], allow_rate_limit_sleep: bool = True):
    """
    Local Gear.id for a Strava gear id, fetching and storing gear we have
    not seen yet. Strava prefixes bike ids with "b" and shoe ids with "g".
    """
    gear_id = resolve_gear_id(db, user.id, strava_gear_id)
    if gear_id is not None or not strava_gear_id:
        return gear_id

    try:
        detail = strava_service.get_gear(user, strava_gear_id, allow_rate_limit_sleep=allow_rate_limit_sleep)
    except StravaRateLimitError:
        raise
    except Exception as e:
        logger.warning(f"Gear fetch failed for Strava gear {strava_gear_id}: {e}")
        return None

    gear_type = "bike" if str(strava_gear_id).startswith("b") else "shoe"
    gear = Gear(user_id=user.id, **map_strava_gear({**detail, "id": strava_gear_id}, gear_type))
    db.add(gear)
    db.flush()
    return gear.id


def upsert_strava_activity(
    db: Session,
    user: User,
    payload: Dict[str, Any],
    streams: Optional[Dict[str, list]] = None,
    existing: Optional[Activity] = None,
    markers: Optional[Dict[str, datetime]] = None,
    allow_rate_limit_sleep: bool = True,
) -> bool:
    """
    Write one Strava activity. Returns True when a new row was created.

    When updating, stored streams are kept if none were fetched this time.
    `markers` sets details_fetched_at / streams_checked_at.
    """
    values = {**map_strava_activity(payload, streams), **(markers or {})}
    gear_id = ensure_gear(db, user, payload.get("gear_id"), allow_rate_limit_sleep)

    if existing is None:
        existing = find_strava_activity(db, user.id, values["strava_id"])

    if existing is not None:
        if not streams:
            values.pop("streams")
            values.pop("has_streams")
        if values.get("segment_efforts") is None:
            values.pop("segment_effort_count")
        for key, value in values.items():
            if value is None and key in DETAIL_ONLY_FIELDS:
                continue
            setattr(existing, key, value)
        existing.gear_id = gear_id
        return False

    db.add(Activity(user_id=user.id, source="strava", gear_id=gear_id, **values))
    return True


def needs_details(existing: Optional[Activity]) -> bool:
    return existing is None or (existing.calories is None and existing.details_fetched_at is None)


def needs_streams(existing: Optional[Activity]) -> bool:
    return existing is None or (not existing.has_streams and existing.streams_checked_at is None)


def is_complete(existing: Optional[Activity]) -> bool:
    """Nothing left to ask Strava for. Activities without calories or streams count once checked."""
    return not needs_details(existing) and not needs_streams(existing)


def _fetch_missing_details(
    user: User,
    summary: Dict[str, Any],
    existing: Optional[Activity],
    allow_rate_limit_sleep: bool = True,
):
    """
    Fetch only what the stored row lacks. Returns (payload, streams, markers).

    Fetch failures degrade to the summary and no streams and leave the
    matching marker unset, so the next pass tries again. A 404 or empty
    stream answer is final.
    """
    payload = summary
    streams = None
    markers: Dict[str, datetime] = {}
    strava_id = summary["id"]

    if needs_details(existing):
        try:
            payload = strava_service.get_activity_details(user, strava_id, allow_rate_limit_sleep=allow_rate_limit_sleep)
            markers["details_fetched_at"] = datetime.now(timezone.utc)
        except StravaRateLimitError:
            raise
        except Exception as e:
            logger.warning(f"Detail fetch failed for Strava activity {strava_id}, using summary: {e}")
            payload = summary
        _pause(settings.STRAVA_SYNC_ITEM_DELAY_S)

    if needs_streams(existing):
        result = strava_service.get_activity_streams(user, strava_id, allow_rate_limit_sleep=allow_rate_limit_sleep)
        if result.outcome == "success":
            streams = result.data
        if result.outcome in ("success", "unavailable"):
            markers["streams_checked_at"] = datetime.now(timezone.utc)
        else:
            logger.warning(f"Stream fetch failed for Strava activity {strava_id}: {result.error}")
        _pause(settings.STRAVA_SYNC_ITEM_DELAY_S)

    return payload, streams, markers


def sync_user_activities(
    db: Session,
    user: User,
    full: bool = False,
    limit: Optional[int] = None,
    now: Optional[datetime] = None,
    allow_rate_limit_sleep: bool = True,
) -> SyncResult:
    """
    Run one sync pass for a user.

    Raises StravaNotConnected when the user never linked Strava and
    StravaReconnectRequired when the stored token cannot be refreshed.
    Per-activity failures are logged and counted; they never stop the pass.
    """
    if not user.strava_access_token:
        raise StravaNotConnected("User not connected to Strava")

    now = now or datetime.now(timezone.utc)
    if limit is None:
        limit = FULL_SYNC_BATCH_LIMIT if full else 0

    if full:
        after = now - timedelta(days=FULL_SYNC_LOOKBACK_DAYS)
    else:
        after = _as_utc(user.last_strava_sync) or now - timedelta(days=REGULAR_SYNC_DEFAULT_DAYS)

    # Surfaces StravaReconnectRequired before any work is done
    strava_service.get_valid_token(user, db)

    result = SyncResult(full_sync=full, batch_limit=limit if limit > 0 else "unlimited")
    last_activity_date: Optional[datetime] = None

    logger.info(
        "Strava sync started",
        extra={"extra_fields": {"user_id": str(user.id), "full": full, "after": after.isoformat(), "limit": limit}},
    )

    page = 1
    while True:
        summaries = strava_service.get_activities_page(
            user,
            after_timestamp=int(after.timestamp()),
            page=page,
            per_page=PAGE_SIZE,
            allow_rate_limit_sleep=allow_rate_limit_sleep,
        )
        if not summaries:
            break

        for summary in summaries:
            if limit > 0 and result.processed >= limit:
                result.has_more = True
                break

            try:
                existing = find_strava_activity(db, user.id, summary["id"])
                if existing is not None and is_complete(existing):
                    result.skipped += 1
                    continue

                payload, streams, markers = _fetch_missing_details(user, summary, existing, allow_rate_limit_sleep)
                result.processed += 1

                created = upsert_strava_activity(
                    db, user, payload, streams,
                    existing=existing, markers=markers, allow_rate_limit_sleep=allow_rate_limit_sleep,
                )
                db.commit()
                if created:
                    result.synced += 1
                else:
                    result.updated += 1

                started = _as_utc(map_strava_activity(summary)["start_date"])
                if started and (last_activity_date is None or started > last_activity_date):
                    last_activity_date = started
            except StravaRateLimitError:
                db.rollback()
                raise
            except Exception as e:
                db.rollback()
                result.errors += 1
                logger.error(f"Failed to sync Strava activity {summary.get('id')} for user {user.id}: {e}")

        if result.has_more or len(summaries) < PAGE_SIZE:
            break

        page += 1
        _pause(settings.STRAVA_SYNC_PAGE_DELAY_S)

    if not (full and result.has_more):
        user.last_strava_sync = now
    # Token refreshes made during the run live on the user row too
    db.commit()
    invalidate_user_stats(user.id)

    if last_activity_date:
        result.last_activity_date = last_activity_date.isoformat()

    logger.info(
        "Strava sync finished",
        extra={"extra_fields": {"user_id": str(user.id), **asdict(result)}},
    )
    return result
