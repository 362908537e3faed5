"""
Strava REST client.

All reads go through _strava_get, which decrypts the stored access token,
refreshes it once on 401, honours Retry-After on 429 and retries network
errors with exponential backoff.
"""
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import requests

from core.config import settings
from services.token_encryption import decrypt_token, encrypt_token

logger = logging.getLogger(__name__)

STRAVA_API_BASE = "https://www.strava.com/api/v3"
STRAVA_OAUTH_AUTHORIZE_URL = "https://www.strava.com/oauth/authorize"
STRAVA_OAUTH_TOKEN_URL = "https://www.strava.com/oauth/token"

# read: public profile; activity:read_all: private activities;
# profile:read_all: weight, FTP, gear
STRAVA_SCOPES = "read,activity:read_all,profile:read_all"

STRAVA_STREAM_TYPES = [
    "time", "distance", "latlng", "altitude", "velocity_smooth",
    "heartrate", "cadence", "watts", "temp", "moving", "grade_smooth",
]

# Refresh when the token expires within this many seconds
TOKEN_EXPIRY_BUFFER_S = 300

RECONNECT_MESSAGE = "Failed to refresh Strava token. Please reconnect your account."


class StravaNotConnected(RuntimeError):
    """The user has no stored Strava tokens."""


class StravaReconnectRequired(RuntimeError):
    """Refresh failed; the user must go through OAuth again."""

    def __init__(self, message: str = RECONNECT_MESSAGE):
        super().__init__(message)


class StravaRateLimitError(RuntimeError):
    def __init__(self, message: str, *, retry_after_s: int):
        super().__init__(message)
        self.retry_after_s = int(retry_after_s)


@dataclass
class StreamFetchResult:
    """Result of get_activity_streams.

    outcome is "success" (data populated), "unavailable" (Strava has no
    streams for the activity) or "failed" (transient error).
    """
    outcome: str
    data: Optional[Dict[str, list]] = None
    error: Optional[str] = None


def get_auth_url(state: Optional[str] = None) -> str:
    if not settings.STRAVA_CLIENT_ID:
        raise ValueError("STRAVA_CLIENT_ID is not set")

    params = {
        "client_id": settings.STRAVA_CLIENT_ID,
        "redirect_uri": settings.STRAVA_REDIRECT_URI,
        "response_type": "code",
        "scope": STRAVA_SCOPES,
        "approval_prompt": "force",
    }
    if state:
        params["state"] = state
    return f"{STRAVA_OAUTH_AUTHORIZE_URL}?{urlencode(params)}"


def exchange_code_for_token(code: str) -> Dict:
    """
    Trade an authorization code for tokens.

    The response also carries the summary athlete under "athlete".
    Raises requests.HTTPError on failure.
    """
    data = {
        "client_id": settings.STRAVA_CLIENT_ID,
        "client_secret": settings.STRAVA_CLIENT_SECRET,
        "code": code,
        "grant_type": "authorization_code",
    }
    r = requests.post(STRAVA_OAUTH_TOKEN_URL, json=data, timeout=settings.EXTERNAL_API_TIMEOUT)
    r.raise_for_status()
    return r.json()


def refresh_access_token(refresh_token: str) -> Dict:
    """
    Exchange a refresh token for a new access token from Strava.

    Returns dict with: access_token, refresh_token, expires_at, expires_in, token_type
    Raises requests.HTTPError on failure (e.g. 400 = truly revoked).
    """
    data = {
        "client_id": settings.STRAVA_CLIENT_ID,
        "client_secret": settings.STRAVA_CLIENT_SECRET,
        "refresh_token": refresh_token,
        "grant_type": "refresh_token",
    }
    r = requests.post(STRAVA_OAUTH_TOKEN_URL, json=data, timeout=settings.EXTERNAL_API_TIMEOUT)
    r.raise_for_status()
    return r.json()


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def is_token_expired(user) -> bool:
    expires_at = _as_utc(user.strava_token_expires_at)
    if expires_at is None:
        return True
    return expires_at <= datetime.now(timezone.utc) + timedelta(seconds=TOKEN_EXPIRY_BUFFER_S)


def _store_token_response(user, token_data: Dict) -> None:
    user.strava_access_token = encrypt_token(token_data["access_token"])
    if token_data.get("refresh_token"):
        user.strava_refresh_token = encrypt_token(token_data["refresh_token"])
    if token_data.get("expires_at"):
        user.strava_token_expires_at = datetime.fromtimestamp(token_data["expires_at"], tz=timezone.utc)


def _refresh_user_token(user) -> None:
    raw_refresh = decrypt_token(user.strava_refresh_token)
    if not raw_refresh:
        raise StravaReconnectRequired()
    try:
        token_data = refresh_access_token(raw_refresh)
    except requests.exceptions.RequestException as e:
        logger.warning(f"Strava token refresh failed for user {user.id}: {e}")
        raise StravaReconnectRequired() from e
    _store_token_response(user, token_data)
    logger.info(f"Strava token refreshed for user {user.id}")


def ensure_fresh_token(user, db) -> bool:
    """
    Pre-flight check: refresh the access token if it is expired or close to it.

    Returns True when a usable token is stored, False when refresh failed.
    Commits to DB on refresh.
    """
    if not user.strava_access_token or not user.strava_refresh_token:
        return False
    if not is_token_expired(user):
        return True
    try:
        _refresh_user_token(user)
    except StravaReconnectRequired:
        return False
    db.commit()
    return True


def get_valid_token(user, db) -> str:
    """
    Return a decrypted access token, refreshing first when needed.

    Raises StravaNotConnected when no tokens are stored and
    StravaReconnectRequired when the refresh fails.
    """
    if not user.strava_access_token:
        raise StravaNotConnected("User not connected to Strava")
    if is_token_expired(user):
        if not ensure_fresh_token(user, db):
            raise StravaReconnectRequired()
    access_token = decrypt_token(user.strava_access_token)
    if not access_token:
        raise StravaReconnectRequired()
    return access_token


def _strava_get(
    user,
    path: str,
    params: Optional[Dict[str, Any]] = None,
    max_retries: int = 3,
    allow_rate_limit_sleep: bool = True,
) -> requests.Response:
    """
    GET an authenticated Strava endpoint and return the final response.

    Non-2xx responses other than 401/429 are returned to the caller, which
    decides whether they are errors (404 on streams is not).
    """
    access_token = decrypt_token(user.strava_access_token)
    if not access_token:
        raise StravaReconnectRequired()

    headers = {"Authorization": f"Bearer {access_token}"}
    url = f"{STRAVA_API_BASE}{path}"
    refreshed = False

    for attempt in range(max_retries):
        try:
            r = requests.get(url, headers=headers, params=params, timeout=settings.EXTERNAL_API_TIMEOUT)
        except requests.exceptions.RequestException as e:
            if attempt == max_retries - 1:
                logger.error(f"Strava GET {path} failed after {max_retries} attempts: {e}")
                raise
            wait_time = 2 ** attempt
            logger.warning(f"Strava GET {path} failed, retrying in {wait_time}s: {e}")
            time.sleep(wait_time)
            continue

        if r.status_code == 429:
            retry_after = int(r.headers.get("Retry-After", 60 * (2 ** attempt)))
            if not allow_rate_limit_sleep:
                raise StravaRateLimitError(
                    f"429 Rate limited for {path} (Retry-After {retry_after}s)",
                    retry_after_s=retry_after,
                )
            logger.warning(f"Strava rate limited on {path}, waiting {retry_after}s ({attempt + 1}/{max_retries})")
            time.sleep(retry_after)
            continue

        if r.status_code == 401 and user.strava_refresh_token and not refreshed:
            _refresh_user_token(user)
            refreshed = True
            headers["Authorization"] = f"Bearer {decrypt_token(user.strava_access_token)}"
            continue

        return r

    raise StravaRateLimitError(f"Strava GET {path} still rate limited after {max_retries} attempts", retry_after_s=900)


def get_athlete(user) -> Dict:
    r = _strava_get(user, "/athlete")
    r.raise_for_status()
    return r.json()


def get_athlete_stats(user, strava_athlete_id: int) -> Dict:
    r = _strava_get(user, f"/athletes/{strava_athlete_id}/stats")
    r.raise_for_status()
    return r.json()


def get_activities_page(
    user,
    after_timestamp: Optional[int] = None,
    before_timestamp: Optional[int] = None,
    page: int = 1,
    per_page: int = 50,
    allow_rate_limit_sleep: bool = True,
) -> List[Dict]:
    """One page of the athlete's activity summaries, newest window first."""
    params = {"per_page": int(per_page), "page": int(page)}
    if after_timestamp is not None and after_timestamp > 0:
        params["after"] = int(after_timestamp)
    if before_timestamp is not None and before_timestamp > 0:
        params["before"] = int(before_timestamp)

    r = _strava_get(user, "/athlete/activities", params=params, allow_rate_limit_sleep=allow_rate_limit_sleep)
    r.raise_for_status()
    activities = r.json()
    return activities if isinstance(activities, list) else []


def get_activity_details(user, activity_id: int, allow_rate_limit_sleep: bool = True) -> Dict:
    # Strava omits best_efforts and segment efforts unless asked
    r = _strava_get(
        user,
        f"/activities/{activity_id}",
        params={"include_all_efforts": "true"},
        allow_rate_limit_sleep=allow_rate_limit_sleep,
    )
    r.raise_for_status()
    return r.json()


def _parse_streams(data: Any) -> Dict[str, list]:
    """Strava returns either a list of stream objects or a dict keyed by type."""
    result: Dict[str, list] = {}
    if isinstance(data, list):
        for stream_obj in data:
            stream_type = stream_obj.get("type")
            stream_data = stream_obj.get("data")
            if stream_type and stream_data is not None:
                result[stream_type] = stream_data
    elif isinstance(data, dict):
        for stream_type, stream_obj in data.items():
            if isinstance(stream_obj, dict) and "data" in stream_obj:
                result[stream_type] = stream_obj["data"]
            elif isinstance(stream_obj, list):
                result[stream_type] = stream_obj
    return result


def get_activity_streams(
    user,
    activity_id: int,
    stream_types: Optional[List[str]] = None,
    allow_rate_limit_sleep: bool = True,
) -> StreamFetchResult:
    params = {"keys": ",".join(stream_types or STRAVA_STREAM_TYPES), "key_by_type": "true"}
    try:
        r = _strava_get(
            user,
            f"/activities/{activity_id}/streams",
            params=params,
            allow_rate_limit_sleep=allow_rate_limit_sleep,
        )
    except requests.exceptions.RequestException as e:
        return StreamFetchResult(outcome="failed", error=f"request_error:{e}")

    if r.status_code == 404:
        return StreamFetchResult(outcome="unavailable", error="strava_404_no_streams")
    if r.status_code >= 400:
        return StreamFetchResult(outcome="failed", error=f"http_{r.status_code}")

    try:
        data = r.json()
    except ValueError:
        logger.error(f"Malformed JSON in streams response for {activity_id}")
        return StreamFetchResult(outcome="failed", error="malformed_json")

    result = _parse_streams(data)
    if not result:
        return StreamFetchResult(outcome="unavailable", error="no_usable_channels")
    return StreamFetchResult(outcome="success", data=result)


def get_gear(user, gear_id: str, allow_rate_limit_sleep: bool = True) -> Dict:
    r = _strava_get(user, f"/gear/{gear_id}", allow_rate_limit_sleep=allow_rate_limit_sleep)
    r.raise_for_status()
    return r.json()
