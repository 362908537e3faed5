"""
Tests for the Strava sync pass and the /api/strava/sync route.

Strava calls are replaced at the services.strava_service module level;
the sync service always calls through that module.
"""
from datetime import datetime, timedelta, timezone

import pytest
import requests

from conftest import auth_headers_for, make_activity, make_user
from models import Activity, Gear
from services import strava_service
from services.strava_service import (
    StravaNotConnected,
    StravaRateLimitError,
    StravaReconnectRequired,
    StreamFetchResult,
)
from services.strava_sync import SyncResult, sync_user_activities

NOW = datetime(2024, 6, 12, 12, 0, tzinfo=timezone.utc)


def summary(strava_id, day=1, name="Lunch Run"):
    return {
        "id": strava_id,
        "name": name,
        "type": "Run",
        "sport_type": "Run",
        "start_date": f"2024-06-{day:02d}T11:00:00Z",
        "start_date_local": f"2024-06-{day:02d}T13:00:00Z",
        "distance": 8000.0,
        "moving_time": 2400,
        "elapsed_time": 2500,
        "total_elevation_gain": 42.0,
    }


class FakeStrava:
    """Canned Strava responses with call counting."""

    def __init__(self, pages):
        self.pages = pages
        self.detail_calls = []
        self.stream_calls = []
        self.failing_streams = set()
        # Indoor sessions: no calories in the detail, 404 on streams
        self.bare = set()
        self.flaky_streams = set()

    def get_activities_page(self, user, after_timestamp=None, page=1, per_page=50, allow_rate_limit_sleep=True):
        return self.pages[page - 1] if page <= len(self.pages) else []

    def get_activity_details(self, user, activity_id, allow_rate_limit_sleep=True):
        self.detail_calls.append(activity_id)
        source = next(s for page in self.pages for s in page if s["id"] == activity_id)
        if activity_id in self.bare:
            return {**source, "description": "mat work"}
        return {**source, "calories": 512.0, "description": "felt good"}

    def get_activity_streams(self, user, activity_id, stream_types=None, allow_rate_limit_sleep=True):
        self.stream_calls.append(activity_id)
        if activity_id in self.failing_streams:
            raise RuntimeError("stream parser exploded")
        if activity_id in self.bare:
            return StreamFetchResult(outcome="unavailable", error="strava_404_no_streams")
        if activity_id in self.flaky_streams:
            return StreamFetchResult(outcome="failed", error="strava_500")
        return StreamFetchResult(outcome="success", data={"time": [0, 1, 2], "heartrate": [120, 125, 130]})


@pytest.fixture
def fake_strava(monkeypatch):
    def install(pages):
        fake = FakeStrava(pages)
        monkeypatch.setattr(strava_service, "get_activities_page", fake.get_activities_page)
        monkeypatch.setattr(strava_service, "get_activity_details", fake.get_activity_details)
        monkeypatch.setattr(strava_service, "get_activity_streams", fake.get_activity_streams)
        return fake
    return install


def strava_rows(db, user):
    return db.query(Activity).filter(Activity.user_id == user.id, Activity.source == "strava").all()


class TestSyncPass:
    def test_new_activities_are_stored_with_details_and_streams(self, db_session, strava_user, fake_strava):
        fake_strava([[summary(101, day=1), summary(102, day=3)]])

        result = sync_user_activities(db_session, strava_user, now=NOW)

        assert result.synced == 2
        assert result.errors == 0
        assert result.has_more is False
        assert result.last_activity_date == "2024-06-03T11:00:00+00:00"

        rows = {r.strava_id: r for r in strava_rows(db_session, strava_user)}
        assert set(rows) == {"101", "102"}
        assert rows["101"].calories == 512.0
        assert rows["101"].has_streams is True
        assert rows["101"].streams["heartrate"] == [120, 125, 130]
        assert rows["101"].start_date_local == datetime(2024, 6, 1, 13, 0)

    def test_second_run_is_idempotent(self, db_session, strava_user, fake_strava):
        fake = fake_strava([[summary(101), summary(102, day=2)]])

        sync_user_activities(db_session, strava_user, now=NOW)
        second = sync_user_activities(db_session, strava_user, now=NOW)

        assert second.synced == 0
        assert second.skipped == 2
        assert len(strava_rows(db_session, strava_user)) == 2
        # Complete rows cost no detail or stream calls
        assert fake.detail_calls == [101, 102]
        assert fake.stream_calls == [101, 102]

    def test_existing_row_without_streams_is_updated(self, db_session, strava_user, fake_strava):
        make_activity(db_session, strava_user, source="strava", strava_id="101", calories=300.0, has_streams=False)
        fake = fake_strava([[summary(101)]])

        result = sync_user_activities(db_session, strava_user, now=NOW)

        assert result.updated == 1
        assert result.synced == 0
        # Calories already present: no detail fetch
        assert fake.detail_calls == []
        rows = strava_rows(db_session, strava_user)
        assert len(rows) == 1
        assert rows[0].has_streams is True
        # The summary carries no calories; the stored value survives
        assert rows[0].calories == 300.0

    def test_full_sync_resumes_past_streamless_activities(self, db_session, strava_user, fake_strava):
        summaries = [summary(200 + i, day=i % 28 + 1, name="Yoga") for i in range(40)]
        fake = fake_strava([summaries])
        fake.bare.update(s["id"] for s in summaries)

        runs = [sync_user_activities(db_session, strava_user, full=True, now=NOW) for _ in range(4)]

        assert [(r.processed, r.skipped, r.has_more) for r in runs] == [
            (30, 0, True),
            (10, 30, False),
            (0, 40, False),
            (0, 40, False),
        ]
        assert len(strava_rows(db_session, strava_user)) == 40
        # Each activity was asked about exactly once
        assert len(fake.detail_calls) == 40
        assert len(fake.stream_calls) == 40
        row = strava_rows(db_session, strava_user)[0]
        assert row.calories is None
        assert row.has_streams is False
        assert row.details_fetched_at is not None
        assert row.streams_checked_at is not None

    def test_failed_stream_fetch_is_retried_next_pass(self, db_session, strava_user, fake_strava):
        fake = fake_strava([[summary(101)]])
        fake.flaky_streams.add(101)

        sync_user_activities(db_session, strava_user, now=NOW)
        row = strava_rows(db_session, strava_user)[0]
        assert row.streams_checked_at is None

        fake.flaky_streams.clear()
        second = sync_user_activities(db_session, strava_user, now=NOW)

        assert second.updated == 1
        assert fake.detail_calls == [101]
        assert fake.stream_calls == [101, 101]
        assert strava_rows(db_session, strava_user)[0].has_streams is True

    def test_per_item_failure_is_counted_and_pass_continues(self, db_session, strava_user, fake_strava):
        fake = fake_strava([[summary(101), summary(102, day=2), summary(103, day=3)]])
        fake.failing_streams.add(102)

        result = sync_user_activities(db_session, strava_user, now=NOW)

        assert result.errors == 1
        assert result.synced == 2
        assert {r.strava_id for r in strava_rows(db_session, strava_user)} == {"101", "103"}

    def test_full_sync_stops_at_batch_limit(self, db_session, strava_user, fake_strava):
        fake_strava([[summary(100 + i, day=i + 1) for i in range(5)]])

        result = sync_user_activities(db_session, strava_user, full=True, limit=2, now=NOW)

        assert result.processed == 2
        assert result.has_more is True
        assert "Run again" in result.message
        db_session.refresh(strava_user)
        # Watermark stays put until the full pass completes
        assert strava_user.last_strava_sync is None

    def test_completed_pass_moves_watermark(self, db_session, strava_user, fake_strava):
        fake_strava([[summary(101)]])
        sync_user_activities(db_session, strava_user, now=NOW)
        db_session.refresh(strava_user)
        last = strava_user.last_strava_sync
        assert last.replace(tzinfo=timezone.utc) == NOW

    def test_rate_limit_propagates(self, db_session, strava_user, monkeypatch):
        def limited(*args, **kwargs):
            raise StravaRateLimitError("limited", retry_after_s=900)

        monkeypatch.setattr(strava_service, "get_activities_page", limited)
        with pytest.raises(StravaRateLimitError) as excinfo:
            sync_user_activities(db_session, strava_user, now=NOW)
        assert excinfo.value.retry_after_s == 900

    def test_not_connected(self, db_session, test_user):
        with pytest.raises(StravaNotConnected):
            sync_user_activities(db_session, test_user, now=NOW)

    def test_failed_refresh_requires_reconnect(self, db_session, strava_user, monkeypatch):
        strava_user.strava_token_expires_at = datetime.now(timezone.utc) - timedelta(hours=1)
        db_session.commit()

        def refused(refresh_token):
            raise requests.exceptions.HTTPError("400 Bad Request")

        monkeypatch.setattr(strava_service, "refresh_access_token", refused)
        with pytest.raises(StravaReconnectRequired):
            sync_user_activities(db_session, strava_user, now=NOW)

    def test_unknown_gear_is_fetched_once(self, db_session, strava_user, fake_strava, monkeypatch):
        fake_strava([[{**summary(101), "gear_id": "b999"}, {**summary(102, day=2), "gear_id": "b999"}]])
        fetched = []

        def gear(user, gear_id, **kwargs):
            fetched.append(gear_id)
            return {"id": gear_id, "name": "Gravel bike", "brand_name": "Canyon", "distance": 1200000.0}

        monkeypatch.setattr(strava_service, "get_gear", gear)

        sync_user_activities(db_session, strava_user, now=NOW)

        assert fetched == ["b999"]
        bikes = db_session.query(Gear).filter(Gear.user_id == strava_user.id).all()
        assert len(bikes) == 1
        assert bikes[0].type == "bike"
        assert bikes[0].brand == "Canyon"
        assert {r.gear_id for r in strava_rows(db_session, strava_user)} == {bikes[0].id}

    def test_gear_fetch_failure_leaves_activity_unlinked(self, db_session, strava_user, fake_strava, monkeypatch):
        fake_strava([[{**summary(101), "gear_id": "g404"}]])

        def missing(user, gear_id, **kwargs):
            raise requests.exceptions.HTTPError("404 Not Found")

        monkeypatch.setattr(strava_service, "get_gear", missing)

        result = sync_user_activities(db_session, strava_user, now=NOW)

        assert result.synced == 1
        assert strava_rows(db_session, strava_user)[0].gear_id is None


class TestSyncResult:
    def test_to_dict_has_message(self):
        data = SyncResult(full_sync=False, batch_limit="unlimited", synced=3, skipped=1).to_dict()
        assert data["success"] is True
        assert data["message"] == "Sync complete. 3 new, 0 updated, 1 skipped."


class TestSyncRoute:
    def test_requires_connection(self, client, auth_headers):
        response = client.post("/api/strava/sync", headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["error"] == "User not connected to Strava"

    def test_requires_auth(self, client):
        response = client.post("/api/strava/sync")
        assert response.status_code == 401

    def test_rate_limit_maps_to_429(self, client, db_session, monkeypatch):
        user = make_user(db_session, strava_id=1, strava_access_token="x")

        def limited(*args, **kwargs):
            raise StravaRateLimitError("limited", retry_after_s=120)

        monkeypatch.setattr("routers.strava.sync_user_activities", limited)
        response = client.post("/api/strava/sync", headers=auth_headers_for(user))
        assert response.status_code == 429
        assert response.headers["Retry-After"] == "120"

    def test_reconnect_maps_to_401(self, client, db_session, monkeypatch):
        user = make_user(db_session, strava_id=1, strava_access_token="x")

        def expired(*args, **kwargs):
            raise StravaReconnectRequired()

        monkeypatch.setattr("routers.strava.sync_user_activities", expired)
        response = client.post("/api/strava/sync", headers=auth_headers_for(user))
        assert response.status_code == 401
        assert "reconnect" in response.json()["error"]

    def test_successful_sync_body(self, client, strava_user, fake_strava):
        fake_strava([[summary(101)]])
        response = client.post("/api/strava/sync", headers=auth_headers_for(strava_user))
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["synced"] == 1
        assert body["batch_limit"] == "unlimited"

    def test_upstream_429_is_returned_not_slept_through(self, client, strava_user, strava_rate_limited):
        response = client.post("/api/strava/sync", headers=auth_headers_for(strava_user))
        assert response.status_code == 429
        assert response.headers["Retry-After"] == "900"
        assert strava_rate_limited == []
