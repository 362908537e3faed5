"""
Endpoint tests for profile, activities, stats and achievements, plus the
Strava payload mapping and token refresh they depend on.
"""
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import requests
from cryptography.fernet import Fernet

from conftest import auth_headers_for, make_activity, make_user
from core.security import create_access_token
from models import Activity, Gear, User, UserAchievement
from services import strava_service
from services.strava_mapping import map_strava_activity, parse_strava_datetime
from services.strava_service import ensure_fresh_token
from services.token_encryption import TokenEncryption, decrypt_token, encrypt_token


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["cache"] == "down"


class TestAuth:
    def test_missing_token(self, client):
        response = client.get("/api/activities")
        assert response.status_code == 401
        assert response.json() == {"error": "Not authenticated", "error_code": None}
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_garbage_token(self, client):
        response = client.get("/api/activities", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401


class TestMe:
    def test_first_sign_in_creates_user(self, client, db_session):
        user_id = uuid4()
        token = create_access_token({"sub": str(user_id), "email": "New.Person@Example.com", "name": "New Person"})

        response = client.get("/api/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 200
        body = response.json()["user"]
        assert body["id"] == str(user_id)
        assert body["email"] == "new.person@example.com"
        assert body["is_strava_connected"] is False
        assert db_session.query(User).count() == 1

        client.get("/api/me", headers={"Authorization": f"Bearer {token}"})
        assert db_session.query(User).count() == 1

    def test_taken_email_gets_placeholder(self, client, db_session):
        make_user(db_session, email="taken@example.com")
        user_id = uuid4()
        token = create_access_token({"sub": str(user_id), "email": "taken@example.com"})

        body = client.get("/api/me", headers={"Authorization": f"Bearer {token}"}).json()["user"]

        assert body["email"] == f"user_{user_id.hex}@couchproof.app"

    def test_patch_profile(self, client, auth_headers):
        response = client.patch(
            "/api/me", json={"name": "Sofa Sprinter", "measurement_preference": "imperial"}, headers=auth_headers
        )
        assert response.status_code == 200
        user = response.json()["user"]
        assert user["name"] == "Sofa Sprinter"
        assert user["measurement_preference"] == "imperial"

    def test_patch_rejects_unknown_units(self, client, auth_headers):
        response = client.patch("/api/me", json={"measurement_preference": "furlongs"}, headers=auth_headers)
        assert response.status_code == 422
        assert response.json()["error_code"] == "VALIDATION_ERROR"


class TestActivities:
    def test_list_is_scoped_paged_and_filtered(self, client, db_session, test_user, auth_headers):
        base = datetime(2024, 3, 1, 7, 0, tzinfo=timezone.utc)
        for i in range(3):
            make_activity(db_session, test_user, start_date=base + timedelta(days=i), name=f"Run {i}")
        make_activity(db_session, test_user, start_date=base + timedelta(days=5), type="Ride", name="Ride")
        make_activity(db_session, make_user(db_session), name="Not mine")

        body = client.get("/api/activities", params={"limit": 2}, headers=auth_headers).json()
        assert body["total"] == 4
        assert body["limit"] == 2
        assert [a["name"] for a in body["activities"]] == ["Ride", "Run 2"]

        body = client.get("/api/activities", params={"type": "Run", "offset": 1}, headers=auth_headers).json()
        assert body["total"] == 3
        assert [a["name"] for a in body["activities"]] == ["Run 1", "Run 0"]

    def test_limit_bounds(self, client, auth_headers):
        assert client.get("/api/activities", params={"limit": 500}, headers=auth_headers).status_code == 422

    def test_create_manual_activity(self, client, db_session, test_user, auth_headers):
        response = client.post(
            "/api/activities",
            json={
                "name": "Treadmill shame",
                "type": "Run",
                "start_date": "2024-03-01T04:30:00Z",
                "distance": 5000,
                "moving_time": 1500,
            },
            headers=auth_headers,
        )

        assert response.status_code == 201
        body = response.json()
        activity = body["activity"]
        assert activity["source"] == "manual"
        assert activity["manual"] is True
        assert activity["elapsed_time"] == 1500
        assert activity["average_speed"] == 5000 / 1500
        unlocked = {a["id"] for a in body["new_achievements"]}
        assert {"first_activity", "officially_not_a_couch_potato", "pre_dawn"} <= unlocked
        assert db_session.query(UserAchievement).filter(UserAchievement.user_id == test_user.id).count() == len(unlocked)

    def test_create_with_foreign_gear(self, client, db_session, auth_headers):
        other = make_user(db_session)
        gear = Gear(user_id=other.id, strava_id="b1", name="Not yours", type="bike")
        db_session.add(gear)
        db_session.commit()

        response = client.post(
            "/api/activities",
            json={"name": "Ride", "type": "Ride", "start_date": "2024-03-01T07:00:00Z", "gear_id": str(gear.id)},
            headers=auth_headers,
        )
        assert response.status_code == 400
        assert db_session.query(Activity).count() == 0

    def test_create_validation(self, client, auth_headers):
        response = client.post(
            "/api/activities",
            json={"name": "Backwards", "type": "Run", "start_date": "2024-03-01T07:00:00Z", "distance": -1},
            headers=auth_headers,
        )
        assert response.status_code == 422

    def test_create_cannot_claim_strava_source(self, client, db_session, auth_headers):
        response = client.post(
            "/api/activities",
            json={"name": "Forged", "type": "Run", "start_date": "2024-03-01T07:00:00Z", "source": "strava"},
            headers=auth_headers,
        )
        assert response.status_code == 422
        assert db_session.query(Activity).count() == 0

    def test_detail(self, client, db_session, test_user, auth_headers):
        activity = make_activity(db_session, test_user, laps=[{"lap_index": 1, "distance": 5000}])
        body = client.get(f"/api/activities/{activity.id}", headers=auth_headers).json()
        assert body["activity"]["id"] == str(activity.id)
        assert body["activity"]["laps"][0]["lap_index"] == 1

    def test_detail_of_other_user_is_404(self, client, db_session, auth_headers):
        activity = make_activity(db_session, make_user(db_session))
        response = client.get(f"/api/activities/{activity.id}", headers=auth_headers)
        assert response.status_code == 404
        assert response.json()["error"] == "Activity not found"


class TestStatsRoute:
    def test_stats_payload(self, client, db_session, test_user, auth_headers):
        make_activity(db_session, test_user, distance=5000)
        make_activity(db_session, test_user, distance=10000,
                      start_date=datetime(2024, 3, 2, 7, 0, tzinfo=timezone.utc))

        body = client.get("/api/stats", headers=auth_headers).json()

        assert body["activity_count"] == 2
        assert body["stats"]["total_distance"] == 15000
        assert body["stats"]["total_activities"] == 2
        assert set(body["traits"]) == {"consistency", "intensity", "versatility", "endurance", "dedication"}
        assert body["timing"]["preferred_time_of_day"] == "morning"
        assert body["athlete_stats"] is None

    def test_empty_history(self, client, auth_headers):
        body = client.get("/api/stats", headers=auth_headers).json()
        assert body["activity_count"] == 0
        assert body["stats"]["total_distance"] == 0


class TestAchievementRoutes:
    def test_listing(self, client, db_session, test_user, auth_headers):
        make_activity(db_session, test_user)
        body = client.get("/api/achievements", headers=auth_headers).json()
        assert body["total"] == 20
        assert body["unlocked"] == 0
        assert len(body["achievements"]) == 20

    def test_check_then_list(self, client, db_session, test_user, auth_headers):
        make_activity(db_session, test_user)

        first = client.post("/api/achievements", headers=auth_headers).json()
        second = client.post("/api/achievements", headers=auth_headers).json()

        assert first["count"] >= 2
        assert second == {"new_achievements": [], "count": 0}

        body = client.get("/api/achievements", headers=auth_headers).json()
        assert body["unlocked"] == first["count"]
        assert body["stats"]["score"] > 0
        assert len(body["recent"]) == first["count"]

    def test_check_with_unknown_activity(self, client, auth_headers):
        response = client.post("/api/achievements", json={"activity_id": str(uuid4())}, headers=auth_headers)
        assert response.status_code == 404

    def test_detail(self, client, auth_headers):
        body = client.get("/api/achievements/MARATHON", headers=auth_headers).json()
        assert body["achievement"]["id"] == "marathon"
        assert body["progress"]["percentage"] == 0
        assert client.get("/api/achievements/nope", headers=auth_headers).status_code == 404


class TestStravaMapping:
    def test_parse_datetimes(self):
        assert parse_strava_datetime("2024-03-01T06:30:00Z") == datetime(2024, 3, 1, 6, 30, tzinfo=timezone.utc)
        assert parse_strava_datetime("2024-03-01T08:30:00Z", local=True) == datetime(2024, 3, 1, 8, 30)
        assert parse_strava_datetime(None) is None

    def test_map_summary(self):
        values = map_strava_activity({
            "id": 123456789,
            "name": "Lunch Ride",
            "sport_type": "GravelRide",
            "start_date": "2024-03-01T11:00:00Z",
            "start_latlng": [40.01, -105.27],
            "end_latlng": [],
            "map": {"summary_polyline": "abc"},
            "segment_efforts": [{}, {}],
        })
        assert values["strava_id"] == "123456789"
        assert values["type"] == "GravelRide"
        assert values["start_date_local"] == datetime(2024, 3, 1, 11, 0)
        assert values["start_lat"] == 40.01
        assert values["end_lat"] is None
        assert values["summary_polyline"] == "abc"
        assert values["segment_effort_count"] == 2
        assert values["calories"] is None
        assert values["has_streams"] is False
        assert values["athlete_count"] == 1


class TestTokenRefresh:
    def test_fresh_token_is_left_alone(self, db_session, strava_user, monkeypatch):
        def unexpected(token):
            raise AssertionError("refresh should not be called")

        monkeypatch.setattr(strava_service, "refresh_access_token", unexpected)
        assert ensure_fresh_token(strava_user, db_session) is True

    def test_expiring_token_is_refreshed(self, db_session, strava_user, monkeypatch):
        strava_user.strava_token_expires_at = datetime.now(timezone.utc) + timedelta(seconds=60)
        db_session.commit()
        new_expiry = int((datetime.now(timezone.utc) + timedelta(hours=6)).timestamp())
        seen = []

        def refreshed(token):
            seen.append(token)
            return {"access_token": "rotated-access", "refresh_token": "rotated-refresh", "expires_at": new_expiry}

        monkeypatch.setattr(strava_service, "refresh_access_token", refreshed)

        assert ensure_fresh_token(strava_user, db_session) is True
        assert seen == ["refresh-token"]
        db_session.refresh(strava_user)
        assert decrypt_token(strava_user.strava_access_token) == "rotated-access"
        assert decrypt_token(strava_user.strava_refresh_token) == "rotated-refresh"

    def test_refresh_failure(self, db_session, strava_user, monkeypatch):
        strava_user.strava_token_expires_at = None
        db_session.commit()

        def refused(token):
            raise requests.exceptions.ConnectionError("down")

        monkeypatch.setattr(strava_service, "refresh_access_token", refused)
        assert ensure_fresh_token(strava_user, db_session) is False

    def test_token_encryption_round_trip(self):
        stored = encrypt_token("plain-token")
        assert stored != "plain-token"
        assert decrypt_token(stored) == "plain-token"
        assert encrypt_token(None) is None

    def test_key_rotation(self):
        old_key, new_key = Fernet.generate_key().decode(), Fernet.generate_key().decode()
        stored = TokenEncryption([old_key]).encrypt("plain-token")

        rotated = TokenEncryption([new_key, old_key])
        assert rotated.decrypt(stored) == "plain-token"
        assert TokenEncryption([new_key]).decrypt(rotated.rotate(stored)) == "plain-token"
        assert TokenEncryption([new_key]).decrypt(stored) is None


def test_status_for_user_without_strava(client, db_session):
    user = make_user(db_session)
    body = client.get("/api/strava/status", headers=auth_headers_for(user)).json()
    assert body == {"connected": False, "strava_id": None, "last_sync": None}
