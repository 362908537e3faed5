"""
Tests for Strava webhook handshake and event processing.
"""
from conftest import make_activity, make_user
from models import Activity, User
from services import strava_service
from services.strava_service import StreamFetchResult
from services.strava_webhook import handle_event, verify_subscription


def activity_payload(strava_id, name="Evening Ride"):
    return {
        "id": strava_id,
        "name": name,
        "type": "Ride",
        "start_date": "2024-06-10T17:00:00Z",
        "start_date_local": "2024-06-10T19:00:00Z",
        "distance": 25000.0,
        "moving_time": 3600,
        "elapsed_time": 3700,
        "calories": 700.0,
    }


def event(aspect, object_id, owner_id=987654, object_type="activity", **extra):
    return {
        "object_type": object_type,
        "object_id": object_id,
        "aspect_type": aspect,
        "owner_id": owner_id,
        "subscription_id": 1,
        "event_time": 1718038800,
        **extra,
    }


class TestHandshake:
    def test_valid_handshake_echoes_challenge(self, client):
        response = client.get(
            "/api/strava/webhook",
            params={"hub.mode": "subscribe", "hub.verify_token": "verify-me", "hub.challenge": "abc123"},
        )
        assert response.status_code == 200
        assert response.json() == {"hub.challenge": "abc123"}

    def test_wrong_token_is_rejected(self, client):
        response = client.get(
            "/api/strava/webhook",
            params={"hub.mode": "subscribe", "hub.verify_token": "nope", "hub.challenge": "abc123"},
        )
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid request"}

    def test_wrong_mode(self):
        assert verify_subscription("unsubscribe", "verify-me") is False
        assert verify_subscription("subscribe", "verify-me") is True


class TestEvents:
    def test_create_stores_activity(self, db_session, strava_user, monkeypatch):
        monkeypatch.setattr(strava_service, "get_activity_details", lambda user, aid, **kwargs: activity_payload(aid))
        monkeypatch.setattr(
            strava_service, "get_activity_streams",
            lambda user, aid, **kwargs: StreamFetchResult(outcome="unavailable"),
        )

        assert handle_event(db_session, event("create", 555)) == {"success": True}

        row = db_session.query(Activity).filter(Activity.strava_id == "555").one()
        assert row.user_id == strava_user.id
        assert row.source == "strava"
        assert row.calories == 700.0
        assert row.has_streams is False

    def test_update_rewrites_fields(self, db_session, strava_user, monkeypatch):
        make_activity(db_session, strava_user, source="strava", strava_id="555", name="Old name")
        monkeypatch.setattr(
            strava_service, "get_activity_details",
            lambda user, aid, **kwargs: activity_payload(aid, name="Renamed"),
        )

        assert handle_event(db_session, event("update", 555, updates={"title": "Renamed"}))["success"] is True

        rows = db_session.query(Activity).filter(Activity.user_id == strava_user.id).all()
        assert len(rows) == 1
        db_session.refresh(rows[0])
        assert rows[0].name == "Renamed"

    def test_delete_removes_only_the_matching_strava_row(self, db_session, strava_user):
        other = make_user(db_session, strava_id=111)
        make_activity(db_session, strava_user, source="strava", strava_id="555")
        make_activity(db_session, strava_user, source="strava", strava_id="556")
        make_activity(db_session, strava_user, source="manual", strava_id=None)
        make_activity(db_session, other, source="strava", strava_id="555")

        assert handle_event(db_session, event("delete", 555)) == {"success": True}

        remaining = {
            (str(a.user_id), a.source, a.strava_id)
            for a in db_session.query(Activity).all()
        }
        assert remaining == {
            (str(strava_user.id), "strava", "556"),
            (str(strava_user.id), "manual", None),
            (str(other.id), "strava", "555"),
        }

    def test_unknown_owner_is_acknowledged(self, db_session):
        assert handle_event(db_session, event("create", 555, owner_id=42)) == {"success": True}
        assert db_session.query(Activity).count() == 0

    def test_deauthorize_clears_tokens(self, db_session, strava_user):
        result = handle_event(
            db_session,
            event("update", 987654, object_type="athlete", updates={"authorized": "false"}),
        )
        assert result == {"success": True}
        db_session.expire_all()
        user = db_session.query(User).filter(User.id == strava_user.id).one()
        assert user.strava_access_token is None
        assert user.strava_refresh_token is None
        assert user.strava_id == 987654

    def test_processing_failure_reports_in_body(self, db_session, strava_user, monkeypatch):
        def broken(user, aid, **kwargs):
            raise RuntimeError("Strava exploded")

        monkeypatch.setattr(strava_service, "get_activity_details", broken)
        assert handle_event(db_session, event("create", 555)) == {"success": False, "error": "Processing failed"}


class TestWebhookRoute:
    def test_invalid_json_still_returns_200(self, client):
        response = client.post(
            "/api/strava/webhook",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 200
        assert response.json() == {"success": False, "error": "Processing failed"}

    def test_non_object_body(self, client):
        response = client.post("/api/strava/webhook", json=[1, 2, 3])
        assert response.status_code == 200
        assert response.json()["success"] is False

    def test_event_via_route(self, client, strava_user, db_session):
        make_activity(db_session, strava_user, source="strava", strava_id="777")
        response = client.post("/api/strava/webhook", json=event("delete", 777))
        assert response.status_code == 200
        assert response.json() == {"success": True}
        db_session.expire_all()
        assert db_session.query(Activity).count() == 0

    def test_rate_limited_upstream_answers_without_waiting(self, client, strava_user, strava_rate_limited):
        response = client.post("/api/strava/webhook", json=event("create", 555))
        assert response.status_code == 200
        assert response.json() == {"success": False, "error": "Processing failed"}
        # Strava asked for 900s; the webhook must not sit on it
        assert strava_rate_limited == []
