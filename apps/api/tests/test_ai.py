"""
Tests for AI generation: repetition avoidance, parsing, credits and summaries.

The model call is replaced at services.ai_generate.generate_and_parse.
"""
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from conftest import make_activity
from models import AIGeneration, Gear, PersonalityProfile
from services.ai_avoidance import (
    build_avoidance_context,
    calculate_similarity,
    check_credits,
    is_too_similar,
    save_generation,
)
from services.ai_client import AIGenerationError, GenerationResult, parse_generation
from services.ai_generate import AIRepetitionError, build_summary_context, generate_roast, load_user_stats

ROAST = "Your weekly mileage looks like a rounding error and your pace suggests leisurely strolling."


class FakeModel:
    def __init__(self, *outputs, raw=None):
        self.outputs = list(outputs)
        self.raw = raw or {}
        self.calls = []

    def __call__(self, generation_type, system_prompt, user_prompt, temperature=None, max_tokens=None):
        self.calls.append(user_prompt)
        content = self.outputs[min(len(self.calls), len(self.outputs)) - 1]
        return GenerationResult(
            content=content,
            key_phrases=["rounding error"],
            data_points=["weekly mileage"],
            tokens_used=120,
            model="test-model",
            provider="anthropic",
            raw=self.raw,
        )


@pytest.fixture
def fake_model(monkeypatch):
    def install(*outputs, raw=None):
        fake = FakeModel(*outputs, raw=raw)
        monkeypatch.setattr("services.ai_generate.generate_and_parse", fake)
        return fake
    return install


@pytest.fixture
def stats(db_session, test_user):
    make_activity(db_session, test_user)
    return load_user_stats(db_session, test_user)


def generation_count(db, user, generation_type=None):
    q = db.query(AIGeneration).filter(AIGeneration.user_id == user.id)
    if generation_type:
        q = q.filter(AIGeneration.type == generation_type)
    return q.count()


class TestSimilarity:
    def test_identical_text(self):
        assert calculate_similarity(ROAST, ROAST) == 1.0

    def test_short_words_and_punctuation_ignored(self):
        assert calculate_similarity("The run, was long!", "the RUN was LONG") == 1.0
        assert calculate_similarity("a b c", "a b c") == 0.0

    def test_partial_overlap(self):
        # {alpha, bravo, charlie} vs {alpha, bravo, delta}
        assert calculate_similarity("alpha bravo charlie", "alpha bravo delta") == pytest.approx(0.5)

    def test_threshold_is_exclusive(self):
        previous = [SimpleNamespace(id="g1", content="alpha bravo charlie delta echo foxtrot golf hotel india juliet")]
        seven_of_ten = "alpha bravo charlie delta echo foxtrot golf"
        assert calculate_similarity(seven_of_ten, previous[0].content) == pytest.approx(0.7)
        assert is_too_similar(seven_of_ten, previous) is False
        assert is_too_similar(previous[0].content, previous) is True


class TestAvoidanceContext:
    def test_empty_history(self):
        assert build_avoidance_context([]) == ""

    def test_lists_phrases_data_points_and_excerpts(self):
        generations = [
            SimpleNamespace(key_phrases=["couch cushion"], data_points=["longest run"], style="savage", content="x" * 150),
            SimpleNamespace(key_phrases=["couch cushion", "snail"], data_points=[], style=None, content="short one"),
        ]
        block = build_avoidance_context(generations)
        assert "REPETITION AVOIDANCE" in block
        assert block.count('- "couch cushion"') == 1
        assert '- "snail"' in block
        assert "- longest run" in block
        assert "Recent styles: savage" in block
        assert '"' + "x" * 100 + '..."' in block
        assert '"short one"' in block


class TestParseGeneration:
    def test_plain_json(self):
        parsed = parse_generation('{"content": "Hello", "keyPhrasesUsed": ["a"], "dataPointsReferenced": ["b"]}')
        assert parsed["content"] == "Hello"
        assert parsed["key_phrases"] == ["a"]
        assert parsed["data_points"] == ["b"]

    def test_fenced_json(self):
        text = 'Sure!\n```json\n{"content": "Fenced", "keyPhrasesUsed": ["x"]}\n```'
        parsed = parse_generation(text)
        assert parsed["content"] == "Fenced"
        assert parsed["key_phrases"] == ["x"]
        assert parsed["data_points"] == []

    def test_raw_text_fallback(self):
        parsed = parse_generation("  Just words.  ")
        assert parsed == {"content": "Just words.", "key_phrases": [], "data_points": [], "raw": {}}


class TestGenerationLoop:
    def test_fresh_candidate_is_saved(self, db_session, test_user, fake_model, stats):
        fake = fake_model(ROAST)
        result = generate_roast(db_session, test_user, stats, "savage")

        assert result["content"] == ROAST
        assert result["style"] == "savage"
        assert len(fake.calls) == 1
        row = db_session.query(AIGeneration).one()
        assert row.type == "roast"
        assert row.key_phrases == ["rounding error"]
        assert row.tokens_used == 120

    def test_repeat_is_regenerated(self, db_session, test_user, fake_model, stats):
        save_generation(db_session, test_user.id, "roast", ROAST, key_phrases=["rounding error"])
        fake = fake_model(ROAST, "Completely different words about spectacular trail adventures today")

        result = generate_roast(db_session, test_user, stats)

        assert len(fake.calls) == 2
        assert result["content"].startswith("Completely different")
        assert generation_count(db_session, test_user, "roast") == 2
        # Earlier phrases are fed back into the prompt
        assert '- "rounding error"' in fake.calls[0]

    def test_persistent_repeat_is_rejected_and_not_saved(self, db_session, test_user, fake_model, stats):
        save_generation(db_session, test_user.id, "roast", ROAST)
        fake = fake_model(ROAST)

        with pytest.raises(AIRepetitionError) as excinfo:
            generate_roast(db_session, test_user, stats)

        assert excinfo.value.similarity == 1.0
        assert len(fake.calls) == 3
        assert generation_count(db_session, test_user, "roast") == 1

    def test_other_types_do_not_count_as_repeats(self, db_session, test_user, fake_model, stats):
        save_generation(db_session, test_user.id, "hype", ROAST)
        fake = fake_model(ROAST)
        generate_roast(db_session, test_user, stats)
        assert len(fake.calls) == 1


class TestCredits:
    def test_free_and_premium_limits(self, db_session, test_user):
        assert check_credits(db_session, test_user) == {"has_credits": True, "remaining": 3, "limit": 3, "used": 0}
        test_user.subscription_tier = "premium"
        assert check_credits(db_session, test_user)["limit"] == 50

    def test_yesterday_does_not_count(self, db_session, test_user):
        row = save_generation(db_session, test_user.id, "roast", "old")
        row.created_at = datetime.now(timezone.utc) - timedelta(days=1, hours=1)
        db_session.commit()
        assert check_credits(db_session, test_user)["remaining"] == 3

    def test_route_returns_429_when_exhausted(self, client, db_session, test_user, auth_headers, fake_model):
        for i in range(3):
            save_generation(db_session, test_user.id, "roast", f"generation number {i}")
        fake = fake_model(ROAST)

        response = client.post("/api/ai/generate", json={"type": "roast"}, headers=auth_headers)

        assert response.status_code == 429
        body = response.json()
        assert body["limit"] == 3
        assert body["remaining"] == 0
        assert body["reset_time"].endswith("00:00:00+00:00")
        assert fake.calls == []


class TestRoutes:
    def test_generate_roast(self, client, db_session, test_user, auth_headers, fake_model):
        make_activity(db_session, test_user)
        fake_model(ROAST)

        response = client.post("/api/ai/generate", json={"type": "roast", "style": "gym-bro"}, headers=auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["content"] == ROAST
        assert body["credits"]["remaining"] == 2

    def test_unknown_type_and_style(self, client, auth_headers):
        assert client.post("/api/ai/generate", json={"type": "poem"}, headers=auth_headers).status_code == 400
        response = client.post("/api/ai/generate", json={"type": "roast", "style": "haiku"}, headers=auth_headers)
        assert response.status_code == 400
        assert "haiku" in response.json()["error"]

    def test_repetition_maps_to_503(self, client, db_session, test_user, auth_headers, fake_model):
        save_generation(db_session, test_user.id, "hype", ROAST)
        fake_model(ROAST)
        response = client.post("/api/ai/hype", headers=auth_headers)
        assert response.status_code == 503
        assert response.json()["error_code"] == "GENERATION_UNAVAILABLE"
        assert generation_count(db_session, test_user, "hype") == 1

    def test_provider_failure_maps_to_502(self, client, auth_headers, monkeypatch):
        def down(*args, **kwargs):
            raise AIGenerationError("ANTHROPIC_API_KEY is not configured")

        monkeypatch.setattr("services.ai_generate.generate_and_parse", down)
        response = client.post("/api/ai/generate", json={"type": "hype"}, headers=auth_headers)
        assert response.status_code == 502
        assert response.json()["error_code"] == "UPSTREAM_ERROR"

    def test_personality_is_stored(self, client, db_session, test_user, auth_headers, fake_model):
        fake_model(
            "You are a creature of habit.",
            raw={
                "profileSummary": "You are a creature of habit.",
                "strengths": ["consistency"],
                "growthAreas": ["variety"],
                "funFacts": ["Never skips Mondays"],
                "spiritAnimal": "Tortoise",
                "spiritAnimalEmoji": "🐢",
            },
        )
        response = client.post("/api/ai/personality", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["spirit_animal"] == "Tortoise"

        profile = db_session.query(PersonalityProfile).filter(PersonalityProfile.user_id == test_user.id).one()
        assert profile.strengths == ["consistency"]
        assert profile.growth_areas == ["variety"]

    def test_info(self, client, auth_headers):
        body = client.get("/api/ai/generate", headers=auth_headers).json()
        assert body["available_types"] == ["roast", "hype", "narrative", "personality"]
        assert "savage" in body["styles"]["roast"]
        assert body["credits"]["remaining"] == 3


class TestSummary:
    def test_generated_once_then_cached(self, client, db_session, test_user, auth_headers, fake_model):
        activity = make_activity(db_session, test_user)
        fake = fake_model("Steady effort, right on your usual pace.")

        first = client.post("/api/ai/summary", json={"activity_id": str(activity.id)}, headers=auth_headers)
        second = client.post("/api/ai/summary", json={"activity_id": str(activity.id)}, headers=auth_headers)

        assert first.status_code == 200
        assert first.json()["cached"] is False
        assert second.json()["cached"] is True
        assert second.json()["content"] == "Steady effort, right on your usual pace."
        assert len(fake.calls) == 1

        read = client.get("/api/ai/summary", params={"activity_id": str(activity.id)}, headers=auth_headers).json()
        assert read["exists"] is True

    def test_cached_summary_needs_no_credit(self, client, db_session, test_user, auth_headers, fake_model):
        activity = make_activity(db_session, test_user, ai_summary="Already written.")
        for i in range(3):
            save_generation(db_session, test_user.id, "roast", f"generation number {i}")
        fake = fake_model("unused")

        response = client.post("/api/ai/summary", json={"activity_id": str(activity.id)}, headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["content"] == "Already written."
        assert fake.calls == []

    def test_other_users_activity_is_404(self, client, db_session, auth_headers):
        from conftest import make_user

        stranger = make_user(db_session)
        activity = make_activity(db_session, stranger)
        response = client.post("/api/ai/summary", json={"activity_id": str(activity.id)}, headers=auth_headers)
        assert response.status_code == 404

    def test_summary_context(self, db_session, test_user):
        shoes = Gear(user_id=test_user.id, strava_id="g1", name="Racers", type="shoe", distance=1000)
        db_session.add(shoes)
        db_session.commit()

        start = datetime(2024, 3, 10, 7, 0, tzinfo=timezone.utc)
        history = [
            make_activity(db_session, test_user, start_date=start - timedelta(days=d), distance=4000 + d * 1000,
                          location_city="Boulder")
            for d in range(1, 4)
        ]
        activity = make_activity(db_session, test_user, start_date=start, gear_id=shoes.id, location_city="Denver")
        db_session.refresh(activity)

        context = build_summary_context(activity, history)

        assert context["average_distance"] == pytest.approx(6000)
        assert context["is_new_location"] is True
        assert context["time_of_day"] == "early_morning"
        assert context["is_usual_time"] is True
        assert context["gear"]["name"] == "Racers"
        assert context["gear"]["is_first_use"] is True
