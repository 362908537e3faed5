"""
Tests for achievement evaluation, progress and persistence.
"""
from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace
from uuid import uuid4

from conftest import make_activity
from models import UserAchievement
from services.achievements import (
    ACHIEVEMENTS,
    AchievementContext,
    achievement_score,
    award_achievements,
    calculate_progress,
    check_achievements,
    get_achievement,
    get_achievement_stats,
    get_all_progress,
    get_close_achievements,
    get_next_milestone,
    save_achievements,
)

TODAY = date(2024, 6, 12)


def act(day: date, hour=7, distance=5000.0, type="Run", name="Morning Run", elevation=0.0):
    start = datetime(day.year, day.month, day.day, hour, 0)
    return SimpleNamespace(
        id=uuid4(),
        distance=distance,
        moving_time=1500,
        total_elevation_gain=elevation,
        start_date=start,
        start_date_local=start,
        type=type,
        name=name,
    )


def ids(unlocks):
    return {u.achievement.id for u in unlocks}


class TestCatalog:
    def test_twenty_unique_definitions(self):
        assert len(ACHIEVEMENTS) == 20
        assert len({a.id for a in ACHIEVEMENTS}) == 20
        assert len({a.code for a in ACHIEVEMENTS}) == 20

    def test_lookup_by_id_or_code(self):
        assert get_achievement("marathon").code == "MARATHON"
        assert get_achievement("MARATHON").id == "marathon"
        assert get_achievement("nope") is None

    def test_points(self):
        assert get_achievement("marathon").points == 50
        assert get_achievement("officially_not_a_couch_potato").points == 15
        assert get_achievement("1000km").points == 25
        assert achievement_score("gold", "couchproof") == 55
        assert achievement_score("unknown", "quirky") == 0


class TestProgress:
    def test_percentage_clamped_when_value_exceeds_target(self):
        activities = [act(TODAY - timedelta(days=i)) for i in range(150)]
        context = AchievementContext(activities, today=TODAY)
        progress = calculate_progress(get_achievement("proof_of_movement"), context)
        assert progress["current_value"] == 150
        assert progress["percentage"] == 100

    def test_percentage_rounds(self):
        context = AchievementContext([act(TODAY)] * 3, today=TODAY)
        assert calculate_progress(get_achievement("proof_of_movement"), context)["percentage"] == 30

    def test_no_activities_is_zero(self):
        context = AchievementContext([], today=TODAY)
        for definition in ACHIEVEMENTS:
            assert calculate_progress(definition, context)["percentage"] == 0


class TestCheck:
    def test_first_activity_unlocks_starters(self):
        first = act(TODAY)
        unlocks = check_achievements([first], today=TODAY)
        assert {"first_activity", "officially_not_a_couch_potato"} <= ids(unlocks)
        by_id = {u.achievement.id: u for u in unlocks}
        assert by_id["first_activity"].activity_id == first.id

    def test_already_unlocked_are_skipped(self):
        unlocks = check_achievements([act(TODAY)], unlocked_ids={"first_activity"}, today=TODAY)
        assert "first_activity" not in ids(unlocks)

    def test_marathon_needs_a_run(self):
        ride = act(TODAY, distance=50000, type="Ride")
        run = act(TODAY - timedelta(days=1), distance=42195, type="Run")
        assert "marathon" not in ids(check_achievements([ride], today=TODAY))
        unlocks = check_achievements([ride, run], today=TODAY)
        marathon = next(u for u in unlocks if u.achievement.id == "marathon")
        assert marathon.activity_id == run.id

    def test_distance_badges_credit_the_first_qualifying_activity(self):
        first_century = act(TODAY - timedelta(days=40), distance=161000, type="Ride")
        later_century = act(TODAY - timedelta(days=2), distance=180000, type="Ride")
        first_marathon = act(TODAY - timedelta(days=30), distance=42195, type="Run")
        later_marathon = act(TODAY - timedelta(days=1), distance=43000, type="Run")

        unlocks = check_achievements([later_century, first_marathon, later_marathon, first_century], today=TODAY)

        by_id = {u.achievement.id: u for u in unlocks}
        assert by_id["century_ride"].activity_id == first_century.id
        assert by_id["marathon"].activity_id == first_marathon.id

    def test_quirks_judged_on_new_activity_only(self):
        old_early = act(TODAY - timedelta(days=3), hour=4)
        new_midday = act(TODAY, hour=12)
        unlocks = check_achievements([old_early, new_midday], new_activity=new_midday, today=TODAY)
        assert "pre_dawn" not in ids(unlocks)

        new_early = act(TODAY, hour=4)
        unlocks = check_achievements([new_early], new_activity=new_early, today=TODAY)
        assert "pre_dawn" in ids(unlocks)

    def test_holiday_and_double_day(self):
        july4 = date(2024, 7, 4)
        activities = [act(july4, hour=8), act(july4, hour=18)]
        unlocked = ids(check_achievements(activities, today=july4))
        assert {"holiday_hero", "double_day"} <= unlocked

    def test_week_streak(self):
        activities = [act(TODAY - timedelta(days=i)) for i in range(7)]
        assert "week_streak" in ids(check_achievements(activities, today=TODAY))

    def test_comeback_after_long_break(self):
        activities = [act(TODAY), act(TODAY - timedelta(days=45))]
        assert "comeback_kid" in ids(check_achievements(activities, today=TODAY))

    def test_results_are_deduplicated(self):
        unlocks = check_achievements([act(TODAY)] * 5, today=TODAY)
        assert len(ids(unlocks)) == len(unlocks)


class TestPersistence:
    def test_save_is_idempotent(self, db_session, test_user):
        activity = make_activity(db_session, test_user)
        unlocks = check_achievements([activity])

        first = save_achievements(db_session, test_user, unlocks)
        second = save_achievements(db_session, test_user, unlocks)

        assert len(first) == len(unlocks)
        assert second == []
        rows = db_session.query(UserAchievement).filter(UserAchievement.user_id == test_user.id).count()
        assert rows == len(unlocks)

    def test_award_achievements_uses_stored_history(self, db_session, test_user):
        make_activity(db_session, test_user, start_date=datetime(2024, 3, 1, 3, 30, tzinfo=timezone.utc))
        saved = award_achievements(db_session, test_user)
        assert "pre_dawn" in ids(saved)
        assert award_achievements(db_session, test_user) == []


class TestSummaries:
    def test_progress_listing_and_stats(self):
        items = get_all_progress([act(TODAY)] * 8, {}, today=TODAY)
        assert len(items) == 20
        categories = [i["achievement"]["category"] for i in items]
        assert categories[0] == "couchproof"
        assert categories[-1] == "quirky"

        nxt = get_next_milestone(items)
        assert nxt is not None
        assert not nxt["progress"]["is_unlocked"]

        close = get_close_achievements(items)
        assert all(i["progress"]["percentage"] >= 50 for i in close)
        assert "proof_of_movement" in {i["achievement"]["id"] for i in close}

        stats = get_achievement_stats(items)
        assert stats["total"] == 20
        assert stats["unlocked"] == 0
        assert stats["score"] == 0

    def test_unlocked_stays_complete(self):
        unlocked_row = SimpleNamespace(unlocked_at=datetime(2024, 1, 1, tzinfo=timezone.utc))
        items = get_all_progress([], {"week_streak": unlocked_row}, today=TODAY)
        week = next(i for i in items if i["achievement"]["id"] == "week_streak")
        assert week["progress"]["is_unlocked"] is True
        assert week["progress"]["percentage"] == 100

        stats = get_achievement_stats(items)
        assert stats["unlocked"] == 1
        assert stats["score"] == 10
        assert stats["by_category"]["streak"] == {"total": 4, "unlocked": 1}
