"""
Tests for achievement unlocking: threshold predicates, idempotence and
independence of individual inserts.
"""
import pytest
from sqlalchemy.exc import IntegrityError

from conftest import utc
from models import Achievement, UserAchievement
from services import achievement_evaluator
from services.achievement_evaluator import achievement_met, evaluate_and_unlock
from services.completion_recorder import record_completion


def _unlocked(db_session, user_id):
    return {
        ua.achievement_id
        for ua in db_session.query(UserAchievement).filter(UserAchievement.user_id == user_id).all()
    }


class TestAchievementMet:
    @pytest.mark.parametrize("requirement_type,value,expected", [
        ("exercises_completed", 10, True),
        ("exercises_completed", 11, False),
        ("streak", 3, True),
        ("streak", 4, False),
        ("minutes_exercised", 25, True),
        ("minutes_exercised", 26, False),
    ])
    def test_thresholds(self, requirement_type, value, expected):
        assert achievement_met(requirement_type, value, total_exercises=10, total_minutes=25, current_streak=3) is expected

    def test_unknown_type_never_unlocks(self):
        assert achievement_met("calories_burned", 1, 100, 100, 100) is False


class TestAchievementCatalog:
    @pytest.mark.parametrize("requirement_type", Achievement.REQUIREMENT_TYPES)
    def test_known_requirement_types_are_accepted(self, make_achievement, requirement_type):
        assert make_achievement(requirement_type, 1).id is not None

    def test_unknown_requirement_type_is_rejected(self, db_session, make_achievement):
        with pytest.raises(IntegrityError):
            make_achievement("calories_burned", 1)
        db_session.rollback()


class TestEvaluateAndUnlock:
    def test_unlocks_only_met_achievements(self, db_session, user_id, make_achievement):
        first = make_achievement("exercises_completed", 1)
        ten = make_achievement("exercises_completed", 10)
        streak = make_achievement("streak", 3)

        unlocked = evaluate_and_unlock(db_session, user_id, total_exercises=5, total_minutes=5, current_streak=3)

        assert set(unlocked) == {first.id, streak.id}
        assert _unlocked(db_session, user_id) == {first.id, streak.id}
        assert ten.id not in unlocked

    def test_never_unlocks_twice(self, db_session, user_id, make_achievement):
        achievement = make_achievement("minutes_exercised", 30)

        assert evaluate_and_unlock(db_session, user_id, 1, 30, 1) == [achievement.id]
        assert evaluate_and_unlock(db_session, user_id, 2, 60, 1) == []
        assert db_session.query(UserAchievement).count() == 1

    def test_unlocks_are_per_user(self, db_session, user_id, make_achievement):
        from uuid import uuid4

        achievement = make_achievement("exercises_completed", 1)
        other_user = uuid4()

        evaluate_and_unlock(db_session, user_id, 1, 1, 1)
        assert evaluate_and_unlock(db_session, other_user, 1, 1, 1) == [achievement.id]

    def test_duplicate_insert_does_not_block_others(self, db_session, user_id, make_achievement, monkeypatch):
        raced = make_achievement("exercises_completed", 1, name="A raced")
        other = make_achievement("streak", 1, name="B other")
        db_session.add(UserAchievement(user_id=user_id, achievement_id=raced.id, unlocked_at=utc(2026, 3, 1)))
        db_session.commit()

        # Simulate a concurrent unlock the evaluator did not see when it read the set.
        monkeypatch.setattr(achievement_evaluator, "get_unlocked_ids", lambda db, uid: set())

        unlocked = evaluate_and_unlock(db_session, user_id, 1, 1, 1)

        assert unlocked == [other.id]
        assert _unlocked(db_session, user_id) == {raced.id, other.id}

    def test_no_catalog_no_unlocks(self, db_session, user_id):
        assert evaluate_and_unlock(db_session, user_id, 100, 100, 100) == []


class TestUnlockThroughCompletions:
    def test_ten_exercises_unlocks_exactly_once(self, db_session, user_id, test_profile, catalog, make_achievement):
        achievement = make_achievement("exercises_completed", 10)

        results = [
            record_completion(db_session, user_id, catalog[i % len(catalog)].id, 60, now=utc(2026, 3, 2, 8, i))
            for i in range(11)
        ]

        unlocked_at = [i for i, r in enumerate(results) if achievement.id in r.unlocked_achievement_ids]
        assert unlocked_at == [9]
        assert db_session.query(UserAchievement).filter(UserAchievement.user_id == user_id).count() == 1
