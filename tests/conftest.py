"""
Pytest configuration and fixtures

Tests run against an in-memory SQLite database. Every test gets a freshly
created schema, so nothing leaks between tests.
"""
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from uuid import uuid4

# Must be set before any application module reads settings
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-deskfit-tests-0123456789")
os.environ.setdefault("LOG_FORMAT", "text")

# Add the project root to the path so we can import core/services/routers
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import pytest

from core.database import Base, SessionLocal, engine
import models  # noqa: F401
from models import Achievement, ActivityLog, Exercise, Profile

CATEGORIES = ["stretching", "strength", "relaxation", "mobility"]
TARGET_AREAS = ["neck", "shoulders", "back", "wrists", "legs", "core"]


@pytest.fixture(scope="function")
def db_session():
    """Fresh schema per test; dropped afterwards."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def user_id():
    return uuid4()


@pytest.fixture
def make_profile(db_session):
    def _make(user_id, **fields):
        profile = Profile(user_id=user_id, display_name="Desk Worker", **fields)
        db_session.add(profile)
        db_session.commit()
        return profile
    return _make


@pytest.fixture
def test_profile(make_profile, user_id):
    return make_profile(user_id)


@pytest.fixture
def make_catalog(db_session):
    """Create `count` exercises named E1..E<count>."""
    def _make(count=12):
        exercises = []
        for i in range(1, count + 1):
            exercise = Exercise(
                name=f"E{i}",
                description=f"Exercise {i}",
                category=CATEGORIES[i % len(CATEGORIES)],
                duration_seconds=60 + 15 * (i % 4),
                difficulty=Exercise.DIFFICULTIES[i % 3],
                target_area=TARGET_AREAS[i % len(TARGET_AREAS)],
                instructions=[f"Step 1 of E{i}", f"Step 2 of E{i}"],
                icon="dumbbell",
            )
            db_session.add(exercise)
            exercises.append(exercise)
        db_session.commit()
        return exercises
    return _make


@pytest.fixture
def catalog(make_catalog):
    return make_catalog(12)


@pytest.fixture
def make_log(db_session):
    def _make(user_id, exercise, completed_at, duration_seconds=60, difficulty_rating=None):
        log = ActivityLog(
            user_id=user_id,
            exercise_id=exercise.id,
            completed_at=completed_at,
            duration_seconds=duration_seconds,
            difficulty_rating=difficulty_rating,
        )
        db_session.add(log)
        db_session.commit()
        return log
    return _make


@pytest.fixture
def make_achievement(db_session):
    def _make(requirement_type, requirement_value, name=None):
        achievement = Achievement(
            name=name or f"{requirement_type} {requirement_value}",
            description=f"Reach {requirement_value} ({requirement_type})",
            icon="trophy",
            requirement_type=requirement_type,
            requirement_value=requirement_value,
        )
        db_session.add(achievement)
        db_session.commit()
        return achievement
    return _make


def utc(year, month, day, hour=12, minute=0):
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)
