from sqlalchemy import Column, Integer, CheckConstraint, Date, DateTime, ForeignKey, Text, Index, UniqueConstraint, JSON, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from core.database import Base
import uuid


class Profile(Base):
    """
    Per-user aggregate stats. Created by the signup flow; mutated only by
    the completion recorder.

    `version` is an optimistic-concurrency token: every UPDATE is issued as
    `... WHERE version = :loaded_version` and fails with StaleDataError if
    another writer got there first.
    """
    __tablename__ = "profiles"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, unique=True, nullable=False, index=True)
    display_name = Column(Text, nullable=True)
    avatar_url = Column(Text, nullable=True)
    current_streak = Column(Integer, default=0, nullable=False)
    longest_streak = Column(Integer, default=0, nullable=False)
    total_exercises_completed = Column(Integer, default=0, nullable=False)
    total_minutes_exercised = Column(Integer, default=0, nullable=False)
    version = Column(Integer, nullable=False, server_default="1")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("current_streak >= 0", name="ck_profiles_current_streak_nonneg"),
        CheckConstraint("longest_streak >= current_streak", name="ck_profiles_longest_ge_current"),
    )


class Exercise(Base):
    """Catalog reference data."""
    __tablename__ = "exercises"

    DIFFICULTIES = ("easy", "medium", "hard")

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    description = Column(Text, nullable=False, default="")
    category = Column(Text, nullable=False)
    duration_seconds = Column(Integer, nullable=False)
    difficulty = Column(Text, nullable=False)  # 'easy' | 'medium' | 'hard'
    target_area = Column(Text, nullable=False)
    instructions = Column(JSON, nullable=False, default=list)  # ordered list of steps
    icon = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("duration_seconds > 0", name="ck_exercises_duration_positive"),
        CheckConstraint("difficulty IN ('easy', 'medium', 'hard')", name="ck_exercises_difficulty"),
    )


class ActivityLog(Base):
    """One completed exercise instance. Append-only."""
    __tablename__ = "activity_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False)
    exercise_id = Column(Uuid, ForeignKey("exercises.id"), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=False)
    duration_seconds = Column(Integer, nullable=False)
    difficulty_rating = Column(Integer, nullable=True)  # 1-5
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    exercise = relationship("Exercise", lazy="joined")

    __table_args__ = (
        CheckConstraint(
            "difficulty_rating IS NULL OR (difficulty_rating >= 1 AND difficulty_rating <= 5)",
            name="ck_activity_logs_difficulty_rating",
        ),
        Index("ix_activity_logs_user_completed_at", "user_id", "completed_at"),
    )


class Achievement(Base):
    """Catalog of unlockable badges."""
    __tablename__ = "achievements"

    REQUIREMENT_TYPES = ("exercises_completed", "streak", "minutes_exercised")

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    description = Column(Text, nullable=False, default="")
    icon = Column(Text, nullable=True)
    requirement_type = Column(Text, nullable=False)
    requirement_value = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("requirement_value > 0", name="ck_achievements_requirement_positive"),
        CheckConstraint(
            "requirement_type IN ('exercises_completed', 'streak', 'minutes_exercised')",
            name="ck_achievements_requirement_type",
        ),
    )


class UserAchievement(Base):
    __tablename__ = "user_achievements"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False, index=True)
    achievement_id = Column(Uuid, ForeignKey("achievements.id"), nullable=False)
    unlocked_at = Column(DateTime(timezone=True), nullable=False)

    achievement = relationship("Achievement", lazy="joined")

    __table_args__ = (
        UniqueConstraint("user_id", "achievement_id", name="uq_user_achievements_user_achievement"),
    )


class DailyRecommendation(Base):
    """Per-user, per-day cache of the recommended exercise set."""
    __tablename__ = "daily_recommendations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False)
    recommended_date = Column(Date, nullable=False)
    exercise_ids = Column(JSON, nullable=False, default=list)  # ordered list of exercise id strings
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "recommended_date", name="uq_daily_recommendations_user_date"),
    )
