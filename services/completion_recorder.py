"""
Completion Recorder

Handles "I finished an exercise":
1. Append an ActivityLog row (committed on its own).
2. Recompute the profile aggregates: totals and the day streak.
3. Persist them with an optimistic-concurrency guarded UPDATE.
4. Run the achievement evaluator (best effort).

Day boundaries are UTC calendar days. A log written at 23:30 UTC and one
written at 00:10 UTC the next morning land on consecutive days.

Failure semantics:
- Unknown exercise -> NotFoundError, nothing written.
- Log insert fails -> PersistenceError, nothing written.
- Profile missing -> ProfileNotFoundError, the log stays.
- Profile update fails -> PersistenceError, the log stays; the next
  completion reconciles nothing automatically, the stats simply lag.
- Achievement evaluation fails -> logged, completion still succeeds.
"""

from typing import List, Optional, Tuple
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone, date
from uuid import UUID
import math
import logging

from sqlalchemy import and_, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from core.exceptions import NotFoundError, PersistenceError, ProfileNotFoundError, ValidationError
from models import ActivityLog, Exercise, Profile
from services.achievement_evaluator import evaluate_and_unlock

logger = logging.getLogger(__name__)

PROFILE_UPDATE_MAX_ATTEMPTS = 3


@dataclass
class CompletionResult:
    """Profile stats after a recorded completion"""
    activity_log_id: UUID
    total_exercises_completed: int
    total_minutes_exercised: int
    current_streak: int
    longest_streak: int
    streak_incremented: bool
    unlocked_achievement_ids: List[UUID] = field(default_factory=list)


def minutes_for(duration_seconds: int) -> int:
    """Whole minutes credited for a completion, rounding halves up (90s -> 2)."""
    return int(math.floor(duration_seconds / 60 + 0.5))


def utc_day_bounds(day: date) -> Tuple[datetime, datetime]:
    """[start, end) of a UTC calendar day."""
    start = datetime(day.year, day.month, day.day, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


def next_streak(current_streak: int, first_today: bool, active_yesterday: bool) -> int:
    """
    Streak after a completion.

    A lapsed streak (no activity yesterday, current_streak > 0) is carried
    unchanged rather than reset to 1. The lapse is expected to be cleared
    elsewhere; see DESIGN.md.
    """
    if not first_today:
        return current_streak
    if active_yesterday:
        return current_streak + 1
    if current_streak == 0:
        return 1
    return current_streak


def _is_first_completion_today(db: Session, log: ActivityLog, day_start: datetime, day_end: datetime) -> bool:
    """
    True when no other log of this user today sorts before `log`.

    Ordering by (completed_at, id) means exactly one log per day is "first",
    even when two completions are committed before either updates the profile.
    """
    earlier = db.query(ActivityLog.id).filter(
        ActivityLog.user_id == log.user_id,
        ActivityLog.id != log.id,
        ActivityLog.completed_at >= day_start,
        ActivityLog.completed_at < day_end,
        or_(
            ActivityLog.completed_at < log.completed_at,
            and_(ActivityLog.completed_at == log.completed_at, ActivityLog.id < log.id),
        ),
    ).first()
    return earlier is None


def _had_activity_between(db: Session, user_id: UUID, start: datetime, end: datetime) -> bool:
    row = db.query(ActivityLog.id).filter(
        ActivityLog.user_id == user_id,
        ActivityLog.completed_at >= start,
        ActivityLog.completed_at < end,
    ).first()
    return row is not None


def _require_exercise(db: Session, exercise_id: UUID) -> None:
    try:
        exists = db.query(Exercise.id).filter(Exercise.id == exercise_id).first()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError("exercise lookup") from e
    if exists is None:
        raise NotFoundError("Exercise", str(exercise_id))


def _insert_activity_log(
    db: Session,
    user_id: UUID,
    exercise_id: UUID,
    duration_seconds: int,
    difficulty_rating: Optional[int],
    notes: Optional[str],
    completed_at: datetime,
) -> ActivityLog:
    log = ActivityLog(
        user_id=user_id,
        exercise_id=exercise_id,
        completed_at=completed_at,
        duration_seconds=duration_seconds,
        difficulty_rating=difficulty_rating,
        notes=notes,
    )
    try:
        db.add(log)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to log exercise {exercise_id} for {user_id}: {e}")
        raise PersistenceError("activity log insert", "Failed to log exercise. Please try again.") from e
    return log


def _update_profile_stats(
    db: Session,
    user_id: UUID,
    log: ActivityLog,
    duration_seconds: int,
    today: date,
) -> Tuple[Profile, bool]:
    """
    Read-modify-write of the profile aggregates.

    Retries from a fresh read when the version token shows a concurrent
    writer, so two same-day completions never both count as "first today".
    """
    today_start, today_end = utc_day_bounds(today)
    yesterday_start, yesterday_end = utc_day_bounds(today - timedelta(days=1))

    for attempt in range(1, PROFILE_UPDATE_MAX_ATTEMPTS + 1):
        try:
            profile = db.query(Profile).filter(Profile.user_id == user_id).first()
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError("profile read") from e

        if profile is None:
            raise ProfileNotFoundError(user_id)

        try:
            first_today = _is_first_completion_today(db, log, today_start, today_end)
            active_yesterday = _had_activity_between(db, user_id, yesterday_start, yesterday_end)
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError("activity window query") from e

        current = profile.current_streak or 0
        new_streak = next_streak(current, first_today, active_yesterday)

        profile.total_exercises_completed = (profile.total_exercises_completed or 0) + 1
        profile.total_minutes_exercised = (profile.total_minutes_exercised or 0) + minutes_for(duration_seconds)
        profile.current_streak = new_streak
        profile.longest_streak = max(profile.longest_streak or 0, new_streak)

        try:
            db.commit()
        except StaleDataError:
            db.rollback()
            logger.warning(
                f"Concurrent profile update for {user_id}, retrying "
                f"(attempt {attempt}/{PROFILE_UPDATE_MAX_ATTEMPTS})"
            )
            continue
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to update profile stats for {user_id}: {e}")
            raise PersistenceError("profile update") from e

        return profile, new_streak > current

    raise PersistenceError(
        "profile update",
        "Profile was updated concurrently too many times. Please try again.",
    )


def record_completion(
    db: Session,
    user_id: UUID,
    exercise_id: UUID,
    duration_seconds: int,
    difficulty_rating: Optional[int] = None,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> CompletionResult:
    """
    Record one completed exercise and return the user's updated stats.

    Raises:
        ValidationError: non-positive duration or rating outside 1-5
        NotFoundError: exercise_id is not in the catalog
        PersistenceError: log insert or profile update could not be committed
        ProfileNotFoundError: the user has no profile row
    """
    if duration_seconds is None or duration_seconds <= 0:
        raise ValidationError("duration_seconds must be positive", field="duration_seconds")
    if difficulty_rating is not None and not 1 <= difficulty_rating <= 5:
        raise ValidationError("difficulty_rating must be between 1 and 5", field="difficulty_rating")

    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    else:
        now = now.astimezone(timezone.utc)

    _require_exercise(db, exercise_id)
    log = _insert_activity_log(db, user_id, exercise_id, duration_seconds, difficulty_rating, notes, now)
    profile, streak_incremented = _update_profile_stats(db, user_id, log, duration_seconds, now.date())

    result = CompletionResult(
        activity_log_id=log.id,
        total_exercises_completed=profile.total_exercises_completed,
        total_minutes_exercised=profile.total_minutes_exercised,
        current_streak=profile.current_streak,
        longest_streak=profile.longest_streak,
        streak_incremented=streak_incremented,
    )

    try:
        result.unlocked_achievement_ids = evaluate_and_unlock(
            db,
            user_id,
            result.total_exercises_completed,
            result.total_minutes_exercised,
            result.current_streak,
            now=now,
        )
    except Exception as e:
        db.rollback()
        logger.warning(f"Achievement evaluation failed for {user_id} (non-critical): {e}", exc_info=True)

    logger.info(
        f"Exercise completion recorded for {user_id}",
        extra={
            "extra_fields": {
                "user_id": str(user_id),
                "exercise_id": str(exercise_id),
                "current_streak": result.current_streak,
                "total_exercises": result.total_exercises_completed,
            }
        },
    )

    return result
