"""
Achievement Evaluator

Unlocks every catalog achievement whose threshold the user's updated stats
now meet. Unlocks are a set union: each one is an independent insert, a
duplicate is ignored, and nothing is ever revoked.
"""

from typing import List, Optional, Set
from datetime import datetime, timezone
from uuid import UUID
import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from models import Achievement, UserAchievement

logger = logging.getLogger(__name__)


def achievement_met(
    requirement_type: str,
    requirement_value: int,
    total_exercises: int,
    total_minutes: int,
    current_streak: int,
) -> bool:
    """Threshold predicate for one achievement. Unknown types never unlock."""
    if requirement_type == "exercises_completed":
        return total_exercises >= requirement_value
    if requirement_type == "streak":
        return current_streak >= requirement_value
    if requirement_type == "minutes_exercised":
        return total_minutes >= requirement_value
    logger.debug(f"Unknown achievement requirement_type: {requirement_type}")
    return False


def get_unlocked_ids(db: Session, user_id: UUID) -> Set[UUID]:
    rows = db.query(UserAchievement.achievement_id).filter(
        UserAchievement.user_id == user_id
    ).all()
    return {row[0] for row in rows}


def evaluate_and_unlock(
    db: Session,
    user_id: UUID,
    total_exercises: int,
    total_minutes: int,
    current_streak: int,
    now: Optional[datetime] = None,
) -> List[UUID]:
    """
    Insert a UserAchievement for each newly satisfied achievement.

    Returns the ids that were actually inserted by this call. A failed
    insert (duplicate from a concurrent unlock, or any other database error)
    is rolled back to its own savepoint and does not stop the others.
    """
    now = now or datetime.now(timezone.utc)

    achievements = db.query(Achievement).all()
    already_unlocked = get_unlocked_ids(db, user_id)

    unlocked: List[UUID] = []
    for achievement in achievements:
        if achievement.id in already_unlocked:
            continue
        if not achievement_met(
            achievement.requirement_type,
            achievement.requirement_value,
            total_exercises,
            total_minutes,
            current_streak,
        ):
            continue

        try:
            with db.begin_nested():
                db.add(UserAchievement(
                    user_id=user_id,
                    achievement_id=achievement.id,
                    unlocked_at=now,
                ))
        except IntegrityError:
            logger.info(f"Achievement {achievement.id} already unlocked for {user_id}")
            continue
        except SQLAlchemyError as e:
            logger.warning(f"Failed to unlock achievement {achievement.id} for {user_id}: {e}")
            continue

        unlocked.append(achievement.id)

    if unlocked:
        db.commit()
        logger.info(
            f"Unlocked {len(unlocked)} achievement(s) for {user_id}",
            extra={"extra_fields": {"user_id": str(user_id), "achievement_ids": [str(a) for a in unlocked]}},
        )

    return unlocked
