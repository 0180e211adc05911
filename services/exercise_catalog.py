"""
Read-side queries for the dashboard: catalog, profile, history, badges.
"""

from datetime import datetime
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from core.config import settings
from core.exceptions import ProfileNotFoundError
from models import Achievement, ActivityLog, Exercise, Profile, UserAchievement


def list_exercises(db: Session) -> List[Exercise]:
    return db.query(Exercise).order_by(Exercise.name).all()


def get_profile(db: Session, user_id: UUID) -> Optional[Profile]:
    return db.query(Profile).filter(Profile.user_id == user_id).first()


def require_profile(db: Session, user_id: UUID) -> Profile:
    profile = get_profile(db, user_id)
    if profile is None:
        raise ProfileNotFoundError(user_id)
    return profile


def list_recent_activity(db: Session, user_id: UUID, limit: Optional[int] = None) -> List[ActivityLog]:
    """Newest first, with the exercise eagerly joined."""
    return db.query(ActivityLog).filter(
        ActivityLog.user_id == user_id
    ).order_by(
        ActivityLog.completed_at.desc()
    ).limit(limit or settings.RECENT_ACTIVITY_LIMIT).all()


def list_activity_between(db: Session, user_id: UUID, start: datetime, end: datetime) -> List[ActivityLog]:
    """Logs with start <= completed_at < end, oldest first."""
    return db.query(ActivityLog).filter(
        ActivityLog.user_id == user_id,
        ActivityLog.completed_at >= start,
        ActivityLog.completed_at < end,
    ).order_by(ActivityLog.completed_at).all()


def list_achievements_with_status(
    db: Session,
    user_id: UUID,
) -> List[Tuple[Achievement, Optional[UserAchievement]]]:
    """
    Every catalog achievement (lowest threshold first) paired with the
    user's unlock row, or None while still locked.
    """
    achievements = db.query(Achievement).order_by(
        Achievement.requirement_value, Achievement.name
    ).all()
    unlocks = {
        ua.achievement_id: ua
        for ua in db.query(UserAchievement).filter(UserAchievement.user_id == user_id).all()
    }
    return [(a, unlocks.get(a.id)) for a in achievements]
