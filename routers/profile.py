"""
Profile & Achievements API Router
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime
from uuid import UUID

from core.database import get_db
from core.auth import get_current_user_id
from services.exercise_catalog import list_achievements_with_status, require_profile

router = APIRouter(prefix="/v1", tags=["Profile"])


class ProfileResponse(BaseModel):
    user_id: UUID
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    current_streak: int
    longest_streak: int
    total_exercises_completed: int
    total_minutes_exercised: int

    class Config:
        from_attributes = True


class AchievementResponse(BaseModel):
    id: UUID
    name: str
    description: str
    icon: Optional[str] = None
    requirement_type: str
    requirement_value: int
    unlocked: bool
    unlocked_at: Optional[datetime] = None


@router.get("/profile", response_model=ProfileResponse)
async def get_my_profile(
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
):
    return require_profile(db, user_id)


@router.get("/achievements", response_model=List[AchievementResponse])
async def get_achievements(
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
):
    """All achievements, lowest threshold first, with the caller's unlock state."""
    return [
        AchievementResponse(
            id=achievement.id,
            name=achievement.name,
            description=achievement.description,
            icon=achievement.icon,
            requirement_type=achievement.requirement_type,
            requirement_value=achievement.requirement_value,
            unlocked=unlock is not None,
            unlocked_at=unlock.unlocked_at if unlock else None,
        )
        for achievement, unlock in list_achievements_with_status(db, user_id)
    ]
