"""
Activity API Router

Completing an exercise, the recent history feed and the weekly summary.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field
from typing import List, Optional
from dataclasses import asdict
from datetime import date, datetime, timezone
from uuid import UUID

from core.database import get_db
from core.auth import get_current_user_id
from services.completion_recorder import record_completion, utc_day_bounds
from services.exercise_catalog import list_activity_between, list_recent_activity, require_profile
from services.weekly_summary import build_weekly_summary, week_bounds

router = APIRouter(prefix="/v1/activity", tags=["Activity"])


class CompleteExerciseRequest(BaseModel):
    exercise_id: UUID
    duration_seconds: int = Field(gt=0)
    difficulty_rating: Optional[int] = Field(default=None, ge=1, le=5)
    notes: Optional[str] = Field(default=None, max_length=2000)


class CompletionResponse(BaseModel):
    activity_log_id: UUID
    total_exercises_completed: int
    total_minutes_exercised: int
    current_streak: int
    longest_streak: int
    streak_incremented: bool
    unlocked_achievement_ids: List[UUID]


class ActivityLogResponse(BaseModel):
    id: UUID
    exercise_id: UUID
    exercise_name: Optional[str] = None
    completed_at: datetime
    duration_seconds: int
    difficulty_rating: Optional[int] = None
    notes: Optional[str] = None


class DayActivityResponse(BaseModel):
    date: date
    exercise_count: int
    total_minutes: int
    has_activity: bool
    is_today: bool


class WeeklySummaryResponse(BaseModel):
    week_start: date
    week_end: date
    days: List[DayActivityResponse]
    total_exercises: int
    total_minutes: int
    active_days: int
    average_rating: float
    current_streak: int


@router.post("/complete", response_model=CompletionResponse, status_code=status.HTTP_201_CREATED)
def complete_exercise(
    payload: CompleteExerciseRequest,
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
):
    """
    Record a finished exercise and return the updated profile stats.

    Errors are blocking for the user; retry is manual.
    """
    result = record_completion(
        db,
        user_id,
        payload.exercise_id,
        payload.duration_seconds,
        difficulty_rating=payload.difficulty_rating,
        notes=payload.notes,
    )
    return CompletionResponse(**asdict(result))


@router.get("", response_model=List[ActivityLogResponse])
async def get_recent_activity(
    limit: int = Query(default=100, ge=1, le=100),
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
):
    """Most recent completions, newest first."""
    return [
        ActivityLogResponse(
            id=log.id,
            exercise_id=log.exercise_id,
            exercise_name=log.exercise.name if log.exercise else None,
            completed_at=log.completed_at,
            duration_seconds=log.duration_seconds,
            difficulty_rating=log.difficulty_rating,
            notes=log.notes,
        )
        for log in list_recent_activity(db, user_id, limit=limit)
    ]


@router.get("/weekly-summary", response_model=WeeklySummaryResponse)
async def get_weekly_summary(
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
):
    profile = require_profile(db, user_id)
    today = datetime.now(timezone.utc).date()
    week_start, week_end = week_bounds(today)
    start, _ = utc_day_bounds(week_start)
    _, end = utc_day_bounds(week_end)

    logs = list_activity_between(db, user_id, start, end)
    summary = build_weekly_summary(logs, profile.current_streak, today=today)
    return WeeklySummaryResponse(**asdict(summary))
