"""
Exercise Catalog API Router
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from pydantic import BaseModel
from typing import List, Optional
from uuid import UUID

from core.database import get_db
from core.auth import get_current_user_id
from services.exercise_catalog import list_exercises

router = APIRouter(prefix="/v1/exercises", tags=["Exercises"])


class ExerciseResponse(BaseModel):
    id: UUID
    name: str
    description: str
    category: str
    duration_seconds: int
    difficulty: str
    target_area: str
    instructions: List[str]
    icon: Optional[str] = None

    class Config:
        from_attributes = True


@router.get("", response_model=List[ExerciseResponse])
async def get_exercises(
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
):
    """Full catalog, ordered by name."""
    return list_exercises(db)
