"""
Daily Recommendation API Router

The workout list always renders: provider trouble degrades to a random set,
reported through `used_fallback` / `fallback_reason` as an advisory only.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from pydantic import BaseModel
from typing import List, Optional
from uuid import UUID

from core.database import get_db
from core.auth import get_current_user_id
from services.daily_recommendation import get_todays_recommendation
from services.exercise_catalog import list_exercises, list_recent_activity, require_profile
from services.suggestion_provider import GatewaySuggestionProvider, SuggestionProvider

router = APIRouter(prefix="/v1/recommendations", tags=["Recommendations"])


class RecommendationResponse(BaseModel):
    exercise_ids: List[str]
    session_theme: str
    tip: str
    source: str
    used_fallback: bool
    fallback_reason: Optional[str] = None


def get_suggestion_provider() -> SuggestionProvider:
    return GatewaySuggestionProvider()


@router.get("/today", response_model=RecommendationResponse)
def get_today(
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
    provider: SuggestionProvider = Depends(get_suggestion_provider),
    utc_offset_minutes: int = Query(0, ge=-840, le=840, description="Caller's offset from UTC, e.g. -480 for UTC-8"),
):
    profile = require_profile(db, user_id)
    recommendation = get_todays_recommendation(
        db,
        user_id,
        list_exercises(db),
        list_recent_activity(db, user_id),
        profile.current_streak,
        provider=provider,
        utc_offset_minutes=utc_offset_minutes,
    )
    return RecommendationResponse(
        exercise_ids=recommendation.exercise_ids,
        session_theme=recommendation.session_theme,
        tip=recommendation.tip,
        source=recommendation.source,
        used_fallback=recommendation.used_fallback,
        fallback_reason=recommendation.fallback_reason,
    )
