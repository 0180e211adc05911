"""
Daily Recommendation Cache

One recommended exercise set per user per UTC day:
- Cache hit: return the stored ids, never call the provider.
- Cache miss: summarize history, ask the suggestion provider, validate and
  pad its answer against the catalog, upsert the result.
- Provider failure (or anything else going wrong while building the
  suggestion): 5 random catalog exercises. The caller always gets a set.

The lookup -> provider -> upsert sequence is not isolated. Two concurrent
misses for the same user and day both call the provider. When both try to
insert, the unique (user, day) key rejects the second INSERT and that
caller returns the stored set instead, so both callers agree.

The cache date is the UTC day. The time-of-day hint sent to the provider
uses the caller's local hour when a UTC offset is supplied.
"""

import logging
import random
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Sequence
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from core.exceptions import ProviderError
from models import ActivityLog, DailyRecommendation, Exercise
from services.suggestion_provider import (
    CatalogEntry,
    GatewaySuggestionProvider,
    HistoryEntry,
    Suggestion,
    SuggestionProvider,
    SuggestionRequest,
)

logger = logging.getLogger(__name__)

MIN_EXERCISES = 4
MAX_EXERCISES = 5

CACHED_THEME = "Today's Workout"
CACHED_TIP = "Keep up the great work!"
DEFAULT_THEME = "Your Daily Desk Workout"
DEFAULT_TIP = "Remember to breathe deeply and stay hydrated!"
FALLBACK_THEME = "Your Daily Workout"
FALLBACK_TIP = "Stay active and take breaks throughout the day!"

SOURCE_CACHE = "cache"
SOURCE_PROVIDER = "provider"
SOURCE_FALLBACK = "fallback"


@dataclass
class Recommendation:
    exercise_ids: List[str]
    session_theme: str
    tip: str
    source: str
    fallback_reason: Optional[str] = None

    @property
    def used_fallback(self) -> bool:
        return self.source == SOURCE_FALLBACK


def time_of_day(hour: int) -> str:
    if hour < 12:
        return "morning"
    if hour < 17:
        return "afternoon"
    return "evening"


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def summarize_history(
    exercise_catalog: Sequence[Exercise],
    recent_activity_logs: Iterable[ActivityLog],
) -> List[HistoryEntry]:
    """
    Per exercise name: completion count and most recent completion.

    Logs for exercises missing from the catalog are skipped. Entries keep
    the order in which each exercise was first seen.
    """
    by_id = {str(e.id): e for e in exercise_catalog}
    counts: Dict[str, int] = {}
    latest: Dict[str, datetime] = {}

    for log in recent_activity_logs:
        exercise = by_id.get(str(log.exercise_id))
        if exercise is None:
            continue
        completed_at = _as_utc(log.completed_at)
        counts[exercise.name] = counts.get(exercise.name, 0) + 1
        if exercise.name not in latest or completed_at > latest[exercise.name]:
            latest[exercise.name] = completed_at

    return [
        HistoryEntry(
            exercise_name=name,
            completed_count=count,
            last_completed=latest[name].isoformat(),
        )
        for name, count in counts.items()
    ]


def validate_suggested_ids(
    suggested_ids: Iterable[str],
    catalog_ids: Sequence[str],
    rng: random.Random,
) -> List[str]:
    """
    Keep catalog members (first occurrence, provider order), pad with random
    distinct catalog ids up to MIN_EXERCISES, cap at MAX_EXERCISES.
    """
    valid = set(catalog_ids)
    selected: List[str] = []
    for exercise_id in suggested_ids:
        if exercise_id in valid and exercise_id not in selected:
            selected.append(exercise_id)

    if len(selected) < MIN_EXERCISES:
        remaining = [i for i in catalog_ids if i not in selected]
        needed = min(MIN_EXERCISES - len(selected), len(remaining))
        selected.extend(rng.sample(remaining, needed))

    return selected[:MAX_EXERCISES]


def random_selection(catalog_ids: Sequence[str], rng: random.Random) -> List[str]:
    """MAX_EXERCISES distinct ids drawn uniformly (fewer if the catalog is smaller)."""
    return rng.sample(list(catalog_ids), min(MAX_EXERCISES, len(catalog_ids)))


def get_cached_recommendation(db: Session, user_id: UUID, day: date) -> Optional[DailyRecommendation]:
    return db.query(DailyRecommendation).filter(
        DailyRecommendation.user_id == user_id,
        DailyRecommendation.recommended_date == day,
    ).first()


def upsert_recommendation(
    db: Session,
    user_id: UUID,
    day: date,
    exercise_ids: List[str],
) -> DailyRecommendation:
    """
    Insert or overwrite the (user, day) entry and return the stored row.

    If another request inserted the row after our lookup, the INSERT hits
    the unique key and the other request's row is returned unchanged.
    """
    row = get_cached_recommendation(db, user_id, day)
    if row is not None:
        row.exercise_ids = list(exercise_ids)
        db.commit()
        return row

    try:
        row = DailyRecommendation(user_id=user_id, recommended_date=day, exercise_ids=list(exercise_ids))
        db.add(row)
        db.commit()
        return row
    except IntegrityError:
        db.rollback()
        existing = get_cached_recommendation(db, user_id, day)
        if existing is None:
            raise
        logger.info(f"Recommendation for {user_id} on {day} was stored concurrently; keeping it")
        return existing


def _suggest(
    provider: SuggestionProvider,
    exercise_catalog: Sequence[Exercise],
    recent_activity_logs: Iterable[ActivityLog],
    current_streak: int,
    catalog_ids: Sequence[str],
    rng: random.Random,
    local_hour: int,
) -> Recommendation:
    request = SuggestionRequest(
        exercise_history=summarize_history(exercise_catalog, recent_activity_logs),
        available_exercises=[
            CatalogEntry(
                id=str(e.id),
                name=e.name,
                category=e.category,
                target_area=e.target_area,
                difficulty=e.difficulty,
            )
            for e in exercise_catalog
        ],
        current_streak=current_streak,
        time_of_day=time_of_day(local_hour),
    )

    suggestion: Suggestion = provider.suggest(request)

    return Recommendation(
        exercise_ids=validate_suggested_ids(suggestion.exercise_ids, catalog_ids, rng),
        session_theme=suggestion.session_theme or DEFAULT_THEME,
        tip=suggestion.tip or DEFAULT_TIP,
        source=SOURCE_PROVIDER,
    )


def get_todays_recommendation(
    db: Session,
    user_id: UUID,
    exercise_catalog: Sequence[Exercise],
    recent_activity_logs: Iterable[ActivityLog],
    current_streak: int,
    provider: Optional[SuggestionProvider] = None,
    rng: Optional[random.Random] = None,
    now: Optional[datetime] = None,
    utc_offset_minutes: int = 0,
) -> Recommendation:
    """
    Return today's exercise set for the user, generating and caching it on
    the first call of the (UTC) day.

    Never raises for provider problems. Database errors on the cache lookup
    are treated as a miss; errors on the upsert are logged and the freshly
    built set is still returned.

    `utc_offset_minutes` is the caller's offset from UTC (e.g. -480 for
    UTC-8). It only shifts the time-of-day hint; the cache stays keyed by
    the UTC date.
    """
    now = _as_utc(now or datetime.now(timezone.utc))
    today = now.date()
    rng = rng or random.Random()
    local_hour = (now + timedelta(minutes=utc_offset_minutes)).hour

    try:
        cached = get_cached_recommendation(db, user_id, today)
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning(f"Recommendation cache lookup failed for {user_id}: {e}")
        cached = None

    if cached is not None and cached.exercise_ids:
        logger.debug(f"Recommendation cache hit for {user_id} on {today}")
        return Recommendation(
            exercise_ids=list(cached.exercise_ids),
            session_theme=CACHED_THEME,
            tip=CACHED_TIP,
            source=SOURCE_CACHE,
        )

    catalog_ids = [str(e.id) for e in exercise_catalog]
    if not catalog_ids:
        logger.warning("Exercise catalog is empty; nothing to recommend")
        return Recommendation(
            exercise_ids=[],
            session_theme=FALLBACK_THEME,
            tip=FALLBACK_TIP,
            source=SOURCE_FALLBACK,
            fallback_reason="empty_catalog",
        )

    provider = provider or GatewaySuggestionProvider()
    try:
        recommendation = _suggest(
            provider, exercise_catalog, recent_activity_logs, current_streak, catalog_ids, rng, local_hour
        )
    except Exception as e:
        reason = e.reason if isinstance(e, ProviderError) else "provider_error"
        logger.warning(
            f"Recommendation generation failed for {user_id}, using random exercises: {e}",
            extra={"extra_fields": {"user_id": str(user_id), "fallback_reason": reason}},
        )
        recommendation = Recommendation(
            exercise_ids=random_selection(catalog_ids, rng),
            session_theme=FALLBACK_THEME,
            tip=FALLBACK_TIP,
            source=SOURCE_FALLBACK,
            fallback_reason=reason,
        )

    try:
        stored = upsert_recommendation(db, user_id, today, recommendation.exercise_ids)
        if stored.exercise_ids and list(stored.exercise_ids) != recommendation.exercise_ids:
            return Recommendation(
                exercise_ids=list(stored.exercise_ids),
                session_theme=CACHED_THEME,
                tip=CACHED_TIP,
                source=SOURCE_CACHE,
            )
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to cache recommendation for {user_id} on {today}: {e}")

    return recommendation
