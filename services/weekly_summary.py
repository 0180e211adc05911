"""
Weekly Summary

Monday-to-Sunday view of the week containing `today` (UTC): which days had
activity, how many exercises and minutes per day, and weekly totals.
"""

from typing import Iterable, List, Optional
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

from models import ActivityLog
from services.completion_recorder import minutes_for


@dataclass
class DayActivity:
    date: date
    exercise_count: int
    total_minutes: int
    has_activity: bool
    is_today: bool


@dataclass
class WeeklySummary:
    week_start: date
    week_end: date
    days: List[DayActivity]
    total_exercises: int
    total_minutes: int
    active_days: int
    average_rating: float  # 0 when no completion this week was rated
    current_streak: int


def week_bounds(today: date):
    start = today - timedelta(days=today.weekday())
    return start, start + timedelta(days=6)


def _utc_date(dt: datetime) -> date:
    if dt.tzinfo is None:
        return dt.date()
    return dt.astimezone(timezone.utc).date()


def build_weekly_summary(
    logs: Iterable[ActivityLog],
    current_streak: int,
    today: Optional[date] = None,
) -> WeeklySummary:
    today = today or datetime.now(timezone.utc).date()
    week_start, week_end = week_bounds(today)

    week_logs = [
        log for log in logs
        if week_start <= _utc_date(log.completed_at) <= week_end
    ]

    days = []
    for offset in range(7):
        day = week_start + timedelta(days=offset)
        day_logs = [log for log in week_logs if _utc_date(log.completed_at) == day]
        days.append(DayActivity(
            date=day,
            exercise_count=len(day_logs),
            total_minutes=sum(minutes_for(log.duration_seconds) for log in day_logs),
            has_activity=bool(day_logs),
            is_today=day == today,
        ))

    ratings = [log.difficulty_rating for log in week_logs if log.difficulty_rating]
    average_rating = round(sum(ratings) / len(ratings), 1) if ratings else 0.0

    return WeeklySummary(
        week_start=week_start,
        week_end=week_end,
        days=days,
        total_exercises=len(week_logs),
        total_minutes=sum(d.total_minutes for d in days),
        active_days=sum(1 for d in days if d.has_activity),
        average_rating=average_rating,
        current_streak=current_streak,
    )
