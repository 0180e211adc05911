"""
Suggestion Provider boundary.

The recommendation cache asks a provider for 4-5 exercise ids plus a session
theme and a tip. The production provider is an OpenAI-compatible chat
completions gateway driven through a forced tool call, so the answer comes
back as structured JSON arguments rather than free text.

HTTP status mapping:
    429 -> RateLimitedError
    402 -> QuotaExceededError
    anything else non-2xx, transport failure, missing/garbled tool call
        -> ProviderError
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

import requests

from core.config import settings
from core.exceptions import ProviderError, QuotaExceededError, RateLimitedError

logger = logging.getLogger(__name__)

TOOL_NAME = "recommend_exercises"

SYSTEM_PROMPT = """You are a helpful desk exercise advisor. Your job is to recommend 4-5 exercises for a 10-15 minute desk workout session.

Consider these factors when making recommendations:
1. Time of day: Morning sessions should be more energizing, afternoon sessions should help with mid-day slumps, evening sessions should focus on relaxation and stretching
2. User's exercise history: Try to vary exercises to avoid repetition while still including favorites
3. Current streak: For users with longer streaks, gradually introduce more challenging exercises
4. Balance: Include a mix of stretching, strength, and relaxation exercises
5. Target different body areas for a well-rounded session

Always prioritize exercises that are safe to do at a desk and don't require equipment."""

RECOMMEND_TOOL = {
    "type": "function",
    "function": {
        "name": TOOL_NAME,
        "description": "Returns the recommended exercise IDs for the user's session",
        "parameters": {
            "type": "object",
            "properties": {
                "exercise_ids": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Array of exercise IDs to recommend (4-5 exercises)",
                },
                "session_theme": {
                    "type": "string",
                    "description": "A short motivating theme for this session (e.g., 'Energizing Morning Flow')",
                },
                "tip": {
                    "type": "string",
                    "description": "A brief wellness tip related to the exercises",
                },
            },
            "required": ["exercise_ids", "session_theme", "tip"],
            "additionalProperties": False,
        },
    },
}


@dataclass
class HistoryEntry:
    exercise_name: str
    completed_count: int
    last_completed: str  # ISO-8601


@dataclass
class CatalogEntry:
    id: str
    name: str
    category: str
    target_area: str
    difficulty: str


@dataclass
class SuggestionRequest:
    exercise_history: List[HistoryEntry]
    available_exercises: List[CatalogEntry]
    current_streak: int
    time_of_day: str  # morning | afternoon | evening


@dataclass
class Suggestion:
    """Raw provider answer. Ids are unvalidated."""
    exercise_ids: List[str] = field(default_factory=list)
    session_theme: Optional[str] = None
    tip: Optional[str] = None


class SuggestionProvider(Protocol):
    def suggest(self, request: SuggestionRequest) -> Suggestion:
        ...


def build_request_payload(request: SuggestionRequest) -> Dict[str, Any]:
    """Wire form of a suggestion request."""
    return {
        "exerciseHistory": [
            {
                "exercise_name": h.exercise_name,
                "completed_count": h.completed_count,
                "last_completed": h.last_completed,
            }
            for h in request.exercise_history
        ],
        "availableExercises": [
            {
                "id": e.id,
                "name": e.name,
                "category": e.category,
                "target_area": e.target_area,
                "difficulty": e.difficulty,
            }
            for e in request.available_exercises
        ],
        "currentStreak": request.current_streak,
        "timeOfDay": request.time_of_day,
    }


def build_user_prompt(request: SuggestionRequest) -> str:
    if request.exercise_history:
        history = ", ".join(
            f"{h.exercise_name} (done {h.completed_count} times)" for h in request.exercise_history
        )
    else:
        history = "No recent history - this is a new user!"

    catalog = "\n".join(
        f"- {e.name} ({e.category}, targets: {e.target_area}, difficulty: {e.difficulty}, id: {e.id})"
        for e in request.available_exercises
    )

    return (
        "Please recommend 4-5 exercises for a desk workout session.\n\n"
        "Current context:\n"
        f"- Time of day: {request.time_of_day}\n"
        f"- User's current streak: {request.current_streak} days\n"
        f"- Recent exercise history: {history}\n\n"
        "Available exercises:\n"
        f"{catalog}\n\n"
        "Return the exercise IDs you recommend."
    )


def parse_tool_call(data: Dict[str, Any]) -> Suggestion:
    """Extract the forced tool call from a chat-completions response body."""
    try:
        tool_call = data["choices"][0]["message"]["tool_calls"][0]
        arguments = tool_call["function"]["arguments"]
    except (KeyError, IndexError, TypeError):
        raise ProviderError("No tool call in response")

    try:
        result = json.loads(arguments) if isinstance(arguments, str) else arguments
    except json.JSONDecodeError as e:
        raise ProviderError(f"Unparseable tool call arguments: {e}")

    if not isinstance(result, dict):
        raise ProviderError("Tool call arguments are not an object")

    exercise_ids = result.get("exercise_ids")
    if not isinstance(exercise_ids, list):
        raise ProviderError("Tool call is missing exercise_ids")

    return Suggestion(
        exercise_ids=[str(i) for i in exercise_ids],
        session_theme=result.get("session_theme") or None,
        tip=result.get("tip") or None,
    )


class GatewaySuggestionProvider:
    """Suggestion provider backed by an OpenAI-compatible chat completions API."""

    def __init__(
        self,
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout_s: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ):
        self.api_url = api_url or settings.SUGGESTION_API_URL
        self.api_key = api_key if api_key is not None else settings.SUGGESTION_API_KEY
        self.model = model or settings.SUGGESTION_MODEL
        self.timeout_s = timeout_s or settings.SUGGESTION_TIMEOUT_S
        self.http = session or requests.Session()

    def suggest(self, request: SuggestionRequest) -> Suggestion:
        if not self.api_key:
            raise ProviderError("SUGGESTION_API_KEY is not configured")

        body = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_user_prompt(request)},
            ],
            "tools": [RECOMMEND_TOOL],
            "tool_choice": {"type": "function", "function": {"name": TOOL_NAME}},
        }

        logger.debug(
            f"Requesting suggestion from {self.model}",
            extra={"extra_fields": {"suggestion_request": build_request_payload(request)}},
        )

        try:
            r = self.http.post(
                self.api_url,
                json=body,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout_s,
            )
        except requests.exceptions.RequestException as e:
            logger.warning(f"Suggestion provider unreachable: {e}")
            raise ProviderError(f"Suggestion provider unreachable: {e}")

        if r.status_code == 429:
            raise RateLimitedError()
        if r.status_code == 402:
            raise QuotaExceededError()
        if r.status_code >= 400:
            logger.error(f"Suggestion provider error: {r.status_code} {r.text[:500]}")
            raise ProviderError(f"Suggestion provider error: {r.status_code}")

        try:
            data = r.json()
        except ValueError as e:
            raise ProviderError(f"Suggestion provider returned invalid JSON: {e}")

        suggestion = parse_tool_call(data)
        logger.debug(f"Suggestion provider returned {len(suggestion.exercise_ids)} ids")
        return suggestion
