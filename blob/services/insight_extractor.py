"""Turn onboarding text into behavioural insights and candidate goals."""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic import ValidationError as SchemaValidationError

from blob.core.errors import MalformedGenerationResult
from blob.observability.metrics import log_metric
from blob.services.reasoning import expect_object

logger = logging.getLogger(__name__)

GOAL_CATEGORIES = ("fitness", "career", "learning", "personal", "finance", "relationships", "health")
PRIORITIES = ("high", "medium", "low")
MIN_GOALS = 2
MAX_GOALS = 5
DEFAULT_TARGET_OFFSET = timedelta(days=90)

_RELATIVE_DATE_RE = re.compile(r"(\d+)\s*(day|week|month|year)s?", re.IGNORECASE)
_CATEGORY_ALIASES = {
    "wellness": "health",
    "exercise": "fitness",
    "education": "learning",
    "money": "finance",
    "work": "career",
    "family": "relationships",
    "social": "relationships",
}


class BasicProfile(BaseModel):
    """Coarse behavioural profile collected before the free-text conversation."""

    energy_pattern: Optional[Literal["morning", "afternoon", "evening"]] = None
    work_style: Optional[Literal["deep_focus", "quick_sprints", "flexible_mix"]] = None
    stress_response: Optional[Literal["reduce", "structure", "support"]] = None
    notes: Optional[str] = None


class _DropNulls(BaseModel):
    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {key: value for key, value in data.items() if value is not None}
        return data


class WorkPreferences(_DropNulls):
    preferred_hours: Optional[str] = None
    energy_peaks: List[str] = Field(default_factory=list)
    focus_style: Optional[str] = None


class Insights(_DropNulls):
    primary_goals: List[str] = Field(default_factory=list)
    challenges: List[str] = Field(default_factory=list)
    lifestyle: str = ""
    motivation_type: str = ""
    availability_pattern: str = ""
    personality_traits: List[str] = Field(default_factory=list)
    work_preferences: Optional[WorkPreferences] = None
    stress_factors: List[str] = Field(default_factory=list)
    time_constraints: List[str] = Field(default_factory=list)


class InsightSummary(_DropNulls):
    key_points: List[str] = Field(default_factory=list)
    user_context: str = ""
    recommendations: List[str] = Field(default_factory=list)


class BreakdownSeed(_DropNulls):
    milestones: List[str] = Field(default_factory=list)
    suggested_tasks: List[str] = Field(default_factory=list)
    timeframe: Optional[str] = None


class CandidateGoal(_DropNulls):
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    category: str = "personal"
    priority: str = "medium"
    target_date: Optional[date] = None
    rationale: str = ""
    seed: BreakdownSeed = Field(default_factory=BreakdownSeed)

    @field_validator("title", "description", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("category", mode="before")
    @classmethod
    def _known_category(cls, value: Any) -> str:
        return normalize_category(value)

    @field_validator("priority", mode="before")
    @classmethod
    def _known_priority(cls, value: Any) -> str:
        priority = str(value or "").strip().lower()
        return priority if priority in PRIORITIES else "medium"

    @field_validator("target_date", mode="before")
    @classmethod
    def _resolve_date(cls, value: Any) -> Optional[date]:
        return resolve_target_date(value)


@dataclass
class ExtractionResult:
    status: Literal["ok", "need_more_input"]
    insights: Optional[Insights] = None
    summary: Optional[InsightSummary] = None
    goals: List[CandidateGoal] = field(default_factory=list)
    message: Optional[str] = None

    @property
    def needs_more_input(self) -> bool:
        return self.status == "need_more_input"


def normalize_category(value: Any) -> str:
    category = str(value or "").strip().lower()
    category = _CATEGORY_ALIASES.get(category, category)
    return category if category in GOAL_CATEGORIES else "personal"


def resolve_target_date(value: Any, *, today: Optional[date] = None) -> Optional[date]:
    """Resolve ISO or relative ("3 months", "6 weeks") target dates.

    Missing values stay ``None``; anything unparsable or in the past lands three
    months out.
    """
    today = today or date.today()
    if value in (None, ""):
        return None
    if isinstance(value, date):
        resolved: Optional[date] = value
    else:
        text = str(value).strip()
        resolved = None
        try:
            resolved = date.fromisoformat(text[:10])
        except ValueError:
            match = _RELATIVE_DATE_RE.search(text)
            if match:
                amount = int(match.group(1))
                unit = match.group(2).lower()
                days_per_unit = {"day": 1, "week": 7, "month": 30, "year": 365}[unit]
                resolved = today + timedelta(days=amount * days_per_unit)
    if resolved is None or resolved < today:
        return today + DEFAULT_TARGET_OFFSET
    return resolved


_EXTRACTION_SYSTEM_PROMPT = (
    "You are a thoughtful productivity coach. Read the user's description of their life and goals and "
    "return strictly valid JSON with three keys:\n"
    '- "insights": {primary_goals[], challenges[], lifestyle, motivation_type, availability_pattern, '
    "personality_traits[], work_preferences{preferred_hours, energy_peaks[], focus_style}, stress_factors[], "
    "time_constraints[]}\n"
    '- "summary": {key_points[], user_context, recommendations[]} where user_context is two or three sentences '
    "that a planner can reuse as background.\n"
    f'- "goals": {MIN_GOALS} to {MAX_GOALS} objects {{title, description, category, priority, target_date, '
    "rationale, seed{milestones[], suggested_tasks[], timeframe}}. category is one of "
    f"{', '.join(GOAL_CATEGORIES)}; priority is high, medium or low; target_date is ISO (YYYY-MM-DD) or a "
    "relative phrase like '3 months'. rationale explains why the goal matters to this user.\n"
    "Only propose goals the user actually expressed or clearly implied."
)


class InsightExtractor:
    """Extract structured insights and 2-5 candidate goals from onboarding text.

    Extraction always goes through the reasoning service. There is no canned
    substitute: an unreachable service raises ``ReasoningUnavailable`` and an
    unusable answer raises ``MalformedGenerationResult``.
    """

    def __init__(self, reasoning, *, min_chars: int = 20) -> None:
        self.reasoning = reasoning
        self.min_chars = min_chars

    def needs_more_input(self, text: Optional[str]) -> bool:
        return len((text or "").strip()) < self.min_chars

    async def extract(self, text: str, profile: Optional[BasicProfile] = None) -> ExtractionResult:
        if self.needs_more_input(text):
            log_metric("onboarding.extract.need_more_input", 1)
            return ExtractionResult(
                status="need_more_input",
                message=(
                    f"Tell us a bit more about your goals and routine (at least {self.min_chars} characters) "
                    "so we can build a plan."
                ),
            )

        messages = [
            {"role": "system", "content": _EXTRACTION_SYSTEM_PROMPT},
            {"role": "user", "content": self._user_prompt(text.strip(), profile)},
        ]
        payload = expect_object(
            await self.reasoning.complete_json(messages, temperature=0.5, name="onboarding.extract"),
            "onboarding extraction",
        )
        result = self._parse(payload)
        log_metric("onboarding.extract.goals", len(result.goals))
        return result

    def _user_prompt(self, text: str, profile: Optional[BasicProfile]) -> str:
        profile_data = profile.model_dump(exclude_none=True) if profile else {}
        return (
            f"Today is {date.today().isoformat()}.\n"
            f"Behavioural profile: {json.dumps(profile_data) if profile_data else 'not provided'}\n\n"
            f"User description:\n{text}"
        )

    def _parse(self, payload: Dict[str, Any]) -> ExtractionResult:
        try:
            insights = Insights.model_validate(payload.get("insights") or {})
            summary = InsightSummary.model_validate(payload.get("summary") or {})
        except SchemaValidationError as exc:
            raise MalformedGenerationResult("Insights payload did not match the expected shape.") from exc

        raw_goals = payload.get("goals")
        if not isinstance(raw_goals, list):
            raise MalformedGenerationResult("Extraction payload is missing a goals list.")

        goals: List[CandidateGoal] = []
        for index, raw_goal in enumerate(raw_goals):
            try:
                goals.append(CandidateGoal.model_validate(raw_goal))
            except SchemaValidationError as exc:
                logger.info("Dropping candidate goal #%d: %s", index, exc.errors()[0].get("msg"))

        if len(goals) < MIN_GOALS:
            raise MalformedGenerationResult(
                f"Extraction produced {len(goals)} usable goal(s); at least {MIN_GOALS} are required."
            )
        if len(goals) > MAX_GOALS:
            logger.info("Truncating %d candidate goals to %d", len(goals), MAX_GOALS)
            goals = goals[:MAX_GOALS]

        if not summary.user_context:
            summary.user_context = insights.lifestyle
        return ExtractionResult(status="ok", insights=insights, summary=summary, goals=goals)
