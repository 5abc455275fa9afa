"""Goal breakdown structures.

A breakdown is stored on ``Goal.breakdown`` as a tagged, versioned JSON
document. ``kind`` says where it came from (``generated`` by the reasoning
service or the deterministic ``fallback``) and ``version`` guards the shape.
"""
from __future__ import annotations

from datetime import date, timedelta
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator
from pydantic import ValidationError as SchemaValidationError

from blob.core.errors import MalformedGenerationResult

BREAKDOWN_VERSION = 1
DIFFICULTY_TIERS = ("beginner", "intermediate", "advanced")


class Milestone(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = ""
    target_date: Optional[date] = None
    is_completed: bool = False

    @field_validator("target_date", mode="before")
    @classmethod
    def _lenient_date(cls, value: Any) -> Any:
        if value in (None, ""):
            return None
        if isinstance(value, date):
            return value
        try:
            return date.fromisoformat(str(value)[:10])
        except ValueError:
            return None


class _BreakdownBase(BaseModel):
    version: Literal[1] = BREAKDOWN_VERSION
    milestones: List[Milestone] = Field(default_factory=list)
    weekly_tasks: List[str] = Field(default_factory=list)
    daily_habits: List[str] = Field(default_factory=list)
    estimated_timeframe: str = "2-4 months"
    difficulty: Literal["beginner", "intermediate", "advanced"] = "intermediate"
    success_tips: List[str] = Field(default_factory=list)

    @field_validator("weekly_tasks", "daily_habits", "success_tips", mode="before")
    @classmethod
    def _clean_strings(cls, value: Any) -> List[str]:
        if not isinstance(value, list):
            return []
        return [str(item).strip() for item in value if item and str(item).strip()]

    @field_validator("difficulty", mode="before")
    @classmethod
    def _known_tier(cls, value: Any) -> str:
        tier = str(value or "").strip().lower()
        return tier if tier in DIFFICULTY_TIERS else "intermediate"


class GeneratedBreakdown(_BreakdownBase):
    kind: Literal["generated"] = "generated"


class FallbackBreakdown(_BreakdownBase):
    kind: Literal["fallback"] = "fallback"


Breakdown = Annotated[Union[GeneratedBreakdown, FallbackBreakdown], Field(discriminator="kind")]

_breakdown_adapter: TypeAdapter = TypeAdapter(Breakdown)


def load_breakdown(raw: Optional[Dict[str, Any]]) -> Optional[Union[GeneratedBreakdown, FallbackBreakdown]]:
    """Parse a stored breakdown; untagged legacy payloads are read as generated."""
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise MalformedGenerationResult("Stored breakdown is not an object.")
    data = dict(raw)
    data.setdefault("kind", "generated")
    data.setdefault("version", BREAKDOWN_VERSION)
    if data["version"] != BREAKDOWN_VERSION:
        raise MalformedGenerationResult(f"Unsupported breakdown version {data['version']!r}.")
    try:
        return _breakdown_adapter.validate_python(data)
    except SchemaValidationError as exc:
        raise MalformedGenerationResult(f"Stored breakdown failed validation: {exc.error_count()} error(s).") from exc


def dump_breakdown(breakdown: Union[GeneratedBreakdown, FallbackBreakdown]) -> Dict[str, Any]:
    return breakdown.model_dump(mode="json")


def default_breakdown(title: str, category: str, *, today: Optional[date] = None) -> FallbackBreakdown:
    """Deterministic breakdown derived only from the goal's own fields."""
    today = today or date.today()
    return FallbackBreakdown(
        milestones=[
            Milestone(
                title="Initial Planning Complete",
                description=f"Create a detailed plan for achieving {title}",
                target_date=today + timedelta(days=7),
            ),
            Milestone(
                title="First Major Progress",
                description=f"Make significant progress toward {title}",
                target_date=today + timedelta(days=30),
            ),
        ],
        weekly_tasks=[
            f"Plan specific actions for {title}",
            f"Research best practices for {category} goals",
            f"Take first concrete step toward {title}",
        ],
        daily_habits=[
            f"Spend 15 minutes working on {title}",
            "Review progress and adjust plan if needed",
        ],
        estimated_timeframe="2-4 months",
        difficulty="intermediate",
        success_tips=[
            "Break large goals into smaller, manageable tasks",
            "Track your progress regularly",
            "Celebrate small wins along the way",
        ],
    )


def next_open_milestone(breakdown: Union[GeneratedBreakdown, FallbackBreakdown]) -> Optional[Milestone]:
    open_milestones = [m for m in breakdown.milestones if not m.is_completed]
    if not open_milestones:
        return None
    dated = [m for m in open_milestones if m.target_date]
    if dated:
        return min(dated, key=lambda m: m.target_date)
    return open_milestones[0]
