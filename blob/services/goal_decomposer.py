"""Break a goal into milestones, weekly tasks and daily habits."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional, Union

from pydantic import ValidationError as SchemaValidationError

from blob.core.errors import MalformedGenerationResult, ReasoningUnavailable
from blob.observability.tracing import trace
from blob.services.breakdown import (
    FallbackBreakdown,
    GeneratedBreakdown,
    Milestone,
    default_breakdown,
)
from blob.services.insight_extractor import BreakdownSeed
from blob.services.reasoning import expect_object
from blob.services.retry_policy import RetryPolicy

logger = logging.getLogger(__name__)

BreakdownResult = Union[GeneratedBreakdown, FallbackBreakdown]


@dataclass(frozen=True)
class GoalSpec:
    """Snapshot of the goal fields that drive decomposition and task generation."""

    title: str
    description: str
    category: str
    priority: str
    target_date: Optional[date] = None

    @classmethod
    def from_goal(cls, goal) -> "GoalSpec":
        return cls(
            title=goal.title,
            description=goal.description or "",
            category=goal.category,
            priority=goal.priority,
            target_date=goal.target_date,
        )


_DECOMPOSE_SYSTEM_PROMPT = (
    "You are an expert goal-setting coach. Break the user's goal into an actionable plan and return strictly "
    "valid JSON: {milestones: [{title, description, target_date (YYYY-MM-DD)}], weekly_tasks: [string], "
    "daily_habits: [string], estimated_timeframe: string, difficulty: beginner|intermediate|advanced, "
    "success_tips: [string]}. Use 3-5 milestones in chronological order, 3-5 weekly tasks and 2-3 daily habits. "
    "Keep every item specific and achievable."
)


class GoalDecomposer:
    """Produce a breakdown for a goal, falling back to a deterministic one.

    A confirmed goal must never be left without structure, so reasoning
    failures (including timeouts and malformed answers) resolve to either the
    extraction seed or ``default_breakdown``.
    """

    def __init__(self, reasoning, *, retry_policy: Optional[RetryPolicy] = None) -> None:
        self.reasoning = reasoning
        self.retry_policy = retry_policy or RetryPolicy()

    async def decompose(
        self,
        goal: GoalSpec,
        user_context: str = "",
        *,
        seed: Optional[BreakdownSeed] = None,
        today: Optional[date] = None,
    ) -> BreakdownResult:
        today = today or date.today()

        async def generate() -> BreakdownResult:
            return await self._generate(goal, user_context, seed, today)

        def fallback() -> BreakdownResult:
            if seed and (seed.milestones or seed.suggested_tasks):
                return breakdown_from_seed(goal, seed, today=today)
            return default_breakdown(goal.title, goal.category, today=today)

        with trace("goal.decompose", metadata={"category": goal.category, "priority": goal.priority}) as span:
            breakdown, used_fallback = await self.retry_policy.run_with_fallback(
                generate, fallback, label="goal.decompose"
            )
            if span:
                span.update(metadata={"fallback_used": used_fallback, "kind": breakdown.kind})
        return breakdown

    async def _generate(
        self,
        goal: GoalSpec,
        user_context: str,
        seed: Optional[BreakdownSeed],
        today: date,
    ) -> GeneratedBreakdown:
        if not self.reasoning.is_available():
            raise ReasoningUnavailable("Reasoning service is not configured.")
        goal_block = {
            "title": goal.title,
            "description": goal.description,
            "category": goal.category,
            "priority": goal.priority,
            "target_date": goal.target_date.isoformat() if goal.target_date else None,
        }
        prompt = f"Today is {today.isoformat()}.\nGoal:\n{json.dumps(goal_block, indent=2)}\n"
        if user_context:
            prompt += f"\nAbout the user:\n{user_context}\n"
        if seed:
            prompt += f"\nIdeas captured during onboarding:\n{seed.model_dump_json()}\n"

        payload = expect_object(
            await self.reasoning.complete_json(
                [
                    {"role": "system", "content": _DECOMPOSE_SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                name="goal.decompose.generate",
            ),
            "goal breakdown",
        )
        payload.pop("kind", None)
        payload.pop("version", None)
        try:
            breakdown = GeneratedBreakdown.model_validate(payload)
        except SchemaValidationError as exc:
            raise MalformedGenerationResult("Breakdown payload did not match the expected shape.") from exc

        if not breakdown.milestones and not breakdown.weekly_tasks and not breakdown.daily_habits:
            raise MalformedGenerationResult("Breakdown payload contained no actionable items.")
        return _fill_missing_milestone_dates(breakdown, goal, today)


def breakdown_from_seed(goal: GoalSpec, seed: BreakdownSeed, *, today: Optional[date] = None) -> GeneratedBreakdown:
    """Build a breakdown from the milestone/task ideas captured at extraction time."""
    today = today or date.today()
    base = default_breakdown(goal.title, goal.category, today=today)
    milestones = [Milestone(title=title) for title in seed.milestones if title.strip()]
    breakdown = GeneratedBreakdown(
        milestones=milestones or base.milestones,
        weekly_tasks=seed.suggested_tasks or base.weekly_tasks,
        daily_habits=base.daily_habits,
        estimated_timeframe=seed.timeframe or base.estimated_timeframe,
        difficulty=base.difficulty,
        success_tips=base.success_tips,
    )
    return _fill_missing_milestone_dates(breakdown, goal, today)


def _fill_missing_milestone_dates(breakdown: GeneratedBreakdown, goal: GoalSpec, today: date) -> GeneratedBreakdown:
    """Spread undated milestones evenly between today and the goal's target date."""
    if not breakdown.milestones:
        return breakdown
    horizon = goal.target_date if goal.target_date and goal.target_date > today else today + timedelta(days=90)
    span_days = max((horizon - today).days, len(breakdown.milestones))
    step = span_days // len(breakdown.milestones)
    for index, milestone in enumerate(breakdown.milestones, start=1):
        if milestone.target_date is None:
            milestone.target_date = today + timedelta(days=step * index)
    return breakdown
