"""Fakes and row builders shared by the test suite."""
from __future__ import annotations

from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from blob.core.errors import ReasoningUnavailable
from blob.db.models.goal import Goal
from blob.db.models.task import Task
from blob.db.models.user import User
from blob.services.retry_policy import RetryPolicy

FAST_RETRY = RetryPolicy(max_attempts=1, backoff_min_seconds=0, backoff_max_seconds=0)


class FakeReasoning:
    """Stand-in for ReasoningClient that replays scripted payloads keyed by call name.

    A value may be a payload, an exception instance to raise, or a callable
    taking the messages. Unscripted calls raise ReasoningUnavailable.
    """

    def __init__(self, responses: Optional[Dict[str, Any]] = None, *, available: bool = True) -> None:
        self.responses = dict(responses or {})
        self.available = available
        self.retry_policy = FAST_RETRY
        self.calls: List[str] = []

    def is_available(self) -> bool:
        return self.available

    async def complete_json(self, messages, *, tool=None, temperature: float = 0.4, name: str = "reasoning.complete"):
        self.calls.append(name)
        if not self.available:
            raise ReasoningUnavailable("Reasoning service is not configured.")
        if name not in self.responses:
            raise ReasoningUnavailable(f"No scripted response for {name}.")
        response = self.responses[name]
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            return response(messages)
        return response


def seed_user(session, **fields) -> UUID:
    user = User(id=fields.pop("id", uuid4()), **fields)
    session.add(user)
    session.commit()
    return user.id


def seed_goal(session, user_id: UUID, **fields) -> Goal:
    values = {"title": "Run a 10k", "description": "Build up to a 10k race", "category": "fitness"}
    values.update(fields)
    goal = Goal(user_id=user_id, **values)
    session.add(goal)
    session.commit()
    session.refresh(goal)
    return goal


def seed_task(session, user_id: UUID, **fields) -> Task:
    values = {
        "title": "Easy 3k jog",
        "type": "one_time",
        "priority": "medium",
        "estimated_duration_min": 30,
        "difficulty_level": 2,
        "source": "generated",
    }
    values.update(fields)
    task = Task(user_id=user_id, **values)
    session.add(task)
    session.commit()
    session.refresh(task)
    return task


def extraction_payload(goal_count: int = 2) -> Dict[str, Any]:
    goals = [
        {
            "title": "Run a half marathon",
            "description": "Train consistently to finish a half marathon",
            "category": "fitness",
            "priority": "high",
            "target_date": "6 months",
            "rationale": "Wants more energy",
            "seed": {"milestones": ["Run 10k without stopping"], "suggested_tasks": ["Plan weekly long runs"]},
        },
        {
            "title": "Learn Spanish",
            "description": "Hold a basic conversation in Spanish",
            "category": "education",
            "priority": "medium",
            "target_date": None,
        },
        {
            "title": "Save an emergency fund",
            "description": "Put aside three months of expenses",
            "category": "money",
            "priority": "low",
        },
    ]
    return {
        "insights": {
            "primary_goals": ["fitness", "languages"],
            "challenges": ["evening fatigue"],
            "lifestyle": "Office worker with a long commute",
            "motivation_type": "progress",
            "work_preferences": {"preferred_hours": "morning", "energy_peaks": ["09:00"], "focus_style": None},
        },
        "summary": {
            "key_points": ["Morning person"],
            "user_context": "Busy office worker who trains best before work.",
            "recommendations": ["Front-load hard tasks"],
        },
        "goals": goals[:goal_count],
    }

