"""Schemas for tasks and completion."""
from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class TaskSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    related_goal_id: Optional[UUID]
    title: str
    description: str
    type: str
    priority: str
    status: str
    estimated_duration_min: int
    suggested_time_slot: Optional[str]
    energy_level_required: str
    difficulty_level: int
    success_criteria: Optional[str]
    is_recurring: bool
    recurrence_pattern: Optional[str]
    scheduled_date: Optional[date]
    source: str
    completed_at: Optional[datetime]
    created_at: datetime


class TaskStatsResponse(BaseModel):
    total: int
    completed: int
    pending: int
    in_progress: int
    skipped: int
    completion_rate: float


class TaskCompleteRequest(BaseModel):
    user_id: UUID
    completed_on: Optional[date] = None
    metadata: Optional[Dict[str, Any]] = None


class TaskCompleteResponse(BaseModel):
    task: TaskSummary
    xp_awarded: int
    duplicate: bool
    message: str
    xp_total: int
    level: int
    leveled_up: bool
    current_streak: int
    goal_id: Optional[UUID] = None
    goal_progress: Optional[int] = None
    goal_completed: bool = False
    request_id: str


class TaskStatusRequest(BaseModel):
    user_id: UUID
    status: Literal["pending", "in_progress", "skipped"]


class TaskRescheduleRequest(BaseModel):
    user_id: UUID
    new_date: date
    time_slot: Optional[str] = Field(default=None, max_length=20)
