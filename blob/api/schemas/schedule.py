"""Schemas for daily schedules and plan initialization."""
from __future__ import annotations

from datetime import date, datetime, time
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ScheduleBlockPayload(BaseModel):
    task_id: Optional[str] = None
    title: str
    kind: str
    start_time: str
    end_time: str
    is_flexible: bool
    priority: Optional[str] = None
    energy_level: Optional[str] = None
    reason: Optional[str] = None


class ScheduleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    schedule_date: date
    blocks: List[ScheduleBlockPayload]
    total_scheduled_hours: float
    suggestions: List[str]
    optimization_notes: Optional[str]
    is_fallback: bool
    generated_at: datetime


class CommitmentPayload(BaseModel):
    title: str = Field(..., min_length=1)
    start: time
    end: time

    @model_validator(mode="after")
    def _ordered(self) -> "CommitmentPayload":
        if self.end <= self.start:
            raise ValueError("Commitment must end after it starts")
        return self


class ScheduleRegenerateRequest(BaseModel):
    user_id: UUID
    commitments: List[CommitmentPayload] = Field(default_factory=list)


class InitializeRequest(BaseModel):
    user_id: UUID
    days: Optional[int] = Field(default=None, ge=1, le=7)
    force: bool = False
    commitments: List[CommitmentPayload] = Field(default_factory=list)


class GoalFailurePayload(BaseModel):
    goal_id: str
    title: str
    error: str


class InitializationResponse(BaseModel):
    status: str
    goals_active: int
    tasks_generated: int
    fallback_goals: int
    schedule_ids: List[str]
    schedule_dates: List[date]
    failures: List[GoalFailurePayload]
    next_actions: List[str]
