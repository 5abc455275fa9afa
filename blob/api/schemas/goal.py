"""Schemas for goals."""
from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

GoalCategory = Literal["fitness", "career", "learning", "personal", "finance", "relationships", "health"]
Priority = Literal["high", "medium", "low"]


class GoalCreateRequest(BaseModel):
    user_id: UUID
    title: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    category: GoalCategory = "personal"
    priority: Priority = "medium"
    target_date: Optional[date] = None


class GoalUpdateRequest(BaseModel):
    user_id: UUID
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    category: Optional[GoalCategory] = None
    priority: Optional[Priority] = None
    target_date: Optional[date] = None


class GoalActionRequest(BaseModel):
    user_id: UUID


class GoalResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    description: str
    category: str
    priority: str
    target_date: Optional[date]
    progress: int
    is_completed: bool
    completed_at: Optional[datetime]
    source: str
    rationale: Optional[str]
    breakdown: Optional[Dict[str, Any]]
    created_at: datetime
    updated_at: datetime


class GoalsOverviewResponse(BaseModel):
    total: int
    completed: int
    active: int
    average_progress: float
