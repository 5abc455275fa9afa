"""Schemas for user profiles."""
from __future__ import annotations

from datetime import date, datetime, time
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

EnergyPattern = Literal["morning", "afternoon", "evening"]
WorkStyle = Literal["deep_focus", "quick_sprints", "flexible_mix"]
StressResponse = Literal["reduce", "structure", "support"]


class UserProfileFields(BaseModel):
    display_name: Optional[str] = None
    energy_pattern: Optional[EnergyPattern] = None
    work_style: Optional[WorkStyle] = None
    stress_response: Optional[StressResponse] = None
    work_start_time: Optional[time] = None
    work_end_time: Optional[time] = None
    break_duration_min: Optional[int] = Field(default=None, ge=0, le=480)
    preferred_task_duration_min: Optional[int] = Field(default=None, gt=0, le=480)


class UserCreateRequest(UserProfileFields):
    user_id: Optional[UUID] = None


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    display_name: Optional[str]
    energy_pattern: Optional[str]
    work_style: Optional[str]
    stress_response: Optional[str]
    work_start_time: time
    work_end_time: time
    break_duration_min: int
    preferred_task_duration_min: int
    available_hours: float
    xp_total: int
    level: int
    current_streak: int
    longest_streak: int
    last_activity_on: Optional[date]
    created_at: datetime
