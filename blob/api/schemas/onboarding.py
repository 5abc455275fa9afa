"""Schemas for onboarding."""
from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from blob.api.schemas.goal import GoalResponse
from blob.api.schemas.schedule import InitializationResponse
from blob.services.insight_extractor import BasicProfile


class OnboardingRequest(BaseModel):
    user_id: UUID
    text: str = Field(..., max_length=20000)
    profile: Optional[BasicProfile] = None


class OnboardingRetryRequest(BaseModel):
    user_id: UUID


class OnboardingResponse(BaseModel):
    status: str
    message: Optional[str] = None
    insights_id: Optional[UUID] = None
    goals: List[GoalResponse] = Field(default_factory=list)
    initialization: Optional[InitializationResponse] = None
    request_id: str
