"""Onboarding insights ORM model."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, func, text as sa_text
from sqlalchemy.dialects.postgresql import UUID

from blob.db.base import Base
from blob.db.types import JSONBCompat


class OnboardingInsights(Base):
    __tablename__ = "onboarding_insights"
    __table_args__ = (UniqueConstraint("user_id", name="uq_onboarding_insights_user_id"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    conversation_text = Column(Text, nullable=False)
    basic_profile = Column(JSONBCompat, nullable=False, default=dict)
    status = Column(String(20), nullable=False, default="pending", server_default=sa_text("'pending'"))
    insights = Column(JSONBCompat, nullable=True)
    summary = Column(JSONBCompat, nullable=True)
    attempts = Column(Integer, nullable=False, default=0, server_default=sa_text("0"))
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    processed_at = Column(DateTime(timezone=True), nullable=True)
