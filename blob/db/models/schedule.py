"""Schedule ORM model."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Boolean, Column, Date, DateTime, Float, ForeignKey, Text, UniqueConstraint, func, text as sa_text
from sqlalchemy.dialects.postgresql import UUID

from blob.db.base import Base
from blob.db.types import JSONBCompat


class Schedule(Base):
    __tablename__ = "schedules"
    __table_args__ = (UniqueConstraint("user_id", "schedule_date", name="uq_schedules_user_date"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    schedule_date = Column(Date, nullable=False)
    blocks = Column(JSONBCompat, nullable=False, default=list)
    total_scheduled_hours = Column(Float, nullable=False, default=0.0)
    suggestions = Column(JSONBCompat, nullable=False, default=list)
    optimization_notes = Column(Text, nullable=True)
    is_fallback = Column(Boolean, nullable=False, default=False, server_default=sa_text("false"))
    generated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
