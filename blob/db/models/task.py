"""Task ORM model."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    text as sa_text,
)
from sqlalchemy.dialects.postgresql import UUID

from blob.db.base import Base
from blob.db.types import JSONBCompat


class Task(Base):
    __tablename__ = "tasks"
    __table_args__ = (
        Index("ix_tasks_user_id", "user_id"),
        Index("ix_tasks_related_goal_id", "related_goal_id"),
        Index("ix_tasks_user_scheduled_date", "user_id", "scheduled_date"),
        CheckConstraint("estimated_duration_min > 0", name="ck_tasks_duration_positive"),
        CheckConstraint("difficulty_level BETWEEN 1 AND 5", name="ck_tasks_difficulty_range"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    related_goal_id = Column(
        UUID(as_uuid=True),
        ForeignKey("goals.id", ondelete="SET NULL"),
        nullable=True,
    )
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=False, default="")
    type = Column(String(20), nullable=False, default="one_time")
    priority = Column(String(10), nullable=False, default="medium")
    status = Column(String(20), nullable=False, default="pending", server_default=sa_text("'pending'"))
    estimated_duration_min = Column(Integer, nullable=False, default=30)
    suggested_time_slot = Column(String(20), nullable=True)
    energy_level_required = Column(String(10), nullable=False, default="medium")
    difficulty_level = Column(Integer, nullable=False, default=2)
    success_criteria = Column(Text, nullable=True)
    context_requirements = Column(JSONBCompat, nullable=True)
    is_recurring = Column(Boolean, nullable=False, default=False, server_default=sa_text("false"))
    recurrence_pattern = Column(String(20), nullable=True)
    scheduled_date = Column(Date, nullable=True)
    source = Column(String(20), nullable=False, default="manual")
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
