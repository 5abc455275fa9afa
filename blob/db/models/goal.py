"""Goal ORM model."""
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


class Goal(Base):
    __tablename__ = "goals"
    __table_args__ = (
        Index("ix_goals_user_id", "user_id"),
        CheckConstraint("progress >= 0 AND progress <= 100", name="ck_goals_progress_range"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=False, default="")
    category = Column(String(20), nullable=False, default="personal")
    priority = Column(String(10), nullable=False, default="medium")
    target_date = Column(Date, nullable=True)
    is_completed = Column(Boolean, nullable=False, default=False, server_default=sa_text("false"))
    completed_at = Column(DateTime(timezone=True), nullable=True)
    # Survives progress resets so the completion bonus is paid once per goal.
    completion_bonus_awarded_at = Column(DateTime(timezone=True), nullable=True)
    progress = Column(Integer, nullable=False, default=0, server_default=sa_text("0"))
    # Tagged, versioned payload; see blob.services.breakdown.
    breakdown = Column(JSONBCompat, nullable=True)
    source = Column(String(20), nullable=False, default="manual")
    rationale = Column(Text, nullable=True)
    last_progress_update = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
