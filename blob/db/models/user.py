"""User ORM model."""
from __future__ import annotations

from datetime import time
from uuid import uuid4

from sqlalchemy import Column, Date, DateTime, Integer, String, Text, func, text as sa_text
from sqlalchemy.dialects.postgresql import UUID

from blob.db.base import Base
from blob.db.types import ClockTime


class User(Base):
    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    display_name = Column(Text, nullable=True)
    energy_pattern = Column(String(20), nullable=True)
    work_style = Column(String(20), nullable=True)
    stress_response = Column(String(20), nullable=True)
    work_start_time = Column(ClockTime, nullable=False, default=time(9, 0), server_default="09:00")
    work_end_time = Column(ClockTime, nullable=False, default=time(17, 0), server_default="17:00")
    break_duration_min = Column(Integer, nullable=False, default=60, server_default=sa_text("60"))
    preferred_task_duration_min = Column(Integer, nullable=False, default=30, server_default=sa_text("30"))
    xp_total = Column(Integer, nullable=False, default=0, server_default=sa_text("0"))
    level = Column(Integer, nullable=False, default=1, server_default=sa_text("1"))
    current_streak = Column(Integer, nullable=False, default=0, server_default=sa_text("0"))
    longest_streak = Column(Integer, nullable=False, default=0, server_default=sa_text("0"))
    last_activity_on = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
