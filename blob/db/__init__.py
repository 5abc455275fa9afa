"""Database layer: declarative base and ORM models."""

from blob.db.base import Base
from blob.db.models import ActivityLog, Goal, OnboardingInsights, Schedule, Task, User

__all__ = ["ActivityLog", "Base", "Goal", "OnboardingInsights", "Schedule", "Task", "User"]
