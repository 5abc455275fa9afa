"""ORM models exposed for metadata discovery."""
from blob.db.models.activity_log import ActivityLog
from blob.db.models.goal import Goal
from blob.db.models.onboarding_insights import OnboardingInsights
from blob.db.models.schedule import Schedule
from blob.db.models.task import Task
from blob.db.models.user import User

__all__ = [
    "ActivityLog",
    "Goal",
    "OnboardingInsights",
    "Schedule",
    "Task",
    "User",
]
