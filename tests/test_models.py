from blob.db.base import Base
from blob.db import models  # noqa: F401  ensure models are loaded


def test_metadata_contains_core_tables() -> None:
    table_names = set(Base.metadata.tables.keys())
    expected = {
        "users",
        "onboarding_insights",
        "goals",
        "tasks",
        "schedules",
        "activity_log",
    }

    assert expected.issubset(table_names)


def test_schedule_is_unique_per_user_and_day() -> None:
    constraints = {constraint.name for constraint in Base.metadata.tables["schedules"].constraints}

    assert "uq_schedules_user_date" in constraints
