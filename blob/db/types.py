"""Database column type helpers."""
from __future__ import annotations

from datetime import time

from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.types import JSON, String, TypeDecorator


class JSONBCompat(TypeDecorator):
    """JSONB that falls back to native JSON on dialects like SQLite (for tests)."""

    impl = JSONB
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":  # pragma: no cover - dialect specific
            return dialect.type_descriptor(JSON())
        return dialect.type_descriptor(JSONB())


class ClockTime(TypeDecorator):
    """Wall-clock time stored as an ``HH:MM`` string, read back as ``datetime.time``."""

    impl = String(5)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, time):
            return value.strftime("%H:%M")
        hours, minutes = str(value).split(":")[:2]
        return f"{int(hours):02d}:{int(minutes):02d}"

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        hours, minutes = value.split(":")[:2]
        return time(int(hours), int(minutes))
