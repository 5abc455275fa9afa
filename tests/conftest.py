from __future__ import annotations

from typing import Any, Dict

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from blob.api.deps import get_reasoning_client
from blob.db.base import Base
from blob.db import models  # noqa: F401  ensure models are loaded
from blob.db.deps import get_db
from factories import FakeReasoning


def _sqlite_engine(url: str = "sqlite://"):
    kwargs: Dict[str, Any] = {"connect_args": {"check_same_thread": False}, "future": True}
    if url == "sqlite://":
        kwargs["poolclass"] = StaticPool
    engine = create_engine(url, **kwargs)

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):  # pragma: no cover - sqlite setup
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture()
def session_factory():
    engine = _sqlite_engine()
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    yield TestingSessionLocal
    engine.dispose()


@pytest.fixture()
def file_session_factory(tmp_path):
    """Sessions backed by a file so that two sessions see separate connections."""
    engine = _sqlite_engine(f"sqlite:///{tmp_path / 'blob.db'}")
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    yield TestingSessionLocal
    engine.dispose()


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def fake_reasoning() -> FakeReasoning:
    return FakeReasoning()


@pytest.fixture()
def client(session_factory, fake_reasoning):
    from blob.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_reasoning_client] = lambda: fake_reasoning
    with TestClient(app) as test_client:
        yield test_client, session_factory
    app.dependency_overrides.clear()


