import os

# Keep tests off the real database file and skip startup seeding.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SEED_DEFAULT_CATEGORIES", "false")

from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel

from taskmanager.clock import get_clock
from taskmanager.database import build_engine, get_db
from taskmanager.main import app
from taskmanager.services.category_store import CategoryStore
from taskmanager.services.task_store import TaskStore

from .fakes import FrozenClock

NOW = datetime(2025, 6, 1, 12, 0, 0)


@pytest.fixture()
def engine():
    engine = build_engine("sqlite://", poolclass=StaticPool)
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock(NOW)


@pytest.fixture()
def category_store(session, clock) -> CategoryStore:
    return CategoryStore(session, clock)


@pytest.fixture()
def task_store(session, category_store, clock) -> TaskStore:
    return TaskStore(session, categories=category_store, clock=clock)


@pytest.fixture()
def work(category_store):
    return category_store.create({"name": "Work", "color": "#3b82f6"})


@pytest.fixture()
def client(engine, clock):
    """API client wired to the in-memory database and the frozen clock."""

    def override_get_db():
        db = Session(engine)
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    yield TestClient(app)
    app.dependency_overrides.clear()
