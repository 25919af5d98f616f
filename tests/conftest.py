"""Shared pytest fixtures for all test suites."""

import uuid
from collections.abc import Callable, Generator
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from backend.app.api.deps import get_services
from backend.app.collaboration.container import (
    CollaborationServices,
    Repositories,
    build_services,
)
from backend.app.config import Settings
from backend.app.db.context import RequestContext
from backend.app.db.engine import create_session_factory
from backend.app.db.inmemory import InMemoryMembershipResolver
from backend.app.db.models import Base


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2025, 6, 10, 9, 0, 0)

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


@pytest.fixture
def clock() -> FrozenClock:
    """Frozen clock starting 2025-06-10 09:00 UTC."""
    return FrozenClock()


@pytest.fixture
def settings() -> Settings:
    """Default settings, isolated from the environment cache."""
    return Settings(database_url="sqlite://")


@pytest.fixture
def org_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def make_ctx(org_id: uuid.UUID) -> Callable[..., RequestContext]:
    """Factory for request contexts; defaults to the shared org and a fresh user."""

    def _make(user_id: uuid.UUID | None = None, org: uuid.UUID | None = None) -> RequestContext:
        return RequestContext(org_id=org or org_id, user_id=user_id or uuid.uuid4())

    return _make


@pytest.fixture
def membership() -> InMemoryMembershipResolver:
    return InMemoryMembershipResolver()


@pytest.fixture
def repos() -> Repositories:
    return Repositories.in_memory()


@pytest.fixture
def services(
    repos: Repositories,
    membership: InMemoryMembershipResolver,
    clock: FrozenClock,
    settings: Settings,
) -> CollaborationServices:
    """All five components over in-memory repositories."""
    return build_services(repos, membership=membership, clock=clock, settings=settings)


@pytest.fixture
def sqlite_engine() -> Generator[Engine, None, None]:
    """In-memory SQLite engine with the collaboration schema."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db_session(sqlite_engine: Engine) -> Generator[Session, None, None]:
    """SQLAlchemy session on the SQLite engine."""
    with create_session_factory(sqlite_engine)() as session:
        yield session


@pytest.fixture
def sql_services(
    db_session: Session, clock: FrozenClock, settings: Settings
) -> CollaborationServices:
    """All five components over SQL repositories on SQLite."""
    return build_services(Repositories.sql(db_session), clock=clock, settings=settings)


@pytest.fixture
def client(services: CollaborationServices) -> Generator[TestClient, None, None]:
    """API client whose routes use the in-memory services."""
    from backend.app.main import app

    app.dependency_overrides[get_services] = lambda: services
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_services, None)
