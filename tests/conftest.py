"""Pytest fixtures and configuration for tasklane tests."""

import pytest
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from tasklane.database.database import Base, session_scope
from tasklane.database.repository import TaskRepository
from tasklane.database.user_repository import UserRepository
from tasklane.engine.rollover import RolloverCache
from tasklane.services.clock import FixedClock
from tasklane.services.notifications import RecordingNotificationPublisher
from tasklane.services.task_service import TaskService
from tasklane.services.user_service import UserService


# Use in-memory SQLite database for tests
TEST_DATABASE_URL = "sqlite:///:memory:"
TEST_TIMEZONE = "America/Los_Angeles"
TODAY = date(2024, 3, 10)


def local_morning(day: date, hour: int = 9) -> datetime:
    """An instant at `hour` o'clock on `day` in the test user's zone."""
    return datetime(day.year, day.month, day.day, hour, 0, tzinfo=ZoneInfo(TEST_TIMEZONE))


def no_sleep(seconds: float) -> None:
    pass


@pytest.fixture(scope="function")
def engine():
    """In-memory SQLite engine, created fresh for each test.

    Foreign keys are switched on by the connect listener in tasklane.database.database.
    """
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory, test_user_id):
    """A raw session for tests that drive repositories and engines directly."""
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


def make_user(session_factory, email: str, timezone: str = TEST_TIMEZONE) -> int:
    with session_scope(session_factory) as session:
        user = UserRepository(session).create(email=email, timezone=timezone)
        return user.id


@pytest.fixture
def test_user_id(session_factory):
    """Test user (America/Los_Angeles) for multi-user testing."""
    return make_user(session_factory, "test@example.com")


@pytest.fixture
def other_user_id(session_factory):
    return make_user(session_factory, "other@example.com")


@pytest.fixture
def clock():
    """Clock fixed at 2024-03-10 09:00 in the test user's zone."""
    return FixedClock(local_morning(TODAY))


@pytest.fixture
def notifier():
    return RecordingNotificationPublisher()


@pytest.fixture
def rollover_cache():
    return RolloverCache(enabled=True)


@pytest.fixture
def service(session_factory, clock, notifier, rollover_cache):
    return TaskService(
        session_factory=session_factory,
        clock=clock,
        notifier=notifier,
        rollover_cache=rollover_cache,
        sleep=no_sleep,
    )


@pytest.fixture
def user_service(session_factory, clock):
    return UserService(session_factory=session_factory, clock=clock, sleep=no_sleep)


@pytest.fixture
def task_repository(db_session: Session):
    """Create a TaskRepository instance for testing."""
    return TaskRepository(db_session)


@pytest.fixture
def make_task(db_session: Session, test_user_id):
    """Insert a stored task directly (bypassing the service)."""
    repo = TaskRepository(db_session)

    def _make(text, day=TODAY, position=None, completed=False, **kwargs):
        if position is None:
            position = len(repo.list_for_date(kwargs.get("user_id", test_user_id), day)) + 1
        row = repo.create(
            user_id=kwargs.pop("user_id", test_user_id),
            text=text,
            assigned_date=day,
            position=position,
            **kwargs,
        )
        if completed:
            row.is_completed = True
            row.completed_at = local_morning(day).astimezone(timezone.utc)
            db_session.flush()
        return row

    return _make


@pytest.fixture
def test_client(service, user_service, test_user_id):
    """Create a FastAPI test client with overridden services and authentication."""
    from tasklane.api.app import app, get_task_service, get_user_service
    from tasklane.auth.dependencies import get_current_user_id

    app.dependency_overrides[get_task_service] = lambda: service
    app.dependency_overrides[get_user_service] = lambda: user_service
    app.dependency_overrides[get_current_user_id] = lambda: test_user_id

    # No context manager: the app lifespan would initialize the default database.
    client = TestClient(app)
    try:
        yield client
    finally:
        # Clean up dependency overrides
        app.dependency_overrides.clear()
