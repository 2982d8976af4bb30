"""Pytest fixtures."""

import itertools
import json
import random

import pytest
from apscheduler.schedulers.background import BackgroundScheduler
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from vicinity.core.config import settings
from vicinity.core.errors import NotificationError
from vicinity.core.security import create_access_token
from vicinity.core.ws_manager import SessionHandle
from vicinity.db.base import Base
from vicinity.db.session import get_db
from vicinity.main import app
from vicinity.models import User, UserRelation  # noqa: F401 - register for create_all
from vicinity.services.engine import build_engine
from vicinity.services.notifier import OfflineNotifier

TEST_DATABASE_URL = "sqlite:///./test.db"

db_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingNotifier(OfflineNotifier):
    """Accepts every message unless the recipient is in ``failing``."""

    def __init__(self) -> None:
        self.sent = []
        self.failing = set()

    def send(self, message):
        if message.recipient_user_id in self.failing or message.phone in self.failing:
            raise NotificationError("gateway rejected message")
        self.sent.append(message)

    def to(self, user_id):
        return [m for m in self.sent if m.recipient_user_id == user_id]


class RecordingSession(SessionHandle):
    """In-memory real-time session."""

    def __init__(self) -> None:
        self.events = []

    def push(self, payload: str) -> None:
        self.events.append(json.loads(payload))

    def of(self, event: str) -> list:
        return [e["data"] for e in self.events if e["event"] == event]


@pytest.fixture
def setup_db():
    """Fresh tables for every test."""
    Base.metadata.create_all(bind=db_engine)
    yield
    Base.metadata.drop_all(bind=db_engine)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def build(setup_db, clock, notifier):
    """Factory for engines wired to the test database.

    The scheduler is never started and offline sends run inline unless
    ``notification_workers`` is overridden.
    """

    def _build(**overrides):
        config = settings.model_copy(update={"notification_workers": 0, **overrides})
        return build_engine(
            TestingSessionLocal,
            config=config,
            scheduler=BackgroundScheduler(timezone="UTC"),
            notifier=notifier,
            clock=clock,
            rng=random.Random(7),
        )

    return _build


@pytest.fixture
def engine(build):
    return build()


@pytest.fixture
def client(engine, monkeypatch):
    """Test client with overridden DB and the test engine."""
    monkeypatch.setattr(settings, "scheduler_enabled", False)
    app.dependency_overrides[get_db] = override_get_db
    app.state.engine = engine
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
    app.state.engine = None


@pytest.fixture
def make_user(setup_db):
    """Create a user row. Returns (user_id, auth headers)."""
    counter = itertools.count(1)

    def _make(username=None, full_name=None, role="user"):
        n = next(counter)
        with TestingSessionLocal() as db:
            user = User(
                username=username or f"user{n}",
                full_name=full_name if full_name is not None else f"User {n}",
                role=role,
            )
            db.add(user)
            db.commit()
            db.refresh(user)
            user_id = user.id
        token = create_access_token(user_id)
        return user_id, {"Authorization": f"Bearer {token}"}

    return _make


@pytest.fixture
def relate(setup_db):
    """Insert a social graph edge (BLOCK / FOLLOW / CLOSE_FRIEND)."""

    def _relate(user_id, other_user_id, kind):
        with TestingSessionLocal() as db:
            db.add(UserRelation(user_id=user_id, other_user_id=other_user_id, kind=kind))
            db.commit()

    return _relate


@pytest.fixture
def session_for(engine):
    """Register a recording real-time session for a user."""

    def _session(user_id, target=None):
        s = RecordingSession()
        (target or engine).connections.register(user_id, s)
        return s

    return _session


@pytest.fixture
def db(setup_db):
    """A session on the test database."""
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
