"""
Pytest configuration and fixtures

Tests run against an in-memory SQLite database. Every test gets freshly
created tables that are dropped afterwards, so nothing leaks between tests.
The verification model is never called: the app's verifier dependency is
overridden with a canned oracle.
"""
import os
import sys
import tempfile

# Settings are read at import time, so these must be set before any app import.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["LOG_FORMAT"] = "text"
os.environ["ANTHROPIC_API_KEY"] = ""
os.environ.setdefault("UPLOADS_DIR", tempfile.mkdtemp(prefix="habit-uploads-"))

# Add the parent directory to the path so we can import from services
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import pytest
from fastapi.testclient import TestClient

from core.database import Base, SessionLocal, engine, get_db
from main import app
from models import Habit, User
from services.verdict_interpreter import HabitVerifier, get_verifier
from fixtures.evidence_fixtures import CannedOracle


@pytest.fixture(autouse=True)
def _schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    """Session shared by fixtures and the app (via dependency override)."""
    session = SessionLocal()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def oracle():
    """Default judge: verifies everything with high confidence."""
    return CannedOracle()


@pytest.fixture
def client(db_session, oracle):
    def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_verifier] = lambda: HabitVerifier(oracle)
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def test_user(db_session):
    user = User(name="Test User", email="test.user@example.com")
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def test_habit(db_session, test_user):
    habit = Habit(
        user_id=test_user.id,
        name="Morning run",
        description="At least 3km before work",
        proof_instructions="Screenshot of the run in a tracking app",
    )
    db_session.add(habit)
    db_session.commit()
    db_session.refresh(habit)
    return habit


@pytest.fixture
def uploads_path():
    from services.evidence_store import uploads_dir

    return uploads_dir()
