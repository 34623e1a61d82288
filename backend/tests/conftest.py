import os
import tempfile

# Point the app at a throwaway database before db.py builds the engine
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(tempfile.mkdtemp(), 'timer_test.db')}"
os.environ["AUTH_SECRET"] = "test_secret"
os.environ.pop("AUTH_AUDIENCE", None)
os.environ.pop("AUTH_ISSUER", None)

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, delete

from app import app, get_reference_date
from auth import issue_token
from db import create_db_and_tables, engine, get_session
from models import DailyTimeEntry

TEST_DATE = "2024-01-01"


@pytest.fixture(scope="function")
def test_session():
    """Create a test database session."""
    create_db_and_tables()
    with Session(engine) as session:
        yield session
        # Clean up all test data after test
        session.rollback()
        session.exec(delete(DailyTimeEntry))
        session.commit()


@pytest.fixture(scope="function")
def client(test_session):
    """Create a test client pinned to TEST_DATE."""

    def get_test_session():
        yield test_session

    app.dependency_overrides[get_session] = get_test_session
    app.dependency_overrides[get_reference_date] = lambda: TEST_DATE
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {issue_token('user_123')}"}
