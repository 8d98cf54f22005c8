"""Shared pytest fixtures for member-gateway test suites."""

from collections.abc import Generator
from pathlib import Path
import sys

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

JWT_SECRET = "test-secret-that-is-at-least-32-characters"


@pytest.fixture
def db_session() -> Generator[Session, None, None]:
    """Provide a session bound to a fresh in-memory SQLite schema."""
    from member_gateway.db.models import Base

    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine, expire_on_commit=False)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Provide an API test client wired to the in-memory database."""
    from member_gateway.core.config import AuthSettings
    from member_gateway.core.config import get_auth_settings
    from member_gateway.db.base import get_db_session
    from member_gateway.main import app

    app.dependency_overrides[get_db_session] = lambda: db_session
    app.dependency_overrides[get_auth_settings] = lambda: AuthSettings(
        jwt_secret=JWT_SECRET,
        access_token_expire_seconds=600,
    )
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()
