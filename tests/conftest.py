"""
Pytest fixtures for testing
"""
from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from golfapp.infrastructure.db.session import Base
from golfapp.infrastructure.db.models import User, SubscriptionModel


@pytest.fixture
def db_engine():
    """In-memory SQLite engine shared across threads (TestClient runs sync routes in a threadpool)."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine) -> Session:
    """Create database session for tests"""
    SessionLocal = sessionmaker(bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def make_user(db_session):
    """Factory: user row with optional billing fields."""
    def _make(email="golfer@example.com", **fields):
        user = User(email=email, **fields)
        db_session.add(user)
        db_session.flush()
        return user
    return _make


@pytest.fixture
def make_subscription(db_session):
    """Factory: active subscription for a user."""
    def _make(user, plan="yearly", start=datetime(2025, 1, 15), **fields):
        fields.setdefault("status", "active")
        sub = SubscriptionModel(user_id=user.id, plan=plan, start_date=start, **fields)
        db_session.add(sub)
        db_session.flush()
        return sub
    return _make
