"""
Database session management (SQLAlchemy)
"""
from functools import lru_cache

import psycopg
from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker, Session

from golfapp.config import get_settings


class Base(DeclarativeBase):
    pass


@lru_cache
def get_session_factory() -> sessionmaker:
    """Engine and session factory, built once from Settings.DATABASE_URL"""
    engine = create_engine(get_settings().get_sqlalchemy_url(), pool_pre_ping=True)
    return sessionmaker(bind=engine, autoflush=False)


def get_db() -> Session:
    """FastAPI dependency: one session per request, closed afterwards"""
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()


def check_db_connection() -> None:
    """Readiness check; raises psycopg.OperationalError when PostgreSQL is unreachable"""
    with psycopg.connect(get_settings().DATABASE_URL, connect_timeout=3) as conn:
        conn.execute("SELECT 1").fetchone()
