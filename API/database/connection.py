"""
Database connection and session management.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from core.config import settings
from .base import Base


class DatabaseConnection:
    """Engine + session factory for one database URL."""

    def __init__(self, url: str = None, **engine_kwargs):
        self.url = url or settings.database_url
        if self.url.startswith("sqlite"):
            engine_kwargs.setdefault("connect_args", {"check_same_thread": False})
        else:
            engine_kwargs.setdefault("pool_pre_ping", True)
        self.engine = create_engine(self.url, echo=False, **engine_kwargs)
        self.SessionLocal = sessionmaker(
            bind=self.engine,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Session that commits on success and rolls back on error."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def get_session_direct(self) -> Session:
        """Plain session. Caller must commit/rollback and close."""
        return self.SessionLocal()

    def create_tables(self):
        Base.metadata.create_all(bind=self.engine)

    def drop_tables(self):
        Base.metadata.drop_all(bind=self.engine)


db = DatabaseConnection()


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency."""
    session = db.get_session_direct()
    try:
        yield session
    finally:
        session.close()


def init_db():
    """Create all tables that don't exist yet."""
    from . import models  # noqa: F401  (register models)
    db.create_tables()


def reset_db():
    """Drop and recreate all tables. Development only."""
    from . import models  # noqa: F401
    db.drop_tables()
    db.create_tables()
