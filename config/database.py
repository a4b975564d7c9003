"""
Storefront API - Database Configuration
========================================
Declarative Base, the Database gateway (engine + session factory),
the get_db request dependency and the atomic() transaction scope.

The Database object is created at process start (see main.lifespan), stored on
app.state and disposed at shutdown. All models across all modules inherit
from this Base.
"""

from contextlib import contextmanager
from typing import Iterator

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker, declarative_base

Base = declarative_base()


class Database:
    """Owns the engine and hands out sessions. One instance per process."""

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        if url.startswith("sqlite"):
            self.engine = create_engine(
                url,
                echo=echo,
                connect_args={"check_same_thread": False},
            )
            # SQLite ignores foreign keys unless asked per connection
            event.listen(self.engine, "connect", _sqlite_enable_foreign_keys)
        else:
            self.engine = create_engine(
                url,
                echo=echo,
                pool_size=20,
                max_overflow=40,
                pool_timeout=30,
                pool_recycle=1800,  # Refresh connections every 30 minutes
                pool_pre_ping=True,
            )
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def session(self) -> Session:
        return self.SessionLocal()

    def create_all(self):
        """Create any missing tables (safe for existing tables)."""
        Base.metadata.create_all(bind=self.engine)

    def drop_all(self):
        Base.metadata.drop_all(bind=self.engine)

    def dispose(self):
        self.engine.dispose()


def _sqlite_enable_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def get_db(request: Request) -> Iterator[Session]:
    """FastAPI dependency: yields a database session, auto-closes after request."""
    database: Database = request.app.state.database
    db = database.session()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """
    All-or-nothing scope for multi-step mutations.
    Commits when the block exits cleanly, rolls back on any exception.
    Helpers called inside the block must only flush, never commit.
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
