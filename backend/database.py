"""
Database engine and session management.

Provides the SQLAlchemy engine, the session factory, the declarative base
shared by all models, and the FastAPI dependencies that hand sessions to
route handlers.
"""

import logging
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from config import DATABASE_URL

logger = logging.getLogger(__name__)

# SQLite connections are created in one thread and used from FastAPI's pool
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=connect_args, pool_pre_ping=True)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """Yield a database session for the duration of one request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory() -> sessionmaker:
    """
    Return the session factory.

    Used by handlers that open several sessions at once (the analytics
    engine runs one query per session on a thread pool).
    """
    return SessionLocal
