"""
PCOS Portal - Database Configuration
Engine, session factory and session helpers for the API and the portal UI
"""
import logging
from contextlib import contextmanager

from fastapi import Depends
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from pcos_portal.config import settings

logger = logging.getLogger(__name__)


def create_db_engine(database_url: str):
    """Create an engine; SQLite connections may be used from worker threads"""
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(database_url, connect_args=connect_args)


engine = create_db_engine(settings.database_url)

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for ORM models
Base = declarative_base()


def get_session_factory():
    """Dependency returning the session factory used for every read and write"""
    return SessionLocal


def get_db(session_factory=Depends(get_session_factory)):
    """Dependency to get a request-scoped database session"""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope(session_factory=None):
    """Context manager for sessions outside of a request (portal UI, fan-out reads)"""
    db = (session_factory or SessionLocal)()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None):
    """Initialize database tables"""
    from pcos_portal import models  # noqa: F401

    target = bind if bind is not None else engine
    Base.metadata.create_all(bind=target)
    logger.info("Database tables ready (%s)", target.url.render_as_string(hide_password=True))
