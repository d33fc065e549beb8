"""
Database Session
Provides database session factory for the ledger store and Celery tasks.
"""

import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base

logger = logging.getLogger(__name__)


def create_session_factory(database_url: str, create_tables: bool = True) -> sessionmaker:
    """
    Create engine and session factory.

    Args:
        database_url: SQLAlchemy database URL
        create_tables: Whether to create missing tables

    Returns:
        Session factory bound to the engine
    """
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # Share one in-memory database across sessions
            kwargs["poolclass"] = StaticPool
        engine = create_engine(database_url, **kwargs)
    else:
        engine = create_engine(
            database_url,
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,  # Verify connections before using
        )

    if create_tables:
        Base.metadata.create_all(engine)

    logger.info(f"Database engine created: {database_url.split('@')[-1]}")
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)
