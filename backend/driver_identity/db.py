from functools import lru_cache
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session, DeclarativeBase

from driver_identity.config import settings
from driver_identity.errors import ConfigurationError


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models using modern DeclarativeBase."""
    pass


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    """
    Builds the engine on first use so that importing models never needs a
    database driver or a configured DATABASE_URL.
    """
    if not settings.database_url:
        raise ConfigurationError("DATABASE_URL is not configured")

    return create_engine(
        settings.database_url,
        pool_pre_ping=True,  # Check connections before handing them out
        pool_recycle=3600,
        pool_size=10,
        max_overflow=20,
        connect_args={
            "connect_timeout": 10,
            "options": "-c statement_timeout=30000"  # ms
        }
    )


@lru_cache(maxsize=1)
def get_sessionmaker() -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=get_engine())


def SessionLocal() -> Session:
    return get_sessionmaker()()


def get_db() -> Generator[Session, None, None]:
    """
    Dependency that provides a database session.

    Yields:
        Session: SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
