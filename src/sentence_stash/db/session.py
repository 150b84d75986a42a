"""Engine, session factory and declarative base for the database backend."""

from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from sentence_stash.core.settings import settings


class Base(DeclarativeBase):
    """Declarative base shared by all ORM models."""


# Model modules register their tables on Base.metadata at import time.
import sentence_stash.models  # noqa: E402,F401

_IS_SQLITE = settings.database_url_sync.startswith("sqlite")

engine = create_engine(
    settings.database_url_sync,
    pool_pre_ping=True,
    echo=settings.sql_debug,
    # Request handlers may run on a different thread than the one that opened the connection.
    connect_args={"check_same_thread": False} if _IS_SQLITE else {},
)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=engine,
)


def uses_sqlite() -> bool:
    """True when the configured database is a SQLite file or memory database."""
    return _IS_SQLITE


def create_tables() -> None:
    """Create any missing tables; PostgreSQL deployments use alembic instead."""
    Base.metadata.create_all(bind=engine)
