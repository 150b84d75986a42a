# src/sentence_stash/db/__init__.py
"""SQLAlchemy plumbing for the database storage backend."""

from .session import Base, SessionLocal, create_tables, engine, uses_sqlite

__all__ = ["Base", "SessionLocal", "create_tables", "engine", "uses_sqlite"]
