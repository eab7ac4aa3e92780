"""Database setup and session management."""

from botmakers.db.session import Base, create_engine, create_session_factory, get_db, init_db

__all__ = ["Base", "create_engine", "create_session_factory", "get_db", "init_db"]
