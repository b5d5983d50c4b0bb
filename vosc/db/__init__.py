"""Database utilities."""

from vosc.db.base import Base, JSONType, utcnow
from vosc.db.session import get_db, engine, async_session_maker

__all__ = ["Base", "JSONType", "utcnow", "get_db", "engine", "async_session_maker"]
