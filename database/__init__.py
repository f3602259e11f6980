"""Database package for the venue catalog"""

from database.base import Base
from database.session import SessionLocal, engine, get_db, session_scope

__all__ = ["Base", "get_db", "session_scope", "SessionLocal", "engine"]
