"""Database module."""

from db.session import close_db, get_db, get_session_maker, init_db

__all__ = ["get_db", "get_session_maker", "init_db", "close_db"]
