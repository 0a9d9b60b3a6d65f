"""Database layer for SiteCrew."""

from sitecrew.db.engine import configure_engine, get_engine, get_session_factory, init_db
from sitecrew.db.store import TenancyStore

__all__ = [
    "configure_engine",
    "get_engine",
    "get_session_factory",
    "init_db",
    "TenancyStore",
]
