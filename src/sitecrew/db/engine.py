"""Database engine and session management."""

from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from sitecrew.core.config import Settings, get_settings

_engine: Engine | None = None
_SessionLocal = None


def build_engine(url: str, echo: bool = False, pool_size: int = 5, max_overflow: int = 10) -> Engine:
    """
    Create an engine for the given URL.

    In-memory SQLite shares one connection across threads so that every
    session sees the same database.
    """
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=echo, **kwargs)

    return create_engine(
        url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=pool_size,
        max_overflow=max_overflow,
    )


def configure_engine(
    url: str | None = None,
    echo: bool | None = None,
    settings: Settings | None = None,
) -> Engine:
    """Replace the process-wide engine, e.g. for tests or the CLI."""
    global _engine, _SessionLocal
    settings = settings or get_settings()
    if _engine is not None:
        _engine.dispose()
    _engine = build_engine(
        url or settings.database.url,
        echo=settings.database.echo if echo is None else echo,
        pool_size=settings.database.pool_size,
        max_overflow=settings.database.max_overflow,
    )
    _SessionLocal = None
    return _engine


def get_engine() -> Engine:
    """Get or create the database engine."""
    global _engine
    if _engine is None:
        db = get_settings().database
        _engine = build_engine(db.url, echo=db.echo, pool_size=db.pool_size, max_overflow=db.max_overflow)
    return _engine


def get_session_factory():
    """Get the session factory."""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(
            bind=get_engine(),
            autoflush=False,
            expire_on_commit=False,
        )
    return _SessionLocal


def init_db(engine: Engine | None = None) -> None:
    """Initialize the database, creating all tables."""
    from sitecrew.db.models import Base
    Base.metadata.create_all(bind=engine or get_engine())
