"""SQLAlchemy declarative base, engine and session factory."""

from __future__ import annotations

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool


class Base(DeclarativeBase):
    """Declarative base every ORM record registers with."""


def create_engine_from_url(database_url: str, *, echo: bool = False) -> Engine:
    """Create an engine; in-memory SQLite shares one connection across threads."""
    if database_url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite+pysqlite://"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, echo=echo, **kwargs)
    return create_engine(database_url, echo=echo, pool_pre_ping=True)


def get_session_factory(engine: Engine, *, create_tables: bool = True) -> sessionmaker:
    """Return a session factory bound to *engine*.

    Sessions use ``autoflush=False`` and ``expire_on_commit=False`` so
    records can be converted to domain models after the transaction ends.
    """
    if create_tables:
        # Import for side effect: registers the tables on Base.metadata.
        from grounded_rag.storage import records  # noqa: F401

        Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
