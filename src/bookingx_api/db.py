"""Database engine and session factory.

The credential store talks to one relational database through SQLAlchemy.
SQLite deployments get two connection-level pragmas:

- **WAL**: readers keep going while a token exchange or counter increment
  writes.
- **busy_timeout**: concurrent writers wait for the lock instead of failing
  with ``database is locked``.
"""

from __future__ import annotations

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool


class Base(DeclarativeBase):
    pass


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine, configuring SQLite for concurrent request handlers."""
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, echo=echo, pool_pre_ping=True)

    kwargs: dict = {"connect_args": {"check_same_thread": False}}
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, otherwise each pooled connection sees its own empty DB
        kwargs["poolclass"] = StaticPool

    engine = create_engine(database_url, echo=echo, **kwargs)

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA busy_timeout=5000")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    # Rows handed back by the store stay readable after the session closes
    return sessionmaker(engine, expire_on_commit=False)


def create_tables(engine: Engine) -> None:
    """Create all credential-store tables that do not exist yet."""
    from bookingx_api.store import models  # noqa: F401  (registers the tables)

    Base.metadata.create_all(engine)
