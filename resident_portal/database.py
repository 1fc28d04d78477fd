from __future__ import annotations

import os
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, Session, create_engine

from .config import settings


def _is_sqlite(database_url: str) -> bool:
    return database_url.startswith("sqlite")


def _is_postgres(database_url: str) -> bool:
    return database_url.startswith("postgresql")


def _ensure_sqlite_dir(database_url: str) -> None:
    """
    Ensure the parent folder exists for SQLite file-based DB URLs like:
      sqlite:///./data/residents.sqlite
      sqlite:////absolute/path/to/db.sqlite
    """
    if not database_url.startswith("sqlite:///"):
        return

    path = database_url.replace("sqlite:///", "", 1)
    folder = os.path.dirname(path)
    if folder:
        os.makedirs(folder, exist_ok=True)


def _sqlite_pragmas(engine: Engine) -> None:
    """
    Pragmas that make SQLite usable for multi-request local dev and larger datasets.
    Safe defaults that won't corrupt data.
    """

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragmas(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL;")  # better concurrency
        cursor.execute("PRAGMA synchronous=NORMAL;")  # good perf/safety balance
        cursor.execute("PRAGMA temp_store=MEMORY;")  # speed temp ops
        cursor.execute("PRAGMA foreign_keys=ON;")  # enforce FKs
        cursor.execute("PRAGMA busy_timeout=5000;")  # reduce 'database is locked'
        # Cache size is in pages; negative means KB. e.g., -64000 = ~64MB cache
        cursor.execute("PRAGMA cache_size=-64000;")
        cursor.close()


def _postgres_session_settings(engine: Engine) -> None:
    """
    Per-connection settings for Postgres.
    statement_timeout keeps a stuck report query from holding a connection.
    """

    @event.listens_for(engine, "connect")
    def _set_postgres_settings(dbapi_connection, connection_record):
        try:
            cursor = dbapi_connection.cursor()
            cursor.execute("SET statement_timeout = 30000;")
            cursor.close()
        except Exception:
            # Don't block startup if provider disallows it
            pass


def get_engine(database_url: Optional[str] = None) -> Engine:
    """
    Create and return the SQLAlchemy engine.

    - Defaults to settings.resolved_database_url:
        DATABASE_URL (preferred) OR fallback DB_PATH
    - SQLite gets pragmas + check_same_thread=False (sessions run in worker threads)
    """
    database_url = database_url or settings.resolved_database_url

    if _is_sqlite(database_url):
        _ensure_sqlite_dir(database_url)

    connect_args = {"check_same_thread": False} if _is_sqlite(database_url) else {}

    engine = create_engine(
        database_url,
        echo=False,
        connect_args=connect_args,
        pool_pre_ping=True,
    )

    if _is_sqlite(database_url):
        _sqlite_pragmas(engine)

    if _is_postgres(database_url):
        _postgres_session_settings(engine)

    return engine


# Single, shared engine for the app process
engine: Engine = get_engine()


def register_models() -> None:
    """
    Central place to import ALL models so SQLModel registers them.
    Prevents 'no such table' issues as the project grows.
    """
    from .models.resident import Resident  # noqa: F401
    from .models.profile_status import ResidentProfileStatus  # noqa: F401
    from .models.address_area import AddressArea  # noqa: F401


def init_db(create_tables: bool = True, *, bind: Optional[Engine] = None) -> None:
    """
    Register models, then create missing tables (SQLite/local dev).
    Non-destructive: create_all will not drop or alter existing tables.

    address_areas is created empty; its rows come from the PSGC import.
    """
    register_models()
    if create_tables:
        SQLModel.metadata.create_all(bind or engine)


@contextmanager
def session_scope(bind: Optional[Engine] = None) -> Generator[Session, None, None]:
    """
    Context manager for scripts/jobs that need commit/rollback safety.

    Usage:
        with session_scope() as db:
            db.add(...)
    """
    session = Session(bind or engine)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
