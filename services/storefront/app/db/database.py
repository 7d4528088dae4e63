from __future__ import annotations

import os
from pathlib import Path

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

_ENGINE: Engine | None = None
_ENGINE_URL: str | None = None
_SESSIONMAKER: sessionmaker | None = None

# How long a SQLite writer waits on a locked database before failing. Concurrent
# checkouts contend on the same product rows.
SQLITE_BUSY_TIMEOUT_MS = 5000


def _default_db_url() -> str:
    # Local-only default. Production must provide DATABASE_URL explicitly.
    Path(".local").mkdir(exist_ok=True)
    return "sqlite+pysqlite:///.local/storefront.db"


def _configure_sqlite(dbapi_connection, _connection_record) -> None:
    # SQLite ships with foreign keys off. Order lines, notes and events must
    # point at real products, orders and users.
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys = ON")
        cursor.execute(f"PRAGMA busy_timeout = {SQLITE_BUSY_TIMEOUT_MS}")
    finally:
        cursor.close()


def get_engine() -> Engine:
    """Return a cached SQLAlchemy engine.

    Cached on DATABASE_URL so tests can point at a fresh database before first use.
    SQLite connections get foreign key enforcement and a busy timeout.
    """

    global _ENGINE, _ENGINE_URL, _SESSIONMAKER

    url = os.getenv("DATABASE_URL") or _default_db_url()

    if _ENGINE is not None and _ENGINE_URL == url:
        return _ENGINE

    is_sqlite = url.startswith("sqlite")
    connect_args = {"check_same_thread": False} if is_sqlite else {}
    _ENGINE = create_engine(url, future=True, connect_args=connect_args)
    if is_sqlite:
        event.listen(_ENGINE, "connect", _configure_sqlite)
    _ENGINE_URL = url
    _SESSIONMAKER = sessionmaker(bind=_ENGINE, class_=Session, autocommit=False, autoflush=False)
    return _ENGINE


def db_session() -> Session:
    get_engine()  # ensure _SESSIONMAKER is created
    assert _SESSIONMAKER is not None
    return _SESSIONMAKER()
