"""Engine and session factory for the lifecycle store.

The URL comes from ``DATABASE_URL`` or, failing that, the ``DB_*`` variables
used by the PostgreSQL deployment. SQLite is only meant for local runs and
tests; foreign keys are switched on for it so registration and certificate
references are checked the same way PostgreSQL checks them.
"""
from __future__ import annotations

import os
from typing import Any, Dict, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

__all__ = [
    "Base",
    "get_engine",
    "init_engine",
    "get_session",
]

DEFAULT_DATABASE_URL = "sqlite:///./icms.db"

Base = declarative_base()

_engine: Optional[Engine] = None
_SessionLocal: Optional[sessionmaker] = None


def _build_database_url() -> str:
    url = os.getenv("DATABASE_URL")
    if url:
        return url

    parts = [os.getenv(name) for name in ("DB_USER", "DB_PASSWORD", "DB_HOST", "DB_PORT", "DB_NAME")]
    if all(parts):
        user, password, host, port, name = parts
        return f"postgresql+psycopg2://{user}:{password}@{host}:{port}/{name}"
    return DEFAULT_DATABASE_URL


def _engine_options(database_url: str, overrides: Dict[str, Any]) -> Dict[str, Any]:
    options: Dict[str, Any] = {"future": True, "pool_pre_ping": True}
    options.update(overrides)
    if database_url.startswith("sqlite"):
        # Request threads and the notification pool share connections.
        options.setdefault("connect_args", {"check_same_thread": False})
    else:
        options.setdefault("pool_size", int(os.getenv("DB_POOL_SIZE", "5")))
        options.setdefault("max_overflow", int(os.getenv("DB_MAX_OVERFLOW", "10")))
    return options


def _enforce_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys=ON")
    finally:
        cursor.close()


def init_engine(database_url: Optional[str] = None, **engine_kwargs) -> Engine:
    """(Re)build the engine and session factory, disposing any previous engine."""
    global _engine, _SessionLocal

    database_url = database_url or _build_database_url()
    if _engine is not None:
        _engine.dispose()

    _engine = create_engine(database_url, **_engine_options(database_url, engine_kwargs))
    if _engine.dialect.name == "sqlite":
        event.listen(_engine, "connect", _enforce_sqlite_foreign_keys)

    # Services keep serializing rows after commit, so nothing expires on commit.
    _SessionLocal = sessionmaker(
        bind=_engine,
        autoflush=False,
        expire_on_commit=False,
        class_=Session,
    )
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        return init_engine()
    return _engine


def get_session() -> Session:
    """Open a session; callers own it and must close it."""
    if _SessionLocal is None:
        init_engine()
    assert _SessionLocal is not None
    return _SessionLocal()
