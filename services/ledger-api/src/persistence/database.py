"""
Engine and session wiring for the ledger API.

The URL comes from `load_server_settings()` (LEDGER_DB_URL, defaulting to a
SQLite file). On SQLite every connection switches on foreign-key
enforcement so the account-level ON DELETE CASCADE declared in the models
actually removes an account's ledger rows.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, URL, make_url
from sqlalchemy.orm import Session, sessionmaker

from shared.ledger_settings import DB_URL_ENV_VAR, DEFAULT_DB_PATH, load_server_settings

__all__ = ["DB_URL_ENV_VAR", "DEFAULT_DB_PATH", "SessionLocal", "get_database_url", "get_engine", "get_session", "init_db"]

logger = logging.getLogger(__name__)

_engine: Engine | None = None


def get_database_url() -> str:
    return load_server_settings().database_url


def _ensure_sqlite_directory(url: URL) -> None:
    database = url.database
    if not database or database == ":memory:":
        return

    db_path = Path(database)
    if not db_path.is_absolute():
        db_path = (Path.cwd() / db_path).resolve()
    db_path.parent.mkdir(parents=True, exist_ok=True)


def _enable_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def get_engine() -> Engine:
    """Return the process-wide engine, building it on first use."""
    global _engine
    if _engine is not None:
        return _engine

    url = make_url(get_database_url())
    is_sqlite = url.drivername.startswith("sqlite")
    if is_sqlite:
        _ensure_sqlite_directory(url)

    _engine = create_engine(
        url,
        future=True,
        connect_args={"check_same_thread": False} if is_sqlite else {},
    )
    if is_sqlite:
        event.listen(_engine, "connect", _enable_foreign_keys)
    return _engine


SessionLocal = sessionmaker(
    bind=get_engine(),
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    future=True,
)


def get_session() -> Generator[Session, None, None]:
    """FastAPI dependency yielding one session per request."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def init_db() -> None:
    """Create any missing ledger tables."""
    from . import models  # noqa: WPS433 (import inside function)

    engine = get_engine()
    models.Base.metadata.create_all(bind=engine)
    logger.info({"event": "ledger_db_ready", "backend": engine.url.get_backend_name()})
