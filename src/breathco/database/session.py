"""
SQLite connection state for the breath session store.

One engine per process, created by init_database() and shared by every
repository through session_scope(). Tests reset it with cleanup_database().
"""

import logging
import threading

from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from breathco.constants import DEFAULT_DATABASE_PATH
from breathco.database.models import Base

logger = logging.getLogger(__name__)

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None
_database_path: str | None = None
_lock = threading.Lock()


def _enable_foreign_keys(dbapi_conn: Any, connection_record: Any) -> None:
    # Data points rely on ON DELETE CASCADE
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def init_database(database_path: str | None = None) -> str:
    """
    Open (and create if needed) the breath session database.

    Calling it again before cleanup_database() keeps the open database.

    Args:
        database_path: SQLite file, DEFAULT_DATABASE_PATH when omitted

    Returns:
        Path of the open database

    Raises:
        ValueError: If the path is empty
        PermissionError: If the parent directory cannot be created
    """
    global _engine, _session_factory, _database_path

    with _lock:
        if _engine is not None:
            if database_path and database_path != _database_path:
                logger.warning(
                    f"Database already open at {_database_path}, ignoring {database_path}"
                )
            return _database_path

        path = database_path if database_path is not None else DEFAULT_DATABASE_PATH
        if not path or not path.strip():
            raise ValueError(f"Invalid database path: {path!r}")

        parent = Path(path).expanduser().parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
        except PermissionError as e:
            raise PermissionError(f"Cannot create database directory {parent}: {e}") from e

        engine = create_engine(
            f"sqlite:///{Path(path).expanduser()}",
            connect_args={"check_same_thread": False},
        )
        event.listen(engine, "connect", _enable_foreign_keys)
        Base.metadata.create_all(engine)

        _engine = engine
        _session_factory = sessionmaker(bind=engine)
        _database_path = path
        logger.debug(f"Breath session database open at {path}")
        return path


@contextmanager
def session_scope() -> Generator[Session]:
    """
    Transaction around one repository operation.

    Commits on success; rolls back and re-raises on error.

    Raises:
        RuntimeError: If init_database() has not been called
    """
    if _session_factory is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")

    session = _session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_database_path() -> str | None:
    """Path of the open database, None before init_database()."""
    return _database_path


def cleanup_database() -> None:
    """Close the engine and forget the open database."""
    global _engine, _session_factory, _database_path

    with _lock:
        if _engine is not None:
            _engine.dispose()
        _engine = None
        _session_factory = None
        _database_path = None
