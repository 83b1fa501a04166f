"""Engine and sessions for the custom template database.

One engine per process. The admin surface writes overrides through it while
dispatcher and reminder threads read them through the template store.
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from sqlalchemy import create_engine, event, func, select, text
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from hr_notify.logging import get_logger

from .exceptions import DatabaseConnectionError
from .schema import CustomTemplateModel, create_schema

logger = get_logger(__name__, component="database")

SQLITE_BUSY_TIMEOUT_MS = 5000

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def _parse_url(database_url: str) -> URL:
    if not database_url or not isinstance(database_url, str):
        raise DatabaseConnectionError("DATABASE_URL must be a non-empty SQLAlchemy URL")
    try:
        return make_url(database_url)
    except (ArgumentError, ValueError) as e:
        # The raw string may carry a password; keep it out of the message
        raise DatabaseConnectionError(
            "DATABASE_URL is not a valid SQLAlchemy URL (expected e.g. sqlite:///./data/hr_notify.db)"
        ) from e


def _ensure_sqlite_directory(url: URL) -> None:
    if not url.database or url.database == ":memory:":
        return
    directory = Path(url.database).parent
    if not directory.exists():
        logger.info(f"Creating directory {directory} for the template database")
        directory.mkdir(parents=True, exist_ok=True)


def _sqlite_pragmas(dbapi_conn, connection_record) -> None:
    # Readers on worker threads and the admin writer share one file
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")
    cursor.close()


def init_database(database_url: str) -> None:
    """Open the template database and create ``custom_templates`` if missing.

    Calling it again replaces the current engine. For SQLite files the
    parent directory is created.

    Raises:
        DatabaseConnectionError: If the URL is invalid or the database cannot
            be opened
    """
    global _engine, _session_factory

    url = _parse_url(database_url)
    safe_url = url.render_as_string(hide_password=True)
    close_database()

    engine = None
    try:
        if url.get_backend_name() == "sqlite":
            _ensure_sqlite_directory(url)
            engine = create_engine(url, pool_pre_ping=True, connect_args={"check_same_thread": False})
            event.listen(engine, "connect", _sqlite_pragmas)
        else:
            engine = create_engine(url, pool_pre_ping=True)

        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        create_schema(engine)
        with engine.connect() as conn:
            custom_count = conn.execute(select(func.count()).select_from(CustomTemplateModel)).scalar_one()
    except (SQLAlchemyError, OSError) as e:
        if engine is not None:
            engine.dispose()
        logger.error(
            f"Cannot open template database {safe_url}: {e}",
            extra={"event": "database.error", "database_url": safe_url},
        )
        raise DatabaseConnectionError(f"Cannot open template database {safe_url}: {e}") from e

    _engine = engine
    _session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    logger.info(
        f"Template database ready at {safe_url} ({custom_count} customized templates)",
        extra={"event": "database.ready", "database_url": safe_url, "custom_templates": custom_count},
    )


@contextmanager
def get_session() -> Iterator[Session]:
    """Session committed on success and rolled back on any exception.

    Raises:
        DatabaseConnectionError: If :func:`init_database` has not been called
    """
    if _session_factory is None:
        raise DatabaseConnectionError("Template database not initialized; call init_database() first")

    session = _session_factory()
    try:
        yield session
        session.commit()
    except Exception as e:
        session.rollback()
        logger.warning(
            f"Rolled back template database session: {e}",
            extra={"event": "database.rollback", "error_type": type(e).__name__},
        )
        raise
    finally:
        session.close()


def close_database() -> None:
    """Dispose of the engine. Does nothing when no database is open."""
    global _engine, _session_factory

    if _engine is None:
        return
    _engine.dispose()
    _engine = None
    _session_factory = None
    logger.debug("Template database closed", extra={"event": "database.closed"})
