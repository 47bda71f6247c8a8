"""Database connection and session management.

One engine and session factory per process, created by init_database() at
startup. Every unit of work opens its own session through get_session(), so
each notification log write is committed before the next step runs.
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import ArgumentError
from sqlalchemy.orm import Session, sessionmaker

from notification_engine.logging import get_logger

from .exceptions import DatabaseConnectionError

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None

SQLITE_BUSY_TIMEOUT_SECONDS = 30

logger = get_logger(__name__, component="database")


def init_database(database_url: str) -> None:
    """Create the engine, validate the connection and create the schema.

    Call once during startup. Calling again replaces the current engine.

    Args:
        database_url: SQLAlchemy URL (e.g. "sqlite:///./data/notifications.db")

    Raises:
        DatabaseConnectionError: If initialization fails
    """
    global _engine, _session_factory

    if not database_url or not isinstance(database_url, str):
        raise DatabaseConnectionError("Database URL must be a non-empty string")

    logger.info(
        "Initializing database",
        extra={"event": "database.initializing", "database_url": _redact_url(database_url)},
    )

    try:
        is_sqlite = database_url.startswith("sqlite")
        if is_sqlite:
            _ensure_sqlite_directory(database_url)

        if _engine is not None:
            _engine.dispose()

        _engine = create_engine(
            database_url,
            echo=False,
            pool_pre_ping=True,
            connect_args=(
                {"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT_SECONDS}
                if is_sqlite
                else {}
            ),
        )
        if is_sqlite:
            _configure_sqlite(_engine)

        _validate_connection(_engine)

        _session_factory = sessionmaker(
            bind=_engine,
            autoflush=True,
            expire_on_commit=False,
        )

        from .schema import create_schema

        create_schema(_engine)

    except DatabaseConnectionError:
        raise
    except (ArgumentError, ValueError, OSError) as e:
        raise DatabaseConnectionError(f"Failed to initialize database: {e}") from e
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}", exc_info=True)
        raise DatabaseConnectionError(f"Failed to initialize database: {e}") from e

    logger.info(
        "Database initialized successfully",
        extra={"event": "database.initialised", "database_url": _redact_url(database_url)},
    )


def _ensure_sqlite_directory(database_url: str) -> None:
    database = make_url(database_url).database
    if not database or database == ":memory:":
        return
    parent = Path(database).parent
    if not parent.exists():
        logger.info(f"Creating database directory: {parent}")
        parent.mkdir(parents=True, exist_ok=True)


def _configure_sqlite(engine: Engine) -> None:
    """Enable WAL so retry sweeps and sends can overlap with readers."""

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_SECONDS * 1000}")
        cursor.close()


def _validate_connection(engine: Engine) -> None:
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()
        logger.debug("Database connection validated successfully")
    except Exception as e:
        raise DatabaseConnectionError(f"Failed to validate database connection: {e}") from e


def _redact_url(url: str) -> str:
    """Hide the password of a database URL for logging."""
    if url.startswith("sqlite"):
        return url
    try:
        return make_url(url).render_as_string(hide_password=True)
    except ArgumentError:
        return "<invalid url>"


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Provide a session that commits on success and rolls back on error.

    Raises:
        DatabaseConnectionError: If init_database() has not been called

    Example:
        >>> with get_session() as session:
        ...     entry = NotificationLogRepository(session).get(log_id)
    """
    if _session_factory is None:
        raise DatabaseConnectionError(
            "Database not initialized. Call init_database() before using get_session()"
        )

    session = _session_factory()
    try:
        yield session
        session.commit()
    except Exception as e:
        session.rollback()
        logger.warning(
            f"Database session rolled back due to exception: {e}",
            extra={"event": "database.session.rolled_back", "error_type": type(e).__name__},
        )
        raise
    finally:
        session.close()


def get_engine() -> Engine:
    """Return the initialized engine.

    Raises:
        DatabaseConnectionError: If init_database() has not been called
    """
    if _engine is None:
        raise DatabaseConnectionError(
            "Database not initialized. Call init_database() before using get_engine()"
        )
    return _engine


def close_database() -> None:
    """Dispose of the engine. Called during shutdown."""
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()
        _engine = None
        _session_factory = None
        logger.info("Database connections closed", extra={"event": "database.closed"})
