"""Database connection and session management.

This module provides engine creation and the session lifecycle for the
notification ledger. The read-only case store reuses
:func:`create_database_engine` with its own URL.
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..logging import get_logger
from .exceptions import DatabaseConnectionError

# Module-level engine and session factory
_engine: Engine | None = None
_session_factory: sessionmaker | None = None

logger = get_logger(__name__, component="database")


def create_database_engine(database_url: str) -> Engine:
    """Create a configured engine for ``database_url``.

    SQLite file databases get their parent directory created, foreign keys
    and WAL enabled, and cross-thread use allowed. ``:memory:`` databases
    share one connection so every session sees the same data.

    Args:
        database_url: SQLAlchemy URL

    Returns:
        Engine whose connectivity has been checked

    Raises:
        DatabaseConnectionError: If the URL is empty or the database is unreachable
    """
    if not database_url or not isinstance(database_url, str):
        raise DatabaseConnectionError("Database URL must be a non-empty string")

    is_sqlite = database_url.startswith("sqlite")
    in_memory = is_sqlite and (
        database_url.endswith(":memory:") or database_url in ("sqlite://", "sqlite:///")
    )

    if is_sqlite and not in_memory and database_url.startswith("sqlite:///"):
        db_file = Path(database_url.replace("sqlite:///", "", 1))
        if not db_file.parent.exists():
            logger.info(
                f"Creating database directory: {db_file.parent}",
                extra={"event": "database.directory_created"},
            )
            db_file.parent.mkdir(parents=True, exist_ok=True)

    engine_kwargs = {"echo": False, "future": True}
    if is_sqlite:
        engine_kwargs["connect_args"] = {"check_same_thread": False, "timeout": 30}
        if in_memory:
            engine_kwargs["poolclass"] = StaticPool
    else:
        engine_kwargs["pool_pre_ping"] = True

    try:
        engine = create_engine(database_url, **engine_kwargs)
    except Exception as e:
        raise DatabaseConnectionError(f"Invalid database URL: {e}") from e

    if is_sqlite:
        _configure_sqlite(engine)

    _validate_connection(engine)
    return engine


def init_database(database_url: str) -> None:
    """Initialize the ledger database and create its schema if needed.

    Call once during application startup.

    Args:
        database_url: Database connection URL (e.g., "sqlite:///./data/notifications.db")

    Raises:
        DatabaseConnectionError: If database initialization fails
    """
    global _engine, _session_factory

    logger.info(
        "Initializing database",
        extra={
            "event": "database.initializing",
            "database_url": redact_url(database_url),
        },
    )

    try:
        engine = create_database_engine(database_url)

        from .schema import create_schema

        create_schema(engine)
    except DatabaseConnectionError:
        raise
    except Exception as e:
        error_msg = f"Failed to initialize database: {e}"
        logger.error(error_msg, exc_info=True, extra={"event": "database.init_failed"})
        raise DatabaseConnectionError(error_msg) from e

    _engine = engine
    _session_factory = sessionmaker(
        bind=_engine,
        autocommit=False,
        autoflush=True,
        expire_on_commit=False,
        future=True,
    )

    logger.info(
        "Database initialized successfully",
        extra={
            "event": "database.initialised",
            "database_url": redact_url(database_url),
        },
    )


def _configure_sqlite(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()


def _validate_connection(engine: Engine) -> None:
    """Run ``SELECT 1`` against the engine.

    Raises:
        DatabaseConnectionError: If connection test fails
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()
        logger.debug("Database connection validated successfully")
    except Exception as e:
        raise DatabaseConnectionError(f"Failed to validate database connection: {e}") from e


def redact_url(url: str) -> str:
    """Redact the password in a database URL for logging.

    Example:
        >>> redact_url("postgresql://app:secret@db:5432/ouvidoria")
        'postgresql://app:***@db:5432/ouvidoria'
    """
    if url.startswith("sqlite"):
        return url

    if "@" in url and "://" in url:
        scheme, rest = url.split("://", 1)
        credentials, host = rest.rsplit("@", 1)
        username = credentials.split(":", 1)[0]
        return f"{scheme}://{username}:***@{host}"

    return url


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Provide a database session with automatic transaction management.

    Commits on successful exit, rolls back on exception, always closes.

    Yields:
        Session: SQLAlchemy session for database operations

    Raises:
        DatabaseConnectionError: If database not initialized

    Example:
        >>> with get_session() as session:
        ...     repo = NotificationRepository(session)
        ...     repo.has_been_sent("2025.000123", Bucket.DUE_TODAY)
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
        logger.debug(
            f"Database session rolled back due to exception: {e}",
            extra={
                "event": "database.session.rolled_back",
                "error_type": type(e).__name__,
            },
        )
        raise
    finally:
        session.close()


def get_engine() -> Engine:
    """Get the ledger engine.

    Raises:
        DatabaseConnectionError: If database not initialized
    """
    if _engine is None:
        raise DatabaseConnectionError(
            "Database not initialized. Call init_database() before using get_engine()"
        )

    return _engine


def close_database() -> None:
    """Dispose of the ledger engine. Called during application shutdown."""
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()
        _engine = None
        _session_factory = None
        logger.info("Database connections closed", extra={"event": "database.closed"})
