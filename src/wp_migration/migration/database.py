"""
Database engine and session helpers for the destination store.

Engines are created explicitly and handed to the store; nothing here keeps
module-level state.
"""

from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import Engine, create_engine, event, pool
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from wp_migration.client.exceptions import ConfigurationError, DestinationUnavailableError
from wp_migration.migration.models import Base
from wp_migration.utils.logging import get_logger

logger = get_logger(__name__)


def _enable_sqlite_foreign_keys(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite connections."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_database_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create a SQLAlchemy engine with appropriate settings.

    For file-backed SQLite URLs the parent directory is created first.

    Args:
        database_url: Database connection URL (sqlite:/// or postgresql://)
        echo: Whether to log SQL statements

    Returns:
        SQLAlchemy Engine instance

    Raises:
        ConfigurationError: If database URL is invalid
    """
    if not database_url:
        raise ConfigurationError("Database URL cannot be empty")

    try:
        url = make_url(database_url)
    except ArgumentError as e:
        raise ConfigurationError(f"Invalid database URL: {e}") from e

    if url.get_backend_name() == "sqlite":
        if url.database and url.database != ":memory:":
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(
            url,
            echo=echo,
            poolclass=pool.NullPool,
            connect_args={"check_same_thread": False},
        )
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    else:
        engine = create_engine(url, echo=echo, pool_pre_ping=True)

    logger.debug("database_engine_created", backend=url.get_backend_name())
    return engine


def init_database(engine: Engine) -> None:
    """
    Create all destination tables if they don't exist.

    Raises:
        DestinationUnavailableError: If the database cannot be reached
    """
    try:
        Base.metadata.create_all(engine)
    except SQLAlchemyError as e:
        logger.error("database_init_failed", error=str(e))
        raise DestinationUnavailableError(f"Cannot initialize destination store: {e}") from e

    logger.debug("database_initialized", tables=len(Base.metadata.tables))


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def session_scope(factory: sessionmaker) -> Generator[Session, None, None]:
    """
    Context manager for database sessions.

    Commits on success, rolls back on any exception and re-raises it
    unchanged so callers can map it to their own error types.
    """
    session = factory()
    try:
        yield session
        session.commit()
    except BaseException:
        session.rollback()
        raise
    finally:
        session.close()
