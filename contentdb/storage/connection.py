"""
Database Connection Management.

This module handles the SQL backend's connection via SQLAlchemy.
It provides:
- Engine setup per dialect (SQLite file, SQLite in-memory, server databases)
- Session management
- Health checks

SQLite file databases run in WAL mode so readers do not block while a
rebuild commits a new generation.
"""
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from contentdb.core.exceptions import ConfigurationError
from contentdb.core.logging_config import get_logger

logger = get_logger(__name__)


def _is_memory_sqlite(url) -> bool:
    return url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:")


def _set_sqlite_pragma(dbapi_connection, connection_record):
    """Connection-level pragmas for SQLite file databases."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


class DatabaseConnection:
    """
    Manages the engine and session lifecycle of one SQL store.

    Example:
        >>> db = DatabaseConnection("sqlite:///.contentdb.sqlite3")
        >>> with db.get_session() as session:
        ...     result = session.execute(text("SELECT 1"))
    """

    def __init__(self, connection_url: str, echo: bool = False):
        """
        Initialize the database engine.

        Args:
            connection_url: SQLAlchemy URL
            echo: Log all SQL (very verbose)

        Raises:
            ConfigurationError: malformed URL or missing driver
        """
        try:
            url = make_url(connection_url)
        except ArgumentError as e:
            raise ConfigurationError(f"Invalid database URL: {connection_url!r}", details=str(e)) from e

        self.url = url
        self.is_memory = _is_memory_sqlite(url)

        try:
            if self.is_memory:
                # One shared connection: every session sees the same database
                self.engine = create_engine(
                    url,
                    connect_args={"check_same_thread": False},
                    poolclass=StaticPool,
                    echo=echo,
                )
            elif url.get_backend_name() == "sqlite":
                self.engine = create_engine(
                    url,
                    connect_args={"check_same_thread": False},
                    echo=echo,
                )
                event.listen(self.engine, "connect", _set_sqlite_pragma)
            else:
                # pool_pre_ping: Test connections before using (handles stale connections)
                self.engine = create_engine(
                    url,
                    pool_pre_ping=True,
                    pool_size=5,
                    max_overflow=10,
                    echo=echo,
                )
        except (ArgumentError, ImportError) as e:
            raise ConfigurationError(
                f"Cannot create engine for {url.get_backend_name()}", details=str(e)
            ) from e

        self._session_factory = sessionmaker(
            bind=self.engine,
            autocommit=False,
            autoflush=False,
        )

        logger.info(f"Database connection initialized: {url.render_as_string(hide_password=True)}")

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """
        Get a database session with automatic cleanup.

        Transactions are rolled back on error, committed on success.

        Yields:
            SQLAlchemy Session object
        """
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Database error, rolling back: {e}")
            raise
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()

    def check_connection(self) -> bool:
        """
        Test database connectivity.

        Returns:
            True if connection is healthy, False otherwise.
        """
        try:
            with self.get_session() as session:
                session.execute(text("SELECT 1"))
            logger.debug("Database connection check: OK")
            return True
        except SQLAlchemyError as e:
            logger.error(f"Database connection check failed: {e}")
            return False

    def close(self):
        """Close all connections in the pool."""
        self.engine.dispose()
        logger.info("Database connections closed")
