"""
Database connection and session management for Kitchen Stock.

This module provides:
- Database engine creation and configuration
- Session factory for database operations
- Database initialization (create tables)
- SQLite WAL mode and foreign key enforcement
"""

import logging
import sqlite3
from contextlib import contextmanager
from typing import Callable, Optional, Tuple, TypeVar

from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, close_all_sessions, sessionmaker
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.pool import StaticPool

from ..models.base import Base
from ..utils.config import get_config
from .exceptions import ConcurrencyConflict, DatabaseError, ServiceError, ValidationError

logger = logging.getLogger(__name__)

# Global engine and session factory
_engine: Optional[Engine] = None
_SessionFactory: Optional[sessionmaker] = None


T = TypeVar("T")


@event.listens_for(Engine, "connect")
def _set_sqlite_pragma(dbapi_connection, connection_record):
    """
    Set SQLite pragmas on connection.

    Enables foreign key constraints and WAL mode. Connections to other
    databases (e.g., hosted PostgreSQL) are left untouched.
    """
    if not isinstance(dbapi_connection, sqlite3.Connection):
        return

    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()


def create_database_engine(database_url: Optional[str] = None, echo: bool = False) -> Engine:
    """
    Create and configure the database engine.

    Args:
        database_url: Optional database URL. If None, uses config default.
        echo: If True, log all SQL statements (useful for debugging)

    Returns:
        Configured SQLAlchemy Engine
    """
    config = get_config()
    if database_url is None:
        database_url = config.database_url

    logger.info(f"Creating database engine: {database_url}")

    if not database_url.startswith("sqlite"):
        return create_engine(database_url, echo=echo, pool_pre_ping=True)

    if ":memory:" in database_url or "mode=memory" in database_url:
        # In-memory databases (testing) must share one connection
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    return create_engine(
        database_url,
        echo=echo,
        connect_args={"check_same_thread": False, "timeout": config.db_timeout},
    )


def init_database(engine: Optional[Engine] = None) -> None:
    """
    Initialize the database by creating all tables.

    Safe to call multiple times - existing tables won't be recreated.

    Args:
        engine: Optional engine to use. If None, uses global engine.
    """
    if engine is None:
        engine = get_engine()

    logger.info("Initializing database tables")

    # Import all models so they are registered with Base
    from .. import models  # noqa: F401

    Base.metadata.create_all(engine)

    logger.info("Database tables initialized successfully")


def get_engine(force_recreate: bool = False) -> Engine:
    """
    Get the global database engine (singleton).

    Args:
        force_recreate: If True, recreate the engine even if one exists

    Returns:
        Database engine
    """
    global _engine

    if _engine is None or force_recreate:
        _engine = create_database_engine()

    return _engine


def get_session_factory() -> sessionmaker:
    """
    Get the global session factory.

    Returns:
        Session factory (sessionmaker)
    """
    global _SessionFactory

    if _SessionFactory is None:
        engine = get_engine()
        _SessionFactory = sessionmaker(bind=engine, expire_on_commit=False)

    return _SessionFactory


def get_session() -> Session:
    """
    Create a new database session.

    Returns:
        New Session instance
    """
    session_factory = get_session_factory()
    return session_factory()


@contextmanager
def session_scope():
    """
    Provide a transactional scope for database operations.

    - Creates a new session
    - Commits on success
    - Rolls back on exception
    - Always closes the session

    Yields:
        Database session

    Example:
        with session_scope() as session:
            kitchen = CloudKitchen(name="Koramangala", code="CK-01")
            session.add(kitchen)
            # Commit happens automatically if no exception
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def run_in_session(
    impl: Callable[[Session], T],
    session: Optional[Session],
    failure: str,
    conflict_key: Optional[Tuple[int, int]] = None,
    integrity_as_validation: bool = False,
) -> T:
    """
    Run impl with the caller's session or a new session_scope().

    Every service operation goes through here so the session pattern and
    error translation are the same everywhere:
    - If session provided: caller owns transaction, don't commit
    - If session is None: impl runs in its own transaction

    Args:
        impl: Function taking the session and doing the work
        session: Optional caller session
        failure: Message of the DatabaseError raised on unexpected failures
        conflict_key: (kitchen_id, raw_material_id) reported when a batch
            version check fails; without it the failure is a DatabaseError
        integrity_as_validation: Report constraint violations (e.g.
            duplicate codes) as ValidationError

    Raises:
        ServiceError subclasses raised by impl, unchanged
        ConcurrencyConflict: On a stale batch write, when conflict_key is given
        DatabaseError: On any other SQLAlchemy error
    """
    try:
        if session is not None:
            return impl(session)
        with session_scope() as sess:
            return impl(sess)
    except ServiceError:
        raise
    except StaleDataError as e:
        if conflict_key is None:
            raise DatabaseError(failure, original_error=e)
        raise ConcurrencyConflict(*conflict_key) from e
    except IntegrityError as e:
        if integrity_as_validation:
            raise ValidationError([f"{failure}: {e.orig}"])
        raise DatabaseError(failure, original_error=e)
    except SQLAlchemyError as e:
        raise DatabaseError(failure, original_error=e)


def verify_database() -> bool:
    """
    Verify that the database is accessible and has the ledger tables.

    Returns:
        True if database is valid, False otherwise
    """
    try:
        engine = get_engine()
        inspector = inspect(engine)
        tables = inspector.get_table_names()
        return "stock_batches" in tables and "raw_materials" in tables
    except Exception as e:
        logger.error(f"Database verification failed: {e}")
        return False


def reset_database(confirm: bool = False) -> None:
    """
    Drop all tables and recreate the database.

    WARNING: This will delete all data!

    Args:
        confirm: Must be True to actually reset. Safety check.

    Raises:
        ValueError: If confirm is not True
    """
    if not confirm:
        raise ValueError("Must pass confirm=True to reset database. This will delete all data!")

    logger.warning("RESETTING DATABASE - ALL DATA WILL BE LOST")

    engine = get_engine()

    from .. import models  # noqa: F401

    Base.metadata.drop_all(engine)
    logger.info("All tables dropped")

    Base.metadata.create_all(engine)
    logger.info("Tables recreated")


def close_connections() -> None:
    """
    Close all sessions and dispose of the engine.

    Useful for cleanup or before application exit.
    """
    global _engine, _SessionFactory

    close_all_sessions()
    _SessionFactory = None

    if _engine is not None:
        _engine.dispose()
        _engine = None

    logger.info("Database connections closed")


def initialize_app_database() -> None:
    """
    Initialize the application database.

    Creates the database file and tables if they don't exist.
    """
    config = get_config()
    if config.database_url.startswith("sqlite"):
        config.ensure_directories()
        if not config.database_exists():
            logger.info(f"Creating new database at: {config.database_path}")
        else:
            logger.info(f"Using existing database at: {config.database_path}")

    engine = get_engine()
    init_database(engine)

    if verify_database():
        logger.info("Database initialized and verified successfully")
    else:
        logger.warning("Database verification failed - tables may not exist")
