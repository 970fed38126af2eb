"""
Engine and session factories for the assessment store.
"""

from __future__ import annotations

from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from .config import DatabaseConfig, get_settings
from .exceptions import handle_database_error
from .logging import get_logger
from .models import Base

logger = get_logger(__name__)


def _sqlite_pragmas(dbapi_connection, connection_record) -> None:
    # Template deletion relies on the assessments -> templates reference being enforced.
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_database_engine(config: DatabaseConfig | None = None) -> Engine:
    """
    Build an engine for ``config`` (default: the ``DB_`` settings).

    Example:
        >>> engine = create_database_engine(DatabaseConfig(sqlite_path=":memory:"))
    """
    config = config or get_settings().database
    url = config.get_connection_url()
    logger.info("Opening assessment store at %s", url.split("@")[-1])

    try:
        engine = create_engine(url, **config.get_engine_options())
    except SQLAlchemyError as e:
        raise handle_database_error(e, "create_engine") from e

    if config.is_sqlite:
        event.listen(engine, "connect", _sqlite_pragmas)
    return engine


def create_session_factory(engine: Engine | None = None) -> sessionmaker:
    """
    Sessions keep loaded rows usable after commit, so scores can be built
    from them once the unit of work has closed.
    """
    return sessionmaker(
        bind=engine or create_database_engine(),
        autoflush=False,
        expire_on_commit=False,
    )


def initialise_database(engine: Engine) -> bool:
    """
    Create any missing tables.

    Returns:
        True if the schema was already complete, False if tables were created.
    """
    present = set(inspect(engine).get_table_names())
    missing = [t.name for t in Base.metadata.sorted_tables if t.name not in present]
    if missing:
        Base.metadata.create_all(engine)
        logger.info("Created tables: %s", ", ".join(missing))
    return not missing


def is_database_configured() -> bool:
    try:
        get_settings().database.get_connection_url()
    except ValueError as e:
        logger.warning("Database configuration invalid: %s", e)
        return False
    return True
