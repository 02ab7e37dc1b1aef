"""SQLAlchemy engine and session setup"""

from typing import Optional

import structlog
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from permgate.config import Settings, settings

logger = structlog.get_logger(__name__)

Base = declarative_base()


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite ignores ON DELETE CASCADE unless foreign keys are switched on
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys=ON")
    finally:
        cursor.close()


def create_db_engine(app_settings: Optional[Settings] = None, **kwargs) -> Engine:
    """Create an engine for the configured database URL."""
    app_settings = app_settings or settings
    url = app_settings.database_url
    db_engine = create_engine(url, echo=app_settings.DATABASE_ECHO, **kwargs)
    if db_engine.dialect.name == "sqlite":
        event.listen(db_engine, "connect", _enable_sqlite_foreign_keys)
    return db_engine


def create_session_factory(db_engine: Engine) -> sessionmaker:
    """Session factory bound to an engine."""
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


engine = create_db_engine()
SessionLocal = create_session_factory(engine)


def init_db(db_engine: Optional[Engine] = None) -> None:
    """Create all tables (no-op for tables that already exist)."""
    # Import models so they register on Base.metadata
    from permgate.database import models  # noqa: F401

    db_engine = db_engine or engine
    Base.metadata.create_all(bind=db_engine)
    logger.info("Database tables created", dialect=db_engine.dialect.name)
