"""Database configuration and session management."""

from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker
import os

# SQLite by default; point DATABASE_URL at PostgreSQL for multi-worker deployments.
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./clouddrive.db")


def is_postgresql() -> bool:
    """Check if the configured database is PostgreSQL."""
    return DATABASE_URL.startswith("postgresql")


if DATABASE_URL.startswith("sqlite"):
    engine = create_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False}
    )

    # pysqlite defers BEGIN and breaks SAVEPOINT semantics. Take over
    # transaction control so begin_nested() works for trash-conflict retries.
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _sqlite_begin(conn):
        conn.exec_driver_sql("BEGIN")
else:
    from .core.config import settings as _db_settings
    engine = create_engine(
        DATABASE_URL,
        pool_size=_db_settings.db_pool_size,
        max_overflow=_db_settings.db_max_overflow,
        pool_timeout=_db_settings.db_pool_timeout,
        pool_recycle=_db_settings.db_pool_recycle,
        pool_pre_ping=True,
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def init_db() -> None:
    """Create all tables that do not exist yet."""
    from . import models  # noqa: F401  registers mappers on Base.metadata
    Base.metadata.create_all(bind=engine)


def get_db():
    """Dependency for FastAPI routes to get database session.

    Rolls back the transaction on unhandled exceptions so that the
    connection is returned to the pool in a clean state.
    """
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
