"""
Database Session Management

One lazily created engine and session factory per process. Cache stores,
profile stores and the plan lookup all take a sessionmaker, so tests can
hand them an in-memory SQLite factory instead.
"""

import os
import logging

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from .models import Base

logger = logging.getLogger(__name__)

_engine = None
_session_factory = None


def get_database_url() -> str:
    """
    DATABASE_URL, then POSTGRES_URL, then a local SQLite file.

    Hosted Postgres URLs often use the postgres:// scheme, which
    SQLAlchemy no longer accepts.
    """
    for var in ("DATABASE_URL", "POSTGRES_URL"):
        url = os.getenv(var)
        if url:
            if url.startswith("postgres://"):
                url = "postgresql://" + url[len("postgres://"):]
            logger.info(f"Using PostgreSQL database from {var}")
            return url

    path = os.getenv("SQLITE_PATH", "competiscope_dev.db")
    logger.warning(f"No DATABASE_URL set, falling back to SQLite at {path}")
    return f"sqlite:///{path}"


def create_db_engine(url: str = None) -> Engine:
    """
    Engine for a URL.

    Postgres gets a pre-pinged connection pool. In-memory SQLite shares a
    single connection so every session sees the same tables.
    """
    url = url or get_database_url()
    echo = os.getenv("SQL_DEBUG", "false").lower() == "true"

    if url.startswith("postgresql"):
        logger.info("Creating PostgreSQL engine")
        return create_engine(
            url,
            poolclass=QueuePool,
            pool_size=5,
            max_overflow=10,
            pool_recycle=1800,
            pool_pre_ping=True,
            echo=echo,
        )

    options = {"connect_args": {"check_same_thread": False}, "echo": echo}
    if url in ("sqlite://", "sqlite:///:memory:"):
        options["poolclass"] = StaticPool
    engine = create_engine(url, **options)

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_conn, _record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    logger.info(f"Creating SQLite engine for {url}")
    return engine


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        _engine = create_db_engine()
    return _engine


def get_session_factory() -> sessionmaker:
    """Process-wide sessionmaker bound to get_engine()."""
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(
            bind=get_engine(),
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )
    return _session_factory


def init_db(drop_all: bool = False) -> None:
    """Create any missing tables. drop_all wipes every table first."""
    engine = get_engine()
    if drop_all:
        logger.warning("Dropping all tables")
        Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    logger.info(f"Tables ready: {', '.join(sorted(Base.metadata.tables))}")


def check_db_connection() -> bool:
    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        return False
