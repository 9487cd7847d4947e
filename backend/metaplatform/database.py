"""
Database connection and session management
SQLAlchemy session factory and FastAPI dependency
"""
import logging
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from metaplatform.config import settings

logger = logging.getLogger(__name__)

# SQLAlchemy Base class
Base = declarative_base()


def _engine_options(database_url: str) -> dict:
    """Engine keyword arguments for the configured backend"""
    if database_url.startswith("sqlite"):
        options = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url == "sqlite://":
            options["poolclass"] = StaticPool
        return options

    return {
        "pool_size": settings.database_pool_size,
        "max_overflow": settings.database_max_overflow,
        "pool_pre_ping": True,
    }


engine = create_engine(
    settings.database_url,
    echo=settings.database_echo,
    **_engine_options(settings.database_url),
)


@event.listens_for(Engine, "connect")
def enable_sqlite_foreign_keys(dbapi_conn, connection_record):
    """
    Turn on foreign key enforcement for SQLite connections so that
    ON DELETE CASCADE behaves the same as on PostgreSQL
    """
    connection_type = type(dbapi_conn).__module__
    if "sqlite" not in connection_type.lower():
        return

    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


def get_db() -> Generator[Session, None, None]:
    """
    DB session for FastAPI dependencies

    Usage:
        @router.get("/bots")
        def list_bots(db: Session = Depends(get_db)):
            return db.query(Bot).all()
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """
    DB session as a context manager (workers, socket handlers)

    Usage:
        with get_db_context() as db:
            bots = db.query(Bot).all()
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """
    Create tables that do not exist yet.
    All model modules must be imported so they register on Base.metadata.
    """
    from metaplatform.models import core, bots  # noqa: F401

    Base.metadata.create_all(bind=engine)


def check_db_connection() -> bool:
    """
    Database connectivity check

    Returns:
        True when a trivial query succeeds
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning(f"Database connection failed: {e}")
        return False
