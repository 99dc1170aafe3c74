"""
Database configuration and connection management.

PostgreSQL in production, SQLite for local development and tests.
"""

from typing import Generator

import structlog
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from .config import settings
from .models import Base

logger = structlog.get_logger(__name__)


def get_connect_args(db_url: str) -> dict:
    if db_url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


def get_engine_options(db_url: str) -> dict:
    """Pool options for the given backend."""
    if db_url.startswith("sqlite"):
        # In-memory SQLite must share one connection across threads
        if db_url in ("sqlite://", "sqlite:///:memory:"):
            return {"poolclass": StaticPool}
        return {}
    return {
        "poolclass": QueuePool,
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_recycle": settings.DB_POOL_RECYCLE,
        "pool_pre_ping": True,
    }


def _safe_url(db_url: str) -> str:
    if "@" in db_url:
        return db_url.split("@")[0].split("://")[0] + "://***@" + db_url.split("@")[-1]
    return db_url


engine = create_engine(
    settings.DATABASE_URL,
    connect_args=get_connect_args(settings.DATABASE_URL),
    echo=False,
    **get_engine_options(settings.DATABASE_URL),
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db() -> None:
    """
    Create the sheets, problems, progress, announcement and jobs tables.

    Several workers may start at once against Postgres, so a concurrent
    "already exists" failure is logged and ignored.
    """
    try:
        logger.info("Initializing database tables", database=_safe_url(settings.DATABASE_URL))
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database initialized successfully")
    except Exception as e:
        error_msg = str(e).lower()
        if "already exists" in error_msg or "duplicate" in error_msg:
            logger.warning("Database objects already exist (expected)")
        else:
            logger.error("Failed to initialize database", error=str(e))
            raise


def get_db() -> Generator[Session, None, None]:
    """Request-scoped session, closed when the response is sent."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
