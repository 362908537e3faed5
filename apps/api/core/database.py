"""
Engine, session factory and request-scoped sessions.

Postgres in deployment; a sqlite DATABASE_URL (tests) gets a single shared
connection instead of a pool so in-memory data outlives each session.
"""
import logging
import time
from typing import Iterator

from fastapi import HTTPException
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from core.config import settings

logger = logging.getLogger(__name__)

CONNECT_ATTEMPTS = 3
CONNECT_BACKOFF_S = 0.1


def build_database_url() -> str:
    if settings.DATABASE_URL:
        return settings.DATABASE_URL
    return (
        f"postgresql://{settings.POSTGRES_USER}:{settings.POSTGRES_PASSWORD}"
        f"@{settings.POSTGRES_HOST}:{settings.POSTGRES_PORT}/{settings.POSTGRES_DB}"
    )


DATABASE_URL = build_database_url()


def _create_engine(url: str):
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=settings.DEBUG,
        )
    return create_engine(
        url,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_POOL_RECYCLE,
        pool_pre_ping=True,
        echo=settings.DEBUG,
    )


engine = _create_engine(DATABASE_URL)

# expire_on_commit=False: routers serialize ORM rows after the commit
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

Base = declarative_base()


def _open_session() -> Session:
    for attempt in range(1, CONNECT_ATTEMPTS + 1):
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
            return db
        except OperationalError as e:
            db.close()
            if attempt == CONNECT_ATTEMPTS:
                logger.error(f"Database unreachable after {attempt} attempts: {e}")
                raise
            logger.warning(f"Database connection attempt {attempt} failed, retrying")
            time.sleep(CONNECT_BACKOFF_S * 2 ** (attempt - 1))


def get_db() -> Iterator[Session]:
    """
    FastAPI dependency: one session per request, committed when the handler
    returns normally and rolled back when it raises.
    """
    db = _open_session()
    try:
        yield db
        db.commit()
    except Exception as e:
        db.rollback()
        if not isinstance(e, HTTPException):
            logger.error(f"Rolling back request transaction: {e}")
        raise
    finally:
        db.close()


def get_db_sync() -> Session:
    """Session for Celery tasks and scripts; the caller commits and closes."""
    return SessionLocal()


def check_db_connection() -> bool:
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except OperationalError as e:
        logger.error(f"Database health check failed: {e}")
        return False
    return True
