"""
Database Session Management
===========================

One engine per DATABASE_URL, created on first use. Changing the URL (tests
point it at a temporary SQLite file) rebuilds the engine on the next call.

Two ways in:
- get_db()          FastAPI dependency, caller commits
- get_db_session()  pipeline unit of work, commits on success
"""

import os
import logging
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import QueuePool

from .models import Base

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///./dev.db"

_engine = None
_engine_url = None

# Bound in get_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False)


def _current_database_url() -> str:
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


def _create_engine_for_url(database_url: str):
    echo = os.environ.get("SQL_ECHO", "false").lower() == "true"

    if database_url.startswith("sqlite"):
        # Pipeline stages may touch a case from the threadpool FastAPI uses for sync endpoints
        return create_engine(database_url, connect_args={"check_same_thread": False}, echo=echo)

    return create_engine(
        database_url,
        poolclass=QueuePool,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        connect_args={"connect_timeout": int(os.environ.get("DB_CONNECT_TIMEOUT", "5"))},
        echo=echo,
    )


def get_engine():
    """Engine for the current DATABASE_URL"""
    global _engine, _engine_url
    database_url = _current_database_url()
    if _engine is None or _engine_url != database_url:
        if _engine is not None:
            _engine.dispose()
        _engine = _create_engine_for_url(database_url)
        _engine_url = database_url
        SessionLocal.configure(bind=_engine)
        logger.info(f"[DB] Engine bound to {database_url.split('://', 1)[0]}")
    return _engine


def reset_engine():
    """Dispose the engine and unbind sessions (tests switch databases with this)."""
    global _engine, _engine_url
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _engine_url = None
    SessionLocal.configure(bind=None)


def init_db():
    """Create the case, fact, routing, plan and audit tables if missing"""
    Base.metadata.create_all(bind=get_engine())


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency. The endpoint decides when to commit.

    Usage:
        @app.post("/api/v1/cases")
        async def create(db: Session = Depends(get_db)):
            ...
    """
    get_engine()
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    """
    One pipeline step as one transaction: commits on success, rolls back
    on any error so a half-written plan or decision never persists.

    Usage:
        with get_db_session() as db:
            create_plan(db, case_id, plan)
    """
    get_engine()
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
