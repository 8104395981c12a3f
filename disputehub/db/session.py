"""
Database Session Management
===========================

One engine per database URL. The URL is re-read from the environment on
every `get_engine()` call, so tests can point DATABASE_URL at a temporary
SQLite file and call `reset_engine()`.

SQLite keeps the driver's default transaction handling: no BEGIN is sent
for plain SELECTs, so a session that has only read holds no lock while
another session takes the strategy lock.
"""

import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from ..config import Settings
from .models import Base

logger = logging.getLogger(__name__)

SessionLocal = sessionmaker(autocommit=False, autoflush=False)

_engine: Optional[Engine] = None
_engine_url: Optional[str] = None


def _build_engine(settings: Settings) -> Engine:
    url = settings.database_url
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False}, echo=settings.sql_echo)

    return create_engine(
        url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,
        echo=settings.sql_echo,
    )


def get_engine() -> Engine:
    """Engine for the current DATABASE_URL, rebuilt when the URL changes"""
    global _engine, _engine_url
    settings = Settings()
    if _engine is None or _engine_url != settings.database_url:
        if _engine is not None:
            _engine.dispose()
        _engine = _build_engine(settings)
        _engine_url = settings.database_url
        SessionLocal.configure(bind=_engine)
        logger.info(f"Database engine created for {_engine.url.render_as_string(hide_password=True)}")
    return _engine


def reset_engine():
    """Forget the current engine (tests)"""
    global _engine, _engine_url
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _engine_url = None
    SessionLocal.configure(bind=None)


def init_db():
    Base.metadata.create_all(bind=get_engine())


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency; the route decides when to commit"""
    get_engine()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    """Session that commits on success and rolls back on error"""
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
