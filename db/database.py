"""
Database engine, session management, and initialization.
"""

import logging
from contextlib import contextmanager
from typing import Callable, Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from config.settings import settings
from db.models import Base

logger = logging.getLogger(__name__)


def make_engine(url: str = settings.DATABASE_URL, **kwargs) -> Engine:
    return create_engine(
        url,
        connect_args={"check_same_thread": False} if "sqlite" in url else {},
        echo=settings.DEBUG,
        **kwargs,
    )


def make_session_factory(bind: Engine) -> Callable[[], Session]:
    # Objects stay readable after the session closes
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=bind)


engine = make_engine()
SessionLocal = make_session_factory(engine)


def init_db(bind: Engine = None) -> None:
    """Create all tables."""
    Base.metadata.create_all(bind=bind or engine)
    logger.info("✅ Database initialized.")


@contextmanager
def session_scope(factory: Callable[[], Session]) -> Generator[Session, None, None]:
    """Commit on success, roll back on error, always close."""
    db = factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

