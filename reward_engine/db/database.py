"""
Database connection and session management
"""
from contextlib import contextmanager
from typing import Any, Dict, Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from reward_engine.config import settings


def engine_options(url: str) -> Dict[str, Any]:
    """Pool settings for the configured backend"""
    if url.startswith("sqlite"):
        # Single shared connection so in-memory databases survive across sessions
        return {
            "connect_args": {"check_same_thread": False},
            "poolclass": StaticPool,
        }
    return {
        "pool_pre_ping": True,
        "pool_size": 10,
        "max_overflow": 20,
    }


engine = create_engine(settings.DATABASE_URL, **engine_options(settings.DATABASE_URL))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db_session():
    """Get a new database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# FastAPI dependency
get_db = get_db_session


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """
    Run a block as one database transaction.

    Commits on success. Any exception rolls back every write made in the
    block and is re-raised to the caller.
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise


def init_db():
    """Create all tables"""
    from reward_engine.db import models  # noqa: F401
    Base.metadata.create_all(bind=engine)
