"""Database engine and session factory"""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from ledger_core.config import settings


def make_engine(database_url: str | None = None) -> Engine:
    """Engine for the ledger database; store calls run in worker threads, so SQLite connections cross threads"""
    url = database_url or settings.database_url
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})

    # Recycle after 1 hour to avoid stale connections
    return create_engine(
        url,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=10,
        max_overflow=10,
        pool_recycle=3600,
    )


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)
