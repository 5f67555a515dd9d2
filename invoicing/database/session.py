"""Database engine and session management."""

import logging
from collections.abc import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from invoicing.database.models import Base
from invoicing.shared.config import Settings, get_settings

logger = logging.getLogger(__name__)


def create_db_engine(settings: Settings) -> Engine:
    """Create an engine for the configured database URL.

    Args:
        settings: Application settings with database_url

    Returns:
        SQLAlchemy engine
    """
    connect_args = {}
    if settings.database_url.startswith("sqlite"):
        # FastAPI runs sync handlers in a threadpool
        connect_args["check_same_thread"] = False
    return create_engine(settings.database_url, connect_args=connect_args, pool_pre_ping=True)


engine = create_db_engine(get_settings())
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_db(bind: Engine | None = None) -> None:
    """Create all tables that do not exist yet."""
    bind = bind or engine
    Base.metadata.create_all(bind=bind)
    logger.info(f"Database schema ready on {bind.url.render_as_string(hide_password=True)}")


def get_session() -> Generator[Session, None, None]:
    """Yield a session per request (FastAPI dependency)."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
