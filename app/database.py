"""Database engine and session management."""

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from app.config import Settings


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def create_db_engine(settings: Settings) -> Engine:
    """Create an engine that fails instead of hanging on a stalled database."""
    if settings.DATABASE_URL.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": settings.DB_TIMEOUT_SECONDS}
        return create_engine(settings.DATABASE_URL, echo=settings.DEBUG, connect_args=connect_args)
    return create_engine(
        settings.DATABASE_URL,
        echo=settings.DEBUG,
        pool_pre_ping=True,
        pool_timeout=settings.DB_TIMEOUT_SECONDS,
    )


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Build the session factory used by the SQL user directory."""
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)

