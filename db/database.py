"""Database engine and session management."""

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

# Base class for models
Base = declarative_base()


def create_db_engine(database_url: str, echo: bool = False):
    """Create an engine; SQLite URLs get thread-safe connection settings."""
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False, "timeout": 30}}
        # In-memory databases live on a single shared connection
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, echo=echo, **kwargs)

    return create_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=10,
    )


def create_session_factory(engine):
    return sessionmaker(
        bind=engine,
        expire_on_commit=False,
        autoflush=False,
    )


def init_db(engine) -> None:
    """Create all tables that do not exist yet."""
    # Register models on Base.metadata
    import db.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
