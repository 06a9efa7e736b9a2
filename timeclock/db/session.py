"""SQLAlchemy engine and session factories."""

from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

# ``Base`` is the parent class for every model in timeclock/models.
Base = declarative_base()


def make_engine(url: str) -> Engine:
    """Build an engine; SQLite connections are shared across threadpool workers."""

    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True)
    connect_args = {"check_same_thread": False}
    if url in ("sqlite://", "sqlite:///:memory:"):
        # One connection, otherwise each checkout would see a fresh empty database.
        return create_engine(url, connect_args=connect_args, poolclass=StaticPool)
    return create_engine(url, connect_args=connect_args)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def init_schema(engine: Engine) -> None:
    # Importing the models registers their tables on ``Base.metadata``.
    from ..models import account, profile, project, time_entry  # noqa: F401

    Base.metadata.create_all(bind=engine)
