from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from civicflow.core.config import get_settings


def make_engine(url: str, *, echo: bool = False) -> Engine:
    """
    PostgreSQL in production. SQLite is accepted for local runs and tests;
    an in-memory SQLite URL gets a single shared connection so every session
    sees the same database.
    """
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=echo, future=True, **kwargs)
    return create_engine(url, echo=echo, pool_pre_ping=True, future=True)


settings = get_settings()

engine = make_engine(settings.database_url, echo=settings.database_echo)  # fail fast if missing

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    future=True,
)


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    """Session for scripts: commits on success, rolls back on error."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
