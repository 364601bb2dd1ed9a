"""Database engine and session utilities."""

from __future__ import annotations

from contextlib import contextmanager
from functools import lru_cache
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from discord_task_bridge.config import get_settings

Base = declarative_base()


def create_session_factory(database_url: str) -> sessionmaker[Session]:
    """Build a session factory on a fresh engine for *database_url*."""

    return sessionmaker(bind=create_engine(database_url, echo=False), autoflush=False)


@lru_cache()
def get_engine() -> Engine:
    """Engine for the environment-configured database, used by scripts and tests."""

    return create_engine(get_settings().database_url, echo=False)


@lru_cache()
def get_session_factory() -> sessionmaker[Session]:
    return sessionmaker(bind=get_engine(), autoflush=False)


@contextmanager
def session_scope(factory: sessionmaker[Session] | None = None) -> Generator[Session, None, None]:
    """Provide a transactional scope on *factory*, else the environment database."""

    session = (factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
