"""
DocTrack Database Session Management.

Single entry point for DB initialisation plus context managers for DB
access and explicit units of work.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy.orm import Session, sessionmaker

from doctrack.db.base import Base, engine_registry

ENGINE_NAME = "doctrack"

_session_factory: Optional[sessionmaker] = None


def init_db(
    db_url: str,
    create_tables: bool = False,
    pool_size: int = 10,
    max_overflow: int = 20,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    pool_pre_ping: bool = True,
    echo: bool = False,
) -> sessionmaker:
    """
    Register the "doctrack" engine and build its session factory.

    Args:
        db_url:        SQLAlchemy URL (postgresql://… or sqlite:///…).
        create_tables: Run Base.metadata.create_all() after connecting.
                       Used by ``doctrack init``, SQLite dev setups and tests.

    Returns:
        A ``sessionmaker`` bound to the engine. Also stored as the module
        singleton used by ``get_session()``.
    """
    global _session_factory

    # models must be imported so their tables are on Base.metadata
    import doctrack.db.models  # noqa: F401

    engine = engine_registry.register(
        ENGINE_NAME,
        db_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        pool_pre_ping=pool_pre_ping,
        echo=echo,
    )

    if create_tables:
        Base.metadata.create_all(engine)

    _session_factory = engine_registry.get_session_factory(ENGINE_NAME)
    return _session_factory


def get_session() -> Session:
    """Get a new session for the DocTrack database."""
    if _session_factory is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _session_factory()


@contextmanager
def session_scope(factory: Optional[sessionmaker] = None) -> Generator[Session, None, None]:
    """
    Context manager for sessions with auto-commit/rollback.

    Usage:
        with session_scope() as session:
            user = session.query(User).filter_by(username='admin').first()
    """
    session = factory() if factory is not None else get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def transaction(session: Session) -> Generator[Session, None, None]:
    """
    One unit of work on an existing session: every statement issued inside
    the block commits together or not at all.
    """
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise


def close_all_sessions() -> None:
    """Dispose all engines. Used during shutdown."""
    global _session_factory
    _session_factory = None
    engine_registry.dispose()
