"""
DataBank Database Session Management.

Provides the single entry point for database initialisation plus a
context manager for transactional access. Services receive the returned
``sessionmaker`` explicitly. The most recent engine is remembered so
``close_db`` can dispose it at shutdown.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from databank.db.base import Base, build_engine

logger = logging.getLogger("databank.db.session")

_engine: Optional[Engine] = None


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
    Initialise the DataBank database.

    1. Builds the engine (see ``build_engine`` for SQLite handling).
    2. Optionally runs ``Base.metadata.create_all()`` — for ``databank init``
       and tests. Production deployments manage the schema themselves.
    3. Remembers the engine as the module-level default for ``close_db``.

    Sessions are created with ``expire_on_commit=False`` so rows returned by
    the services stay readable after their session closes.

    Returns:
        A ``sessionmaker`` bound to the new engine.
    """
    global _engine

    # Import models so every table is registered on Base.metadata
    from databank.db import models  # noqa: F401

    engine = build_engine(
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
        logger.info("Database tables created")

    _engine = engine
    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def session_scope(factory: sessionmaker) -> Generator[Session, None, None]:
    """
    Context manager for sessions with auto-commit/rollback.

    Usage:
        with session_scope(factory) as session:
            user = session.query(User).filter_by(email=email).first()
    """
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def close_db(engine: Optional[Engine] = None) -> None:
    """
    Dispose ``engine`` (the most recent engine when omitted). Used during shutdown.
    """
    global _engine
    target = engine if engine is not None else _engine
    if target is not None:
        target.dispose()
        logger.info("Database engine disposed")
    if target is _engine:
        _engine = None
